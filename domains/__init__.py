"""Domain modules for the Birthday Reminder Bot."""
