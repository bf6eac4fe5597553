"""Tests for the SQLite birthday repository and reminder store.

Each test gets a fresh database from the db fixture.
"""

from datetime import date

import pytest

from domains.birthdays.errors import StoreUnavailable
from domains.birthdays.models import MonthDay
from domains.birthdays.store import Database, ReminderStore


def test_add_birthday_creates_member_group_and_event(repository):
    event, created = repository.add_or_update_birthday(
        "U1", "G1", MonthDay(3, 15), display_name="Ada", group_name="Family"
    )

    assert created is True
    assert event.owner_id == "U1"
    assert event.group_id == "G1"
    assert event.month_day == MonthDay(3, 15)

    assert repository.get_birthday("U1", "G1") == event
    assert repository.group_birthdays("G1") == [(event, "Ada")]

    group = repository.get_group("G1")
    assert group.name == "Family"
    assert group.active is True


def test_re_adding_birthday_updates_in_place(repository):
    """One birthday per (owner, group): a second add replaces the date."""
    first, _ = repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15))
    second, created = repository.add_or_update_birthday("U1", "G1", MonthDay(7, 1))

    assert created is False
    assert second.event_id == first.event_id
    assert repository.get_birthday("U1", "G1").month_day == MonthDay(7, 1)
    assert repository.events_on(3, 15) == []
    assert len(repository.events_on(7, 1)) == 1


def test_same_owner_in_two_groups_is_two_events(repository):
    a, _ = repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15))
    b, _ = repository.add_or_update_birthday("U1", "G2", MonthDay(3, 15))

    assert a.event_id != b.event_id
    assert [e.group_id for e in repository.events_on(3, 15)] == ["G1", "G2"]


def test_changing_date_drops_unsent_reminders(repository, reminder_store):
    event, _ = repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15))
    reminder_store.create_if_absent(event.event_id, date(2025, 3, 15))

    repository.add_or_update_birthday("U1", "G1", MonthDay(4, 2))

    assert reminder_store.list_for_date(date(2025, 3, 15)) == []


def test_re_adding_same_date_keeps_reminders(repository, reminder_store):
    event, _ = repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15))
    reminder_store.create_if_absent(event.event_id, date(2025, 3, 15))

    repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15), display_name="Ada")

    assert len(reminder_store.list_for_date(date(2025, 3, 15))) == 1


def test_remove_birthday_cascades_to_reminders(repository, reminder_store):
    event, _ = repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15))
    reminder_store.create_if_absent(event.event_id, date(2025, 3, 15))

    assert repository.remove_birthday("U1", "G1") is True
    assert repository.remove_birthday("U1", "G1") is False

    assert repository.get_birthday("U1", "G1") is None
    assert reminder_store.list_for_date(date(2025, 3, 15)) == []


def test_remove_owner_from_groups(repository):
    repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15))
    repository.add_or_update_birthday("U1", "G2", MonthDay(3, 15))
    repository.add_or_update_birthday("U1", "G3", MonthDay(3, 15))

    removed = repository.remove_owner_from_groups("U1", ["G1", "G2"])

    assert removed == 2
    assert [e.group_id for e in repository.events_on(3, 15)] == ["G3"]
    assert repository.remove_owner_from_groups("U1", []) == 0


def test_group_active_flag(repository):
    repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15), group_name="Family")

    assert repository.is_group_active("G1") is True
    assert repository.set_group_active("G1", False) is True
    assert repository.is_group_active("G1") is False
    assert repository.is_group_active("missing") is False
    assert repository.set_group_active("missing", True) is False


def test_registering_birthday_reactivates_group(repository, reminder_store):
    """A group deactivated when the bot left comes back on the next registration."""
    from domains.birthdays.materializer import ReminderMaterializer

    repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15), group_name="Family")
    repository.set_group_active("G1", False)

    repository.add_or_update_birthday("U2", "G1", MonthDay(3, 15), group_name="#general")

    group = repository.get_group("G1")
    assert group.active is True
    assert group.name == "#general"
    assert ReminderMaterializer(repository, reminder_store).materialize_for(date(2025, 3, 15)) == 2


def test_re_adding_without_group_name_keeps_name(repository):
    repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15), group_name="Family")
    repository.set_group_active("G1", False)

    repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15))

    assert repository.get_group("G1").name == "Family"
    assert repository.is_group_active("G1") is True


def test_group_birthdays_in_calendar_order(repository):
    repository.add_or_update_birthday("U2", "G1", MonthDay(12, 1), display_name="Bo")
    repository.add_or_update_birthday("U1", "G1", MonthDay(1, 20), display_name="Ada")
    repository.add_or_update_birthday("U3", "G2", MonthDay(6, 6))

    birthdays = repository.group_birthdays("G1")

    assert [(e.owner_id, name) for e, name in birthdays] == [("U1", "Ada"), ("U2", "Bo")]


# ----------------------------------------------------------------------
# ReminderStore
# ----------------------------------------------------------------------

def test_create_if_absent_is_idempotent(repository, reminder_store):
    event, _ = repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15))

    assert reminder_store.create_if_absent(event.event_id, date(2025, 3, 15)) is True
    assert reminder_store.create_if_absent(event.event_id, date(2025, 3, 15)) is False

    records = reminder_store.list_for_date(date(2025, 3, 15))
    assert len(records) == 1
    assert records[0].sent is False
    assert records[0].sent_at is None


def test_create_if_absent_allows_other_years(repository, reminder_store):
    event, _ = repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15))

    assert reminder_store.create_if_absent(event.event_id, date(2025, 3, 15)) is True
    assert reminder_store.create_if_absent(event.event_id, date(2026, 3, 15)) is True


def test_mark_sent_only_once(repository, reminder_store, clock):
    event, _ = repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15))
    reminder_store.create_if_absent(event.event_id, date(2025, 3, 15))
    reminder = reminder_store.list_pending(date(2025, 3, 15))[0]

    assert reminder_store.mark_sent(reminder.reminder_id) is True
    assert reminder_store.mark_sent(reminder.reminder_id) is False
    assert reminder_store.mark_sent("does-not-exist") is False

    record = reminder_store.list_for_date(date(2025, 3, 15))[0]
    assert record.sent is True
    assert record.sent_at == clock.now
    assert reminder_store.list_pending(date(2025, 3, 15)) == []


def test_list_pending_ordered_by_group_then_owner(repository, reminder_store):
    target = date(2025, 3, 15)
    for owner, group in [("U2", "G2"), ("U3", "G1"), ("U1", "G2"), ("U1", "G1")]:
        event, _ = repository.add_or_update_birthday(owner, group, MonthDay(3, 15), display_name=f"name-{owner}")
        reminder_store.create_if_absent(event.event_id, target)

    pending = reminder_store.list_pending(target)

    assert [(p.group_id, p.owner_id) for p in pending] == [
        ("G1", "U1"), ("G1", "U3"), ("G2", "U1"), ("G2", "U2"),
    ]
    assert pending[0].display_name == "name-U1"
    assert pending[0].target_date == target


def test_list_pending_skips_inactive_groups(repository, reminder_store):
    target = date(2025, 3, 15)
    event, _ = repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15))
    reminder_store.create_if_absent(event.event_id, target)

    repository.set_group_active("G1", False)

    assert reminder_store.list_pending(target) == []


def test_delete_sent_before(repository, reminder_store):
    event, _ = repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15))
    reminder_store.create_if_absent(event.event_id, date(2024, 3, 15))
    reminder_store.create_if_absent(event.event_id, date(2025, 3, 15))
    old = reminder_store.list_for_date(date(2024, 3, 15))[0]
    reminder_store.mark_sent(old.reminder_id)

    assert reminder_store.delete_sent_before(date(2025, 1, 1)) == 1
    assert reminder_store.list_for_date(date(2024, 3, 15)) == []
    # Unsent records are not touched by delete_sent_before
    assert len(reminder_store.list_for_date(date(2025, 3, 15))) == 1


def test_delete_unsent_before(repository, reminder_store):
    event, _ = repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15))
    reminder_store.create_if_absent(event.event_id, date(2024, 3, 15))

    assert reminder_store.delete_unsent_before(date(2024, 3, 15)) == 0
    assert reminder_store.delete_unsent_before(date(2024, 3, 16)) == 1


def test_history_and_stats(repository, reminder_store):
    a, _ = repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15))
    b, _ = repository.add_or_update_birthday("U2", "G1", MonthDay(3, 16))
    c, _ = repository.add_or_update_birthday("U3", "G2", MonthDay(3, 16))
    reminder_store.create_if_absent(a.event_id, date(2025, 3, 15))
    reminder_store.create_if_absent(b.event_id, date(2025, 3, 16))
    reminder_store.create_if_absent(c.event_id, date(2025, 3, 16))
    sent = reminder_store.list_pending(date(2025, 3, 15))[0]
    reminder_store.mark_sent(sent.reminder_id)

    history = reminder_store.history("G1")
    assert [(r.reminder_id, name) for r, name in history] == [(sent.reminder_id, "U1")]

    assert reminder_store.stats(since=date(2025, 3, 1)) == {"total": 3, "sent": 1, "pending": 2}
    assert reminder_store.stats(since=date(2025, 3, 1), group_id="G2") == {"total": 1, "sent": 0, "pending": 1}
    assert reminder_store.stats(since=date(2025, 4, 1)) == {"total": 0, "sent": 0, "pending": 0}


def test_unreachable_database_raises_store_unavailable(tmp_path):
    """A path under a regular file cannot be opened."""
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    store = ReminderStore(Database(str(blocker / "birthdays.db")))

    with pytest.raises(StoreUnavailable):
        store.list_pending(date(2025, 3, 15))

    with pytest.raises(StoreUnavailable):
        store.create_if_absent("event", date(2025, 3, 15))


def test_closed_database_reopens(db, repository):
    repository.add_or_update_birthday("U1", "G1", MonthDay(3, 15))
    db.close()

    assert repository.get_birthday("U1", "G1") is not None
