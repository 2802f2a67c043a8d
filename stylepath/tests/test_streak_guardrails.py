from datetime import date, datetime, timedelta, timezone

import pytest

from stylepath.core.errors import ValidationError
from stylepath.features.progression.store import InMemoryProgressionStore
from stylepath.features.streaks.service import StreakService
from stylepath.models.streak import StreakRecord, milestone_label


def _day(year, month, day, hour=12):
    return datetime(year, month, day, hour, 0, tzinfo=timezone.utc)


def test_new_user_then_next_day_then_gap():
    service = StreakService(InMemoryProgressionStore())

    first = service.record_activity(user_id="u1", now=_day(2024, 1, 10))
    assert first.record.current_streak == 1
    assert first.record.longest_streak == 1
    assert first.record.total_days_active == 1
    assert first.increased is True
    assert first.transition == "started"

    second = service.record_activity(user_id="u1", now=_day(2024, 1, 11))
    assert second.record.current_streak == 2
    assert second.record.longest_streak == 2
    assert second.increased is True

    third = service.record_activity(user_id="u1", now=_day(2024, 1, 13))
    assert third.record.current_streak == 1
    assert third.record.longest_streak == 2
    assert third.record.total_days_active == 3
    assert third.reset is True
    assert third.increased is False


def test_streak_not_increment_twice_same_day():
    store = InMemoryProgressionStore()
    service = StreakService(store)

    service.record_activity(user_id="u2", now=_day(2024, 1, 1, hour=8))
    repeat = service.record_activity(user_id="u2", now=_day(2024, 1, 1, hour=23))

    assert repeat.transition == "same_day"
    assert repeat.changed is False
    assert repeat.record.current_streak == 1
    assert store.get_streak("u2").total_days_active == 1


def test_consecutive_days_strictly_increase():
    service = StreakService(InMemoryProgressionStore())
    start = _day(2024, 3, 1)

    previous_longest = 0
    for offset in range(10):
        update = service.record_activity(user_id="u3", now=start + timedelta(days=offset))
        assert update.record.current_streak == offset + 1
        assert update.record.longest_streak >= previous_longest
        previous_longest = update.record.longest_streak


def test_gap_resets_but_keeps_longest():
    service = StreakService(InMemoryProgressionStore())
    start = _day(2024, 2, 1)
    for offset in range(5):
        service.record_activity(user_id="u4", now=start + timedelta(days=offset))

    update = service.record_activity(user_id="u4", now=start + timedelta(days=9))
    assert update.record.current_streak == 1
    assert update.record.longest_streak == 5


def test_future_last_active_date_is_treated_as_reset():
    store = InMemoryProgressionStore()
    store.save_streak(
        StreakRecord(
            user_id="u5",
            current_streak=4,
            longest_streak=6,
            last_active_date=date(2024, 5, 20),
            total_days_active=10,
        )
    )
    service = StreakService(store)

    update = service.record_activity(user_id="u5", now=_day(2024, 5, 15))
    assert update.transition == "reset"
    assert update.record.current_streak == 1
    assert update.record.longest_streak == 6
    assert update.record.last_active_date == date(2024, 5, 15)


def test_days_are_calendar_days_in_utc():
    service = StreakService(InMemoryProgressionStore())
    late = datetime(2024, 1, 1, 23, 30, tzinfo=timezone.utc)
    # 00:30 UTC on Jan 2 expressed in UTC-5
    early_next = datetime(2024, 1, 1, 19, 30, tzinfo=timezone(timedelta(hours=-5)))

    service.record_activity(user_id="u6", now=late)
    update = service.record_activity(user_id="u6", now=early_next)
    assert update.transition == "continued"
    assert update.record.current_streak == 2


def test_naive_datetimes_are_read_as_utc():
    assert StreakService.normalize_day(datetime(2024, 1, 1, 23, 59)) == date(2024, 1, 1)


def test_missing_user_id_rejected_before_store_access():
    class ExplodingStore(InMemoryProgressionStore):
        def get_streak(self, user_id):
            raise AssertionError("store must not be touched")

    service = StreakService(ExplodingStore())
    with pytest.raises(ValidationError):
        service.record_activity(user_id="  ", now=_day(2024, 1, 1))


def test_get_state_reports_milestone():
    service = StreakService(InMemoryProgressionStore())
    start = _day(2024, 1, 1)
    for offset in range(7):
        service.record_activity(user_id="u7", now=start + timedelta(days=offset))

    state = service.get_state("u7")
    assert state["current_streak"] == 7
    assert state["milestone"] == "Week Warrior"
    assert state["last_active_date"] == "2024-01-07"


def test_get_state_for_unknown_user_is_zeroed():
    state = StreakService(InMemoryProgressionStore()).get_state("nobody")
    assert state["current_streak"] == 0
    assert state["last_active_date"] is None
    assert state["milestone"] is None


def test_milestone_labels_only_on_exact_days():
    assert milestone_label(30) == "Month Master"
    assert milestone_label(31) is None
    assert milestone_label(365) == "Style Legend"
