from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from stylepath.core.errors import require_user_id
from stylepath.core.logging import log_event
from stylepath.features.progression.store import ProgressionStore
from stylepath.models.streak import StreakRecord, StreakTransition, StreakUpdate, milestone_label


class StreakService:
    """Deterministic daily streak state machine.

    The relation between last_active_date and today selects exactly one of
    four transitions: started (no record), same_day, continued (yesterday) or
    reset (anything else, including future dates).
    """

    def __init__(self, store: ProgressionStore):
        self._store = store

    def record_activity(self, *, user_id: str, now: Optional[datetime] = None) -> StreakUpdate:
        user_id = require_user_id(user_id, "record_activity")
        today = self.normalize_day(now or datetime.now(timezone.utc))
        yesterday = today - timedelta(days=1)

        existing = self._store.get_streak(user_id)
        record, transition = self._advance(existing, user_id, today, yesterday)

        if transition != "same_day":
            # Store errors propagate; the new state is only returned once written.
            self._store.save_streak(record)

        log_event(
            "info",
            f"streak.{transition}",
            user_id=user_id,
            operation="record_activity",
            extra={"current_streak": record.current_streak, "longest_streak": record.longest_streak},
        )
        return StreakUpdate(record=record, transition=transition)

    def get_state(self, user_id: str) -> dict:
        user_id = require_user_id(user_id, "get_streak")
        record = self._store.get_streak(user_id) or StreakRecord(user_id=user_id)
        state = record.to_dict()
        state["milestone"] = milestone_label(record.current_streak)
        return state

    # Internal helpers -------------------------------------------------
    @staticmethod
    def _advance(
        existing: Optional[StreakRecord], user_id: str, today: date, yesterday: date
    ) -> tuple[StreakRecord, StreakTransition]:
        if existing is None:
            return (
                StreakRecord(
                    user_id=user_id,
                    current_streak=1,
                    longest_streak=1,
                    last_active_date=today,
                    total_days_active=1,
                ),
                "started",
            )

        if existing.last_active_date == today:
            return existing, "same_day"

        record = existing.copy()
        record.last_active_date = today
        record.total_days_active += 1

        if existing.last_active_date == yesterday:
            record.current_streak += 1
            record.longest_streak = max(record.longest_streak, record.current_streak)
            return record, "continued"

        # Gap of two or more days, or a last_active_date in the future.
        record.current_streak = 1
        record.longest_streak = max(record.longest_streak, record.current_streak)
        return record, "reset"

    @staticmethod
    def normalize_day(occurred_at: datetime) -> date:
        aware = occurred_at if occurred_at.tzinfo else occurred_at.replace(tzinfo=timezone.utc)
        return aware.astimezone(timezone.utc).date()
