from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Literal, Optional

StreakTransition = Literal["started", "same_day", "continued", "reset"]

# Milestone days and their labels, ascending.
STREAK_MILESTONES = (
    (7, "Week Warrior"),
    (14, "Fortnight Fighter"),
    (30, "Month Master"),
    (60, "Style Devotee"),
    (90, "Fashion Expert"),
    (365, "Style Legend"),
)


@dataclass
class StreakRecord:
    """
    Daily activity streak for one user. Day-level, UTC only, no direct DB concerns.

    A stored record always has current_streak >= 1; the zeroed defaults only
    describe a user who has never been active.
    """

    user_id: str
    current_streak: int = 0
    longest_streak: int = 0
    last_active_date: Optional[date] = None
    total_days_active: int = 0

    def copy(self) -> StreakRecord:
        return StreakRecord(
            user_id=self.user_id,
            current_streak=self.current_streak,
            longest_streak=self.longest_streak,
            last_active_date=self.last_active_date,
            total_days_active=self.total_days_active,
        )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_active_date": self.last_active_date.isoformat() if self.last_active_date else None,
            "total_days_active": self.total_days_active,
        }


@dataclass
class StreakUpdate:
    """Outcome of one recorded activity."""

    record: StreakRecord
    transition: StreakTransition

    @property
    def increased(self) -> bool:
        return self.transition in ("started", "continued")

    @property
    def reset(self) -> bool:
        return self.transition == "reset"

    @property
    def changed(self) -> bool:
        return self.transition != "same_day"


def milestone_label(streak: int) -> Optional[str]:
    for days, label in STREAK_MILESTONES:
        if days == streak:
            return label
    return None
