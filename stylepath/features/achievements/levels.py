"""Level curve over accumulated style points (XP)."""

from __future__ import annotations

from dataclasses import dataclass


def xp_required_for_level(level: int) -> int:
    """Total XP needed to reach `level`. Level 1 = 0, level 2 = 50, level 3 = 125, ..."""
    if level <= 1:
        return 0
    # Going from level n to n+1 costs 50 + (n - 1) * 25
    return sum(50 + (n - 1) * 25 for n in range(1, level))


def level_from_xp(xp: int) -> int:
    level = 1
    while xp_required_for_level(level + 1) <= xp:
        level += 1
    return level


@dataclass(frozen=True)
class LevelProgress:
    level: int
    xp: int
    xp_for_current_level: int
    xp_for_next_level: int

    @property
    def xp_to_next_level(self) -> int:
        return max(0, self.xp_for_next_level - self.xp)

    @property
    def progress(self) -> float:
        needed = self.xp_for_next_level - self.xp_for_current_level
        if needed <= 0:
            return 0.0
        return min(max((self.xp - self.xp_for_current_level) / needed, 0.0), 1.0)

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "xp": self.xp,
            "xp_to_next_level": self.xp_to_next_level,
            "level_progress": round(self.progress, 3),
        }


def level_progress(xp: int) -> LevelProgress:
    xp = max(0, xp)
    level = level_from_xp(xp)
    return LevelProgress(
        level=level,
        xp=xp,
        xp_for_current_level=xp_required_for_level(level),
        xp_for_next_level=xp_required_for_level(level + 1),
    )
