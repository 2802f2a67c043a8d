"""
Achievement domain models.

Definitions are a shared, read-only catalog. Progress rows are per
(user, achievement) and carry a sticky unlock timestamp.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AchievementCategory(str, Enum):
    WARDROBE = "wardrobe"
    OUTFITS = "outfits"
    WORN = "worn"
    STREAKS = "streaks"
    SOCIAL = "social"
    STYLE = "style"


class AchievementRarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class AchievementDefinition(BaseModel):
    """Catalog entry. Immutable for the engine's purposes."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    title: str
    description: str = ""
    category: AchievementCategory
    target_progress: int = Field(gt=0)
    rarity: AchievementRarity = AchievementRarity.COMMON
    icon_name: str = "star.fill"
    xp_reward: int = Field(default=0, ge=0)
    sort_order: int = 0


@dataclass
class UserAchievementProgress:
    """Progress of one user toward one achievement."""

    user_id: str
    achievement_id: str
    current_progress: int = 0
    unlocked_at: Optional[datetime] = None
    seen_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_unlocked(self) -> bool:
        return self.unlocked_at is not None

    def copy(self) -> UserAchievementProgress:
        return UserAchievementProgress(
            user_id=self.user_id,
            achievement_id=self.achievement_id,
            current_progress=self.current_progress,
            unlocked_at=self.unlocked_at,
            seen_at=self.seen_at,
            updated_at=self.updated_at,
        )


class UnlockedAchievement(BaseModel):
    """What the caller renders or notifies for a fresh unlock."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    rarity: AchievementRarity
    icon_name: str
    xp_reward: int

    @classmethod
    def from_definition(cls, definition: AchievementDefinition) -> UnlockedAchievement:
        return cls(
            id=definition.id,
            title=definition.title,
            description=definition.description,
            rarity=definition.rarity,
            icon_name=definition.icon_name,
            xp_reward=definition.xp_reward,
        )


class AchievementView(BaseModel):
    """Catalog entry joined with one user's progress."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    category: AchievementCategory
    rarity: AchievementRarity
    icon_name: str
    xp_reward: int
    sort_order: int
    progress: int
    target: int
    is_unlocked: bool
    unlocked_at: Optional[datetime] = None
    seen_at: Optional[datetime] = None

    @property
    def progress_percent(self) -> float:
        if self.target <= 0:
            return 0.0
        return min(max(self.progress / self.target, 0.0), 1.0)

    @property
    def is_new(self) -> bool:
        return self.is_unlocked and self.seen_at is None
