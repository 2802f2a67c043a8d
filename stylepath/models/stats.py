from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from stylepath.models.achievement import AchievementCategory


class StatField(str, Enum):
    ITEMS_ADDED = "total_items_added"
    OUTFITS_GENERATED = "total_outfits_generated"
    OUTFITS_WORN = "total_outfits_worn"
    OUTFITS_SHARED = "total_outfits_shared"


class ActionType(str, Enum):
    ADD_ITEM = "add_item"
    GENERATE_OUTFIT = "generate_outfit"
    WEAR_OUTFIT = "wear_outfit"
    SAVE_OUTFIT = "save_outfit"
    SHARE_OUTFIT = "share_outfit"
    UPDATE_STREAK = "update_streak"


@dataclass
class UserStatCounters:
    user_id: str
    total_items_added: int = 0
    total_outfits_generated: int = 0
    total_outfits_worn: int = 0
    total_outfits_shared: int = 0
    total_style_points: int = 0

    def get(self, stat: StatField) -> int:
        return getattr(self, stat.value)

    def copy(self) -> UserStatCounters:
        return UserStatCounters(**asdict(self))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ActionRule:
    """Counter an action increments and the achievement category it feeds."""

    stat: Optional[StatField]
    category: AchievementCategory


# update_streak has no counter: streak achievements read the live streak value.
ACTION_RULES: Mapping[ActionType, ActionRule] = MappingProxyType(
    {
        ActionType.ADD_ITEM: ActionRule(StatField.ITEMS_ADDED, AchievementCategory.WARDROBE),
        ActionType.GENERATE_OUTFIT: ActionRule(StatField.OUTFITS_GENERATED, AchievementCategory.OUTFITS),
        ActionType.WEAR_OUTFIT: ActionRule(StatField.OUTFITS_WORN, AchievementCategory.WORN),
        ActionType.SAVE_OUTFIT: ActionRule(StatField.OUTFITS_GENERATED, AchievementCategory.OUTFITS),
        ActionType.SHARE_OUTFIT: ActionRule(StatField.OUTFITS_SHARED, AchievementCategory.SOCIAL),
        ActionType.UPDATE_STREAK: ActionRule(None, AchievementCategory.STREAKS),
    }
)
