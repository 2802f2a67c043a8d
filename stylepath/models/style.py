"""
Style preference domain models.

Interaction payloads form a closed union discriminated by `interaction_type`,
so each interaction carries exactly the fields it needs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Annotated, List, Literal, Mapping, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field


class InteractionType(str, Enum):
    LIKE = "like"
    DISLIKE = "dislike"
    SKIP = "skip"
    WEAR = "wear"
    SAVE = "save"
    EDIT_TAG = "edit_tag"
    VIBE_CONFIRM = "vibe_confirm"
    VIBE_REJECT = "vibe_reject"


INTERACTION_WEIGHTS: Mapping[InteractionType, float] = MappingProxyType(
    {
        InteractionType.LIKE: 0.5,
        InteractionType.DISLIKE: -0.5,
        InteractionType.SKIP: -0.1,
        InteractionType.WEAR: 1.0,
        InteractionType.SAVE: 0.7,
        InteractionType.EDIT_TAG: 2.0,
        InteractionType.VIBE_CONFIRM: 1.5,
        InteractionType.VIBE_REJECT: -1.0,
    }
)

# Tag fields whose corrections move preferred/avoided labels.
PREFERENCE_FIELDS = frozenset({"vibe", "style_bucket"})


class TagCorrection(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    field_changed: str = Field(default="vibe", min_length=1)
    old_value: Optional[str] = None
    new_value: Optional[str] = None


class _ItemInteraction(BaseModel):
    # Fields belonging to another interaction type are rejected, not dropped
    model_config = ConfigDict(frozen=True, extra="forbid")

    item_ids: List[str] = Field(default_factory=list)
    embeddings: List[List[float]] = Field(default_factory=list)

    @property
    def kind(self) -> InteractionType:
        return InteractionType(self.interaction_type)


class LikeInteraction(_ItemInteraction):
    interaction_type: Literal["like"] = "like"


class DislikeInteraction(_ItemInteraction):
    interaction_type: Literal["dislike"] = "dislike"


class SkipInteraction(_ItemInteraction):
    interaction_type: Literal["skip"] = "skip"


class WearInteraction(_ItemInteraction):
    interaction_type: Literal["wear"] = "wear"


class SaveInteraction(_ItemInteraction):
    interaction_type: Literal["save"] = "save"


class TagEditInteraction(_ItemInteraction):
    interaction_type: Literal["edit_tag"] = "edit_tag"
    tag_correction: Optional[TagCorrection] = None


class VibeConfirmInteraction(_ItemInteraction):
    interaction_type: Literal["vibe_confirm"] = "vibe_confirm"
    vibe: Optional[str] = None


class VibeRejectInteraction(_ItemInteraction):
    interaction_type: Literal["vibe_reject"] = "vibe_reject"
    vibe: Optional[str] = None


StyleInteraction = Annotated[
    Union[
        LikeInteraction,
        DislikeInteraction,
        SkipInteraction,
        WearInteraction,
        SaveInteraction,
        TagEditInteraction,
        VibeConfirmInteraction,
        VibeRejectInteraction,
    ],
    Field(discriminator="interaction_type"),
]


@dataclass
class StylePreferenceVector:
    """
    Preference vector for one user.

    `vector` is None until the first update that carried a valid embedding;
    callers treat None as the zero vector.
    """

    user_id: str
    vector: Optional[List[float]] = None
    interaction_count: int = 0
    preferred_tags: Set[str] = field(default_factory=set)
    avoided_tags: Set[str] = field(default_factory=set)
    last_updated: Optional[datetime] = None

    def copy(self) -> StylePreferenceVector:
        return StylePreferenceVector(
            user_id=self.user_id,
            vector=list(self.vector) if self.vector is not None else None,
            interaction_count=self.interaction_count,
            preferred_tags=set(self.preferred_tags),
            avoided_tags=set(self.avoided_tags),
            last_updated=self.last_updated,
        )

    def to_dict(self, include_vector: bool = True) -> dict:
        payload = {
            "user_id": self.user_id,
            "interaction_count": self.interaction_count,
            "preferred_tags": sorted(self.preferred_tags),
            "avoided_tags": sorted(self.avoided_tags),
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }
        if include_vector:
            payload["style_vector"] = self.vector
        return payload


@dataclass(frozen=True)
class InteractionLogEntry:
    user_id: str
    interaction_type: InteractionType
    weight: float
    item_ids: tuple
    occurred_at: datetime


@dataclass(frozen=True)
class TagCorrectionEntry:
    user_id: str
    item_id: Optional[str]
    field_name: str
    original_value: Optional[str]
    corrected_value: Optional[str]
    occurred_at: datetime
