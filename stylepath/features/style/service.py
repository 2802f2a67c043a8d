"""
Style preference vector updates.

Each interaction with items nudges the user's preference vector toward (or
away from) the mean embedding of those items:

    U_new = normalize(alpha * U_old + (1 - alpha) * w * I_avg)

where w is the interaction weight. Tag corrections and vibe feedback move
labels between the preferred and avoided sets independently of the vector.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional

from stylepath.core.config import settings
from stylepath.core.errors import require_user_id
from stylepath.core.logging import log_event
from stylepath.features.progression.store import ProgressionStore
from stylepath.features.vectors import ops
from stylepath.models.style import (
    INTERACTION_WEIGHTS,
    PREFERENCE_FIELDS,
    InteractionLogEntry,
    InteractionType,
    StyleInteraction,
    StylePreferenceVector,
    TagCorrectionEntry,
    TagEditInteraction,
    VibeConfirmInteraction,
    VibeRejectInteraction,
)


@dataclass
class StyleUpdate:
    vector: StylePreferenceVector
    updated: bool  # True when the vector itself moved
    tags_changed: bool = False
    weight: float = 0.0


class StyleVectorService:
    def __init__(
        self,
        store: ProgressionStore,
        *,
        dim: Optional[int] = None,
        alpha: Optional[float] = None,
        weights: Optional[Mapping[InteractionType, float]] = None,
    ):
        self._store = store
        self._dim = dim if dim is not None else settings.STYLE_VECTOR_DIM
        self._alpha = alpha if alpha is not None else settings.STYLE_VECTOR_ALPHA
        self._weights = weights if weights is not None else INTERACTION_WEIGHTS

    @property
    def dim(self) -> int:
        return self._dim

    def weight_for(self, interaction_type: InteractionType) -> float:
        return self._weights.get(interaction_type, 0.0)

    def apply_interaction(
        self,
        *,
        user_id: str,
        interaction: StyleInteraction,
        now: Optional[datetime] = None,
    ) -> StyleUpdate:
        """
        Blend the interaction into the stored vector, then append the
        interaction (and any tag correction) to the logs.

        The logs are written only after the vector write succeeds; a failed
        vector write leaves no log rows behind.
        """
        user_id = require_user_id(user_id, "apply_style_update")
        moment = now or datetime.now(timezone.utc)
        kind = interaction.kind
        weight = self.weight_for(kind)

        embeddings = ops.valid_embeddings(interaction.embeddings, self._dim)
        dropped = len(interaction.embeddings) - len(embeddings)
        if dropped:
            log_event(
                "warning",
                "style.embeddings_dropped",
                user_id=user_id,
                operation="apply_style_update",
                extra={"dropped": dropped, "expected_dim": self._dim},
            )

        outcome = {"updated": False, "tags_changed": False}

        def change(state: StylePreferenceVector) -> bool:
            # May run more than once when a concurrent write wins the row
            tags_changed = self._apply_tag_feedback(interaction, state)
            updated = False
            if embeddings:
                old = ops.as_vector(state.vector, self._dim)
                evidence = ops.average(embeddings)
                blended = ops.blend(old, evidence, weight, self._alpha)
                state.vector = ops.normalize(blended).tolist()
                state.interaction_count += 1
                updated = True
            if updated or tags_changed:
                state.last_updated = moment
            outcome.update(updated=updated, tags_changed=tags_changed)
            return updated or tags_changed

        state = self._store.update_style_vector(user_id, change)

        self._store.append_interaction(
            InteractionLogEntry(
                user_id=user_id,
                interaction_type=kind,
                weight=weight,
                item_ids=tuple(interaction.item_ids),
                occurred_at=moment,
            )
        )
        if isinstance(interaction, TagEditInteraction) and interaction.tag_correction:
            correction = interaction.tag_correction
            self._store.append_tag_correction(
                TagCorrectionEntry(
                    user_id=user_id,
                    item_id=interaction.item_ids[0] if interaction.item_ids else None,
                    field_name=correction.field_changed,
                    original_value=correction.old_value,
                    corrected_value=correction.new_value,
                    occurred_at=moment,
                )
            )

        if outcome["updated"] or outcome["tags_changed"]:
            log_event(
                "info",
                "style.updated",
                user_id=user_id,
                operation="apply_style_update",
                extra={
                    "interaction_type": kind.value,
                    "vector_updated": outcome["updated"],
                    "tags_changed": outcome["tags_changed"],
                    "interaction_count": state.interaction_count,
                },
            )

        return StyleUpdate(
            vector=state, updated=outcome["updated"], tags_changed=outcome["tags_changed"], weight=weight
        )

    def get_vector(self, user_id: str) -> StylePreferenceVector:
        user_id = require_user_id(user_id, "get_style_vector")
        return self._store.get_style_vector(user_id) or StylePreferenceVector(user_id=user_id)

    # Internal helpers -------------------------------------------------
    @staticmethod
    def _apply_tag_feedback(interaction: StyleInteraction, state: StylePreferenceVector) -> bool:
        before = (set(state.preferred_tags), set(state.avoided_tags))

        if isinstance(interaction, TagEditInteraction) and interaction.tag_correction:
            correction = interaction.tag_correction
            if correction.field_changed in PREFERENCE_FIELDS:
                if correction.old_value:
                    state.preferred_tags.discard(correction.old_value)
                if correction.new_value:
                    state.preferred_tags.add(correction.new_value)
                    state.avoided_tags.discard(correction.new_value)

        elif isinstance(interaction, VibeConfirmInteraction) and interaction.vibe:
            state.preferred_tags.add(interaction.vibe)
            state.avoided_tags.discard(interaction.vibe)

        elif isinstance(interaction, VibeRejectInteraction) and interaction.vibe:
            state.avoided_tags.add(interaction.vibe)
            state.preferred_tags.discard(interaction.vibe)

        return (state.preferred_tags, state.avoided_tags) != before
