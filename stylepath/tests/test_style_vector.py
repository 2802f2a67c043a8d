import math
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from stylepath.core.errors import ValidationError
from stylepath.features.progression.store import InMemoryProgressionStore
from stylepath.features.style.service import StyleVectorService
from stylepath.models.style import (
    DislikeInteraction,
    InteractionType,
    LikeInteraction,
    SkipInteraction,
    TagCorrection,
    TagEditInteraction,
    VibeConfirmInteraction,
    VibeRejectInteraction,
    WearInteraction,
)

NOW = datetime(2024, 4, 2, 12, 0, tzinfo=timezone.utc)


def _norm(values):
    return math.sqrt(sum(v * v for v in values))


@pytest.fixture
def store():
    return InMemoryProgressionStore()


@pytest.fixture
def service(store):
    return StyleVectorService(store, dim=3, alpha=0.95)


def test_vector_is_zero_before_any_update(service):
    state = service.get_vector("u1")
    assert state.vector is None
    assert state.interaction_count == 0


def test_first_like_moves_vector_toward_item(service):
    update = service.apply_interaction(
        user_id="u1",
        interaction=LikeInteraction(item_ids=["i1"], embeddings=[[3.0, 0.0, 0.0]]),
        now=NOW,
    )
    assert update.updated is True
    assert update.weight == 0.5
    assert update.vector.vector == pytest.approx([1.0, 0.0, 0.0])
    assert update.vector.interaction_count == 1
    assert update.vector.last_updated == NOW


def test_vector_is_unit_length_after_every_valid_update(service):
    interactions = [
        LikeInteraction(embeddings=[[1.0, 2.0, 3.0], [0.5, -1.0, 0.0]]),
        DislikeInteraction(embeddings=[[0.0, 1.0, 0.0]]),
        WearInteraction(embeddings=[[2.0, 2.0, -1.0]]),
        SkipInteraction(embeddings=[[-4.0, 0.0, 1.0]]),
    ]
    for interaction in interactions:
        update = service.apply_interaction(user_id="u2", interaction=interaction, now=NOW)
        assert _norm(update.vector.vector) == pytest.approx(1.0)
    assert service.get_vector("u2").interaction_count == 4


def test_dislike_pushes_vector_away(service):
    service.apply_interaction(user_id="u3", interaction=LikeInteraction(embeddings=[[1.0, 0.0, 0.0]]), now=NOW)
    update = service.apply_interaction(
        user_id="u3", interaction=DislikeInteraction(embeddings=[[0.0, 1.0, 0.0]]), now=NOW
    )
    assert update.vector.vector[1] < 0
    assert update.vector.vector[0] > 0.99


def test_zero_weight_only_renormalizes(store):
    service = StyleVectorService(store, dim=3, alpha=0.9, weights={InteractionType.LIKE: 0.5})
    before = service.apply_interaction(
        user_id="u4", interaction=LikeInteraction(embeddings=[[0.0, 0.0, 2.0]]), now=NOW
    ).vector.vector

    # WEAR has no weight in this table, so it falls back to 0.0
    after = service.apply_interaction(
        user_id="u4", interaction=WearInteraction(embeddings=[[5.0, 0.0, 0.0]]), now=NOW
    )
    assert after.weight == 0.0
    assert after.vector.vector == pytest.approx(before)


def test_wrong_dimension_embeddings_are_ignored(service, store):
    update = service.apply_interaction(
        user_id="u5",
        interaction=LikeInteraction(item_ids=["a"], embeddings=[[1.0, 2.0]]),
        now=NOW,
    )
    assert update.updated is False
    assert store.get_style_vector("u5") is None
    # The interaction itself is still logged
    assert len(store.list_interactions("u5")) == 1


def test_non_finite_embeddings_are_ignored(service):
    update = service.apply_interaction(
        user_id="u6",
        interaction=LikeInteraction(embeddings=[[float("nan"), 0.0, 1.0], [0.0, 4.0, 0.0]]),
        now=NOW,
    )
    assert update.vector.vector == pytest.approx([0.0, 1.0, 0.0])


def test_interactions_are_logged_with_weight(service, store):
    service.apply_interaction(
        user_id="u7", interaction=WearInteraction(item_ids=["a", "b"], embeddings=[[1.0, 0.0, 0.0]]), now=NOW
    )
    entries = store.list_interactions("u7")
    assert len(entries) == 1
    assert entries[0].interaction_type == InteractionType.WEAR
    assert entries[0].weight == 1.0
    assert entries[0].item_ids == ("a", "b")


def test_vibe_tag_correction_moves_preference(service, store):
    update = service.apply_interaction(
        user_id="u8",
        interaction=TagEditInteraction(
            item_ids=["item-1"],
            tag_correction=TagCorrection(field_changed="vibe", old_value="casual", new_value="streetwear"),
        ),
        now=NOW,
    )
    assert update.updated is False
    assert update.tags_changed is True
    assert update.vector.preferred_tags == {"streetwear"}

    corrections = store.list_tag_corrections("u8")
    assert len(corrections) == 1
    assert corrections[0].item_id == "item-1"
    assert corrections[0].original_value == "casual"
    assert corrections[0].corrected_value == "streetwear"


def test_non_preference_tag_correction_is_logged_only(service, store):
    update = service.apply_interaction(
        user_id="u9",
        interaction=TagEditInteraction(
            item_ids=["item-2"],
            tag_correction=TagCorrection(field_changed="color", old_value="navy", new_value="black"),
        ),
        now=NOW,
    )
    assert update.tags_changed is False
    assert store.get_style_vector("u9") is None
    assert len(store.list_tag_corrections("u9")) == 1


def test_vibe_confirm_and_reject_swap_sets(service):
    service.apply_interaction(user_id="u10", interaction=VibeConfirmInteraction(vibe="minimal"), now=NOW)
    rejected = service.apply_interaction(user_id="u10", interaction=VibeRejectInteraction(vibe="minimal"), now=NOW)

    assert rejected.vector.avoided_tags == {"minimal"}
    assert rejected.vector.preferred_tags == set()


def test_missing_user_id_rejected(service):
    with pytest.raises(ValidationError):
        service.apply_interaction(user_id="", interaction=LikeInteraction(), now=NOW)


def test_concurrent_updates_on_memory_store_all_count(service):
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(
            pool.map(
                lambda n: service.apply_interaction(
                    user_id="u30", interaction=LikeInteraction(item_ids=[str(n)], embeddings=[[1.0, 0.0, 0.0]]), now=NOW
                ),
                range(20),
            )
        )

    assert service.get_vector("u30").interaction_count == 20
