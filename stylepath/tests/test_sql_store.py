"""
SQL store behaviour on an in-memory SQLite engine.

Runs the same services the in-memory store backs, so both implementations
are held to one contract.
"""

import math
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stylepath.core.database import create_all_tables, drop_all_tables
from stylepath.core.errors import StoreError
from stylepath.features.achievements.catalog import InMemoryAchievementCatalog, SqlAchievementCatalog, seed_catalog
from stylepath.features.achievements.service import AchievementService
from stylepath.features.progression.notifier import UnlockNotifier
from stylepath.features.progression.orchestrator import ProgressionOrchestrator
from stylepath.features.progression.store_sql import SqlProgressionStore
from stylepath.features.style.service import StyleVectorService
from stylepath.models.achievement import AchievementCategory, AchievementDefinition
from stylepath.models.stats import StatField
from stylepath.models.streak import StreakRecord
from stylepath.models.style import (
    InteractionLogEntry,
    InteractionType,
    VibeConfirmInteraction,
    WearInteraction,
)

NOW = datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_all_tables(engine)
    yield sessionmaker(bind=engine, autoflush=False)
    drop_all_tables(engine)
    engine.dispose()


@pytest.fixture
def sql_store(session_factory):
    return SqlProgressionStore(session_factory)


def test_streak_upsert_roundtrip(sql_store):
    assert sql_store.get_streak("u1") is None

    sql_store.save_streak(StreakRecord("u1", 1, 1, date(2024, 1, 10), 1))
    sql_store.save_streak(StreakRecord("u1", 2, 2, date(2024, 1, 11), 2))

    record = sql_store.get_streak("u1")
    assert record.current_streak == 2
    assert record.last_active_date == date(2024, 1, 11)
    assert record.total_days_active == 2


def test_stat_increments_are_atomic_per_column(sql_store):
    sql_store.increment_stat("u2", StatField.ITEMS_ADDED)
    sql_store.increment_stat("u2", StatField.ITEMS_ADDED)
    stats = sql_store.add_style_points("u2", 25)

    assert stats.total_items_added == 2
    assert stats.total_outfits_worn == 0
    assert stats.total_style_points == 25


def test_progress_keeps_unlock_and_seen_timestamps(sql_store):
    assert sql_store.record_progress("u3", "first_item", 1, unlock=True, now=NOW) is True
    assert sql_store.mark_progress_seen("u3", "first_item", NOW + timedelta(hours=1)) is True
    assert sql_store.mark_progress_seen("u3", "first_item", NOW + timedelta(hours=2)) is False

    # A later, lower value overwrites progress but never the timestamps
    assert sql_store.record_progress("u3", "first_item", 0, unlock=False, now=NOW + timedelta(days=1)) is False

    stored = sql_store.list_progress("u3")["first_item"]
    assert stored.current_progress == 0
    assert stored.unlocked_at == NOW
    assert stored.seen_at == NOW + timedelta(hours=1)
    assert stored.is_unlocked is True


def test_locked_progress_cannot_be_marked_seen(sql_store):
    sql_store.record_progress("u3b", "first_item", 0, unlock=False, now=NOW)
    assert sql_store.mark_progress_seen("u3b", "first_item", NOW) is False
    assert sql_store.get_progress("u3b", "first_item").seen_at is None


class InterleavedProgressStore(SqlProgressionStore):
    """Lets a second same-user evaluation commit right before the first one writes."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.concurrent = None
        self.concurrent_unlocked = None

    def record_progress(self, user_id, achievement_id, progress_value, *, unlock, now):
        if self.concurrent is not None:
            run, self.concurrent = self.concurrent, None
            self.concurrent_unlocked = run()
        return super().record_progress(user_id, achievement_id, progress_value, unlock=unlock, now=now)


def _wardrobe_service(store):
    catalog = InMemoryAchievementCatalog(
        [AchievementDefinition(id="w5", title="W5", category=AchievementCategory.WARDROBE, target_progress=5)]
    )
    return AchievementService(store, catalog)


def test_lower_value_written_after_a_concurrent_unlock_keeps_it(session_factory):
    store = InterleavedProgressStore(session_factory)
    service = _wardrobe_service(store)
    store.concurrent = lambda: service.evaluate(
        user_id="u8", category=AchievementCategory.WARDROBE, progress_value=5, now=NOW
    )

    stale = service.evaluate(
        user_id="u8", category=AchievementCategory.WARDROBE, progress_value=4, now=NOW + timedelta(seconds=1)
    )

    assert [a.id for a in store.concurrent_unlocked] == ["w5"]
    assert stale == []
    assert store.get_progress("u8", "w5").unlocked_at == NOW


def test_two_concurrent_crossings_unlock_once(session_factory):
    store = InterleavedProgressStore(session_factory)
    service = _wardrobe_service(store)
    store.concurrent = lambda: service.evaluate(
        user_id="u9", category=AchievementCategory.WARDROBE, progress_value=5, now=NOW
    )

    second = service.evaluate(
        user_id="u9", category=AchievementCategory.WARDROBE, progress_value=5, now=NOW + timedelta(seconds=1)
    )

    assert [a.id for a in store.concurrent_unlocked] == ["w5"]
    assert second == []
    assert store.get_progress("u9", "w5").unlocked_at == NOW


def test_style_vector_roundtrip(sql_store):
    def seed(state):
        state.vector = [0.6, 0.8]
        state.interaction_count = 3
        state.preferred_tags.add("boho")
        state.last_updated = NOW
        return True

    sql_store.update_style_vector("u4", seed)
    vector = sql_store.get_style_vector("u4")
    assert vector.vector == pytest.approx([0.6, 0.8])
    assert vector.interaction_count == 3
    assert vector.preferred_tags == {"boho"}
    assert vector.avoided_tags == set()
    assert vector.last_updated == NOW


def test_style_update_without_changes_writes_nothing(sql_store):
    state = sql_store.update_style_vector("u4b", lambda _: False)
    assert state.interaction_count == 0
    assert sql_store.get_style_vector("u4b") is None


class InterleavedVectorStore(SqlProgressionStore):
    """Lets a second same-user style update commit between the first one's read and write."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.concurrent = None

    def _load_style_vector(self, user_id):
        loaded = super()._load_style_vector(user_id)
        if self.concurrent is not None:
            run, self.concurrent = self.concurrent, None
            run()
        return loaded


@pytest.mark.parametrize("seeded", [False, True], ids=["first-insert", "existing-row"])
def test_concurrent_style_updates_both_land(session_factory, seeded):
    store = InterleavedVectorStore(session_factory)
    service = StyleVectorService(store, dim=2, alpha=0.5)
    if seeded:
        service.apply_interaction(
            user_id="u10", interaction=VibeConfirmInteraction(vibe="boho"), now=NOW
        )
    store.concurrent = lambda: service.apply_interaction(
        user_id="u10", interaction=WearInteraction(item_ids=["a"], embeddings=[[1.0, 0.0]]), now=NOW
    )

    service.apply_interaction(
        user_id="u10", interaction=WearInteraction(item_ids=["b"], embeddings=[[0.0, 1.0]]), now=NOW
    )

    vector = store.get_style_vector("u10")
    assert vector.interaction_count == 2
    # [1, 0] first, then 0.5 * [1, 0] + 0.5 * [0, 1] renormalised
    assert vector.vector == pytest.approx([math.sqrt(0.5), math.sqrt(0.5)])
    assert vector.preferred_tags == ({"boho"} if seeded else set())
    wears = [e for e in store.list_interactions("u10") if e.interaction_type == InteractionType.WEAR]
    assert [e.item_ids for e in wears] == [("a",), ("b",)]


def test_interaction_log_is_append_only_in_time_order(sql_store):
    later = InteractionLogEntry("u5", InteractionType.WEAR, 1.0, ("b",), NOW + timedelta(minutes=5))
    earlier = InteractionLogEntry("u5", InteractionType.LIKE, 0.5, ("a",), NOW)
    sql_store.append_interaction(later)
    sql_store.append_interaction(earlier)

    entries = sql_store.list_interactions("u5")
    assert [e.interaction_type for e in entries] == [InteractionType.LIKE, InteractionType.WEAR]
    assert entries[1].item_ids == ("b",)


def test_seed_catalog_is_idempotent(session_factory):
    first = seed_catalog(session_factory=session_factory)
    assert first > 0
    assert seed_catalog(session_factory=session_factory) == 0

    catalog = SqlAchievementCatalog(session_factory)
    streaks = catalog.by_category(AchievementCategory.STREAKS)
    assert [d.id for d in streaks][:2] == ["streak_3", "streak_7"]
    assert catalog.get("first_item").target_progress == 1
    assert catalog.get("missing") is None


def test_orchestrator_runs_on_sql_store(session_factory, sql_store):
    seed_catalog(session_factory=session_factory)
    orchestrator = ProgressionOrchestrator(
        sql_store, SqlAchievementCatalog(session_factory), notifier=UnlockNotifier(url=""), style_dim=2
    )

    for offset in range(3):
        result = orchestrator.record_activity(user_id="u6", now=NOW + timedelta(days=offset))
    assert [a.id for a in result.newly_unlocked] == ["streak_3"]

    interaction = orchestrator.record_interaction(user_id="u6", action_type="add_item", now=NOW)
    assert interaction.stats.total_style_points == 15 + 10


def test_sqlalchemy_errors_become_store_errors(session_factory, sql_store):
    drop_all_tables(session_factory.kw["bind"])
    with pytest.raises(StoreError):
        sql_store.get_streak("u7")
