from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from sqlalchemy import insert, select
from sqlalchemy.exc import SQLAlchemyError

from stylepath.core.database import achievement_definitions, get_db_session, get_session_factory
from stylepath.core.errors import StoreError
from stylepath.models.achievement import AchievementCategory, AchievementDefinition, AchievementRarity


def _a(id, title, description, category, target, rarity, icon, xp, order) -> AchievementDefinition:
    return AchievementDefinition(
        id=id,
        title=title,
        description=description,
        category=category,
        target_progress=target,
        rarity=rarity,
        icon_name=icon,
        xp_reward=xp,
        sort_order=order,
    )


C = AchievementCategory
R = AchievementRarity

# Seed catalog shipped with the engine, ordered by category then sort_order
DEFAULT_ACHIEVEMENTS: List[AchievementDefinition] = [
    # Wardrobe
    _a("first_item", "First Piece", "Add your first item to the closet.", C.WARDROBE, 1, R.COMMON, "tshirt.fill", 10, 10),
    _a("closet_starter", "Closet Starter", "Add 10 items.", C.WARDROBE, 10, R.UNCOMMON, "tshirt.fill", 25, 20),
    _a("closet_builder", "Closet Builder", "Add 25 items.", C.WARDROBE, 25, R.RARE, "hanger", 50, 30),
    _a("closet_curator", "Curator", "Add 50 items.", C.WARDROBE, 50, R.EPIC, "hanger", 100, 40),
    # Outfits
    _a("first_outfit", "First Look", "Generate your first outfit.", C.OUTFITS, 1, R.COMMON, "person.fill.viewfinder", 10, 10),
    _a("outfit_explorer", "Look Explorer", "Generate 10 outfits.", C.OUTFITS, 10, R.UNCOMMON, "person.fill.viewfinder", 25, 20),
    _a("outfit_architect", "Look Architect", "Generate 50 outfits.", C.OUTFITS, 50, R.RARE, "sparkles", 75, 30),
    # Worn
    _a("first_wear", "Out the Door", "Wear your first outfit.", C.WORN, 1, R.COMMON, "checkmark.circle.fill", 15, 10),
    _a("week_of_looks", "Week of Looks", "Wear 7 outfits.", C.WORN, 7, R.UNCOMMON, "checkmark.circle.fill", 35, 20),
    _a("thirty_looks", "Thirty Looks", "Wear 30 outfits.", C.WORN, 30, R.EPIC, "checkmark.seal.fill", 100, 30),
    # Streaks
    _a("streak_3", "Warming Up", "Keep a 3-day streak.", C.STREAKS, 3, R.COMMON, "flame", 15, 10),
    _a("streak_7", "Week Warrior", "Keep a 7-day streak.", C.STREAKS, 7, R.UNCOMMON, "flame", 30, 20),
    _a("streak_14", "Fortnight Fighter", "Keep a 14-day streak.", C.STREAKS, 14, R.RARE, "flame.fill", 50, 30),
    _a("streak_30", "Month Master", "Keep a 30-day streak.", C.STREAKS, 30, R.EPIC, "star", 100, 40),
    _a("streak_90", "Fashion Expert", "Keep a 90-day streak.", C.STREAKS, 90, R.EPIC, "crown", 200, 50),
    _a("streak_365", "Style Legend", "Keep a 365-day streak.", C.STREAKS, 365, R.LEGENDARY, "crown.fill", 500, 60),
    # Social
    _a("first_share", "Show and Tell", "Share your first outfit.", C.SOCIAL, 1, R.COMMON, "person.2.fill", 10, 10),
    _a("trendsetter", "Trendsetter", "Share 10 outfits.", C.SOCIAL, 10, R.RARE, "person.2.fill", 50, 20),
]


class InMemoryAchievementCatalog:
    """Read-only catalog held in memory."""

    def __init__(self, definitions: Optional[Iterable[AchievementDefinition]] = None):
        source = DEFAULT_ACHIEVEMENTS if definitions is None else definitions
        self._by_id: Dict[str, AchievementDefinition] = {}
        for definition in source:
            if definition.id in self._by_id:
                raise ValueError(f"Duplicate achievement id: {definition.id}")
            self._by_id[definition.id] = definition

    def by_category(self, category: AchievementCategory) -> List[AchievementDefinition]:
        matching = [d for d in self._by_id.values() if d.category == category]
        return sorted(matching, key=lambda d: (d.sort_order, d.id))

    def get(self, achievement_id: str) -> Optional[AchievementDefinition]:
        return self._by_id.get(achievement_id)

    def all(self) -> List[AchievementDefinition]:
        return sorted(self._by_id.values(), key=lambda d: (d.category.value, d.sort_order, d.id))


class SqlAchievementCatalog:
    """Catalog read from the achievement_definitions table."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_session_factory()

    @staticmethod
    def _from_row(row) -> AchievementDefinition:
        return AchievementDefinition(
            id=row.id,
            title=row.title,
            description=row.description,
            category=AchievementCategory(row.category),
            target_progress=row.target_progress,
            rarity=AchievementRarity(row.rarity),
            icon_name=row.icon_name,
            xp_reward=row.xp_reward,
            sort_order=row.sort_order,
        )

    def _query(self, query) -> List[AchievementDefinition]:
        try:
            with get_db_session(self._session_factory) as session:
                return [self._from_row(row) for row in session.execute(query).all()]
        except SQLAlchemyError as exc:
            raise StoreError("Failed to fetch achievement definitions", operation="read catalog") from exc

    def by_category(self, category: AchievementCategory) -> List[AchievementDefinition]:
        return self._query(
            select(achievement_definitions)
            .where(achievement_definitions.c.category == category.value)
            .order_by(achievement_definitions.c.sort_order, achievement_definitions.c.id)
        )

    def get(self, achievement_id: str) -> Optional[AchievementDefinition]:
        found = self._query(
            select(achievement_definitions).where(achievement_definitions.c.id == achievement_id)
        )
        return found[0] if found else None

    def all(self) -> List[AchievementDefinition]:
        return self._query(
            select(achievement_definitions).order_by(
                achievement_definitions.c.category,
                achievement_definitions.c.sort_order,
                achievement_definitions.c.id,
            )
        )


def seed_catalog(definitions: Optional[Iterable[AchievementDefinition]] = None, session_factory=None) -> int:
    """
    Insert catalog rows that are not present yet. Idempotent; existing rows
    are never modified. Returns the number of rows inserted.
    """
    source = list(DEFAULT_ACHIEVEMENTS if definitions is None else definitions)
    inserted = 0
    with get_db_session(session_factory) as session:
        existing = {row.id for row in session.execute(select(achievement_definitions.c.id)).all()}
        for definition in source:
            if definition.id in existing:
                continue
            session.execute(
                insert(achievement_definitions).values(
                    id=definition.id,
                    title=definition.title,
                    description=definition.description,
                    category=definition.category.value,
                    rarity=definition.rarity.value,
                    target_progress=definition.target_progress,
                    icon_name=definition.icon_name,
                    xp_reward=definition.xp_reward,
                    sort_order=definition.sort_order,
                )
            )
            inserted += 1
    return inserted
