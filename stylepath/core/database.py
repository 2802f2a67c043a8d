"""
Engine, sessions and table definitions for the SQL progression store.

The engine is created lazily from TEST_DATABASE_URL, DATABASE_URL (env) or
settings.DATABASE_URL, in that order. All tables hang off one MetaData so
create_all_tables() builds the whole schema.
"""
import logging
import os
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func

from stylepath.core.config import settings

logger = logging.getLogger("stylepath")

metadata = MetaData()

# Pool sizing for server databases; SQLite ignores these.
POOL_OPTIONS = {
    "pool_size": 10,
    "max_overflow": 20,
    "pool_timeout": 30,
    "pool_recycle": 3600,
    "pool_pre_ping": True,
}

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def get_database_url() -> Optional[str]:
    return os.getenv("TEST_DATABASE_URL") or os.getenv("DATABASE_URL") or settings.DATABASE_URL


def build_engine(url: str) -> Engine:
    if make_url(url).get_backend_name() == "sqlite":
        return create_engine(url)
    return create_engine(url, **POOL_OPTIONS)


def init_engine(database_url: Optional[str] = None) -> Engine:
    """(Re)bind the module engine and session factory. Raises ValueError without a URL."""
    global _engine, _session_factory

    url = database_url or get_database_url()
    if not url:
        raise ValueError("DATABASE_URL is not configured. Set DATABASE_URL in environment or .env file.")

    _engine = build_engine(url)
    _session_factory = sessionmaker(bind=_engine, autoflush=False)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    if _session_factory is None:
        init_engine()
    return _session_factory


@contextmanager
def get_db_session(session_factory=None):
    """
    Yield a session that commits when the block exits cleanly and rolls back
    when it raises. Pass `session_factory` to bypass the module engine.
    """
    session = (session_factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables(engine=None) -> None:
    metadata.create_all(bind=engine or get_engine())


def drop_all_tables(engine=None) -> None:
    """Destructive; tests and local development only."""
    metadata.drop_all(bind=engine or get_engine())


def check_connection() -> bool:
    try:
        with get_engine().connect() as conn:
            conn.exec_driver_sql("SELECT 1")
        return True
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


# One streak row per user
user_streaks = Table(
    'user_streaks',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('current_streak', Integer, nullable=False),
    Column('longest_streak', Integer, nullable=False),
    Column('last_active_date', Date, nullable=True),
    Column('total_days_active', Integer, nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
)

# Stat counters feeding achievement progress
user_stats = Table(
    'user_stats',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('total_items_added', Integer, nullable=False, server_default='0'),
    Column('total_outfits_generated', Integer, nullable=False, server_default='0'),
    Column('total_outfits_worn', Integer, nullable=False, server_default='0'),
    Column('total_outfits_shared', Integer, nullable=False, server_default='0'),
    Column('total_style_points', Integer, nullable=False, server_default='0'),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
)

# Read-only achievement catalog
achievement_definitions = Table(
    'achievement_definitions',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('title', String(200), nullable=False),
    Column('description', Text, nullable=False),
    Column('category', String(50), nullable=False),
    Column('rarity', String(50), nullable=False, server_default='common'),
    Column('target_progress', Integer, nullable=False),
    Column('icon_name', String(100), nullable=False, server_default='star.fill'),
    Column('xp_reward', Integer, nullable=False, server_default='0'),
    Column('sort_order', Integer, nullable=False, server_default='0'),
    # Composite index for the category lookup ordered by sort_order
    Index('idx_achievement_definitions_category_sort', 'category', 'sort_order'),
)

# Per (user, achievement) progress
user_achievements = Table(
    'user_achievements',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('achievement_id', String(100), nullable=False),
    Column('current_progress', Integer, nullable=False, server_default='0'),
    Column('unlocked_at', DateTime(timezone=True), nullable=True),
    Column('seen_at', DateTime(timezone=True), nullable=True),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    # One progress row per (user_id, achievement_id)
    UniqueConstraint('user_id', 'achievement_id', name='uq_user_achievements_user_achievement'),
)

# Style preference vectors
user_style_vectors = Table(
    'user_style_vectors',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('style_vector', JSON, nullable=True),
    Column('interaction_count', Integer, nullable=False, server_default='0'),
    Column('preferred_tags', JSON, nullable=False),
    Column('avoided_tags', JSON, nullable=False),
    Column('last_updated', DateTime(timezone=True), nullable=True),
    # Bumped on every write; updates compare-and-swap on it
    Column('version', Integer, nullable=False, server_default='0'),
)

# Append-only interaction log
user_interactions = Table(
    'user_interactions',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False),
    Column('interaction_type', String(50), nullable=False),
    Column('interaction_weight', Float, nullable=False),
    Column('item_ids', JSON, nullable=False),
    Column('occurred_at', DateTime(timezone=True), nullable=False),
    # Composite index for per-user history in time order
    Index('idx_user_interactions_user_occurred', 'user_id', 'occurred_at'),
)

# Append-only tag corrections
tag_corrections = Table(
    'tag_corrections',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('item_id', String(100), nullable=True),
    Column('field_name', String(100), nullable=False),
    Column('original_value', Text, nullable=True),
    Column('corrected_value', Text, nullable=True),
    Column('occurred_at', DateTime(timezone=True), nullable=False),
)
