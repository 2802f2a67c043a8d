# stylepath/conftest.py
import sys
from pathlib import Path

import pytest

# Add repo root to PYTHONPATH
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture(autouse=True)
def no_database_env(monkeypatch):
    """
    Keep every test on the in-memory store unless it builds its own engine.
    """
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("TEST_DATABASE_URL", raising=False)
    yield


@pytest.fixture
def store():
    from stylepath.features.progression.store import InMemoryProgressionStore

    return InMemoryProgressionStore()


@pytest.fixture
def catalog():
    from stylepath.features.achievements.catalog import InMemoryAchievementCatalog

    return InMemoryAchievementCatalog()


@pytest.fixture
def orchestrator(store, catalog):
    from stylepath.features.progression.notifier import UnlockNotifier
    from stylepath.features.progression.orchestrator import ProgressionOrchestrator

    # Small vectors keep the arithmetic readable in assertions
    return ProgressionOrchestrator(store, catalog, notifier=UnlockNotifier(url=""), style_dim=4, style_alpha=0.95)


@pytest.fixture
def client(orchestrator):
    from fastapi.testclient import TestClient

    from stylepath.main import create_app

    return TestClient(create_app(orchestrator=orchestrator))
