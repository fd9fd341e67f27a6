"""
Pytest configuration and fixtures.
"""

import sys
from pathlib import Path
import pytest
import pytest_asyncio

# Add project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from timekeeper.infra.db import DatabaseEngine
from timekeeper.infra.migrations import ensure_schema
from timekeeper.infra.repository import TimeEntryRepository
from timekeeper.services.entry_manager import TimeEntryManager


@pytest.fixture
def db_url(tmp_path):
    """URL of a fresh SQLite file for one test"""
    return f"sqlite+aiosqlite:///{tmp_path / 'timekeeper.db'}"


@pytest_asyncio.fixture
async def empty_engine(db_url):
    """Engine over a database with no tables"""
    engine = DatabaseEngine(db_url)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_engine(empty_engine):
    """Engine over a database at the newest schema version"""
    await ensure_schema(empty_engine)
    yield empty_engine


@pytest.fixture
def repo(db_engine):
    return TimeEntryRepository(db_engine)


@pytest.fixture
def manager(repo):
    return TimeEntryManager(repo)
