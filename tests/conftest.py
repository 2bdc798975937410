"""Shared pytest fixtures for the memory engine tests"""

import sys
from pathlib import Path

import pytest

# Add the project root and src directory to Python path so tests can import properly
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(project_root / "src"))

from kalito_memory.services.buffer import RollingBuffer  # noqa: E402
from kalito_memory.services.cache import ConversationCache  # noqa: E402
from kalito_memory.services.pins import PinStore  # noqa: E402
from kalito_memory.services.sqlite_store import SQLiteRecordStore  # noqa: E402
from kalito_memory.services.store import InMemoryRecordStore  # noqa: E402

from tests.fixtures import create_domain_records  # noqa: E402


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def sqlite_store(tmp_path):
    db = SQLiteRecordStore(tmp_path / "memory.db")
    yield db
    db.close()


@pytest.fixture
def cache():
    return ConversationCache(ttl_seconds=30.0)


@pytest.fixture
def buffer(store, cache):
    return RollingBuffer(store, cache, size=8)


@pytest.fixture
def pin_store(store):
    return PinStore(store)


@pytest.fixture
def domain():
    return create_domain_records()
