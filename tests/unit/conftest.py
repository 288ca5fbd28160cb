"""
Shared fixtures for memory pipeline unit tests.
"""
import pytest

from adaptive_memory.config.settings import MemoryConfig
from adaptive_memory.generation.generator import MockGenerator
from adaptive_memory.memory.manager import MemoryManager
from adaptive_memory.memory.store import InMemoryStore
from adaptive_memory.persist.sqlite_store import SQLiteMemoryStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Each storage backend in turn."""
    if request.param == "memory":
        backend = InMemoryStore()
    else:
        backend = SQLiteMemoryStore(tmp_path / "memory.db")
    yield backend
    backend.close()


@pytest.fixture
def sqlite_store(tmp_path):
    """Create a temporary SQLite store."""
    backend = SQLiteMemoryStore(tmp_path / "memory.db")
    yield backend
    backend.close()


@pytest.fixture
def mock_generator():
    """Generator that replies with an empty operation list by default."""
    return MockGenerator(default="[]")


@pytest.fixture
def sync_config():
    """Inline processing with summaries on and a small threshold."""
    return MemoryConfig(
        async_processing=False,
        enable_session_summary=True,
        summary_trigger={"strategy": "by_messages", "message_threshold": 4},
    )


@pytest.fixture
def make_manager(clock):
    """Factory for managers that are closed after the test."""
    created = []

    def factory(generator=None, storage=None, config=None):
        manager = MemoryManager(
            generator or MockGenerator(default="[]"),
            storage or InMemoryStore(),
            config=config or MemoryConfig(async_processing=False),
            clock=clock,
        )
        created.append(manager)
        return manager

    yield factory

    for manager in created:
        manager.close()
