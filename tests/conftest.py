"""Pytest configuration and fixtures for friends_db tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Awaitable, Callable, Generator

import pytest
from prometheus_client import CollectorRegistry

from friends_db.adapters.outbound import SQLiteRecordEngine
from friends_db.application import (
    ConnectionManager,
    FriendStore,
    UpgradeHandler,
    upgrade_friends_schema,
)
from friends_db.infrastructure.config import Config, StorageConfig
from friends_db.infrastructure.metrics import MetricsRegistry

TEST_DATABASE = "TestDatabase"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def data_dir(temp_dir: Path) -> Path:
    return temp_dir / "data"


@pytest.fixture
def test_config(data_dir: Path) -> Config:
    """Provide a test configuration with a temporary data directory."""
    return Config(
        storage=StorageConfig(
            data_dir=data_dir,
            database_name=TEST_DATABASE,
            journal_mode="delete",
            synchronous="off",  # Faster for tests
        ),
    )


@pytest.fixture
def collector_registry() -> CollectorRegistry:
    """Provide a separate Prometheus registry to avoid conflicts between tests."""
    return CollectorRegistry(auto_describe=True)


@pytest.fixture
def metrics_registry(collector_registry: CollectorRegistry) -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    return MetricsRegistry(registry=collector_registry)


@pytest.fixture
def engines() -> Generator[list[SQLiteRecordEngine], None, None]:
    """Track every engine a test creates and close them afterwards."""
    created: list[SQLiteRecordEngine] = []
    yield created
    for engine in created:
        engine.close()


@pytest.fixture
def engine_factory(
    data_dir: Path, engines: list[SQLiteRecordEngine]
) -> Callable[[str], SQLiteRecordEngine]:
    """Build SQLite engines inside the test data directory."""

    def factory(name: str) -> SQLiteRecordEngine:
        engine = SQLiteRecordEngine.for_database(
            data_dir, name, journal_mode="delete", synchronous="off"
        )
        engines.append(engine)
        return engine

    return factory


@pytest.fixture
def make_manager(
    engine_factory: Callable[[str], SQLiteRecordEngine],
    metrics_registry: MetricsRegistry,
) -> Callable[..., ConnectionManager]:
    """Build connection managers sharing the test data directory.

    Each manager stands for a separate process opening the same files.
    """

    def make(on_upgrade_needed: UpgradeHandler | None = upgrade_friends_schema) -> ConnectionManager:
        return ConnectionManager(
            engine_factory,
            on_upgrade_needed=on_upgrade_needed,
            metrics=metrics_registry,
        )

    return make


@pytest.fixture
def open_store(
    make_manager: Callable[..., ConnectionManager],
) -> Callable[..., Awaitable[FriendStore]]:
    """Open the test database and return a FriendStore on it.

    Must be awaited inside a running event loop.
    """

    async def open_(version: int = 1, name: str = TEST_DATABASE) -> FriendStore:
        manager = make_manager()
        await manager.open(name, version)
        return FriendStore(manager)

    return open_


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
