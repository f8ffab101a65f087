"""Pytest configuration and fixtures for kv_schema tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Generator

import pytest
from prometheus_client import CollectorRegistry

from kv_schema.adapters.outbound import InMemoryStorage
from kv_schema.domain.entities import (
    ForeignKeyDefinition,
    IndexDefinition,
    KeyComponent,
    PrimaryKeyDescriptor,
    Schema,
    TableDescriptor,
)
from kv_schema.domain.value_objects import KeyType, TableId
from kv_schema.infrastructure.config import Config, StorageConfig
from kv_schema.infrastructure.container import Container, reset_container
from kv_schema.infrastructure.metrics import MetricsRegistry


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_config(temp_dir: Path) -> Config:
    """Provide a file-backed test configuration in a temporary directory."""
    return Config(
        storage=StorageConfig(
            backend="file",
            data_dir=temp_dir / "kv",
        ),
    )


@pytest.fixture
def container() -> Generator[Container, None, None]:
    """Provide a fresh DI container for each test."""
    reset_container()
    c = Container()
    yield c
    c.clear()


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    """Provide an empty in-memory backend."""
    return InMemoryStorage()


@pytest.fixture
def users_table() -> TableDescriptor:
    """Auto-keyed users with an age index and a unique email index."""
    return TableDescriptor(
        name="users",
        table_id=TableId(1),
        key=PrimaryKeyDescriptor.auto_increment(),
        indexes=(
            IndexDefinition.on("by_age", "age", KeyType.UINT32),
            IndexDefinition.on("by_email", "email", KeyType.STRING, unique=True),
        ),
    )


@pytest.fixture
def orders_table() -> TableDescriptor:
    """Orders keyed by (user, number), referencing users."""
    return TableDescriptor(
        name="orders",
        table_id=TableId(2),
        key=PrimaryKeyDescriptor.fields(
            KeyComponent("user", KeyType.UINT64),
            KeyComponent("number", KeyType.UINT32),
        ),
        indexes=(
            IndexDefinition(
                name="by_status_total",
                fields=("status", "total"),
                key_types=(KeyType.STRING, KeyType.INT64),
            ),
        ),
        foreign_keys=(ForeignKeyDefinition("user", TableId(1), (KeyType.UINT64,)),),
    )


@pytest.fixture
def schema(users_table: TableDescriptor, orders_table: TableDescriptor) -> Schema:
    """Users and orders sharing one key space."""
    return Schema([users_table, orders_table])


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
