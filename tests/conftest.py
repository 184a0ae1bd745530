import pytest

from src.oil_inventory import (
    Coordinate,
    InventorySession,
    MemoryBackend,
    PersistError,
    QuantityStore,
)


class FailingBackend(MemoryBackend):
    """Memory backend whose writes always fail (reads still work)."""

    def upsert_inventory(self, rows, team_id=None):
        raise PersistError("Could not save inventory: simulated outage")

    def insert_movement(self, row, team_id=None):
        raise PersistError("Could not save movement: simulated outage")


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def failing_backend():
    return FailingBackend()


@pytest.fixture
def store(backend):
    """A quantity store over an empty memory backend.

    Yields:
        QuantityStore: Closed (executor drained) after the test.
    """
    s = QuantityStore(backend)
    yield s
    s.close()


@pytest.fixture
def session(backend):
    """A session pinned to 2024 with the default Roma/Neci warehouses."""
    s = InventorySession(backend, current_year=2024)
    yield s
    s.close()


@pytest.fixture
def coord():
    return Coordinate(2024, "A", "500ml", "roma")
