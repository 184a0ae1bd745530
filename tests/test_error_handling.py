from unittest.mock import MagicMock

import pytest
from gspread.exceptions import GSpreadException

from src.oil_inventory import (
    FetchError,
    ImportHeaderError,
    InventoryError,
    InventorySession,
    MemoryBackend,
    PersistError,
    SheetsBackend,
    ValidationError,
)


def test_error_hierarchy():
    """Every library failure is catchable as InventoryError at the UI seam."""
    for cls in (ValidationError, ImportHeaderError, PersistError, FetchError):
        assert issubclass(cls, InventoryError)
    # Input errors stay compatible with plain ValueError handlers.
    assert issubclass(ImportHeaderError, ValueError)


def test_sheets_outage_during_load_is_reported():
    """
    Verifies that a Sheets outage surfaces as FetchError instead of a raw
    gspread exception, and that the session keeps its in-memory state.
    """
    client = MagicMock()
    client.open.side_effect = GSpreadException("Simulated API outage")
    session = InventorySession(SheetsBackend(client, "Oil Inventory"), current_year=2024)

    with pytest.raises(FetchError) as exc:
        session.load()

    assert "Simulated API outage" in str(exc.value)
    assert session.sorted_years() == [2024]
    assert len(session.store) == 0
    session.close()


def test_hydrate_survives_corrupt_rows(caplog):
    """Garbage rows from the store are skipped with a warning, never raised."""
    backend = MemoryBackend(
        inventory=[
            {"year": "MMXXIV", "lot": "A", "format": "500ml", "warehouse_id": "roma", "qty": 1},
            {"year": 2024, "lot": "A", "format": "500ml", "warehouse_id": "roma", "qty": 4},
        ]
    )
    session = InventorySession(backend, current_year=2024)
    session.load()

    assert session.grand_total() == 4
    assert "Skipping unreadable inventory row" in caplog.text
    session.close()
