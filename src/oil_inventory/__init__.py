"""
Oil Inventory Library (Package Entry Point).

Exposes the aggregation core (key codec, quantity store, grid builder,
totals, CSV codec), the backing-store adapters, and the session controller
used by the Streamlit app and the CLI.
"""

from .backend import InventoryBackend, MemoryBackend, SheetsBackend, authorize_client
from .config import Settings, load_settings
from .csv_codec import (
    csv_escape,
    parse_snapshot_csv,
    serialize_rows,
    serialize_snapshot,
    to_download_bytes,
)
from .exceptions import (
    FetchError,
    ImportHeaderError,
    InventoryError,
    PersistError,
    ValidationError,
)
from .grid import StockGrid, build_grid, build_stock_rows, iter_cells
from .keys import decode_key, encode_key, slugify
from .manager import InventorySession
from .store import MovementLedger, QuantityStore
from .teams import load_memberships, role_label, select_team
from .totals import grand_total, grid_total, liters_for, per_warehouse_total
from .types import (
    Coordinate,
    Format,
    GridFilters,
    GridRow,
    ImportResult,
    Lot,
    Movement,
    MovementKind,
    StockRow,
    Warehouse,
)

__all__ = [
    "Coordinate",
    "FetchError",
    "Format",
    "GridFilters",
    "GridRow",
    "ImportHeaderError",
    "ImportResult",
    "InventoryBackend",
    "InventoryError",
    "InventorySession",
    "Lot",
    "MemoryBackend",
    "Movement",
    "MovementKind",
    "MovementLedger",
    "PersistError",
    "QuantityStore",
    "Settings",
    "SheetsBackend",
    "StockGrid",
    "StockRow",
    "ValidationError",
    "Warehouse",
    "authorize_client",
    "build_grid",
    "build_stock_rows",
    "csv_escape",
    "decode_key",
    "encode_key",
    "grand_total",
    "grid_total",
    "iter_cells",
    "liters_for",
    "load_memberships",
    "load_settings",
    "parse_snapshot_csv",
    "per_warehouse_total",
    "role_label",
    "select_team",
    "serialize_rows",
    "serialize_snapshot",
    "slugify",
    "to_download_bytes",
]
