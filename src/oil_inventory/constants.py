"""
Static domain tables for the Oil Inventory engine.

This module serves as the central repository for:
1.  **Catalog:** The closed sets of production lots and packaging formats,
    in the order every table and export enumerates them.
2.  **Physics:** Unit volumes used to convert piece counts into liters.
3.  **Bounds:** Accepted year range and the warehouse slug alphabet.
4.  **I/O Contracts:** CSV headers, export filenames and MIME types.
"""

import re

# --- Catalog ---

# Declaration order is a display contract (grid rows, CSV exports).
LOTS = ("A", "B", "C")
FORMATS = ("500ml", "250ml", "5L")

# Milliliters per piece for each packaging format.
UNIT_VOLUME_ML = {
    "500ml": 500,
    "250ml": 250,
    "5L": 5000,
}

# --- Bounds ---

MIN_YEAR = 2000
MAX_YEAR = 2100

# Warehouse ids never contain the key delimiter.
KEY_DELIMITER = "_"
SLUG_RE = re.compile(r"^[a-z0-9-]+$")
SLUG_INVALID_RUN_RE = re.compile(r"[^a-z0-9]+")

# Shipped with a fresh install; user-managed afterwards.
DEFAULT_WAREHOUSES = (
    {"id": "roma", "name": "Roma"},
    {"id": "neci", "name": "Neci"},
)

# Sentinel for "no filter" in year/lot/format/warehouse selectors.
ALL = "all"

# --- CSV Contracts ---

SNAPSHOT_COLUMNS = ("year", "lot", "format", "warehouse", "qty")
TEAM_COLUMN = "team_id"

CSV_MIME = "text/csv;charset=utf-8"
SNAPSHOT_EXPORT_FILENAME = "oil-inventory.csv"
STOCK_EXPORT_FILENAME = "stock.csv"
STOCK_FILTERED_EXPORT_FILENAME = "stock_filtered.csv"

# --- Movement History ---

HISTORY_LIMIT = 200

# --- Team Roles (display labels only, never enforced here) ---

ROLE_LABELS = {
    "owner": "Owner",
    "editor": "Editor",
    "viewer": "Viewer",
}
