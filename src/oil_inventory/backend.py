"""
Backing store collaborators.

The inventory core treats the remote store purely as "fetch all rows in my
scope" / "write these rows". This module provides two implementations of
that contract:

- `SheetsBackend`: A Google Sheets spreadsheet accessed through `gspread`,
  one worksheet per table (inventory, movements, warehouses, memberships).
- `MemoryBackend`: An in-process store used for demo mode and tests.

Authorization is owned by the store's own sharing/policy layer; nothing
here inspects roles.
"""

import datetime
import logging
import threading
import uuid
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Protocol

import requests
from gspread.exceptions import GSpreadException, WorksheetNotFound
from gspread.utils import rowcol_to_a1

from src.oil_inventory.exceptions import FetchError, PersistError
from src.oil_inventory.types import finite_number

if TYPE_CHECKING:
    import gspread

logger = logging.getLogger(__name__)

SCOPES = [
    "https://spreadsheets.google.com/feeds",
    "https://www.googleapis.com/auth/drive",
]

# Worksheet layouts (header row of each tab).
INVENTORY_HEADERS = ["team_id", "year", "lot", "format", "warehouse_id", "qty"]
MOVEMENT_HEADERS = [
    "id",
    "created_at",
    "team_id",
    "date",
    "warehouse_id",
    "operator",
    "kind",
    "year",
    "lot",
    "format",
    "pieces",
    "liters",
    "notes",
]
WAREHOUSE_HEADERS = ["id", "name"]
MEMBERSHIP_HEADERS = ["user_id", "team_id", "team_name", "role"]

# Conflict target for inventory upserts.
INVENTORY_KEY_FIELDS = ("team_id", "year", "lot", "format", "warehouse_id")

# Transport + API failures surfaced by gspread.
BACKEND_ERRORS = (GSpreadException, requests.RequestException)


class InventoryBackend(Protocol):
    """Contract every backing store must satisfy."""

    def fetch_inventory(self, team_id: str | None = None) -> list[dict[str, Any]]: ...

    def upsert_inventory(
        self, rows: list[dict[str, Any]], team_id: str | None = None
    ) -> None: ...

    def fetch_movements(self, team_id: str | None = None) -> list[dict[str, Any]]: ...

    def insert_movement(
        self, row: dict[str, Any], team_id: str | None = None
    ) -> dict[str, Any]: ...

    def fetch_warehouses(self) -> list[dict[str, Any]]: ...

    def insert_warehouses(self, rows: list[dict[str, Any]]) -> None: ...

    def fetch_memberships(self, user_id: str) -> list[dict[str, Any]]: ...


def _scope(team_id: str | None) -> str:
    return team_id or ""


def inventory_key(row: dict[str, Any]) -> tuple[str, ...]:
    """Composite conflict key of an inventory row (team id included)."""
    return tuple(str(row.get(f) or "") for f in INVENTORY_KEY_FIELDS)


def _sort_year(row: dict[str, Any]) -> float:
    # Unreadable years sort last; hydration skips those rows.
    return finite_number(str(row.get("year") or "")) or 0


def _year_desc(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(rows, key=_sort_year, reverse=True)


def _stamp_movement(row: dict[str, Any], team_id: str | None) -> dict[str, Any]:
    """Assigns store-side identity and creation time to a new movement."""
    stamped = dict(row)
    stamped["id"] = stamped.get("id") or uuid.uuid4().hex
    stamped["created_at"] = datetime.datetime.now(datetime.timezone.utc).isoformat()
    stamped["team_id"] = _scope(team_id)
    return stamped


class MemoryBackend:
    """
    In-process backing store.

    Writes are guarded by a lock because persists run on worker threads.
    """

    def __init__(
        self,
        inventory: Iterable[dict[str, Any]] = (),
        movements: Iterable[dict[str, Any]] = (),
        warehouses: Iterable[dict[str, Any]] = (),
        memberships: Iterable[dict[str, Any]] = (),
    ):
        self._lock = threading.Lock()
        self.inventory: dict[tuple[str, ...], dict[str, Any]] = {}
        for row in inventory:
            self.inventory[inventory_key(row)] = dict(row)
        self.movements: list[dict[str, Any]] = [dict(m) for m in movements]
        self.warehouses: list[dict[str, Any]] = [dict(w) for w in warehouses]
        self.memberships: list[dict[str, Any]] = [dict(m) for m in memberships]

    def fetch_inventory(self, team_id: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                dict(r)
                for r in self.inventory.values()
                if _scope(r.get("team_id")) == _scope(team_id)
            ]
        return _year_desc(rows)

    def upsert_inventory(
        self, rows: list[dict[str, Any]], team_id: str | None = None
    ) -> None:
        with self._lock:
            for row in rows:
                scoped = {**row, "team_id": _scope(team_id)}
                self.inventory[inventory_key(scoped)] = scoped

    def fetch_movements(self, team_id: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                dict(m)
                for m in reversed(self.movements)
                if _scope(m.get("team_id")) == _scope(team_id)
            ]
        # Stable sort: same-timestamp inserts stay newest first.
        return sorted(rows, key=lambda m: m.get("created_at") or "", reverse=True)

    def insert_movement(
        self, row: dict[str, Any], team_id: str | None = None
    ) -> dict[str, Any]:
        stamped = _stamp_movement(row, team_id)
        with self._lock:
            self.movements.append(stamped)
        return dict(stamped)

    def fetch_warehouses(self) -> list[dict[str, Any]]:
        with self._lock:
            return sorted((dict(w) for w in self.warehouses), key=lambda w: w["name"])

    def insert_warehouses(self, rows: list[dict[str, Any]]) -> None:
        with self._lock:
            self.warehouses.extend(dict(r) for r in rows)

    def fetch_memberships(self, user_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(m) for m in self.memberships if m.get("user_id") == user_id]


class SheetsBackend:
    """
    Google Sheets backing store.

    Each table is a worksheet whose first row holds the headers listed at the
    top of this module. Upserts locate existing rows by composite key and
    rewrite them in one `batch_update`; unseen keys are appended.
    """

    def __init__(self, client: "gspread.Client", spreadsheet_name: str):
        self._client = client
        self._spreadsheet_name = spreadsheet_name
        self._spreadsheet: Any = None

    def _worksheet(self, title: str, headers: list[str]) -> Any:
        if self._spreadsheet is None:
            self._spreadsheet = self._client.open(self._spreadsheet_name)
        try:
            return self._spreadsheet.worksheet(title)
        except WorksheetNotFound:
            logger.info(f"Creating missing worksheet '{title}'")
            ws = self._spreadsheet.add_worksheet(
                title=title, rows=100, cols=len(headers)
            )
            ws.append_row(headers)
            return ws

    def _records(self, title: str, headers: list[str]) -> list[dict[str, Any]]:
        try:
            # Raw text: number-like slugs such as "0123" must not be coerced.
            return self._worksheet(title, headers).get_all_records(
                numericise_ignore=["all"]
            )
        except BACKEND_ERRORS as e:
            logger.error(f"Fetch from '{title}' failed: {e}")
            raise FetchError(f"Could not load {title}: {e}") from e

    def fetch_inventory(self, team_id: str | None = None) -> list[dict[str, Any]]:
        records = self._records("inventory", INVENTORY_HEADERS)
        rows = [
            r for r in records if _scope(str(r.get("team_id") or "")) == _scope(team_id)
        ]
        return _year_desc(rows)

    def upsert_inventory(
        self, rows: list[dict[str, Any]], team_id: str | None = None
    ) -> None:
        if not rows:
            return
        try:
            ws = self._worksheet("inventory", INVENTORY_HEADERS)
            existing = ws.get_all_records(numericise_ignore=["all"])

            # Sheet row numbers: header is row 1, first record row 2.
            positions = {inventory_key(r): i + 2 for i, r in enumerate(existing)}

            # Later rows in the same batch win (last write wins).
            pending: dict[tuple[str, ...], list[Any]] = {}
            for row in rows:
                scoped = {**row, "team_id": _scope(team_id)}
                pending[inventory_key(scoped)] = [
                    scoped.get(h, "") for h in INVENTORY_HEADERS
                ]

            updates = []
            appends = []
            for key, values in pending.items():
                if key in positions:
                    n = positions[key]
                    start = rowcol_to_a1(n, 1)
                    end = rowcol_to_a1(n, len(INVENTORY_HEADERS))
                    updates.append({"range": f"{start}:{end}", "values": [values]})
                else:
                    appends.append(values)

            if updates:
                ws.batch_update(updates)
            if appends:
                ws.append_rows(appends, value_input_option="RAW")
        except BACKEND_ERRORS as e:
            logger.error(f"Upsert of {len(rows)} inventory rows failed: {e}")
            raise PersistError(f"Could not save inventory: {e}") from e

    def fetch_movements(self, team_id: str | None = None) -> list[dict[str, Any]]:
        records = self._records("movements", MOVEMENT_HEADERS)
        rows = [
            r
            for r in reversed(records)
            if _scope(str(r.get("team_id") or "")) == _scope(team_id)
        ]
        return sorted(rows, key=lambda m: str(m.get("created_at") or ""), reverse=True)

    def insert_movement(
        self, row: dict[str, Any], team_id: str | None = None
    ) -> dict[str, Any]:
        stamped = _stamp_movement(row, team_id)
        try:
            ws = self._worksheet("movements", MOVEMENT_HEADERS)
            ws.append_row(
                [stamped.get(h, "") for h in MOVEMENT_HEADERS],
                value_input_option="RAW",
            )
        except BACKEND_ERRORS as e:
            logger.error(f"Movement insert failed: {e}")
            raise PersistError(f"Could not save movement: {e}") from e
        return stamped

    def fetch_warehouses(self) -> list[dict[str, Any]]:
        records = self._records("warehouses", WAREHOUSE_HEADERS)
        return sorted(
            ({"id": str(r["id"]), "name": str(r["name"])} for r in records if r.get("id")),
            key=lambda w: w["name"],
        )

    def insert_warehouses(self, rows: list[dict[str, Any]]) -> None:
        try:
            ws = self._worksheet("warehouses", WAREHOUSE_HEADERS)
            ws.append_rows(
                [[r["id"], r["name"]] for r in rows], value_input_option="RAW"
            )
        except BACKEND_ERRORS as e:
            logger.error(f"Warehouse insert failed: {e}")
            raise PersistError(f"Could not save warehouses: {e}") from e

    def fetch_memberships(self, user_id: str) -> list[dict[str, Any]]:
        records = self._records("memberships", MEMBERSHIP_HEADERS)
        return [r for r in records if str(r.get("user_id")) == user_id]


def authorize_client(
    credentials_info: dict[str, Any] | None = None,
    credentials_file: str | None = None,
) -> "gspread.Client":
    """
    Builds an authenticated gspread client from a service account.

    Args:
        credentials_info: Parsed service-account JSON (e.g., Streamlit secrets).
        credentials_file: Path to a service-account JSON file (CLI usage).

    Returns:
        gspread.Client: An authenticated Google Sheets client.

    Raises:
        ValueError: If neither credential source is provided.
    """
    import gspread
    from google.oauth2.service_account import Credentials

    if credentials_info is not None:
        creds = Credentials.from_service_account_info(credentials_info, scopes=SCOPES)
    elif credentials_file:
        creds = Credentials.from_service_account_file(credentials_file, scopes=SCOPES)
    else:
        raise ValueError("No service account credentials configured.")
    return gspread.authorize(creds)
