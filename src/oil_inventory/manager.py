"""
Session controller for the inventory views.

This module acts as the "Controller" of the library. An `InventorySession`
is the single explicit context object threaded through every operation
(one per Streamlit session or CLI run). It handles:
- Hydrating the quantity store and movement ledger from the backend.
- Reacting to identity and team transitions.
- Year-set and warehouse management.
- Building the derived grid, totals and stock tables.
- CSV import/export.
"""

import datetime
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from src.oil_inventory import constants as C
from src.oil_inventory.backend import InventoryBackend
from src.oil_inventory.csv_codec import (
    parse_snapshot_csv,
    serialize_rows,
    serialize_snapshot,
)
from src.oil_inventory.exceptions import PersistError, ValidationError
from src.oil_inventory.grid import StockGrid, build_grid, build_stock_rows
from src.oil_inventory.keys import slugify
from src.oil_inventory.store import MovementLedger, QuantityStore
from src.oil_inventory.totals import grand_total, per_warehouse_total
from src.oil_inventory.types import (
    Coordinate,
    GridFilters,
    ImportResult,
    Kpis,
    Movement,
    StockRow,
    Warehouse,
    finite_number,
    validate_year,
)

logger = logging.getLogger(__name__)


class InventorySession:
    """
    Process-local view state plus the stores it derives from.

    Attributes:
        store: Direct-edit quantity snapshot.
        ledger: Movement log (ledger view).
        warehouses: Active (displayed) warehouses, in column order.
        years: Known years; grows on load and `add_year`, never pruned.
        filters: Current view filters.
        team_id: Active team when scoping is on, else None.
        user_id: Identity the current data was loaded for.
    """

    def __init__(
        self,
        backend: InventoryBackend,
        team_id: str | None = None,
        warehouses: list[Warehouse] | None = None,
        current_year: int | None = None,
        executor: ThreadPoolExecutor | None = None,
    ):
        self.backend = backend
        self.team_id = team_id
        self.store = QuantityStore(backend, team_id=team_id, executor=executor)
        self.ledger = MovementLedger(backend, team_id=team_id)
        if warehouses is None:
            warehouses = [
                {"id": w["id"], "name": w["name"]} for w in C.DEFAULT_WAREHOUSES
            ]
        self.warehouses: list[Warehouse] = list(warehouses)
        self.hidden_warehouses: set[str] = set()
        self.years: set[int] = {current_year or datetime.date.today().year}
        self.filters = GridFilters()
        self.user_id: str | None = None

    # --- Identity / Scope ---

    def sync_identity(self, user_id: str | None) -> bool:
        """
        Reacts to an authentication transition.

        A new identity triggers a full reload. Signing out (None) keeps the
        last-good state on screen; nothing is cleared.

        Returns:
            True if data was reloaded.

        Raises:
            FetchError: If the reload fails (prior state is untouched).
        """
        if user_id == self.user_id:
            return False
        self.user_id = user_id
        if user_id is None:
            logger.info("Signed out; keeping last loaded state")
            return False
        self.load()
        return True

    def select_team(self, team_id: str | None) -> bool:
        """Switches the active team scope and reloads. Returns True on change."""
        if team_id == self.team_id:
            return False
        self.team_id = team_id
        self.store.team_id = team_id
        self.ledger.team_id = team_id
        self.load()
        return True

    def load(self) -> None:
        """
        Fetches inventory, movements and warehouses for the active scope.

        All reads complete before any state is replaced, so a FetchError
        leaves the view in its last-good state.
        """
        inventory = self.backend.fetch_inventory(self.team_id)
        movements = self.backend.fetch_movements(self.team_id)
        stored_warehouses = self.backend.fetch_warehouses()

        self.years |= self.store.hydrate(inventory)
        self.years |= self.ledger.hydrate(movements)

        known = {w["id"] for w in self.warehouses}
        for w in stored_warehouses:
            if w["id"] not in known and w["id"] not in self.hidden_warehouses:
                self.warehouses.append({"id": w["id"], "name": w["name"]})
                known.add(w["id"])

        logger.info(
            f"Loaded {len(self.store)} cells and {len(self.ledger.movements)} "
            f"movements (team={self.team_id or '-'})"
        )

    # --- Years ---

    def add_year(self, raw: Any) -> int:
        """
        Adds a year to the grid.

        Raises:
            ValidationError: If the year is not an integer in 2000-2100.
        """
        year = validate_year(raw)
        self.years.add(year)
        return year

    def sorted_years(self) -> list[int]:
        return sorted(self.years, reverse=True)

    # --- Warehouses ---

    def _find_warehouse(self, warehouse_id: str) -> Warehouse | None:
        return next((w for w in self.warehouses if w["id"] == warehouse_id), None)

    def add_warehouse(self, name: str) -> Warehouse:
        """
        Creates a warehouse from a display name (id = slug of the name).

        The warehouse is shown immediately; the backend insert is best
        effort and its failure is raised after the local update.

        Raises:
            ValidationError: Empty slug or duplicate id.
            PersistError: The backend insert failed.
        """
        warehouse_id = slugify(name or "")
        if not warehouse_id:
            raise ValidationError("Invalid warehouse name")
        if self._find_warehouse(warehouse_id):
            raise ValidationError(f"Warehouse already exists: {warehouse_id}")

        warehouse: Warehouse = {"id": warehouse_id, "name": name.strip()}
        self.warehouses.append(warehouse)
        self.hidden_warehouses.discard(warehouse_id)
        self.backend.insert_warehouses([dict(warehouse)])
        return warehouse

    def rename_warehouse(self, warehouse_id: str, name: str) -> None:
        warehouse = self._find_warehouse(warehouse_id)
        if warehouse is None:
            raise ValidationError(f"Unknown warehouse: {warehouse_id}")
        if not (name or "").strip():
            raise ValidationError("Warehouse name cannot be empty")
        warehouse["name"] = name.strip()

    def delete_warehouse(self, warehouse_id: str) -> None:
        """
        Removes a warehouse from the display set.

        Its quantities stay in the backend ("data remains, display does not").
        """
        self.warehouses = [w for w in self.warehouses if w["id"] != warehouse_id]
        self.hidden_warehouses.add(warehouse_id)
        if self.filters.warehouse == warehouse_id:
            self.filters.warehouse = C.ALL

    def seed_warehouses(self) -> None:
        """Writes the default warehouses to an empty backend table."""
        if self.backend.fetch_warehouses():
            return
        self.backend.insert_warehouses([dict(w) for w in C.DEFAULT_WAREHOUSES])

    # --- Direct Edits ---

    def set_quantity(self, coord: Coordinate, value: Any) -> Future:
        """
        Sets a cell from raw user input.

        Raises:
            ValidationError: If the input is not a finite number.
        """
        number = finite_number(str(value))
        if number is None:
            raise ValidationError(f"Quantity is not numeric: {value!r}")
        future = self.store.set(coord, number)
        self.years.add(coord.year)
        return future

    def adjust(self, coord: Coordinate, delta: int) -> Future:
        future = self.store.adjust(coord, delta)
        self.years.add(coord.year)
        return future

    def drain_errors(self) -> list[str]:
        """Returns (and clears) persist failures recorded since the last call."""
        # Swap rather than copy+clear: persist workers append concurrently.
        errors, self.store.errors = self.store.errors, []
        return errors

    # --- Derived Views ---

    def grid(self) -> StockGrid:
        return build_grid(self.years, self.warehouses, self.store, self.filters)

    def warehouse_totals(self) -> dict[str, int]:
        return per_warehouse_total(
            self.store.snapshot, self.warehouses, self.filters.year
        )

    def grand_total(self) -> int:
        return grand_total(self.warehouse_totals())

    def stock_rows(self, filtered: bool = True) -> list[StockRow]:
        filters = self.filters if filtered else GridFilters()
        return build_stock_rows(self.ledger.snapshot(), filters, self.warehouses)

    def history(self) -> list[Movement]:
        return self.ledger.history(self.filters)

    def kpis(self) -> Kpis:
        return self.ledger.kpis(self.stock_rows())

    # --- Movements ---

    def record_movement(
        self,
        *,
        date: datetime.date,
        warehouse_id: str,
        kind: str,
        year: Any,
        lot: str,
        format: str,
        pieces: Any,
        operator: str = "",
        notes: str = "",
    ) -> Movement:
        """
        Validates and records one ingress/egress movement.

        Raises:
            ValidationError: Missing warehouse, non-positive pieces, bad tags.
            PersistError: The backend insert failed (nothing is recorded).
        """
        if not warehouse_id:
            raise ValidationError("Select a warehouse")
        number = finite_number(str(pieces))
        if number is None or not number.is_integer() or number <= 0:
            raise ValidationError("Pieces must be > 0")

        movement = Movement(
            date=date,
            warehouse_id=warehouse_id,
            kind=kind,
            year=year,
            lot=lot,
            format=format,
            pieces=int(number),
            operator=operator.strip() or None,
            notes=notes.strip() or None,
        )
        recorded = self.ledger.record(movement)
        self.years.add(recorded.year)
        return recorded

    # --- CSV ---

    def export_csv(self) -> str:
        """Snapshot export; the team column is included when scoping is on."""
        return serialize_snapshot(self.store.snapshot, team_id=self.team_id)

    def export_stock_csv(self, filtered: bool = True) -> str:
        return serialize_rows(self.stock_rows(filtered=filtered))

    def import_csv(self, text: str) -> ImportResult:
        """
        Parses CSV text and writes accepted rows as one batch upsert.

        Rows tagged with a different team than the active one are rejected.
        Memory is updated before the batch persist; a persist failure is
        raised without rolling the local values back.

        Raises:
            ImportHeaderError: A required column is missing (nothing applied).
            PersistError: The batch upsert failed.
        """
        result = parse_snapshot_csv(text)

        values = []
        accepted = []
        for record in result["records"]:
            if record["team_id"] and record["team_id"] != self.team_id:
                result["rejected"] += 1
                result["errors"].append(
                    f"Row for team {record['team_id']!r} outside the active team"
                )
                continue
            coord = Coordinate(
                record["year"], record["lot"], record["format"], record["warehouse"]
            )
            values.append((coord, record["qty"]))
            accepted.append(record)
            self.years.add(record["year"])
        result["records"] = accepted

        if values:
            future = self.store.bulk_set(values)
            try:
                future.result()
            except PersistError:
                # Already logged and recorded by the store.
                self.drain_errors()
                raise

        logger.info(
            f"Imported {len(accepted)} rows ({result['rejected']} rejected)"
        )
        return result

    def close(self) -> None:
        self.store.close()
