"""
Quantity storage: the current-snapshot store and the movement ledger.

Two models of the same domain live here:

- `QuantityStore`: Direct editing. Holds coordinate -> quantity, applies
  edits optimistically in memory and persists them asynchronously.
- `MovementLedger`: Append-only ingress/egress events. The snapshot is the
  signed sum of pieces per coordinate.

Both are read-through/write-through caches over an `InventoryBackend`; the
backend remains the single source of truth.
"""

from __future__ import annotations

import datetime
import logging
import threading
from collections import defaultdict
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import replace
from typing import Any

from src.oil_inventory import constants as C
from src.oil_inventory.backend import InventoryBackend
from src.oil_inventory.exceptions import PersistError, ValidationError
from src.oil_inventory.keys import decode_key, encode_key
from src.oil_inventory.totals import liters_for
from src.oil_inventory.types import (
    Coordinate,
    GridFilters,
    Kpis,
    Movement,
    Snapshot,
    StockRow,
    clamp_quantity,
)

logger = logging.getLogger(__name__)


def coordinate_to_row(coord: Coordinate, qty: int) -> dict[str, Any]:
    """Shapes one snapshot cell as a backend inventory row."""
    return {
        "year": coord.year,
        "lot": coord.lot.value,
        "format": coord.format.value,
        "warehouse_id": coord.warehouse_id,
        "qty": qty,
    }


class QuantityStore:
    """
    In-memory snapshot of coordinate -> non-negative integer quantity.

    Edits are applied to memory before the persist call resolves. A failed
    persist is logged and recorded in `errors` but never rolled back, so the
    local value may diverge from the backend until the next `hydrate`.
    Callers that need confirmation can wait on the returned Future.
    """

    def __init__(
        self,
        backend: InventoryBackend,
        team_id: str | None = None,
        executor: ThreadPoolExecutor | None = None,
    ):
        self._backend = backend
        self.team_id = team_id
        self._executor = executor or ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="inventory-persist"
        )
        self._snapshot: Snapshot = {}
        self._pending: set[Future] = set()
        self._pending_lock = threading.Lock()
        self.errors: list[str] = []

    # --- Reads ---

    def get(self, coord: Coordinate) -> int:
        return self._snapshot.get(encode_key(coord), 0)

    @property
    def snapshot(self) -> Snapshot:
        """A copy of the current key -> quantity mapping."""
        return dict(self._snapshot)

    def observed_years(self) -> set[int]:
        years = set()
        for key in self._snapshot:
            coord = decode_key(key)
            if coord is not None:
                years.add(coord.year)
        return years

    def __len__(self) -> int:
        return len(self._snapshot)

    # --- Writes ---

    def set(self, coord: Coordinate, value: float | int) -> Future:
        """
        Stores `max(0, floor(value))` and fires an asynchronous upsert.

        Args:
            coord: Target cell.
            value: Requested quantity (any real number).

        Returns:
            Future resolving to None, or raising PersistError on failure.
        """
        qty = clamp_quantity(value)
        self._snapshot[encode_key(coord)] = qty
        return self._submit([coordinate_to_row(coord, qty)])

    def adjust(self, coord: Coordinate, delta: int) -> Future:
        return self.set(coord, self.get(coord) + delta)

    def bulk_set(self, values: Iterable[tuple[Coordinate, float | int]]) -> Future:
        """
        Applies many values in memory and persists them as one batch upsert.

        Args:
            values: (coordinate, quantity) pairs; later pairs win on conflict.

        Returns:
            Future for the batch upsert.
        """
        rows = []
        for coord, value in values:
            qty = clamp_quantity(value)
            self._snapshot[encode_key(coord)] = qty
            rows.append(coordinate_to_row(coord, qty))
        return self._submit(rows)

    def hydrate(self, rows: Iterable[dict[str, Any]]) -> set[int]:
        """
        Replaces the entire in-memory map from freshly fetched rows.

        Rows that do not form a valid coordinate are skipped.

        Args:
            rows: Backend inventory rows (year, lot, format, warehouse_id, qty).

        Returns:
            The distinct years observed in the new snapshot.
        """
        fresh: Snapshot = {}
        for row in rows:
            try:
                coord = Coordinate(
                    row.get("year"), row.get("lot"), row.get("format"),
                    row.get("warehouse_id"),
                )
                qty = clamp_quantity(float(row.get("qty") or 0))
            except (ValidationError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable inventory row {row!r}: {e}")
                continue
            fresh[encode_key(coord)] = qty

        self._snapshot = fresh
        return self.observed_years()

    # --- Persistence ---

    def _persist(self, rows: list[dict[str, Any]]) -> None:
        try:
            self._backend.upsert_inventory(rows, team_id=self.team_id)
        except PersistError as e:
            # Recorded before the future resolves so waiters always see it.
            self.errors.append(str(e))
            logger.error(f"Persist failed for {len(rows)} row(s): {e}")
            raise

    def _submit(self, rows: list[dict[str, Any]]) -> Future:
        future = self._executor.submit(self._persist, rows)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def wait(self, timeout: float | None = None) -> None:
        """Blocks until every in-flight persist has completed (or failed)."""
        with self._pending_lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        self._executor.shutdown(wait=True)


def movement_to_row(movement: Movement) -> dict[str, Any]:
    """Shapes a movement as a backend row (liters precomputed for reports)."""
    return {
        "date": movement.date.isoformat(),
        "warehouse_id": movement.warehouse_id,
        "operator": movement.operator or "",
        "kind": movement.kind.value,
        "year": movement.year,
        "lot": movement.lot.value,
        "format": movement.format.value,
        "pieces": movement.pieces,
        "liters": movement.liters,
        "notes": movement.notes or "",
    }


def movement_from_row(row: dict[str, Any]) -> Movement:
    """
    Rebuilds a Movement from a backend row.

    Raises:
        ValidationError: If the row violates the movement invariants.
    """
    raw_date = row.get("date")
    if isinstance(raw_date, datetime.date):
        date = raw_date
    else:
        try:
            date = datetime.date.fromisoformat(str(raw_date))
        except ValueError:
            raise ValidationError(f"Invalid movement date: {raw_date!r}") from None

    try:
        pieces = int(row.get("pieces"))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid pieces: {row.get('pieces')!r}") from None

    return Movement(
        date=date,
        warehouse_id=str(row.get("warehouse_id") or ""),
        kind=row.get("kind"),
        year=row.get("year"),
        lot=row.get("lot"),
        format=row.get("format"),
        pieces=pieces,
        operator=row.get("operator") or None,
        notes=row.get("notes") or None,
        created_at=row.get("created_at") or None,
    )


class MovementLedger:
    """
    Append-only log of stock movements with a derived snapshot.

    Movements are kept newest first. Unlike `QuantityStore`, recording is not
    optimistic: the backend insert must succeed before the movement is
    appended locally.
    """

    def __init__(self, backend: InventoryBackend, team_id: str | None = None):
        self._backend = backend
        self.team_id = team_id
        self.movements: list[Movement] = []

    def record(self, movement: Movement) -> Movement:
        """
        Persists a movement, then appends it to the local log.

        Raises:
            PersistError: If the backend insert fails (nothing is appended).
        """
        stored = self._backend.insert_movement(
            movement_to_row(movement), team_id=self.team_id
        )
        persisted = replace(movement, created_at=stored.get("created_at"))
        self.movements.insert(0, persisted)
        logger.info(
            f"Recorded {movement.kind.value} of {movement.pieces} x "
            f"{movement.format.value} at {movement.warehouse_id}"
        )
        return persisted

    def hydrate(self, rows: Iterable[dict[str, Any]]) -> set[int]:
        """Replaces the log from backend rows (newest first); bad rows are skipped."""
        fresh = []
        for row in rows:
            try:
                fresh.append(movement_from_row(row))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable movement {row.get('id')!r}: {e}")
        self.movements = fresh
        return {m.year for m in fresh}

    def snapshot(self) -> Snapshot:
        """Signed sum of pieces per coordinate (ingress +, egress -)."""
        totals: defaultdict[str, int] = defaultdict(int)
        for m in self.movements:
            totals[encode_key(m.coordinate)] += m.signed_pieces
        return dict(totals)

    def quantity(self, coord: Coordinate) -> int:
        target = encode_key(coord)
        return sum(
            m.signed_pieces for m in self.movements if encode_key(m.coordinate) == target
        )

    def liters(self, coord: Coordinate) -> float:
        return liters_for(coord.format, self.quantity(coord))

    def history(
        self, filters: GridFilters | None = None, limit: int = C.HISTORY_LIMIT
    ) -> list[Movement]:
        """
        Returns the most recent movements matching the filters.

        Exact-match filters (warehouse, year, lot, format) combine with AND;
        the search term matches notes or operator, case-insensitively.
        """
        filters = filters or GridFilters()
        term = filters.search_term
        result = []
        for m in self.movements[:limit]:
            if filters.warehouse != C.ALL and m.warehouse_id != filters.warehouse:
                continue
            if filters.year != C.ALL and m.year != filters.year:
                continue
            if filters.lot != C.ALL and m.lot.value != filters.lot:
                continue
            if filters.format != C.ALL and m.format.value != filters.format:
                continue
            if term and term not in (m.notes or "").lower() and term not in (
                m.operator or ""
            ).lower():
                continue
            result.append(m)
        return result

    def kpis(self, rows: list[StockRow]) -> Kpis:
        """Headline figures for a (usually filtered) stock table."""
        return {
            "pieces": sum(r["pieces"] for r in rows),
            "liters": round(sum(r["liters"] for r in rows), 2),
            "last_movement": self.movements[0].created_at if self.movements else None,
        }
