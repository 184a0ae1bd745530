"""
Type definitions and shared data structures for the Oil Inventory engine.

This module contains the value types (Coordinate, Movement), the closed
domain enums, and the TypedDicts used to pass rows between the store,
the derived views and the CSV codec.
"""

import datetime
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, TypedDict

from src.oil_inventory import constants as C
from src.oil_inventory.exceptions import ValidationError


class Lot(str, Enum):
    A = "A"
    B = "B"
    C = "C"


class Format(str, Enum):
    ML_500 = "500ml"
    ML_250 = "250ml"
    L_5 = "5L"

    @property
    def unit_volume_ml(self) -> int:
        return C.UNIT_VOLUME_ML[self.value]


class MovementKind(str, Enum):
    INGRESS = "ingress"
    EGRESS = "egress"


YearFilter = int | Literal["all"]

# Encoded coordinate key -> quantity.
Snapshot = dict[str, int]


def _coerce_enum(enum_cls: type[Enum], value: object, field_name: str):
    """Maps a raw tag onto a closed enum, rejecting unknown values."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"Invalid {field_name} {value!r} (expected one of: {allowed})"
        ) from None


def validate_year(value: object) -> int:
    """
    Coerces a raw year (int or numeric string) and checks the accepted range.

    Raises:
        ValidationError: If the value is not an integer in [MIN_YEAR, MAX_YEAR].
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid year: {value!r}")
    if isinstance(value, str):
        number = finite_number(value)
        if number is None or not number.is_integer():
            raise ValidationError(f"Invalid year: {value!r}")
        value = int(number)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise ValidationError(f"Invalid year: {value!r}")
    if value < C.MIN_YEAR or value > C.MAX_YEAR:
        raise ValidationError(
            f"Year {value} out of range ({C.MIN_YEAR}-{C.MAX_YEAR})"
        )
    return value


def validate_warehouse_id(value: object) -> str:
    """Ensures a warehouse id is a non-empty slug ([a-z0-9-])."""
    warehouse_id = str(value or "").strip()
    if not warehouse_id or not C.SLUG_RE.match(warehouse_id):
        raise ValidationError(f"Invalid warehouse id: {value!r}")
    return warehouse_id


@dataclass(frozen=True)
class Coordinate:
    """
    The (year, lot, format, warehouse) tuple identifying one inventory cell.

    Raw tags are coerced on construction, so ``Coordinate(2024, "A", "500ml",
    "roma")`` is valid and equal to its enum-typed twin.

    Raises:
        ValidationError: If any field is outside its closed domain.
    """

    year: int
    lot: Lot
    format: Format
    warehouse_id: str

    def __post_init__(self):
        object.__setattr__(self, "year", validate_year(self.year))
        object.__setattr__(self, "lot", _coerce_enum(Lot, self.lot, "lot"))
        object.__setattr__(
            self, "format", _coerce_enum(Format, self.format, "format")
        )
        object.__setattr__(
            self, "warehouse_id", validate_warehouse_id(self.warehouse_id)
        )


@dataclass(frozen=True)
class Movement:
    """
    A single dated ingress/egress event (immutable, append-only).

    Attributes:
        date: Business date of the movement.
        warehouse_id: Warehouse slug the pieces entered or left.
        kind: Ingress (positive) or egress (negative).
        year, lot, format: The remaining coordinate fields.
        pieces: Strictly positive piece count.
        operator: Optional operator name.
        notes: Optional free text (customer, reason).
        created_at: Store-assigned ISO timestamp, None until persisted.
    """

    date: datetime.date
    warehouse_id: str
    kind: MovementKind
    year: int
    lot: Lot
    format: Format
    pieces: int
    operator: str | None = None
    notes: str | None = None
    created_at: str | None = field(default=None, compare=False)

    def __post_init__(self):
        object.__setattr__(
            self, "kind", _coerce_enum(MovementKind, self.kind, "movement kind")
        )
        if isinstance(self.pieces, bool) or not isinstance(self.pieces, int):
            raise ValidationError(f"Pieces must be an integer: {self.pieces!r}")
        if self.pieces <= 0:
            raise ValidationError("Pieces must be > 0")
        if not self.warehouse_id:
            raise ValidationError("Select a warehouse")
        # Validates year/lot/format/warehouse through the Coordinate rules.
        coord = Coordinate(self.year, self.lot, self.format, self.warehouse_id)
        object.__setattr__(self, "year", coord.year)
        object.__setattr__(self, "lot", coord.lot)
        object.__setattr__(self, "format", coord.format)

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.year, self.lot, self.format, self.warehouse_id)

    @property
    def signed_pieces(self) -> int:
        if self.kind is MovementKind.INGRESS:
            return self.pieces
        return -self.pieces

    @property
    def liters(self) -> float:
        return self.pieces * self.format.unit_volume_ml / 1000


class Warehouse(TypedDict):
    """A storage site. Identity is ``id``; ``name`` is mutable metadata."""

    id: str
    name: str


class GridRow(TypedDict):
    """
    One displayed line of the stock table.

    Attributes:
        year, lot, format: The fixed part of the coordinate.
        totals: Quantity per displayed warehouse id.
        row_total: Sum of ``totals``.
    """

    year: int
    lot: str
    format: str
    totals: dict[str, int]
    row_total: int


class StockRow(TypedDict):
    """One per-cell line of the flat stock table (ledger view)."""

    warehouse: str
    year: int
    lot: str
    format: str
    pieces: int
    liters: float


class ImportRecord(TypedDict):
    year: int
    lot: str
    format: str
    warehouse: str
    qty: int
    team_id: str | None


class ImportResult(TypedDict):
    """
    Outcome of a CSV import.

    Attributes:
        records: Rows that passed validation (qty already clamped).
        rejected: Number of data rows skipped by validation.
        errors: One human-readable message per rejected row.
    """

    records: list[ImportRecord]
    rejected: int
    errors: list[str]


class TeamMembership(TypedDict):
    team_id: str
    team_name: str
    role: str


class Kpis(TypedDict):
    pieces: int
    liters: float
    last_movement: str | None


@dataclass
class GridFilters:
    """
    Active view filters. All active filters combine with AND semantics.

    ``year``, ``warehouse``, ``lot`` and ``format`` accept the ``"all"``
    sentinel. ``search`` is a case-insensitive substring match.
    """

    year: YearFilter = C.ALL
    search: str = ""
    warehouse: str = C.ALL
    lot: str = C.ALL
    format: str = C.ALL

    @property
    def search_term(self) -> str:
        return self.search.strip().lower()


def finite_number(raw: str) -> float | None:
    """Parses a numeric cell, returning None for blanks, NaN and infinities."""
    text = raw.strip()
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def clamp_quantity(value: float | int) -> int:
    """Applies the storage invariant: ``max(0, floor(value))``."""
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f"Quantity is not a finite number: {value!r}")
    return max(0, math.floor(value))
