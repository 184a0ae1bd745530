"""
Grid construction for the stock table.

The grid is the full cross product of known years x lots x formats, with one
column per displayed warehouse. Rows are regenerated on every iteration and
hold no identity of their own.

Ordering contract (visible in every table and export built from the grid):
1. Years, descending.
2. Lots in declaration order (A, B, C).
3. Formats in declaration order (500ml, 250ml, 5L).
"""

from collections.abc import Iterable, Iterator, Mapping

from src.oil_inventory import constants as C
from src.oil_inventory.keys import decode_key, encode_key
from src.oil_inventory.store import QuantityStore
from src.oil_inventory.totals import liters_for
from src.oil_inventory.types import (
    Coordinate,
    GridFilters,
    GridRow,
    StockRow,
    Warehouse,
)

QuantitySource = QuantityStore | Mapping[str, int]


def _quantity(source: QuantitySource, coord: Coordinate) -> int:
    if isinstance(source, QuantityStore):
        return source.get(coord)
    return source.get(encode_key(coord), 0)


def _ordered_years(years: Iterable[int]) -> list[int]:
    return sorted(set(years), reverse=True)


def iter_cells(
    years: Iterable[int],
    warehouses: Iterable[Warehouse],
    source: QuantitySource,
) -> Iterator[tuple[Coordinate, int]]:
    """
    Yields every (coordinate, quantity) of the unfiltered cross product.

    Missing cells default to 0. Yields |years| x 3 x 3 x |warehouses| items.
    """
    warehouse_ids = [w["id"] for w in warehouses]
    for year in _ordered_years(years):
        for lot in C.LOTS:
            for fmt in C.FORMATS:
                for wid in warehouse_ids:
                    coord = Coordinate(year, lot, fmt, wid)
                    yield coord, _quantity(source, coord)


def row_matches(row: GridRow, filters: GridFilters) -> bool:
    """
    Row-level filter predicate.

    A row survives iff every active filter matches: year, exact lot/format,
    and the search term as a substring of the stringified year, lot or
    format.
    """
    if filters.year != C.ALL and row["year"] != filters.year:
        return False
    if filters.lot != C.ALL and row["lot"] != filters.lot:
        return False
    if filters.format != C.ALL and row["format"] != filters.format:
        return False

    term = filters.search_term
    if term and not (
        term in str(row["year"])
        or term in row["lot"].lower()
        or term in row["format"].lower()
    ):
        return False
    return True


class StockGrid:
    """
    Lazy, restartable sequence of Grid Rows.

    Each `iter()` recomputes every row from the current contents of the
    source, so the grid always reflects the latest edits.
    """

    def __init__(
        self,
        years: Iterable[int],
        warehouses: Iterable[Warehouse],
        source: QuantitySource,
        filters: GridFilters | None = None,
    ):
        self.years = _ordered_years(years)
        self.warehouses = list(warehouses)
        self.source = source
        self.filters = filters or GridFilters()

    @property
    def columns(self) -> list[Warehouse]:
        """Warehouses shown as columns (narrowed by the warehouse filter)."""
        if self.filters.warehouse == C.ALL:
            return self.warehouses
        return [w for w in self.warehouses if w["id"] == self.filters.warehouse]

    def __iter__(self) -> Iterator[GridRow]:
        columns = self.columns
        for year in self.years:
            for lot in C.LOTS:
                for fmt in C.FORMATS:
                    totals = {
                        w["id"]: _quantity(
                            self.source, Coordinate(year, lot, fmt, w["id"])
                        )
                        for w in columns
                    }
                    row: GridRow = {
                        "year": year,
                        "lot": lot,
                        "format": fmt,
                        "totals": totals,
                        "row_total": sum(totals.values()),
                    }
                    if row_matches(row, self.filters):
                        yield row

    def to_records(self) -> list[dict[str, object]]:
        """Flattens rows for tabular display (one column per warehouse name)."""
        records = []
        for row in self:
            record: dict[str, object] = {
                "Year": row["year"],
                "Lot": row["lot"],
                "Format": row["format"],
            }
            for w in self.columns:
                record[w["name"]] = row["totals"][w["id"]]
            record["Row Total"] = row["row_total"]
            records.append(record)
        return records


def build_grid(
    years: Iterable[int],
    warehouses: Iterable[Warehouse],
    source: QuantitySource,
    filters: GridFilters | None = None,
) -> StockGrid:
    return StockGrid(years, warehouses, source, filters)


def build_stock_rows(
    snapshot: Mapping[str, int],
    filters: GridFilters | None = None,
    warehouses: Iterable[Warehouse] | None = None,
) -> list[StockRow]:
    """
    Builds the flat per-cell stock table (one row per stored coordinate).

    Used by the movement-ledger view. Exact-match filters on warehouse,
    year, lot and format combine with AND. If `warehouses` is given, cells
    of warehouses outside that set are hidden.

    Args:
        snapshot: Encoded key -> pieces.
        filters: Active filters.
        warehouses: Optional active warehouse set.

    Returns:
        Rows sorted by year (desc), lot, format, then warehouse id.
    """
    filters = filters or GridFilters()
    active = {w["id"] for w in warehouses} if warehouses is not None else None

    rows: list[StockRow] = []
    for key, pieces in snapshot.items():
        coord = decode_key(key)
        if coord is None:
            continue
        if active is not None and coord.warehouse_id not in active:
            continue
        if filters.warehouse != C.ALL and coord.warehouse_id != filters.warehouse:
            continue
        if filters.year != C.ALL and coord.year != filters.year:
            continue
        if filters.lot != C.ALL and coord.lot.value != filters.lot:
            continue
        if filters.format != C.ALL and coord.format.value != filters.format:
            continue
        rows.append(
            {
                "warehouse": coord.warehouse_id,
                "year": coord.year,
                "lot": coord.lot.value,
                "format": coord.format.value,
                "pieces": pieces,
                "liters": liters_for(coord.format, pieces),
            }
        )

    rows.sort(
        key=lambda r: (
            -r["year"],
            C.LOTS.index(r["lot"]),
            C.FORMATS.index(r["format"]),
            r["warehouse"],
        )
    )
    return rows
