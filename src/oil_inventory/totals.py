"""
Totals aggregation for the stock table footer and KPIs.

Totals are computed from the full snapshot (not the rendered rows), so the
footer reflects every stored coordinate for the active year filter. For
the same year filter, the sum of grid `row_total`s equals `grand_total`.
"""

import logging
from collections.abc import Iterable, Mapping

from src.oil_inventory import constants as C
from src.oil_inventory.keys import decode_key
from src.oil_inventory.types import Format, GridRow, Warehouse, YearFilter

logger = logging.getLogger(__name__)


def per_warehouse_total(
    snapshot: Mapping[str, int],
    warehouses: Iterable[Warehouse],
    year_filter: YearFilter = C.ALL,
) -> dict[str, int]:
    """
    Sums quantities per warehouse for the active year filter.

    Every active warehouse starts at 0. Undecodable keys are skipped, and so
    are keys belonging to warehouses no longer in the active set (deleted
    warehouses keep their data in the store but are not displayed).

    Args:
        snapshot: Encoded key -> quantity.
        warehouses: The active (displayed) warehouses.
        year_filter: A year, or "all".

    Returns:
        Mapping of warehouse id -> total quantity.
    """
    by_warehouse = {w["id"]: 0 for w in warehouses}

    for key, qty in snapshot.items():
        coord = decode_key(key)
        if coord is None:
            logger.debug(f"Skipping undecodable key {key!r}")
            continue
        if year_filter != C.ALL and coord.year != year_filter:
            continue
        if coord.warehouse_id not in by_warehouse:
            continue
        by_warehouse[coord.warehouse_id] += qty or 0

    return by_warehouse


def grand_total(per_warehouse: Mapping[str, int]) -> int:
    return sum(per_warehouse.values())


def grid_total(rows: Iterable[GridRow]) -> int:
    """Sum of `row_total` across a sequence of grid rows."""
    return sum(r["row_total"] for r in rows)


def liters_for(fmt: Format | str, pieces: int) -> float:
    """
    Converts a piece count to liters.

    Example:
        liters_for("500ml", 7) -> 3.5
    """
    fmt = Format(fmt)
    return pieces * fmt.unit_volume_ml / 1000
