"""
CSV import/export for inventory snapshots and stock tables.

Export quotes any field containing a comma, quote or newline. Import reads
the header by name (column order is free) and splits data rows on bare
commas.

Known limitation: import does NOT understand quoted fields, so a value with
an embedded comma survives export but not re-import. Every value produced
by the inventory core (years, lot/format tags, slug warehouse ids, integer
quantities) is comma-free, so snapshot round-trips are lossless.
"""

import csv
import io
import logging
import re
from collections.abc import Mapping
from typing import Any

from src.oil_inventory import constants as C
from src.oil_inventory.exceptions import ImportHeaderError, ValidationError
from src.oil_inventory.keys import decode_key
from src.oil_inventory.types import (
    ImportRecord,
    ImportResult,
    clamp_quantity,
    finite_number,
    validate_warehouse_id,
    validate_year,
)

logger = logging.getLogger(__name__)

_LINE_SPLIT_RE = re.compile(r"\r?\n")


def csv_escape(value: Any) -> str:
    """Quotes a field (doubling inner quotes) if it contains , " or a newline."""
    s = str(value)
    if not s:
        return s
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\r\n").writerow([s])
    return buf.getvalue().removesuffix("\r\n")


def serialize_snapshot(snapshot: Mapping[str, int], team_id: str | None = None) -> str:
    """
    Serializes a quantity snapshot to CSV text.

    Header is `year,lot,format,warehouse,qty`; the team-scoped form
    prepends `team_id`. Undecodable keys are skipped.

    Args:
        snapshot: Encoded key -> quantity.
        team_id: Active team, or None when scoping is off.

    Returns:
        CSV text, lines joined with "\\n".
    """
    headers = list(C.SNAPSHOT_COLUMNS)
    if team_id is not None:
        headers.insert(0, C.TEAM_COLUMN)
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(headers)

    for key, qty in snapshot.items():
        coord = decode_key(key)
        if coord is None:
            logger.debug(f"Export skipped undecodable key {key!r}")
            continue
        fields: list[Any] = [
            coord.year,
            coord.lot.value,
            coord.format.value,
            coord.warehouse_id,
            qty,
        ]
        if team_id is not None:
            fields.insert(0, team_id)
        writer.writerow(fields)

    return buf.getvalue().removesuffix("\n")


def _locate_columns(header_line: str) -> tuple[dict[str, int], int | None]:
    """Maps required column names to positions; raises if any is missing."""
    cols = [c.strip() for c in header_line.split(",")]
    positions = {name: cols.index(name) for name in C.SNAPSHOT_COLUMNS if name in cols}
    missing = [name for name in C.SNAPSHOT_COLUMNS if name not in positions]
    if missing:
        raise ImportHeaderError(missing)
    team_idx = cols.index(C.TEAM_COLUMN) if C.TEAM_COLUMN in cols else None
    return positions, team_idx


def _cell(cells: list[str], idx: int) -> str:
    return cells[idx].strip() if idx < len(cells) else ""


def _parse_row(
    cells: list[str], positions: dict[str, int], team_idx: int | None
) -> ImportRecord:
    """
    Validates one data row.

    Raises:
        ValidationError: Describing the first failing field.
    """
    lot = _cell(cells, positions["lot"])
    fmt = _cell(cells, positions["format"])
    warehouse = _cell(cells, positions["warehouse"])

    year = validate_year(_cell(cells, positions["year"]))
    if lot not in C.LOTS:
        raise ValidationError(f"Unknown lot {lot!r}")
    if fmt not in C.FORMATS:
        raise ValidationError(f"Unknown format {fmt!r}")
    warehouse = validate_warehouse_id(warehouse)

    qty_raw = _cell(cells, positions["qty"])
    qty = finite_number(qty_raw)
    if qty is None:
        raise ValidationError(f"Quantity is not numeric: {qty_raw!r}")

    team_id = _cell(cells, team_idx) if team_idx is not None else ""
    return {
        "year": year,
        "lot": lot,
        "format": fmt,
        "warehouse": warehouse,
        "qty": clamp_quantity(qty),
        "team_id": team_id or None,
    }


def parse_snapshot_csv(text: str) -> ImportResult:
    """
    Parses snapshot CSV text into validated records.

    Invalid rows are skipped and counted; they never abort the batch.
    Blank lines are ignored and do not count as rejected.

    Args:
        text: Full file contents (BOM, \\r\\n and \\n tolerated).

    Returns:
        ImportResult with accepted records, rejected count and messages.

    Raises:
        ImportHeaderError: If the header lacks a required column.
    """
    lines = _LINE_SPLIT_RE.split(text.lstrip("\ufeff"))
    numbered = [(n, line) for n, line in enumerate(lines, start=1) if line]
    if not numbered:
        raise ImportHeaderError(list(C.SNAPSHOT_COLUMNS))

    (_, header_line), *data = numbered
    positions, team_idx = _locate_columns(header_line)

    result: ImportResult = {"records": [], "rejected": 0, "errors": []}
    for line_number, line in data:
        try:
            record = _parse_row(line.split(","), positions, team_idx)
        except ValidationError as e:
            result["rejected"] += 1
            result["errors"].append(f"Row {line_number}: {e}")
            continue
        result["records"].append(record)

    if result["rejected"]:
        logger.warning(
            f"CSV import skipped {result['rejected']} of {len(data)} data rows"
        )
    return result


def serialize_rows(rows: list[Mapping[str, Any]]) -> str:
    """
    Serializes table rows (stock or history) with every field quoted.

    Headers come from the first row's keys; None is written as "".
    """
    if not rows:
        return ""
    headers = list(rows[0].keys())

    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(headers)
    writer = csv.DictWriter(
        buf,
        fieldnames=headers,
        quoting=csv.QUOTE_ALL,
        lineterminator="\n",
        extrasaction="ignore",
    )
    writer.writerows(rows)
    return buf.getvalue().removesuffix("\n")


def to_download_bytes(text: str) -> bytes:
    """Encodes CSV text as utf-8-sig so spreadsheet apps detect the charset."""
    return text.encode("utf-8-sig")
