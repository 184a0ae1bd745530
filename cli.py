import argparse
import logging
import os
import sys

from src.oil_inventory import (
    InventoryError,
    InventorySession,
    SheetsBackend,
    ValidationError,
    authorize_client,
    grid_total,
    load_settings,
    parse_snapshot_csv,
)
from src.oil_inventory import constants as C
from src.oil_inventory.types import validate_year

logger = logging.getLogger(__name__)


def build_session(settings, team_id=None):
    logger.info(f"Using {settings.backend} backend")
    client = authorize_client(credentials_file=settings.credentials_file)
    backend = SheetsBackend(client, settings.spreadsheet)
    session = InventorySession(backend, team_id=team_id)
    session.load()
    return session


def year_arg(raw):
    if raw == C.ALL:
        return raw
    try:
        return validate_year(raw)
    except ValidationError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def needs_store(args):
    return not (args.command == "import" and args.dry_run)


def cmd_export(session, args):
    text = session.export_csv()
    out = args.output or C.SNAPSHOT_EXPORT_FILENAME
    try:
        with open(out, "w", newline="", encoding="utf-8") as f:
            f.write(text)
        print(f"✅ CSV: {out}")
    except PermissionError:
        print(f"❌ Error: Close {out} first.")
        return 1
    return 0


def cmd_import(session, args):
    if not os.path.exists(args.path):
        print(f"❌ Missing file: '{args.path}'.")
        return 1

    with open(args.path, encoding="utf-8-sig", errors="replace") as f:
        text = f.read()

    if args.dry_run:
        result = parse_snapshot_csv(text)
    else:
        result = session.import_csv(text)
        session.store.wait()

    print(f"📂 Accepted {len(result['records'])} rows from '{args.path}'")
    if result["rejected"]:
        print(f"\n⚠️  Skipped {result['rejected']} rows:")
        for message in result["errors"]:
            print(f"   ? {message}")
    else:
        print("✅ Import clean.")
    return 0


def cmd_totals(session, args):
    session.filters.year = args.year
    totals = session.warehouse_totals()
    names = {w["id"]: w["name"] for w in session.warehouses}

    print(f"\n--- Totals ({session.filters.year}) ---")
    for wid, qty in totals.items():
        print(f"{names[wid]:<20} {qty:>8}")
    print(f"{'TOTAL':<20} {session.grand_total():>8}")
    return 0


def cmd_grid(session, args):
    session.filters.year = args.year
    session.filters.search = args.search or ""
    grid = session.grid()
    columns = grid.columns

    header = ["Year", "Lot", "Format", *(w["name"] for w in columns), "Row Total"]
    print(" | ".join(header))
    print(" | ".join("---" for _ in header))
    for row in grid:
        cells = [row["year"], row["lot"], row["format"]]
        cells.extend(row["totals"][w["id"]] for w in columns)
        cells.append(row["row_total"])
        print(" | ".join(str(c) for c in cells))
    print(f"\nRows total: {grid_total(grid)}")
    return 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Oil inventory batch tools.")
    parser.add_argument("--team", help="Team id (when team scoping is enabled)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_export = sub.add_parser("export", help="Write the snapshot CSV")
    p_export.add_argument("--output", help=f"Output path (default {C.SNAPSHOT_EXPORT_FILENAME})")
    p_export.set_defaults(func=cmd_export)

    p_import = sub.add_parser("import", help="Upsert quantities from a CSV file")
    p_import.add_argument("path")
    p_import.add_argument("--dry-run", action="store_true", help="Validate only")
    p_import.set_defaults(func=cmd_import)

    p_totals = sub.add_parser("totals", help="Per-warehouse and grand totals")
    p_totals.add_argument("--year", default=C.ALL, type=year_arg)
    p_totals.set_defaults(func=cmd_totals)

    p_grid = sub.add_parser("grid", help="Print the stock grid")
    p_grid.add_argument("--year", default=C.ALL, type=year_arg)
    p_grid.add_argument("--search")
    p_grid.set_defaults(func=cmd_grid)

    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not needs_store(args):
        # Validation only: no store is read or written.
        try:
            return args.func(None, args)
        except InventoryError as e:
            print(f"❌ Error: {e}")
            return 1

    if settings.backend == "memory":
        print(
            "❌ The CLI needs a persistent store: "
            "set OIL_INVENTORY_BACKEND=sheets (only 'import --dry-run' runs without one)."
        )
        return 1

    team_id = args.team if settings.teams_enabled else None
    try:
        session = build_session(settings, team_id=team_id)
    except InventoryError as e:
        print(f"❌ Load failed: {e}")
        return 1

    try:
        return args.func(session, args)
    except InventoryError as e:
        print(f"❌ Error: {e}")
        return 1
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
