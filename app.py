import datetime
import logging

import streamlit as st

from src.oil_inventory import (
    Coordinate,
    InventoryError,
    InventorySession,
    MemoryBackend,
    SheetsBackend,
    authorize_client,
    liters_for,
    load_memberships,
    load_settings,
    role_label,
    select_team,
    to_download_bytes,
)
from src.oil_inventory import constants as C

logger = logging.getLogger(__name__)


# ttl="1h" to prevent stale token issues
@st.cache_resource(ttl="1h")
def get_gsheet_client():
    """Establishes a persistent connection to Google Sheets."""
    return authorize_client(credentials_info=dict(st.secrets["gcp_service_account"]))


def get_backend(settings):
    if settings.backend == "sheets":
        return SheetsBackend(get_gsheet_client(), settings.spreadsheet)
    # Demo mode: data lives as long as the browser session.
    if "memory_backend" not in st.session_state:
        st.session_state.memory_backend = MemoryBackend()
    return st.session_state.memory_backend


def current_user(settings):
    """Opaque user id, or None while signed out."""
    if not settings.require_login:
        return "local"
    if not st.user.is_logged_in:
        return None
    return getattr(st.user, "sub", None) or getattr(st.user, "email", None)


def flash(level, message):
    st.session_state.flash.append((level, message))


def guarded(action, *args, success=None):
    """Runs a session mutation, routing failures to the message surface."""
    try:
        action(*args)
    except InventoryError as e:
        flash("error", str(e))
    else:
        if success:
            flash("success", success)


settings = load_settings()

st.set_page_config(page_title="Oil Inventory", page_icon="🫒", layout="wide")
st.title("🫒 Oil Inventory")

if "flash" not in st.session_state:
    st.session_state.flash = []

user_id = current_user(settings)
if user_id is None:
    st.subheader("Sign in to manage the warehouse")
    st.button("Log in", on_click=st.login, type="primary")
    st.stop()

if "session" not in st.session_state:
    st.session_state.session = InventorySession(get_backend(settings))
    guarded(st.session_state.session.seed_warehouses)
session: InventorySession = st.session_state.session

# Team scope (selected team is cached for the browser session)
if settings.teams_enabled:
    try:
        memberships = load_memberships(session.backend, user_id)
    except InventoryError as e:
        memberships = []
        st.error(f"Could not load teams: {e}")

    if not memberships:
        st.warning("Your account is not a member of any team yet.")
        st.stop()

    team_ids = [m["team_id"] for m in memberships]
    labels = {
        m["team_id"]: f"{m['team_name']} ({role_label(m['role'])})" for m in memberships
    }
    default_team = select_team(memberships, st.session_state.get("team_id"))
    st.session_state.team_id = st.selectbox(
        "Team",
        team_ids,
        index=team_ids.index(default_team),
        format_func=lambda t: labels[t],
        key="team_select",
    )
    try:
        session.select_team(st.session_state.team_id)
    except InventoryError as e:
        st.error(f"Load failed: {e}")

try:
    session.sync_identity(user_id)
except InventoryError as e:
    st.error(f"Load failed: {e}")

# Message surface
for level, message in st.session_state.flash:
    getattr(st, level)(message)
st.session_state.flash = []
for message in session.drain_errors():
    st.error(f"Save failed: {message}")


# --- Callbacks ---


def on_add_year():
    guarded(session.add_year, st.session_state.new_year, success="Year added")


def on_add_warehouse():
    guarded(session.add_warehouse, st.session_state.new_warehouse, success="Warehouse added")


def on_rename_warehouse():
    guarded(
        session.rename_warehouse,
        st.session_state.manage_warehouse,
        st.session_state.rename_to,
    )


def on_delete_warehouse():
    warehouse_id = st.session_state.manage_warehouse
    guarded(
        session.delete_warehouse,
        warehouse_id,
        success="Warehouse hidden. Its data remains in the store.",
    )
    # Selectors still pointing at the hidden warehouse fall back to defaults.
    for key in ("filter_warehouse", "edit_warehouse", "mv_warehouse", "manage_warehouse"):
        if st.session_state.get(key) == warehouse_id:
            del st.session_state[key]


def on_refresh():
    guarded(session.load)


def _edit_coordinate():
    return Coordinate(
        st.session_state.edit_year,
        st.session_state.edit_lot,
        st.session_state.edit_format,
        st.session_state.edit_warehouse,
    )


def on_set_quantity():
    guarded(lambda: session.set_quantity(_edit_coordinate(), st.session_state.edit_qty))


def on_adjust(delta):
    guarded(lambda: session.adjust(_edit_coordinate(), delta))


def on_record_movement():
    def record():
        session.record_movement(
            date=st.session_state.mv_date,
            warehouse_id=st.session_state.mv_warehouse or "",
            kind=st.session_state.mv_kind,
            year=st.session_state.mv_year,
            lot=st.session_state.mv_lot,
            format=st.session_state.mv_format,
            pieces=st.session_state.mv_pieces,
            operator=st.session_state.mv_operator,
            notes=st.session_state.mv_notes,
        )
        st.session_state.mv_pieces = 1
        st.session_state.mv_notes = ""

    guarded(record, success="Movement recorded!")


# --- Toolbar ---

with st.sidebar:
    st.header("Setup")
    st.number_input(
        "Year", min_value=C.MIN_YEAR, max_value=C.MAX_YEAR,
        value=datetime.date.today().year, step=1, key="new_year",
    )
    st.button("+ Year", on_click=on_add_year, key="add_year_btn")

    st.text_input("Warehouse name", key="new_warehouse", placeholder="e.g. Siena")
    st.button("+ Warehouse", on_click=on_add_warehouse, key="add_warehouse_btn")

    if session.warehouses:
        names = {w["id"]: w["name"] for w in session.warehouses}
        st.selectbox(
            "Manage warehouse", list(names), format_func=lambda w: names[w],
            key="manage_warehouse",
        )
        st.text_input("Rename to", key="rename_to")
        c1, c2 = st.columns(2)
        c1.button("✏️ Rename", on_click=on_rename_warehouse, key="rename_btn")
        c2.button("🗑️ Hide", on_click=on_delete_warehouse, key="delete_btn")

    st.divider()
    st.button("🔄 Refresh", on_click=on_refresh, key="refresh_btn")
    if settings.require_login:
        st.button("Log out", on_click=st.logout)

# --- Filters ---

years = session.sorted_years()
warehouse_names = {w["id"]: w["name"] for w in session.warehouses}
f1, f2, f3, f4, f5 = st.columns(5)
year_choice = f1.selectbox("Year", [C.ALL, *years], key="filter_year")
warehouse_choice = f2.selectbox(
    "Warehouse", [C.ALL, *warehouse_names],
    format_func=lambda w: "All" if w == C.ALL else warehouse_names[w],
    key="filter_warehouse",
)
lot_choice = f3.selectbox("Lot", [C.ALL, *C.LOTS], key="filter_lot")
format_choice = f4.selectbox("Format", [C.ALL, *C.FORMATS], key="filter_format")
search = f5.text_input("Search", placeholder="2025, A, 500ml…", key="filter_search")

session.filters.year = year_choice
session.filters.warehouse = warehouse_choice
session.filters.lot = lot_choice
session.filters.format = format_choice
session.filters.search = search

grid_tab, movements_tab, io_tab = st.tabs(["📦 Stock Grid", "🚚 Movements", "💾 Import / Export"])

# --- Stock Grid ---

with grid_tab:
    grid = session.grid()
    totals = session.warehouse_totals()

    c1, c2, c3 = st.columns(3)
    c1.metric("Grand Total", session.grand_total())
    c2.metric("Warehouses", len(session.warehouses))
    c3.metric("Years", len(years))

    st.dataframe(grid.to_records(), use_container_width=True, hide_index=True)

    footer = {"Totals per Warehouse": "", **{
        warehouse_names[wid]: qty for wid, qty in totals.items()
    }}
    st.caption(" · ".join(f"**{k}** {v}" for k, v in footer.items()))

    st.subheader("Edit Quantity")
    e1, e2, e3, e4, e5 = st.columns(5)
    e1.selectbox("Year", years, key="edit_year")
    e2.selectbox("Lot", C.LOTS, key="edit_lot")
    e3.selectbox("Format", C.FORMATS, key="edit_format")
    e4.selectbox(
        "Warehouse", list(warehouse_names), format_func=lambda w: warehouse_names[w],
        key="edit_warehouse",
    )
    e5.number_input("Qty", min_value=0, step=1, key="edit_qty")

    b1, b2, b3 = st.columns(3)
    if session.warehouses:
        b1.button("Set", on_click=on_set_quantity, key="set_btn", type="primary")
        b2.button("−1", on_click=on_adjust, args=(-1,), key="dec_btn")
        b3.button("+1", on_click=on_adjust, args=(1,), key="inc_btn")

# --- Movements ---

with movements_tab:
    st.session_state.setdefault("mv_pieces", 1)
    form_col, stock_col = st.columns(2)

    with form_col:
        st.subheader("Record Movement")
        m1, m2 = st.columns(2)
        m1.date_input("Date", value=datetime.date.today(), key="mv_date")
        m2.text_input("Operator", placeholder="Full name", key="mv_operator")
        m1.selectbox(
            "Warehouse", list(warehouse_names), format_func=lambda w: warehouse_names[w],
            key="mv_warehouse",
        )
        m2.selectbox(
            "Type", ["ingress", "egress"], format_func=str.capitalize, key="mv_kind"
        )
        m1.number_input(
            "Year", min_value=C.MIN_YEAR, max_value=C.MAX_YEAR,
            value=datetime.date.today().year, step=1, key="mv_year",
        )
        m2.selectbox("Lot", C.LOTS, key="mv_lot")
        m1.selectbox("Format", C.FORMATS, key="mv_format")
        m2.number_input("Pieces", min_value=0, step=1, key="mv_pieces")
        st.text_input("Notes", placeholder="e.g. customer X / reason", key="mv_notes")

        preview = liters_for(st.session_state.mv_format, st.session_state.mv_pieces)
        st.caption(f"Preview: **{preview:.2f}** L")
        st.button("Record", on_click=on_record_movement, key="record_btn", type="primary")

    with stock_col:
        st.subheader("Stock (filtered)")
        stock_rows = session.stock_rows()
        kpis = session.kpis()
        k1, k2 = st.columns(2)
        k1.metric("Total Pieces", kpis["pieces"])
        k2.metric("Total Liters", f"{kpis['liters']:.2f}")
        st.caption(f"Last movement: {kpis['last_movement'] or '-'}")
        st.dataframe(stock_rows, use_container_width=True, hide_index=True)
        if stock_rows:
            st.download_button(
                "Export Stock CSV",
                data=to_download_bytes(session.export_stock_csv()),
                file_name=C.STOCK_FILTERED_EXPORT_FILENAME,
                mime=C.CSV_MIME,
                key="stock_export",
            )
            st.download_button(
                "Export All Stock",
                data=to_download_bytes(session.export_stock_csv(filtered=False)),
                file_name=C.STOCK_EXPORT_FILENAME,
                mime=C.CSV_MIME,
                key="stock_export_all",
            )

    st.subheader("History")
    history = [
        {
            "Date": m.date.isoformat(),
            "Warehouse": warehouse_names.get(m.warehouse_id, m.warehouse_id),
            "Type": m.kind.value,
            "Year": m.year,
            "Lot": m.lot.value,
            "Format": m.format.value,
            "Pieces": m.pieces,
            "Liters": m.liters,
            "Operator": m.operator or "",
            "Notes": m.notes or "",
        }
        for m in session.history()
    ]
    st.dataframe(history, use_container_width=True, hide_index=True)

# --- Import / Export ---

with io_tab:
    st.download_button(
        "Download CSV",
        data=to_download_bytes(session.export_csv()),
        file_name=C.SNAPSHOT_EXPORT_FILENAME,
        mime=C.CSV_MIME,
        type="primary",
        key="snapshot_export",
    )

    uploaded = st.file_uploader("Import CSV", type=["csv"], key="import_file")
    if uploaded is not None and st.button("Import", key="import_btn"):
        text = uploaded.getvalue().decode("utf-8-sig", errors="replace")
        try:
            result = session.import_csv(text)
        except InventoryError as e:
            flash("error", f"Import failed: {e}")
        else:
            flash("success", f"Import complete: {len(result['records'])} rows")
            if result["rejected"]:
                flash("warning", f"⚠️ Skipped {result['rejected']} invalid rows")
                for message in result["errors"]:
                    logger.info(message)
        st.rerun()

    st.caption(
        "Columns: year, lot, format, warehouse, qty. Quoted fields with "
        "embedded commas are not supported on import."
    )
