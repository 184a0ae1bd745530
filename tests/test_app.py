import pytest
from streamlit.testing.v1 import AppTest


# --- Fixtures ---
@pytest.fixture
def app(monkeypatch):
    for var in ("OIL_INVENTORY_BACKEND", "OIL_INVENTORY_TEAMS", "OIL_INVENTORY_REQUIRE_LOGIN"):
        monkeypatch.delenv(var, raising=False)
    at = AppTest.from_file("../app.py", default_timeout=30)
    at.run()
    return at


def _grid(app):
    return app.dataframe[0].value


# --- Tests ---
def test_smoke_check(app):
    assert not app.exception
    assert app.title[0].value == "🫒 Oil Inventory"


def test_initial_grid_is_one_year_of_zeros(app):
    df = _grid(app)
    assert len(df) == 9
    assert list(df.columns) == ["Year", "Lot", "Format", "Roma", "Neci", "Row Total"]
    assert df["Row Total"].sum() == 0
    assert app.metric[0].value == "0"


def test_add_year_extends_grid(app):
    app.number_input(key="new_year").set_value(2020).run()
    app.button(key="add_year_btn").click().run()

    assert not app.exception
    df = _grid(app)
    assert len(df) == 18
    assert df["Year"].iloc[-1] == 2020


def test_add_warehouse_adds_column(app):
    app.text_input(key="new_warehouse").set_value("Siena").run()
    app.button(key="add_warehouse_btn").click().run()

    assert not app.exception
    assert "Siena" in _grid(app).columns
    assert app.success[0].value == "Warehouse added"


def test_duplicate_warehouse_shows_error(app):
    app.text_input(key="new_warehouse").set_value("roma").run()
    app.button(key="add_warehouse_btn").click().run()

    assert not app.exception
    assert "already exists" in app.error[0].value


def test_set_quantity_updates_grid_and_totals(app):
    app.number_input(key="edit_qty").set_value(5).run()
    app.button(key="set_btn").click().run()

    assert not app.exception
    df = _grid(app)
    assert df["Roma"].iloc[0] == 5
    assert df["Row Total"].iloc[0] == 5
    assert app.metric[0].value == "5"

    app.button(key="dec_btn").click().run()
    assert _grid(app)["Roma"].iloc[0] == 4


def test_lot_filter_narrows_rows(app):
    app.selectbox(key="filter_lot").set_value("B").run()

    df = _grid(app)
    assert len(df) == 3
    assert set(df["Lot"]) == {"B"}


def test_hide_warehouse_drops_column(app):
    app.selectbox(key="manage_warehouse").set_value("neci").run()
    app.button(key="delete_btn").click().run()

    assert not app.exception
    assert "Neci" not in _grid(app).columns


def test_record_movement_updates_stock(app):
    app.selectbox(key="mv_kind").set_value("ingress").run()
    app.number_input(key="mv_pieces").set_value(4).run()
    app.button(key="record_btn").click().run()

    assert not app.exception
    assert app.success[0].value == "Movement recorded!"
    stock = app.dataframe[1].value
    assert stock["pieces"].iloc[0] == 4
    assert stock["liters"].iloc[0] == 2.0
