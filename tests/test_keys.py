import pytest
from hypothesis import given, strategies as st

from src.oil_inventory import Coordinate, ValidationError, decode_key, encode_key, slugify
from src.oil_inventory import constants as C

coordinates = st.builds(
    Coordinate,
    year=st.integers(min_value=C.MIN_YEAR, max_value=C.MAX_YEAR),
    lot=st.sampled_from(C.LOTS),
    format=st.sampled_from(C.FORMATS),
    warehouse_id=st.from_regex(r"\A[a-z0-9-]{1,20}\Z"),
)


def test_encode_layout(coord):
    assert encode_key(coord) == "2024_A_500ml_roma"


@given(coordinates)
def test_round_trip(c):
    """Every well-formed coordinate survives encode -> decode."""
    assert decode_key(encode_key(c)) == c


@pytest.mark.parametrize(
    "key",
    [
        "",
        "2024_A_500ml",  # too few parts
        "abc_A_500ml_roma",  # non-numeric year
        "0_A_500ml_roma",  # non-positive year
        "2024_D_500ml_roma",  # unknown lot
        "2024_A_1L_roma",  # unknown format
        "2024_A_500ml_Roma",  # not a slug
        "1999_A_500ml_roma",  # out of range
    ],
)
def test_decode_invalid_returns_none(key):
    assert decode_key(key) is None


@given(st.text())
def test_decode_never_raises(garbage):
    """STRESS TEST: decode must absorb any string."""
    result = decode_key(garbage)
    assert result is None or isinstance(result, Coordinate)


def test_coordinate_coerces_raw_tags():
    c = Coordinate("2024", "B", "5L", "neci")
    assert c.year == 2024
    assert c.lot.value == "B"
    assert c.format.unit_volume_ml == 5000


@pytest.mark.parametrize("year", [1999, 2101, "20x4", 2024.5, True, None])
def test_coordinate_rejects_bad_year(year):
    with pytest.raises(ValidationError):
        Coordinate(year, "A", "500ml", "roma")


def test_coordinate_rejects_delimiter_in_warehouse():
    with pytest.raises(ValidationError):
        Coordinate(2024, "A", "500ml", "north_side")


@pytest.mark.parametrize(
    "name, slug",
    [
        ("Roma", "roma"),
        ("  Neci Nord  ", "neci-nord"),
        ("Neci Nord!", "neci-nord-"),
        ("Magazzino #2", "magazzino-2"),
        ("a__b", "a-b"),
        ("   ", ""),
    ],
)
def test_slugify(name, slug):
    assert slugify(name) == slug


@given(st.text())
def test_slugify_never_contains_delimiter(name):
    assert C.KEY_DELIMITER not in slugify(name)
