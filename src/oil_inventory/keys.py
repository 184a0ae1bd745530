"""
Key codec: flat string identifiers for inventory coordinates.

Coordinates are stored in the snapshot under keys like
``2024_A_500ml_roma``. Warehouse ids are restricted to the slug alphabet
``[a-z0-9-]``, so the ``_`` delimiter never appears inside a field.
"""

import logging

from src.oil_inventory import constants as C
from src.oil_inventory.exceptions import ValidationError
from src.oil_inventory.types import Coordinate

logger = logging.getLogger(__name__)


def encode_key(coord: Coordinate) -> str:
    """
    Encodes a coordinate as a delimiter-joined key.

    Args:
        coord: A validated coordinate.

    Returns:
        The key string (e.g., "2024_A_500ml_roma").
    """
    return C.KEY_DELIMITER.join(
        [str(coord.year), coord.lot.value, coord.format.value, coord.warehouse_id]
    )


def decode_key(key: str) -> Coordinate | None:
    """
    Decodes a key produced by ``encode_key``.

    Never raises: malformed keys (too few parts, non-positive year, unknown
    lot/format, bad slug) return None so callers can skip them.

    Args:
        key: The key string.

    Returns:
        The Coordinate, or None if the key is invalid.
    """
    parts = key.split(C.KEY_DELIMITER)
    if len(parts) < 4:
        return None

    year_str, lot, fmt, warehouse_id = parts[0], parts[1], parts[2], parts[3]
    if not year_str.isdecimal():
        return None

    try:
        year = int(year_str)
        if year <= 0:
            return None
        return Coordinate(year, lot, fmt, warehouse_id)
    except (ValidationError, ValueError) as e:
        logger.debug(f"Undecodable key {key!r}: {e}")
        return None


def slugify(name: str) -> str:
    """
    Derives a warehouse id from its display name.

    Trims, lowercases, then collapses every run of non-alphanumeric
    characters into a single hyphen ("Neci Nord!" -> "neci-nord-").

    Args:
        name: The user-supplied warehouse name.

    Returns:
        The slug (may be empty if the name had no usable characters).
    """
    return C.SLUG_INVALID_RUN_RE.sub("-", name.strip().lower())
