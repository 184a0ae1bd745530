"""
Error taxonomy for the Oil Inventory engine.

All errors terminate at the user-facing message surface (Streamlit banner or
CLI output). None are retried automatically.
"""


class InventoryError(Exception):
    """Base class for every error raised by the inventory core."""


class ValidationError(InventoryError, ValueError):
    """User input failed a precondition. Raised before any mutation or I/O."""


class ImportHeaderError(ValidationError):
    """CSV header is missing one of the required columns; the import aborts."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required columns: {', '.join(missing)}")


class PersistError(InventoryError):
    """
    The backing store rejected a write.

    The optimistic in-memory value is NOT rolled back when this is raised.
    """


class FetchError(InventoryError):
    """Loading from the backing store failed; prior state is left untouched."""
