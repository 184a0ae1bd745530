"""
Runtime configuration.

Settings come from environment variables. Secrets (service account
credentials) are never read here: the Streamlit app takes them from
`st.secrets`, the CLI from a credentials file path.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass

BACKENDS = ("memory", "sheets")

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    """
    Attributes:
        backend: "memory" (demo / offline) or "sheets" (Google Sheets).
        spreadsheet: Name of the spreadsheet holding the inventory tabs.
        credentials_file: Service account JSON path (CLI only).
        teams_enabled: Scope all reads/writes to the selected team.
        require_login: Gate the app behind Streamlit authentication.
        log_level: Root log level for the CLI.
    """

    backend: str = "memory"
    spreadsheet: str = "Oil Inventory"
    credentials_file: str | None = None
    teams_enabled: bool = False
    require_login: bool = False
    log_level: str = "INFO"


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """
    Builds Settings from the environment.

    Args:
        env: Mapping to read from (defaults to `os.environ`).

    Raises:
        ValueError: If OIL_INVENTORY_BACKEND names an unknown backend.
    """
    env = os.environ if env is None else env

    backend = env.get("OIL_INVENTORY_BACKEND", "memory").strip().lower()
    if backend not in BACKENDS:
        raise ValueError(
            f"Unknown backend {backend!r} (expected one of: {', '.join(BACKENDS)})"
        )

    return Settings(
        backend=backend,
        spreadsheet=env.get("OIL_INVENTORY_SPREADSHEET", "Oil Inventory"),
        credentials_file=env.get("OIL_INVENTORY_CREDENTIALS") or None,
        teams_enabled=_flag(env.get("OIL_INVENTORY_TEAMS")),
        require_login=_flag(env.get("OIL_INVENTORY_REQUIRE_LOGIN")),
        log_level=env.get("OIL_INVENTORY_LOG_LEVEL", "INFO").upper(),
    )
