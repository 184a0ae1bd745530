import pytest

from src.oil_inventory import Settings, load_settings


def test_defaults_from_empty_environment():
    assert load_settings({}) == Settings()


def test_environment_overrides():
    settings = load_settings(
        {
            "OIL_INVENTORY_BACKEND": " Sheets ",
            "OIL_INVENTORY_SPREADSHEET": "Frantoio 2024",
            "OIL_INVENTORY_CREDENTIALS": "/etc/sa.json",
            "OIL_INVENTORY_TEAMS": "yes",
            "OIL_INVENTORY_REQUIRE_LOGIN": "1",
            "OIL_INVENTORY_LOG_LEVEL": "debug",
        }
    )
    assert settings.backend == "sheets"
    assert settings.spreadsheet == "Frantoio 2024"
    assert settings.credentials_file == "/etc/sa.json"
    assert settings.teams_enabled is True
    assert settings.require_login is True
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("flag", ["", "0", "no", "off", "maybe"])
def test_flags_default_off(flag):
    assert load_settings({"OIL_INVENTORY_TEAMS": flag}).teams_enabled is False


def test_unknown_backend_rejected():
    with pytest.raises(ValueError, match="Unknown backend"):
        load_settings({"OIL_INVENTORY_BACKEND": "postgres"})
