import pytest

from vault_hwi.settings import Settings, SettingsValidationError, parse_address


def test_defaults(settings):
    assert settings.NETWORK_SIGNER_ADDRESS == "127.0.0.1:8080"
    assert settings.SIMULATOR_ADDRESS == "127.0.0.1:8789"
    assert (settings.SERIAL_VID, settings.SERIAL_PID) == (61525, 38914)
    assert settings.SERIAL_BAUD_RATE == 9600
    assert settings.HWI_CALL_TIMEOUT_SEC is None
    assert settings.to_dict()["HWI_DISCOVERY_ORDER"] == ["network_signer", "simulator", "serial"]


def test_env_overrides(settings, monkeypatch):
    monkeypatch.setenv("SERIAL_VID", "0xF055")
    monkeypatch.setenv("HWI_CALL_TIMEOUT_SEC", "2.5")
    monkeypatch.setenv("HWI_DISCOVERY_ORDER", " Simulator , network_signer ")
    s = Settings()
    assert s.SERIAL_VID == 0xF055
    assert s.HWI_CALL_TIMEOUT_SEC == 2.5
    assert s.HWI_DISCOVERY_ORDER == ("simulator", "network_signer")


@pytest.mark.parametrize(
    "name,value",
    [
        ("NETWORK_SIGNER_ADDRESS", "localhost"),
        ("SIMULATOR_ADDRESS", "127.0.0.1:99999"),
        ("SERIAL_PID", "70000"),
        ("HWI_DISCOVERY_ORDER", "bluetooth"),
        ("HWI_DISCOVERY_ORDER", "serial,serial"),
        ("HWI_CALL_TIMEOUT_SEC", "-1"),
    ],
)
def test_invalid_values_fail_at_startup(settings, monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(SettingsValidationError):
        Settings()


def test_parse_address():
    assert parse_address("127.0.0.1:8080") == ("127.0.0.1", 8080)
    assert parse_address("[::1]:8789") == ("::1", 8789)
    with pytest.raises(ValueError):
        parse_address(":8080")
    with pytest.raises(ValueError):
        parse_address("host:port")
