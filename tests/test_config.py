"""
Configuration loading
"""

from famvault.config import FamVaultSettings, get_settings, reload_settings


def test_defaults(tmp_path):
    settings = FamVaultSettings(data_dir=tmp_path / "data")

    assert settings.sweep_interval_seconds == 60
    assert settings.expiring_soon_days == 7
    assert settings.max_reason_length == 500
    assert settings.adult_age == 18
    assert settings.perms_explain is False


def test_data_dir_created(tmp_path):
    settings = FamVaultSettings(data_dir=tmp_path / "nested" / "data")

    assert settings.data_dir.is_dir()
    assert settings.db_path == tmp_path / "nested" / "data" / "famvault.db"


def test_env_override(tmp_path, monkeypatch):
    monkeypatch.setenv("FAMVAULT_DATA_DIR", str(tmp_path / "env"))
    monkeypatch.setenv("FAMVAULT_PERMS_EXPLAIN", "1")
    monkeypatch.setenv("FAMVAULT_SWEEP_INTERVAL_SECONDS", "15")

    settings = reload_settings()
    try:
        assert settings.perms_explain is True
        assert settings.sweep_interval_seconds == 15
        assert get_settings() is settings
    finally:
        monkeypatch.undo()
        get_settings.cache_clear()
