import pytest

from sitecache.exceptions import ConfigurationError
from sitecache.models.config import DEFAULT_STATIC_ASSETS
from sitecache.storage.config_manager import ConfigManager


@pytest.fixture
def manager(tmp_path):
    return ConfigManager(tmp_path / "sitecache" / "config.ini")


def test_save_and_load(manager):
    manager.save_new_config(
        {"origin": "https://example.com", "version": "3", "timeout_seconds": 2.5}
    )
    config = manager.load_config()

    assert config.origin == "https://example.com"
    assert config.version == "3"
    assert config.timeout_seconds == 2.5
    assert config.static_assets == DEFAULT_STATIC_ASSETS
    assert config.skip_waiting_on_install is True


def test_missing_file_is_reported(manager):
    with pytest.raises(ConfigurationError, match="sitecache init"):
        manager.load_config()


def test_invalid_settings_are_not_saved(manager):
    with pytest.raises(ConfigurationError):
        manager.save_new_config({"origin": "not a url"})
    assert not manager.config_file_path.exists()


def test_cli_options_override_file(manager):
    manager.save_new_config({"origin": "https://example.com"})
    config = manager.load_config({"version": "9", "skip_waiting_on_install": False})
    assert config.static_cache_name == "static-v9"
    assert config.skip_waiting_on_install is False


def test_missing_keys_are_migrated(manager):
    manager.config_file_path.parent.mkdir(parents=True)
    manager.config_file_path.write_text(
        "[DEFAULT]\norigin = https://example.com\nversion = 2\n", encoding="utf-8"
    )
    config = manager.load_config()

    assert config.version == "2"
    assert config.offline_document == "/index.html"
    text = manager.config_file_path.read_text(encoding="utf-8")
    assert "static_assets" in text
    assert "skip_waiting_on_install = true" in text


def test_empty_timeout_means_none(manager):
    manager.save_new_config({"origin": "https://example.com"})
    assert manager.load_config().timeout_seconds is None


def test_invalid_file_values_raise(manager):
    manager.config_file_path.parent.mkdir(parents=True)
    manager.config_file_path.write_text(
        "[DEFAULT]\norigin = https://example.com\nstatic_assets = index.html\n",
        encoding="utf-8",
    )
    with pytest.raises(ConfigurationError, match="validation failed"):
        manager.load_config()


def test_blank_boolean_uses_default(manager):
    manager.save_new_config({"origin": "https://example.com"})
    text = manager.config_file_path.read_text(encoding="utf-8")
    manager.config_file_path.write_text(
        text.replace("skip_waiting_on_install = true", "skip_waiting_on_install ="),
        encoding="utf-8",
    )
    assert manager.load_config().skip_waiting_on_install is True


def test_invalid_boolean_raises_configuration_error(manager):
    manager.save_new_config({"origin": "https://example.com"})
    text = manager.config_file_path.read_text(encoding="utf-8")
    manager.config_file_path.write_text(
        text.replace("skip_waiting_on_install = true", "skip_waiting_on_install = maybe"),
        encoding="utf-8",
    )
    with pytest.raises(ConfigurationError, match="skip_waiting_on_install"):
        manager.load_config()
