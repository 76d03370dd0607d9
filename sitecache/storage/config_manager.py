"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from sitecache.exceptions import ConfigurationError
from sitecache.models.config import WorkerConfig

log = logging.getLogger(__name__)

LIST_KEYS = ("static_assets", "allowed_origins", "static_extensions")


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> WorkerConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated WorkerConfig object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'sitecache init' first."
            )

        try:
            self._parser.read(self.config_file_path)
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        if self._migrate_if_needed():
            log.info(
                "[yellow]Configuration file was updated with new default values."
                "[/yellow]"
            )

        config_from_file = self.get_config_as_dict()

        if cli_options:
            config_from_file.update(cli_options)

        try:
            return WorkerConfig(**config_from_file)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save. Must contain 'origin'.
        """
        try:
            config = WorkerConfig(**settings)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

        parser = configparser.ConfigParser(interpolation=None)
        parser["DEFAULT"] = {
            key: _to_ini_value(getattr(config, key))
            for key in sorted(WorkerConfig.get_ini_keys())
        }

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                parser.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        values: dict[str, Any] = {}
        for key in WorkerConfig.get_ini_keys():
            if key not in section:
                continue
            raw = section.get(key, "")
            if key in LIST_KEYS:
                values[key] = [item.strip() for item in raw.split(",") if item.strip()]
            elif key == "timeout_seconds":
                values[key] = section.getfloat(key) if raw.strip() else None
            elif key == "skip_waiting_on_install":
                if raw.strip():
                    try:
                        values[key] = section.getboolean(key)
                    except ValueError as e:
                        raise ConfigurationError(
                            f"Invalid value for '{key}': {raw!r} ({e})"
                        ) from e
            else:
                values[key] = raw
        return values

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        section = self._parser["DEFAULT"]
        if "origin" not in section:
            # Without an origin no defaults can be validated; load_config reports it.
            return False

        defaults = WorkerConfig.model_construct(origin=section["origin"])
        needs_saving = False
        for key in WorkerConfig.get_ini_keys():
            if key not in section:
                section[key] = _to_ini_value(getattr(defaults, key))
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving


def _to_ini_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ",".join(map(str, value))
    return str(value)
