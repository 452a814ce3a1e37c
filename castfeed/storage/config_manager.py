"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from castfeed.exceptions import ConfigurationError
from castfeed.models.config import AppConfig

log = logging.getLogger(__name__)

# Environment variables that override values from the config file.
ENV_OVERRIDES = {
    "CASTFEED_API_BASE_URL": "api_base_url",
    "CASTFEED_API_KEY": "api_key",
    "CASTFEED_SUPABASE_URL": "supabase_url",
    "CASTFEED_SUPABASE_ANON_KEY": "supabase_anon_key",
}

INT_KEYS = {"request_timeout", "retry_attempts", "page_size"}
FLOAT_KEYS = {"retry_base_delay"}


def _defaults() -> AppConfig:
    return AppConfig.model_construct(config_path="")


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(
        self,
        cli_options: Optional[dict[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> AppConfig:
        """
        Loads the INI file, applies environment and CLI overrides, and validates.

        Args:
            cli_options: Options given on the command line; None values are ignored.
            environ: Environment to read overrides from (defaults to os.environ).

        Raises:
            ConfigurationError: If the file is missing or invalid, or validation
            fails.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'castfeed init' first."
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        if self._migrate_if_needed():
            log.info(
                "[yellow]Configuration file was updated with new default values."
                "[/yellow]"
            )

        settings = self._get_config_as_dict()
        settings.update(self._env_overrides(os.environ if environ is None else environ))
        if cli_options:
            settings.update({k: v for k, v in cli_options.items() if v is not None})

        try:
            return AppConfig(**settings, config_path=str(self.config_file_path.parent))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    @staticmethod
    def _env_overrides(environ: Mapping[str, str]) -> dict[str, str]:
        overrides = {}
        for env_name, key in ENV_OVERRIDES.items():
            value = environ.get(env_name)
            if value:
                log.debug(f"Using {env_name} for '{key}'.")
                overrides[key] = value
        return overrides

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save; missing keys get defaults.
        """
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}
        defaults = _defaults()

        for key in sorted(AppConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            if value is not None:
                config["DEFAULT"][key] = str(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        settings: dict[str, Any] = {}
        for key in AppConfig.get_ini_keys():
            if key not in section:
                continue
            try:
                if key in INT_KEYS:
                    settings[key] = section.getint(key)
                elif key in FLOAT_KEYS:
                    settings[key] = section.getfloat(key)
                else:
                    settings[key] = section.get(key) or None
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for '{key}': {e}") from e
        # Optional string fields are left out so their defaults apply.
        return {k: v for k, v in settings.items() if v is not None}

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = _defaults()
        config_section = self._parser["DEFAULT"]
        needs_saving = False

        for key in sorted(AppConfig.get_ini_keys()):
            if key in config_section:
                continue
            default_value = getattr(defaults, key)
            config_section[key] = "" if default_value is None else str(default_value)
            needs_saving = True
            log.debug(
                f"Migrating config: added missing key '{key}' with "
                f"value '{config_section[key]}'."
            )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
