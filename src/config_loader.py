"""Configuration loader for the work item import.

Loads environment files, an optional YAML configuration file and validates the
result into ``ImportSettings``.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from src.settings import ImportSettings

config_logger = logging.getLogger("config_loader")

DEFAULT_CONFIG_FILE = Path("config/config.yaml")


def is_test_environment() -> bool:
    """Detect if code is running in a test environment.

    Returns:
        bool: True if running under pytest or with WI_TEST_MODE set

    """
    if "PYTEST_CURRENT_TEST" in os.environ:
        return True

    return os.environ.get("WI_TEST_MODE", "").lower() in ("true", "1", "yes")


class ConfigLoader:
    """Loads and provides access to the import settings."""

    def __init__(self, config_file_path: Path | None = None) -> None:
        """Initialize the configuration loader.

        Args:
            config_file_path: Path to the YAML configuration file (optional;
                ``config/config.yaml`` is used when it exists)

        """
        self._load_environment_configuration()

        if config_file_path is None and DEFAULT_CONFIG_FILE.exists():
            config_file_path = DEFAULT_CONFIG_FILE

        self.yaml_config: dict[str, Any] = {}
        if config_file_path is not None:
            self.yaml_config = self._load_yaml_config(config_file_path)

        self.settings = self._build_settings(self.yaml_config)

    def _load_environment_configuration(self) -> None:
        """Load environment variables from .env files based on execution context.

        The loading order respects precedence:
        - .env (base config for all environments)
        - .env.local (local development overrides, if present)
        - .env.test (test-specific config, if in test environment)

        Later files override values from earlier files.
        """
        load_dotenv(".env")
        config_logger.debug("Loaded base environment from .env")

        if Path(".env.local").exists():
            load_dotenv(".env.local", override=True)
            config_logger.debug("Loaded local overrides from .env.local")

        if is_test_environment() and Path(".env.test").exists():
            load_dotenv(".env.test", override=True)
            config_logger.debug("Loaded test environment from .env.test")

    def _load_yaml_config(self, config_file_path: Path) -> dict[str, Any]:
        """Load configuration from a YAML file.

        Settings may sit at the top level or under an ``import`` section.

        Raises:
            FileNotFoundError: If the file does not exist

        """
        try:
            with config_file_path.open("r", encoding="utf-8") as config_file:
                loaded = yaml.safe_load(config_file) or {}
        except FileNotFoundError:
            config_logger.exception("Config file not found: %s", config_file_path)
            raise

        if not isinstance(loaded, dict):
            msg = f"Config file {config_file_path} must contain a mapping"
            raise ValueError(msg)

        section = loaded.get("import", loaded)
        config_logger.debug("Loaded %d settings from %s", len(section), config_file_path)
        return dict(section)

    def _build_settings(self, overrides: dict[str, Any]) -> ImportSettings:
        """Validate settings; YAML values take precedence over the environment."""
        try:
            return ImportSettings(**overrides)
        except ValidationError:
            config_logger.exception("Invalid import configuration")
            raise

    def get_settings(self) -> ImportSettings:
        """Get the validated settings."""
        return self.settings

    def get_value(self, key: str, default: Any = None) -> Any:
        """Get a specific setting value."""
        return getattr(self.settings, key, default)
