"""Configuration module for the work item import.

Provides a centralized configuration interface using ConfigLoader.
"""

from pathlib import Path
from typing import Any

from src.config_loader import ConfigLoader
from src.display import configure_logging
from src.settings import ImportSettings
from src.type_definitions import DirType, LogLevel

# Create a singleton instance of ConfigLoader
_config_loader = ConfigLoader()

settings: ImportSettings = _config_loader.get_settings()

# Set up the var directory structure
root_dir = Path(__file__).parent.parent
var_dir = root_dir / "var"

# Define all var directories
var_dirs: dict[DirType, Path] = {
    "root": var_dir,
    "attachments": var_dir / "attachments",
    "data": var_dir / "data",
    "logs": var_dir / "logs",
}

# Create all var directories
created_dirs = []
for dir_path in var_dirs.values():
    dir_existed = dir_path.exists()
    dir_path.mkdir(parents=True, exist_ok=True)
    if not dir_existed:
        created_dirs.append(f"Created directory: {dir_path}")
    else:
        created_dirs.append(f"Using existing directory: {dir_path}")

# Set up logging with rich
LOG_LEVEL: LogLevel = settings.log_level  # type: ignore[assignment]
log_file = var_dirs["logs"] / "import.log"
logger = configure_logging(LOG_LEVEL, str(log_file))

for message in created_dirs:
    logger.debug(message)


def get_path(path_type: DirType) -> Path:
    """Get a specific path from var_dirs."""
    if path_type not in var_dirs:
        msg = f"Invalid path type: {path_type}"
        raise ValueError(msg)

    return var_dirs[path_type]


def reload_settings(config_file_path: Path | None = None) -> ImportSettings:
    """Reload settings, e.g. after the CLI selected a different YAML file."""
    global _config_loader, settings
    _config_loader = ConfigLoader(config_file_path)
    settings = _config_loader.get_settings()
    return settings


def update_from_cli_args(args: Any) -> ImportSettings:
    """Update import settings from CLI arguments.

    Args:
        args: An object containing CLI arguments (typically from argparse)

    Returns:
        The updated settings instance

    """
    global settings
    updates: dict[str, Any] = {}

    if getattr(args, "items_dir", None):
        updates["items_dir"] = Path(args.items_dir)
        logger.debug("Setting items_dir=%s from CLI arguments", args.items_dir)

    if getattr(args, "parallel", None):
        updates["parallel_workers"] = int(args.parallel)
        logger.debug("Setting parallel_workers=%s from CLI arguments", args.parallel)

    if getattr(args, "ignore_failed_links", False):
        updates["ignore_failed_links"] = True
        logger.debug("Setting ignore_failed_links=True from CLI arguments")

    if getattr(args, "no_confirm", False):
        updates["no_confirm"] = True
        logger.debug("Setting no_confirm=True from CLI arguments")

    if getattr(args, "log_level", None):
        updates["log_level"] = str(args.log_level).upper()

    if updates:
        settings = ImportSettings(**{**settings.model_dump(), **updates})
    if "log_level" in updates:
        configure_logging(settings.log_level, str(log_file))
    return settings
