"""Data handler module for serialization and deserialization of data.

This module provides a consistent interface for loading exported work item
histories and saving results, with special handling for Pydantic models.
"""

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from src import config
from src.models.migration_error import MigrationError
from src.models.revision import WiItem


def _json_default(value: Any) -> Any:
    """Best-effort encoder for non-JSON-native objects.

    - Convert pathlib.Path to str
    - Convert Pydantic models to dict
    - Fallback to string representation for unknown objects
    """
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return str(value)


def save(
    data: Any,
    filename: str | Path,
    directory: str | Path | None = None,
    indent: int = 2,
    ensure_ascii: bool = False,
) -> Path:
    """Save data to a JSON file, automatically handling Pydantic models.

    Args:
        data: The data to save (Pydantic model or any JSON-serializable data)
        filename: Name of the file to save
        directory: Directory to save to (default: config.get_path("data"))
        indent: JSON indentation level
        ensure_ascii: Whether to escape non-ASCII characters

    Returns:
        Path of the written file

    Raises:
        MigrationError: If saving fails

    """
    if directory is None:
        directory = config.get_path("data")

    directory = Path(directory)
    filename = Path(filename)

    # Make sure we're just using the filename part if a full path was provided
    if len(filename.parts) > 1:
        filename = Path(filename.name)

    filepath = directory / filename
    filepath.parent.mkdir(parents=True, exist_ok=True)

    try:
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json")

        with filepath.open("w", encoding="utf-8") as f:
            json.dump(
                data,
                f,
                indent=indent,
                ensure_ascii=ensure_ascii,
                default=_json_default,
            )

        config.logger.info("Saved data to %s", filepath)
    except Exception as e:
        msg = f"Failed to save data to {filepath}"
        raise MigrationError(msg) from e

    return filepath


def load_item(filepath: Path) -> WiItem:
    """Load one exported work item history.

    Raises:
        FileNotFoundError: If the file doesn't exist
        MigrationError: If the file is not a valid work item history

    """
    try:
        with filepath.open("r", encoding="utf-8") as f:
            return WiItem.model_validate_json(f.read())
    except FileNotFoundError:
        raise
    except ValidationError as e:
        msg = f"Invalid work item history in {filepath}: {e.error_count()} validation error(s)"
        raise MigrationError(msg) from e


def load_items(directory: Path, *, strict: bool = False) -> list[WiItem]:
    """Load every ``*.json`` work item history found in ``directory``.

    Invalid files are logged and skipped unless ``strict`` is set.

    Raises:
        FileNotFoundError: If the directory doesn't exist
        MigrationError: In strict mode, for the first invalid file

    """
    if not directory.is_dir():
        msg = f"Work item directory not found: {directory}"
        raise FileNotFoundError(msg)

    items: list[WiItem] = []
    seen: set[str] = set()
    for filepath in sorted(directory.glob("*.json")):
        try:
            item = load_item(filepath)
        except MigrationError as e:
            if strict:
                raise
            config.logger.error("%s", e.message)
            continue

        if item.origin_id in seen:
            config.logger.warning("Duplicate history for '%s' in %s ignored", item.origin_id, filepath.name)
            continue
        seen.add(item.origin_id)
        items.append(item)

    config.logger.info("Loaded %d work item histories from %s", len(items), directory)
    return items
