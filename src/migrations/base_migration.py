"""Base class for import components that run against the destination."""

from __future__ import annotations

from pathlib import Path

from src import config
from src.clients.work_item_client import WorkItemClient
from src.utils import data_handler


class BaseMigration:
    """Holds the destination client, the data directory and the shared logger.

    Subclasses implement ``run() -> ComponentResult``.
    """

    def __init__(self, client: WorkItemClient, data_dir: Path | None = None) -> None:
        """Initialize the migration.

        Args:
            client: Initialized destination client
            data_dir: Directory for result files (default: config.get_path("data"))

        """
        self.client = client
        self.data_dir: Path = data_dir if data_dir is not None else config.get_path("data")
        self.logger = config.logger

    def _save_to_json(self, data: object, filename: str) -> Path:
        """Write ``data`` (a model or plain JSON data) into the data directory.

        Raises:
            MigrationError: If the file cannot be written

        """
        return data_handler.save(data, filename, directory=self.data_dir)
