"""Import orchestration: agent initialization and the import run.

``initialize_agent`` connects to the destination, makes sure the project exists
and caches both classification trees. ``run_migration`` loads the exported
histories and replays them with ``WorkItemImportMigration``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from src import config
from src.clients.azure_devops_client import AzureDevOpsClient
from src.clients.exceptions import ClientError
from src.display import console
from src.mappings.classification_cache import ClassificationResolver
from src.mappings.journal import MigrationJournal
from src.migrations.migration_context import MigrationContext
from src.migrations.revision_replayer import RevisionReplayer
from src.migrations.work_item_import_migration import WorkItemImportMigration
from src.models import ComponentResult
from src.settings import ImportSettings
from src.utils import data_handler
from src.utils.attachment_correlator import AttachmentCorrelator
from src.utils.link_resolver import LinkResolver


@dataclass
class ImportAgent:
    """Connected destination with its project and classification caches."""

    client: AzureDevOpsClient
    project: dict[str, Any]
    classifications: ClassificationResolver


def initialize_agent(settings: ImportSettings, client: AzureDevOpsClient | None = None) -> ImportAgent | None:
    """Connect to the destination and prepare the caches the import needs.

    Returns:
        The agent, or None when the project or a classification tree is unavailable

    """
    client = client or AzureDevOpsClient(settings)

    try:
        project = client.get_or_create_project()
    except ClientError as e:
        config.logger.critical("Cannot connect to %s: %s", settings.account, e)
        return None
    if project is None:
        config.logger.critical("Project '%s' is not available", settings.project)
        return None

    classifications = ClassificationResolver.build(client)
    if classifications is None:
        return None

    config.logger.success("Connected to project '%s'", settings.project)
    return ImportAgent(client=client, project=project, classifications=classifications)


def _items_dir(settings: ImportSettings) -> Path:
    if settings.items_dir is not None:
        return Path(settings.items_dir)
    return config.get_path("data") / "items"


def run_migration(
    settings: ImportSettings | None = None,
    agent: ImportAgent | None = None,
    *,
    show_progress: bool = True,
) -> ComponentResult:
    """Run the full import and return its result."""
    settings = settings or config.settings

    console.rule("[bold blue]Work item import")
    try:
        items = data_handler.load_items(_items_dir(settings))
    except FileNotFoundError as e:
        config.logger.error("%s", e)
        return ComponentResult(success=False, message=str(e), errors=[str(e)])

    journal = MigrationJournal(config.get_path("data") / settings.journal_file)
    context = MigrationContext(items, journal)

    agent = agent or initialize_agent(settings)
    if agent is None:
        msg = "Import agent could not be initialized"
        return ComponentResult(success=False, message=msg, errors=[msg])

    links = LinkResolver.from_client(agent.client, journal, ignore_failed_links=settings.ignore_failed_links)
    attachments = AttachmentCorrelator(journal, settings.attachments_dir)
    replayer = RevisionReplayer(
        agent.client,
        journal,
        agent.classifications,
        attachments,
        links,
        context.get_item,
        project=settings.project,
        base_area_path=settings.base_area_path,
        base_iteration_path=settings.base_iteration_path,
    )

    migration = WorkItemImportMigration(
        agent.client,
        context,
        replayer,
        parallel_workers=settings.parallel_workers,
        show_progress=show_progress,
    )
    result = migration.run()
    console.rule(f"[bold]{result.message}")
    return result
