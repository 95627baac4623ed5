"""Models package for data structures used in the application."""

from src.models.component_results import ComponentResult, ItemResult, ReplayState, RevisionOutcome
from src.models.migration_error import AbortMigrationError, MigrationError

__all__ = [
    "AbortMigrationError",
    "ComponentResult",
    "ItemResult",
    "MigrationError",
    "ReplayState",
    "RevisionOutcome",
]
