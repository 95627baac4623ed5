"""Component result models for tracking import operations."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ReplayState(str, Enum):
    """Replay state of one work item."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED_FATAL = "aborted_fatal"


class RevisionOutcome(str, Enum):
    """What happened to a single revision."""

    SKIPPED = "skipped"
    IMPORTED = "imported"
    INCOMPLETE = "incomplete"
    FAILED = "failed"


class ItemResult(BaseModel):
    """Represents the replay result of one source work item."""

    origin_id: str
    wi_id: int | None = None
    state: ReplayState = ReplayState.NOT_STARTED
    last_index: int | None = None
    imported: int = 0
    skipped: int = 0
    incomplete: int = 0
    error: str | None = None

    def record(self, index: int, outcome: RevisionOutcome) -> None:
        """Account for one revision outcome."""
        self.last_index = index
        match outcome:
            case RevisionOutcome.SKIPPED:
                self.skipped += 1
            case RevisionOutcome.IMPORTED:
                self.imported += 1
            case RevisionOutcome.INCOMPLETE:
                self.imported += 1
                self.incomplete += 1
            case RevisionOutcome.FAILED:
                self.state = ReplayState.FAILED


class ComponentResult(BaseModel):
    """Represents the result of a migration component."""

    success: bool = False
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    items: dict[str, ItemResult] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    success_count: int = 0
    failed_count: int = 0
    total_count: int = 0

    def add_error(self, error: str) -> None:
        """Add an error message to the errors list."""
        self.errors.append(error)

    def add_warning(self, warning: str) -> None:
        """Add a warning message to the warnings list."""
        self.warnings.append(warning)

    def add_item(self, item: ItemResult) -> None:
        """Store an item result and update the counters."""
        self.items[item.origin_id] = item
        self.total_count = len(self.items)
        self.success_count = sum(1 for i in self.items.values() if i.state == ReplayState.COMPLETED)
        self.failed_count = sum(
            1 for i in self.items.values() if i.state in (ReplayState.FAILED, ReplayState.ABORTED_FATAL)
        )
        if item.error:
            self.add_error(f"{item.origin_id}: {item.error}")
        if item.incomplete:
            self.add_warning(f"{item.origin_id}: {item.incomplete} revision(s) imported incompletely")

    def __setitem__(self, key: str, value: Any) -> None:
        """Support dictionary-style item assignment."""
        self.details[key] = value

    def __getitem__(self, key: str) -> Any:
        """Support dictionary-style item access."""
        return self.details[key]

    def __contains__(self, key: str) -> bool:
        """Support 'in' operator."""
        return key in self.details
