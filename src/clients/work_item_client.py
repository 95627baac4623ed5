"""Destination work-tracking client contract.

The replay components only talk to the destination through this protocol, so
any transport (REST, SOAP, an in-memory store in tests) can be plugged in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from src.models.work_item import LinkType, WorkItem


class TreeStructureGroup(str, Enum):
    """The two classification hierarchies of a project."""

    ITERATIONS = "Iterations"
    AREAS = "Areas"

    @property
    def label(self) -> str:
        return "iteration" if self is TreeStructureGroup.ITERATIONS else "area"


@dataclass
class ClassificationNode:
    """A node of a destination classification tree."""

    id: int
    name: str
    children: list[ClassificationNode] = field(default_factory=list)


class WorkItemClient(Protocol):
    """Operations the importer needs from the destination system."""

    def create_work_item(self, type_name: str) -> WorkItem:
        """Return a new, unsaved work item of the given type."""
        ...

    def get_work_item(self, wi_id: int) -> WorkItem:
        """Fetch a work item with its fields, links and attachments.

        Raises:
            RecordNotFoundError: If the work item does not exist

        """
        ...

    def save_work_item(self, work_item: WorkItem) -> None:
        """Persist the work item with merge semantics.

        Assigns ``work_item.id`` on first save and ids/urls of new attachments.

        Raises:
            FileAttachmentError: If the destination rejects one attachment
            ClientError: For any other failure

        """
        ...

    def get_link_types(self) -> list[LinkType]:
        """List link types with their directionality and circularity flag."""
        ...

    def get_classification_tree(self, group: TreeStructureGroup) -> ClassificationNode:
        """Return the root node of a classification tree with all descendants."""
        ...

    def create_classification_node(
        self,
        group: TreeStructureGroup,
        name: str,
        parent_path: str,
    ) -> ClassificationNode:
        """Create (or update) a node named ``name`` under ``parent_path``.

        ``parent_path`` is '/'-delimited and relative to the tree root; an empty
        string creates a top-level node.
        """
        ...

    def refresh_metadata(self) -> None:
        """Drop cached metadata that depends on the classification trees."""
        ...
