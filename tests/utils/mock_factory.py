"""Factory functions for creating consistent test doubles for testing."""

from __future__ import annotations

import itertools
import threading
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from src.clients.exceptions import FileAttachmentError, RecordNotFoundError
from src.clients.work_item_client import ClassificationNode, TreeStructureGroup
from src.models.revision import WiAttachment, WiField, WiItem, WiLink, WiRevision
from src.models.work_item import Attachment, LinkType, WorkItem

UTC = timezone.utc
BASE_TIME = datetime(2023, 1, 2, 9, 0, tzinfo=UTC)
ATTACHMENT_URL = "https://dev.example.com/_apis/wit/attachments"


def default_link_types() -> list[LinkType]:
    """Link types of a default Agile project."""
    return [
        LinkType.directional(
            "System.LinkTypes.Hierarchy",
            "Child",
            "Parent",
            non_circular=True,
        ),
        LinkType.directional(
            "System.LinkTypes.Dependency",
            "Successor",
            "Predecessor",
            non_circular=True,
        ),
        LinkType.directional("System.LinkTypes.Duplicate", "Duplicate", "Duplicate Of"),
        LinkType.non_directional("System.LinkTypes.Related", "Related"),
    ]


def snapshot(wi: WorkItem) -> WorkItem:
    """Copy a work item the way a client would return it after a fetch."""
    copy = WorkItem(
        type_name=wi.type_name,
        project=wi.project,
        id=wi.id,
        fields=dict(wi.fields),
        links=list(wi.links),
        attachments=[Attachment(a.file_path, a.comment, a.id, a.url) for a in wi.attachments],
        known_fields=wi.known_fields,
    )
    copy.mark_saved()
    return copy


class InMemoryWorkItemClient:
    """Destination client that keeps everything in memory.

    Attachments whose file name is listed in ``reject_attachments`` fail to
    upload with ``FileAttachmentError``. ``fail_saves`` makes the next saves
    raise the given exception.
    """

    def __init__(
        self,
        project: str = "Test",
        link_types: list[LinkType] | None = None,
        known_fields: frozenset[str] | None = None,
    ) -> None:
        self.project = project
        self.link_types = link_types if link_types is not None else default_link_types()
        self.known_fields = known_fields
        self.work_items: dict[int, WorkItem] = {}
        self.trees = {
            TreeStructureGroup.ITERATIONS: ClassificationNode(1, project),
            TreeStructureGroup.AREAS: ClassificationNode(2, project),
        }
        self.created_nodes: list[tuple[TreeStructureGroup, str, str]] = []
        self.refresh_count = 0
        self.save_count = 0
        self.get_count = 0
        self.reject_attachments: set[str] = set()
        self.fail_saves: list[Exception] = []
        self.fail_node_creation: set[str] = set()
        self._ids = itertools.count(1)
        self._node_ids = itertools.count(100)
        self._attachment_ids = itertools.count(1)
        self._lock = threading.Lock()

    # ----- work items -----

    def create_work_item(self, type_name: str) -> WorkItem:
        return WorkItem(type_name=type_name, project=self.project, known_fields=self.known_fields)

    def get_work_item(self, wi_id: int) -> WorkItem:
        with self._lock:
            self.get_count += 1
            if wi_id not in self.work_items:
                msg = f"Work item {wi_id} not found"
                raise RecordNotFoundError(msg)
            return snapshot(self.work_items[wi_id])

    def save_work_item(self, work_item: WorkItem) -> None:
        with self._lock:
            if self.fail_saves:
                raise self.fail_saves.pop(0)

            for att in work_item.added_attachments():
                if att.name in self.reject_attachments:
                    msg = f"Attachment {att.name} exceeds the maximum size"
                    raise FileAttachmentError(msg, att)
                if att.id is None:
                    att.id = f"att-{next(self._attachment_ids)}"
                    att.url = f"{ATTACHMENT_URL}/{att.id}"

            if work_item.id is None:
                work_item.id = next(self._ids)
            work_item.mark_saved()
            self.work_items[work_item.id] = snapshot(work_item)
            self.save_count += 1

    def add_work_item(self, type_name: str = "Task", **fields: Any) -> WorkItem:
        """Store a work item directly, bypassing the importer."""
        wi = self.create_work_item(type_name)
        wi.fields.update(fields)
        self.save_work_item(wi)
        return wi

    # ----- metadata -----

    def get_link_types(self) -> list[LinkType]:
        return list(self.link_types)

    def get_classification_tree(self, group: TreeStructureGroup) -> ClassificationNode:
        return self.trees[group]

    def add_node(self, group: TreeStructureGroup, path: str) -> ClassificationNode:
        """Create nodes for ``path`` without recording them as importer calls."""
        node = self.trees[group]
        for name in path.split("/"):
            child = next((c for c in node.children if c.name == name), None)
            if child is None:
                child = ClassificationNode(next(self._node_ids), name)
                node.children.append(child)
            node = child
        return node

    def create_classification_node(
        self,
        group: TreeStructureGroup,
        name: str,
        parent_path: str,
    ) -> ClassificationNode:
        with self._lock:
            self.created_nodes.append((group, name, parent_path))
            if name in self.fail_node_creation:
                msg = f"Node '{name}' could not be created"
                raise RuntimeError(msg)

            parent = self.trees[group]
            for segment in filter(None, parent_path.split("/")):
                parent = next(c for c in parent.children if c.name == segment)
            node = ClassificationNode(next(self._node_ids), name)
            parent.children.append(node)
            return node

    def refresh_metadata(self) -> None:
        self.refresh_count += 1


class InMemoryJournal:
    """``IdentifierJournal`` backed by dictionaries."""

    def __init__(self) -> None:
        self.revisions: dict[tuple[str, int], int] = {}
        self.targets: dict[str, int] = {}
        self.attachments: dict[str, str] = {}

    def is_revision_processed(self, origin_id: str, index: int) -> bool:
        return (origin_id, index) in self.revisions

    def mark_revision_processed(self, origin_id: str, wi_id: int, index: int) -> None:
        self.revisions[(origin_id, index)] = wi_id
        self.targets[origin_id] = wi_id

    def resolve_destination_id(self, origin_id: str) -> int | None:
        return self.targets.get(origin_id)

    def is_attachment_migrated(self, att_origin_id: str) -> str | None:
        return self.attachments.get(att_origin_id)

    def mark_attachment_processed(self, att_origin_id: str, att_id: str) -> None:
        self.attachments[att_origin_id] = att_id


# ----- source history builders -----


def make_revision(
    origin_id: str,
    index: int,
    *,
    time: datetime | None = None,
    author: str = "Alice Example",
    fields: dict[str, Any] | None = None,
    links: Iterable[WiLink] = (),
    attachments: Iterable[WiAttachment] = (),
    attachment_references: bool = False,
) -> WiRevision:
    """Build a revision; the default time advances one hour per index."""
    return WiRevision(
        parent_origin_id=origin_id,
        index=index,
        time=time or BASE_TIME + timedelta(hours=index),
        author=author,
        fields=tuple(WiField(reference_name=k, value=v) for k, v in (fields or {}).items()),
        links=tuple(links),
        attachments=tuple(attachments),
        attachment_references=attachment_references,
    )


def make_item(origin_id: str, revisions: list[WiRevision], type_name: str = "Task") -> WiItem:
    return WiItem(origin_id=origin_id, type=type_name, revisions=revisions)


def added_link(source: str, target: str, wi_type: str = "System.LinkTypes.Related") -> WiLink:
    return WiLink(change="Added", wi_type=wi_type, source_origin_id=source, target_origin_id=target)


def removed_link(source: str, target: str, wi_type: str = "System.LinkTypes.Related") -> WiLink:
    return WiLink(change="Removed", wi_type=wi_type, source_origin_id=source, target_origin_id=target)


def added_attachment(att_origin_id: str, file_path: str, comment: str = "") -> WiAttachment:
    return WiAttachment(change="Added", att_origin_id=att_origin_id, file_path=file_path, comment=comment)


def removed_attachment(att_origin_id: str, file_path: str) -> WiAttachment:
    return WiAttachment(change="Removed", att_origin_id=att_origin_id, file_path=file_path)
