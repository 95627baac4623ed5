"""Destination-side work item handle and link type metadata.

A ``WorkItem`` is a mutable snapshot of one destination work item. Clients
load it, the replayer mutates it, and the client persists the difference
between the snapshot and its last saved baseline.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from src.clients.exceptions import FieldNotFoundError

# Reference names of the fields the importer treats specially.
AREA_PATH = "System.AreaPath"
ITERATION_PATH = "System.IterationPath"
ASSIGNED_TO = "System.AssignedTo"
CREATED_BY = "System.CreatedBy"
CHANGED_BY = "System.ChangedBy"
CREATED_DATE = "System.CreatedDate"
CHANGED_DATE = "System.ChangedDate"
HISTORY = "System.History"
DESCRIPTION = "System.Description"
TITLE = "System.Title"
REPRO_STEPS = "Microsoft.VSTS.TCM.ReproSteps"


@dataclass(frozen=True, slots=True)
class LinkTypeEnd:
    """One directional role of a link type (e.g. Hierarchy-Forward / Child)."""

    immutable_name: str
    name: str
    link_type_name: str
    is_forward: bool = True


@dataclass(frozen=True, slots=True)
class LinkType:
    """A destination link type with its ends."""

    reference_name: str
    name: str
    forward_end: LinkTypeEnd
    reverse_end: LinkTypeEnd
    is_directional: bool = False
    is_non_circular: bool = False

    def opposite_end(self, end: LinkTypeEnd) -> LinkTypeEnd:
        """Return the other end of the link type."""
        if not self.is_directional:
            return self.forward_end
        return self.reverse_end if end.is_forward else self.forward_end

    @classmethod
    def non_directional(cls, reference_name: str, name: str) -> LinkType:
        end = LinkTypeEnd(reference_name, name, reference_name)
        return cls(reference_name, name, end, end)

    @classmethod
    def directional(
        cls,
        reference_name: str,
        forward_name: str,
        reverse_name: str,
        *,
        non_circular: bool = False,
    ) -> LinkType:
        forward = LinkTypeEnd(f"{reference_name}-Forward", forward_name, reference_name, is_forward=True)
        reverse = LinkTypeEnd(f"{reference_name}-Reverse", reverse_name, reference_name, is_forward=False)
        return cls(
            reference_name,
            forward_name,
            forward,
            reverse,
            is_directional=True,
            is_non_circular=non_circular,
        )


@dataclass(frozen=True, slots=True)
class RelatedLink:
    """A typed link from the owning work item to another work item."""

    end: LinkTypeEnd
    related_work_item_id: int

    def __str__(self) -> str:
        return f"{self.end.immutable_name}->{self.related_work_item_id}"


@dataclass(eq=False)
class Attachment:
    """A file attached to a work item.

    ``id`` and ``url`` are assigned by the destination when the work item is
    saved; until then the attachment only exists locally.
    """

    file_path: str
    comment: str = ""
    id: str | None = None
    url: str | None = None

    @property
    def is_saved(self) -> bool:
        return self.id is not None

    @property
    def name(self) -> str:
        return self.file_path.replace("\\", "/").rsplit("/", 1)[-1]

    def __str__(self) -> str:
        return f"{self.name}({self.id or 'new'})"


@dataclass(frozen=True, slots=True)
class FieldValidationIssue:
    """A field that would not pass destination validation as it stands."""

    name: str
    status: str
    value: Any


@dataclass
class WorkItem:
    """Mutable snapshot of a destination work item.

    ``known_fields`` restricts writable reference names when the client knows
    the work item type's field set; ``None`` accepts any field.
    """

    type_name: str
    project: str = ""
    id: int | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    links: list[RelatedLink] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)
    known_fields: frozenset[str] | None = None
    is_open: bool = False
    is_partial_open: bool = False
    _baseline_fields: dict[str, Any] = field(default_factory=dict, repr=False, init=False)
    _baseline_links: list[RelatedLink] = field(default_factory=list, repr=False, init=False)
    _baseline_attachments: list[Attachment] = field(default_factory=list, repr=False, init=False)

    # ----- edit session -----

    def open(self) -> None:
        self.is_open = True
        self.is_partial_open = False

    def partial_open(self) -> None:
        if not self.is_open:
            self.is_partial_open = True

    def close(self) -> None:
        self.is_open = False
        self.is_partial_open = False

    # ----- fields -----

    def get_field(self, reference_name: str) -> Any:
        return self.fields.get(self._resolve_name(reference_name, strict=False))

    def set_field(self, reference_name: str, value: Any) -> None:
        self.fields[self._resolve_name(reference_name, strict=True)] = value

    def _resolve_name(self, reference_name: str, *, strict: bool) -> str:
        lowered = reference_name.lower()
        candidates = self.known_fields if self.known_fields is not None else self.fields.keys()
        for name in candidates:
            if name.lower() == lowered:
                return name
        if strict and self.known_fields is not None:
            msg = f"Field '{reference_name}' does not exist on work item type '{self.type_name}'"
            raise FieldNotFoundError(msg)
        return reference_name

    @property
    def description_field(self) -> str:
        """Field holding the rich-text body that may reference attachments."""
        return REPRO_STEPS if self.type_name == "Bug" else DESCRIPTION

    def validate(self) -> list[FieldValidationIssue]:
        """Return the fields the destination would reject."""
        issues: list[FieldValidationIssue] = []
        title = self.fields.get(TITLE)
        if self.id is None and not (isinstance(title, str) and title.strip()):
            issues.append(FieldValidationIssue(TITLE, "InvalidEmpty", title))
        if self.known_fields is not None:
            issues.extend(
                FieldValidationIssue(name, "InvalidUnknown", value)
                for name, value in self.fields.items()
                if name not in self.known_fields
            )
        return issues

    def is_valid(self) -> bool:
        return not self.validate()

    # ----- change tracking -----

    def mark_saved(self) -> None:
        """Record the current state as the persisted baseline."""
        self._baseline_fields = copy.copy(self.fields)
        self._baseline_links = list(self.links)
        self._baseline_attachments = list(self.attachments)

    def changed_fields(self) -> dict[str, Any]:
        return {
            name: value
            for name, value in self.fields.items()
            if name not in self._baseline_fields or self._baseline_fields[name] != value
        }

    def added_links(self) -> list[RelatedLink]:
        return [link for link in self.links if link not in self._baseline_links]

    def removed_links(self) -> list[RelatedLink]:
        return [link for link in self._baseline_links if link not in self.links]

    def added_attachments(self) -> list[Attachment]:
        return [att for att in self.attachments if not any(att is b for b in self._baseline_attachments)]

    def removed_attachments(self) -> list[Attachment]:
        return [att for att in self._baseline_attachments if not any(att is a for a in self.attachments)]

    @property
    def is_dirty(self) -> bool:
        return bool(
            self.changed_fields()
            or self.added_links()
            or self.removed_links()
            or self.added_attachments()
            or self.removed_attachments(),
        )
