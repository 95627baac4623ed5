"""Source-side revision history models.

A work item history is exported once by the extraction stage and replayed
unchanged. All models here are frozen; normalization during replay builds new
field lists instead of mutating a revision.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ReferenceChangeType(str, Enum):
    """Kind of change a revision applies to a link or an attachment."""

    ADDED = "Added"
    REMOVED = "Removed"


class LinkDirection(str, Enum):
    """Directional role requested for a link."""

    FORWARD = "Forward"
    REVERSE = "Reverse"


class Identity(BaseModel):
    """A person reference as exported from the source tracker."""

    model_config = ConfigDict(frozen=True)

    display_name: str
    unique_name: str | None = None

    def __str__(self) -> str:
        if self.unique_name:
            return f"{self.display_name} <{self.unique_name}>"
        return self.display_name


# Field values are a closed set of scalar kinds. Order matters for pydantic's
# smart union: JSON strings stay strings and are only read as dates where a
# mandatory field needs one (see ``as_datetime``).
FieldScalar = Identity | datetime | int | float | str


def as_text(value: FieldScalar | None) -> str | None:
    """Coerce a field value to the text form written to string fields."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def as_datetime(value: FieldScalar | None) -> datetime | None:
    """Coerce a field value to a datetime, accepting ISO-8601 strings."""
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    msg = f"Cannot interpret {value!r} as a date"
    raise ValueError(msg)


class WiField(BaseModel):
    """A single field change: reference name and new value."""

    model_config = ConfigDict(frozen=True)

    reference_name: str = Field(min_length=1)
    value: FieldScalar | None = None

    def matches(self, reference_name: str) -> bool:
        """Compare reference names case-insensitively."""
        return self.reference_name.lower() == reference_name.lower()

    def __str__(self) -> str:
        return f"{self.reference_name}={self.value!r}"


class WiLink(BaseModel):
    """A link added to or removed from the owning work item."""

    model_config = ConfigDict(frozen=True)

    change: ReferenceChangeType
    wi_type: str = Field(min_length=1)
    source_origin_id: str
    target_origin_id: str
    direction: LinkDirection | None = None

    def split_type(self) -> tuple[str, LinkDirection | None]:
        """Split the link key into link type reference name and direction.

        ``System.LinkTypes.Hierarchy-Forward`` yields
        ``("System.LinkTypes.Hierarchy", FORWARD)``. Keys without a direction
        suffix fall back to the explicit ``direction`` attribute.
        """
        name, sep, token = self.wi_type.rpartition("-")
        if sep and token in {d.value for d in LinkDirection}:
            return name, LinkDirection(token)
        return self.wi_type, self.direction

    def __str__(self) -> str:
        return f"[{self.change.value}] {self.source_origin_id}->{self.target_origin_id} [{self.wi_type}]"


class WiAttachment(BaseModel):
    """An attachment added to or removed from the owning work item."""

    model_config = ConfigDict(frozen=True)

    change: ReferenceChangeType
    att_origin_id: str
    file_path: str
    comment: str = ""

    def __str__(self) -> str:
        return f"[{self.change.value}] {self.file_path}/{self.att_origin_id}"


class WiRevision(BaseModel):
    """One atomic, ordered change record of a source work item."""

    model_config = ConfigDict(frozen=True)

    parent_origin_id: str
    index: int = Field(ge=0)
    time: datetime
    author: str
    fields: tuple[WiField, ...] = ()
    links: tuple[WiLink, ...] = ()
    attachments: tuple[WiAttachment, ...] = ()
    attachment_references: bool = False

    @property
    def added_attachments(self) -> tuple[WiAttachment, ...]:
        return tuple(a for a in self.attachments if a.change == ReferenceChangeType.ADDED)

    @property
    def removed_attachments(self) -> tuple[WiAttachment, ...]:
        return tuple(a for a in self.attachments if a.change == ReferenceChangeType.REMOVED)

    def __str__(self) -> str:
        return f"'{self.parent_origin_id}', rev {self.index}"


class WiItem(BaseModel):
    """Full exported history of one source work item."""

    origin_id: str
    type: str
    revisions: list[WiRevision] = Field(default_factory=list)

    @field_validator("revisions")
    @classmethod
    def _check_order(cls, revisions: list[WiRevision]) -> list[WiRevision]:
        previous = -1
        for rev in revisions:
            if rev.index <= previous:
                msg = f"Revision indexes must be strictly increasing (got {rev.index} after {previous})"
                raise ValueError(msg)
            previous = rev.index
        return revisions

    def next_revision(self, rev: WiRevision) -> WiRevision | None:
        """Return the revision replayed after ``rev``, if any."""
        for candidate in self.revisions:
            if candidate.index > rev.index:
                return candidate
        return None

    @model_validator(mode="after")
    def _check_parent(self) -> WiItem:
        for rev in self.revisions:
            if rev.parent_origin_id != self.origin_id:
                msg = f"Revision {rev.index} belongs to '{rev.parent_origin_id}', not '{self.origin_id}'"
                raise ValueError(msg)
        return self
