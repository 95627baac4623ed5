"""Migration journal: durable record of what has already been imported.

The journal is an append-only JSON Lines file. Each line marks either one
revision of a source work item as processed (with the destination work item ID)
or one attachment as migrated (with the destination attachment ID). The file is
replayed into memory on start, which makes reruns resume where a previous run
stopped.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Annotated, Literal, Protocol

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from src.config import logger


class IdentifierJournal(Protocol):
    """Read/write contract the replay components rely on."""

    def is_revision_processed(self, origin_id: str, index: int) -> bool: ...

    def mark_revision_processed(self, origin_id: str, wi_id: int, index: int) -> None: ...

    def resolve_destination_id(self, origin_id: str) -> int | None: ...

    def is_attachment_migrated(self, att_origin_id: str) -> str | None: ...

    def mark_attachment_processed(self, att_origin_id: str, att_id: str) -> None: ...


class RevisionEntry(BaseModel):
    """A processed revision."""

    kind: Literal["revision"] = "revision"
    origin_id: str
    index: int
    wi_id: int


class AttachmentEntry(BaseModel):
    """A migrated attachment."""

    kind: Literal["attachment"] = "attachment"
    att_origin_id: str
    att_id: str


JournalEntry = Annotated[RevisionEntry | AttachmentEntry, Field(discriminator="kind")]
_entry_adapter: TypeAdapter[RevisionEntry | AttachmentEntry] = TypeAdapter(JournalEntry)


class MigrationJournal:
    """File-backed ``IdentifierJournal``.

    Writes are serialized with a lock and each record is flushed and fsynced
    before the call returns. Marking an already-marked key is a no-op.
    """

    def __init__(self, journal_file: Path) -> None:
        self.journal_file = journal_file
        self._lock = threading.Lock()
        self._revisions: dict[tuple[str, int], int] = {}
        self._targets: dict[str, int] = {}
        self._attachments: dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        if not self.journal_file.exists():
            logger.notice("Journal %s not found, starting a fresh import", self.journal_file)
            return

        with self.journal_file.open("r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = _entry_adapter.validate_json(line)
                except ValidationError:
                    logger.warning("Skipping unreadable journal line %d in %s", line_no, self.journal_file)
                    continue
                self._apply(entry)

        logger.notice(
            "Loaded journal with %d revisions of %d work items and %d attachments",
            len(self._revisions),
            len(self._targets),
            len(self._attachments),
        )

    def _apply(self, entry: RevisionEntry | AttachmentEntry) -> None:
        if isinstance(entry, RevisionEntry):
            self._revisions[(entry.origin_id, entry.index)] = entry.wi_id
            self._targets[entry.origin_id] = entry.wi_id
        else:
            self._attachments[entry.att_origin_id] = entry.att_id

    def _append(self, entry: RevisionEntry | AttachmentEntry) -> None:
        self.journal_file.parent.mkdir(parents=True, exist_ok=True)
        with self.journal_file.open("a", encoding="utf-8") as f:
            f.write(entry.model_dump_json() + "\n")
            f.flush()
            os.fsync(f.fileno())
        self._apply(entry)

    # ----- revisions -----

    def is_revision_processed(self, origin_id: str, index: int) -> bool:
        with self._lock:
            return (origin_id, index) in self._revisions

    def mark_revision_processed(self, origin_id: str, wi_id: int, index: int) -> None:
        with self._lock:
            if self._revisions.get((origin_id, index)) == wi_id:
                return
            self._append(RevisionEntry(origin_id=origin_id, index=index, wi_id=wi_id))

    def resolve_destination_id(self, origin_id: str) -> int | None:
        with self._lock:
            return self._targets.get(origin_id)

    # ----- attachments -----

    def is_attachment_migrated(self, att_origin_id: str) -> str | None:
        with self._lock:
            return self._attachments.get(att_origin_id)

    def mark_attachment_processed(self, att_origin_id: str, att_id: str) -> None:
        with self._lock:
            if self._attachments.get(att_origin_id) == att_id:
                return
            self._append(AttachmentEntry(att_origin_id=att_origin_id, att_id=att_id))
