"""Attachment replay and inline reference correction."""

from __future__ import annotations

from pathlib import Path

from src.config import logger
from src.mappings.journal import IdentifierJournal
from src.models.migration_error import AbortMigrationError
from src.models.revision import ReferenceChangeType, WiAttachment, WiItem, WiRevision
from src.models.work_item import CHANGED_BY, CHANGED_DATE, HISTORY, Attachment, WorkItem
from src.utils.revision_utility import next_valid_delta_rev


class AttachmentCorrelator:
    """Track source attachments against their destination counterparts."""

    def __init__(self, journal: IdentifierJournal, attachments_dir: Path | None = None) -> None:
        self.journal = journal
        self.attachments_dir = attachments_dir

    def _local_path(self, file_path: str) -> str:
        path = Path(file_path)
        if self.attachments_dir is not None and not path.is_absolute():
            return str(self.attachments_dir / path)
        return file_path

    def apply_attachments(
        self,
        rev: WiRevision,
        wi: WorkItem,
        attachment_map: dict[str, Attachment],
    ) -> bool:
        """Apply the attachment changes of a revision.

        New attachments are recorded in ``attachment_map`` by source attachment ID;
        the journal is only updated once the work item has been saved.

        Returns:
            True when every attachment change was applied

        """
        success = True

        if not wi.is_open:
            wi.open()

        for att in rev.attachments:
            try:
                logger.debug("Applying attachment change %s", att)
                if att.change == ReferenceChangeType.ADDED:
                    new_attachment = Attachment(self._local_path(att.file_path), att.comment)
                    wi.attachments.append(new_attachment)
                    attachment_map[att.att_origin_id] = new_attachment
                else:
                    existing = self.identify_attachment(att, wi)
                    if existing is None:
                        logger.error("Could not find migrated attachment %s on work item %s", att, wi.id)
                        success = False
                        continue
                    wi.attachments = [a for a in wi.attachments if a is not existing]
            except AbortMigrationError:
                raise
            except Exception:
                logger.exception("Failed to apply attachment %s to work item %s", att, wi.id)
                success = False

        removed = rev.removed_attachments
        if removed:
            wi.set_field(HISTORY, f"Removed attachment(s): {';'.join(str(a) for a in removed)}")

        return success

    def identify_attachment(self, att: WiAttachment, wi: WorkItem) -> Attachment | None:
        """Find the destination attachment a source attachment was migrated to."""
        att_id = self.journal.is_attachment_migrated(att.att_origin_id)
        if att_id is None:
            return None
        return next((a for a in wi.attachments if a.id == att_id), None)

    def correct_description(
        self,
        wi: WorkItem,
        item: WiItem,
        rev: WiRevision,
        pending: dict[str, Attachment] | None = None,
    ) -> bool:
        """Replace local attachment paths in the description with destination URLs.

        ``pending`` holds attachments saved in this revision that are not in the
        journal yet.

        Returns:
            True when at least one reference was replaced

        """
        field_name = wi.description_field
        description = wi.get_field(field_name)
        if not isinstance(description, str) or not description.strip():
            return False

        updated = False
        for att in (a for r in item.revisions for a in r.added_attachments):
            if att.file_path not in description:
                continue

            destination = (pending or {}).get(att.att_origin_id) or self.identify_attachment(att, wi)
            if destination is None or not destination.url:
                logger.warning(
                    "Attachment %s referenced in description but is missing from work item %s/%s",
                    att,
                    item.origin_id,
                    wi.id,
                )
                continue

            description = description.replace(att.file_path, destination.url)
            updated = True

        if updated:
            following = item.next_revision(rev)
            changed_date = next_valid_delta_rev(rev.time, following.time if following else None)
            wi.set_field(CHANGED_DATE, changed_date)
            wi.set_field(CHANGED_BY, rev.author)
            wi.set_field(field_name, description)
            logger.debug("Corrected attachment references in %s of work item %s", field_name, wi.id)

        return updated
