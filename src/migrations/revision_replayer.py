"""Replay of a single source revision onto a destination work item.

Each revision is applied in a fixed order: mandatory field normalization,
attachment changes, field changes (with classification paths resolved through
the cache), link changes, save, and finally the journal marks. Failures of a
single field, link or attachment leave the revision incomplete but still saved;
any other failure stops the work item without writing a journal mark.
"""

from __future__ import annotations

from collections.abc import Callable

from src.clients.exceptions import FileAttachmentError
from src.clients.work_item_client import TreeStructureGroup, WorkItemClient
from src.config import logger
from src.mappings.classification_cache import ClassificationResolver
from src.mappings.journal import IdentifierJournal
from src.models.component_results import RevisionOutcome
from src.models.migration_error import AbortMigrationError, MigrationError
from src.models.revision import WiField, WiItem, WiRevision, as_text
from src.models.work_item import (
    AREA_PATH,
    ASSIGNED_TO,
    CHANGED_BY,
    CHANGED_DATE,
    CREATED_BY,
    CREATED_DATE,
    ITERATION_PATH,
    Attachment,
    WorkItem,
)
from src.utils.attachment_correlator import AttachmentCorrelator
from src.utils.link_resolver import LinkResolver

_CLASSIFICATION_FIELDS = {
    AREA_PATH.lower(): TreeStructureGroup.AREAS,
    ITERATION_PATH.lower(): TreeStructureGroup.ITERATIONS,
}


def _has_field(fields: list[WiField], reference_name: str) -> bool:
    return any(f.matches(reference_name) for f in fields)


class RevisionReplayer:
    """Apply revisions to destination work items and journal the result."""

    def __init__(
        self,
        client: WorkItemClient,
        journal: IdentifierJournal,
        classifications: ClassificationResolver,
        attachments: AttachmentCorrelator,
        links: LinkResolver,
        item_source: Callable[[str], WiItem],
        *,
        project: str,
        base_area_path: str = "",
        base_iteration_path: str = "",
    ) -> None:
        """Initialize the replayer.

        Args:
            client: Destination client used to save work items
            journal: Journal of processed revisions and attachments
            classifications: Area/iteration path cache
            attachments: Attachment change handler
            links: Link change handler
            item_source: Returns the full history of a source work item by origin ID
            project: Destination project name, the root of every classification path
            base_area_path: Prefix for imported area paths ('/'-delimited)
            base_iteration_path: Prefix for imported iteration paths ('/'-delimited)

        """
        self.client = client
        self.journal = journal
        self.classifications = classifications
        self.attachments = attachments
        self.links = links
        self.item_source = item_source
        self.project = project
        self.base_paths = {
            TreeStructureGroup.AREAS: base_area_path.replace("\\", "/").strip("/"),
            TreeStructureGroup.ITERATIONS: base_iteration_path.replace("\\", "/").strip("/"),
        }

    # ----- normalization -----

    def normalize_fields(self, rev: WiRevision, wi: WorkItem) -> list[WiField]:
        """Return the revision's field changes with mandatory fields filled in."""
        fields = list(rev.fields)

        if rev.index == 0:
            for reference_name in (AREA_PATH, ITERATION_PATH):
                if not _has_field(fields, reference_name):
                    fields.append(WiField(reference_name=reference_name, value=""))

        # Dates
        if rev.index == 0 and not _has_field(fields, CREATED_DATE):
            fields.append(WiField(reference_name=CREATED_DATE, value=rev.time))
        if not _has_field(fields, CHANGED_DATE):
            fields.append(WiField(reference_name=CHANGED_DATE, value=rev.time))

        # Authors
        if rev.index == 0 and not _has_field(fields, CREATED_BY):
            fields.append(WiField(reference_name=CREATED_BY, value=rev.author))
        if not _has_field(fields, CHANGED_BY):
            fields.append(WiField(reference_name=CHANGED_BY, value=rev.author))

        # The assignee is always written so bypassed rules cannot reset it
        supplied = next((f for f in fields if f.matches(ASSIGNED_TO)), None)
        if supplied is not None:
            assigned_to = supplied.value if supplied.value is not None else ""
            fields = [f for f in fields if not f.matches(ASSIGNED_TO)]
        else:
            current = wi.get_field(ASSIGNED_TO)
            assigned_to = current if current is not None else ""
        fields.append(WiField(reference_name=ASSIGNED_TO, value=assigned_to))

        return fields

    # ----- fields -----

    def update_fields(self, fields: list[WiField], wi: WorkItem) -> bool:
        """Write field changes to the work item.

        Returns:
            True when every field was written

        """
        success = True

        if not wi.is_open and not wi.is_partial_open:
            wi.partial_open()

        for field in fields:
            try:
                group = _CLASSIFICATION_FIELDS.get(field.reference_name.lower())
                if group is not None:
                    if not self.apply_classification(field, wi, group):
                        success = False
                elif field.value is not None:
                    wi.set_field(field.reference_name, field.value)
                    logger.debug("Mapped '%s' '%s'", field.reference_name, field.value)
            except AbortMigrationError:
                raise
            except Exception:
                logger.exception("Failed to update field '%s' on work item %s", field.reference_name, wi.id)
                success = False

        return success

    def apply_classification(self, field: WiField, wi: WorkItem, group: TreeStructureGroup) -> bool:
        """Resolve an area or iteration path and write it in destination form."""
        reference_name = AREA_PATH if group is TreeStructureGroup.AREAS else ITERATION_PATH
        value = (as_text(field.value) or "").replace("\\", "/").strip("/")

        path = self.base_paths[group]
        if value.strip():
            path = f"{path}/{value}" if path else value

        if path.strip():
            node_id = self.classifications.ensure(path, group)
            if node_id is None:
                logger.error("Could not resolve %s '%s' for work item %s", group.label, path, wi.id)
                return False
            destination_path = f"{self.project}\\{path}".replace("/", "\\")
        else:
            destination_path = self.project

        wi.set_field(reference_name, destination_path)
        logger.debug("Mapped %s '%s'", reference_name, destination_path)
        return True

    # ----- persistence -----

    def save_work_item(self, rev: WiRevision, wi: WorkItem, *, retried: bool = False) -> None:
        """Save the work item, dropping one rejected attachment and retrying once.

        Raises:
            FileAttachmentError: If the retry is rejected as well
            ClientError: For any other save failure

        """
        for issue in wi.validate():
            logger.info("Field: '%s', Status: '%s', Value: '%s'", issue.name, issue.status, issue.value)

        try:
            self.client.save_work_item(wi)
        except FileAttachmentError as e:
            if retried:
                raise
            rejected = e.source_attachment
            logger.error("%s. Attachment %s in %s will be skipped.", e, rejected, rev)
            wi.attachments = [a for a in wi.attachments if a is not rejected]
            self.save_work_item(rev, wi, retried=True)

    def _mark_processed(self, rev: WiRevision, wi: WorkItem, attachment_map: dict[str, Attachment]) -> None:
        if wi.id is None:
            msg = f"Work item for {rev} has no ID after saving"
            raise MigrationError(msg)

        self.journal.mark_revision_processed(rev.parent_origin_id, wi.id, rev.index)
        for att in rev.added_attachments:
            saved = attachment_map.get(att.att_origin_id)
            if saved is not None and saved.is_saved and saved.id is not None:
                self.journal.mark_attachment_processed(att.att_origin_id, saved.id)

    # ----- entry point -----

    def import_revision(self, rev: WiRevision, wi: WorkItem) -> RevisionOutcome:
        """Replay one revision.

        Returns:
            SKIPPED if the revision was already journaled, IMPORTED or INCOMPLETE
            once it was saved and journaled, FAILED if the work item could not be
            saved (nothing is journaled then)

        Raises:
            AbortMigrationError: If the destination reported an unrecoverable condition

        """
        if self.journal.is_revision_processed(rev.parent_origin_id, rev.index):
            logger.debug("Skipping %s, already imported", rev)
            return RevisionOutcome.SKIPPED

        try:
            incomplete = False
            fields = self.normalize_fields(rev, wi)

            attachment_map: dict[str, Attachment] = {}
            if rev.attachments and not self.attachments.apply_attachments(rev, wi, attachment_map):
                incomplete = True

            if fields and not self.update_fields(fields, wi):
                incomplete = True

            if rev.links and not self.links.apply_links(rev, wi):
                incomplete = True

            if incomplete:
                logger.error("%s - not all changes were saved", rev)

            adds_attachments = bool(rev.added_attachments)
            if not adds_attachments and rev.attachment_references:
                logger.debug("Correcting description on %s", rev)
                self.attachments.correct_description(wi, self.item_source(rev.parent_origin_id), rev)

            self.save_work_item(rev, wi)

            if adds_attachments and rev.attachment_references:
                logger.debug("Correcting description on a separate revision of %s", rev)
                try:
                    item = self.item_source(rev.parent_origin_id)
                    if self.attachments.correct_description(wi, item, rev, attachment_map):
                        self.save_work_item(rev, wi)
                except AbortMigrationError:
                    raise
                except Exception:
                    logger.exception("Failed to correct description for work item %s, %s", wi.id, rev)

            self._mark_processed(rev, wi, attachment_map)

            logger.debug("Imported %s as work item %s", rev, wi.id)
            return RevisionOutcome.INCOMPLETE if incomplete else RevisionOutcome.IMPORTED
        except AbortMigrationError:
            raise
        except Exception:
            logger.exception("Failed to import %s for work item %s", rev, wi.id)
            return RevisionOutcome.FAILED
        finally:
            wi.close()
