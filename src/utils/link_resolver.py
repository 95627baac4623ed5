"""Replay of link changes onto destination work items.

Link endpoints are translated from source origin IDs to destination work item
IDs through the migration journal. Links of non-circular types (e.g. parent /
child hierarchies) are checked for cycles before being added; a link that would
close a cycle is stored with the opposite end instead.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TypeAlias

from src.clients.work_item_client import WorkItemClient
from src.config import logger
from src.mappings.journal import IdentifierJournal
from src.models.migration_error import AbortMigrationError
from src.models.revision import LinkDirection, ReferenceChangeType, WiLink, WiRevision
from src.models.work_item import HISTORY, LinkType, LinkTypeEnd, RelatedLink, WorkItem

# neighbor(work_item_id, end) -> ID of the work item linked through ``end``, if any
NeighborLookup: TypeAlias = Callable[[int, LinkTypeEnd], int | None]


def client_neighbor_lookup(client: WorkItemClient) -> NeighborLookup:
    """Build a neighbor lookup that reads links from the destination."""

    def neighbor(wi_id: int, end: LinkTypeEnd) -> int | None:
        work_item = client.get_work_item(wi_id)
        for link in work_item.links:
            if link.end.immutable_name == end.immutable_name:
                return link.related_work_item_id
        return None

    return neighbor


class LinkResolver:
    """Apply the link changes of a revision to a work item."""

    def __init__(
        self,
        journal: IdentifierJournal,
        link_types: Iterable[LinkType],
        neighbor: NeighborLookup,
        *,
        ignore_failed_links: bool = False,
    ) -> None:
        self.journal = journal
        self.link_types = {lt.reference_name: lt for lt in link_types}
        self.neighbor = neighbor
        self.ignore_failed_links = ignore_failed_links

    @classmethod
    def from_client(
        cls,
        client: WorkItemClient,
        journal: IdentifierJournal,
        *,
        ignore_failed_links: bool = False,
    ) -> LinkResolver:
        link_types = client.get_link_types()
        logger.debug("Loaded %d link types", len(link_types))
        return cls(
            journal,
            link_types,
            client_neighbor_lookup(client),
            ignore_failed_links=ignore_failed_links,
        )

    def apply_links(self, rev: WiRevision, wi: WorkItem) -> bool:
        """Apply all link changes of ``rev``.

        Returns:
            True when every link change was applied

        """
        success = True

        if not wi.is_open:
            wi.open()

        for link in rev.links:
            try:
                target_id = self.journal.resolve_destination_id(link.target_origin_id)
                if target_id is None:
                    level = logging.WARNING if self.ignore_failed_links else logging.ERROR
                    logger.log(
                        level,
                        "'%s' - target work item '%s' has not been imported yet",
                        link,
                        link.target_origin_id,
                    )
                    success = False
                    continue

                if link.change == ReferenceChangeType.ADDED:
                    applied = self.add_link(link, target_id, wi)
                else:
                    applied = self.remove_link(link, target_id, wi)
                success = success and applied
            except AbortMigrationError:
                raise
            except Exception:
                logger.exception("Failed to apply link '%s' to work item %s", link, wi.id)
                success = False

        removed = [link for link in rev.links if link.change == ReferenceChangeType.REMOVED]
        added = [link for link in rev.links if link.change == ReferenceChangeType.ADDED]
        if removed:
            wi.set_field(HISTORY, f"Removed link(s): {';'.join(str(link) for link in removed)}")
        elif added:
            wi.set_field(HISTORY, f"Added link(s): {';'.join(str(link) for link in added)}")

        return success

    def parse_link_end(self, link: WiLink, wi: WorkItem) -> LinkTypeEnd | None:
        """Select the destination link end a link change refers to."""
        type_name, direction = link.split_type()
        link_type = self.link_types.get(type_name)
        if link_type is None:
            logger.error("'%s' - link type '%s' does not exist in the destination", link, type_name)
            return None

        if not link_type.is_directional:
            return link_type.forward_end

        match direction:
            case LinkDirection.FORWARD:
                return link_type.forward_end
            case LinkDirection.REVERSE:
                return link_type.reverse_end
            case _:
                logger.error("'%s' - link direction not provided for work item %s", link, wi.id)
                return None

    def add_link(self, link: WiLink, target_id: int, wi: WorkItem) -> bool:
        end = self.parse_link_end(link, wi)
        if end is None:
            return False

        related = self.resolve_cyclical_link(RelatedLink(end, target_id), wi)
        wi.links.append(related)
        return True

    def remove_link(self, link: WiLink, target_id: int, wi: WorkItem) -> bool:
        end = self.parse_link_end(link, wi)
        immutable_name = end.immutable_name if end is not None else link.wi_type

        for existing in wi.links:
            if existing.end.immutable_name == immutable_name and existing.related_work_item_id == target_id:
                wi.links.remove(existing)
                return True

        logger.warning("'%s' - cannot identify link to remove on work item %s", link, wi.id)
        return False

    def resolve_cyclical_link(self, related: RelatedLink, wi: WorkItem) -> RelatedLink:
        """Flip the link end when adding ``related`` would close a cycle."""
        link_type = self.link_types.get(related.end.link_type_name)
        if link_type is None or not link_type.is_non_circular:
            return related

        if not self.detect_cycle(wi.id, related):
            return related

        opposite = link_type.opposite_end(related.end)
        logger.info(
            "Link %s on work item %s would form a cycle, using '%s' instead",
            related,
            wi.id,
            opposite.immutable_name,
        )
        return RelatedLink(opposite, related.related_work_item_id)

    def detect_cycle(self, source_id: int | None, related: RelatedLink) -> bool:
        """Follow same-end links from the link target and report whether they lead back to the source."""
        if source_id is None:
            return False

        visited: set[int] = set()
        current: int | None = related.related_work_item_id
        while current is not None and current not in visited:
            visited.add(current)
            current = self.neighbor(current, related.end)
            if current == source_id:
                return True
        return False
