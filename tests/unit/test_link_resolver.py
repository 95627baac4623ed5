"""Tests for link replay and cycle avoidance."""

import logging

import pytest

from src.models.revision import WiLink
from src.models.work_item import HISTORY, LinkTypeEnd, RelatedLink, WorkItem
from src.utils.link_resolver import LinkResolver, client_neighbor_lookup
from tests.utils.mock_factory import (
    InMemoryJournal,
    InMemoryWorkItemClient,
    added_link,
    default_link_types,
    make_revision,
    removed_link,
)

HIERARCHY = default_link_types()[0]
CHILD = HIERARCHY.forward_end
PARENT = HIERARCHY.reverse_end


def graph_neighbor(edges: dict[tuple[int, str], int]):
    """Neighbor lookup over an in-memory graph keyed by (work item, end name)."""

    def neighbor(wi_id: int, end: LinkTypeEnd) -> int | None:
        return edges.get((wi_id, end.immutable_name))

    return neighbor


def make_resolver(journal: InMemoryJournal, edges: dict[tuple[int, str], int] | None = None, **kwargs) -> LinkResolver:
    return LinkResolver(journal, default_link_types(), graph_neighbor(edges or {}), **kwargs)


@pytest.fixture
def journal() -> InMemoryJournal:
    journal = InMemoryJournal()
    for origin_id, wi_id in {"A": 1, "B": 2, "C": 3}.items():
        journal.mark_revision_processed(origin_id, wi_id, 0)
    return journal


@pytest.mark.unit
class TestParseLinkEnd:
    def test_directional_suffix_selects_end(self, journal: InMemoryJournal) -> None:
        resolver = make_resolver(journal)
        wi = WorkItem("Task", id=1)

        forward = resolver.parse_link_end(added_link("A", "B", "System.LinkTypes.Hierarchy-Forward"), wi)
        reverse = resolver.parse_link_end(added_link("A", "B", "System.LinkTypes.Hierarchy-Reverse"), wi)

        assert forward == CHILD
        assert reverse == PARENT

    def test_explicit_direction_attribute_is_used_without_suffix(self, journal: InMemoryJournal) -> None:
        resolver = make_resolver(journal)
        link = WiLink(
            change="Added",
            wi_type="System.LinkTypes.Hierarchy",
            source_origin_id="A",
            target_origin_id="B",
            direction="Reverse",
        )

        assert resolver.parse_link_end(link, WorkItem("Task", id=1)) == PARENT

    def test_non_directional_uses_forward_end(self, journal: InMemoryJournal) -> None:
        resolver = make_resolver(journal)

        end = resolver.parse_link_end(added_link("A", "B", "System.LinkTypes.Related"), WorkItem("Task", id=1))

        assert end is not None
        assert end.immutable_name == "System.LinkTypes.Related"

    def test_directional_without_direction_is_an_error(self, journal: InMemoryJournal) -> None:
        resolver = make_resolver(journal)

        assert resolver.parse_link_end(added_link("A", "B", "System.LinkTypes.Hierarchy"), WorkItem("Task")) is None

    def test_unknown_link_type(self, journal: InMemoryJournal) -> None:
        resolver = make_resolver(journal)

        assert resolver.parse_link_end(added_link("A", "B", "Custom.Blocks-Forward"), WorkItem("Task")) is None


@pytest.mark.unit
class TestCycleAvoidance:
    def test_closing_a_chain_uses_the_opposite_end(self, journal: InMemoryJournal) -> None:
        # A -(Forward)-> B -(Forward)-> C, now C -(Forward)-> A
        edges = {(1, CHILD.immutable_name): 2, (2, CHILD.immutable_name): 3}
        resolver = make_resolver(journal, edges)
        wi = WorkItem("Task", id=3)
        rev = make_revision("C", 1, links=[added_link("C", "A", "System.LinkTypes.Hierarchy-Forward")])

        assert resolver.apply_links(rev, wi)

        assert len(wi.links) == 1
        stored = wi.links[0]
        assert stored.related_work_item_id == 1
        assert stored.end == PARENT
        assert stored.end != CHILD

    def test_no_cycle_keeps_requested_end(self, journal: InMemoryJournal) -> None:
        edges = {(1, CHILD.immutable_name): 2}
        resolver = make_resolver(journal, edges)
        wi = WorkItem("Task", id=3)
        rev = make_revision("C", 1, links=[added_link("C", "A", "System.LinkTypes.Hierarchy-Forward")])

        assert resolver.apply_links(rev, wi)

        assert wi.links == [RelatedLink(CHILD, 1)]

    def test_circular_types_are_not_checked(self, journal: InMemoryJournal) -> None:
        duplicate = default_link_types()[2]
        edges = {(1, duplicate.forward_end.immutable_name): 3}
        resolver = make_resolver(journal, edges)
        wi = WorkItem("Task", id=3)
        rev = make_revision("C", 1, links=[added_link("C", "A", "System.LinkTypes.Duplicate-Forward")])

        resolver.apply_links(rev, wi)

        assert wi.links == [RelatedLink(duplicate.forward_end, 1)]

    def test_walk_terminates_on_already_cyclic_data(self, journal: InMemoryJournal) -> None:
        # B and A already point at each other; the walk never reaches C
        edges = {(1, CHILD.immutable_name): 2, (2, CHILD.immutable_name): 1}
        resolver = make_resolver(journal, edges)

        assert not resolver.detect_cycle(3, RelatedLink(CHILD, 1))

    def test_new_work_item_has_no_cycle(self, journal: InMemoryJournal) -> None:
        resolver = make_resolver(journal, {(1, CHILD.immutable_name): 2})

        assert not resolver.detect_cycle(None, RelatedLink(CHILD, 1))

    def test_client_neighbor_lookup_reads_destination_links(self) -> None:
        client = InMemoryWorkItemClient()
        a = client.add_work_item()
        b = client.add_work_item()
        a.links.append(RelatedLink(CHILD, b.id))
        client.save_work_item(a)

        neighbor = client_neighbor_lookup(client)

        assert neighbor(a.id, CHILD) == b.id
        assert neighbor(a.id, PARENT) is None
        assert neighbor(b.id, CHILD) is None


@pytest.mark.unit
class TestApplyLinks:
    def test_unmigrated_target_fails_the_link(self, journal: InMemoryJournal, caplog: pytest.LogCaptureFixture) -> None:
        resolver = make_resolver(journal)
        wi = WorkItem("Task", id=1)
        rev = make_revision("A", 1, links=[added_link("A", "MISSING")])

        with caplog.at_level(logging.WARNING):
            assert not resolver.apply_links(rev, wi)

        assert wi.links == []
        assert any(r.levelno == logging.ERROR and "MISSING" in r.getMessage() for r in caplog.records)

    def test_unmigrated_target_is_a_warning_when_ignored(
        self,
        journal: InMemoryJournal,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        resolver = make_resolver(journal, ignore_failed_links=True)
        rev = make_revision("A", 1, links=[added_link("A", "MISSING")])

        with caplog.at_level(logging.WARNING):
            assert not resolver.apply_links(rev, WorkItem("Task", id=1))

        records = [r for r in caplog.records if "MISSING" in r.getMessage()]
        assert records
        assert all(r.levelno == logging.WARNING for r in records)

    def test_remove_existing_link(self, journal: InMemoryJournal) -> None:
        resolver = make_resolver(journal)
        related = resolver.link_types["System.LinkTypes.Related"].forward_end
        wi = WorkItem("Task", id=1, links=[RelatedLink(related, 2), RelatedLink(related, 3)])
        rev = make_revision("A", 2, links=[removed_link("A", "B")])

        assert resolver.apply_links(rev, wi)

        assert wi.links == [RelatedLink(related, 3)]

    def test_removing_a_link_that_was_never_added_fails_only_that_link(self, journal: InMemoryJournal) -> None:
        resolver = make_resolver(journal)
        related = resolver.link_types["System.LinkTypes.Related"].forward_end
        wi = WorkItem("Task", id=1, links=[RelatedLink(related, 3)])
        rev = make_revision(
            "A",
            2,
            links=[removed_link("A", "B"), removed_link("A", "C")],
        )

        assert not resolver.apply_links(rev, wi)

        assert wi.links == []

    def test_history_lists_removed_links_first(self, journal: InMemoryJournal) -> None:
        resolver = make_resolver(journal)
        related = resolver.link_types["System.LinkTypes.Related"].forward_end
        wi = WorkItem("Task", id=1, links=[RelatedLink(related, 2)])
        rev = make_revision("A", 2, links=[removed_link("A", "B"), added_link("A", "C")])

        resolver.apply_links(rev, wi)

        history = wi.get_field(HISTORY)
        assert history.startswith("Removed link(s): ")
        assert "A->B" in history
        assert "A->C" not in history

    def test_history_lists_added_links(self, journal: InMemoryJournal) -> None:
        resolver = make_resolver(journal)
        wi = WorkItem("Task", id=1)
        rev = make_revision("A", 2, links=[added_link("A", "B"), added_link("A", "C")])

        resolver.apply_links(rev, wi)

        assert wi.get_field(HISTORY) == (
            "Added link(s): [Added] A->B [System.LinkTypes.Related];[Added] A->C [System.LinkTypes.Related]"
        )
        assert wi.is_open

    def test_from_client_loads_link_types(self, journal: InMemoryJournal) -> None:
        resolver = LinkResolver.from_client(InMemoryWorkItemClient(), journal, ignore_failed_links=True)

        assert "System.LinkTypes.Hierarchy" in resolver.link_types
        assert resolver.ignore_failed_links
