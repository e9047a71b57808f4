"""
Tests for LinkService business operations.
"""
from unittest.mock import MagicMock

import pytest

from domains.core.exceptions import (
    BidirectionalLinkError,
    LinkNotFoundError,
    StorageError,
    ValidationError,
)
from domains.link_hub.core import LinkCreate, LinkFilters, MemoryLinkStore
from domains.link_hub.services import LinkService


def _link(source_type="note", source_id="A", target_type="databaseEntry", target_id="B", metadata=None):
    return LinkCreate(source_type, source_id, target_type, target_id, metadata)


class FlakyStore(MemoryLinkStore):
    """Memory store that can fail the n-th create and/or every delete."""

    def __init__(self, fail_create_on: int = 0, fail_delete: bool = False):
        super().__init__()
        self.fail_create_on = fail_create_on
        self.fail_delete = fail_delete
        self.create_calls = 0

    def create(self, data):
        self.create_calls += 1
        if self.create_calls == self.fail_create_on:
            raise StorageError("写入失败")
        return super().create(data)

    def delete(self, link_id):
        if self.fail_delete:
            raise StorageError("删除失败")
        return super().delete(link_id)


class TestExampleScenario:
    """note:A -> databaseEntry:B end to end through the service"""

    def test_create_query_graph_delete(self, service):
        link = service.create_link(_link())

        outgoing = service.get_outgoing("note", "A")
        assert len(outgoing) == 1
        assert (outgoing[0].target_type, outgoing[0].target_id) == ("databaseEntry", "B")

        backlinks = service.get_backlinks("databaseEntry", "B")
        assert [l.id for l in backlinks] == [link.id]

        graph = service.get_link_graph(entity_type="note")
        assert {node.id for node in graph.nodes} == {"note:A", "databaseEntry:B"}
        assert [(e.source, e.target) for e in graph.edges] == [("note:A", "databaseEntry:B")]

        service.delete_link(link.id)

        assert service.get_outgoing("note", "A") == []
        assert service.get_backlinks("databaseEntry", "B") == []
        graph = service.get_link_graph(entity_type="note")
        assert graph.nodes == []
        assert graph.edges == []


class TestCreateLink:
    """Tests for create_link validation"""

    def test_symmetry(self, service):
        link = service.create_link(_link("project", "P", "experiment", "E"))
        assert link in service.get_outgoing("project", "P")
        assert link in service.get_backlinks("experiment", "E")

    def test_no_implicit_uniqueness(self, service):
        first = service.create_link(_link())
        second = service.create_link(_link())

        assert first.id != second.id
        assert len(service.get_outgoing("note", "A")) == 2

    def test_ids_are_stripped(self, service):
        link = service.create_link(_link(source_id="  A  "))
        assert link.source_id == "A"

    def test_dict_metadata_is_encoded(self, service):
        link = service.create_link(_link(metadata={"page": 3}))
        assert link.metadata == '{"page": 3}'

    @pytest.mark.parametrize(
        "data, field",
        [
            (_link(source_type="widget"), "source_type"),
            (_link(target_type="Note"), "target_type"),
            (_link(source_id=""), "source_id"),
            (_link(target_id="   "), "target_id"),
            (_link(target_id="x" * 256), "target_id"),
        ],
    )
    def test_invalid_input_raises_validation_error(self, service, store, data, field):
        with pytest.raises(ValidationError) as exc_info:
            service.create_link(data)

        assert exc_info.value.field == field
        assert store.count() == 0

    def test_no_referential_integrity_check(self, service, summaries):
        link = service.create_link(_link(target_id="does-not-exist"))
        assert service.get_link(link.id).target_summary is None


class TestGetAndDelete:
    """Tests for get_link / delete_link"""

    def test_get_link_missing_returns_none(self, service):
        assert service.get_link("missing") is None

    def test_get_link_attaches_summaries(self, service, summaries):
        summaries.add("note", "A", {"title": "Assay plan"})
        link = service.create_link(_link())

        fetched = service.get_link(link.id)
        assert fetched.source_summary == {"title": "Assay plan"}
        assert fetched.target_summary is None

    def test_delete_missing_raises_not_found(self, service):
        with pytest.raises(LinkNotFoundError) as exc_info:
            service.delete_link("missing")
        assert exc_info.value.http_status_code == 404

    def test_delete_checks_existence_first(self, settings, entity_registry):
        store = MagicMock()
        store.find_by_id.return_value = None
        service = LinkService(store=store, registry=entity_registry, settings=settings)

        with pytest.raises(LinkNotFoundError):
            service.delete_link("missing")
        store.delete.assert_not_called()


class TestBidirectional:
    """Tests for create_bidirectional_link"""

    def test_creates_true_mirror(self, service):
        result = service.create_bidirectional_link(_link(metadata="related"))

        forward, reverse = result.forward, result.reverse
        assert (reverse.source_type, reverse.source_id) == (forward.target_type, forward.target_id)
        assert (reverse.target_type, reverse.target_id) == (forward.source_type, forward.source_id)
        assert reverse.metadata == forward.metadata == "related"

    def test_halves_are_not_coupled_on_delete(self, service):
        result = service.create_bidirectional_link(_link())

        service.delete_link(result.forward.id)

        assert service.get_link(result.forward.id) is None
        assert service.get_link(result.reverse.id) is not None

    def test_reverse_failure_rolls_back_forward(self, settings, entity_registry):
        store = FlakyStore(fail_create_on=2)
        service = LinkService(store=store, registry=entity_registry, settings=settings)

        with pytest.raises(StorageError) as exc_info:
            service.create_bidirectional_link(_link())

        assert not isinstance(exc_info.value, BidirectionalLinkError)
        assert exc_info.value.details["rolled_back"] is True
        assert store.count() == 0

    def test_failed_rollback_reports_forward_id(self, settings, entity_registry):
        store = FlakyStore(fail_create_on=2, fail_delete=True)
        service = LinkService(store=store, registry=entity_registry, settings=settings)

        with pytest.raises(BidirectionalLinkError) as exc_info:
            service.create_bidirectional_link(_link())

        remaining = store.find_many()
        assert len(remaining) == 1
        assert exc_info.value.forward_id == remaining[0].id
        assert exc_info.value.details["partial"] is True
        assert exc_info.value.http_status_code == 500

    def test_invalid_input_creates_nothing(self, service, store):
        with pytest.raises(ValidationError):
            service.create_bidirectional_link(_link(target_type="bogus"))
        assert store.count() == 0


class TestListLinks:
    """Tests for list_links pagination"""

    @pytest.fixture
    def twenty_five(self, service):
        return [service.create_link(_link(target_id=f"B{i}")) for i in range(25)]

    def test_exact_total_and_pages(self, service, twenty_five):
        page = service.list_links(page=2, limit=10)

        assert len(page.links) == 10
        assert page.total == 25
        assert page.pagination.total_pages == 3
        assert page.pagination.has_next is True
        assert page.pagination.has_prev is True

    def test_last_page(self, service, twenty_five):
        page = service.list_links(page=3, limit=10)

        assert len(page.links) == 5
        assert page.pagination.has_next is False

    def test_pages_do_not_overlap(self, service, twenty_five):
        seen = []
        for number in (1, 2, 3):
            seen.extend(link.id for link in service.list_links(page=number, limit=10).links)
        assert sorted(seen) == sorted(link.id for link in twenty_five)

    def test_default_limit(self, service, twenty_five):
        assert service.list_links().pagination.limit == 10

    def test_filters(self, service, twenty_five):
        service.create_link(_link("project", "P", "note", "A"))

        page = service.list_links(LinkFilters(source_type="project"))
        assert page.total == 1
        assert page.links[0].source_id == "P"

    def test_invalid_filter_type(self, service):
        with pytest.raises(ValidationError):
            service.list_links(LinkFilters(target_type="widget"))

    @pytest.mark.parametrize("page, limit", [(0, 10), (-1, 10), (1, 0), (1, 101)])
    def test_out_of_range_paging(self, service, page, limit):
        with pytest.raises(ValidationError):
            service.list_links(page=page, limit=limit)


class TestSearch:
    """Tests for search_links"""

    def test_search_bound(self, service):
        for i in range(15):
            service.create_link(_link(target_id=f"B{i}", metadata="protocol step"))

        assert len(service.search_links("step")) == 10
        assert len(service.search_links("step", limit=3)) == 3

    def test_search_is_substring_and_case_sensitive(self, service):
        service.create_link(_link(metadata="Derived from"))
        assert len(service.search_links("rived")) == 1
        assert service.search_links("derived") == []

    def test_empty_query_rejected(self, service):
        with pytest.raises(ValidationError):
            service.search_links("")

    def test_whitespace_query_matches_literally(self, service):
        spaced = service.create_link(_link(metadata="run 7"))
        service.create_link(_link(target_id="B2", metadata="run7"))

        assert [link.id for link in service.search_links(" ")] == [spaced.id]

    def test_limit_out_of_range(self, service):
        with pytest.raises(ValidationError):
            service.search_links("x", limit=0)


class TestConnections:
    """Tests for get_entity_connections / remove_entity_links"""

    def test_connections_both_directions(self, service):
        out = service.create_link(_link("note", "A", "project", "P"))
        back = service.create_link(_link("experiment", "E", "note", "A"))

        connections = service.get_entity_connections("note", "A")

        assert [l.id for l in connections.outgoing] == [out.id]
        assert [l.id for l in connections.backlinks] == [back.id]
        assert connections.total == 2

    def test_self_link_appears_on_both_sides(self, service):
        link = service.create_link(_link("note", "A", "note", "A"))

        connections = service.get_entity_connections("note", "A")

        assert [l.id for l in connections.outgoing] == [link.id]
        assert [l.id for l in connections.backlinks] == [link.id]

    def test_connections_attach_summaries(self, service, summaries):
        summaries.add("project", "P", {"name": "Kinase screen"})
        service.create_link(_link("note", "A", "project", "P"))

        connections = service.get_entity_connections("note", "A")
        assert connections.outgoing[0].target_summary == {"name": "Kinase screen"}

    def test_remove_entity_links(self, service):
        service.create_link(_link("note", "A", "project", "P"))
        service.create_link(_link("project", "P", "experiment", "E"))
        kept = service.create_link(_link("note", "A", "experiment", "E"))

        assert service.remove_entity_links("project", "P") == 2
        assert [l.id for l in service.list_links().links] == [kept.id]

    def test_remove_entity_links_validates(self, service):
        with pytest.raises(ValidationError):
            service.remove_entity_links("widget", "P")


class TestSummaryDegradation:
    """Summary provider failures never fail the read"""

    def test_provider_failure_gives_generic_labels(self, store, entity_registry, settings):
        provider = MagicMock()
        provider.fetch.side_effect = StorageError("summary db down")
        service = LinkService(
            store=store, summary_provider=provider, registry=entity_registry, settings=settings
        )
        service.create_link(_link())

        links = service.get_outgoing("note", "A")
        assert links[0].source_summary is None

        graph = service.get_link_graph()
        assert {node.label for node in graph.nodes} == {"note A", "databaseEntry B"}
