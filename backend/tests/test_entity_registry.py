"""
Tests for the entity type registry: tag parsing and node labeling.
"""
import pytest

from domains.core.exceptions import ValidationError
from domains.link_hub.core.registry import (
    EntityType,
    EntityTypeDescriptor,
    create_default_registry,
    first_field,
)


class TestParse:
    """Tests for EntityTypeRegistry.parse"""

    def test_parse_known_tags(self, entity_registry):
        assert entity_registry.parse("note") is EntityType.NOTE
        assert entity_registry.parse("databaseEntry") is EntityType.DATABASE_ENTRY
        assert entity_registry.parse(EntityType.RECIPE_EXECUTION) is EntityType.RECIPE_EXECUTION

    def test_all_participant_kinds_registered(self, entity_registry):
        assert set(entity_registry.types) == set(EntityType)

    @pytest.mark.parametrize("value", ["notes", "NOTE", "", None, "database_entry"])
    def test_parse_unknown_tag_raises(self, entity_registry, value):
        with pytest.raises(ValidationError) as exc_info:
            entity_registry.parse(value, field="source_type")

        assert exc_info.value.http_status_code == 400
        assert exc_info.value.field == "source_type"

    def test_unregistered_member_is_rejected(self):
        registry = create_default_registry()
        registry._descriptors.pop(EntityType.TABLE)

        with pytest.raises(ValidationError):
            registry.parse("table")


class TestDescribe:
    """Tests for EntityTypeRegistry.describe"""

    def test_note_uses_title(self, entity_registry):
        result = entity_registry.describe("note", "n1", {"title": "PCR notes"})
        assert result == {"label": "PCR notes", "title": "PCR notes"}

    def test_highlight_truncates_text_and_labels_page(self, entity_registry):
        text = "x" * 80
        result = entity_registry.describe("highlight", "h1", {"text": text, "page": 4})

        assert result["label"] == "Highlight (p.4)"
        assert result["title"] == "x" * 50 + "..."

    def test_highlight_without_page_uses_text(self, entity_registry):
        result = entity_registry.describe("highlight", "h1", {"text": "short"})
        assert result == {"label": "short...", "title": "short..."}

    def test_highlight_title_length_is_configurable(self):
        registry = create_default_registry(highlight_title_length=5)
        result = registry.describe("highlight", "h1", {"text": "abcdefgh", "page": 1})
        assert result["title"] == "abcde..."

    def test_database_entry_uses_name(self, entity_registry):
        result = entity_registry.describe("databaseEntry", "d1", {"name": "Tris buffer"})
        assert result["label"] == "Tris buffer"

    def test_project_falls_back_to_name(self, entity_registry):
        assert entity_registry.describe("project", "p1", {"name": "Kinase"})["label"] == "Kinase"
        assert entity_registry.describe("project", "p1", {"title": "T", "name": "N"})["label"] == "T"

    def test_execution_uses_parent_name(self, entity_registry):
        result = entity_registry.describe(
            "protocolExecution", "e1", {"parent_name": "Western blot", "status": "completed"}
        )
        assert result["label"] == "Western blot run"

    def test_execution_without_parent_uses_status(self, entity_registry):
        result = entity_registry.describe("recipeExecution", "e1", {"status": "planned"})
        assert result["label"] == "planned"

    @pytest.mark.parametrize(
        "summary",
        [None, {}, "not-a-dict", {"title": ""}, {"title": ["list"]}, {"title": None}],
    )
    def test_missing_or_malformed_summary_falls_back(self, entity_registry, summary):
        result = entity_registry.describe("note", "n1", summary)
        assert result == {"label": "note n1", "title": "note n1"}

    def test_unknown_type_falls_back(self, entity_registry):
        result = entity_registry.describe("widget", "w1", {"title": "ignored"})
        assert result == {"label": "widget w1", "title": "widget w1"}

    def test_accessor_errors_do_not_raise(self, entity_registry):
        def broken(summary, registry):
            raise KeyError("boom")

        entity_registry.register(EntityTypeDescriptor(EntityType.TABLE, broken))
        result = entity_registry.describe("table", "t1", {"name": "ignored"})
        assert result["label"] == "table t1"

    def test_register_replaces_accessor(self, entity_registry):
        entity_registry.register(
            EntityTypeDescriptor(EntityType.TABLE, first_field("caption"))
        )
        assert entity_registry.describe("table", "t1", {"caption": "Yields"})["label"] == "Yields"
