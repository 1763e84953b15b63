"""
Tests for catalog loading and schema compilation.
"""

import pytest
from unittest.mock import Mock

from objectgraph.core.entities import ObjectCategory
from objectgraph.core.errors import OrganisationResolutionError, StorageError
from objectgraph.layers.schema import CatalogLoader, SchemaCompiler, SchemaValidationError
from objectgraph.layers.storage import StorageEngine


class TestCatalogLoader:
    """Catalog scoping and capability flags."""

    def test_org_sees_global_and_own_types_only(self, catalog):
        assert "feedback" in catalog.object_type_ids
        assert "contract" not in catalog.object_type_ids

    def test_org_two_sees_its_own_type(self, storage, config):
        other = CatalogLoader(storage, config).load("org2")
        assert "contract" in other.object_type_ids
        assert any(f.id == "value" for f in other.fields)

    def test_signal_and_message_do_not_trigger_analysis(self, catalog):
        assert catalog.get_object_type("signal").triggers_analysis is False
        assert catalog.get_object_type("message").triggers_analysis is False
        assert catalog.get_object_type("feedback").triggers_analysis is True
        assert catalog.get_object_type("job").triggers_analysis is True

    def test_categories_are_parsed(self, catalog):
        assert catalog.get_object_type("signal").category == ObjectCategory.SPECIAL
        assert catalog.classification_candidates() == ["product", "feature", "feedback"]

    def test_storage_failure_is_organisation_resolution_error(self, config):
        storage = Mock(spec=StorageEngine)
        storage.query.side_effect = StorageError("down")

        with pytest.raises(OrganisationResolutionError, match="down"):
            CatalogLoader(storage, config).load("org1")

    def test_no_types_is_organisation_resolution_error(self, config):
        storage = Mock(spec=StorageEngine)
        storage.query.return_value = []

        with pytest.raises(OrganisationResolutionError):
            CatalogLoader(storage, config).load("org1")

    def test_unknown_category_is_organisation_resolution_error(self, storage, config):
        storage.seed("object_types", [{"id": "mystery", "category": "organisation_data_unknown"}])

        with pytest.raises(OrganisationResolutionError, match="organisation_data_unknown"):
            CatalogLoader(storage, config).load("org1")

    def test_row_without_id_is_organisation_resolution_error(self, config):
        storage = Mock(spec=StorageEngine)
        storage.query.side_effect = [[{"name": "No id"}], [], [], []]

        with pytest.raises(OrganisationResolutionError, match="Invalid catalog row"):
            CatalogLoader(storage, config).load("org1")


class TestSchemaCompiler:
    """Compiled descriptions and extraction schemas."""

    def test_description_map_lists_all_fields(self, compiled):
        description = compiled.description_for("feedback").to_dict()
        assert description["name"] == "Feedback"
        assert description["description"] == "Feedback from users"
        assert set(description["fields"]) == {"title", "severity", "tags", "internal_notes", "score"}

    def test_fields_without_ai_update_are_omitted(self, compiled):
        schema = compiled.schema_for("feedback")
        assert "internal_notes" not in schema.properties
        assert schema.field_ids == ["title", "severity", "tags", "score"]

    def test_global_fields_apply_to_every_type(self, compiled):
        for type_id in ("product", "feedback", "signal", "job"):
            assert "title" in compiled.schema_for(type_id).properties

    def test_required_field_is_not_nullable(self, compiled):
        schema = compiled.schema_for("feedback")
        assert schema.properties["title"] == {"description": "Title: Short title", "type": "string"}
        assert schema.required == ["title"]

    def test_dictionary_field_lists_terms_and_is_nullable(self, compiled):
        severity = compiled.schema_for("feedback").properties["severity"]
        assert severity["enum"] == ["low", "medium", "high", None]
        assert severity["type"] == ["string", "null"]
        assert severity["description"].startswith("Severity: How bad it is\nDescriptions for the enums are: ")
        assert '"id": "high"' in severity["description"]

    def test_array_field_nests_element_schema(self, compiled):
        tags = compiled.schema_for("feedback").properties["tags"]
        assert tags["type"] == ["array", "null"]
        assert tags["description"] == "Array of Tags items"
        assert tags["items"] == {"description": "Tags", "type": "string"}

    def test_max_value_is_described(self, compiled):
        score = compiled.schema_for("feedback").properties["score"]
        assert score["description"] == "Score\nThe max value is: 10"
        assert score["type"] == ["number", "null"]

    def test_candidates_are_standard_types(self, compiled):
        assert set(compiled.candidate_descriptions()) == {"product", "feature", "feedback"}

    def test_compilation_is_deterministic(self, catalog):
        first = SchemaCompiler().compile(catalog)
        second = SchemaCompiler().compile(catalog)
        for type_id in catalog.object_type_ids:
            assert first.schema_for(type_id).properties == second.schema_for(type_id).properties
            assert first.description_for(type_id) == second.description_for(type_id)

    def test_json_schema_shape(self, compiled):
        json_schema = compiled.schema_for("feedback").to_json_schema("fn", "desc")
        assert json_schema["title"] == "fn"
        assert json_schema["type"] == "object"
        assert json_schema["required"] == ["title", "severity", "tags", "score"]
        assert compiled.schema_for("feedback").required == ["title"]
        assert json_schema["additionalProperties"] is False


class TestExtractionSchemaValidation:
    """Boundary validation of oracle answers."""

    @pytest.fixture
    def schema(self, compiled):
        return compiled.schema_for("feedback")

    def test_valid_answer_fills_every_field(self, schema):
        result = schema.validate({"title": "Login fails", "severity": "high"})
        assert result == {"title": "Login fails", "severity": "high", "tags": None, "score": None}

    def test_unknown_keys_are_dropped(self, schema):
        result = schema.validate({"title": "x", "internal_notes": "sneaky", "other": 1})
        assert "internal_notes" not in result
        assert "other" not in result

    def test_missing_required_field(self, schema):
        with pytest.raises(SchemaValidationError, match="title"):
            schema.validate({"severity": "low"})

    def test_null_required_field(self, schema):
        with pytest.raises(SchemaValidationError, match="title"):
            schema.validate({"title": None})

    def test_value_outside_enum(self, schema):
        with pytest.raises(SchemaValidationError):
            schema.validate({"title": "x", "severity": "critical"})

    def test_value_above_max(self, schema):
        assert schema.validate({"title": "x", "score": 10})["score"] == 10
        with pytest.raises(SchemaValidationError):
            schema.validate({"title": "x", "score": 11})

    def test_array_field_requires_list(self, schema):
        assert schema.validate({"title": "x", "tags": ["a", "b"]})["tags"] == ["a", "b"]
        with pytest.raises(SchemaValidationError):
            schema.validate({"title": "x", "tags": "a"})

    def test_non_object_answer(self, schema):
        with pytest.raises(SchemaValidationError):
            schema.validate(["title"])
