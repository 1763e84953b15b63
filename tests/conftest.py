"""
Shared fixtures: a seeded in-memory store, the org1 catalog and sessions.
"""

import pytest
from unittest.mock import Mock

from objectgraph.config.settings import IngestionConfig
from objectgraph.core.session import IngestionHints, IngestionSession
from objectgraph.layers.intelligence.oracle import MockOracle, Oracle
from objectgraph.layers.schema import CatalogLoader, SchemaCompiler
from objectgraph.layers.storage import InMemoryStorageEngine


ORGANISATIONS = [
    {"id": "org1", "name": "Org One"},
    {"id": "org2", "name": "Org Two"},
]

FIELD_TYPES = [
    {"id": "string", "data_type": "string"},
    {"id": "number", "data_type": "number"},
    {"id": "string_array", "data_type": "string", "is_array": True},
]

DICTIONARY_TERMS = [
    {"id": "low", "type": "severity", "description": "Minor inconvenience"},
    {"id": "medium", "type": "severity", "description": "Noticeable impact"},
    {"id": "high", "type": "severity", "description": "Blocks the user"},
]

OBJECT_TYPES = [
    {"id": "product", "name": "Product", "description": "An item sold by the organisation",
     "category": "organisation_data_standard"},
    {"id": "feature", "name": "Feature", "description": "A feature of a product",
     "category": "organisation_data_standard", "parent_object_type_id": "product"},
    {"id": "feedback", "name": "Feedback", "description": "Feedback from users",
     "category": "organisation_data_standard"},
    {"id": "signal", "name": "Signal", "description": "An insight",
     "category": "organisation_data_special"},
    {"id": "job", "name": "Job", "description": "Work to be done",
     "category": "organisation_data_special"},
    {"id": "message", "name": "Message", "description": "A chat message",
     "category": "organisation_data_special"},
    {"id": "contract", "name": "Contract", "description": "Org two only",
     "category": "organisation_data_standard", "owner_organisation_id": "org2"},
]

FIELDS = [
    {"id": "title", "name": "Title", "description": "Short title", "field_type_id": "string",
     "is_required": True, "related_object_type_id": None},
    {"id": "severity", "name": "Severity", "description": "How bad it is", "field_type_id": "string",
     "dictionary_term_type": "severity", "related_object_type_id": "feedback"},
    {"id": "tags", "name": "Tags", "field_type_id": "string_array", "related_object_type_id": "feedback"},
    {"id": "internal_notes", "name": "Internal notes", "field_type_id": "string",
     "allow_ai_update": False, "related_object_type_id": "feedback"},
    {"id": "score", "name": "Score", "field_type_id": "number", "max_value": 10,
     "related_object_type_id": "feedback"},
    {"id": "price", "name": "Price", "field_type_id": "number", "related_object_type_id": "product"},
    {"id": "trigger_message", "name": "Trigger message", "field_type_id": "string",
     "is_required": True, "related_object_type_id": "signal"},
    {"id": "relevant_data", "name": "Relevant data", "field_type_id": "string",
     "related_object_type_id": "signal"},
    {"id": "description", "name": "Description", "field_type_id": "string",
     "related_object_type_id": "job"},
    {"id": "value", "name": "Value", "field_type_id": "number",
     "related_object_type_id": "contract", "owner_organisation_id": "org2"},
]


def seed_catalog(storage: InMemoryStorageEngine) -> None:
    storage.seed("organisations", ORGANISATIONS)
    storage.seed("field_types", FIELD_TYPES)
    storage.seed("dictionary_terms", DICTIONARY_TERMS)
    storage.seed("object_types", OBJECT_TYPES)
    storage.seed("object_metadata_types", FIELDS)


def object_row(record_id, object_type_id, metadata, organisation_id="org1", **extra):
    """A stored object row for seeding."""
    row = {
        "id": record_id,
        "owner_organisation_id": organisation_id,
        "related_object_type_id": object_type_id,
        "metadata": metadata,
        "parent_id": None,
        "related_ids": {},
        "child_ids": {},
    }
    row.update(extra)
    return row


@pytest.fixture
def config():
    """Ingestion settings with analysis disabled; analysis tests opt in."""
    return IngestionConfig(analysis_enabled=False)


@pytest.fixture
def storage(config):
    engine = InMemoryStorageEngine(config=config)
    seed_catalog(engine)
    return engine


@pytest.fixture
def catalog(storage, config):
    return CatalogLoader(storage, config).load("org1")


@pytest.fixture
def compiled(catalog):
    return SchemaCompiler().compile(catalog)


@pytest.fixture
def make_session(catalog, compiled):
    """Factory for org1 sessions; keyword ``hints`` takes wire-format hint dicts."""
    def _make(hints=None, dry_run=False, is_top_level=True):
        return IngestionSession(
            organisation_id="org1",
            catalog=catalog,
            compiled=compiled,
            dry_run=dry_run,
            is_top_level=is_top_level,
            hints=IngestionHints.model_validate(hints or {})
        )
    return _make


@pytest.fixture
def make_row():
    return object_row


@pytest.fixture
def mock_oracle():
    return MockOracle()


@pytest.fixture
def scripted_oracle():
    """An oracle whose answers each test scripts."""
    return Mock(spec=Oracle)
