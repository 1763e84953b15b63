"""
Core domain: records, catalog entities, errors and per-call session values.
"""

from .entities import (
    ObjectCategory,
    ObjectRecord,
    ObjectTypeDef,
    FieldDef,
    FieldTypeDef,
    DictionaryTerm,
    SchemaCatalog
)
from .errors import (
    IngestionError,
    OrganisationResolutionError,
    ClassificationError,
    ExtractionError,
    ParentResolutionError,
    MergeError,
    StorageError,
    OracleError,
    PartialBatchFailure
)
from .session import (
    IngestionHints,
    IngestionSession,
    IngestionResult,
    ItemOutcome,
    ItemStatus,
    PropagationWarning
)

__all__ = [
    "ObjectCategory",
    "ObjectRecord",
    "ObjectTypeDef",
    "FieldDef",
    "FieldTypeDef",
    "DictionaryTerm",
    "SchemaCatalog",
    "IngestionError",
    "OrganisationResolutionError",
    "ClassificationError",
    "ExtractionError",
    "ParentResolutionError",
    "MergeError",
    "StorageError",
    "OracleError",
    "PartialBatchFailure",
    "IngestionHints",
    "IngestionSession",
    "IngestionResult",
    "ItemOutcome",
    "ItemStatus",
    "PropagationWarning",
]
