"""
Core Entities - Records and Catalog Configuration

Records are the unit of storage produced by the upsert pipeline. The catalog
entities (object types, fields, field types, dictionary terms) are read-only
configuration: they decide which shapes a record's metadata may take.

Entities:
- ObjectRecord: a stored object with metadata and relationship edges
- ObjectTypeDef: a configured record shape (feedback, product, signal, job...)
- FieldDef: a single configured attribute of an object type
- FieldTypeDef: the primitive shape of a field
- DictionaryTerm: an enumeration value for dictionary-backed fields
- SchemaCatalog: snapshot of all of the above for one organisation
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4


OBJECTS_TABLE = "objects"
OBJECT_TYPES_TABLE = "object_types"
FIELDS_TABLE = "object_metadata_types"
FIELD_TYPES_TABLE = "field_types"
DICTIONARY_TERMS_TABLE = "dictionary_terms"
ORGANISATIONS_TABLE = "organisations"
CONNECTION_MAPPING_TABLE = "connection_organisation_mapping"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class ObjectCategory(str, Enum):
    """
    Object type categories.

    Standard types are what incoming data is classified into; static types
    hold reference data; special types (signal, job, message, ...) are created
    by the system itself.
    """
    STANDARD = "organisation_data_standard"
    STATIC = "organisation_data_static"
    SPECIAL = "organisation_data_special"
    COMPANY = "company_data"


@dataclass
class ObjectRecord:
    """
    A stored object.

    ``related_ids`` is the peer adjacency list keyed by the peer's object
    type id; ``child_ids`` is maintained on parents so that parent/child
    edges can be walked in both directions.
    """
    id: str = field(default_factory=lambda: str(uuid4()))
    owner_organisation_id: Optional[str] = None
    related_object_type_id: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    parent_id: Optional[str] = None
    related_ids: Dict[str, List[str]] = field(default_factory=dict)
    child_ids: Dict[str, List[str]] = field(default_factory=dict)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        """Convert to a storage row."""
        return {
            "id": self.id,
            "owner_organisation_id": self.owner_organisation_id,
            "related_object_type_id": self.related_object_type_id,
            "metadata": self.metadata,
            "parent_id": self.parent_id,
            "related_ids": self.related_ids,
            "child_ids": self.child_ids,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ObjectRecord":
        """Create a record from a storage row."""
        return cls(
            id=row["id"],
            owner_organisation_id=row.get("owner_organisation_id"),
            related_object_type_id=row.get("related_object_type_id", ""),
            metadata=dict(row.get("metadata") or {}),
            parent_id=row.get("parent_id"),
            related_ids={k: list(v) for k, v in (row.get("related_ids") or {}).items()},
            child_ids={k: list(v) for k, v in (row.get("child_ids") or {}).items()},
            created_at=_parse_timestamp(row.get("created_at")),
            updated_at=_parse_timestamp(row.get("updated_at")),
        )


@dataclass(frozen=True)
class ObjectTypeDef:
    """A configured object type."""
    id: str
    name: str = ""
    description: str = ""
    category: ObjectCategory = ObjectCategory.STANDARD
    parent_object_type_id: Optional[str] = None
    owner_organisation_id: Optional[str] = None

    # Whether storing an instance may start a post-store analysis session
    triggers_analysis: bool = True

    @classmethod
    def from_row(cls, row: Dict[str, Any], triggers_analysis: bool = True) -> "ObjectTypeDef":
        return cls(
            id=row["id"],
            name=row.get("name") or row["id"],
            description=row.get("description") or "",
            category=ObjectCategory(row.get("category") or ObjectCategory.STANDARD.value),
            parent_object_type_id=row.get("parent_object_type_id"),
            owner_organisation_id=row.get("owner_organisation_id"),
            triggers_analysis=row.get("triggers_analysis", triggers_analysis),
        )


@dataclass(frozen=True)
class FieldDef:
    """A configured field (metadata type) of an object type, or of every type when global."""
    id: str
    name: str = ""
    description: str = ""
    field_type_id: str = "string"
    is_array: bool = False
    is_required: bool = False
    allow_ai_update: bool = True
    dictionary_term_type: Optional[str] = None
    max_value: Optional[float] = None
    related_object_type_id: Optional[str] = None
    owner_organisation_id: Optional[str] = None

    @property
    def is_global(self) -> bool:
        return self.related_object_type_id is None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "FieldDef":
        return cls(
            id=row["id"],
            name=row.get("name") or row["id"],
            description=row.get("description") or "",
            field_type_id=row.get("field_type_id") or "string",
            is_array=bool(row.get("is_array", False)),
            is_required=bool(row.get("is_required", False)),
            allow_ai_update=bool(row.get("allow_ai_update", True)),
            dictionary_term_type=row.get("dictionary_term_type"),
            max_value=row.get("max_value"),
            related_object_type_id=row.get("related_object_type_id"),
            owner_organisation_id=row.get("owner_organisation_id"),
        )


@dataclass(frozen=True)
class FieldTypeDef:
    """Primitive shape of a field: string, number, integer, boolean or object, optionally an array."""
    id: str
    name: str = ""
    data_type: str = "string"
    is_array: bool = False

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "FieldTypeDef":
        return cls(
            id=row["id"],
            name=row.get("name") or row["id"],
            data_type=row.get("data_type") or "string",
            is_array=bool(row.get("is_array", False)),
        )


@dataclass(frozen=True)
class DictionaryTerm:
    """An allowed value for fields declaring ``dictionary_term_type``."""
    id: str
    type: str
    description: str = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "DictionaryTerm":
        return cls(id=row["id"], type=row["type"], description=row.get("description") or "")


@dataclass(frozen=True)
class SchemaCatalog:
    """Read-only snapshot of the configuration visible to one organisation."""
    organisation_id: Optional[str] = None
    object_types: Tuple[ObjectTypeDef, ...] = ()
    fields: Tuple[FieldDef, ...] = ()
    field_types: Tuple[FieldTypeDef, ...] = ()
    dictionary_terms: Tuple[DictionaryTerm, ...] = ()

    @property
    def object_type_ids(self) -> List[str]:
        return [t.id for t in self.object_types]

    def get_object_type(self, object_type_id: str) -> Optional[ObjectTypeDef]:
        return next((t for t in self.object_types if t.id == object_type_id), None)

    def field_type(self, field_type_id: str) -> Optional[FieldTypeDef]:
        return next((ft for ft in self.field_types if ft.id == field_type_id), None)

    def terms_of_type(self, term_type: str) -> List[DictionaryTerm]:
        return [t for t in self.dictionary_terms if t.type == term_type]

    def fields_for(self, object_type_id: str) -> List[FieldDef]:
        """Fields of a type, including global fields, in catalog order."""
        return [
            f for f in self.fields
            if f.related_object_type_id == object_type_id or f.is_global
        ]

    def classification_candidates(self) -> List[str]:
        """Type ids incoming data may be classified into."""
        standard = [t.id for t in self.object_types if t.category == ObjectCategory.STANDARD]
        return standard or self.object_type_ids
