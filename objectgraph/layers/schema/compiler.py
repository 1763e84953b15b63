"""
Schema Compiler - Catalog to Prompt Surface and Extraction Schemas

Turns an organisation's SchemaCatalog into:
- a human-readable description per object type, used to build
  classification and extraction prompts
- a structured-extraction schema per object type, used both as the
  function-calling schema sent to the oracle and as the validator the
  oracle's answer is checked against

Compilation is pure and deterministic. Compiled schemas are not shared
across organisations; compile again whenever the catalog changes.
"""

import json
from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from ...core.entities import FieldDef, SchemaCatalog


JSON_TYPES: Dict[str, Type] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
    "object": Dict[str, Any],
}


class SchemaValidationError(ValueError):
    """Candidate metadata does not conform to an extraction schema."""


@dataclass(frozen=True)
class TypeDescription:
    """Prompt-facing description of an object type."""
    id: str
    name: str
    description: str
    fields: Dict[str, Dict[str, str]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "fields": self.fields}


@dataclass(frozen=True)
class CompiledField:
    """A writable field as seen by extraction: JSON property plus validation data."""
    id: str
    name: str
    data_type: str
    is_array: bool
    is_required: bool
    enum: Optional[Tuple[str, ...]] = None
    max_value: Optional[float] = None
    property: Dict[str, Any] = field(default_factory=dict)


class ExtractionSchema:
    """
    Structured-extraction schema for one object type.

    ``properties`` maps field id to its JSON property; non-required fields
    are nullable. Only fields the pipeline may write are present.
    """

    def __init__(self, object_type_id: str, fields: List[CompiledField]):
        self.object_type_id = object_type_id
        self.fields = list(fields)
        self._model: Optional[Type[BaseModel]] = None

    @property
    def properties(self) -> Dict[str, Dict[str, Any]]:
        return {f.id: f.property for f in self.fields}

    @property
    def required(self) -> List[str]:
        return [f.id for f in self.fields if f.is_required]

    @property
    def field_ids(self) -> List[str]:
        return [f.id for f in self.fields]

    def to_json_schema(self, title: str, description: str) -> Dict[str, Any]:
        """Strict function-calling JSON schema: every property is listed as required, optional ones are nullable."""
        return {
            "title": title,
            "description": description,
            "type": "object",
            "properties": self.properties,
            "required": self.field_ids,
            "additionalProperties": False,
        }

    def validate(self, data: Any) -> Dict[str, Any]:
        """
        Check ``data`` against the schema.

        Returns a map holding exactly the schema's fields (missing nullable
        fields become None, unknown keys are dropped). Raises
        SchemaValidationError on a missing required field or a value of
        the wrong shape.
        """
        if not isinstance(data, dict):
            raise SchemaValidationError(
                f"Expected an object for type {self.object_type_id}, got {type(data).__name__}"
            )

        missing = [fid for fid in self.required if data.get(fid) is None]
        if missing:
            raise SchemaValidationError(
                f"Missing required field(s) for type {self.object_type_id}: {', '.join(missing)}"
            )

        try:
            validated = self._get_model().model_validate(data)
        except ValidationError as e:
            raise SchemaValidationError(
                f"Invalid metadata for type {self.object_type_id}: {e}"
            ) from e

        return validated.model_dump(by_alias=True)

    def _get_model(self) -> Type[BaseModel]:
        if self._model is None:
            self._model = self._build_model()
        return self._model

    def _build_model(self) -> Type[BaseModel]:
        # Field ids are arbitrary configuration strings, so they are carried as aliases
        definitions = {}
        for index, compiled in enumerate(self.fields):
            value_type = _python_type(compiled)
            if compiled.is_required:
                definitions[f"f_{index}"] = (value_type, Field(..., alias=compiled.id))
            else:
                definitions[f"f_{index}"] = (Optional[value_type], Field(default=None, alias=compiled.id))

        return create_model(
            f"Metadata_{self.object_type_id}",
            __config__=ConfigDict(extra="ignore"),
            **definitions
        )


def _python_type(compiled: CompiledField):
    if compiled.enum:
        element = Literal[compiled.enum]
    else:
        element = JSON_TYPES.get(compiled.data_type, Any)
        if compiled.max_value is not None and compiled.data_type in ("number", "integer"):
            element = Annotated[element, Field(le=compiled.max_value)]

    if compiled.is_array:
        return List[element]
    return element


@dataclass
class CompiledSchema:
    """Compiler output for one catalog."""
    organisation_id: Optional[str]
    descriptions: Dict[str, TypeDescription] = field(default_factory=dict)
    schemas: Dict[str, ExtractionSchema] = field(default_factory=dict)
    classification_candidates: List[str] = field(default_factory=list)

    def description_for(self, object_type_id: str) -> TypeDescription:
        return self.descriptions[object_type_id]

    def schema_for(self, object_type_id: str) -> ExtractionSchema:
        return self.schemas[object_type_id]

    def candidate_descriptions(self) -> Dict[str, Dict[str, Any]]:
        """Descriptions of the types incoming data may be classified into."""
        return {tid: self.descriptions[tid].to_dict() for tid in self.classification_candidates}


class SchemaCompiler:
    """Compiles a SchemaCatalog into descriptions and extraction schemas."""

    def compile(self, catalog: SchemaCatalog) -> CompiledSchema:
        compiled = CompiledSchema(
            organisation_id=catalog.organisation_id,
            classification_candidates=catalog.classification_candidates()
        )

        for object_type in catalog.object_types:
            type_fields = catalog.fields_for(object_type.id)

            compiled.descriptions[object_type.id] = TypeDescription(
                id=object_type.id,
                name=object_type.name,
                description=object_type.description,
                fields={f.id: {"description": f.description or f.name} for f in type_fields}
            )

            compiled.schemas[object_type.id] = ExtractionSchema(
                object_type.id,
                [
                    self.compile_field(f, catalog)
                    for f in type_fields
                    if f.allow_ai_update
                ]
            )

        return compiled

    def compile_field(self, field_def: FieldDef, catalog: SchemaCatalog) -> CompiledField:
        """Compile one writable field into its JSON property."""
        field_type = catalog.field_type(field_def.field_type_id)
        data_type = field_type.data_type if field_type else field_def.field_type_id
        is_array = field_def.is_array or bool(field_type and field_type.is_array)

        description = (
            f"{field_def.name}: {field_def.description}" if field_def.description else field_def.name
        )
        if field_def.max_value is not None:
            description += f"\nThe max value is: {field_def.max_value}"

        element: Dict[str, Any] = {}
        enum = None
        if field_def.dictionary_term_type:
            terms = catalog.terms_of_type(field_def.dictionary_term_type)
            enum = tuple(t.id for t in terms)
            description += "\nDescriptions for the enums are: " + json.dumps(
                [{"id": t.id, "description": t.description} for t in terms]
            )
            element["enum"] = list(enum)

        element["description"] = description
        element["type"] = data_type

        if is_array:
            prop: Dict[str, Any] = {
                "type": "array",
                "description": f"Array of {field_def.name} items",
                "items": element,
            }
        else:
            prop = element

        if not field_def.is_required:
            prop = _nullable(prop)

        return CompiledField(
            id=field_def.id,
            name=field_def.name,
            data_type=data_type,
            is_array=is_array,
            is_required=field_def.is_required,
            enum=enum,
            max_value=field_def.max_value,
            property=prop
        )


def _nullable(prop: Dict[str, Any]) -> Dict[str, Any]:
    nullable = dict(prop)
    nullable["type"] = [prop["type"], "null"]
    if "enum" in nullable:
        nullable["enum"] = list(nullable["enum"]) + [None]
    return nullable
