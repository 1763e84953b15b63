"""
Schema Layer

Turns the configured object-type catalog into:
- type descriptions for classification and extraction prompts
- per-type structured-extraction schemas and their validators
"""

from .catalog import CatalogLoader, organisation_scope
from .compiler import (
    SchemaCompiler,
    CompiledSchema,
    ExtractionSchema,
    TypeDescription,
    SchemaValidationError
)

__all__ = [
    "CatalogLoader",
    "organisation_scope",
    "SchemaCompiler",
    "CompiledSchema",
    "ExtractionSchema",
    "TypeDescription",
    "SchemaValidationError"
]
