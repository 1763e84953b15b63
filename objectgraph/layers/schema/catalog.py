"""
Catalog loading.

Reads the configuration visible to an organisation (its own rows plus the
global rows with no owner) into a SchemaCatalog snapshot.
"""

from typing import Optional
import logging

from ...config.settings import IngestionConfig, get_settings
from ...core.entities import (
    DICTIONARY_TERMS_TABLE,
    FIELD_TYPES_TABLE,
    FIELDS_TABLE,
    OBJECT_TYPES_TABLE,
    DictionaryTerm,
    FieldDef,
    FieldTypeDef,
    ObjectTypeDef,
    SchemaCatalog
)
from ...core.errors import OrganisationResolutionError
from ..storage.store import Condition, QueryOptions, StorageEngine

logger = logging.getLogger(__name__)


def organisation_scope(organisation_id: Optional[str]) -> QueryOptions:
    """Rows owned by the organisation or by no one."""
    return QueryOptions(or_conditions=[
        Condition("owner_organisation_id", "is", None),
        Condition("owner_organisation_id", "eq", organisation_id),
    ])


class CatalogLoader:
    """Loads an organisation's SchemaCatalog from storage."""

    def __init__(self, storage: StorageEngine, config: IngestionConfig = None):
        self._storage = storage
        self._config = config or get_settings().ingestion

    def load(self, organisation_id: Optional[str]) -> SchemaCatalog:
        try:
            type_rows = self._storage.query(OBJECT_TYPES_TABLE, organisation_scope(organisation_id))
            field_rows = self._storage.query(FIELDS_TABLE, organisation_scope(organisation_id))
            field_type_rows = self._storage.query(FIELD_TYPES_TABLE)
            term_rows = self._storage.query(DICTIONARY_TERMS_TABLE)
        except Exception as e:
            raise OrganisationResolutionError(
                f"Unable to load catalog for organisation {organisation_id}: {e}"
            ) from e

        if not type_rows:
            raise OrganisationResolutionError(
                f"No object types are available to organisation {organisation_id}"
            )

        # Signals and messages never start another analysis pass
        quiet_types = {self._config.signal_object_type_id, self._config.message_object_type_id}

        try:
            catalog = SchemaCatalog(
                organisation_id=organisation_id,
                object_types=tuple(
                    ObjectTypeDef.from_row(row, triggers_analysis=row["id"] not in quiet_types)
                    for row in type_rows
                ),
                fields=tuple(FieldDef.from_row(row) for row in field_rows),
                field_types=tuple(FieldTypeDef.from_row(row) for row in field_type_rows),
                dictionary_terms=tuple(DictionaryTerm.from_row(row) for row in term_rows),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise OrganisationResolutionError(
                f"Invalid catalog row for organisation {organisation_id}: {e!r}"
            ) from e

        logger.info(
            "Loaded catalog for organisation %s: %d object types, %d fields",
            organisation_id, len(catalog.object_types), len(catalog.fields)
        )
        return catalog
