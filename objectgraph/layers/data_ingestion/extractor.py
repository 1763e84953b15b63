"""
Structured Extraction

Fills an object type's extraction schema from a raw payload through the
oracle, then validates the answer at the boundary: only fields the
pipeline may write can reach a record's metadata.
"""

from typing import Any
import logging

from ...core.entities import ObjectRecord
from ...core.errors import ExtractionError
from ...core.session import IngestionSession
from ..intelligence.oracle import Oracle
from ..schema.compiler import SchemaValidationError

logger = logging.getLogger(__name__)


class Extractor:
    """Turns a payload into a candidate ObjectRecord of a known type."""

    def __init__(self, oracle: Oracle):
        self._oracle = oracle

    def extract(self, session: IngestionSession, object_type_id: str, payload: Any) -> ObjectRecord:
        schema = session.compiled.schema_for(object_type_id)
        description = session.compiled.description_for(object_type_id)

        try:
            answer = self._oracle.extract(
                schema,
                payload,
                description,
                guidance=session.hints.data_description,
                function_description=session.hints.process_data_function_description
            )
        except Exception as e:
            raise ExtractionError(f"Unable to extract {object_type_id} data: {e}") from e

        try:
            metadata = schema.validate(answer)
        except SchemaValidationError as e:
            raise ExtractionError(str(e)) from e

        record = ObjectRecord(
            owner_organisation_id=session.organisation_id,
            related_object_type_id=object_type_id,
            metadata=metadata
        )
        logger.info("Extracted %s record %s (%d fields)", object_type_id, record.id, len(metadata))
        return record
