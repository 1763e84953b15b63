"""
Merging existing and new records.

Two operations that must not be conflated:
- merge_structural: the patch merge the storage engine applies to partial
  updates (array union, recursive maps, incoming scalars win)
- SemanticMerger: the oracle reconciles a stored record with newly
  extracted data; it never falls back to the structural merge
"""

from dataclasses import replace
import logging

from ...core.entities import ObjectRecord, utcnow
from ...core.errors import MergeError
from ...core.session import IngestionSession
from ..intelligence.oracle import Oracle
from ..schema.compiler import SchemaValidationError
from ..storage.merge import merge_structural

logger = logging.getLogger(__name__)

__all__ = ["SemanticMerger", "merge_structural"]


class SemanticMerger:
    """Oracle-driven merge of a dedup match with a new candidate record."""

    def __init__(self, oracle: Oracle):
        self._oracle = oracle

    def merge(self, session: IngestionSession, existing: ObjectRecord, incoming: ObjectRecord) -> ObjectRecord:
        """
        Merge ``incoming`` into ``existing``.

        The result keeps the existing id, creation time and edges; its
        metadata is the oracle's answer validated against the type schema,
        with fields the pipeline may not write left as stored.

        Raises:
            MergeError: oracle failure or an invalid merged object
        """
        schema = session.compiled.schema_for(existing.related_object_type_id)
        writable = set(schema.field_ids)
        current = {k: v for k, v in existing.metadata.items() if k in writable}

        try:
            answer = self._oracle.merge(schema, current, incoming.metadata)
        except Exception as e:
            raise MergeError(f"Unable to merge into {existing.id}: {e}") from e

        try:
            merged_metadata = schema.validate(answer)
        except SchemaValidationError as e:
            raise MergeError(f"Merged data for {existing.id} is invalid: {e}") from e

        logger.info("Merged new %s data into %s", existing.related_object_type_id, existing.id)
        return replace(
            existing,
            metadata={**existing.metadata, **merged_metadata},
            parent_id=existing.parent_id or incoming.parent_id,
            related_ids=merge_structural(existing.related_ids, incoming.related_ids),
            updated_at=utcnow()
        )
