"""
Parent Resolution

Types that declare a parent type need every instance to point at a record
of that type. Without an explicit parent id the oracle chooses among the
in-scope records of the parent type; when it cannot, the record is stored
without a parent.
"""

from dataclasses import dataclass
from typing import Optional
import logging

from ...core.entities import OBJECTS_TABLE, ObjectRecord
from ...core.errors import ParentResolutionError
from ...core.session import IngestionSession
from ..intelligence.oracle import Oracle
from ..schema.catalog import organisation_scope
from ..storage.store import Condition, QueryOptions, StorageEngine

logger = logging.getLogger(__name__)


# Keys that would anchor the oracle on values unrelated to content
VOLATILE_KEYS = ("id", "owner_organisation_id", "created_at", "updated_at")


@dataclass(frozen=True)
class ParentLink:
    """A chosen parent: the edge ``{object_type_id: [record_id]}``."""
    object_type_id: Optional[str]
    record_id: str


class ParentResolver:
    """Finds or validates the parent of a new record."""

    def __init__(self, storage: StorageEngine, oracle: Oracle):
        self._storage = storage
        self._oracle = oracle

    def link_explicit(self, session: IngestionSession, record: ObjectRecord, parent_id: str) -> ParentLink:
        """
        Link a caller-supplied parent id, typed from the stored parent when it exists.

        Raises:
            ParentResolutionError: the stored parent belongs to another
                organisation or is not of the declared parent type
        """
        type_def = session.catalog.get_object_type(record.related_object_type_id)
        parent_type_id = type_def.parent_object_type_id if type_def else None

        try:
            parent_row = self._storage.get_by_id(OBJECTS_TABLE, parent_id)
        except Exception as e:
            raise ParentResolutionError(f"Unable to load parent {parent_id}: {e}") from e

        if parent_row is None:
            logger.warning("Parent %s of %s record does not exist yet", parent_id, record.related_object_type_id)
            return ParentLink(parent_type_id, parent_id)

        owner = parent_row.get("owner_organisation_id")
        if owner is not None and owner != session.organisation_id:
            raise ParentResolutionError(
                f"Parent {parent_id} is not visible to organisation {session.organisation_id}"
            )

        stored_type_id = parent_row.get("related_object_type_id")
        if parent_type_id and stored_type_id != parent_type_id:
            raise ParentResolutionError(
                f"Parent {parent_id} is a {stored_type_id}, "
                f"{record.related_object_type_id} records need a {parent_type_id}"
            )

        return ParentLink(stored_type_id, parent_id)

    def resolve(self, session: IngestionSession, record: ObjectRecord) -> Optional[ParentLink]:
        """
        Choose a parent for ``record`` when its type requires one.

        Returns None when the type has no parent type, when no candidates
        exist, or when the oracle declines.

        Raises:
            ParentResolutionError: candidate lookup or oracle call failed
        """
        type_def = session.catalog.get_object_type(record.related_object_type_id)
        parent_type_id = type_def.parent_object_type_id if type_def else None
        if not parent_type_id:
            return None

        options = QueryOptions(
            and_conditions=[Condition("related_object_type_id", "eq", parent_type_id)],
            or_conditions=organisation_scope(session.organisation_id).or_conditions
        )
        try:
            candidates = self._storage.query(OBJECTS_TABLE, options)
        except Exception as e:
            raise ParentResolutionError(f"Unable to load {parent_type_id} candidates: {e}") from e

        if not candidates:
            logger.info("No %s records to choose a parent from", parent_type_id)
            return None

        target = {k: v for k, v in record.to_row().items() if k not in VOLATILE_KEYS}
        try:
            chosen = self._oracle.resolve_best_match(candidates, target, parent_type_id)
        except Exception as e:
            raise ParentResolutionError(f"Unable to choose a {parent_type_id} parent: {e}") from e

        if chosen not in {c["id"] for c in candidates}:
            logger.info("No %s parent chosen for %s record", parent_type_id, record.related_object_type_id)
            return None

        logger.info("Chose %s %s as parent", parent_type_id, chosen)
        return ParentLink(parent_type_id, chosen)
