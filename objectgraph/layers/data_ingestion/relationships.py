"""
Relationship Propagation

Keeps the related_ids graph symmetric: whenever a record references a
peer, the peer gets the reverse edge ``{record_type: [record_id]}``
through a structural patch. Parents additionally record the child in
``child_ids``.

Propagation is best effort. A peer that cannot be written yields a
PropagationWarning on the item instead of failing it; the graph is then
asymmetric until the edge is written again. Peers owned by another
organisation are never written.
"""

from typing import Dict, Iterable, List, Optional
import logging

from ...core.entities import OBJECTS_TABLE, ObjectRecord
from ...core.session import PropagationWarning
from ..storage.merge import merge_structural
from ..storage.store import StorageEngine
from .parent_resolution import ParentLink

logger = logging.getLogger(__name__)


def combine_related_ids(
    new_related_ids: Optional[Dict[str, Iterable[str]]] = None,
    parent: Optional[ParentLink] = None,
    touched_ids: Optional[Dict[str, Iterable[str]]] = None
) -> Dict[str, List[str]]:
    """Union of caller hints, the parent edge and ids touched by oracle tools."""
    edges: Dict[str, List[str]] = {}
    for source in (new_related_ids or {}, touched_ids or {}):
        edges = merge_structural(edges, {k: list(v) for k, v in source.items() if v})
    if parent is not None and parent.object_type_id:
        edges = merge_structural(edges, {parent.object_type_id: [parent.record_id]})
    return edges


class RelationshipPropagator:
    """Writes reverse edges for a stored record."""

    def __init__(self, storage: StorageEngine):
        self._storage = storage

    def propagate(self, record: ObjectRecord, edges: Dict[str, List[str]]) -> List[PropagationWarning]:
        """
        Add ``{record type: [record id]}`` to every peer in ``edges``.

        Returns one warning per peer that could not be linked.
        """
        warnings: List[PropagationWarning] = []
        reverse_edge = {record.related_object_type_id: [record.id]}

        for peer_type, peer_ids in edges.items():
            for peer_id in peer_ids:
                if peer_id == record.id:
                    continue

                patch = {"related_ids": reverse_edge}
                if peer_id == record.parent_id:
                    patch["child_ids"] = reverse_edge

                try:
                    peer = self._storage.get_by_id(OBJECTS_TABLE, peer_id)
                    if peer is None:
                        warnings.append(PropagationWarning(peer_type, peer_id, "record not found"))
                        continue
                    owner = peer.get("owner_organisation_id")
                    if owner is not None and owner != record.owner_organisation_id:
                        warnings.append(PropagationWarning(peer_type, peer_id, "owned by another organisation"))
                        continue
                    self._storage.upsert(OBJECTS_TABLE, peer_id, patch, may_already_exist=True)
                except Exception as e:
                    warnings.append(PropagationWarning(peer_type, peer_id, str(e)))

        for warning in warnings:
            logger.warning("%s (from %s %s)", warning, record.related_object_type_id, record.id)
        if edges:
            logger.info(
                "Propagated edges of %s %s to %d peer(s)",
                record.related_object_type_id, record.id,
                sum(len(ids) for ids in edges.values()) - len(warnings)
            )
        return warnings

    def attach(self, record: ObjectRecord, edges: Dict[str, List[str]]) -> List[PropagationWarning]:
        """Add ``edges`` to an already stored record, then propagate them."""
        forward = {k: [i for i in v if i != record.id] for k, v in edges.items()}
        forward = {k: v for k, v in forward.items() if v}
        if not forward:
            return []

        try:
            self._storage.upsert(OBJECTS_TABLE, record.id, {"related_ids": forward}, may_already_exist=True)
        except Exception as e:
            warning = PropagationWarning(record.related_object_type_id, record.id, str(e))
            logger.warning("%s", warning)
            return [warning]

        return self.propagate(record, forward)
