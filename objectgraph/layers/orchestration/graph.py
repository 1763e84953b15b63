"""
Per-Item Ingestion Graph (LangGraph)

Each item of a batch runs through one invocation of this state graph:

    classify -> extract -> resolve_parent -> [dedup_search] -> merge | create
             -> [propagate -> [analyse]]

- dedup_search only runs when the caller supplied a match threshold
- merge only runs when dedup found a record of the same type
- dry runs end after merge/create with a preview; nothing is written
- analyse only runs for top-level calls on types that trigger analysis

State is created fresh for every item. Node exceptions propagate out of
``invoke`` and fail only that item (see pipeline.py).
"""

from dataclasses import replace
from typing import Annotated, Any, Dict, List, Optional, TypedDict
import logging
import operator

from langgraph.graph import END, StateGraph

from ...core.entities import OBJECTS_TABLE, ObjectRecord
from ...core.errors import ParentResolutionError
from ...core.session import IngestionSession, ItemStatus, PropagationWarning
from ..data_ingestion import (
    DedupMatcher,
    Extractor,
    MatchResult,
    ParentLink,
    ParentResolver,
    RelationshipPropagator,
    SemanticMerger,
    TypeClassifier,
    combine_related_ids,
    merge_structural
)
from ..storage.store import StorageEngine

logger = logging.getLogger(__name__)


class ItemState(TypedDict, total=False):
    """State that flows through the per-item graph."""
    # Input
    session: IngestionSession
    index: int
    payload: Any

    # Pipeline values
    object_type_id: str
    record: ObjectRecord
    parent: Optional[ParentLink]
    match: MatchResult
    edges: Dict[str, List[str]]

    # Outcome
    status: str
    preview: Optional[Dict[str, Any]]
    warnings: Annotated[List[str], operator.add]
    propagation_warnings: Annotated[List[PropagationWarning], operator.add]


# ============================================================================
# Node Functions
# ============================================================================

class IngestionNodes:
    """Node functions of the per-item graph."""

    def __init__(
        self,
        storage: StorageEngine,
        classifier: TypeClassifier,
        extractor: Extractor,
        parent_resolver: ParentResolver,
        matcher: DedupMatcher,
        merger: SemanticMerger,
        propagator: RelationshipPropagator,
        analyzer=None
    ):
        self._storage = storage
        self._classifier = classifier
        self._extractor = extractor
        self._parent_resolver = parent_resolver
        self._matcher = matcher
        self._merger = merger
        self._propagator = propagator
        self._analyzer = analyzer

    def classify(self, state: ItemState) -> Dict[str, Any]:
        return {"object_type_id": self._classifier.classify(state["session"], state["payload"])}

    def extract(self, state: ItemState) -> Dict[str, Any]:
        record = self._extractor.extract(state["session"], state["object_type_id"], state["payload"])
        return {"record": record}

    def resolve_parent(self, state: ItemState) -> Dict[str, Any]:
        session = state["session"]
        record = state["record"]

        explicit_parent = session.hints.parent_object_id
        try:
            if explicit_parent:
                parent = self._parent_resolver.link_explicit(session, record, explicit_parent)
            else:
                parent = self._parent_resolver.resolve(session, record)
        except ParentResolutionError as e:
            logger.warning("Storing item %s without a parent: %s", state["index"], e)
            return {"parent": None, "warnings": [str(e)]}

        if parent is None:
            return {"parent": None}
        return {"parent": parent, "record": replace(record, parent_id=parent.record_id)}

    def dedup_search(self, state: ItemState) -> Dict[str, Any]:
        session = state["session"]
        match = self._matcher.find_match(session, state["record"], session.hints.required_match_threshold)
        if not match.is_match:
            logger.info("Item %s matched none of %d candidate(s)", state["index"], match.candidates_considered)
        return {"match": match}

    def merge(self, state: ItemState) -> Dict[str, Any]:
        session = state["session"]
        match = state["match"]
        logger.info(
            "Item %s duplicates %s (similarity %.3f, %s confidence, %d candidate(s))",
            state["index"], match.matched.id, match.match_score, match.confidence.value, match.candidates_considered
        )
        edges = self._edges(state)
        candidate = replace(state["record"], related_ids=edges)
        merged = self._merger.merge(session, match.matched, candidate)

        if session.dry_run:
            return self._preview(merged, edges)

        # Full replacement: the semantic merge already reconciled the metadata
        row = self._storage.upsert(OBJECTS_TABLE, merged.id, merged.to_row())
        logger.info("Merged item %s into %s %s", state["index"], merged.related_object_type_id, merged.id)
        return {"record": ObjectRecord.from_row(row), "edges": edges, "status": ItemStatus.MERGED.value}

    def create(self, state: ItemState) -> Dict[str, Any]:
        session = state["session"]
        edges = self._edges(state)
        record = replace(
            state["record"],
            related_ids=merge_structural(state["record"].related_ids, edges)
        )

        if session.dry_run:
            return self._preview(record, edges)

        row = self._storage.upsert(OBJECTS_TABLE, record.id, record.to_row())
        logger.info("Stored item %s as %s %s", state["index"], record.related_object_type_id, record.id)
        return {"record": ObjectRecord.from_row(row), "edges": edges, "status": ItemStatus.STORED.value}

    def propagate(self, state: ItemState) -> Dict[str, Any]:
        warnings = self._propagator.propagate(state["record"], state.get("edges") or {})
        return {"propagation_warnings": warnings}

    def analyse(self, state: ItemState) -> Dict[str, Any]:
        outcome = self._analyzer.analyse(state["session"], state["record"])
        warnings = list(outcome.warnings)
        propagation_warnings = []
        if outcome.touched_ids:
            propagation_warnings = self._propagator.attach(state["record"], outcome.touched_ids)
        return {"warnings": warnings, "propagation_warnings": propagation_warnings}

    # ------------------------------------------------------------------------
    # Routers
    # ------------------------------------------------------------------------

    def route_after_parent(self, state: ItemState) -> str:
        if state["session"].hints.required_match_threshold is not None:
            return "dedup_search"
        return "create"

    def route_after_dedup(self, state: ItemState) -> str:
        match = state.get("match")
        return "merge" if match is not None and match.is_match else "create"

    def route_after_write(self, state: ItemState) -> str:
        if state.get("status") == ItemStatus.PREVIEWED.value:
            return "end"
        return "propagate"

    def route_after_propagate(self, state: ItemState) -> str:
        if self._analyzer is None:
            return "end"
        session = state["session"]
        type_def = session.catalog.get_object_type(state["record"].related_object_type_id)
        if session.is_top_level and type_def is not None and type_def.triggers_analysis:
            return "analyse"
        return "end"

    # ------------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------------

    @staticmethod
    def _edges(state: ItemState) -> Dict[str, List[str]]:
        edges = combine_related_ids(state["session"].hints.new_related_ids, state.get("parent"))
        record_id = state["record"].id
        match = state.get("match")
        own_ids = {record_id, match.matched.id} if match is not None and match.is_match else {record_id}
        # No edge may point at the record itself
        edges = {k: [i for i in v if i not in own_ids] for k, v in edges.items()}
        return {k: v for k, v in edges.items() if v}

    @staticmethod
    def _preview(record: ObjectRecord, edges: Dict[str, List[str]]) -> Dict[str, Any]:
        return {
            "record": record,
            "edges": edges,
            "status": ItemStatus.PREVIEWED.value,
            "preview": record.to_row(),
        }


# ============================================================================
# Graph Builder
# ============================================================================

def build_item_graph(nodes: IngestionNodes):
    """Build and compile the per-item graph."""
    workflow = StateGraph(ItemState)

    workflow.add_node("classify", nodes.classify)
    workflow.add_node("extract", nodes.extract)
    workflow.add_node("resolve_parent", nodes.resolve_parent)
    workflow.add_node("dedup_search", nodes.dedup_search)
    workflow.add_node("merge", nodes.merge)
    workflow.add_node("create", nodes.create)
    workflow.add_node("propagate", nodes.propagate)
    workflow.add_node("analyse", nodes.analyse)

    workflow.set_entry_point("classify")
    workflow.add_edge("classify", "extract")
    workflow.add_edge("extract", "resolve_parent")

    workflow.add_conditional_edges(
        "resolve_parent",
        nodes.route_after_parent,
        {"dedup_search": "dedup_search", "create": "create"}
    )
    workflow.add_conditional_edges(
        "dedup_search",
        nodes.route_after_dedup,
        {"merge": "merge", "create": "create"}
    )
    for write_node in ("merge", "create"):
        workflow.add_conditional_edges(
            write_node,
            nodes.route_after_write,
            {"propagate": "propagate", "end": END}
        )
    workflow.add_conditional_edges(
        "propagate",
        nodes.route_after_propagate,
        {"analyse": "analyse", "end": END}
    )
    workflow.add_edge("analyse", END)

    return workflow.compile()
