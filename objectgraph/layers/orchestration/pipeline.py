"""
Batch Orchestrator

Runs a batch of payloads through the per-item graph, strictly one item
after another. A failing item is recorded and the batch moves on; items
already stored are never rolled back.

The orchestrator holds only collaborators. Everything about a call lives
in the IngestionSession passed to ``run``, so one instance can serve any
number of organisations and requests.
"""

from typing import Any, Iterable
import logging

from ...config.settings import IngestionConfig, get_settings
from ...core.session import IngestionResult, IngestionSession, ItemOutcome, ItemStatus
from ..data_ingestion import (
    DedupMatcher,
    Extractor,
    ParentResolver,
    RelationshipPropagator,
    SemanticMerger,
    TypeClassifier
)
from ..intelligence.oracle import Oracle
from ..storage.store import StorageEngine
from .analysis import PostStoreAnalyzer
from .graph import IngestionNodes, ItemState, build_item_graph

logger = logging.getLogger(__name__)


class BatchOrchestrator:
    """Sequences the ingestion steps for every item of a batch."""

    def __init__(self, storage: StorageEngine, oracle: Oracle, config: IngestionConfig = None):
        self.config = config or get_settings().ingestion
        self._storage = storage
        self._oracle = oracle

        self.analyzer = PostStoreAnalyzer(self, oracle, self.config)
        self._nodes = IngestionNodes(
            storage=storage,
            classifier=TypeClassifier(oracle),
            extractor=Extractor(oracle),
            parent_resolver=ParentResolver(storage, oracle),
            matcher=DedupMatcher(storage, self.config),
            merger=SemanticMerger(oracle),
            propagator=RelationshipPropagator(storage),
            analyzer=self.analyzer
        )
        self._graph = build_item_graph(self._nodes)

    def run(self, session: IngestionSession, items: Iterable[Any]) -> IngestionResult:
        """Process ``items`` in order and return the per-item outcomes."""
        result = IngestionResult(dry_run=session.dry_run)

        for index, payload in enumerate(items):
            result.outcomes.append(self.process_item(session, index, payload))

        logger.info(
            "Processed %d item(s) for organisation %s: %d succeeded, %d failed%s",
            len(result.outcomes), session.organisation_id, result.succeeded,
            len(result.outcomes) - result.succeeded,
            " (dry run)" if session.dry_run else ""
        )
        return result

    def process_item(self, session: IngestionSession, index: int, payload: Any) -> ItemOutcome:
        """Run one item through the graph. Never raises."""
        initial: ItemState = {
            "session": session,
            "index": index,
            "payload": payload,
            "warnings": [],
            "propagation_warnings": [],
        }

        try:
            state = self._graph.invoke(initial)
        except Exception as e:
            logger.error("Item %s failed: %s", index, e)
            return ItemOutcome(index=index, status=ItemStatus.FAILED, error=str(e) or type(e).__name__)

        record = state.get("record")
        preview = state.get("preview")
        return ItemOutcome(
            index=index,
            status=ItemStatus(state["status"]),
            record_id=record.id if record is not None else None,
            object_type_id=state.get("object_type_id"),
            warnings=list(state.get("warnings") or []),
            propagation_warnings=list(state.get("propagation_warnings") or []),
            preview=preview
        )

