"""
Orchestration Layer

- graph: per-item LangGraph state graph
- pipeline: BatchOrchestrator, sequential batches with per-item isolation
- analysis: post-store analysis creating signals and jobs
- entrypoint: IngestionService, organisation resolution and request handling
"""

from .graph import IngestionNodes, ItemState, build_item_graph
from .pipeline import BatchOrchestrator
from .analysis import AnalysisOutcome, PostStoreAnalyzer
from .entrypoint import (
    IngestionRequest,
    IngestionService,
    OrganisationResolver,
    effective_hints,
    flatten_items
)

__all__ = [
    "IngestionNodes",
    "ItemState",
    "build_item_graph",
    "BatchOrchestrator",
    "AnalysisOutcome",
    "PostStoreAnalyzer",
    "IngestionRequest",
    "IngestionService",
    "OrganisationResolver",
    "effective_hints",
    "flatten_items",
]
