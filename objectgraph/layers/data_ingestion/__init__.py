"""
Data Ingestion Layer

Per-item steps of the upsert pipeline:
- TypeClassifier: payload -> object type id
- Extractor: payload -> candidate record with validated metadata
- ParentResolver: candidate record -> parent link
- DedupMatcher: candidate record -> existing duplicate, if any
- SemanticMerger: existing + candidate -> merged record
- RelationshipPropagator: stored record -> reverse edges on its peers
"""

from .classifier import TypeClassifier
from .extractor import Extractor
from .parent_resolution import ParentLink, ParentResolver
from .identity_resolution import DedupMatcher, MatchConfidence, MatchResult
from .merge import SemanticMerger, merge_structural
from .relationships import RelationshipPropagator, combine_related_ids

__all__ = [
    "TypeClassifier",
    "Extractor",
    "ParentLink",
    "ParentResolver",
    "DedupMatcher",
    "MatchConfidence",
    "MatchResult",
    "SemanticMerger",
    "merge_structural",
    "RelationshipPropagator",
    "combine_related_ids",
]
