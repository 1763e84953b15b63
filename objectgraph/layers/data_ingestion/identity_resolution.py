"""
Identity Resolution - Deduplication Against Stored Records

Finds a stored record that the new candidate most likely duplicates:
- similarity search scoped to the organisation and the candidate's type
- only matches at or above the caller's threshold count
- several matches are ordered by similarity, then most recently updated,
  and the first one of the candidate's type wins

The match becomes the target of the semantic merge.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from ...config.settings import IngestionConfig, get_settings
from ...core.entities import OBJECTS_TABLE, ObjectRecord
from ...core.session import IngestionSession
from ..storage.embeddings import object_embedding_text
from ..storage.store import StorageEngine

logger = logging.getLogger(__name__)


class MatchConfidence(Enum):
    """Confidence bands for a dedup match."""
    EXACT = "exact"           # Same content
    HIGH = "high"             # Near-identical
    MEDIUM = "medium"         # Clearly related
    LOW = "low"               # Above threshold, weak
    NO_MATCH = "no_match"

    @classmethod
    def for_score(cls, score: float) -> "MatchConfidence":
        if score >= 0.99:
            return cls.EXACT
        if score >= 0.9:
            return cls.HIGH
        if score >= 0.75:
            return cls.MEDIUM
        return cls.LOW


@dataclass
class MatchResult:
    """Result of a dedup search."""
    matched: Optional[ObjectRecord] = None
    match_score: float = 0.0
    confidence: MatchConfidence = MatchConfidence.NO_MATCH
    candidates_considered: int = 0

    @property
    def is_match(self) -> bool:
        return self.matched is not None


def rank_candidates(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Order search hits by similarity, then most recently updated."""
    return sorted(
        rows,
        key=lambda r: (r.get("similarity", 0.0), str(r.get("updated_at") or "")),
        reverse=True
    )


class DedupMatcher:
    """Top-1 dedup matcher over the storage engine's similarity search."""

    def __init__(self, storage: StorageEngine, config: IngestionConfig = None):
        self._storage = storage
        self._config = config or get_settings().ingestion

    def find_match(self, session: IngestionSession, record: ObjectRecord, threshold: float) -> MatchResult:
        """Return the stored record ``record`` duplicates, if any. Storage errors propagate."""
        rows = self._storage.similarity_search(
            OBJECTS_TABLE,
            object_embedding_text(record.to_row()),
            threshold,
            self._config.max_search_results,
            organisation_id=session.organisation_id,
            object_type_id=record.related_object_type_id
        )

        hits = [r for r in rows if r.get("similarity", 0.0) >= threshold and r["id"] != record.id]
        for row in rank_candidates(hits):
            if row.get("related_object_type_id") != record.related_object_type_id:
                continue
            score = row.pop("similarity")
            logger.info(
                "Found existing %s %s (similarity %.3f)",
                record.related_object_type_id, row["id"], score
            )
            return MatchResult(
                matched=ObjectRecord.from_row(row),
                match_score=score,
                confidence=MatchConfidence.for_score(score),
                candidates_considered=len(hits)
            )

        return MatchResult(candidates_considered=len(hits))
