"""
Storage Engine - Row Store Contract

The ingestion core talks to storage only through StorageEngine:
- get_by_id: fetch one row by primary key
- query: filtered/ordered/limited reads
- similarity_search: embedding search scoped by organisation and type
- upsert: write a row; when it may already exist the patch is applied
  with the structural merge

InMemoryStorageEngine implements the contract over plain dicts. It backs
the test-suite and offline runs; in production the contract is fulfilled
by the organisation's row store.
"""

from abc import ABC, abstractmethod
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging
import re

from ...config.settings import IngestionConfig, get_settings
from ...core.entities import OBJECTS_TABLE, utcnow
from ...core.errors import StorageError
from .embeddings import (
    EmbeddingGenerator,
    MockEmbeddingGenerator,
    cosine_similarity,
    object_embedding_text
)
from .merge import merge_structural

logger = logging.getLogger(__name__)


OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte", "like", "ilike", "is", "in")


@dataclass
class Condition:
    """
    A single filter condition.

    ``json_path`` addresses a key inside a JSON column,
    e.g. ``Condition("metadata", "eq", "x", json_path=["title"])``.
    """
    column: str
    operator: str
    value: Any
    json_path: Optional[List[str]] = None

    def __post_init__(self):
        if self.operator not in OPERATORS:
            raise ValueError(f"Unsupported operator: {self.operator}")


@dataclass
class OrderBy:
    """Ordering on a column."""
    column: str
    ascending: bool = True


@dataclass
class QueryOptions:
    """Options for StorageEngine.query: all AND conditions and at least one OR condition must hold."""
    and_conditions: List[Condition] = field(default_factory=list)
    or_conditions: List[Condition] = field(default_factory=list)
    order_by: List[OrderBy] = field(default_factory=list)
    limit: Optional[int] = None


class StorageEngine(ABC):
    """Abstract row store used by the ingestion pipeline."""

    @abstractmethod
    def get_by_id(self, table: str, key: str) -> Optional[Dict[str, Any]]:
        """Return the row with id ``key`` or None when it does not exist."""
        pass

    @abstractmethod
    def query(self, table: str, options: QueryOptions = None) -> List[Dict[str, Any]]:
        """Return rows matching ``options``."""
        pass

    @abstractmethod
    def similarity_search(
        self,
        table: str,
        query_text: str,
        threshold: float,
        top_k: int,
        organisation_id: Optional[str] = None,
        object_type_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Return up to ``top_k`` rows whose similarity to ``query_text`` is at
        least ``threshold``, most similar first. Each row carries a
        ``similarity`` key.
        """
        pass

    @abstractmethod
    def upsert(
        self,
        table: str,
        key: str,
        patch: Dict[str, Any],
        may_already_exist: bool = False
    ) -> Dict[str, Any]:
        """Write ``patch`` to row ``key`` and return the stored row."""
        pass


def _resolve(row: Dict[str, Any], condition) -> Any:
    value = row.get(condition.column)
    for key in getattr(condition, "json_path", None) or []:
        value = value.get(key) if isinstance(value, dict) else None
    return value


def _like(value: Any, pattern: str, case_sensitive: bool) -> bool:
    if value is None:
        return False
    regex = "^" + ".*".join(re.escape(part) for part in pattern.split("%")) + "$"
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.match(regex, str(value), flags) is not None


def matches(row: Dict[str, Any], condition: Condition) -> bool:
    """Evaluate one condition against a row."""
    value = _resolve(row, condition)
    op = condition.operator
    target = condition.value

    if op == "eq":
        return value == target
    if op == "neq":
        return value != target
    if op == "is":
        return value is target or value == target
    if op == "in":
        return value in (target or [])
    if op == "like":
        return _like(value, target, case_sensitive=True)
    if op == "ilike":
        return _like(value, target, case_sensitive=False)

    if value is None or target is None:
        return False
    if op == "gt":
        return value > target
    if op == "gte":
        return value >= target
    if op == "lt":
        return value < target
    return value <= target


class InMemoryStorageEngine(StorageEngine):
    """
    Dict-backed storage engine.

    Rows are deep-copied on the way in and out so callers never share
    state with the store. Rows of the objects table are embedded on every
    write for similarity search. Out-of-range search thresholds and result
    limits fall back to the ingestion settings.
    """

    def __init__(self, embedder: EmbeddingGenerator = None, config: IngestionConfig = None):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._embedder = embedder or MockEmbeddingGenerator()
        self._config = config or get_settings().ingestion

    def seed(self, table: str, rows: List[Dict[str, Any]]) -> None:
        """Insert rows as-is (embedding object rows), bypassing upsert bookkeeping."""
        for row in rows:
            stored = deepcopy(row)
            if table == OBJECTS_TABLE:
                stored["embedding"] = self._embedder.generate(object_embedding_text(stored))
            self._tables.setdefault(table, {})[stored["id"]] = stored

    def rows(self, table: str) -> List[Dict[str, Any]]:
        """All rows of a table, without embeddings."""
        return [self._public(row) for row in self._tables.get(table, {}).values()]

    def get_by_id(self, table: str, key: str) -> Optional[Dict[str, Any]]:
        row = self._tables.get(table, {}).get(key)
        return self._public(row) if row is not None else None

    def query(self, table: str, options: QueryOptions = None) -> List[Dict[str, Any]]:
        options = options or QueryOptions()
        rows = list(self._tables.get(table, {}).values())

        rows = [r for r in rows if all(matches(r, c) for c in options.and_conditions)]

        # Conditions without a value are dropped, matching the row store's OR semantics
        or_conditions = [
            c for c in options.or_conditions
            if c.value not in ("",) and (c.value is not None or c.operator == "is")
        ]
        if or_conditions:
            rows = [r for r in rows if any(matches(r, c) for c in or_conditions)]

        for order in reversed(options.order_by):
            rows.sort(
                key=lambda r, col=order.column: (r.get(col) is None, r.get(col) or ""),
                reverse=not order.ascending
            )

        if options.limit:
            rows = rows[:options.limit]

        return [self._public(r) for r in rows]

    def similarity_search(
        self,
        table: str,
        query_text: str,
        threshold: float,
        top_k: int,
        organisation_id: Optional[str] = None,
        object_type_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        if threshold is None or threshold < -1 or threshold > 1:
            threshold = self._config.default_search_threshold
        if not top_k or top_k < 0 or top_k > self._config.max_search_results:
            top_k = self._config.max_search_results

        try:
            query_embedding = self._embedder.generate(query_text)
        except Exception as e:
            raise StorageError(f"Error embedding search query: {e}") from e

        scored = []
        for row in self._tables.get(table, {}).values():
            if organisation_id is not None and row.get("owner_organisation_id") != organisation_id:
                continue
            if object_type_id is not None and row.get("related_object_type_id") != object_type_id:
                continue
            similarity = cosine_similarity(query_embedding, row.get("embedding") or [])
            if similarity >= threshold:
                result = self._public(row)
                result["similarity"] = similarity
                scored.append(result)

        scored.sort(key=lambda r: r["similarity"], reverse=True)
        return scored[:top_k]

    def upsert(
        self,
        table: str,
        key: str,
        patch: Dict[str, Any],
        may_already_exist: bool = False
    ) -> Dict[str, Any]:
        if not table or not key:
            raise StorageError("Table name and key are required.")

        existing = self._tables.get(table, {}).get(key) if may_already_exist else None

        if existing is not None:
            merged = merge_structural(existing, deepcopy(patch), overwrite_fields=("embedding",))
        else:
            merged = {**deepcopy(patch), "id": key}

        if table == OBJECTS_TABLE:
            now = utcnow().isoformat()
            if existing is None:
                merged["created_at"] = merged.get("created_at") or now
            merged["updated_at"] = now
            try:
                merged["embedding"] = self._embedder.generate(object_embedding_text(merged))
            except Exception as e:
                raise StorageError(f"Error embedding row {key}: {e}") from e

        self._tables.setdefault(table, {})[key] = merged
        logger.debug("Upserted row %s in %s (merged=%s)", key, table, existing is not None)
        return self._public(merged)

    @staticmethod
    def _public(row: Dict[str, Any]) -> Dict[str, Any]:
        return {k: deepcopy(v) for k, v in row.items() if k != "embedding"}
