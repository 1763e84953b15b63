"""
Embedding Generation for Similarity Search

Embeddings are owned by the storage engine and used only through its
similarity-search interface. This module decides what text represents a
stored object and provides the generators the storage engine embeds with.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List
import hashlib
import json
import math
import re


# Edges are not part of an object's meaning and would make every linked object look alike
EMBEDDING_EXCLUDED_KEYS = ("related_ids", "child_ids")


def object_embedding_text(row: Dict[str, Any]) -> str:
    """Text an object row is embedded as: its type and metadata."""
    metadata = {
        k: v for k, v in (row.get("metadata") or {}).items()
        if k not in EMBEDDING_EXCLUDED_KEYS
    }
    return json.dumps(
        {"related_object_type_id": row.get("related_object_type_id"), "metadata": metadata},
        sort_keys=True,
        default=str
    )


def cosine_similarity(a: List[float], b: List[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 when either vector is empty or zero."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class EmbeddingGenerator(ABC):
    """
    Abstract base class for embedding generators.

    Supports multiple embedding providers while keeping a consistent
    interface for the storage engine.
    """

    @abstractmethod
    def generate(self, text: str) -> List[float]:
        """Generate embedding for a single text."""
        pass

    def generate_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple texts."""
        return [self.generate(text) for text in texts]


class MockEmbeddingGenerator(EmbeddingGenerator):
    """
    Deterministic embedding generator for testing and offline runs.

    Hashes word tokens into a fixed number of buckets, so texts that share
    most of their words score a high cosine similarity and identical texts
    score 1.0. Not semantically meaningful beyond word overlap.
    """

    TOKEN_PATTERN = re.compile(r"[a-z0-9]+")

    def __init__(self, dimensions: int = 256):
        self.dimensions = dimensions

    def generate(self, text: str) -> List[float]:
        vector = [0.0] * self.dimensions
        for token in self.TOKEN_PATTERN.findall(text.lower()):
            digest = hashlib.sha256(token.encode()).hexdigest()
            vector[int(digest[:8], 16) % self.dimensions] += 1.0

        magnitude = math.sqrt(sum(x * x for x in vector))
        if magnitude:
            vector = [x / magnitude for x in vector]
        return vector


class LangChainEmbeddingGenerator(EmbeddingGenerator):
    """Embedding generator backed by a LangChain ``Embeddings`` model."""

    def __init__(self, embeddings=None):
        self._embeddings = embeddings

    def _get_embeddings(self):
        if self._embeddings is None:
            from ...config.providers import EmbeddingProvider
            self._embeddings = EmbeddingProvider().get_embeddings()
        return self._embeddings

    def generate(self, text: str) -> List[float]:
        return self._get_embeddings().embed_query(text)

    def generate_batch(self, texts: List[str]) -> List[List[float]]:
        return self._get_embeddings().embed_documents(texts)
