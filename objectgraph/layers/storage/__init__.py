"""
Storage Layer

The row store contract the ingestion core consumes:
- get_by_id / query / similarity_search / upsert
- structural patch merge applied on upserts of rows that may already exist
- embeddings backing similarity search
"""

from .merge import merge_structural
from .embeddings import (
    EmbeddingGenerator,
    MockEmbeddingGenerator,
    LangChainEmbeddingGenerator,
    object_embedding_text
)
from .store import (
    StorageEngine,
    InMemoryStorageEngine,
    Condition,
    OrderBy,
    QueryOptions
)

__all__ = [
    "merge_structural",
    "EmbeddingGenerator",
    "MockEmbeddingGenerator",
    "LangChainEmbeddingGenerator",
    "object_embedding_text",
    "StorageEngine",
    "InMemoryStorageEngine",
    "Condition",
    "OrderBy",
    "QueryOptions"
]
