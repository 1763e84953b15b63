"""
Configuration Management

Centralized configuration for:
- LLM providers (OpenAI, Anthropic, Ollama)
- Embedding providers (OpenAI, HuggingFace)
- Ingestion behaviour (special object types, thresholds, analysis)
"""

from .settings import (
    Settings,
    LLMConfig,
    EmbeddingConfig,
    IngestionConfig,
    get_settings
)
from .providers import (
    LLMProvider,
    EmbeddingProvider
)

__all__ = [
    "Settings",
    "LLMConfig",
    "EmbeddingConfig",
    "IngestionConfig",
    "get_settings",
    "LLMProvider",
    "EmbeddingProvider"
]
