"""
LLM and Embedding Provider Factory

Provides a unified interface for:
- Chat models backing the classification/extraction oracle
- Chat models with structured (function-calling) outputs
- Chat models with tools bound for open-ended analysis sessions
- Embedding models backing similarity search
"""

from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, SecretStr

from .settings import (
    LLMConfig,
    EmbeddingConfig,
    LLMProviderType,
    EmbeddingProviderType,
    get_settings
)


def _secret(value: Optional[SecretStr]) -> Optional[str]:
    return value.get_secret_value() if value else None


class LLMProvider:
    """
    Factory for chat models using LangChain.

    Supports:
    - OpenAI (GPT-4o, GPT-4o-mini)
    - Anthropic (Claude)
    - Ollama (Llama, Mistral, etc.)
    """

    def __init__(self, config: LLMConfig = None):
        self.config = config or get_settings().llm
        self._chat_model = None

    def get_chat_model(self):
        """Get chat model instance (lazy initialization)."""
        if self._chat_model is None:
            self._chat_model = self._create_chat_model()
        return self._chat_model

    def _create_chat_model(self):
        factories = {
            LLMProviderType.OPENAI: self._create_openai_chat,
            LLMProviderType.ANTHROPIC: self._create_anthropic_chat,
            LLMProviderType.OLLAMA: self._create_ollama_chat,
        }
        factory = factories.get(self.config.provider)
        if factory is None:
            raise ValueError(f"Unsupported LLM provider: {self.config.provider}")
        return factory()

    def _create_openai_chat(self):
        try:
            from langchain_openai import ChatOpenAI
        except ImportError:
            raise ImportError("Install langchain-openai: pip install langchain-openai")

        return ChatOpenAI(
            model=self.config.model_name,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            api_key=_secret(self.config.openai_api_key),
            timeout=self.config.timeout
        )

    def _create_anthropic_chat(self):
        try:
            from langchain_anthropic import ChatAnthropic
        except ImportError:
            raise ImportError("Install langchain-anthropic: pip install langchain-anthropic")

        return ChatAnthropic(
            model=self.config.model_name or "claude-3-5-sonnet-20241022",
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            api_key=_secret(self.config.anthropic_api_key),
            timeout=self.config.timeout
        )

    def _create_ollama_chat(self):
        """Local models; no structured-output guarantees beyond what the model supports."""
        try:
            from langchain_community.chat_models import ChatOllama
        except ImportError:
            raise ImportError("Install langchain-community: pip install langchain-community")

        return ChatOllama(
            model=self.config.model_name or "llama3.2",
            base_url=self.config.ollama_base_url,
            temperature=self.config.temperature
        )

    def with_structured_output(self, schema: Union[Type[BaseModel], Dict[str, Any]]):
        """
        Get chat model constrained to produce output matching ``schema``.

        ``schema`` is either a Pydantic model or a function-calling JSON
        schema dict (with ``title`` and ``description``); dict schemas make
        the runnable return plain dicts.
        """
        chat = self.get_chat_model()
        return chat.with_structured_output(schema, method="function_calling")

    def with_tools(self, tools: List[Dict[str, Any]]):
        """Get chat model with function declarations bound for open-ended sessions."""
        return self.get_chat_model().bind_tools(tools)


class EmbeddingProvider:
    """
    Factory for embedding models.

    Supports:
    - OpenAI embeddings
    - HuggingFace embeddings (local)
    """

    def __init__(self, config: EmbeddingConfig = None):
        self.config = config or get_settings().embedding
        self._embeddings = None

    def get_embeddings(self):
        """Get embedding model instance."""
        if self._embeddings is None:
            self._embeddings = self._create_embeddings()
        return self._embeddings

    def _create_embeddings(self):
        provider = self.config.provider

        if provider == EmbeddingProviderType.OPENAI:
            try:
                from langchain_openai import OpenAIEmbeddings
            except ImportError:
                raise ImportError("Install langchain-openai: pip install langchain-openai")

            return OpenAIEmbeddings(
                model=self.config.model_name,
                dimensions=self.config.dimensions,
                api_key=_secret(get_settings().llm.openai_api_key)
            )

        if provider == EmbeddingProviderType.HUGGINGFACE:
            try:
                from langchain_community.embeddings import HuggingFaceEmbeddings
            except ImportError:
                raise ImportError("Install langchain-community: pip install langchain-community")

            return HuggingFaceEmbeddings(
                model_name=self.config.huggingface_model,
                encode_kwargs={'normalize_embeddings': True}
            )

        raise ValueError(f"Unsupported embedding provider: {provider}")
