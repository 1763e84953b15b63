"""
Settings Management with Pydantic

Provides type-safe configuration for the ingestion engine:
- LLM provider used by the oracle
- Embedding provider used for similarity search
- Ingestion behaviour (special object type ids, thresholds, analysis)
"""

from enum import Enum
from typing import Optional
from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMProviderType(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"


class EmbeddingProviderType(str, Enum):
    """Supported embedding providers."""
    OPENAI = "openai"
    HUGGINGFACE = "huggingface"


class LLMConfig(BaseSettings):
    """LLM provider configuration."""
    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        extra="ignore"
    )

    provider: LLMProviderType = LLMProviderType.OPENAI
    model_name: str = "gpt-4o-mini"
    temperature: float = 0.0
    max_tokens: int = 4096
    timeout: int = 60

    # API Keys (loaded from environment)
    openai_api_key: Optional[SecretStr] = Field(default=None, alias="OPENAI_API_KEY")
    anthropic_api_key: Optional[SecretStr] = Field(default=None, alias="ANTHROPIC_API_KEY")

    # Ollama settings
    ollama_base_url: str = "http://localhost:11434"


class EmbeddingConfig(BaseSettings):
    """Embedding configuration."""
    model_config = SettingsConfigDict(
        env_prefix="EMBEDDING_",
        extra="ignore"
    )

    provider: EmbeddingProviderType = EmbeddingProviderType.OPENAI
    model_name: str = "text-embedding-3-small"
    dimensions: int = 1536

    # For local HuggingFace models
    huggingface_model: str = "all-MiniLM-L6-v2"


DEFAULT_SYSTEM_INSTRUCTION = """You are a business data API assistant designed to process incoming business data for an organisation.
Bear in mind how we are defining the following terms:
"organisation" = a business whose data is being processed
"member" = a member, typically an employee, of the organisation
"user" = a user/customer of the organisation's product(s)
"object" = a piece of data stored in the organisation's database
"object type" = the configured shape of an object (e.g. product, feedback, signal, job)"""


DEFAULT_ANALYSIS_INSTRUCTION = """You are the organisation's analyst. New data has just been stored.
Critically analyse it, making tool calls when necessary, then store one signal based on your analysis
and store any jobs you think need to be done because of it.
Don't ask for clarification or approval before taking action, as your reply won't be seen by a member. Just make your best guess."""


class IngestionConfig(BaseSettings):
    """Behaviour of the upsert pipeline."""
    model_config = SettingsConfigDict(
        env_prefix="INGESTION_",
        extra="ignore"
    )

    # Object types with special pipeline behaviour
    signal_object_type_id: str = "signal"
    job_object_type_id: str = "job"
    message_object_type_id: str = "message"

    # Dedup thresholds (similarity is in [-1, 1])
    signal_match_threshold: float = 0.8
    default_search_threshold: float = 0.2
    max_search_results: int = 20

    # Post-store analysis
    analysis_enabled: bool = True
    max_tool_iterations: int = 6

    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION
    analysis_instruction: str = DEFAULT_ANALYSIS_INSTRUCTION


class Settings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Application
    log_level: str = "INFO"

    # Sub-configurations
    llm: LLMConfig = Field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        return cls(
            llm=LLMConfig(),
            embedding=EmbeddingConfig(),
            ingestion=IngestionConfig()
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
