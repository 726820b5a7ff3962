"""Configuration schema using Pydantic."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


class _AliasedModel(BaseModel):
    """Accepts both camelCase aliases (config files) and field names (code)."""

    model_config = ConfigDict(populate_by_name=True)


class CacheConfig(_AliasedModel):
    """Shared cache store configuration."""

    backend: str = "memory"  # "memory" or "redis"
    redis_url: str = Field(default="redis://localhost:6379/0", alias="redisUrl")
    context_ttl: int = Field(default=60 * 60, alias="contextTtl")
    session_ttl: int = Field(default=30 * 60, alias="sessionTtl")
    vector_ttl: int = Field(default=5 * 60, alias="vectorTtl")
    embedding_ttl: int = Field(default=24 * 60 * 60, alias="embeddingTtl")


class AgentConfig(_AliasedModel):
    """Conversation loop configuration."""

    model: str = "anthropic/claude-opus-4-5"
    provider: str = "claude"  # Provider family used to size the context window
    max_tokens: int = Field(default=350, alias="maxTokens")
    temperature: float = 0.7
    max_steps: int = Field(default=5, alias="maxSteps")
    history_limit: int = Field(default=20, alias="historyLimit")
    reserve_tokens: int = Field(default=4000, alias="reserveTokens")


class RetrievalConfig(_AliasedModel):
    """Real-time similarity search configuration."""

    enabled: bool = True
    top_k: int = Field(default=5, alias="topK")
    min_length: int = Field(default=10, alias="minLength")  # Display columns
    min_score: float = Field(default=0.0, alias="minScore")


class EmbeddingConfig(_AliasedModel):
    """Embedding model configuration."""

    model: str = "openai/text-embedding-3-small"
    max_retries: int = Field(default=3, alias="maxRetries")


class TimeoutsConfig(_AliasedModel):
    """Bounded waits (seconds) for external calls."""

    embedding: float = 15.0
    similarity: float = 10.0
    document_store: float = Field(default=10.0, alias="documentStore")
    cache: float = 2.0
    model_first_token: float = Field(default=60.0, alias="modelFirstToken")
    model_idle: float = Field(default=30.0, alias="modelIdle")  # Between stream chunks


class ProviderConfig(_AliasedModel):
    """LLM provider configuration."""

    api_key: str = Field(default="", alias="apiKey")
    api_base: str | None = Field(default=None, alias="apiBase")


class ProvidersConfig(BaseModel):
    """Configuration for LLM providers."""

    anthropic: ProviderConfig = Field(default_factory=ProviderConfig)
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    openrouter: ProviderConfig = Field(default_factory=ProviderConfig)
    xai: ProviderConfig = Field(default_factory=ProviderConfig)


class GatewayConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 18790


class Config(BaseSettings):
    """Root configuration for muse."""

    cache: CacheConfig = Field(default_factory=CacheConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)

    def get_api_key(self) -> str | None:
        """Get API key in priority order: OpenRouter > Anthropic > OpenAI > xAI."""
        return (
            self.providers.openrouter.api_key
            or self.providers.anthropic.api_key
            or self.providers.openai.api_key
            or self.providers.xai.api_key
            or None
        )

    def get_api_base(self) -> str | None:
        """Get API base URL if using OpenRouter or a custom endpoint."""
        if self.providers.openrouter.api_key:
            return self.providers.openrouter.api_base or "https://openrouter.ai/api/v1"
        for provider in (self.providers.anthropic, self.providers.openai, self.providers.xai):
            if provider.api_key and provider.api_base:
                return provider.api_base
        return None

    class Config:
        env_prefix = "MUSE_"
        env_nested_delimiter = "__"
        populate_by_name = True
