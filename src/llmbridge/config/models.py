# src/llmbridge/config/models.py
"""
Pydantic models for llmbridge configuration validation.

The packaged `default_config.toml` and any user configuration file are merged
into a plain dictionary and validated against `LLMBridgeSettings`. The models
also normalize settings the way the host application expects: an empty OpenAI
URL falls back to the public endpoint, an unknown provider type leaves the
provider unconfigured, and an OpenAI embedder inherits the provider's URL and
key.

Environment variables override everything else. They use the `LLMBRIDGE_`
prefix and double underscores for nesting, e.g.
`LLMBRIDGE_PROVIDER__OPENAI__API_KEY`.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_URL = "https://api.openai.com"
DEFAULT_ANTHROPIC_URL = "https://api.anthropic.com"
DEFAULT_DASHBOARDS_COLLECTION = "grafana.core.dashboards"

KNOWN_PROVIDER_TYPES = ("openai", "azure", "custom", "grafana", "anthropic", "test")
ABSTRACT_MODELS = ("base", "large")

DEFAULT_MODEL_MAPPING: Dict[str, str] = {
    "base": "gpt-4.1-mini",
    "large": "gpt-4.1",
}

ANTHROPIC_MODEL_MAPPING: Dict[str, str] = {
    "base": "claude-sonnet-4-20250514",
    "large": "claude-sonnet-4-20250514",
}


# ==============================================================================
# Provider Configuration Models
# ==============================================================================


class OpenAIProviderSettings(BaseModel):
    """Connection details for OpenAI and OpenAI-compatible (custom, azure) providers."""

    url: str = Field(DEFAULT_OPENAI_URL, description="Base URL of the provider")
    api_path: str = Field("/v1", description="API path appended to the URL")
    organization_id: str = Field("", description="Sent as the OpenAI-Organization header")
    api_key: str = Field("", repr=False, description="Secret API key")
    azure_model_mapping: List[List[str]] = Field(
        default_factory=list,
        description="Pairs of [abstract model, azure deployment] used by the azure provider",
    )
    timeout: float = Field(120.0, description="Request timeout in seconds")

    @field_validator("url")
    @classmethod
    def reset_empty_url(cls, v: str) -> str:
        """A customized then cleared URL arrives as an empty string; use the default."""
        return v or DEFAULT_OPENAI_URL


class AnthropicSettings(BaseModel):
    """Connection details for the Anthropic Messages API."""

    url: str = Field(DEFAULT_ANTHROPIC_URL, description="Base URL of the Anthropic API")
    api_key: str = Field("", repr=False, description="Secret API key")
    timeout: float = Field(120.0, description="Request timeout in seconds")
    max_retries: int = Field(2, ge=0, description="Retries of connection errors, 429s and 5xx responses")

    @field_validator("url")
    @classmethod
    def reset_empty_url(cls, v: str) -> str:
        return v or DEFAULT_ANTHROPIC_URL


class GatewaySettings(BaseModel):
    """Grafana-managed LLM gateway. An empty URL disables the gateway."""

    url: str = Field("", description="URL of the LLM gateway")
    tenant: str = Field("", description="Stack (tenant) identifier")
    grafana_com_api_key: str = Field("", repr=False, description="grafana.com API key")


class ModelSettings(BaseModel):
    """Mapping from abstract model names to the provider's model names."""

    default: str = Field("base", description="Abstract model used when a model is not mapped")
    mapping: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_MODEL_MAPPING))

    @model_validator(mode="after")
    def fill_missing_mappings(self) -> "ModelSettings":
        for model_id, name in DEFAULT_MODEL_MAPPING.items():
            if not self.mapping.get(model_id):
                self.mapping[model_id] = name
        if not self.default:
            self.default = "base"
        return self

    def resolve(self, model: str) -> str:
        """Returns the provider model name for an abstract model, falling back to the default."""
        name = self.mapping.get(model)
        if name:
            return name
        return self.mapping.get(self.default, DEFAULT_MODEL_MAPPING["base"])


class TestProviderSettings(BaseModel):
    """
    Canned behavior of the simulated `test` provider.

    `stream_error`, when set, is emitted after the first delta instead of the
    remaining deltas.
    """
    __test__ = False

    models: List[str] = Field(default_factory=lambda: list(ABSTRACT_MODELS))
    chat_completion_response: Dict[str, Any] = Field(
        default_factory=lambda: {
            "id": "0",
            "object": "chat.completion",
            "model": "tiny",
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": ""},
                    "finish_reason": "stop",
                }
            ],
            "usage": {"prompt_tokens": 5, "completion_tokens": 5, "total_tokens": 10},
        }
    )
    chat_completion_error: str = ""
    initial_stream_error: str = ""
    stream_deltas: List[Dict[str, str]] = Field(
        default_factory=lambda: [
            {"role": "assistant", "content": "Hello "},
            {"role": "assistant", "content": "there"},
            {"role": "assistant", "content": "."},
        ]
    )
    stream_finish_reason: str = "stop"
    stream_error: str = ""


class ProviderSettings(BaseModel):
    """Selection and configuration of the LLM provider behind the proxy."""

    type: Optional[str] = Field("openai", description="openai, azure, custom, grafana, anthropic or test")
    disabled: bool = Field(False, description="LLM functionality explicitly disabled by the user")
    openai: OpenAIProviderSettings = Field(default_factory=OpenAIProviderSettings)
    anthropic: AnthropicSettings = Field(default_factory=AnthropicSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    models: ModelSettings = Field(default_factory=ModelSettings)
    test: TestProviderSettings = Field(default_factory=TestProviderSettings)

    @model_validator(mode="after")
    def drop_unusable_provider(self) -> "ProviderSettings":
        """Unknown provider types and a gateway without URL leave the provider unconfigured."""
        if self.type is not None and self.type not in KNOWN_PROVIDER_TYPES:
            logger.warning(f"Unknown provider type '{self.type}'. The provider is left unconfigured.")
            self.type = None
        if self.type == "grafana" and not self.gateway.url:
            logger.warning("Cannot use the LLM gateway as no URL is specified, disabling it.")
            self.type = None
        return self

    @model_validator(mode="after")
    def apply_anthropic_model_defaults(self) -> "ProviderSettings":
        """Abstract models still mapped to the OpenAI defaults get Claude models instead."""
        if self.type == "anthropic":
            for model_id, name in ANTHROPIC_MODEL_MAPPING.items():
                if self.models.mapping.get(model_id) == DEFAULT_MODEL_MAPPING[model_id]:
                    self.models.mapping[model_id] = name
        return self

    def is_configured(self) -> bool:
        """
        Whether the provider has enough settings to be used.

        An explicitly disabled provider counts as configured: the user made a choice.
        """
        if self.disabled:
            return True
        if self.type in ("grafana", "custom", "test"):
            return True
        if self.type == "azure":
            return bool(self.openai.azure_model_mapping) and bool(self.openai.api_key)
        if self.type == "openai":
            return bool(self.openai.api_key)
        if self.type == "anthropic":
            return bool(self.anthropic.api_key)
        return False

    def unconfigured_error(self) -> str:
        """Returns an actionable message explaining what is missing for the selected provider."""
        if self.type == "openai":
            return "OpenAI API key is not configured"
        if self.type == "azure":
            has_key = bool(self.openai.api_key)
            has_mappings = bool(self.openai.azure_model_mapping)
            if not has_key and not has_mappings:
                return "Azure OpenAI API key and model mappings are not configured"
            if not has_key:
                return "Azure OpenAI API key is not configured"
            if not has_mappings:
                return "Azure model mappings are not configured"
            return "Azure OpenAI configuration is incomplete"
        if self.type == "anthropic":
            return "Anthropic API key is not configured"
        return "LLM provider not configured"


# ==============================================================================
# Vector Configuration Models
# ==============================================================================


class EmbedderConnectionSettings(BaseModel):
    """Connection details of an OpenAI-compatible embeddings endpoint."""

    url: str = Field("", description="Base URL; the OpenAI default is used when empty")
    api_path: str = Field("/v1", description="API path between the URL and `/embeddings`")
    auth_type: str = Field("openai-key-auth", description="openai-key-auth or basic-auth")
    api_key: str = Field("", repr=False)
    basic_auth_user: str = ""
    basic_auth_password: str = Field("", repr=False)
    timeout: float = 60.0


class EmbedSettings(BaseModel):
    type: str = Field("openai", description="Embedder type: openai or grafana/vectorapi")
    openai: EmbedderConnectionSettings = Field(default_factory=EmbedderConnectionSettings)
    vectorapi: EmbedderConnectionSettings = Field(
        default_factory=lambda: EmbedderConnectionSettings(auth_type="basic-auth")
    )


class QdrantSettings(BaseModel):
    address: str = Field("localhost:6334", description="host:port of the Qdrant gRPC endpoint")
    secure: bool = Field(False, description="Use TLS; the API key is only sent when secure")
    api_key: str = Field("", repr=False)
    timeout: int = 30


class VectorAPIStoreSettings(BaseModel):
    url: str = ""
    auth_type: str = Field("", description="basic-auth or empty for no authentication")
    basic_auth_user: str = ""
    basic_auth_password: str = Field("", repr=False)
    timeout: float = 30.0


class StoreSettings(BaseModel):
    type: str = Field("qdrant", description="Vector store type: qdrant or grafana/vectorapi")
    qdrant: QdrantSettings = Field(default_factory=QdrantSettings)
    vectorapi: VectorAPIStoreSettings = Field(default_factory=VectorAPIStoreSettings)


class CollectionSettings(BaseModel):
    model: str = Field(..., description="Embedding model used to populate the collection")
    dimension: Optional[int] = Field(None, gt=0, description="Expected embedding dimension, if known")


class SyncSettings(BaseModel):
    enabled: bool = True
    collection: str = DEFAULT_DASHBOARDS_COLLECTION
    interval_seconds: float = Field(900.0, gt=0)
    batch_size: int = Field(100, gt=0)


class VectorSettings(BaseModel):
    """Vector search and sync settings."""

    enabled: bool = False
    model: str = Field("text-embedding-ada-002", description="Default embedding model")
    embed: EmbedSettings = Field(default_factory=EmbedSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    collections: Dict[str, CollectionSettings] = Field(default_factory=dict)
    sync: SyncSettings = Field(default_factory=SyncSettings)

    @model_validator(mode="after")
    def bind_sync_collection(self) -> "VectorSettings":
        """The synced collection is always searchable with the default model unless bound explicitly."""
        if self.sync.collection not in self.collections:
            self.collections[self.sync.collection] = CollectionSettings(model=self.model)
        return self


# ==============================================================================
# Collaborators and root settings
# ==============================================================================


class GrafanaAPISettings(BaseModel):
    """Where the Grafana HTTP API lives and how to authenticate against it."""

    grafana_url: str = "http://localhost:3000"
    api_key: str = Field("", repr=False)
    timeout: float = 30.0


class CoreSettings(BaseModel):
    log_level: str = "INFO"
    log_raw_payloads: bool = False
    stream_retention_seconds: float = Field(60.0, ge=0, description="How long finished streams stay replayable")


class LLMBridgeSettings(BaseSettings):
    """Root configuration object."""

    model_config = SettingsConfigDict(
        env_prefix="LLMBRIDGE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    llmbridge: CoreSettings = Field(default_factory=CoreSettings)
    logging: Dict[str, Any] = Field(default_factory=dict, description="Passed to configure_logging")
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    vector: VectorSettings = Field(default_factory=VectorSettings)
    source: GrafanaAPISettings = Field(default_factory=GrafanaAPISettings)
    client: GrafanaAPISettings = Field(default_factory=GrafanaAPISettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment first: it overrides file defaults passed as init kwargs.
        return env_settings, init_settings, file_secret_settings

    @model_validator(mode="after")
    def inherit_openai_embedder_connection(self) -> "LLMBridgeSettings":
        if self.vector.embed.type == "openai":
            embed = self.vector.embed.openai
            embed.url = self.provider.openai.url
            embed.api_path = self.provider.openai.api_path
            embed.auth_type = "openai-key-auth"
            if not embed.api_key:
                embed.api_key = self.provider.openai.api_key
        return self
