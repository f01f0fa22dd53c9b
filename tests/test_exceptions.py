# tests/test_exceptions.py
"""
Tests for the llmbridge.exceptions module.

Covers the hierarchy (which errors a caller can catch together), the
operation context carried by transport errors, and message formatting.
"""

import pytest

from llmbridge.exceptions import (
    CollectionNotFoundError,
    ConfigError,
    DataError,
    EmbeddingError,
    LLMBridgeError,
    PluginNotInstalledError,
    ProviderError,
    TransportError,
    UnknownCollectionError,
    ValidationError,
    VectorStorageError,
)


class TestLLMBridgeError:
    """Tests for the base exception."""

    def test_default_message(self):
        assert "unspecified error" in str(LLMBridgeError()).lower()

    def test_custom_message(self):
        assert str(LLMBridgeError("boom")) == "boom"

    def test_can_be_raised(self):
        with pytest.raises(LLMBridgeError):
            raise LLMBridgeError("Test error")


class TestHierarchy:
    """Every library error is an LLMBridgeError; transport errors share a base."""

    @pytest.mark.parametrize(
        "error",
        [
            ConfigError(),
            UnknownCollectionError("c"),
            ValidationError(),
            TransportError(),
            ProviderError(),
            PluginNotInstalledError(),
            EmbeddingError(),
            VectorStorageError(),
            DataError(),
            CollectionNotFoundError("c"),
        ],
    )
    def test_is_llmbridge_error(self, error):
        assert isinstance(error, LLMBridgeError)

    def test_transport_errors(self):
        for error in (ProviderError(), EmbeddingError(), VectorStorageError(), PluginNotInstalledError()):
            assert isinstance(error, TransportError)

    def test_unknown_collection_is_config_error(self):
        assert isinstance(UnknownCollectionError("c"), ConfigError)

    def test_validation_is_not_transport(self):
        assert not isinstance(ValidationError(), TransportError)


class TestTransportContext:
    """Transport errors name the failing operation."""

    def test_transport_error_message(self):
        error = TransportError("grafana-api", "timed out")
        assert error.operation == "grafana-api"
        assert str(error) == "Transport error during 'grafana-api': timed out"

    def test_provider_error(self):
        error = ProviderError("openai", "API Error (Status 500)")
        assert error.provider_name == "openai"
        assert error.operation == "provider:openai"
        assert "API Error (Status 500)" in str(error)

    def test_embedding_error(self):
        error = EmbeddingError("text-embedding-ada-002", "no embeddings returned")
        assert error.model_name == "text-embedding-ada-002"
        assert error.operation == "embed:text-embedding-ada-002"

    def test_vector_storage_error(self):
        error = VectorStorageError("search failed", operation="qdrant")
        assert error.operation == "qdrant"
        assert "search failed" in str(error)

    def test_provider_and_store_are_distinguishable(self):
        provider = ProviderError("openai", "could not reach provider")
        store = VectorStorageError("could not reach store")
        assert provider.operation != store.operation

    def test_plugin_not_installed(self):
        error = PluginNotInstalledError("not found")
        assert error.provider_name == "llm-app"
        assert isinstance(error, ProviderError)


class TestCollectionErrors:
    def test_unknown_collection_message(self):
        error = UnknownCollectionError("grafana.core.dashboards")
        assert error.collection == "grafana.core.dashboards"
        assert str(error) == "unknown collection 'grafana.core.dashboards'"

    def test_collection_not_found_message(self):
        error = CollectionNotFoundError("dashboards")
        assert str(error) == "collection dashboards not found in store"
