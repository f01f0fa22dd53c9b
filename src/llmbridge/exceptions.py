# src/llmbridge/exceptions.py
"""
Custom exceptions for the llmbridge library.

This module defines the exception hierarchy used across the provider proxy,
the streaming relay and the vector subsystem, so that callers can tell a
malformed request apart from a misconfiguration, an unreachable backend or a
response that could not be understood.
"""

class LLMBridgeError(Exception):
    """Base class for all llmbridge specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in llmbridge."):
        super().__init__(message)

class ConfigError(LLMBridgeError):
    """Raised for errors related to configuration loading, validation or backend selection."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)

class UnknownCollectionError(ConfigError):
    """Raised when a collection is searched that has no entry in the local configuration."""
    def __init__(self, collection: str):
        self.collection = collection
        super().__init__(f"unknown collection '{collection}'")

class ValidationError(LLMBridgeError):
    """
    Raised for malformed requests (empty message list, missing role or content,
    unsupported filter operators, mismatched upsert columns).
    Always raised before any network call is made.
    """
    def __init__(self, message: str = "Invalid request."):
        super().__init__(message)

class TransportError(LLMBridgeError):
    """
    Raised when a backend could not be reached or answered with a non-2xx status.

    The message names the operation, e.g. `provider:openai` or `qdrant`.
    """
    def __init__(self, operation: str = "unknown", message: str = "Transport error."):
        self.operation = operation
        super().__init__(f"Transport error during '{operation}': {message}")

class ProviderError(TransportError):
    """Raised for errors originating from an LLM provider (API errors, connection issues)."""
    def __init__(self, provider_name: str = "Unknown", message: str = "Provider error."):
        self.provider_name = provider_name
        super().__init__(f"provider:{provider_name}", message)

class PluginNotInstalledError(ProviderError):
    """Raised by the LLM client when the proxy boundary answers 404."""
    def __init__(self, message: str = "LLM app plugin is not installed."):
        super().__init__("llm-app", message)

class EmbeddingError(TransportError):
    """Raised for errors related to embedding generation."""
    def __init__(self, model_name: str = "Unknown", message: str = "Embedding generation error."):
        self.model_name = model_name
        super().__init__(f"embed:{model_name}", message)

class VectorStorageError(TransportError):
    """Raised for errors specific to vector storage operations."""
    def __init__(self, message: str = "Vector storage error.", operation: str = "vector-store"):
        super().__init__(operation, message)

class DataError(LLMBridgeError):
    """Raised when a response body does not parse or an embedding has the wrong dimension."""
    def __init__(self, message: str = "Data error."):
        super().__init__(message)

class CollectionNotFoundError(LLMBridgeError):
    """Raised when a configured collection does not exist in the live vector store."""
    def __init__(self, collection: str):
        self.collection = collection
        super().__init__(f"collection {collection} not found in store")
