# src/llmbridge/storage/__init__.py
"""
Vector store backends for llmbridge.
"""

from .base_vector import ReadVectorStore, VectorStore, WriteVectorStore
from .manager import VECTOR_STORE_MAP, create_vector_store
from .qdrant_vector import QdrantVectorStore, map_filter
from .vectorapi_vector import VectorAPIStore

__all__ = [
    "QdrantVectorStore",
    "ReadVectorStore",
    "VECTOR_STORE_MAP",
    "VectorAPIStore",
    "VectorStore",
    "WriteVectorStore",
    "create_vector_store",
    "map_filter",
]
