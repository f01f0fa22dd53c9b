# src/llmbridge/embedding/__init__.py
"""
Embedding backends for llmbridge's vector search and sync.
"""

from .base import BaseEmbedder
from .manager import EMBEDDER_MAP, create_embedder
from .openai import OpenAIEmbedder, VectorAPIEmbedder

__all__ = ["BaseEmbedder", "EMBEDDER_MAP", "OpenAIEmbedder", "VectorAPIEmbedder", "create_embedder"]
