# src/llmbridge/embedding/manager.py
"""
Selects the embedder implementation from the `[vector.embed]` section.
"""

import logging
from typing import Dict, Type

from ..config.models import EmbedSettings
from ..exceptions import ConfigError
from .base import BaseEmbedder
from .openai import OpenAIEmbedder, VectorAPIEmbedder

logger = logging.getLogger(__name__)

EMBEDDER_MAP: Dict[str, Type[OpenAIEmbedder]] = {
    "openai": OpenAIEmbedder,
    "grafana/vectorapi": VectorAPIEmbedder,
}


def create_embedder(settings: EmbedSettings) -> BaseEmbedder:
    """
    Instantiates the embedder named by `settings.type`.

    Raises:
        ConfigError: If the type is unknown or its connection settings are invalid.
    """
    embedder_cls = EMBEDDER_MAP.get(settings.type)
    if embedder_cls is None:
        raise ConfigError(f"Unknown embedder type '{settings.type}'. Available: {list(EMBEDDER_MAP)}")
    connection = settings.openai if settings.type == "openai" else settings.vectorapi
    embedder = embedder_cls(connection)
    logger.debug(f"Embedder '{settings.type}' created.")
    return embedder
