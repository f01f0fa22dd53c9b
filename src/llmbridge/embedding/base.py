# src/llmbridge/embedding/base.py
"""
Abstract Base Class for text embedders.

An embedder turns text into a vector with a named model. The vector service
uses it for search queries; the sync engine uses it to populate collections.
"""

import abc
from typing import List

HEALTH_CHECK_TEXT = "Hello, world!"


class BaseEmbedder(abc.ABC):
    """
    Abstract Base Class for embedding backends.

    The model is chosen per call; each collection is bound to its own
    embedding model.
    """

    @abc.abstractmethod
    async def embed(self, model: str, text: str) -> List[float]:
        """
        Generate a vector embedding for `text` with `model`.

        The text is sent as is; oversized input is rejected by the backend,
        not truncated here.

        Raises:
            EmbeddingError: If the backend cannot be reached, answers non-2xx,
                            or returns no embeddings.
            DataError: If the response body cannot be parsed.
        """
        pass

    async def health(self, model: str) -> None:
        """
        Raises if `model` cannot embed a short probe text.

        Raises:
            EmbeddingError: See `embed`.
        """
        await self.embed(model, HEALTH_CHECK_TEXT)

    async def close(self) -> None:
        """Release network resources."""
        pass
