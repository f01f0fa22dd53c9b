# src/llmbridge/providers/simulated_provider.py
"""
Simulated provider (type `test`) that answers with configured canned data.

Used by integration tests and local development: no network calls are made.
The stream emits each configured delta as one chunk, then a chunk carrying the
finish reason. Errors can be injected when opening the stream or after the
first delta.
"""

import copy
import logging
from typing import Any, AsyncIterator, Dict, List

from ..config.models import ProviderSettings
from ..exceptions import ProviderError
from ..models import ChatCompletionRequest
from .base import BaseProvider

logger = logging.getLogger(__name__)


class SimulatedProvider(BaseProvider):
    """Provider returning the canned responses of `[provider.test]`."""

    def __init__(self, settings: ProviderSettings, log_raw_payloads: bool = False):
        super().__init__(settings, log_raw_payloads)
        self.behavior = settings.test

    def get_name(self) -> str:
        return "test"

    async def models(self) -> List[str]:
        return list(self.behavior.models)

    async def _chat_completion(self, request: ChatCompletionRequest) -> Dict[str, Any]:
        if self.behavior.chat_completion_error:
            raise ProviderError(self.get_name(), self.behavior.chat_completion_error)
        return copy.deepcopy(self.behavior.chat_completion_response)

    async def _open_stream(self, request: ChatCompletionRequest) -> AsyncIterator[Dict[str, Any]]:
        if self.behavior.initial_stream_error:
            raise ProviderError(self.get_name(), self.behavior.initial_stream_error)
        deltas = [dict(d) for d in self.behavior.stream_deltas]
        stream_error = self.behavior.stream_error
        finish_reason = self.behavior.stream_finish_reason or "stop"
        provider_name = self.get_name()

        async def chunks() -> AsyncIterator[Dict[str, Any]]:
            for index, delta in enumerate(deltas):
                if index == 1 and stream_error:
                    raise ProviderError(provider_name, stream_error)
                yield {"choices": [{"index": 0, "delta": delta}]}
            yield {"choices": [{"index": 0, "delta": {}, "finish_reason": finish_reason}]}

        logger.debug(f"Simulated stream opened with {len(deltas)} deltas")
        return chunks()
