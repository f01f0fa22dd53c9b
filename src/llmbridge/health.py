# src/llmbridge/health.py
"""
Health check of the provider and vector subsystems.

Each subsystem is reported as enabled/configured and ok, so a UI can tell
"not set up" apart from "set up but failing". Successful results are cached:
once a subsystem works it is not probed again. Failures are re-checked on
every call.
"""

import asyncio
import logging
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

from .config.models import ABSTRACT_MODELS, ProviderSettings, VectorSettings
from .exceptions import LLMBridgeError
from .models import (ChatCompletionRequest, ChatMessage, HealthCheckDetails,
                     ModelHealth, ProviderHealthDetails, VectorHealthDetails)
from .providers.manager import ProviderManager
from .vector.service import VectorService

logger = logging.getLogger(__name__)

NO_FUNCTIONING_MODELS = "No functioning models are available"
LLM_DISABLED = "LLM functionality is disabled"


def get_version() -> str:
    try:
        return version("llmbridge")
    except PackageNotFoundError:
        return "unknown"


class HealthChecker:
    """
    Computes `HealthCheckDetails`.

    Concurrent checks are serialized.
    """

    def __init__(
        self,
        provider_settings: ProviderSettings,
        provider_manager: ProviderManager,
        vector_settings: VectorSettings,
        vector_service: Optional[VectorService] = None,
    ):
        self.provider_settings = provider_settings
        self.provider_manager = provider_manager
        self.vector_settings = vector_settings
        self.vector_service = vector_service
        self._lock = asyncio.Lock()
        self._provider_cache: Optional[ProviderHealthDetails] = None
        self._vector_cache: Optional[VectorHealthDetails] = None

    async def _test_model(self, model: str) -> None:
        provider = self.provider_manager.get_provider()
        request = ChatCompletionRequest(model=model, messages=[ChatMessage(role="user", content="Hello")])
        await provider.chat_completion(request)

    async def provider_health(self) -> ProviderHealthDetails:
        if self._provider_cache is not None:
            return self._provider_cache
        # A disabled provider was configured on purpose but cannot be queried.
        if self.provider_settings.disabled:
            return ProviderHealthDetails(configured=True, ok=False, error=LLM_DISABLED)

        details = ProviderHealthDetails(configured=self.provider_settings.is_configured(), ok=True)
        for model in ABSTRACT_MODELS:
            if not details.configured:
                details.models[model] = ModelHealth(ok=False, error=self.provider_settings.unconfigured_error())
                continue
            try:
                await self._test_model(model)
                details.models[model] = ModelHealth(ok=True)
            except LLMBridgeError as e:
                logger.warning(f"Health check of model '{model}' failed: {e}")
                details.models[model] = ModelHealth(ok=False, error=str(e))

        if not any(m.ok for m in details.models.values()):
            details.ok = False
            details.error = NO_FUNCTIONING_MODELS
        if details.ok:
            self._provider_cache = details
        return details

    async def vector_health(self) -> VectorHealthDetails:
        if self._vector_cache is not None:
            return self._vector_cache
        details = VectorHealthDetails(enabled=self.vector_settings.enabled, ok=True)
        if not details.enabled:
            details.ok = False
            return details
        if self.vector_service is None:
            details.ok = False
            details.error = "vector service not configured"
        else:
            try:
                await self.vector_service.health()
            except LLMBridgeError as e:
                details.ok = False
                details.error = f"vector service health check failed: {e}"
        if details.ok:
            self._vector_cache = details
        return details

    async def check_health(self) -> HealthCheckDetails:
        """Returns the health of both subsystems and the library version."""
        async with self._lock:
            provider = await self.provider_health()
            vector = await self.vector_health()
        return HealthCheckDetails(
            llm_provider=provider,
            open_ai=provider.model_copy(deep=True),
            vector=vector,
            version=get_version(),
        )

    def reset(self) -> None:
        """Drops cached results, e.g. after the configuration changed."""
        self._provider_cache = None
        self._vector_cache = None
