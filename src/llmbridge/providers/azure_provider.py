# src/llmbridge/providers/azure_provider.py
"""
Azure OpenAI provider implementation for llmbridge.

Azure addresses models through deployments. The `azure_model_mapping` setting
maps abstract model names to deployment names; requests are sent to the
deployment and the model field is not used by Azure itself.
"""

import logging
from typing import Dict, List

from openai import AsyncAzureOpenAI

from ..config.models import ProviderSettings
from ..exceptions import ConfigError, ValidationError
from ..models import ChatCompletionRequest
from .base import model_from_string
from .openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

AZURE_API_VERSION = "2023-03-15-preview"


def parse_azure_mapping(pairs: List[List[str]]) -> Dict[str, str]:
    """
    Turns `[[model, deployment], ...]` into a dictionary keyed by abstract model.

    Raises:
        ConfigError: If a pair does not have exactly two entries or names an
                     unrecognized model.
    """
    mapping: Dict[str, str] = {}
    for pair in pairs:
        if len(pair) != 2:
            raise ConfigError(f"bad request: expected 2 entries in a mapping, got {len(pair)}")
        try:
            model = model_from_string(pair[0])
        except ValidationError as e:
            raise ConfigError(f"invalid azure model mapping: {e}") from e
        mapping[model] = pair[1]
    return mapping


class AzureOpenAIProvider(OpenAIProvider):
    """Provider for Azure-hosted OpenAI deployments."""

    def __init__(self, settings: ProviderSettings, log_raw_payloads: bool = False):
        # Validate the mapping once so a broken configuration fails at construction.
        self.deployments = parse_azure_mapping(settings.openai.azure_model_mapping)
        super().__init__(settings, log_raw_payloads, name="azure")

    def _create_client(self) -> AsyncAzureOpenAI:
        return AsyncAzureOpenAI(
            api_key=self.settings.openai.api_key or "unset",
            api_version=AZURE_API_VERSION,
            azure_endpoint=self.settings.openai.url.rstrip("/"),
            timeout=self.timeout,
        )

    async def models(self) -> List[str]:
        return list(self.deployments)

    def _model_for(self, request: ChatCompletionRequest) -> str:
        model = model_from_string(request.model)
        deployment = self.deployments.get(model)
        if not deployment:
            raise ValidationError(f"bad request: no deployment found for model: {model}")
        logger.debug(f"Mapping model '{model}' to azure deployment '{deployment}'")
        return deployment
