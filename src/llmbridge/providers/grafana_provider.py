# src/llmbridge/providers/grafana_provider.py
"""
Grafana-managed LLM gateway provider.

The gateway speaks the OpenAI protocol under `{gateway}/openai/v1`. Requests
authenticate with `tenant:grafana_com_api_key` and carry the tenant in the
`X-Scope-OrgID` header.
"""

import logging

from openai import AsyncOpenAI

from ..config.models import ProviderSettings
from ..exceptions import ConfigError
from .openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)


class GrafanaGatewayProvider(OpenAIProvider):
    """Provider that forwards requests to the Grafana LLM gateway."""

    def __init__(self, settings: ProviderSettings, log_raw_payloads: bool = False):
        if not settings.gateway.url:
            raise ConfigError("Cannot use the LLM gateway as no URL is specified.")
        super().__init__(settings, log_raw_payloads, name="grafana")

    def _create_client(self) -> AsyncOpenAI:
        gateway = self.settings.gateway
        base_url = gateway.url.rstrip("/") + "/openai/v1"
        logger.debug(f"Using LLM gateway at {base_url} for tenant '{gateway.tenant}'")
        return AsyncOpenAI(
            api_key=f"{gateway.tenant}:{gateway.grafana_com_api_key}",
            base_url=base_url,
            default_headers={"X-Scope-OrgID": gateway.tenant},
            timeout=self.timeout,
        )
