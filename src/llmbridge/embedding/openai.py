# src/llmbridge/embedding/openai.py
"""
OpenAI-compatible embedders for llmbridge.

Both the OpenAI API and the Grafana vector API expose embeddings as
`POST {url}{api_path}/embeddings` (`api_path` defaults to `/v1`) with
`{"model": ..., "input": ...}` and answer with
`{"data": [{"embedding": [...]}]}`. Only the default URL and the
authentication scheme differ.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..config.models import DEFAULT_OPENAI_URL, EmbedderConnectionSettings
from ..exceptions import ConfigError, DataError, EmbeddingError
from .base import BaseEmbedder

logger = logging.getLogger(__name__)

AUTH_OPENAI_KEY = "openai-key-auth"
AUTH_BASIC = "basic-auth"


class OpenAIEmbedder(BaseEmbedder):
    """
    Embedder for the OpenAI embeddings endpoint.

    One aiohttp session is shared by all calls; credentials are attached to
    each request.
    """
    _session: Optional[aiohttp.ClientSession] = None
    provider_name = "openai"
    default_url = DEFAULT_OPENAI_URL

    def __init__(self, settings: EmbedderConnectionSettings):
        """
        Args:
            settings: URL, authentication type and credentials of the endpoint.

        Raises:
            ConfigError: If the authentication type is not supported.
        """
        if settings.auth_type not in (AUTH_OPENAI_KEY, AUTH_BASIC):
            raise ConfigError(f"unsupported embedder auth type: {settings.auth_type!r}")
        self.settings = settings
        base_url = (settings.url or self.default_url).rstrip("/")
        api_path = settings.api_path.strip("/")
        self._url = f"{base_url}/{api_path}/embeddings" if api_path else f"{base_url}/embeddings"
        self._timeout = settings.timeout
        logger.info(f"{type(self).__name__} configured for {self._url} (auth: {settings.auth_type}).")

    async def _get_session(self) -> aiohttp.ClientSession:
        """Gets or creates the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self._timeout))
            logger.debug(f"Created new aiohttp.ClientSession for {type(self).__name__}.")
        return self._session

    def _auth(self) -> Dict[str, Any]:
        if self.settings.auth_type == AUTH_BASIC:
            return {"auth": aiohttp.BasicAuth(self.settings.basic_auth_user, self.settings.basic_auth_password)}
        return {"headers": {"Authorization": f"Bearer {self.settings.api_key}"}}

    async def embed(self, model: str, text: str) -> List[float]:
        session = await self._get_session()
        logger.debug(f"Generating {self.provider_name} embedding (length: {len(text)}, model: {model})...")
        try:
            async with session.post(self._url, json={"model": model, "input": text}, **self._auth()) as resp:
                body = await resp.read()
                if not 200 <= resp.status < 300:
                    logger.error(f"Embedding request to {self.provider_name} failed with status {resp.status}: "
                                 f"{body[:512]!r}")
                    raise EmbeddingError(model, f"got non-2xx status from {self.provider_name}: {resp.status}")
        except asyncio.TimeoutError as e:
            logger.error(f"Embedding request to {self.provider_name} timed out after {self._timeout}s.")
            raise EmbeddingError(model, f"request timed out after {self._timeout}s") from e
        except aiohttp.ClientError as e:
            logger.error(f"Could not reach {self.provider_name} for embeddings: {e}")
            raise EmbeddingError(model, f"make request: {e}") from e

        try:
            data = json.loads(body).get("data")
        except (json.JSONDecodeError, UnicodeDecodeError, AttributeError) as e:
            raise DataError(f"unmarshal embedding response from {self.provider_name}: {e}") from e
        if not data:
            raise EmbeddingError(model, "no embeddings returned")
        try:
            return [float(x) for x in data[0]["embedding"]]
        except (KeyError, TypeError, ValueError) as e:
            raise DataError(f"malformed embedding in response from {self.provider_name}: {e}") from e

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            logger.info(f"{type(self).__name__} session closed.")
        self._session = None


class VectorAPIEmbedder(OpenAIEmbedder):
    """Embedder backed by the Grafana vector API, which mirrors the OpenAI wire format."""
    provider_name = "grafana/vectorapi"

    def __init__(self, settings: EmbedderConnectionSettings):
        if not settings.url:
            raise ConfigError("the grafana/vectorapi embedder requires a URL")
        super().__init__(settings)
