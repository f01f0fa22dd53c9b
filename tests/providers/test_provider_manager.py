# tests/providers/test_provider_manager.py
"""
Tests for provider selection in ProviderManager.

Covers:
- PROVIDER_MAP consistency with the known provider types
- Disabled and unconfigured providers raising ConfigError
- Lazy construction and caching of the provider instance
- Raw payload logging toggles and close()
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from llmbridge.config.models import KNOWN_PROVIDER_TYPES, ProviderSettings
from llmbridge.exceptions import ConfigError
from llmbridge.providers.manager import (PROVIDER_MAP, ProviderManager,
                                         create_provider)
from llmbridge.providers.simulated_provider import SimulatedProvider


def _patch_provider_map(overrides):
    """PROVIDER_MAP is built at import time, so its entries are patched directly."""
    return patch.dict("llmbridge.providers.manager.PROVIDER_MAP", overrides)


class TestProviderMap:
    def test_every_known_type_is_mapped(self):
        assert set(PROVIDER_MAP) == set(KNOWN_PROVIDER_TYPES)


class TestCreateProvider:
    def test_disabled(self):
        with pytest.raises(ConfigError, match="disabled"):
            create_provider(ProviderSettings(type="test", disabled=True))

    def test_unconfigured(self):
        with pytest.raises(ConfigError, match="invalid provider configuration"):
            create_provider(ProviderSettings(type="unknown-provider"))

    def test_passes_raw_payload_flag(self):
        provider_cls = MagicMock()
        with _patch_provider_map({"test": provider_cls}):
            create_provider(ProviderSettings(type="test"), log_raw_payloads=True)
        assert provider_cls.call_args.kwargs["log_raw_payloads"] is True

    def test_simulated(self):
        assert isinstance(create_provider(ProviderSettings(type="test")), SimulatedProvider)


class TestProviderManager:
    """Tests for the lazily constructed provider."""

    def test_enabled(self):
        assert ProviderManager(ProviderSettings(type="test")).enabled
        assert not ProviderManager(ProviderSettings(type="test", disabled=True)).enabled

    def test_provider_is_cached(self):
        manager = ProviderManager(ProviderSettings(type="test"))
        assert manager.get_provider() is manager.get_provider()

    def test_error_surfaces_on_use(self):
        manager = ProviderManager(ProviderSettings(type=None))
        with pytest.raises(ConfigError):
            manager.get_provider()

    def test_update_log_raw_payloads(self):
        manager = ProviderManager(ProviderSettings(type="test"))
        provider = manager.get_provider()
        manager.update_log_raw_payloads_setting(True)
        assert provider.log_raw_payloads_enabled is True

    @pytest.mark.asyncio
    async def test_close(self):
        provider = MagicMock()
        provider.close = AsyncMock()
        provider.get_name.return_value = "mock"
        with _patch_provider_map({"test": MagicMock(return_value=provider)}):
            manager = ProviderManager(ProviderSettings(type="test"))
            manager.get_provider()
        await manager.close()
        provider.close.assert_awaited_once()
        assert manager._provider is None

    @pytest.mark.asyncio
    async def test_close_error_is_logged(self, caplog):
        provider = MagicMock()
        provider.close = AsyncMock(side_effect=RuntimeError("boom"))
        provider.get_name.return_value = "mock"
        with _patch_provider_map({"test": MagicMock(return_value=provider)}):
            manager = ProviderManager(ProviderSettings(type="test"))
            manager.get_provider()
        await manager.close()
        assert "Error closing provider 'mock'" in caplog.text
        assert manager._provider is None

    @pytest.mark.asyncio
    async def test_close_without_provider(self):
        await ProviderManager(ProviderSettings(type="test")).close()
