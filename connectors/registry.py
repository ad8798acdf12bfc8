"""
AdapterRegistry — table lookup from platform key to its adapter.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Union

from config.settings import config
from connectors.base import PlatformAdapter
from connectors.facebook import FacebookAdapter
from connectors.instagram import InstagramAdapter
from connectors.linkedin import LinkedInAdapter
from connectors.schemas import Platform
from connectors.youtube import YouTubeAdapter

logger = logging.getLogger(__name__)


def _default_adapters() -> List[PlatformAdapter]:
    return [
        YouTubeAdapter(),
        FacebookAdapter(),
        InstagramAdapter(),
        LinkedInAdapter(),
    ]


class AdapterRegistry:
    """Singleton registry for all platform adapters."""

    _instance: Optional["AdapterRegistry"] = None

    def __new__(cls) -> "AdapterRegistry":
        if cls._instance is None:
            inst = super().__new__(cls)
            inst._adapters: Dict[Platform, PlatformAdapter] = {
                a.platform: a for a in _default_adapters()
            }
            cls._instance = inst
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (tests swap adapters in and out)."""
        cls._instance = None

    def register(self, adapter: PlatformAdapter) -> None:
        """Replace the adapter for ``adapter.platform``."""
        self._adapters[adapter.platform] = adapter
        logger.info("Adapter registered: %s (%s)", adapter.display_name, adapter.platform.value)

    def get(self, platform: Union[Platform, str]) -> PlatformAdapter:
        """
        Return the adapter for a platform key.

        Raises
        ------
        ValueError – unknown platform key
        """
        return self._adapters[Platform(platform)]

    def list_providers(self) -> List[Dict[str, object]]:
        """Return info about every supported platform."""
        providers = []
        for platform, adapter in self._adapters.items():
            env = config.platform_env_credentials(platform.value)
            providers.append(
                {
                    "provider": platform.value,
                    "display_name": adapter.display_name,
                    "default_scopes": adapter.default_scopes,
                    "env_configured": bool(env["client_id"] and env["client_secret"]),
                }
            )
        return providers


def get_adapter(platform: Union[Platform, str]) -> PlatformAdapter:
    return AdapterRegistry().get(platform)
