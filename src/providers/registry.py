"""Provider lookup keyed by HostingProvider"""

import logging
from typing import Dict, Iterator, Mapping, Optional, Type

from ..exceptions import ProviderError
from ..models import HostingProvider
from .base import ProviderInterface

logger = logging.getLogger(__name__)

_PROVIDER_CLASSES: Dict[HostingProvider, Type[ProviderInterface]] = {}


def register_provider(cls: Type[ProviderInterface]) -> Type[ProviderInterface]:
    """Class decorator adding a provider variant to the lookup table"""
    _PROVIDER_CLASSES[cls.provider] = cls
    return cls


def provider_classes() -> Mapping[HostingProvider, Type[ProviderInterface]]:
    return dict(_PROVIDER_CLASSES)


class ProviderRegistry:
    """Holds one adapter instance per hosting provider"""

    def __init__(self, adapters: Optional[Dict[HostingProvider, ProviderInterface]] = None):
        self._adapters: Dict[HostingProvider, ProviderInterface] = dict(adapters or {})

    @classmethod
    def from_settings(cls, settings) -> "ProviderRegistry":
        adapters = {
            provider: provider_cls.from_settings(settings)
            for provider, provider_cls in _PROVIDER_CLASSES.items()
        }
        logger.info(f"Loaded {len(adapters)} provider adapters")
        return cls(adapters)

    def register(self, adapter: ProviderInterface) -> None:
        self._adapters[adapter.provider] = adapter

    def get(self, provider: HostingProvider) -> ProviderInterface:
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise ProviderError(
                str(getattr(provider, "value", provider)),
                ProviderError.PERMANENT,
                f"No adapter registered for provider {provider}"
            )
        return adapter

    def __contains__(self, provider: HostingProvider) -> bool:
        return provider in self._adapters

    def __iter__(self) -> Iterator[HostingProvider]:
        return iter(self._adapters)
