"""Provider registry for discovering and creating price source adapters."""
import logging
from typing import Any, Callable, Dict, List, Optional, Type

import httpx

from pricewatch.shared.config import ProviderSettings
from pricewatch.shared.errors import ValidationError
from .base import BasePriceProvider, ProviderConfig

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Maps provider ids to adapter classes.

    Each registry is its own instance, so two registries (or two test cases)
    never share adapter classes or provider runtime state.
    """

    def __init__(self):
        self._classes: Dict[str, Type[BasePriceProvider]] = {}

    def register(self, provider_class: Type[BasePriceProvider]) -> Type[BasePriceProvider]:
        """Register an adapter class under its ``id``. Usable as a decorator."""
        self._classes[provider_class.id] = provider_class
        return provider_class

    def __contains__(self, provider_id: str) -> bool:
        return provider_id in self._classes

    def get(self, provider_id: str) -> Optional[Type[BasePriceProvider]]:
        return self._classes.get(provider_id)

    def create(
        self,
        provider_id: str,
        config: Optional[ProviderConfig] = None,
        **kwargs: Any,
    ) -> BasePriceProvider:
        """Create a fresh provider instance with its own rate-limit state."""
        provider_class = self._classes.get(provider_id)
        if provider_class is None:
            raise ValidationError(f"Unknown provider: {provider_id}")
        return provider_class(config, **kwargs)

    def available(self) -> List[Dict[str, Any]]:
        """List registered providers with their capabilities."""
        return [
            {
                "id": cls.id,
                "name": cls.display_name,
                "supports": sorted(cls.supports),
            }
            for cls in self._classes.values()
        ]


def default_registry() -> ProviderRegistry:
    """Registry preloaded with every built-in adapter."""
    from .affiliates import AgodaProvider, KayakProvider, TripProvider
    from .booking import BookingProvider
    from .expedia import ExpediaProvider
    from .hotels_com import HotelsComProvider
    from .skyscanner import SkyscannerProvider

    registry = ProviderRegistry()
    for cls in (
        ExpediaProvider,
        SkyscannerProvider,
        BookingProvider,
        HotelsComProvider,
        KayakProvider,
        AgodaProvider,
        TripProvider,
    ):
        registry.register(cls)
    return registry


def build_providers(
    settings: ProviderSettings,
    registry: Optional[ProviderRegistry] = None,
    client: Optional[httpx.AsyncClient] = None,
    **kwargs: Any,
) -> List[BasePriceProvider]:
    """Create the configured providers, skipping unknown ids."""
    registry = registry or default_registry()
    providers = []
    for provider_id in settings.enabled_ids():
        provider_class = registry.get(provider_id)
        if provider_class is None:
            logger.warning(f"Unknown provider in configuration: {provider_id}")
            continue

        # Adapters with their own default (Skyscanner) keep it unless overridden
        fallback = None
        if provider_class.default_timeout != BasePriceProvider.default_timeout:
            fallback = provider_class.default_timeout

        config = ProviderConfig(
            api_key=settings.api_key_for(provider_id),
            timeout=settings.timeout_for(provider_id, fallback),
            rate_limit_requests=settings.rate_limits.get(provider_id, settings.rate_limit_requests),
            rate_limit_window=settings.rate_limit_window,
            affiliate_id=settings.affiliate_id,
        )
        provider = registry.create(provider_id, config, client=client, **kwargs)
        providers.append(provider)
        logger.info(f"Initialized provider {provider.name} (timeout {provider.timeout:g}s)")
    return providers
