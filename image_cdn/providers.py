"""Provider registry and the single entry point used to rewrite links."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from . import cloudflare
from .config import ConfigurationError, ProviderSpec

logger = logging.getLogger("image_cdn")

Transform = Callable[[str, Any], str]
OptionsCoercer = Callable[[Any], Any]


@dataclass(frozen=True)
class Provider:
    """A named link rewrite strategy."""

    name: str
    transform: Transform
    coerce_options: Optional[OptionsCoercer] = None

    def __call__(self, original_link: str, options: Any = None) -> str:
        if self.coerce_options is not None:
            options = self.coerce_options(options)
        return self.transform(original_link, options)


_registry: Dict[str, Provider] = {}


def register_provider(
    name: str,
    transform: Transform,
    coerce_options: Optional[OptionsCoercer] = None,
) -> Provider:
    """Register a provider under ``name``.

    Registration is expected to happen before any document is rewritten;
    lookups are not synchronized against concurrent registration.
    """
    if not name or not isinstance(name, str):
        raise ConfigurationError(f"Provider name must be a non-empty string, got {name!r}")
    if not callable(transform):
        raise ConfigurationError(f"Provider {name!r} transform is not callable")
    if name in _registry:
        raise ConfigurationError(f"Provider {name!r} is already registered")
    provider = Provider(name=name, transform=transform, coerce_options=coerce_options)
    _registry[name] = provider
    logger.debug("Registered image provider %s", name)
    return provider


def unregister_provider(name: str) -> None:
    """Remove a custom provider; built-ins cannot be removed."""
    if name in BUILTIN_PROVIDERS:
        raise ConfigurationError(f"Built-in provider {name!r} cannot be removed")
    _registry.pop(name, None)


def get_provider(name: str) -> Provider:
    try:
        return _registry[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown image provider {name!r}; available: {', '.join(available_providers())}"
        ) from None


def available_providers() -> List[str]:
    return sorted(_registry)


def resolve_provider(provider: ProviderSpec) -> Transform:
    """Turn a provider name or callable into something that can be invoked."""
    if isinstance(provider, str):
        return get_provider(provider)
    if callable(provider):
        return provider
    raise ConfigurationError(
        f"provider must be a registered name or a callable, got {provider!r}"
    )


def dispatch(original_link: str, provider: ProviderSpec, options: Any = None) -> str:
    """Rewrite ``original_link`` with a registered provider name or a callable.

    Callables receive ``options`` untouched. Registered providers validate the
    options shape first and raise :class:`ConfigurationError` on mismatch.
    Exceptions raised inside a custom provider propagate to the caller.
    """
    return resolve_provider(provider)(original_link, options)


register_provider("cloudflare", cloudflare.transform, cloudflare.coerce_options)
BUILTIN_PROVIDERS = frozenset(_registry)
