"""Configuration objects and constants for image rewriting."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

from .utils import split_absolute_url

DEFAULT_PROVIDER = "cloudflare"
IMAGE_TAGS = ("img",)

OriginValidation = Union[None, str, re.Pattern, Callable[[str], bool]]
ProviderSpec = Union[str, Callable[[str, Any], str]]
SrcsetOptions = List[Tuple[Any, str]]


class ConfigurationError(ValueError):
    """Raised when the rewrite configuration is unusable."""


def check_origin_validation(origin_validation: Any) -> None:
    """Reject anything other than None, a string, a pattern or a predicate."""
    if origin_validation is None or isinstance(origin_validation, (str, re.Pattern)):
        return
    if callable(origin_validation):
        return
    raise ConfigurationError(
        f"Invalid origin_validation option: {type(origin_validation).__name__}"
    )


def _normalize_srcset(entries: Sequence[Any]) -> SrcsetOptions:
    if isinstance(entries, (str, bytes)):
        raise ConfigurationError("srcset_options_list must be a list of (options, descriptor) pairs")
    normalized: SrcsetOptions = []
    for entry in entries:
        if not isinstance(entry, (tuple, list)) or len(entry) != 2:
            raise ConfigurationError(f"Invalid srcset entry {entry!r}; expected (options, descriptor)")
        options, descriptor = entry
        if not isinstance(descriptor, str):
            raise ConfigurationError(f"srcset descriptor must be a string, got {descriptor!r}")
        normalized.append((options, descriptor))
    return normalized


@dataclass
class RewriteConfig:
    """Settings that control which image attributes are rewritten and how."""

    provider: ProviderSpec = DEFAULT_PROVIDER
    origin_validation: OriginValidation = None
    optimize_src_options: Any = None
    srcset_options_list: Optional[SrcsetOptions] = None
    sizes_options_list: Union[None, str, Sequence[str]] = None
    style: Optional[str] = None
    base_url: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.provider, str) and not callable(self.provider):
            raise ConfigurationError(
                f"provider must be a registered name or a callable, got {self.provider!r}"
            )
        check_origin_validation(self.origin_validation)
        if self.srcset_options_list is not None:
            self.srcset_options_list = _normalize_srcset(self.srcset_options_list)
        sizes = self.sizes_options_list
        if sizes is not None and not isinstance(sizes, str):
            if not all(isinstance(item, str) for item in sizes):
                raise ConfigurationError("sizes_options_list must be a string or a list of strings")
            self.sizes_options_list = list(sizes)
        if self.style is not None and not isinstance(self.style, str):
            raise ConfigurationError("style must be a string")
        if self.base_url is not None and (
            not isinstance(self.base_url, str) or split_absolute_url(self.base_url) is None
        ):
            raise ConfigurationError(f"base_url must be an absolute URL, got {self.base_url!r}")


def define_options(**kwargs: Any) -> RewriteConfig:
    """Build a validated :class:`RewriteConfig` from keyword arguments."""
    try:
        return RewriteConfig(**kwargs)
    except TypeError as exc:
        raise ConfigurationError(str(exc)) from exc
