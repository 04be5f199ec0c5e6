"""Reference provider that routes images through a ``/cdn-cgi/image/`` endpoint.

Links are rewritten into the URL form understood by Cloudflare Image
Resizing:

    https://example.com/image.jpg
    -> https://example.com/cdn-cgi/image/f=auto/image.jpg

When a different result origin is configured the full original URL is
embedded after the options so the foreign host can proxy it:

    -> https://cdn.example.net/cdn-cgi/image/f=auto/https://example.com/image.jpg
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .config import ConfigurationError
from .models import CloudflareOptions, LinkRewrite
from .utils import is_root_relative, normalize_options, normalize_path, split_absolute_url

logger = logging.getLogger("image_cdn")

CDN_PATH_PREFIX = "/cdn-cgi/image/"
_OPTION_ALIASES = {"resultOrigin": "result_origin"}


def coerce_options(value: Any) -> CloudflareOptions:
    """Accept the option shapes callers commonly pass and validate them."""
    if value is None:
        return CloudflareOptions()
    if isinstance(value, CloudflareOptions):
        return value
    if isinstance(value, str):
        return CloudflareOptions(options=value)
    if isinstance(value, Mapping):
        fields = {_OPTION_ALIASES.get(key, key): item for key, item in value.items()}
        unknown = set(fields) - {"options", "result_origin"}
        if unknown:
            raise ConfigurationError(
                f"Unknown cloudflare option(s): {', '.join(sorted(map(str, unknown)))}"
            )
        value = CloudflareOptions(**fields)
    elif isinstance(value, (list, tuple)):
        value = CloudflareOptions(options=list(value))
    else:
        raise ConfigurationError(
            f"Invalid cloudflare options of type {type(value).__name__}"
        )

    options = value.options
    if options is not None and not isinstance(options, str):
        if not all(isinstance(fragment, str) for fragment in options):
            raise ConfigurationError("cloudflare options must be a string or a list of strings")
    if value.result_origin is not None and not isinstance(value.result_origin, str):
        raise ConfigurationError("cloudflare result_origin must be a string")
    return value


def build_link(original_link: str, options: CloudflareOptions) -> LinkRewrite:
    """Compute the optimized URL for ``original_link`` without side effects."""
    option_string = normalize_options(options.options)

    if is_root_relative(original_link):
        path = normalize_path(original_link.strip().split("?", 1)[0].split("#", 1)[0])
        return LinkRewrite(f"{CDN_PATH_PREFIX}{option_string}{path}", rewritten=True)

    parsed = split_absolute_url(original_link)
    if parsed is None:
        return LinkRewrite(original_link, rewritten=False, reason="invalid URL")
    origin, path = parsed

    result_origin = (options.result_origin or "").rstrip("/")
    if not result_origin or result_origin == origin:
        return LinkRewrite(f"{origin}{CDN_PATH_PREFIX}{option_string}{path}", rewritten=True)
    return LinkRewrite(
        f"{result_origin}{CDN_PATH_PREFIX}{option_string}/{original_link}",
        rewritten=True,
    )


def transform(original_link: str, options: Any = None) -> str:
    """Provider entry point: return the rewritten link or the original on failure."""
    result = build_link(original_link, coerce_options(options))
    if not result.rewritten:
        logger.warning("Leaving image link unchanged (%s): %s", result.reason, original_link)
    return result.url
