"""Rewrite ``<img>`` attributes in a BeautifulSoup tree to CDN-optimized URLs."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Mapping, Optional, Union

from bs4 import BeautifulSoup, Tag

from .config import (
    IMAGE_TAGS,
    OriginValidation,
    RewriteConfig,
    check_origin_validation,
)
from .models import AttributeMutations
from .providers import Provider, resolve_provider
from .utils import resolve_link, url_origin

logger = logging.getLogger("image_cdn")


def build_origin_validator(origin_validation: OriginValidation) -> Callable[[str], bool]:
    """Compile the configured origin validation into a predicate."""
    check_origin_validation(origin_validation)
    if origin_validation is None:
        return lambda origin: True
    if isinstance(origin_validation, str):
        return lambda origin: origin == origin_validation
    if isinstance(origin_validation, re.Pattern):
        return lambda origin: origin_validation.search(origin) is not None
    return lambda origin: bool(origin_validation(origin))


def _attribute_text(value: Any) -> Optional[str]:
    # Multi-valued attributes come back from BeautifulSoup as lists.
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return " ".join(str(item) for item in value)
    return str(value)


class ImageRewriter:
    """Apply a :class:`RewriteConfig` to image elements.

    The configuration is validated once here, so unknown providers or an
    unsupported ``origin_validation`` fail before any element is touched.
    """

    def __init__(self, config: RewriteConfig) -> None:
        self.config = config
        self._provider = resolve_provider(config.provider)
        self._validate_origin = build_origin_validator(config.origin_validation)
        self._check_provider_options()

    def _check_provider_options(self) -> None:
        if not isinstance(self._provider, Provider) or self._provider.coerce_options is None:
            return
        coerce = self._provider.coerce_options
        if self.config.optimize_src_options is not None:
            coerce(self.config.optimize_src_options)
        for options, _descriptor in self.config.srcset_options_list or ():
            coerce(options)

    def plan_mutations(self, attrs: Mapping[str, Any]) -> Optional[AttributeMutations]:
        """Return the attribute changes for one image, or None when it is skipped."""
        config = self.config
        src = _attribute_text(attrs.get("src"))
        if not src or not src.strip():
            return None

        origin = url_origin(src, config.base_url)
        if origin is None:
            logger.warning("Invalid URL: %s", src)
            return None
        if not self._validate_origin(origin):
            logger.debug("Skipping %s: origin %s failed validation", src, origin)
            return None

        link = resolve_link(src, config.base_url)
        mutations = AttributeMutations()

        if config.optimize_src_options is not None:
            mutations.src = self._provider(link, config.optimize_src_options)

        if config.srcset_options_list is not None:
            candidates = [
                f"{self._provider(link, options)} {descriptor}".rstrip()
                for options, descriptor in config.srcset_options_list
            ]
            mutations.srcset = ", ".join(candidates)

        sizes = config.sizes_options_list
        if sizes is not None:
            mutations.sizes = sizes if isinstance(sizes, str) else ", ".join(sizes)

        if config.style:
            existing = _attribute_text(attrs.get("style"))
            mutations.style = config.style if existing is None else f"{existing} {config.style}"

        return mutations

    def rewrite_element(self, element: Tag) -> bool:
        """Rewrite one element in place; returns True when anything changed."""
        if element.name not in IMAGE_TAGS:
            return False
        mutations = self.plan_mutations(element.attrs)
        if not mutations:
            return False
        for name, value in mutations.items():
            element[name] = value
        return True

    def rewrite_tree(self, soup: BeautifulSoup) -> int:
        """Rewrite every image element in ``soup`` and return how many changed."""
        rewritten = 0
        for element in soup.find_all(list(IMAGE_TAGS)):
            if self.rewrite_element(element):
                rewritten += 1
        logger.debug("Rewrote %d image element(s)", rewritten)
        return rewritten

    def rewrite_html(self, html: Union[str, bytes]) -> str:
        """Parse ``html``, rewrite its images, and serialize it back.

        Bytes are decoded by BeautifulSoup, which honours a declared charset.
        """
        soup = BeautifulSoup(html, "html.parser")
        self.rewrite_tree(soup)
        return soup.decode()

    __call__ = rewrite_tree


def rewrite_html(html: Union[str, bytes], config: RewriteConfig) -> str:
    """Convenience wrapper around :meth:`ImageRewriter.rewrite_html`."""
    return ImageRewriter(config).rewrite_html(html)
