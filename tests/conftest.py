"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import Iterator

import pytest

from image_cdn import providers

IMAGE_URL = "https://example.com/image.jpg"


@pytest.fixture
def image_html() -> str:
    """Return a fragment with a single absolute image."""
    return f'<img src="{IMAGE_URL}">'


@pytest.fixture
def custom_provider() -> Iterator[str]:
    """Register a throwaway provider and remove it after the test."""
    name = "test-prefix"

    def prefix(original_link: str, options: object) -> str:
        return f"https://img.test/{options}?u={original_link}"

    providers.register_provider(name, prefix)
    try:
        yield name
    finally:
        providers.unregister_provider(name)
