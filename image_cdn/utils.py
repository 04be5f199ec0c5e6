"""Utility helpers for URL parsing and option normalization."""

from __future__ import annotations

import re
from typing import Optional, Tuple
from urllib.parse import SplitResult, quote, urljoin, urlsplit

from .models import OptionValue

DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443, "ftp": 21}
DEFAULT_FORMAT_OPTION = "f=auto"
FORMAT_OPTION_PATTERN = re.compile(r"(?:^|,)\s*(?:f|format)\s*=")
SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
PATH_SAFE_CHARACTERS = "/%:@!$&'()*+,;=~"
DOT_SEGMENTS = {".", "%2e"}
DOUBLE_DOT_SEGMENTS = {"..", ".%2e", "%2e.", "%2e%2e"}


def _split(link: str) -> SplitResult:
    parts = urlsplit(link.strip())
    # Accessing .port validates it and raises ValueError when out of range.
    parts.port
    return parts


def is_root_relative(link: str) -> bool:
    """Return True for path-absolute references such as ``/images/a.jpg``."""
    stripped = link.strip()
    return stripped.startswith("/") and not stripped.startswith("//")


def _is_dot(segment: str) -> bool:
    return segment.lower() in DOT_SEGMENTS


def _is_double_dot(segment: str) -> bool:
    return segment.lower() in DOUBLE_DOT_SEGMENTS


def normalize_path(path: str) -> str:
    """Resolve dot segments and percent-encode ``path`` like a URL parser would."""
    segments = (path or "/").split("/")[1:]
    resolved = []
    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        if _is_double_dot(segment):
            if resolved:
                resolved.pop()
            if last:
                resolved.append("")
        elif _is_dot(segment):
            if last:
                resolved.append("")
        else:
            resolved.append(segment)
    return quote("/" + "/".join(resolved), safe=PATH_SAFE_CHARACTERS)


def format_origin(parts: SplitResult) -> str:
    """Serialize scheme, host and non-default port the way browsers do."""
    scheme = parts.scheme.lower()
    host = parts.hostname or ""
    if not host.isascii():
        host = host.encode("idna").decode("ascii")
    if ":" in host:
        host = f"[{host}]"
    port = parts.port
    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


def split_absolute_url(link: str) -> Optional[Tuple[str, str]]:
    """Return ``(origin, path)`` for an absolute URL, or None if it is not one."""
    try:
        parts = _split(link)
        if not parts.scheme or not parts.hostname:
            return None
        # Invalid internationalized hosts raise UnicodeError, a ValueError.
        origin = format_origin(parts)
    except ValueError:
        return None
    return origin, normalize_path(parts.path)


def url_origin(link: str, base_url: Optional[str] = None) -> Optional[str]:
    """Resolve ``link`` against ``base_url`` when it has no scheme and return its origin."""
    target = link
    try:
        if base_url and not urlsplit(link.strip()).scheme:
            target = urljoin(base_url, link.strip())
    except ValueError:
        return None
    parsed = split_absolute_url(target)
    if parsed is None:
        return None
    return parsed[0]


def root_relative_reference(link: str, base_url: str) -> str:
    """Resolve a relative reference to a path-absolute one using ``base_url``."""
    parts = urlsplit(urljoin(base_url, link.strip()))
    reference = parts.path or "/"
    if parts.query:
        reference += "?" + parts.query
    return reference


def resolve_link(link: str, base_url: Optional[str] = None) -> str:
    """Return the form of ``link`` handed to providers.

    Absolute URLs pass through untouched. Without a base every link passes
    through. With a base, protocol-relative links become absolute and other
    relative references become path-absolute so rewrites stay host-less.
    """
    stripped = link.strip()
    if not base_url or urlsplit(stripped).scheme:
        return link
    if stripped.startswith("//"):
        return urljoin(base_url, stripped)
    return root_relative_reference(stripped, base_url)


def join_options(options: Optional[OptionValue]) -> str:
    """Join option fragments with commas, keeping their order."""
    if options is None:
        return ""
    if isinstance(options, str):
        return options
    return ",".join(str(fragment) for fragment in options)


def normalize_options(options: Optional[OptionValue]) -> str:
    """Build the option path segment, defaulting the output format to auto."""
    option_string = join_options(options).strip()
    if not option_string:
        return DEFAULT_FORMAT_OPTION
    if FORMAT_OPTION_PATTERN.search(option_string):
        return option_string
    return f"{DEFAULT_FORMAT_OPTION},{option_string}"


def slugify(value: str, fallback: str = "page") -> str:
    """Generate a filesystem-friendly slug using ASCII characters only."""
    normalized = value.encode("ascii", "ignore").decode("ascii")
    normalized = normalized.lower()
    normalized = SLUG_PATTERN.sub("-", normalized).strip("-")
    return normalized or fallback
