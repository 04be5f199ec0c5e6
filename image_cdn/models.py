"""Data models shared by the providers and the rewrite policy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Sequence, Tuple, Union

OptionValue = Union[str, Sequence[str]]


@dataclass(frozen=True)
class CloudflareOptions:
    """Options accepted by the reference ``cloudflare`` provider.

    ``options`` may be a single option string (``"f=auto,w=320,q=80"``) or a
    sequence of fragments joined with ``,`` (``["f=auto", "w=320", "q=80"]``).
    ``result_origin`` moves the rewritten URL onto another host.
    """

    options: Optional[OptionValue] = None
    result_origin: Optional[str] = None


@dataclass(frozen=True)
class LinkRewrite:
    """Outcome of rewriting one link."""

    url: str
    rewritten: bool
    reason: Optional[str] = None


@dataclass
class AttributeMutations:
    """New attribute values computed for a single image element."""

    src: Optional[str] = None
    srcset: Optional[str] = None
    sizes: Optional[str] = None
    style: Optional[str] = None

    def items(self) -> Iterator[Tuple[str, str]]:
        for name in ("src", "srcset", "sizes", "style"):
            value = getattr(self, name)
            if value is not None:
                yield name, value

    def as_dict(self) -> Dict[str, str]:
        return dict(self.items())

    def __bool__(self) -> bool:
        return any(True for _ in self.items())
