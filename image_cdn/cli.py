"""Command-line entry point for rewriting image URLs in HTML documents."""

from __future__ import annotations

import argparse
import logging
import re
import sys
import time
from pathlib import Path
from typing import List, Optional, Sequence, Set, Tuple, Union
from urllib.parse import urlparse

import requests

from .config import DEFAULT_PROVIDER, ConfigurationError, RewriteConfig
from .providers import available_providers
from .rewrite import ImageRewriter
from .utils import slugify

logger = logging.getLogger("image_cdn.cli")

FETCH_TIMEOUT = 15


def _is_remote(source: str) -> bool:
    return urlparse(source).scheme in ("http", "https")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Rewrite <img> URLs in HTML documents to point at a CDN image-optimization endpoint.",
    )
    parser.add_argument(
        "inputs",
        nargs="+",
        help="HTML files or http(s) URLs to rewrite",
    )
    parser.add_argument(
        "--provider",
        default=DEFAULT_PROVIDER,
        choices=available_providers(),
        help="Registered provider used to build optimized URLs",
    )
    origin_group = parser.add_mutually_exclusive_group()
    origin_group.add_argument(
        "--origin",
        default=None,
        help="Only rewrite images served from exactly this origin",
    )
    origin_group.add_argument(
        "--origin-pattern",
        default=None,
        help="Only rewrite images whose origin matches this regular expression",
    )
    parser.add_argument(
        "--src-options",
        default=None,
        help="Rewrite src using these provider options (empty string for defaults)",
    )
    parser.add_argument(
        "--result-origin",
        default=None,
        help="Serve optimized images from this origin instead of the image's own",
    )
    parser.add_argument(
        "--srcset",
        nargs=2,
        action="append",
        metavar=("OPTIONS", "DESCRIPTOR"),
        default=None,
        help="Add a srcset candidate, e.g. --srcset w=640 1x (repeatable)",
    )
    parser.add_argument(
        "--sizes",
        action="append",
        default=None,
        help="Add an entry to the sizes attribute (repeatable)",
    )
    parser.add_argument(
        "--style",
        default=None,
        help="CSS declarations to set or append on each rewritten image",
    )
    parser.add_argument(
        "--base-url",
        default=None,
        help="Base URL for resolving relative src values (defaults to the page URL when fetching)",
    )
    parser.add_argument(
        "--output",
        default=None,
        type=Path,
        help="Directory for rewritten HTML files; prints to STDOUT when omitted",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args(argv)


def _provider_options(options: Optional[str], result_origin: Optional[str]) -> dict:
    values = {}
    if options:
        values["options"] = options
    if result_origin:
        values["result_origin"] = result_origin
    return values


def build_config(args: argparse.Namespace, base_url: Optional[str] = None) -> RewriteConfig:
    """Translate parsed arguments into a :class:`RewriteConfig`."""
    origin_validation = args.origin
    if args.origin_pattern:
        try:
            origin_validation = re.compile(args.origin_pattern)
        except re.error as exc:
            raise ConfigurationError(f"Invalid --origin-pattern: {exc}") from exc

    optimize_src_options = None
    if args.src_options is not None:
        optimize_src_options = _provider_options(args.src_options, args.result_origin)

    srcset: Optional[List[Tuple[dict, str]]] = None
    if args.srcset:
        srcset = [
            (_provider_options(options, args.result_origin), descriptor)
            for options, descriptor in args.srcset
        ]

    return RewriteConfig(
        provider=args.provider,
        origin_validation=origin_validation,
        optimize_src_options=optimize_src_options,
        srcset_options_list=srcset,
        sizes_options_list=args.sizes,
        style=args.style,
        base_url=args.base_url or base_url,
    )


def read_source(source: str, session: requests.Session) -> Tuple[Union[str, bytes], Optional[str]]:
    """Return the HTML for ``source`` and the URL relative links resolve against.

    Local files are returned as bytes so BeautifulSoup detects their encoding.
    """
    if _is_remote(source):
        logger.info("Fetching %s", source)
        resp = session.get(source, timeout=FETCH_TIMEOUT)
        resp.raise_for_status()
        return resp.text, resp.url or source
    path = Path(source).expanduser()
    if not path.is_file():
        raise FileNotFoundError(f"Input file does not exist: {path}")
    return path.read_bytes(), None


def output_path_for(source: str, output_dir: Path, taken: Optional[Set[Path]] = None) -> Path:
    """Pick an output file for ``source``, adding a suffix if ``taken`` holds it."""
    if _is_remote(source):
        parsed = urlparse(source)
        name = slugify(f"{parsed.netloc}{parsed.path}", fallback="page")
    else:
        name = slugify(Path(source).stem, fallback="page")
    name = name[:80]
    destination = output_dir / f"{name}.html"
    if taken is None:
        return destination
    counter = 2
    while destination in taken:
        destination = output_dir / f"{name}-{counter}.html"
        counter += 1
    if counter > 2:
        logger.warning("Output name for %s is already used; writing %s", source, destination.name)
    taken.add(destination)
    return destination


def process_source(
    source: str,
    args: argparse.Namespace,
    session: requests.Session,
    written: Optional[Set[Path]] = None,
) -> bool:
    """Rewrite one input and write the result; returns False on failure."""
    try:
        html, base_url = read_source(source, session)
    except (OSError, UnicodeDecodeError, requests.RequestException) as exc:
        logger.error("Skipping %s: %s", source, exc)
        return False

    rewriter = ImageRewriter(build_config(args, base_url))
    start = time.perf_counter()
    rewritten = rewriter.rewrite_html(html)
    elapsed = time.perf_counter() - start
    logger.debug("Rewrote %s in %.3fs", source, elapsed)

    if args.output is None:
        sys.stdout.write(rewritten if rewritten.endswith("\n") else rewritten + "\n")
        sys.stdout.flush()
        return True

    output_dir = Path(args.output).resolve()
    output_dir.mkdir(parents=True, exist_ok=True)
    destination = output_path_for(source, output_dir, written)
    destination.write_text(rewritten, encoding="utf-8")
    logger.info("Saved rewritten HTML to %s", destination)
    return True


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    try:
        # Validate once up front so configuration mistakes fail before any output.
        ImageRewriter(build_config(args))
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    session = requests.Session()
    overall_start = time.perf_counter()
    written: Set[Path] = set()
    results = [process_source(source, args, session, written) for source in args.inputs]
    total_elapsed = time.perf_counter() - overall_start

    successes = sum(results)
    failures = len(results) - successes
    logger.info(
        "Finished in %.2fs (%d/%d succeeded, %d failed)",
        total_elapsed,
        successes,
        len(results),
        failures,
    )
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
