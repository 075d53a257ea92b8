"""Terminal front end for the Cat Generator.

Runs the whole flow against a running server and prints the result, with the
backstory streamed to stdout as it arrives::

    catgen-client --url http://127.0.0.1:3000 --save-image whiskers.png
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

import httpx

from catgen.client.orchestrator import (
    STATE_CHANGED,
    TEXT_RECEIVED,
    CatProfile,
    PageOrchestrator,
    PageState,
)
from catgen.core.config import config

logger = logging.getLogger(__name__)

_STEP_LABELS = {
    PageState.IMAGE_LOADING: "Generating image...",
    PageState.NAME_LOADING: "Choosing a name...",
    PageState.PERSONALITY_LOADING: "Reading personality...",
    PageState.ATTRIBUTES_LOADING: "Rolling attributes...",
    PageState.BACKSTORY_STREAMING: "Backstory:",
    PageState.TIMELINE_LOADING: "\nBuilding timeline...",
}


def _print_listener(kind: str, value: Any) -> None:
    if kind == TEXT_RECEIVED:
        sys.stdout.write(value)
        sys.stdout.flush()
    elif kind == STATE_CHANGED and value in _STEP_LABELS:
        print(_STEP_LABELS[value])


def format_profile(profile: CatProfile) -> str:
    """Render the non-streamed parts of *profile* as plain text."""
    lines = [f"Name: {profile.name}"]
    if profile.personality:
        p = profile.personality
        lines.append(f"Personality: {p.code} ({p.title})" if p.title else f"Personality: {p.code}")
        if p.description:
            lines.append(f"  {p.description}")
    if profile.attributes:
        for attr, score in profile.attributes.model_dump().items():
            lines.append(f"  {attr.upper()[:3]} {score:>2}")
    if profile.timeline:
        lines.append("Timeline:")
        lines.extend(f"  {event.age}: {event.description}" for event in profile.timeline)
    for notice in profile.notices:
        lines.append(f"Notice: {notice}")
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catgen-client",
        description="Generate a random cat with a name, personality and backstory.",
    )
    parser.add_argument("--url", default=config.client_base_url, help="Cat Generator server URL")
    parser.add_argument("--save-image", type=Path, help="Write the portrait PNG to this path")
    parser.add_argument(
        "--timeout", type=float, default=120.0, help="Per-request timeout in seconds"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def run(page: PageOrchestrator, save_image: Path | None = None) -> int:
    """Drive *page* through one complete cat.  Returns a process exit code."""
    if not page.new_cat():
        print(f"Could not generate an image: {page.error}", file=sys.stderr)
        return 1
    if save_image is not None:
        save_image.write_bytes(page.image or b"")
        print(f"Saved portrait to {save_image}")

    page.request_name()
    if page.error:
        print(f"Name suggestion failed ({page.error}), using {page.profile.name}.")

    ok = page.request_story()
    print()
    print(format_profile(page.profile))
    if not ok:
        print(f"Stopped during {page.state.value}: {page.error}", file=sys.stderr)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``catgen-client`` console script."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    with httpx.Client(base_url=args.url, timeout=args.timeout) as http:
        page = PageOrchestrator(http, listener=_print_listener)
        return run(page, args.save_image)


if __name__ == "__main__":
    sys.exit(main())
