"""Command-line helper for generating a quote card portrait.

This utility mirrors the web workflow:

1. Validate the name / quote pair the card will carry.
2. Build the studio portrait prompt and run the provider chain
   (primary -> fallbacks -> public image URL).
3. Optionally write the portrait and its metadata to an output directory.

Example usage::

    python portrait_workflow.py --name "Ada Lovelace" --quote "That brain of mine..." --output-dir out/
    python portrait_workflow.py --prompt "a lighthouse at dusk, oil painting"
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict

from quotecard.config import get_settings
from quotecard.schemas import GenerationRequest, PortraitResult, PosterContent
from quotecard.services.orchestrator import build_orchestrator
from quotecard.services.poster import build_portrait_prompt, validate_poster_content

_EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg", "image/webp": "webp", "image/gif": "gif"}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a quote card portrait")
    subject = parser.add_mutually_exclusive_group(required=True)
    subject.add_argument("--name", help="Person to portray; builds the studio prompt")
    subject.add_argument("--prompt", help="Explicit image prompt")
    parser.add_argument("--quote", default="", help="Quote shown on the card (validated only)")
    parser.add_argument(
        "--output-dir",
        type=Path,
        help="Directory to write the portrait image (or URL) and metadata",
    )
    parser.add_argument("--verbose", action="store_true", help="Log provider chain decisions")
    return parser.parse_args(argv)


def export_outputs(output_dir: Path, outcome: PortraitResult, prompt: str) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    result = outcome.result
    if result.kind == "base64":
        ext = _EXTENSIONS.get(result.media_type, "png")
        target = output_dir / f"portrait.{ext}"
        target.write_bytes(result.data)
    else:
        target = output_dir / "portrait_url.txt"
        target.write_text(result.url + "\n", encoding="utf-8")

    metadata: Dict[str, Any] = {
        "provider": outcome.provider,
        "state": outcome.state,
        "kind": result.kind,
        "media_type": result.media_type or None,
        "prompt": prompt,
        "attempts": [{"provider": a.provider, "error": a.error} for a in outcome.attempts],
    }
    (output_dir / "portrait_metadata.json").write_text(
        json.dumps(metadata, ensure_ascii=False, indent=2), encoding="utf-8"
    )
    return target


async def run(args: argparse.Namespace) -> PortraitResult:
    settings = get_settings()
    prompt = args.prompt or build_portrait_prompt(args.name)
    orchestrator = build_orchestrator(settings)
    return await orchestrator.generate(GenerationRequest(prompt=prompt))


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.name:
        _ok, errors = validate_poster_content(PosterContent(name=args.name, quote=args.quote))
        if not args.quote:
            errors.pop("quote", None)
        if errors:
            raise SystemExit("；".join(errors.values()))

    outcome = asyncio.run(run(args))
    prompt = args.prompt or build_portrait_prompt(args.name)

    print("=== 肖像生成 ===")
    print(f"provider: {outcome.provider} ({outcome.state})")
    for attempt in outcome.attempts:
        print(f"  skipped {attempt.provider}: {attempt.error}")
    if outcome.result.kind == "url":
        print(outcome.result.url)
    else:
        print(f"{outcome.result.media_type}, {len(outcome.result.data)} bytes")

    if args.output_dir:
        target = export_outputs(args.output_dir, outcome, prompt)
        print(f"\n已将生成结果保存至：{target.resolve()}")


if __name__ == "__main__":
    main()
