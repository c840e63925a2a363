"""Command line interface for Chapter Tag Maker."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional

from . import __version__
from .episode import DEFAULT_INPUT_DIR, DEFAULT_OUTPUT, EpisodeBuilder, EpisodeOptions
from .exceptions import ChapterTagError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chapter-tags",
        description=(
            "Combine audio segments into one episode and embed podcast chapter "
            "markers (title, image and link per chapter) in its ID3 tag."
        ),
    )
    parser.add_argument("--manifest", type=Path, required=True, help="Episode manifest (JSON)")
    parser.add_argument(
        "--in-dir",
        dest="input_dir",
        type=Path,
        help=f"Directory holding the chapter audio and images (default: {DEFAULT_INPUT_DIR})",
    )
    parser.add_argument(
        "--out",
        dest="output_path",
        type=Path,
        help=f"Destination episode file (default: {DEFAULT_OUTPUT})",
    )
    parser.add_argument("--title", help="Episode title; overrides the manifest title")
    parser.add_argument("--format", choices=["mp3"], default="mp3", help="Output container format")
    parser.add_argument("--bitrate", default="192k", help="Target bitrate for the combined audio")
    parser.add_argument("--probe", choices=["sox", "pydub"], help="How segment durations are measured")
    parser.add_argument("--jobs", type=int, default=1, help="Probe this many segments in parallel")
    parser.add_argument(
        "--no-concat",
        dest="concat",
        action="store_false",
        help="Tag an existing episode file instead of combining the segments",
    )
    parser.add_argument(
        "--dump",
        action="store_true",
        help="Print the assembled chapters as JSON without writing anything",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only print warnings and errors")
    parser.add_argument("--version", action="version", version=f"chapter-tags {__version__}")
    return parser


def configure_logging(verbose: bool, quiet: bool) -> None:
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def create_options(namespace: argparse.Namespace) -> EpisodeOptions:
    overrides = {}
    if namespace.input_dir is not None:
        overrides["input_dir"] = namespace.input_dir
    if namespace.output_path is not None:
        overrides["output_path"] = namespace.output_path
    if namespace.probe is not None:
        overrides["probe"] = namespace.probe
    return EpisodeOptions(
        manifest_path=namespace.manifest,
        format=namespace.format,
        bitrate=namespace.bitrate,
        max_workers=namespace.jobs,
        concat=namespace.concat,
        episode_title=namespace.title,
        **overrides,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose, args.quiet)
    builder = EpisodeBuilder()
    try:
        options = create_options(args)
        if args.dump:
            tree = builder.plan(options)
            print(json.dumps(builder.summary(tree), indent=2))
            return 0
        result = builder.build(options)
    except ChapterTagError as exc:
        logger.error("%s error: %s", exc.kind, exc)
        return 1
    except (OSError, ValueError) as exc:
        logger.error(str(exc))
        return 1

    print(f"Wrote {len(result.tree.chapters)} chapters to {result.output_path}")
    for chapter in result.tree.chapters:
        print(
            f"  {chapter.element_id}: {chapter.range.start_ms}-{chapter.range.end_ms} ms  {chapter.title.text}"
        )
    print(f"Elapsed: {result.elapsed_seconds:.2f}s")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
