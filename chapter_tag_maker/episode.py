"""End-to-end episode pipeline shared by the CLI and library callers.

An episode is described by a JSON manifest::

    {
      "title": "Poems, episode 1",
      "chapters": [
        {"title": "The Raven", "audio": "raven.mp3", "image": "raven.jpg",
         "url": "https://www.poetryfoundation.org/poems/48860/the-raven"}
      ]
    }

File names are resolved against the input directory. The chapter tree is
assembled from the segment durations first, so a bad manifest never leaves a
half-written episode behind; then the segments are combined into one file
and the tree is written into its ID3 tag.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import json
import logging
import os
import time

from .assembler import ChapterAssembler
from .concat import concatenate
from .duration import DurationResolver, make_probe
from .exceptions import ValidationError
from .id3 import write_chapter_tags
from .models import ChapterDescriptor, ChapterTree
from .storage import FileStorage

__all__ = [
    "ChapterEntry",
    "EpisodeBuilder",
    "EpisodeManifest",
    "EpisodeOptions",
    "EpisodeResult",
    "load_manifest",
]

logger = logging.getLogger(__name__)

DEFAULT_INPUT_DIR = "chapters"
DEFAULT_OUTPUT = "output/episode.mp3"
PROBES = {"sox", "pydub"}
FORMATS = {"mp3"}


@dataclass
class ChapterEntry:
    """One chapter as listed in the manifest."""

    title: str
    audio: str
    image: str
    url: str


@dataclass
class EpisodeManifest:
    title: str
    chapters: List[ChapterEntry] = field(default_factory=list)


def _parse_manifest(data: Any, source: str) -> EpisodeManifest:
    if not isinstance(data, dict):
        raise ValidationError(f"Manifest {source} must be a JSON object")
    entries = data.get("chapters")
    if not isinstance(entries, list) or not entries:
        raise ValidationError(f"No chapters defined in {source}")

    chapters: List[ChapterEntry] = []
    for index, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            raise ValidationError(f"Chapter {index} in {source} must be a JSON object")
        missing = [key for key in ("title", "audio", "image", "url") if not entry.get(key)]
        if missing:
            raise ValidationError(
                f"Chapter {index} in {source} is missing {', '.join(missing)}",
                details={"chapter": index, "missing": missing},
            )
        chapters.append(
            ChapterEntry(
                title=str(entry["title"]),
                audio=str(entry["audio"]),
                image=str(entry["image"]),
                url=str(entry["url"]),
            )
        )
    return EpisodeManifest(title=str(data.get("title", "")), chapters=chapters)


def load_manifest(path: Path) -> EpisodeManifest:
    """Load and validate an episode manifest."""

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Manifest {path} is not valid JSON: {exc}") from exc
    return _parse_manifest(data, str(path))


@dataclass
class EpisodeOptions:
    """Options that control how an episode is built."""

    manifest_path: Path
    input_dir: Path = field(
        default_factory=lambda: Path(os.getenv("CHAPTER_TAGS_INPUT_DIR", DEFAULT_INPUT_DIR))
    )
    output_path: Path = field(
        default_factory=lambda: Path(os.getenv("CHAPTER_TAGS_OUTPUT", DEFAULT_OUTPUT))
    )
    format: str = "mp3"
    bitrate: Optional[str] = "192k"
    probe: str = field(default_factory=lambda: os.getenv("CHAPTER_TAGS_PROBE", "sox"))
    max_workers: int = 1
    concat: bool = True
    episode_title: Optional[str] = None

    def __post_init__(self) -> None:
        self.manifest_path = Path(self.manifest_path)
        self.input_dir = Path(self.input_dir)
        self.output_path = Path(self.output_path)
        self.probe = self.probe.lower()
        if self.probe not in PROBES:
            raise ValueError(f"Unsupported duration probe: {self.probe}")
        if self.format not in FORMATS:
            raise ValueError("format must be 'mp3'")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")


@dataclass
class EpisodeResult:
    """Outcome returned after an episode build."""

    output_path: Path
    tree: ChapterTree
    title: str
    concatenated: bool
    elapsed_seconds: float


class EpisodeBuilder:
    """Combine segments, assemble chapters and tag the episode file."""

    def __init__(
        self,
        resolver: Optional[DurationResolver] = None,
        storage: Optional[FileStorage] = None,
    ) -> None:
        self.resolver = resolver
        self.storage = storage

    # Public API -----------------------------------------------------------------
    def build(self, options: EpisodeOptions) -> EpisodeResult:
        start_time = time.perf_counter()
        logger.debug("Starting episode build with options: %s", options)

        manifest = load_manifest(options.manifest_path)
        title = options.episode_title or manifest.title
        logger.info("Loaded %d chapters from %s", len(manifest.chapters), options.manifest_path)

        descriptors = self.descriptors(manifest, options.input_dir)
        tree = self.assemble(descriptors, options)

        if options.concat:
            concatenate(
                [descriptor.segment_ref for descriptor in descriptors],
                options.output_path,
                output_format=options.format,
                bitrate=options.bitrate,
            )
        elif not options.output_path.exists():
            raise FileNotFoundError(f"Episode file does not exist: {options.output_path}")

        write_chapter_tags(options.output_path, tree, episode_title=title or None)

        elapsed = time.perf_counter() - start_time
        logger.info("Finished episode in %.2fs", elapsed)
        return EpisodeResult(
            output_path=options.output_path,
            tree=tree,
            title=title,
            concatenated=options.concat,
            elapsed_seconds=elapsed,
        )

    def plan(self, options: EpisodeOptions) -> ChapterTree:
        """Load the manifest and assemble its chapters without writing anything."""

        manifest = load_manifest(options.manifest_path)
        return self.assemble(self.descriptors(manifest, options.input_dir), options)

    def assemble(self, descriptors: List[ChapterDescriptor], options: EpisodeOptions) -> ChapterTree:
        """Assemble the chapter tree without touching the episode file."""

        assembler = ChapterAssembler(
            self.resolver or DurationResolver(make_probe(options.probe)),
            self.storage or FileStorage(options.input_dir),
            max_workers=options.max_workers,
        )
        return assembler.assemble(descriptors)

    def descriptors(self, manifest: EpisodeManifest, input_dir: Path) -> List[ChapterDescriptor]:
        return [
            ChapterDescriptor(
                title=entry.title,
                image_ref=entry.image,
                url=entry.url,
                segment_ref=input_dir / entry.audio,
            )
            for entry in manifest.chapters
        ]

    def summary(self, tree: ChapterTree) -> Dict[str, Any]:
        return {
            "toc": list(tree.toc.child_ids),
            "chapters": [
                {
                    "id": chapter.element_id,
                    "title": chapter.title.text,
                    "start_ms": chapter.range.start_ms,
                    "end_ms": chapter.range.end_ms,
                    "url": chapter.url.url,
                }
                for chapter in tree.chapters
            ],
        }
