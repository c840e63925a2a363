"""Turn an ordered list of chapters into a chapter metadata tree.

Chapter ranges are laid out back to back: each chapter starts one
millisecond after the previous one ended and ends ``duration_ms`` after the
previous end. The first chapter therefore starts at 1.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Iterator, List, Optional, Sequence
from urllib.parse import urlparse

from .duration import DurationResolver
from .exceptions import ChapterTagError, TimelineOverflowError, ValidationError
from .models import (
    MAX_TIME_MS,
    TIME_UNUSED,
    ChapterDescriptor,
    ChapterNode,
    ChapterRange,
    ChapterTree,
    ImageNode,
    ResolvedChapter,
    TitleNode,
    TocNode,
    UrlNode,
    chapter_element_id,
)
from .storage import FileStorage

__all__ = ["ChapterAssembler", "build_ranges", "validate_descriptors"]

logger = logging.getLogger(__name__)


def build_ranges(durations: Iterable[int]) -> List[ChapterRange]:
    """Fold durations into contiguous chapter ranges."""

    ranges: List[ChapterRange] = []
    prev_end_ms = 0
    for ordinal, duration_ms in enumerate(durations, start=1):
        if duration_ms <= 0:
            raise ValidationError(f"Chapter {ordinal} has a non-positive duration: {duration_ms}")
        end_ms = prev_end_ms + duration_ms
        if end_ms > MAX_TIME_MS:
            raise TimelineOverflowError(
                f"Chapter {ordinal} would end at {end_ms} ms, at or past the reserved value 0x{TIME_UNUSED:X}",
                details={"chapter": ordinal, "end_ms": end_ms},
            )
        ranges.append(ChapterRange(start_ms=prev_end_ms + 1, end_ms=end_ms))
        prev_end_ms = end_ms
    return ranges


def _is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def validate_descriptors(descriptors: Sequence[ChapterDescriptor]) -> None:
    if not descriptors:
        raise ValidationError("At least one chapter is required")
    for ordinal, descriptor in enumerate(descriptors, start=1):
        title = descriptor.title if isinstance(descriptor.title, str) else ""
        if not title.strip():
            error = ValidationError("Chapter title is empty")
        elif not isinstance(descriptor.url, str) or not _is_valid_url(descriptor.url):
            error = ValidationError(f"Invalid chapter URL: {descriptor.url!r}")
        else:
            continue
        error.attach_chapter(ordinal, title)
        raise error


class ChapterAssembler:
    """Resolve durations and images, then build the :class:`ChapterTree`."""

    def __init__(
        self,
        resolver: Optional[DurationResolver] = None,
        storage: Optional[FileStorage] = None,
        *,
        max_workers: int = 1,
    ) -> None:
        self.resolver = resolver or DurationResolver()
        self.storage = storage or FileStorage()
        self.max_workers = max_workers

    # Public API -----------------------------------------------------------------
    def assemble(self, descriptors: Sequence[ChapterDescriptor]) -> ChapterTree:
        chapter_list = list(descriptors)
        validate_descriptors(chapter_list)
        logger.debug("Assembling %d chapters", len(chapter_list))
        resolved = self.resolve(chapter_list)
        return self.assemble_resolved(resolved)

    def resolve(self, descriptors: Sequence[ChapterDescriptor]) -> List[ResolvedChapter]:
        """Annotate each descriptor with the duration of its segment."""

        if self.max_workers > 1 and len(descriptors) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [
                    executor.submit(self.resolver.resolve, descriptor.segment_ref)
                    for descriptor in descriptors
                ]
                durations = []
                for ordinal, (descriptor, future) in enumerate(zip(descriptors, futures), start=1):
                    with _chapter_context(ordinal, descriptor):
                        durations.append(future.result())
        else:
            durations = []
            for ordinal, descriptor in enumerate(descriptors, start=1):
                with _chapter_context(ordinal, descriptor):
                    durations.append(self.resolver.resolve(descriptor.segment_ref))

        return [
            ResolvedChapter(descriptor=descriptor, duration_ms=duration_ms)
            for descriptor, duration_ms in zip(descriptors, durations)
        ]

    def assemble_resolved(self, resolved: Sequence[ResolvedChapter]) -> ChapterTree:
        """Build the tree from chapters whose durations are already known."""

        validate_descriptors([item.descriptor for item in resolved])
        ranges = build_ranges(item.duration_ms for item in resolved)
        chapters: List[ChapterNode] = []
        for ordinal, (item, chapter_range) in enumerate(zip(resolved, ranges), start=1):
            with _chapter_context(ordinal, item.descriptor):
                chapters.append(self._build_chapter(ordinal, item.descriptor, chapter_range))
            logger.debug(
                "%s %r: %d-%d ms",
                chapters[-1].element_id,
                item.title,
                chapter_range.start_ms,
                chapter_range.end_ms,
            )

        toc = TocNode(child_ids=tuple(chapter.element_id for chapter in chapters))
        tree = ChapterTree(toc=toc, chapters=tuple(chapters))
        logger.info("Assembled %d chapters spanning %d ms", len(chapters), tree.total_ms)
        return tree

    # Node construction -----------------------------------------------------------
    def _build_chapter(
        self,
        ordinal: int,
        descriptor: ChapterDescriptor,
        chapter_range: ChapterRange,
    ) -> ChapterNode:
        return ChapterNode(
            element_id=chapter_element_id(ordinal),
            range=chapter_range,
            title=TitleNode(descriptor.title),
            image=ImageNode(data=self.storage.read_bytes(descriptor.image_ref)),
            url=UrlNode(descriptor.url),
        )


@contextmanager
def _chapter_context(ordinal: int, descriptor: ChapterDescriptor) -> Iterator[None]:
    """Tag any chapter error raised inside the block with the chapter identity."""

    try:
        yield
    except ChapterTagError as exc:
        exc.attach_chapter(ordinal, descriptor.title)
        logger.debug("Chapter %d failed with %s error", ordinal, exc.kind)
        raise
