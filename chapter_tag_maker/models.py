"""Chapter metadata model.

The assembler produces a two level tree: one table-of-contents node listing
the element ids of the chapter nodes, and one chapter node per input segment
carrying its title, image and URL sub-nodes. Nothing in here knows about a
particular tag library; :mod:`chapter_tag_maker.id3` maps the tree to frames.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Tuple

from .exceptions import TimelineOverflowError, ValidationError

# ID3v2 chapter addendum: a time of 0xFFFFFFFF means "ignore this field and
# use the byte offsets instead".
TIME_UNUSED = 0xFFFFFFFF
MAX_TIME_MS = TIME_UNUSED - 1

TOC_ELEMENT_ID = "toc"
TOC_TITLE = "Table of Contents"
CHAPTER_URL_DESCRIPTION = "chapter URL"
JPEG_MIME = "image/jpeg"
PICTURE_TYPE_COVER_FRONT = 3


def chapter_element_id(ordinal: int) -> str:
    """Return the element id for the 1-based chapter ``ordinal``."""

    if ordinal < 1:
        raise ValidationError(f"Chapter ordinals start at 1, got {ordinal}")
    return f"CH{ordinal}"


@dataclass(frozen=True)
class ChapterDescriptor:
    """What the caller knows about a chapter before anything is resolved."""

    title: str
    image_ref: Any
    url: str
    segment_ref: Any


@dataclass(frozen=True)
class ResolvedChapter:
    """A descriptor annotated with the duration of its audio segment."""

    descriptor: ChapterDescriptor
    duration_ms: int

    @property
    def title(self) -> str:
        return self.descriptor.title


@dataclass(frozen=True)
class ChapterRange:
    """Millisecond time range of a chapter within the combined audio."""

    start_ms: int
    end_ms: int

    def __post_init__(self) -> None:
        if self.start_ms < 0 or self.end_ms < 0:
            raise ValidationError(f"Chapter times must be unsigned: {self.start_ms}-{self.end_ms}")
        if self.end_ms < self.start_ms:
            raise ValidationError(f"Chapter ends before it starts: {self.start_ms}-{self.end_ms}")
        if self.start_ms > MAX_TIME_MS or self.end_ms > MAX_TIME_MS:
            raise TimelineOverflowError(
                f"Chapter time {self.end_ms} ms reaches the reserved value 0x{TIME_UNUSED:X}",
                details={"start_ms": self.start_ms, "end_ms": self.end_ms},
            )

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms + 1


@dataclass(frozen=True)
class TitleNode:
    text: str


@dataclass(frozen=True)
class ImageNode:
    data: bytes = field(repr=False)
    mime: str = JPEG_MIME
    picture_type: int = PICTURE_TYPE_COVER_FRONT
    description: str = ""


@dataclass(frozen=True)
class UrlNode:
    url: str
    description: str = CHAPTER_URL_DESCRIPTION


@dataclass(frozen=True)
class ChapterNode:
    """A single chapter entry referenced from the table of contents."""

    element_id: str
    range: ChapterRange
    title: TitleNode
    image: ImageNode
    url: UrlNode


@dataclass(frozen=True)
class TocNode:
    """The top level, ordered table of contents."""

    child_ids: Tuple[str, ...]
    title: TitleNode = TitleNode(TOC_TITLE)
    element_id: str = TOC_ELEMENT_ID
    is_top_level: bool = True
    is_ordered: bool = True

    def __post_init__(self) -> None:
        if not self.child_ids:
            raise ValidationError("Table of contents must list at least one chapter")
        if len(set(self.child_ids)) != len(self.child_ids):
            raise ValidationError(f"Duplicate chapter element ids: {list(self.child_ids)}")


@dataclass(frozen=True)
class ChapterTree:
    """Table of contents plus its chapters, in playback order."""

    toc: TocNode
    chapters: Tuple[ChapterNode, ...]

    def __post_init__(self) -> None:
        element_ids = tuple(chapter.element_id for chapter in self.chapters)
        if element_ids != self.toc.child_ids:
            raise ValidationError(
                "Table of contents does not match chapter ids",
                details={"toc": list(self.toc.child_ids), "chapters": list(element_ids)},
            )
        previous_end = 0
        for chapter in self.chapters:
            if chapter.range.start_ms <= previous_end:
                raise ValidationError(
                    f"Chapter {chapter.element_id} overlaps the previous chapter",
                    details={"start_ms": chapter.range.start_ms, "previous_end_ms": previous_end},
                )
            previous_end = chapter.range.end_ms

    @property
    def ranges(self) -> Tuple[ChapterRange, ...]:
        return tuple(chapter.range for chapter in self.chapters)

    @property
    def total_ms(self) -> int:
        return self.chapters[-1].range.end_ms if self.chapters else 0


__all__ = [
    "CHAPTER_URL_DESCRIPTION",
    "ChapterDescriptor",
    "ChapterNode",
    "ChapterRange",
    "ChapterTree",
    "ImageNode",
    "JPEG_MIME",
    "MAX_TIME_MS",
    "PICTURE_TYPE_COVER_FRONT",
    "ResolvedChapter",
    "TIME_UNUSED",
    "TOC_ELEMENT_ID",
    "TOC_TITLE",
    "TitleNode",
    "TocNode",
    "UrlNode",
    "chapter_element_id",
]
