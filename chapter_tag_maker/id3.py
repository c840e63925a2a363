"""Map a :class:`ChapterTree` onto mutagen ID3v2 frames.

Layout written to the tag::

    CTOC:toc   top level, ordered, children CH1..CHn, TIT2 "Table of Contents"
    CHAP:CH1   start/end time, offsets 0xFFFFFFFF, sub-frames TIT2 APIC WXXX
    ...
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

from mutagen import MutagenError
from mutagen.id3 import (
    APIC,
    CHAP,
    CTOC,
    ID3,
    TIT2,
    WXXX,
    CTOCFlags,
    Encoding,
    ID3NoHeaderError,
)

from .exceptions import TagWriteError, ValidationError
from .models import (
    JPEG_MIME,
    PICTURE_TYPE_COVER_FRONT,
    TIME_UNUSED,
    ChapterNode,
    ChapterRange,
    ChapterTree,
    ImageNode,
    TitleNode,
    TocNode,
    UrlNode,
)

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


def title_frame(node: TitleNode) -> TIT2:
    return TIT2(encoding=Encoding.UTF8, text=[node.text])


def image_frame(node: ImageNode) -> APIC:
    return APIC(
        encoding=Encoding.UTF8,
        mime=node.mime,
        type=node.picture_type,
        desc=node.description,
        data=node.data,
    )


def url_frame(node: UrlNode) -> WXXX:
    return WXXX(encoding=Encoding.UTF8, desc=node.description, url=node.url)


def toc_frame(toc: TocNode) -> CTOC:
    flags = 0
    if toc.is_top_level:
        flags |= CTOCFlags.TOP_LEVEL
    if toc.is_ordered:
        flags |= CTOCFlags.ORDERED
    return CTOC(
        element_id=toc.element_id,
        flags=flags,
        child_element_ids=list(toc.child_ids),
        sub_frames=[title_frame(toc.title)],
    )


def chapter_frame(chapter: ChapterNode) -> CHAP:
    # byte offsets are never used; the time fields are authoritative
    return CHAP(
        element_id=chapter.element_id,
        start_time=chapter.range.start_ms,
        end_time=chapter.range.end_ms,
        start_offset=TIME_UNUSED,
        end_offset=TIME_UNUSED,
        sub_frames=[
            title_frame(chapter.title),
            image_frame(chapter.image),
            url_frame(chapter.url),
        ],
    )


def build_frames(tree: ChapterTree) -> List[Union[CTOC, CHAP]]:
    """Return the CTOC frame followed by one CHAP frame per chapter."""

    frames: List[Union[CTOC, CHAP]] = [toc_frame(tree.toc)]
    frames.extend(chapter_frame(chapter) for chapter in tree.chapters)
    return frames


def _load_tag(path: Path) -> ID3:
    try:
        return ID3(path)
    except ID3NoHeaderError:
        LOGGER.debug("%s has no ID3 header; starting an empty tag", path)
        return ID3()


def write_chapter_tags(
    path: PathLike,
    tree: ChapterTree,
    *,
    episode_title: Optional[str] = None,
) -> Path:
    """Attach the chapter frames of ``tree`` to the ID3 tag of ``path``."""

    output_path = Path(path)
    try:
        tag = _load_tag(output_path)
        if episode_title:
            tag.add(TIT2(encoding=Encoding.UTF8, text=[episode_title]))
        # drop any earlier chapter layout
        tag.delall("CHAP")
        tag.delall("CTOC")
        for frame in build_frames(tree):
            tag.add(frame)
        tag.save(output_path)
    except (MutagenError, OSError) as exc:
        raise TagWriteError(
            f"Failed to write chapter tags to {output_path}: {exc}",
            details={"path": str(output_path)},
        ) from exc
    LOGGER.info("Wrote %d chapter frames to %s", len(tree.chapters), output_path)
    return output_path


def _text(frames) -> str:
    return str(frames[0].text[0]) if frames else ""


def read_chapter_tree(path: PathLike) -> ChapterTree:
    """Read the top level table of contents and its chapters back from ``path``."""

    try:
        tag = ID3(Path(path))
    except ID3NoHeaderError as exc:
        raise ValidationError(f"{path} has no ID3 tag") from exc

    tocs = [frame for frame in tag.getall("CTOC") if frame.flags & CTOCFlags.TOP_LEVEL]
    if not tocs:
        raise ValidationError(f"{path} has no top level table of contents")
    toc_source = tocs[0]

    chapters: List[ChapterNode] = []
    for element_id in toc_source.child_element_ids:
        key = f"CHAP:{element_id}"
        if key not in tag:
            raise ValidationError(f"Table of contents references missing chapter {element_id}")
        chap = tag[key]
        sub_frames = chap.sub_frames
        pictures = sub_frames.getall("APIC")
        links = sub_frames.getall("WXXX")
        chapters.append(
            ChapterNode(
                element_id=chap.element_id,
                range=ChapterRange(start_ms=chap.start_time, end_ms=chap.end_time),
                title=TitleNode(_text(sub_frames.getall("TIT2"))),
                image=ImageNode(
                    data=pictures[0].data if pictures else b"",
                    mime=pictures[0].mime if pictures else JPEG_MIME,
                    picture_type=int(pictures[0].type) if pictures else PICTURE_TYPE_COVER_FRONT,
                ),
                url=UrlNode(url=links[0].url if links else "", description=links[0].desc if links else ""),
            )
        )

    toc = TocNode(
        child_ids=tuple(toc_source.child_element_ids),
        title=TitleNode(_text(toc_source.sub_frames.getall("TIT2"))),
        element_id=toc_source.element_id,
        is_top_level=bool(toc_source.flags & CTOCFlags.TOP_LEVEL),
        is_ordered=bool(toc_source.flags & CTOCFlags.ORDERED),
    )
    return ChapterTree(toc=toc, chapters=tuple(chapters))


__all__ = [
    "build_frames",
    "chapter_frame",
    "read_chapter_tree",
    "toc_frame",
    "write_chapter_tags",
]
