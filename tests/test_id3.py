from __future__ import annotations

from pathlib import Path

import pytest
from mutagen.id3 import ID3, CTOCFlags

from chapter_tag_maker.exceptions import ValidationError
from chapter_tag_maker.id3 import build_frames, read_chapter_tree, write_chapter_tags
from chapter_tag_maker.models import (
    TIME_UNUSED,
    ChapterNode,
    ChapterRange,
    ChapterTree,
    ImageNode,
    TitleNode,
    TocNode,
    UrlNode,
)


def _tree() -> ChapterTree:
    chapters = (
        ChapterNode(
            element_id="CH1",
            range=ChapterRange(1, 5000),
            title=TitleNode("The Walrus and the Carpenter"),
            image=ImageNode(b"\xff\xd8walrus"),
            url=UrlNode("https://www.poetryfoundation.org/poems/43914"),
        ),
        ChapterNode(
            element_id="CH2",
            range=ChapterRange(5001, 8000),
            title=TitleNode("The Raven"),
            image=ImageNode(b"\xff\xd8raven"),
            url=UrlNode("https://www.poetryfoundation.org/poems/48860/the-raven"),
        ),
    )
    return ChapterTree(toc=TocNode(child_ids=("CH1", "CH2")), chapters=chapters)


def _empty_file(tmp_path: Path) -> Path:
    path = tmp_path / "episode.mp3"
    path.write_bytes(b"")
    return path


def test_build_frames_maps_toc_and_chapters():
    toc, first, second = build_frames(_tree())

    assert toc.element_id == "toc"
    assert toc.flags & CTOCFlags.TOP_LEVEL
    assert toc.flags & CTOCFlags.ORDERED
    assert toc.child_element_ids == ["CH1", "CH2"]
    assert toc.sub_frames["TIT2"].text == ["Table of Contents"]

    assert (first.element_id, first.start_time, first.end_time) == ("CH1", 1, 5000)
    assert (second.start_time, second.end_time) == (5001, 8000)
    assert first.start_offset == TIME_UNUSED
    assert first.end_offset == TIME_UNUSED


def test_chapter_sub_frames():
    _, chapter, _ = build_frames(_tree())

    assert chapter.sub_frames["TIT2"].text == ["The Walrus and the Carpenter"]
    picture = chapter.sub_frames.getall("APIC")[0]
    assert picture.mime == "image/jpeg"
    assert picture.type == 3
    assert picture.data == b"\xff\xd8walrus"
    link = chapter.sub_frames.getall("WXXX")[0]
    assert link.desc == "chapter URL"
    assert link.url == "https://www.poetryfoundation.org/poems/43914"


def test_write_and_read_back(tmp_path):
    path = _empty_file(tmp_path)
    tree = _tree()

    write_chapter_tags(path, tree, episode_title="Poems, episode 1")

    tag = ID3(path)
    assert tag["TIT2"].text == ["Poems, episode 1"]
    assert "CTOC:toc" in tag
    assert "CHAP:CH1" in tag and "CHAP:CH2" in tag
    assert read_chapter_tree(path) == tree


def test_write_keeps_existing_frames(tmp_path):
    path = _empty_file(tmp_path)
    write_chapter_tags(path, _tree(), episode_title="First title")

    write_chapter_tags(path, _tree())

    assert ID3(path)["TIT2"].text == ["First title"]


def test_read_without_tag_raises(tmp_path):
    path = _empty_file(tmp_path)

    with pytest.raises(ValidationError):
        read_chapter_tree(path)


def _tree_of(count: int) -> ChapterTree:
    chapters = tuple(
        ChapterNode(
            element_id=f"CH{n}",
            range=ChapterRange((n - 1) * 1000 + 1, n * 1000),
            title=TitleNode(f"Part {n}"),
            image=ImageNode(b"\xff\xd8"),
            url=UrlNode(f"https://example.com/{n}"),
        )
        for n in range(1, count + 1)
    )
    return ChapterTree(toc=TocNode(child_ids=tuple(c.element_id for c in chapters)), chapters=chapters)


def test_retagging_with_fewer_chapters_drops_stale_frames(tmp_path):
    path = _empty_file(tmp_path)
    write_chapter_tags(path, _tree_of(3))

    write_chapter_tags(path, _tree_of(2))

    tag = ID3(path)
    assert sorted(frame.element_id for frame in tag.getall("CHAP")) == ["CH1", "CH2"]
    assert len(tag.getall("CTOC")) == 1
    assert read_chapter_tree(path) == _tree_of(2)
