from __future__ import annotations

import json
from pathlib import Path

import pytest

from chapter_tag_maker import cli
from chapter_tag_maker.duration import LENGTH_FIELD, DurationResolver
from chapter_tag_maker.episode import EpisodeBuilder
from chapter_tag_maker.id3 import read_chapter_tree


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch) -> Path:
    input_dir = tmp_path / "chapters"
    input_dir.mkdir()
    (input_dir / "intro.jpg").write_bytes(b"\xff\xd8intro")
    (input_dir / "outro.jpg").write_bytes(b"\xff\xd8outro")
    manifest = {
        "title": "Pilot",
        "chapters": [
            {"title": "Intro", "audio": "intro.mp3", "image": "intro.jpg", "url": "https://example.com/intro"},
            {"title": "Outro", "audio": "outro.mp3", "image": "outro.jpg", "url": "https://example.com/outro"},
        ],
    }
    (tmp_path / "episode.json").write_text(json.dumps(manifest), encoding="utf-8")

    resolver = DurationResolver(lambda path: {LENGTH_FIELD: 90.5 if Path(path).stem == "intro" else 30.0})
    monkeypatch.setattr(cli, "EpisodeBuilder", lambda: EpisodeBuilder(resolver=resolver))
    return tmp_path


def _args(workspace: Path, *extra: str) -> list:
    return [
        "--manifest",
        str(workspace / "episode.json"),
        "--in-dir",
        str(workspace / "chapters"),
        "--out",
        str(workspace / "episode.mp3"),
        *extra,
    ]


def test_dump_prints_chapters(workspace, capsys):
    assert cli.main(_args(workspace, "--dump", "-q")) == 0

    summary = json.loads(capsys.readouterr().out)
    assert summary["toc"] == ["CH1", "CH2"]
    assert [(c["start_ms"], c["end_ms"]) for c in summary["chapters"]] == [(1, 90000), (90001, 120000)]
    assert not (workspace / "episode.mp3").exists()


def test_tags_existing_episode(workspace, capsys):
    (workspace / "episode.mp3").write_bytes(b"")

    assert cli.main(_args(workspace, "--no-concat", "--title", "Pilot episode")) == 0

    out = capsys.readouterr().out
    assert "Wrote 2 chapters" in out
    assert "CH2: 90001-120000 ms  Outro" in out
    assert read_chapter_tree(workspace / "episode.mp3").chapters[0].title.text == "Intro"


def test_chapter_errors_exit_with_status_one(workspace, caplog):
    (workspace / "chapters" / "outro.jpg").unlink()

    assert cli.main(_args(workspace, "--dump")) == 1
    assert "storage error: chapter 2 'Outro'" in caplog.text


def test_missing_manifest_exits_with_status_one(tmp_path):
    assert cli.main(["--manifest", str(tmp_path / "missing.json")]) == 1


def test_create_options_keeps_defaults_when_flags_absent(tmp_path):
    args = cli.build_parser().parse_args(["--manifest", str(tmp_path / "episode.json"), "--probe", "pydub"])

    options = cli.create_options(args)

    assert options.probe == "pydub"
    assert options.concat is True
    assert options.max_workers == 1
