from __future__ import annotations

import zipfile
from pathlib import Path

from typer.testing import CliRunner

from core.note_converter.cli import app, build_requests
from core.note_converter.models import ConversionOptions, ItemType

runner = CliRunner()


def test_build_requests_infers_item_types(tmp_path: Path):
    song = tmp_path / "song.mp3"
    song.write_bytes(b"ID3")
    notes = tmp_path / "notes.txt"
    notes.write_text("hi", encoding="utf-8")
    requests = build_requests(
        [song, notes], ["https://example.com"], ["example.org"], [], ConversionOptions()
    )
    assert [request.type for request in requests] == [
        ItemType.AUDIO,
        ItemType.FILE,
        ItemType.URL,
        ItemType.PARENT_URL,
    ]
    assert requests[1].size_bytes == 2


def test_convert_writes_archive(tmp_path: Path):
    notes = tmp_path / "notes.txt"
    notes.write_text("hello from the cli", encoding="utf-8")
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    result = runner.invoke(
        app,
        ["convert", str(notes), "--output", str(out_dir), "--config", str(tmp_path / "none.toml")],
    )
    assert result.exit_code == 0, result.output
    archives = list(out_dir.glob("conversion_*.zip"))
    assert len(archives) == 1
    with zipfile.ZipFile(archives[0]) as archive:
        assert "documents/notes.md" in archive.namelist()


def test_convert_without_inputs_exits(tmp_path: Path):
    result = runner.invoke(app, ["convert", "--config", str(tmp_path / "none.toml")])
    assert result.exit_code == 2


def test_show_config(tmp_path: Path):
    result = runner.invoke(app, ["show-config", "--config", str(tmp_path / "none.toml")])
    assert result.exit_code == 0
    assert '"prefix": "/api/v1"' in result.output
