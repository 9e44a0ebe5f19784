from __future__ import annotations

import json
from pathlib import Path

from core.note_converter.config import apply_settings, dump_config, load_config
from core.settings import Settings

CONFIG_TOML = """
[runtime]
storage_dir = "data/jobs"
enable_local_api = true

[runtime.limits]
max_file_size_mb = 10

[runtime.crawl]
max_pages = 20

[api]
port = 9000
"""


def test_missing_file_yields_defaults(tmp_path: Path):
    config = load_config(tmp_path / "missing.toml")
    assert config.runtime.limits.max_file_size_mb == 50
    assert config.runtime.jobs.retention_hours == 24
    assert config.api.prefix == "/api/v1"
    assert config.runtime.enable_local_api is False


def test_nested_sections_are_loaded(tmp_path: Path):
    path = tmp_path / "config.toml"
    path.write_text(CONFIG_TOML, encoding="utf-8")
    config = load_config(path)
    assert config.runtime.storage_dir == Path("data/jobs")
    assert config.runtime.enable_local_api is True
    assert config.runtime.limits.max_file_size_mb == 10
    assert config.runtime.limits.max_video_size_mb == 500
    assert config.runtime.crawl.max_pages == 20
    assert config.api.port == 9000


def test_settings_override_file_values(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("NC_WORKER_POOL_SIZE", "7")
    settings = Settings(storage_dir=tmp_path / "jobs", enable_local_api=True)
    config = apply_settings(load_config(tmp_path / "missing.toml"), settings)
    assert config.runtime.jobs.worker_pool_size == 7
    assert config.runtime.storage_dir == tmp_path / "jobs"
    assert config.runtime.enable_local_api is True


def test_dump_config_is_json(tmp_path: Path):
    payload = json.loads(dump_config(load_config(tmp_path / "missing.toml")))
    assert payload["runtime"]["storage_dir"] == "jobs"
    assert payload["runtime"]["crawl"]["max_depth"] == 5
    assert payload["api"]["port"] == 8000
