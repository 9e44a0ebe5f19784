from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, TypeVar

from ..constraint import API_PREFIX, DEFAULT_CONFIG_PATH, DEFAULT_STORAGE_DIR


@dataclass(slots=True)
class LimitConfig:
    max_file_size_mb: int = 50
    max_video_size_mb: int = 500
    max_images_per_page: int = 50


@dataclass(slots=True)
class BatchConfig:
    concurrency: int = 5


@dataclass(slots=True)
class JobsConfig:
    worker_pool_size: int = 4
    retention_hours: int = 24
    retention_interval_s: int = 3600


@dataclass(slots=True)
class CrawlConfig:
    max_pages: int = 100
    max_depth: int = 5
    concurrency: int = 5
    user_agent: str = "Mozilla/5.0 (compatible; NoteConverter/0.1; +https://github.com/)"


@dataclass(slots=True)
class RetryConfig:
    max_attempts: int = 3
    backoff_s: float = 1.0
    multiplier: float = 2.0


@dataclass(slots=True)
class TranscriptionConfig:
    endpoint: str = "https://api.openai.com/v1/audio/transcriptions"
    model: str = "whisper-1"
    timeout_s: int = 300
    max_upload_mb: int = 25
    chunk_mb: int = 24
    audio_bitrate_kbps: int = 64


@dataclass(slots=True)
class EnhancerConfig:
    endpoint: str = "https://api.openai.com/v1/chat/completions"
    model: str = "gpt-4o-mini"
    timeout_s: int = 60


@dataclass(slots=True)
class RuntimeConfig:
    storage_dir: Path = DEFAULT_STORAGE_DIR
    log_file: str = "log.jsonl"
    enable_local_api: bool = False
    request_timeout_s: int = 30
    limits: LimitConfig = field(default_factory=LimitConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    jobs: JobsConfig = field(default_factory=JobsConfig)
    crawl: CrawlConfig = field(default_factory=CrawlConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    enhancer: EnhancerConfig = field(default_factory=EnhancerConfig)


@dataclass(slots=True)
class APIConfig:
    host: str = "127.0.0.1"
    port: int = 8000
    prefix: str = API_PREFIX


@dataclass(slots=True)
class AppConfig:
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    api: APIConfig = field(default_factory=APIConfig)


_Section = TypeVar("_Section")

_NESTED_SECTIONS: dict[str, type] = {
    "limits": LimitConfig,
    "batch": BatchConfig,
    "jobs": JobsConfig,
    "crawl": CrawlConfig,
    "retry": RetryConfig,
    "transcription": TranscriptionConfig,
    "enhancer": EnhancerConfig,
}


def _read_toml(path: Path) -> Mapping[str, object]:
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _coerce(value: object, default: object) -> object:
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    if isinstance(default, int):
        return int(value)  # type: ignore[arg-type]
    if isinstance(default, float):
        return float(value)  # type: ignore[arg-type]
    if isinstance(default, Path):
        return Path(str(value))
    return str(value)


def _build_section(cls: type[_Section], data: Mapping[str, object] | None) -> _Section:
    section = cls()
    if not data:
        return section
    for spec in fields(cls):  # type: ignore[arg-type]
        if spec.name not in data:
            continue
        raw = data[spec.name]
        if spec.name in _NESTED_SECTIONS:
            nested = raw if isinstance(raw, Mapping) else None
            setattr(section, spec.name, _build_section(_NESTED_SECTIONS[spec.name], nested))
            continue
        setattr(section, spec.name, _coerce(raw, getattr(section, spec.name)))
    return section


def load_config(path: Path | None = None) -> AppConfig:
    path = path or DEFAULT_CONFIG_PATH
    raw = _read_toml(path)
    runtime_data = raw.get("runtime") if isinstance(raw, Mapping) else None
    api_data = raw.get("api") if isinstance(raw, Mapping) else None
    runtime = _build_section(RuntimeConfig, runtime_data if isinstance(runtime_data, Mapping) else None)
    api = _build_section(APIConfig, api_data if isinstance(api_data, Mapping) else None)
    return AppConfig(runtime=runtime, api=api)


def apply_settings(config: AppConfig, settings: Any) -> AppConfig:
    """Overlay environment-sourced settings on top of the file configuration."""

    if getattr(settings, "enable_local_api", None) is not None:
        config.runtime.enable_local_api = bool(settings.enable_local_api)
    if getattr(settings, "storage_dir", None) is not None:
        config.runtime.storage_dir = Path(settings.storage_dir)
    if getattr(settings, "worker_pool_size", None) is not None:
        config.runtime.jobs.worker_pool_size = int(settings.worker_pool_size)
    return config


def _section_payload(section: object) -> dict[str, object]:
    payload: dict[str, object] = {}
    for spec in fields(section):  # type: ignore[arg-type]
        value = getattr(section, spec.name)
        if spec.name in _NESTED_SECTIONS:
            payload[spec.name] = _section_payload(value)
        elif isinstance(value, Path):
            payload[spec.name] = str(value)
        else:
            payload[spec.name] = value
    return payload


def dump_config(config: AppConfig) -> str:
    payload = {
        "runtime": _section_payload(config.runtime),
        "api": _section_payload(config.api),
    }
    return json.dumps(payload, indent=2)


__all__ = [
    "APIConfig",
    "AppConfig",
    "BatchConfig",
    "CrawlConfig",
    "EnhancerConfig",
    "JobsConfig",
    "LimitConfig",
    "RetryConfig",
    "RuntimeConfig",
    "TranscriptionConfig",
    "apply_settings",
    "dump_config",
    "load_config",
]
