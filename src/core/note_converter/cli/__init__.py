from __future__ import annotations

import shutil
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from ..batch import build_coordinator
from ..config import AppConfig, apply_settings, dump_config, load_config
from ..detection import EXTENSION_MAP, ConverterKind, file_extension
from ..errors import NoteConverterError
from ..logging import configure_logging
from ..models import ConversionOptions, ConversionRequest, ItemType
from ..utils import atomic_write_bytes
from ...settings import get_settings

console = Console()

app = typer.Typer(help="Convert documents, web pages and media into a Markdown archive")


def _load_config(path: Path | None) -> AppConfig:
    settings = get_settings()
    config = load_config(path or settings.config_path)
    configure_logging(settings.log_level)
    return apply_settings(config, settings)


def _file_type(path: Path) -> ItemType:
    kind = EXTENSION_MAP.get(file_extension(path.name))
    if kind is ConverterKind.AUDIO:
        return ItemType.AUDIO
    if kind is ConverterKind.VIDEO:
        return ItemType.VIDEO
    return ItemType.FILE


def build_requests(
    files: list[Path],
    urls: list[str],
    parent_urls: list[str],
    youtube: list[str],
    options: ConversionOptions,
) -> list[ConversionRequest]:
    requests: list[ConversionRequest] = []
    for path in files:
        payload = path.read_bytes()
        requests.append(
            ConversionRequest(
                type=_file_type(path),
                content=payload,
                name=path.name,
                options=options,
                size_bytes=len(payload),
            )
        )
    for item_type, values in (
        (ItemType.URL, urls),
        (ItemType.PARENT_URL, parent_urls),
        (ItemType.YOUTUBE, youtube),
    ):
        for url in values:
            requests.append(ConversionRequest(type=item_type, content=url, name=url, options=options))
    return requests


@app.command()
def convert(
    files: list[Path] = typer.Argument(None, exists=True, dir_okay=False, help="Files to convert"),
    url: list[str] = typer.Option([], "--url", help="Web page to convert"),
    parent_url: list[str] = typer.Option([], "--parent-url", help="Site to crawl"),
    youtube: list[str] = typer.Option([], "--youtube", help="YouTube video to convert"),
    api_key: str | None = typer.Option(None, "--api-key", envvar="OPENAI_API_KEY", help="Key for transcription and enhancement"),
    depth: int = typer.Option(1, "--depth", min=0, help="Crawl depth for --parent-url"),
    max_pages: int = typer.Option(10, "--max-pages", min=1, help="Crawl page budget"),
    images: bool = typer.Option(True, "--images/--no-images", help="Include images"),
    meta: bool = typer.Option(True, "--meta/--no-meta", help="Prepend front matter"),
    enhance: bool = typer.Option(False, "--enhance", help="Enrich notes with the configured LLM"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Archive path or directory"),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    cfg = _load_config(config)
    options = ConversionOptions(
        include_images=images,
        include_meta=meta,
        depth=depth,
        max_pages=max_pages,
        api_key=api_key,
        enhance=enhance,
    )
    requests = build_requests(list(files or []), url, parent_url, youtube, options)
    if not requests:
        console.print("[red]Nothing to convert[/red]: pass files, --url, --parent-url or --youtube")
        raise typer.Exit(2)

    coordinator = build_coordinator(cfg)
    try:
        outcome = coordinator.convert_batch(requests)
    except NoteConverterError as exc:
        console.print(f"[red]Conversion failed[/red]: {exc.code} - {exc}")
        raise typer.Exit(1) from exc

    destination = output or Path.cwd()
    if destination.is_dir():
        destination = destination / outcome.filename
    atomic_write_bytes(destination, outcome.buffer)

    table = Table(title="Conversion summary")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Category")
    table.add_column("Result")
    for result in outcome.results:
        status = "[green]ok[/green]" if result.success else f"[red]{result.error}[/red]"
        table.add_row(result.name, result.type, result.category, status)
    console.print(table)
    console.print(f"{outcome.summary.headline()} -> {destination}")
    if outcome.summary.failures and not outcome.summary.successes:
        raise typer.Exit(1)


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    import uvicorn

    from api.app import create_app

    cfg = _load_config(config)
    uvicorn.run(create_app(config=cfg), host=host or cfg.api.host, port=port or cfg.api.port)


@app.command()
def clean(
    older_than: int = typer.Option(
        24,
        "--older-than",
        min=0,
        help="Delete job directories older than the given hours",
    ),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    cfg = _load_config(config)
    storage_dir = cfg.runtime.storage_dir
    if not storage_dir.exists():
        console.print("No job storage directory found.")
        raise typer.Exit()
    threshold = time.time() - older_than * 3600
    removed = 0
    for path in storage_dir.iterdir():
        if path.is_dir() and path.stat().st_mtime < threshold:
            shutil.rmtree(path)
            removed += 1
    console.print(f"Removed {removed} job directories.")


@app.command("show-config")
def show_config(
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    console.print_json(dump_config(_load_config(config)))


if __name__ == "__main__":
    app()
