from __future__ import annotations

import io
import threading
import time
import zipfile
from datetime import datetime, timezone
from threading import Event

import pytest

from conftest import StaticConverter, build_registry
from core.note_converter.batch import BatchCoordinator
from core.note_converter.core import ConversionService
from core.note_converter.errors import JobCanceledError, ValidationError
from core.note_converter.models import ConversionOptions, ConversionRequest, ConversionResult, ItemType
from core.note_converter.utils import archive_filename

GENERATED_AT = datetime(2024, 5, 1, 12, 30, 0, 250000, tzinfo=timezone.utc)


def txt(name: str, text: str = "content") -> ConversionRequest:
    return ConversionRequest(ItemType.FILE, text.encode("utf-8"), name)


def read_zip(buffer: bytes) -> dict[str, str]:
    with zipfile.ZipFile(io.BytesIO(buffer)) as archive:
        return {name: archive.read(name).decode("utf-8") for name in archive.namelist()}


class CrashingService:
    def convert(self, request, cancellation=None, run_logger=None):
        if request.name == "crash.txt":
            raise RuntimeError("worker died")
        return ConversionResult(
            success=True, content="ok\n", name=request.name, type="txt", category="documents"
        )


def test_batch_with_malformed_docx(coordinator):
    requests = [
        txt("item1.txt"),
        ConversionRequest(ItemType.FILE, b"garbage", "item2.docx"),
        txt("item3.txt"),
    ]
    outcome = coordinator.convert_batch(requests, generated_at=GENERATED_AT)
    files = read_zip(outcome.buffer)
    assert "documents/item1.md" in files
    assert "documents/item3.md" in files
    assert "errors/item2_error.md" in files
    assert "2 successful, 1 failed" in files["summary.md"]
    assert outcome.summary.successes == 2
    assert outcome.summary.failures == 1
    assert outcome.filename == archive_filename(GENERATED_AT)


def test_every_item_is_accounted_for(coordinator):
    requests = [
        txt("a.txt"),
        txt("b.csv", "x,y\n1,2\n"),
        txt("c.json", "{bad json"),
        txt("d.yaml", "key: value\n"),
        ConversionRequest(ItemType.FILE, b"rar", "e.rar"),
        ConversionRequest(ItemType.URL, "https://example.com/", "https://example.com/"),
        txt("g.txt"),
    ]
    outcome = coordinator.convert_batch(requests, generated_at=GENERATED_AT)
    assert len(outcome.results) == len(requests)
    assert outcome.summary.successes + outcome.summary.failures == len(requests)
    summary = read_zip(outcome.buffer)["summary.md"]
    assert f"- Total Items: {len(requests)}" in summary


def test_results_keep_request_order(coordinator):
    requests = [txt(f"note{i}.txt", f"body {i}") for i in range(8)]
    results = coordinator.convert_items(requests)
    assert [result.item_id for result in results] == [request.id for request in requests]


def test_failure_does_not_affect_other_items(coordinator):
    requests = [txt("one.txt"), txt("bad.json", "{"), txt("three.txt")]
    results = coordinator.convert_items(requests)
    assert [result.success for result in results] == [True, False, True]


def test_progress_callback_reports_each_item(coordinator):
    calls: list[tuple[int, int]] = []
    coordinator.convert_items(
        [txt("a.txt"), txt("b.txt"), txt("c.txt")],
        progress=lambda done, total: calls.append((done, total)),
    )
    assert calls == [(1, 3), (2, 3), (3, 3)]


def test_empty_batch_is_rejected(coordinator):
    with pytest.raises(ValidationError) as excinfo:
        coordinator.convert_batch([])
    assert excinfo.value.code == "EMPTY_BATCH"


def test_canceled_batch_raises(coordinator):
    cancel = Event()
    cancel.set()
    with pytest.raises(JobCanceledError):
        coordinator.convert_batch([txt("a.txt"), txt("b.txt")], cancellation=cancel)


def test_unexpected_worker_error_becomes_failure(config):
    coordinator = BatchCoordinator(config, CrashingService())
    results = coordinator.convert_items([txt("fine.txt"), txt("crash.txt")])
    assert results[0].success
    assert not results[1].success
    assert results[1].category == "errors"
    assert results[1].error == "worker died"
    assert results[1].error_code == "INTERNAL"


def test_shared_options_reach_every_item(coordinator):
    options = ConversionOptions(include_meta=False)
    requests = [
        ConversionRequest(ItemType.FILE, b"alpha", "a.txt", options=options),
        ConversionRequest(ItemType.FILE, b"beta", "b.txt", options=options),
    ]
    outcome = coordinator.convert_batch(requests, generated_at=GENERATED_AT)
    files = read_zip(outcome.buffer)
    assert files["documents/a.md"] == "alpha\n"
    assert files["documents/b.md"] == "beta\n"


class ConcurrencyTracker:
    def __init__(self, delay: float = 0.05) -> None:
        self.delay = delay
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def convert(self, content, name, options):
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(self.delay)
            return StaticConverter(f"# {name}\n").convert(content, name, options)
        finally:
            with self._lock:
                self.active -= 1


def test_parallelism_never_exceeds_concurrency(config):
    tracker = ConcurrencyTracker()
    coordinator = BatchCoordinator(config, ConversionService(config, build_registry(txt=tracker)))
    limit = config.runtime.batch.concurrency
    results = coordinator.convert_items([txt(f"item{index}.txt") for index in range(limit * 3)])
    assert all(result.success for result in results)
    assert 1 < tracker.peak <= limit
