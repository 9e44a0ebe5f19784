from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass
from datetime import datetime
from threading import Event
from typing import Callable, Sequence

from .adapters import ConverterRegistry, build_registry, error_markdown
from .archive import ArchiveBuilder
from .categories import ERRORS
from .config import AppConfig
from .core import ConversionService
from .enhancer import Enhancer, OpenAIEnhancer
from .errors import JobCanceledError, ValidationError, describe_error
from .logging import BatchSummary, RunLogger
from .models import ConversionRequest, ConversionResult
from .retry import RetryPolicy
from .utils import archive_filename, utc_now

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass(slots=True)
class BatchOutcome:
    buffer: bytes
    filename: str
    results: list[ConversionResult]
    summary: BatchSummary


class BatchCoordinator:
    """Fan a batch out over a bounded thread pool and package the results."""

    def __init__(self, config: AppConfig, service: ConversionService) -> None:
        self._config = config
        self._service = service

    @property
    def service(self) -> ConversionService:
        return self._service

    @property
    def concurrency(self) -> int:
        return max(1, self._config.runtime.batch.concurrency)

    def convert_items(
        self,
        requests: Sequence[ConversionRequest],
        *,
        progress: ProgressCallback | None = None,
        cancellation: Event | None = None,
        run_logger: RunLogger | None = None,
    ) -> list[ConversionResult]:
        total = len(requests)
        results: list[ConversionResult | None] = [None] * total
        if total == 0:
            return []
        callback = progress or (lambda _done, _total: None)

        def _run(request: ConversionRequest) -> ConversionResult:
            if cancellation is not None and cancellation.is_set():
                raise JobCanceledError("Batch canceled")
            return self._service.convert(request, cancellation, run_logger)

        done = 0
        with concurrent.futures.ThreadPoolExecutor(max_workers=min(self.concurrency, total)) as executor:
            future_map = {executor.submit(_run, request): index for index, request in enumerate(requests)}
            try:
                for future in concurrent.futures.as_completed(future_map):
                    index = future_map[future]
                    try:
                        results[index] = future.result()
                    except JobCanceledError:
                        raise
                    except Exception as exc:
                        results[index] = self._unexpected_failure(requests[index], exc)
                    done += 1
                    callback(done, total)
            except JobCanceledError:
                for pending in future_map:
                    pending.cancel()
                raise
        return [result for result in results if result is not None]

    def convert_batch(
        self,
        requests: Sequence[ConversionRequest],
        *,
        progress: ProgressCallback | None = None,
        cancellation: Event | None = None,
        run_logger: RunLogger | None = None,
        generated_at: datetime | None = None,
    ) -> BatchOutcome:
        if not requests:
            raise ValidationError("Batch contains no items", code="EMPTY_BATCH")
        generated_at = generated_at or utc_now()
        results = self.convert_items(
            requests, progress=progress, cancellation=cancellation, run_logger=run_logger
        )
        summary = BatchSummary.from_results(results)
        logger.info("Batch finished: %s", summary.headline())
        buffer = ArchiveBuilder(generated_at=generated_at).build(results)
        return BatchOutcome(
            buffer=buffer,
            filename=archive_filename(generated_at),
            results=results,
            summary=summary,
        )

    def _unexpected_failure(self, request: ConversionRequest, exc: BaseException) -> ConversionResult:
        code, message = describe_error(exc)
        logger.error("Worker crashed converting %s: %s", request.name, message)
        return ConversionResult(
            success=False,
            content=error_markdown(request.name, message),
            name=request.name,
            type=request.type.value,
            category=ERRORS,
            error=message,
            error_code=code,
            item_id=request.id,
        )


def build_coordinator(
    config: AppConfig,
    *,
    registry: ConverterRegistry | None = None,
    enhancer: Enhancer | None = None,
) -> BatchCoordinator:
    """Wire the default registry, enhancer and service for *config*."""

    if registry is None:
        registry = build_registry(config)
    if enhancer is None:
        enhancer = OpenAIEnhancer(
            config.runtime.enhancer, retry=RetryPolicy.from_config(config.runtime.retry)
        )
    service = ConversionService(config, registry, enhancer=enhancer)
    return BatchCoordinator(config, service)


__all__ = ["BatchCoordinator", "BatchOutcome", "ProgressCallback", "build_coordinator"]
