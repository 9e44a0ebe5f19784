from __future__ import annotations

import logging
import mimetypes
from threading import Event
from typing import Any

import requests

from .base import ConverterOutput
from ..audio import AudioChunker
from ..config import TranscriptionConfig
from ..detection import ConverterKind
from ..errors import AuthenticationError, ConversionError, JobCanceledError, ResourceError
from ..models import ConversionOptions
from ..retry import RetryPolicy
from ..utils import file_stem

logger = logging.getLogger(__name__)

MB = 1024 * 1024


class TranscriptionAdapter:
    """Send audio or video payloads to a Whisper-compatible transcription endpoint.

    Video is always reduced to its audio track first. Audio larger than the
    chunk size is split into segments that are transcribed one after another
    and joined in order.
    """

    cancellable = True

    def __init__(
        self,
        kind: ConverterKind,
        config: TranscriptionConfig,
        *,
        session: requests.Session,
        retry: RetryPolicy,
        chunker: AudioChunker | None = None,
    ) -> None:
        self.kind = kind
        self._config = config
        self._session = session
        self._retry = retry
        self._chunker = chunker or AudioChunker.from_config(config)

    def convert(
        self,
        content: Any,
        name: str,
        options: ConversionOptions,
        cancellation: Event | None = None,
    ) -> ConverterOutput:
        if not options.api_key:
            raise AuthenticationError(f"API key is required to transcribe {name}")
        parts = self._prepare(bytes(content), name)
        texts: list[str] = []
        for index, (part_name, payload) in enumerate(parts, start=1):
            if cancellation is not None and cancellation.is_set():
                raise JobCanceledError(f"Transcription of {name} canceled")
            if len(parts) > 1:
                logger.info("Transcribing %s part %d/%d", name, index, len(parts))
            text = self._transcribe(part_name, payload, options.api_key)
            if text:
                texts.append(text)
        if not texts:
            raise ConversionError(f"Transcription of {name} returned no text")

        label = "Video" if self.kind is ConverterKind.VIDEO else "Audio"
        transcript = "\n\n".join(texts)
        markdown = f"# {name}\n\n**Source:** {label} transcription\n\n## Transcript\n\n{transcript}\n"
        warnings = [f"Transcribed in {len(parts)} parts"] if len(parts) > 1 else []
        return ConverterOutput(content=markdown, warnings=warnings)

    def _prepare(self, payload: bytes, name: str) -> list[tuple[str, bytes]]:
        if self.kind is not ConverterKind.VIDEO and len(payload) <= self._chunker.chunk_bytes:
            parts = [(name, payload)]
        else:
            stem = file_stem(name)
            chunks = self._chunker.split(payload, name)
            parts = [(f"{stem}-part{index:03d}.mp3", chunk) for index, chunk in enumerate(chunks, start=1)]
        limit = self._config.max_upload_mb * MB
        for part_name, part in parts:
            if len(part) > limit:
                raise ResourceError(
                    f"{part_name} exceeds the transcription upload limit of "
                    f"{self._config.max_upload_mb}MB",
                    code="SIZE_LIMIT",
                )
        return parts

    def _transcribe(self, name: str, payload: bytes, api_key: str) -> str:
        mime_type = mimetypes.guess_type(name)[0] or "application/octet-stream"

        def _post() -> requests.Response:
            response = self._session.post(
                self._config.endpoint,
                headers={"Authorization": f"Bearer {api_key}"},
                data={"model": self._config.model, "response_format": "json"},
                files={"file": (name, payload, mime_type)},
                timeout=self._config.timeout_s,
            )
            if response.status_code == 401:
                raise AuthenticationError("Transcription service rejected the API key")
            response.raise_for_status()
            return response

        logger.info("Transcribing %s (%d bytes)", name, len(payload))
        response = self._retry.call(_post, description=f"transcribe {name}")
        try:
            return str(response.json().get("text") or "").strip()
        except ValueError as exc:
            raise ConversionError("Unexpected transcription response") from exc


__all__ = ["TranscriptionAdapter"]
