from __future__ import annotations

import logging
from typing import Protocol

import requests

from .config import EnhancerConfig
from .errors import AuthenticationError, ConversionError
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You turn Markdown notes into knowledge-base entries. Return the note unchanged "
    "except for a YAML front matter block with title, tags and a one-line summary."
)


class Enhancer(Protocol):
    def enhance(self, markdown: str, name: str, api_key: str) -> str: ...


class OpenAIEnhancer:
    def __init__(
        self,
        config: EnhancerConfig,
        *,
        session: requests.Session | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._config = config
        self._session = session or requests.Session()
        self._retry = retry or RetryPolicy()

    def enhance(self, markdown: str, name: str, api_key: str) -> str:
        if not api_key:
            raise AuthenticationError("API key is required for note enhancement")
        payload = {
            "model": self._config.model,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": f"File: {name}\n\n{markdown}"},
            ],
        }

        def _post() -> requests.Response:
            response = self._session.post(
                self._config.endpoint,
                json=payload,
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=self._config.timeout_s,
            )
            response.raise_for_status()
            return response

        response = self._retry.call(_post, description=f"enhance {name}")
        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ConversionError("Unexpected enhancement response") from exc
        if not content or not content.strip():
            raise ConversionError("Enhancement returned empty content")
        return content


def apply_enhancement(
    enhancer: Enhancer | None, markdown: str, name: str, api_key: str | None
) -> tuple[str, str | None]:
    """Run *enhancer* and fall back to the original markdown on any error.

    Returns the markdown to keep and a warning describing the fallback, if any.
    """

    if enhancer is None:
        return markdown, "Enhancement requested but no enhancer is configured"
    if not api_key:
        return markdown, "Enhancement skipped: no API key provided"
    try:
        return enhancer.enhance(markdown, name, api_key), None
    except Exception as exc:
        logger.warning("Enhancement failed for %s: %s", name, exc)
        return markdown, f"Enhancement failed: {exc}"


__all__ = ["Enhancer", "OpenAIEnhancer", "apply_enhancement"]
