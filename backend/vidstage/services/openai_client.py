"""OpenAI-compatible transcription and highlight extraction.

Talks to any server exposing the OpenAI ``/audio/transcriptions`` and
``/chat/completions`` endpoints. Structured output is requested with
``response_format={"type": "json_object"}`` and validated against the
pydantic schemas in vidstage.schemas.collaborators.
"""

import json
import logging
from pathlib import PurePosixPath
from typing import Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from vidstage.errors import TransientExternalFailure
from vidstage.schemas.collaborators import (
    HighlightsResult,
    SummaryResult,
    TranscribedSegment,
    TranscriptionResult,
)
from vidstage.services.base import ContentStore, HighlightExtractor, TranscriptionEngine

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

HIGHLIGHTS_PROMPT = """You extract the key moments from a video transcript.
Each transcript line starts with a [m:ss] timestamp.

Return a JSON object with:
- "highlights": list of {"text", "original_text", "category", "importance", "timestamp_ms"}
  where text is in English, original_text is the source-language quote when the
  transcript is not English, category is one of key_point, promise,
  announcement, statistic, quote, and importance is between 0 and 1
- "topics": list of short topic strings
- "sentiment": one of positive, neutral, negative, mixed
- "source_language": ISO 639-1 code of the transcript
"""

SUMMARY_PROMPT = """You summarize video transcripts.

Return a JSON object with:
- "summary": a paragraph in English
- "tldr": one English sentence
- "keywords": up to 10 lowercase keywords
- "source_language": ISO 639-1 code of the transcript
"""


def _is_retryable(exc: BaseException) -> bool:
    """Retry on network errors, rate limits and server errors."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429 or exc.response.status_code >= 500
    return False


_api_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=30),
    retry=retry_if_exception(_is_retryable),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


class OpenAIClient:
    """Thin async client for an OpenAI-compatible API."""

    def __init__(self, base_url: str, api_key: Optional[str], timeout: float = 120.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.timeout, connect=30.0),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    @_api_retry
    async def post_json(self, path: str, payload: dict) -> dict:
        response = await self.client.post(path, json=payload)
        logger.debug("POST %s%s - HTTP %d", self.base_url, path, response.status_code)
        response.raise_for_status()
        return response.json()

    @_api_retry
    async def post_multipart(self, path: str, data: dict, files: dict) -> dict:
        response = await self.client.post(path, data=data, files=files)
        logger.debug("POST %s%s - HTTP %d", self.base_url, path, response.status_code)
        response.raise_for_status()
        return response.json()

    async def chat_json(self, model: str, system_prompt: str, user_prompt: str, schema: Type[T]) -> T:
        """Run a chat completion in JSON mode and validate the reply against schema."""
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "response_format": {"type": "json_object"},
            "temperature": 0.2,
        }
        try:
            data = await self.post_json("/chat/completions", payload)
        except httpx.HTTPError as e:
            raise TransientExternalFailure(f"Chat completion failed: {e}") from e

        raw = data["choices"][0]["message"]["content"]
        try:
            return schema.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Chat reply did not match {schema.__name__}: {raw[:200]}")
            raise TransientExternalFailure(f"Invalid {schema.__name__} reply: {e}") from e


class OpenAITranscriptionEngine(TranscriptionEngine):
    """Whisper-style transcription via ``/audio/transcriptions``."""

    def __init__(self, client: OpenAIClient, store: ContentStore, model: str = "whisper-1"):
        self._client = client
        self._store = store
        self._model = model

    async def transcribe(
        self, media_ref: str, language_hint: Optional[str] = None
    ) -> TranscriptionResult:
        media = await self._store.fetch(media_ref)
        data = {"model": self._model, "response_format": "verbose_json"}
        if language_hint:
            # API expects ISO 639-1, hints may be BCP-47
            data["language"] = language_hint.split("-")[0]
        files = {"file": (PurePosixPath(media_ref).name, media, "application/octet-stream")}

        try:
            body = await self._client.post_multipart("/audio/transcriptions", data, files)
        except httpx.HTTPError as e:
            raise TransientExternalFailure(f"Transcription request failed: {e}") from e

        segments = [
            TranscribedSegment(
                start_ms=int(float(s["start"]) * 1000),
                end_ms=int(float(s["end"]) * 1000),
                text=s["text"].strip(),
            )
            for s in body.get("segments", [])
            if s.get("text", "").strip()
        ]
        duration = body.get("duration")
        return TranscriptionResult(
            detected_language=body.get("language") or language_hint,
            duration_ms=int(float(duration) * 1000) if duration is not None else None,
            segments=segments,
        )


class OpenAIHighlightExtractor(HighlightExtractor):
    """Highlights and summaries via JSON-mode chat completions."""

    def __init__(self, client: OpenAIClient, model: str = "gpt-4o-mini"):
        self._client = client
        self._model = model

    async def extract_highlights(
        self, text: str, language_hint: Optional[str] = None
    ) -> HighlightsResult:
        prompt = text
        if language_hint:
            prompt = f"Transcript language hint: {language_hint}\n\n{text}"
        return await self._client.chat_json(self._model, HIGHLIGHTS_PROMPT, prompt, HighlightsResult)

    async def summarize(self, text: str, title: Optional[str] = None) -> SummaryResult:
        prompt = text
        if title:
            prompt = f"Title: {json.dumps(title)}\n\n{text}"
        return await self._client.chat_json(self._model, SUMMARY_PROMPT, prompt, SummaryResult)
