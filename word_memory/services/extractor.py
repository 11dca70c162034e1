from __future__ import annotations

import base64
import json
import logging
import os
import re
from dataclasses import dataclass, field

import httpx

from word_memory.errors import (
    DocumentNotSupported,
    InputError,
    MalformedResponse,
    UnsupportedMediaType,
    UpstreamAnalysisFailure,
)

log = logging.getLogger(__name__)

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai"
DOCUMENT_MEDIA_TYPES = {"application/pdf"}

EXTRACTION_PROMPT = (
    "You are an expert English teacher. "
    "Analyze the provided content. Extract the most important English vocabulary words that a learner should study. "
    'Exclude very common basic words (like "the", "and", "is", etc.). '
    "For each word, provide: "
    "1. The word (original text) "
    "2. Main definition (in English, simple) "
    "3. 2-3 Example sentences using the word. "
    "Return the result as a strictly valid JSON array of objects with keys: "
    '"originalText", "meanings" (array of strings), "examples" (array of strings). '
    "Do not wrap in markdown code blocks. Just the JSON."
)


@dataclass
class ExtractedWord:
    text: str
    meanings: list[str] = field(default_factory=list)
    examples: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"text": self.text, "meanings": list(self.meanings), "examples": list(self.examples)}


class VocabularyExtractor:
    def __init__(self, *, model_override: str | None = None) -> None:
        self.provider = os.getenv("WORD_MEMORY_LLM_PROVIDER", "gemini").strip().lower()
        self.base_url = os.getenv("WORD_MEMORY_LLM_BASE_URL")
        self.model = os.getenv("WORD_MEMORY_LLM_MODEL")
        if model_override:
            self.model = str(model_override).strip()

        if self.provider == "openai":
            self.api_key = os.getenv("OPENAI_API_KEY")
            self.base_url = self.base_url or "https://api.openai.com/v1"
            self.model = self.model or "gpt-4o-mini"
        else:
            self.api_key = os.getenv("GEMINI_API_KEY")
            self.base_url = self.base_url or GEMINI_OPENAI_BASE_URL
            self.model = self.model or "gemini-1.5-flash"

        try:
            self.timeout = float(os.getenv("WORD_MEMORY_LLM_TIMEOUT", "60"))
        except ValueError:
            self.timeout = 60.0

        if not self.api_key:
            log.warning("no API key configured for provider %s; extraction will fail", self.provider)

    def available(self) -> bool:
        return bool(self.api_key)

    def extract(self, payload: bytes, media_type: str) -> list[ExtractedWord]:
        if not payload:
            raise InputError("No file provided")
        media_type = (media_type or "").split(";", 1)[0].strip().lower()
        if media_type in DOCUMENT_MEDIA_TYPES:
            raise DocumentNotSupported(f"{media_type} support is not available yet")
        if not media_type.startswith("image/"):
            raise UnsupportedMediaType(f"Unsupported file type: {media_type or 'unknown'}")

        request = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": EXTRACTION_PROMPT},
                        {"type": "image_url", "image_url": {"url": _data_url(payload, media_type)}},
                    ],
                },
            ],
            "temperature": 0.2,
        }
        log.info("extracting vocabulary from %s (%d bytes) with %s", media_type, len(payload), self.model)
        data = self._chat_completion(request)
        words = parse_vocabulary(_extract_content(data))
        log.info("extracted %d words", len(words))
        return words

    def _chat_completion(self, payload: dict) -> dict:
        if not self.api_key:
            raise UpstreamAnalysisFailure("missing llm api key")

        url = self.base_url.rstrip("/") + "/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(url, headers=headers, json=payload)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as exc:
            log.error("analysis request failed with status %s", exc.response.status_code)
            raise UpstreamAnalysisFailure(f"analysis request failed: HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            log.error("analysis request failed: %s", exc)
            raise UpstreamAnalysisFailure(f"analysis request failed: {exc}") from exc
        except ValueError as exc:
            raise MalformedResponse("analysis response is not JSON") from exc


def parse_vocabulary(content: str) -> list[ExtractedWord]:
    text = _strip_code_fence(content)
    if not text:
        raise MalformedResponse("empty analysis content")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedResponse(f"analysis content is not valid JSON: {exc.msg}") from exc

    if isinstance(parsed, dict):
        parsed = parsed.get("words")
    if not isinstance(parsed, list):
        raise MalformedResponse("analysis content is not a list of words")

    words: list[ExtractedWord] = []
    for entry in parsed:
        if not isinstance(entry, dict):
            raise MalformedResponse("word entry is not an object")
        word = str(entry.get("originalText") or entry.get("text") or "").strip()
        if not word:
            raise MalformedResponse("word entry has no text")
        words.append(
            ExtractedWord(
                text=word,
                meanings=_string_list(entry.get("meanings")),
                examples=_string_list(entry.get("examples")),
            )
        )
    return words


def _data_url(payload: bytes, media_type: str) -> str:
    b64 = base64.b64encode(payload).decode("ascii")
    return f"data:{media_type};base64,{b64}"


def _strip_code_fence(content: str) -> str:
    return re.sub(r"```(?:json)?", "", str(content or "")).strip()


def _string_list(value: object) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


def _extract_content(payload: dict) -> str:
    choices = payload.get("choices") if isinstance(payload, dict) else None
    if not choices or not isinstance(choices, list):
        raise MalformedResponse("analysis response has no choices")
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict):
        raise MalformedResponse("analysis response has no message")
    content = message.get("content") or ""
    if isinstance(content, list):
        texts: list[str] = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text":
                texts.append(str(item.get("text", "")))
        return "\n".join(texts).strip()
    return str(content).strip()
