from __future__ import annotations

import hashlib
import logging
import os
import re
from pathlib import Path

import httpx

from word_memory.config import AUDIO_DIR

log = logging.getLogger(__name__)

DEFAULT_VOICE = "en-US-JennyNeural"
MAX_WORD_LENGTH = 80


def pronunciation_path(word: str, voice: str, audio_dir: Path | None = None) -> Path:
    """Stable mp3 location for one word in one voice."""
    digest = hashlib.sha1(f"{voice}\n{word.lower()}".encode("utf-8")).hexdigest()[:12]
    slug = re.sub(r"[^a-z0-9]+", "-", word.lower()).strip("-")[:32] or "word"
    return (audio_dir or AUDIO_DIR) / f"{slug}_{digest}.mp3"


class SpeechService:
    """Pronounces vocabulary words, reusing a clip once it exists on disk."""

    def __init__(self, *, audio_dir: Path | None = None) -> None:
        self.audio_dir = audio_dir or AUDIO_DIR
        self.voice = os.getenv("WORD_MEMORY_TTS_VOICE", DEFAULT_VOICE)
        self.openai_api_key = os.getenv("OPENAI_API_KEY")
        self.openai_base = os.getenv("WORD_MEMORY_OPENAI_BASE_URL", "https://api.openai.com/v1")
        self.openai_tts_model = os.getenv("WORD_MEMORY_TTS_MODEL", "gpt-4o-mini-tts")

    async def pronounce(self, word: str, *, voice: str | None = None) -> Path:
        word = " ".join(str(word or "").split())
        if not word:
            raise ValueError("word is empty")
        if len(word) > MAX_WORD_LENGTH:
            raise ValueError(f"word is longer than {MAX_WORD_LENGTH} characters")

        voice = voice or self.voice
        out = pronunciation_path(word, voice, self.audio_dir)
        if out.exists() and out.stat().st_size > 0:
            return out
        out.parent.mkdir(parents=True, exist_ok=True)

        try:
            await self._edge_tts(word, voice=voice, out=out)
        except Exception as exc:
            out.unlink(missing_ok=True)
            if not self.openai_api_key:
                raise RuntimeError(f"no speech backend available: {exc}") from exc
            log.warning("edge-tts failed for %r, using OpenAI speech: %s", word, exc)
            self._openai_tts(word, out=out)
        log.info("recorded pronunciation of %r with %s", word, voice)
        return out

    async def _edge_tts(self, word: str, *, voice: str, out: Path) -> None:
        import edge_tts

        await edge_tts.Communicate(text=word, voice=voice).save(str(out))

    def _openai_tts(self, word: str, *, out: Path) -> None:
        url = self.openai_base.rstrip("/") + "/audio/speech"
        headers = {"Authorization": f"Bearer {self.openai_api_key}"}
        payload = {"model": self.openai_tts_model, "voice": "alloy", "input": word, "format": "mp3"}
        with httpx.Client(timeout=30) as client:
            resp = client.post(url, headers=headers, json=payload)
            resp.raise_for_status()
        out.write_bytes(resp.content)
