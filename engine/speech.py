"""
speech.py -- Text-to-speech collaborator and meditation audio fallback.

The engine treats synthesis as a black box: text + voice profile in, a
playable audio reference (a file path) out. If anything on that path fails,
the bundled default track for the meditation type is returned instead.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Optional, Protocol

import httpx

from engine.meditation import ContentGenerator
from mood.models import MeditationPrompt

logger = logging.getLogger(__name__)

DEFAULT_AUDIO: str = "/meditation/music.wav"


class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str, voice_profile: Optional[str] = None) -> str: ...


class SpeechSynthesisError(Exception):
    """Raised by synthesizers when no playable audio was produced."""


class HttpSpeechSynthesizer:
    """Calls a GET /tts?text=... endpoint and stores the returned wav."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        tts_url: str,
        output_dir: Path,
        timeout_seconds: float = 60.0,
    ) -> None:
        self.http_client = http_client
        self.tts_url = tts_url
        self.output_dir = Path(output_dir)
        self.timeout_seconds = timeout_seconds

    async def synthesize(self, text: str, voice_profile: Optional[str] = None) -> str:
        params = {
            "text": text,
            "text_lang": "zh",
            "ref_audio_path": voice_profile or "t1",
            "prompt_lang": "zh",
            "prompt_text": "",
            "text_split_method": "cut5",
            "batch_size": "1",
            "media_type": "wav",
            "streaming_mode": "true",
            "speed_factor": "0.7",
        }
        try:
            resp = await self.http_client.get(self.tts_url, params=params, timeout=self.timeout_seconds)
        except httpx.HTTPError as exc:
            raise SpeechSynthesisError(f"TTS request failed: {exc}") from exc
        if resp.status_code != 200:
            raise SpeechSynthesisError(f"TTS returned {resp.status_code}")
        content_type = resp.headers.get("content-type", "")
        if "audio" not in content_type:
            raise SpeechSynthesisError(f"Response is not audio data. Content-Type: {content_type}")

        digest = hashlib.sha256(f"{voice_profile}:{text}".encode("utf-8")).hexdigest()[:16]
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"{digest}.wav"
        path.write_bytes(resp.content)
        logger.info("Synthesized %d chars to %s (%d bytes)", len(text), path, len(resp.content))
        return str(path)


def default_audio_for(meditation_type: str) -> str:
    """Bundled fallback track. Every meditation type shares the one music bed."""
    return DEFAULT_AUDIO


async def generate_meditation_audio(
    prompt: MeditationPrompt,
    generator: ContentGenerator,
    synthesizer: Optional[SpeechSynthesizer],
    voice_profile: Optional[str] = None,
) -> str:
    """Script -> speech; any failure yields the default track for the type."""
    if synthesizer is None:
        return default_audio_for(prompt.type)
    script = await generator.generate_script(prompt)
    try:
        return await synthesizer.synthesize(script, voice_profile)
    except (SpeechSynthesisError, OSError) as exc:
        logger.error("Failed to generate meditation audio: %s", exc)
        return default_audio_for(prompt.type)
