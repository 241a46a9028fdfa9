"""
config.py -- Environment-driven settings for the guidance engine.

Reads .env (via python-dotenv) and the process environment into a Settings
model, and derives the remote provider configurations from it. A provider
whose credential is missing is simply not configured; every caller then
falls back to local computation.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from engine.gateway import ProviderConfig, ProviderKind, ProviderTask

ENV_PATH: Path = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseModel):
    """Runtime configuration. Defaults match a local development setup."""

    anthropic_api_key: str = ""
    claude_model: str = "claude-sonnet-4-6"
    hf_api_token: str = ""
    hf_inference_url: str = "https://api-inference.huggingface.co/models"
    hf_classifier_model: str = "j-hartmann/emotion-english-distilroberta-base"
    hf_generation_model: str = "THUDM/chatglm3-6b"

    classify_timeout_seconds: float = Field(default=5.0, gt=0)
    generation_timeout_seconds: float = Field(default=10.0, gt=0)
    mapping_timeout_seconds: float = Field(default=30.0, gt=0)

    mapping_cache_dir: Path = Path(".cache/mood")
    mapping_refresh_interval_seconds: float = Field(default=6 * 3600.0, gt=0)

    tts_url: Optional[str] = None
    audio_output_dir: Path = Path(".cache/audio")

    engine_port: int = 3002
    log_level: str = "INFO"

    # -- Provider configurations ----------------------------------------------

    def classifier_provider(self) -> Optional[ProviderConfig]:
        """Remote emotion classifier, or None when no token is configured."""
        if not self.hf_api_token:
            return None
        return ProviderConfig(
            name="hf-classifier",
            kind=ProviderKind.HUGGINGFACE,
            task=ProviderTask.TEXT_CLASSIFICATION,
            endpoint=f"{self.hf_inference_url}/{self.hf_classifier_model}",
            api_key=self.hf_api_token,
            model=self.hf_classifier_model,
            timeout_seconds=self.classify_timeout_seconds,
        )

    def generation_providers(self, timeout_seconds: Optional[float] = None) -> list[ProviderConfig]:
        """Text generators in priority order: Claude first, then Hugging Face."""
        timeout = timeout_seconds or self.generation_timeout_seconds
        providers: list[ProviderConfig] = []
        if self.anthropic_api_key:
            providers.append(ProviderConfig(
                name="claude",
                kind=ProviderKind.ANTHROPIC,
                task=ProviderTask.TEXT_GENERATION,
                api_key=self.anthropic_api_key,
                model=self.claude_model,
                timeout_seconds=timeout,
            ))
        if self.hf_api_token:
            providers.append(ProviderConfig(
                name="hf-generator",
                kind=ProviderKind.HUGGINGFACE,
                task=ProviderTask.TEXT_GENERATION,
                endpoint=f"{self.hf_inference_url}/{self.hf_generation_model}",
                api_key=self.hf_api_token,
                model=self.hf_generation_model,
                timeout_seconds=timeout,
            ))
        return providers

    def mapping_providers(self) -> list[ProviderConfig]:
        """Generators used by the mapping refresher (longer timeout)."""
        return self.generation_providers(self.mapping_timeout_seconds)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def load_settings(env_file: Optional[Path] = ENV_PATH) -> Settings:
    """Build Settings from .env (if present) and the process environment."""
    if env_file is not None and env_file.exists():
        load_dotenv(env_file)
    defaults = Settings()
    return Settings(
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
        claude_model=os.getenv("CLAUDE_MODEL", defaults.claude_model),
        hf_api_token=os.getenv("HF_API_TOKEN", ""),
        hf_inference_url=os.getenv("HF_INFERENCE_URL", defaults.hf_inference_url).rstrip("/"),
        hf_classifier_model=os.getenv("HF_CLASSIFIER_MODEL", defaults.hf_classifier_model),
        hf_generation_model=os.getenv("HF_GENERATION_MODEL", defaults.hf_generation_model),
        classify_timeout_seconds=_env_float("CLASSIFY_TIMEOUT_SECONDS", defaults.classify_timeout_seconds),
        generation_timeout_seconds=_env_float("GENERATION_TIMEOUT_SECONDS", defaults.generation_timeout_seconds),
        mapping_timeout_seconds=_env_float("MAPPING_TIMEOUT_SECONDS", defaults.mapping_timeout_seconds),
        mapping_cache_dir=Path(os.getenv("MAPPING_CACHE_DIR", str(defaults.mapping_cache_dir))),
        mapping_refresh_interval_seconds=_env_float(
            "MAPPING_REFRESH_INTERVAL_SECONDS", defaults.mapping_refresh_interval_seconds
        ),
        tts_url=os.getenv("TTS_URL") or None,
        audio_output_dir=Path(os.getenv("AUDIO_OUTPUT_DIR", str(defaults.audio_output_dir))),
        engine_port=int(os.getenv("ENGINE_PORT", str(defaults.engine_port))),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
    )
