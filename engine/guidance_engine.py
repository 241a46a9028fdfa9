"""
guidance_engine.py -- FastAPI application for emotion analysis and meditation guidance.

Runs on ENGINE_PORT (default 3002).
Every endpoint answers even when all remote providers are down: classification
falls back to local keyword scoring, scripts fall back to templates.
The mapping refresher runs in the background for the app's lifetime.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import anthropic
import httpx
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from engine.config import Settings, load_settings
from engine.gateway import ProviderGateway
from engine.meditation import MEDITATIONS, ContentGenerator, compose_affirmation, recommend_meditation
from engine.orchestrator import ClassificationOrchestrator
from engine.refresher import MappingRefresher, bootstrap
from engine.speech import HttpSpeechSynthesizer, SpeechSynthesizer, generate_meditation_audio
from mood.adapters.json_store import JsonFileStore
from mood.mapping_store import MappingStore
from mood.models import MeditationPrompt

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("guidance_engine")


class ClassifyRequest(BaseModel):
    """Request body for the /classify endpoint."""
    text: str = Field(..., max_length=2000, description="Final transcript of one utterance")


class MeditationSuggestion(BaseModel):
    type: str
    scene: str


class AnalysisData(BaseModel):
    """Classification payload returned to the UI."""
    emotion: str
    confidence: float
    suggestions: list[str]
    affirmation: str
    meditation: MeditationSuggestion


class ScriptRequest(BaseModel):
    """Request body for /script and /meditation/audio."""
    type: str = Field(..., description="Meditation type id, e.g. 'sleep'")
    scene: str = Field(..., description="Free-text scene interpolated into the script")
    duration: Optional[int] = Field(default=None, ge=1, description="Minutes")
    emotion: Optional[str] = None
    phased: bool = False
    voice: Optional[str] = None


class EngineResponse(BaseModel):
    """Standard engine API response envelope."""
    success: bool
    data: Any = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    success: bool
    version: str = "0.1.0"


settings: Optional[Settings] = None
http_client: Optional[httpx.AsyncClient] = None
store: Optional[MappingStore] = None
refresher: Optional[MappingRefresher] = None
orchestrator: Optional[ClassificationOrchestrator] = None
generator: Optional[ContentGenerator] = None
synthesizer: Optional[SpeechSynthesizer] = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Wire the pipeline, restore the cached mapping and start the refresher."""
    global settings, http_client, store, refresher, orchestrator, generator, synthesizer
    settings = load_settings()
    logging.getLogger().setLevel(settings.log_level)

    http_client = httpx.AsyncClient(timeout=30.0)
    claude_client: Optional[anthropic.AsyncAnthropic] = None
    if settings.anthropic_api_key:
        claude_client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    else:
        logger.warning("ANTHROPIC_API_KEY not set -- Claude will not be used")
    if not settings.hf_api_token:
        logger.warning("HF_API_TOKEN not set -- remote classification disabled, using local analysis")

    gateway = ProviderGateway(http_client, claude_client)
    store = MappingStore(JsonFileStore(settings.mapping_cache_dir))
    refresher = MappingRefresher(
        store, gateway, settings.mapping_providers(),
        interval_seconds=settings.mapping_refresh_interval_seconds,
    )
    orchestrator = ClassificationOrchestrator(
        store, gateway, settings.classifier_provider(), settings.generation_providers(),
    )
    generator = ContentGenerator(gateway, settings.generation_providers())
    synthesizer = (
        HttpSpeechSynthesizer(http_client, settings.tts_url, settings.audio_output_dir)
        if settings.tts_url else None
    )

    bootstrap(store, refresher)
    logger.info("Guidance Engine started (model=%s, cache=%s)", settings.claude_model, settings.mapping_cache_dir)
    yield
    await refresher.stop()
    await http_client.aclose()
    if claude_client is not None:
        await claude_client.close()
    logger.info("Guidance Engine shut down")


app = FastAPI(
    title="Mood Guidance Engine",
    description="Emotion classification and meditation guidance with offline fallback",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(success=True)


@app.get("/emotions", response_model=EngineResponse)
async def list_emotions() -> EngineResponse:
    """Current emotion vocabulary and whether the built-in mapping is active."""
    assert store is not None
    mapping = store.get()
    emotions = [{"id": eid, "name": name} for eid, name in mapping.emotion_map.items()]
    return EngineResponse(success=True, data={
        "emotions": emotions,
        "keywordCount": len(mapping.keyword_map),
        "isDefault": store.is_default,
    })


@app.post("/classify", response_model=EngineResponse)
async def classify_text(body: ClassifyRequest) -> EngineResponse:
    """Classify one utterance and attach an affirmation and a meditation suggestion."""
    assert orchestrator is not None
    result = await orchestrator.classify_utterance(body.text)
    meditation = recommend_meditation(result.emotion)
    logger.info("Classified utterance: emotion='%s', confidence=%.2f", result.emotion, result.confidence)
    return EngineResponse(success=True, data=AnalysisData(
        emotion=result.emotion,
        confidence=result.confidence,
        suggestions=result.suggestions,
        affirmation=compose_affirmation(body.text, result, meditation.scene),
        meditation=MeditationSuggestion(type=meditation.type, scene=meditation.scene),
    ))


def _prompt_from(body: ScriptRequest) -> MeditationPrompt:
    if not body.type.strip():
        raise HTTPException(status_code=400, detail="Meditation type is required")
    return MeditationPrompt(type=body.type.strip(), scene=body.scene, duration=body.duration)


@app.post("/script", response_model=EngineResponse)
async def generate_script(body: ScriptRequest) -> EngineResponse:
    """Meditation script as one text, or as three phases when `phased` is set."""
    assert generator is not None
    prompt = _prompt_from(body)
    if body.phased:
        return EngineResponse(success=True, data={"phases": generator.generate_phase_scripts(prompt)})
    script = await generator.generate_script(prompt, body.emotion)
    return EngineResponse(success=True, data={"script": script})


@app.post("/meditation/audio", response_model=EngineResponse)
async def meditation_audio(body: ScriptRequest) -> EngineResponse:
    """Synthesize a meditation; falls back to the bundled track for the type."""
    assert generator is not None
    prompt = _prompt_from(body)
    audio = await generate_meditation_audio(prompt, generator, synthesizer, body.voice)
    return EngineResponse(success=True, data={"audio": audio})


@app.get("/meditations", response_model=EngineResponse)
async def list_meditations() -> EngineResponse:
    """List the meditation catalog."""
    items = [{"id": mid, **info} for mid, info in MEDITATIONS.items()]
    return EngineResponse(success=True, data={"meditations": items, "total": len(items)})


@app.post("/mapping/refresh", response_model=EngineResponse)
async def refresh_mapping_now() -> EngineResponse:
    """Run a mapping refresh now and report whether the store changed."""
    assert refresher is not None
    updated = await refresher.trigger()
    return EngineResponse(success=True, data={"updated": updated})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("engine.guidance_engine:app", host="0.0.0.0", port=load_settings().engine_port, reload=True)
