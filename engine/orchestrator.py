"""
orchestrator.py -- Classification of one utterance with a local floor.

Fallback chain:
1. remote classifier -> top label, must exist in the active emotionMap
2. on success, commentary + meditation scene generated concurrently
   (either may fail; they only enrich the suggestions)
3. if step 1 fails for any reason -> local keyword classifier

classify_utterance() never raises.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Optional

from engine.gateway import (
    EmotionScore,
    Failure,
    FailureKind,
    ProviderConfig,
    ProviderGateway,
    ProviderOutcome,
    ProviderRequest,
    Success,
)
from engine.prompt_builder import build_commentary_request, build_scene_request
from mood.classifier import classify
from mood.mapping_store import MappingStore
from mood.models import EmotionAnalysisResult, EmotionMapping

logger = logging.getLogger(__name__)

# Remote classifier labels that differ from the canonical vocabulary.
LABEL_ALIASES: dict[str, str] = {
    "joy": "happiness",
    "happy": "happiness",
    "sad": "sadness",
    "angry": "anger",
}


def time_context(now: datetime) -> str:
    """夜晚 from 18:00 to 06:00, otherwise 白天."""
    return "夜晚" if now.hour >= 18 or now.hour < 6 else "白天"


def pick_label(scores: list[EmotionScore], mapping: EmotionMapping) -> tuple[str, float]:
    """Highest-scoring label, normalized; ValueError if it is not in the vocabulary."""
    top = max(scores, key=lambda s: s.score)
    label = top.label.strip().lower()
    label = LABEL_ALIASES.get(label, label)
    if label not in mapping.emotion_map:
        raise ValueError(f"Unknown emotion label from classifier: {top.label!r}")
    return label, min(1.0, max(0.0, top.score))


class ClassificationOrchestrator:
    """Remote-first classifier that always falls back to the local algorithm."""

    def __init__(
        self,
        store: MappingStore,
        gateway: ProviderGateway,
        classifier_provider: Optional[ProviderConfig],
        generation_providers: Sequence[ProviderConfig] = (),
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.classifier_provider = classifier_provider
        self.generation_providers = list(generation_providers)
        self.clock = clock

    async def classify_utterance(self, text: str) -> EmotionAnalysisResult:
        mapping = self.store.get()
        try:
            result = await self._classify_remote(text, mapping)
        except Exception as exc:
            logger.error("Remote classification crashed, using local analysis: %s", exc, exc_info=True)
            result = None
        if result is not None:
            return result
        return classify(text, mapping)

    async def _classify_remote(self, text: str, mapping: EmotionMapping) -> Optional[EmotionAnalysisResult]:
        if self.classifier_provider is None or not text.strip():
            return None

        outcome = await self.gateway.call(
            self.classifier_provider,
            ProviderRequest(prompt=text),
            parse=lambda scores: pick_label(scores, mapping),
        )
        if isinstance(outcome, Failure):
            logger.warning("Online emotion analysis failed (%s), using local analysis", outcome.kind.value)
            return None

        emotion_id, confidence = outcome.payload
        emotion_name = mapping.emotion_map[emotion_id]

        commentary, scene = await asyncio.gather(
            self.gateway.generate_text(
                self.generation_providers,
                build_commentary_request(text, emotion_name, confidence),
            ),
            self.gateway.generate_text(
                self.generation_providers,
                build_scene_request(text, emotion_name, time_context(self.clock())),
            ),
        )

        suggestions = [
            _text_or_none(commentary),
            *mapping.suggestion_map.get(emotion_id, []),
            _text_or_none(scene),
        ]
        return EmotionAnalysisResult(
            emotion=emotion_name,
            confidence=confidence,
            suggestions=[s for s in suggestions if s],
        )


def _text_or_none(outcome: ProviderOutcome) -> Optional[str]:
    if isinstance(outcome, Success) and isinstance(outcome.payload, str):
        return outcome.payload.strip() or None
    if isinstance(outcome, Failure) and outcome.kind is not FailureKind.NETWORK_ERROR:
        logger.info("Enrichment skipped (%s): %s", outcome.kind.value, outcome.detail)
    return None
