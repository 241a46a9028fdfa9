"""
classifier.py -- Deterministic keyword-scoring emotion classifier.

Responsibility:
- Count keyword hits per canonical emotion
- Scale each hit by the intensity modifier immediately preceding it
- Pick the dominant emotion and derive confidence and suggestions

Pure function of (text, mapping, modifiers). No network, never fails.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from mood.defaults import (
    INTENSITY_MODIFIERS,
    STRONG_INTENSITY_REMARK,
    SUBTLE_INTENSITY_REMARK,
)
from mood.models import NEUTRAL_EMOTION, EmotionAnalysisResult, EmotionMapping, IntensityModifier

logger = logging.getLogger(__name__)

BASE_CONFIDENCE: float = 0.6
CONFIDENCE_PER_POINT: float = 0.2
COUNT_WEIGHT: float = 0.5
INTENSITY_WEIGHT: float = 0.5

# Negators win over amplifiers, amplifiers over attenuators.
_GROUP_PRIORITY: dict[str, int] = {"negator": 0, "amplifier": 1, "attenuator": 2}


def order_modifiers(modifiers: Iterable[IntensityModifier]) -> list[IntensityModifier]:
    """Sort modifiers into match order: group priority, then longest phrase, then table order."""
    indexed = list(enumerate(modifiers))
    indexed.sort(key=lambda pair: (_GROUP_PRIORITY[pair[1].kind], -len(pair[1].phrase), pair[0]))
    return [m for _, m in indexed]


def keyword_multiplier(text: str, keyword: str, ordered: Sequence[IntensityModifier]) -> float:
    """Return the multiplier of the first modifier found directly before keyword, else 1."""
    for modifier in ordered:
        if modifier.phrase + keyword in text:
            return modifier.multiplier
    return 1.0


def classify(
    text: str,
    mapping: EmotionMapping,
    modifiers: Iterable[IntensityModifier] = INTENSITY_MODIFIERS,
) -> EmotionAnalysisResult:
    """
    Classify text against the mapping's keyword table.

    Each keyword found in text adds 1 to its emotion's count and its
    modifier multiplier (default 1) to the emotion's intensity. Score is
    0.5*count + 0.5*intensity; the strictly highest score wins, ties go to
    the emotion listed first in emotion_map, and no positive score means
    neutral. Confidence is min(1, 0.6 + 0.2*score).
    """
    ordered = order_modifiers(modifiers)
    tally: dict[str, dict[str, float]] = {
        emotion_id: {"count": 0, "intensity": 0.0} for emotion_id in mapping.emotion_map
    }

    if text:
        for keyword, emotion_id in mapping.keyword_map.items():
            if keyword not in text:
                continue
            tally[emotion_id]["count"] += 1
            tally[emotion_id]["intensity"] += keyword_multiplier(text, keyword, ordered)

    dominant = NEUTRAL_EMOTION
    max_score = 0.0
    for emotion_id, acc in tally.items():
        score = COUNT_WEIGHT * acc["count"] + INTENSITY_WEIGHT * acc["intensity"]
        if score > max_score:
            max_score = score
            dominant = emotion_id

    confidence = min(1.0, BASE_CONFIDENCE + CONFIDENCE_PER_POINT * max_score)

    suggestions: list[str] = []
    summary = mapping.emotion_summary_map.get(dominant)
    if summary:
        suggestions.append(summary)
    suggestions.extend(mapping.suggestion_map.get(dominant, []))

    intensity = tally[dominant]["intensity"]
    if intensity > 1:
        suggestions.append(STRONG_INTENSITY_REMARK)
    elif 0 < intensity < 1:
        suggestions.append(SUBTLE_INTENSITY_REMARK)

    logger.debug(
        "Local classification: dominant=%s score=%.2f intensity=%.2f",
        dominant,
        max_score,
        intensity,
    )

    return EmotionAnalysisResult(
        emotion=mapping.emotion_map[dominant],
        confidence=confidence,
        suggestions=suggestions,
    )
