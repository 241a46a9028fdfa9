"""
models.py -- Pydantic models for emotion classification and guidance.

Defines: EmotionMapping, EmotionAnalysisResult, IntensityModifier, MeditationPrompt.
All data crossing component boundaries uses these models.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


NEUTRAL_EMOTION: str = "neutral"


# ---------------------------------------------------------------------------
# Mapping Store payload -- the four lookup tables
# ---------------------------------------------------------------------------

def _is_blank(value: object) -> bool:
    return not isinstance(value, str) or not value.strip()


class EmotionMapping(BaseModel):
    """
    The four tables that parameterize classification and content.

    Keys of emotion_map form the canonical vocabulary; their insertion order
    is the tie-break order used by the local classifier. Construction fails
    with a pydantic ValidationError when the tables are not mutually
    consistent, so an instance is always safe to install.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    emotion_map: dict[str, str] = Field(alias="emotionMap")
    keyword_map: dict[str, str] = Field(alias="keywordMap")
    suggestion_map: dict[str, list[str]] = Field(alias="suggestionMap")
    emotion_summary_map: dict[str, str] = Field(alias="emotionSummaryMap")

    @model_validator(mode="after")
    def _check_consistency(self) -> "EmotionMapping":
        if not self.emotion_map:
            raise ValueError("emotionMap must not be empty")
        if NEUTRAL_EMOTION not in self.emotion_map:
            raise ValueError(f"emotionMap must contain '{NEUTRAL_EMOTION}'")

        vocabulary = set(self.emotion_map)
        for emotion_id, name in self.emotion_map.items():
            if _is_blank(emotion_id) or _is_blank(name):
                raise ValueError(f"emotionMap has an empty entry: {emotion_id!r}")

        for keyword, emotion_id in self.keyword_map.items():
            if _is_blank(keyword):
                raise ValueError("keywordMap has an empty keyword")
            if emotion_id not in vocabulary:
                raise ValueError(f"keyword {keyword!r} points to unknown emotion {emotion_id!r}")

        for emotion_id, phrases in self.suggestion_map.items():
            if emotion_id not in vocabulary:
                raise ValueError(f"suggestionMap has unknown emotion {emotion_id!r}")
            if not phrases or any(_is_blank(p) for p in phrases):
                raise ValueError(f"suggestionMap[{emotion_id!r}] must be non-empty strings")

        for emotion_id, summary in self.emotion_summary_map.items():
            if emotion_id not in vocabulary:
                raise ValueError(f"emotionSummaryMap has unknown emotion {emotion_id!r}")
            if _is_blank(summary):
                raise ValueError(f"emotionSummaryMap[{emotion_id!r}] is empty")

        return self

    def to_json_dict(self) -> dict:
        """Serialize with the camelCase table names used on disk and on the wire."""
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Classification output
# ---------------------------------------------------------------------------

class EmotionAnalysisResult(BaseModel):
    """Outcome of one classification call. Not persisted."""

    model_config = ConfigDict(frozen=True)

    emotion: str
    confidence: float = Field(ge=0.0, le=1.0)
    suggestions: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Intensity modifiers -- consulted only by the local classifier
# ---------------------------------------------------------------------------

class IntensityModifier(BaseModel):
    """A phrase that scales the keyword immediately following it."""

    model_config = ConfigDict(frozen=True)

    phrase: str
    multiplier: float

    @property
    def kind(self) -> str:
        if self.multiplier < 0:
            return "negator"
        if self.multiplier > 1:
            return "amplifier"
        return "attenuator"


# ---------------------------------------------------------------------------
# Meditation request
# ---------------------------------------------------------------------------

class MeditationPrompt(BaseModel):
    """Caller request for one meditation script."""

    type: str
    scene: str
    duration: Optional[int] = Field(default=None, ge=1, description="Minutes")
