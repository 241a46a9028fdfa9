"""Shared pytest fixtures for mapping stores."""

from __future__ import annotations

from typing import Any

import pytest

from mood.adapters.json_store import JsonFileStore
from mood.defaults import DEFAULT_MAPPING
from mood.mapping_store import MappingStore
from mood.models import EmotionMapping


# ---------------------------------------------------------------------------
# Mapping fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def default_mapping() -> EmotionMapping:
    return DEFAULT_MAPPING


@pytest.fixture
def json_store(tmp_path) -> JsonFileStore:
    return JsonFileStore(tmp_path / "cache")


@pytest.fixture
def store(json_store) -> MappingStore:
    return MappingStore(json_store)


@pytest.fixture
def small_mapping_dict() -> dict[str, Any]:
    return {
        "emotionMap": {"calm": "安宁", "neutral": "平静", "joy": "欢喜"},
        "keywordMap": {"安心": "calm", "欢喜": "joy", "还行": "neutral"},
        "suggestionMap": {
            "calm": ["保持这份安宁"],
            "neutral": ["平静也很好"],
            "joy": ["分享你的欢喜"],
        },
        "emotionSummaryMap": {
            "calm": "你很安宁",
            "neutral": "你很平静",
            "joy": "你很欢喜",
        },
    }
