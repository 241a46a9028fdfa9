# tests/test_mapping_store.py

"""Unit tests for mood.mapping_store and the EmotionMapping validation rules."""

from __future__ import annotations

import copy
import json
import threading

import pytest

from mood.adapters.json_store import JsonFileStore
from mood.defaults import DEFAULT_MAPPING
from mood.mapping_store import SNAPSHOT_KEY, MappingStore
from mood.models import EmotionMapping


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_default_mapping_is_served_initially(store):
    assert store.get() is DEFAULT_MAPPING
    assert store.is_default
    assert len(store.get().emotion_map) == 8
    assert store.get().emotion_map["happiness"] == "喜悦"


def test_default_mapping_is_self_consistent():
    # Re-validating the embedded tables must not raise.
    EmotionMapping.model_validate(DEFAULT_MAPPING.to_json_dict())


# ---------------------------------------------------------------------------
# try_set -- accepted candidates
# ---------------------------------------------------------------------------


def test_valid_candidate_is_installed_and_persisted(store, json_store, small_mapping_dict):
    assert store.try_set(small_mapping_dict) is True

    current = store.get()
    assert not store.is_default
    assert current == EmotionMapping.model_validate(small_mapping_dict)
    assert list(current.emotion_map) == ["calm", "neutral", "joy"]

    raw = json_store.get(SNAPSHOT_KEY)
    assert raw is not None
    assert json.loads(raw)["emotionMap"]["joy"] == "欢喜"
    assert store.load_persisted() == current


def test_accepts_emotion_mapping_instance(store, small_mapping_dict):
    candidate = EmotionMapping.model_validate(small_mapping_dict)
    assert store.try_set(candidate)
    assert store.get() == candidate


def test_persist_false_skips_write(store, json_store, small_mapping_dict):
    assert store.try_set(small_mapping_dict, persist=False)
    assert json_store.get(SNAPSHOT_KEY) is None


# ---------------------------------------------------------------------------
# try_set -- rejected candidates
# ---------------------------------------------------------------------------


def _missing_table(m):
    del m["suggestionMap"]


def _null_table(m):
    m["keywordMap"] = None


def _empty_emotions(m):
    m["emotionMap"] = {}


def _dangling_keyword(m):
    m["keywordMap"]["生气"] = "anger"


def _empty_suggestion_list(m):
    m["suggestionMap"]["calm"] = []


def _blank_suggestion(m):
    m["suggestionMap"]["calm"] = ["  "]


def _unknown_summary_key(m):
    m["emotionSummaryMap"]["anger"] = "你很生气"


def _blank_summary(m):
    m["emotionSummaryMap"]["joy"] = ""


def _blank_display_name(m):
    m["emotionMap"]["joy"] = ""


def _non_string_leaf(m):
    m["emotionMap"]["joy"] = 42


def _no_neutral(m):
    m["emotionMap"].pop("neutral")
    m["keywordMap"].pop("还行")
    m["suggestionMap"].pop("neutral")
    m["emotionSummaryMap"].pop("neutral")


@pytest.mark.parametrize(
    "mutate",
    [
        _missing_table,
        _null_table,
        _empty_emotions,
        _dangling_keyword,
        _empty_suggestion_list,
        _blank_suggestion,
        _unknown_summary_key,
        _blank_summary,
        _blank_display_name,
        _non_string_leaf,
        _no_neutral,
    ],
)
def test_invalid_candidate_is_rejected_whole(store, json_store, small_mapping_dict, mutate):
    candidate = copy.deepcopy(small_mapping_dict)
    mutate(candidate)

    assert store.try_set(candidate) is False
    assert store.get() is DEFAULT_MAPPING
    assert json_store.get(SNAPSHOT_KEY) is None


def test_rejection_keeps_previous_refreshed_mapping(store, small_mapping_dict):
    assert store.try_set(small_mapping_dict)
    installed = store.get()

    bad = copy.deepcopy(small_mapping_dict)
    bad["keywordMap"]["难过"] = "sadness"
    assert store.try_set(bad) is False
    assert store.get() is installed


def test_non_mapping_candidate_is_rejected(store):
    assert store.try_set(["not", "a", "mapping"]) is False
    assert store.try_set(None) is False
    assert store.is_default


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class _BrokenStore:
    def get(self, key):
        raise OSError("disk gone")

    def set(self, key, value):
        raise OSError("disk full")


def test_persist_failure_does_not_fail_swap(small_mapping_dict):
    store = MappingStore(_BrokenStore())
    assert store.try_set(small_mapping_dict) is True
    assert store.get().emotion_map["calm"] == "安宁"


def test_load_persisted_read_failure_returns_none():
    assert MappingStore(_BrokenStore()).load_persisted() is None


def test_load_persisted_absent(store):
    assert store.load_persisted() is None


def test_load_persisted_without_persistence():
    assert MappingStore().load_persisted() is None


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        json.dumps({"emotionMap": {"neutral": "平静"}}),
        json.dumps({
            "emotionMap": {"neutral": "平静"},
            "keywordMap": {"开心": "happiness"},
            "suggestionMap": {},
            "emotionSummaryMap": {},
        }),
    ],
)
def test_corrupt_snapshot_is_ignored(json_store, payload):
    json_store.set(SNAPSHOT_KEY, payload)
    assert MappingStore(json_store).load_persisted() is None


def test_snapshot_survives_restart(tmp_path, small_mapping_dict):
    first = MappingStore(JsonFileStore(tmp_path))
    assert first.try_set(small_mapping_dict)

    second = MappingStore(JsonFileStore(tmp_path))
    assert second.is_default
    assert second.load_persisted() == first.get()


class _LockCheckingStore:
    def __init__(self):
        self.owner = None
        self.lock_held_during_write: list[bool] = []

    def get(self, key):
        return None

    def set(self, key, value):
        self.lock_held_during_write.append(self.owner._write_lock.locked())


def test_snapshot_is_written_after_the_swap_lock_is_released(small_mapping_dict):
    persistence = _LockCheckingStore()
    store = MappingStore(persistence)
    persistence.owner = store

    assert store.try_set(small_mapping_dict)
    assert persistence.lock_held_during_write == [False]


def test_save_snapshot_writes_active_mapping(store, json_store, small_mapping_dict):
    store.try_set(small_mapping_dict, persist=False)
    store.save_snapshot()
    assert MappingStore(json_store).load_persisted() == store.get()


# ---------------------------------------------------------------------------
# Concurrent access
# ---------------------------------------------------------------------------


def _variant(base: dict, n: int) -> dict:
    candidate = copy.deepcopy(base)
    candidate["emotionMap"]["joy"] = f"欢喜{n}"
    candidate["suggestionMap"]["joy"] = [f"分享你的欢喜{n}"]
    candidate["emotionSummaryMap"]["joy"] = f"你很欢喜{n}"
    return candidate


def test_concurrent_writers_never_expose_a_mixed_mapping(small_mapping_dict):
    candidates = [_variant(small_mapping_dict, n) for n in range(4)]
    allowed = [DEFAULT_MAPPING, *(EmotionMapping.model_validate(c) for c in candidates)]
    store = MappingStore()
    start = threading.Barrier(len(candidates) + 2)
    observed: dict[int, EmotionMapping] = {}
    rejected: list[int] = []

    def write(n: int) -> None:
        start.wait()
        for _ in range(50):
            if not store.try_set(candidates[n], persist=False):
                rejected.append(n)

    def read() -> None:
        start.wait()
        for _ in range(2000):
            snapshot = store.get()
            observed[id(snapshot)] = snapshot

    threads = [threading.Thread(target=write, args=(n,)) for n in range(len(candidates))]
    threads += [threading.Thread(target=read) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert rejected == []
    assert observed
    for snapshot in observed.values():
        assert any(snapshot == mapping for mapping in allowed)
    assert any(store.get() == EmotionMapping.model_validate(c) for c in candidates)


def test_reset_restores_default(store, small_mapping_dict):
    store.try_set(small_mapping_dict)
    store.reset()
    assert store.get() is DEFAULT_MAPPING


def test_json_store_rejects_unsafe_keys(json_store):
    with pytest.raises(ValueError):
        json_store.set("../escape", "{}")
