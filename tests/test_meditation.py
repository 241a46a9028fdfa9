# tests/test_meditation.py

"""Tests for meditation script generation, affirmation text and audio fallback."""

from __future__ import annotations

from typing import Optional

import httpx
import pytest

from engine.meditation import (
    BODIES,
    BREATHING_GUIDE,
    INTROS,
    MEDITATIONS,
    ContentGenerator,
    build_phase_script,
    build_template_script,
    compose_affirmation,
    get_outro,
    recommend_meditation,
)
from engine.speech import (
    DEFAULT_AUDIO,
    HttpSpeechSynthesizer,
    SpeechSynthesisError,
    default_audio_for,
    generate_meditation_audio,
)
from mood.models import EmotionAnalysisResult, MeditationPrompt
from tests.helpers import generated, hf_generator, make_gateway, request_prompt

SLEEP = MeditationPrompt(type="sleep", scene="星空下的湖面")


def failing(request):
    return httpx.Response(503)


def generator_for(handler, providers=None) -> ContentGenerator:
    return ContentGenerator(make_gateway(handler), [hf_generator()] if providers is None else providers)


# ---------------------------------------------------------------------------
# Script generation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_all_providers_fail_uses_template():
    generator = generator_for(failing, [hf_generator("a"), hf_generator("b")])
    script = await generator.generate_script(SLEEP)

    assert script == build_template_script(SLEEP)
    assert script.startswith(INTROS["sleep"])
    assert "星空下的湖面" in script
    assert BREATHING_GUIDE in script
    assert BODIES["sleep"] in script
    assert script.endswith("祝你好梦...")


@pytest.mark.asyncio
async def test_second_provider_answers():
    def handler(request):
        if request.url.path.endswith("/first"):
            return httpx.Response(500)
        return generated("  请轻轻闭上眼睛。  ")

    generator = generator_for(handler, [hf_generator("first"), hf_generator("second")])
    assert await generator.generate_script(SLEEP) == "请轻轻闭上眼睛。"


@pytest.mark.asyncio
async def test_prompt_mentions_type_scene_and_emotion():
    prompts = []

    def handler(request):
        prompts.append(request_prompt(request))
        return generated("引导词")

    prompt = MeditationPrompt(type="anxiety", scene="空旷的草原", duration=10)
    await generator_for(handler).generate_script(prompt, emotion="焦虑")

    assert MEDITATIONS["anxiety"]["title"] in prompts[0]
    assert "空旷的草原" in prompts[0]
    assert "焦虑" in prompts[0]
    assert "10分钟" in prompts[0]


@pytest.mark.asyncio
async def test_no_providers_uses_template_without_calls():
    def handler(request):
        raise AssertionError("no remote call expected")

    generator = generator_for(handler, providers=[])
    prompt = MeditationPrompt(type="focus", scene="清澈的溪流")
    assert await generator.generate_script(prompt) == build_template_script(prompt)


def test_music_only_template_has_no_breathing_or_outro():
    prompt = MeditationPrompt(type="sleep-music", scene="雨声")
    script = build_template_script(prompt)

    assert BREATHING_GUIDE not in script
    assert get_outro("sleep-music") == ""
    assert script.startswith(INTROS["sleep-music"])
    assert "现在，雨声" in script


def test_unknown_type_uses_generic_fragments():
    prompt = MeditationPrompt(type="walking", scene="林间小路")
    script = build_template_script(prompt)

    assert script.startswith("让我们开始今天的冥想练习...")
    assert "林间小路" in script
    assert script.endswith("愿你拥有美好的一天...")


def test_phase_scripts_in_order():
    phases = ContentGenerator(make_gateway(failing)).generate_phase_scripts(SLEEP)

    assert len(phases) == 3
    assert phases[0].startswith(INTROS["sleep"])
    assert "让我们进入星空下的湖面的意境" in phases[0]
    assert "现在，星空下的湖面" in phases[1]
    assert phases[2].endswith("祝你好梦...")


def test_unknown_phase_raises():
    with pytest.raises(ValueError):
        build_phase_script(SLEEP, "middle")


# ---------------------------------------------------------------------------
# Recommendation and affirmation
# ---------------------------------------------------------------------------


def test_recommend_meditation_by_emotion_name():
    assert recommend_meditation("焦虑").type == "anxiety"
    assert recommend_meditation("喜悦").type == "morning"
    fallback = recommend_meditation("不存在的情绪")
    assert fallback.type == "emotion"


def test_compose_affirmation_splits_summary_and_comfort():
    result = EmotionAnalysisResult(emotion="悲伤", confidence=0.8, suggestions=["总结", "安慰一", "安慰二"])
    message = compose_affirmation("我很难过", result, scene="宁静的湖边")

    assert message.startswith('今天我听到你说："我很难过"')
    assert "总结\n\n安慰一\n\n安慰二" in message
    assert message.endswith("推荐冥想场景：宁静的湖边")


def test_compose_affirmation_without_suggestions():
    result = EmotionAnalysisResult(emotion="欢喜", confidence=0.7)
    message = compose_affirmation("欢喜", result)

    assert "我感受到你的欢喜" in message
    assert "让我们一起保持积极的心态" in message
    assert "推荐冥想场景" not in message


# ---------------------------------------------------------------------------
# Speech
# ---------------------------------------------------------------------------


class FakeSynthesizer:
    def __init__(self, exc: Optional[Exception] = None):
        self.exc = exc
        self.texts: list[str] = []

    async def synthesize(self, text: str, voice_profile: Optional[str] = None) -> str:
        self.texts.append(text)
        if self.exc is not None:
            raise self.exc
        return "/audio/out.wav"


@pytest.mark.asyncio
async def test_audio_from_synthesized_script():
    synthesizer = FakeSynthesizer()
    generator = generator_for(failing)

    path = await generate_meditation_audio(SLEEP, generator, synthesizer)

    assert path == "/audio/out.wav"
    assert synthesizer.texts == [build_template_script(SLEEP)]


@pytest.mark.asyncio
@pytest.mark.parametrize("exc", [SpeechSynthesisError("TTS returned 500"), OSError("disk full")])
async def test_audio_falls_back_to_default_track(exc):
    path = await generate_meditation_audio(SLEEP, generator_for(failing), FakeSynthesizer(exc))
    assert path == DEFAULT_AUDIO == "/meditation/music.wav"


@pytest.mark.asyncio
async def test_audio_without_synthesizer():
    prompt = MeditationPrompt(type="walking", scene="林间")
    assert await generate_meditation_audio(prompt, generator_for(failing), None) == DEFAULT_AUDIO


@pytest.mark.parametrize("meditation_type", [*MEDITATIONS, "walking"])
def test_every_type_falls_back_to_bundled_music(meditation_type):
    assert default_audio_for(meditation_type) == DEFAULT_AUDIO


@pytest.mark.asyncio
async def test_http_synthesizer_writes_wav(tmp_path):
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, content=b"RIFF....WAVE", headers={"content-type": "audio/wav"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    synthesizer = HttpSpeechSynthesizer(client, "https://tts.test/tts", tmp_path / "audio")

    path = await synthesizer.synthesize("吸气...呼气...", voice_profile="calm-voice")

    assert seen["params"]["text"] == "吸气...呼气..."
    assert seen["params"]["ref_audio_path"] == "calm-voice"
    assert path.endswith(".wav")
    with open(path, "rb") as fh:
        assert fh.read() == b"RIFF....WAVE"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"error": "model not loaded"}),
        httpx.Response(500, content=b"", headers={"content-type": "audio/wav"}),
    ],
)
async def test_http_synthesizer_rejects_non_audio(tmp_path, response):
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: response))
    synthesizer = HttpSpeechSynthesizer(client, "https://tts.test/tts", tmp_path)

    with pytest.raises(SpeechSynthesisError):
        await synthesizer.synthesize("你好")


@pytest.mark.asyncio
async def test_http_synthesizer_connection_error(tmp_path):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    with pytest.raises(SpeechSynthesisError):
        await HttpSpeechSynthesizer(client, "https://tts.test/tts", tmp_path).synthesize("你好")
