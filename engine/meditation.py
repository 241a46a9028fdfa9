"""
meditation.py -- Meditation catalog, templates and script generation.

generate_script() tries each configured generation provider in priority
order and returns the first usable text. When every provider fails, the
script is assembled from four per-type template fragments:
intro, breathing guide, type body (with the caller's scene), outro.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Optional

from engine.gateway import ProviderConfig, ProviderGateway, Success
from engine.prompt_builder import build_meditation_request
from mood.models import EmotionAnalysisResult, MeditationPrompt

logger = logging.getLogger(__name__)

# -- Catalog -------------------------------------------------------------------

MEDITATIONS: dict[str, dict[str, Any]] = {
    "sleep": {
        "title": "睡前放松",
        "description": "放下今天的重量，温柔入眠",
        "scene": "想象自己躺在柔软的云朵上，随着轻柔的夜风缓缓飘荡...",
    },
    "morning": {
        "title": "早安觉醒",
        "description": "以清晰和勇气开启新的一天",
        "scene": "晨光透过树叶洒在你的脸上，带来温暖的能量...",
    },
    "work": {
        "title": "工作小憩",
        "description": "10分钟安静，让注意力归位",
        "scene": "在繁忙中找到一片宁静的绿洲，让思绪沉淀...",
    },
    "emotion": {
        "title": "情绪疗愈",
        "description": "不被情绪压垮，用声音自我复位",
        "scene": "让温暖的阳光照进心房，融化所有的不安...",
    },
    "wealth": {
        "title": "财富显化",
        "description": "打开丰盛之门，激活内在信念",
        "scene": "宇宙的能量在你周围流动，带来无限的可能...",
    },
    "energy": {
        "title": "重启能量",
        "description": "在倦怠中恢复自我火力与动力",
        "scene": "感受内在的火焰重新燃起，温暖全身...",
    },
    "anxiety": {
        "title": "焦虑释放",
        "description": "学会让情绪缓缓流动、排解焦虑",
        "scene": "像树叶一样轻轻飘落，随风舞动...",
    },
    "focus": {
        "title": "专注练习",
        "description": "训练脑力聚焦，减少分心想法",
        "scene": "注意力如明亮的光束，照亮前方的道路...",
    },
    "compassion": {
        "title": "自我慈悲",
        "description": "给自己一份不带评判的接纳",
        "scene": "用温柔的目光看待自己，接纳所有的不完美...",
    },
    "sos": {
        "title": "情绪崩溃SOS",
        "description": "急救式语音支持，帮你稳住当下",
        "scene": "在风暴中找到安全的港湾，慢慢平静下来...",
    },
    "breathing": {
        "title": "呼吸引导",
        "description": "进入身体节奏，静静跟随呼吸",
        "scene": "随着海浪的节奏，深深地呼吸...",
    },
    "sleep-music": {
        "title": "伴你入眠（无语音）",
        "description": "纯音乐 / 自然音，辅助快速入眠",
        "scene": "在舒缓的音乐中，慢慢进入梦乡...",
    },
}

# -- Template fragments ---------------------------------------------------------

INTROS: dict[str, str] = {
    "sleep": "让我们开始今晚的睡前放松冥想。请找一个舒适的位置躺下，深呼吸几次...",
    "morning": "早安。让我们以平和的心态开启新的一天。请保持坐姿放松...",
    "work": "接下来的10分钟，让我们暂时放下工作，给心灵一个小憩的空间...",
    "emotion": "不论此刻的你感受如何，让我们一起进入内心的空间...",
    "wealth": "让我们开始财富能量的冥想之旅，打开内在的丰盛之门...",
    "energy": "让我们一起唤醒内在的能量，重新找回生命的活力...",
    "anxiety": "现在，让我们一起进入平静的空间，温柔地面对焦虑...",
    "focus": "让我们开始专注力的训练，找回清晰的心智状态...",
    "compassion": "让我们开始自我慈悲的练习，学会温柔地对待自己...",
    "sos": "不要担心，我在这里陪着你。让我们一起度过这个时刻...",
    "breathing": "让我们跟随呼吸的节奏，找回内在的平静...",
    "sleep-music": "让轻柔的音乐带你进入宁静的梦乡...",
}
DEFAULT_INTRO: str = "让我们开始今天的冥想练习..."

BODIES: dict[str, str] = {
    "sleep": "让每一次呼吸都带走今天的疲惫，感受身体渐渐放松，准备进入甜美的梦乡...",
    "morning": "让晨光唤醒你的每一个细胞，感受新的一天带来的无限可能...",
    "work": "让注意力轻轻回到当下，感受内在的清明与专注...",
    "emotion": "温柔地觉察当下的情绪，不评判，不抗拒，只是温和地觉察与接纳...",
    "wealth": "想象丰盛的能量在你周围流动，每一次呼吸都在吸引更多的富足与机遇...",
    "energy": "感受生命能量在体内流动，唤醒每一个细胞的活力...",
    "anxiety": "让每一次呼吸都带走一些焦虑，为内心创造更多的空间与平静...",
    "focus": "将注意力轻轻带回呼吸，就像温柔地牵引一只蝴蝶落在花朵上...",
    "compassion": "用最温柔的目光看待自己，接纳当下的一切感受...",
    "sos": "记住，这一刻的感受终将过去，你是安全的，你并不孤单...",
    "breathing": "跟随呼吸的自然节律，不需要改变什么，只是觉察与陪伴...",
}

BREATHING_GUIDE: str = "\n".join([
    "让我们做几次深呼吸...",
    "吸气...2...3...4...",
    "呼气...2...3...4...5...6...",
    "再次吸气...感受空气流入身体...",
    "缓缓呼气...让所有的紧张都随之而去...",
    "继续保持这样的呼吸节奏...",
])

# Music-only sessions carry no spoken breathing guide and no outro.
SILENT_TYPES: frozenset[str] = frozenset({"sleep-music"})

PHASES: tuple[str, ...] = ("open", "develop", "close")

# Localized emotion name -> (meditation type, scene)
EMOTION_MEDITATIONS: dict[str, tuple[str, str]] = {
    "喜悦": ("morning", "阳光洒落的森林小径，鸟儿在枝头欢唱"),
    "悲伤": ("emotion", "宁静的湖边，涟漪轻轻荡漾"),
    "愤怒": ("anxiety", "平静的山谷，微风吹拂着脸颊"),
    "恐惧": ("breathing", "安全的小屋，壁炉里的火焰温暖舒适"),
    "焦虑": ("anxiety", "空旷的草原，柔软的风抚过每一寸肌肤"),
    "平静": ("focus", "清澈的溪流，水声轻快地流淌"),
    "厌恶": ("compassion", "整洁的空间，淡淡的花香弥漫"),
    "惊讶": ("energy", "宽阔的海滩，波浪有节奏地拍打岸边"),
}
DEFAULT_EMOTION_MEDITATION: tuple[str, str] = ("emotion", "让温暖的阳光照进心房，融化所有的不安")


def get_intro(meditation_type: str) -> str:
    return INTROS.get(meditation_type, DEFAULT_INTRO)


def get_breathing_guide(meditation_type: str) -> str:
    return "" if meditation_type in SILENT_TYPES else BREATHING_GUIDE


def get_body(meditation_type: str, scene: str) -> str:
    """Main section: the scene, the breathing guide, then the type-specific body."""
    parts = [f"现在，{scene}", "感受此刻的存在..."]
    breathing = get_breathing_guide(meditation_type)
    if breathing:
        parts.append(breathing)
    specific = BODIES.get(meditation_type, "")
    if specific:
        parts.append(specific)
    return "\n\n".join(parts)


def get_outro(meditation_type: str) -> str:
    if meditation_type in SILENT_TYPES:
        return ""
    closing = "祝你好梦..." if meditation_type == "sleep" else "愿你拥有美好的一天..."
    return "\n".join([
        "慢慢地，让意识回到当下...",
        "感受此刻的平静与安宁...",
        "带着这份宁静的能量，继续你的旅程...",
        closing,
    ])


def build_template_script(prompt: MeditationPrompt) -> str:
    """Deterministic script used when no provider answers."""
    sections = [get_intro(prompt.type), get_body(prompt.type, prompt.scene), get_outro(prompt.type)]
    return "\n\n".join(s for s in sections if s)


def build_phase_script(prompt: MeditationPrompt, phase: str) -> str:
    if phase == "open":
        return f"{get_intro(prompt.type)}\n让我们进入{prompt.scene}的意境..."
    if phase == "develop":
        return get_body(prompt.type, prompt.scene)
    if phase == "close":
        return get_outro(prompt.type)
    raise ValueError(f"Unknown phase: {phase}")


def recommend_meditation(emotion_name: str) -> MeditationPrompt:
    """Pick a meditation type and scene for a localized emotion name."""
    meditation_type, scene = EMOTION_MEDITATIONS.get(emotion_name, DEFAULT_EMOTION_MEDITATION)
    return MeditationPrompt(type=meditation_type, scene=scene)


def compose_affirmation(text: str, result: EmotionAnalysisResult, scene: Optional[str] = None) -> str:
    """
    Render an analysis as the message shown back to the user.

    The first suggestion is read as the summary and the rest as comfort.
    """
    suggestions = result.suggestions
    summary = suggestions[0] if suggestions else f"我感受到你的{result.emotion}"
    comfort = "\n\n".join(suggestions[1:]) or "让我们一起保持积极的心态，相信每一天都蕴含着新的可能。"
    message = f"今天我听到你说：\"{text}\"\n\n{summary}\n\n{comfort}"
    if scene:
        message += f"\n\n推荐冥想场景：{scene}"
    return message


class ContentGenerator:
    """Remote-first meditation script generator with a template floor."""

    def __init__(self, gateway: ProviderGateway, providers: Sequence[ProviderConfig] = ()) -> None:
        self.gateway = gateway
        self.providers = list(providers)

    async def generate_script(self, prompt: MeditationPrompt, emotion: Optional[str] = None) -> str:
        """Return a meditation script. Never raises."""
        if self.providers:
            title = MEDITATIONS.get(prompt.type, {}).get("title", prompt.type)
            try:
                outcome = await self.gateway.generate_text(
                    self.providers, build_meditation_request(prompt, title, emotion)
                )
            except Exception as exc:
                logger.error("Meditation generation crashed: %s", exc, exc_info=True)
            else:
                if isinstance(outcome, Success) and isinstance(outcome.payload, str) and outcome.payload.strip():
                    logger.info("Meditation script for '%s' generated by %s", prompt.type, outcome.provider)
                    return outcome.payload.strip()
                logger.warning("All meditation providers failed for '%s'; using template", prompt.type)
        return build_template_script(prompt)

    def generate_phase_scripts(self, prompt: MeditationPrompt) -> list[str]:
        """Three scripts (open, develop, close) for sequential delivery."""
        return [build_phase_script(prompt, phase) for phase in PHASES]
