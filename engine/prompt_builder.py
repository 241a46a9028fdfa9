"""
prompt_builder.py -- Prompt assembly for every remote generation call.

Two layers per request:
Layer 1 (Role): system text establishing a warm, professional counselor voice
Layer 2 (Task): the concrete ask, with the user's words and detected emotion

Mapping-regeneration prompts demand a bare JSON object so the refresher can
validate the answer; content prompts ask for plain text only.
"""

import logging
from typing import Optional

from engine.gateway import ProviderRequest
from mood.defaults import EMOTION_MAP
from mood.models import MeditationPrompt

logger = logging.getLogger(__name__)

COUNSELOR_ROLE: str = (
    "你是一位温暖、专业的心理咨询师，擅长倾听与情绪疏导。"
    "你的回答使用简体中文，语气自然、真诚、不说教。"
)

JSON_ONLY: str = "只输出一个JSON对象，不要输出任何解释、前缀或代码块标记。"


def _emotion_list(emotion_ids: list[str]) -> str:
    return ", ".join(emotion_ids)


# -- Mapping regeneration --------------------------------------------------------

def build_emotion_map_request() -> ProviderRequest:
    """Ask for canonical English emotion id -> Chinese display name."""
    prompt = (
        "请生成一个情绪英文到中文的映射，格式为JSON对象，key为英文情绪名，"
        "value为对应的中文翻译。包括：" + _emotion_list(list(EMOTION_MAP)) + " 等基础情绪。"
        + JSON_ONLY
    )
    return ProviderRequest(prompt=prompt, system=COUNSELOR_ROLE, parameters={"max_length": 200, "temperature": 0.1})


def build_keyword_map_request() -> ProviderRequest:
    """Ask for Chinese keyword -> canonical emotion id. Runs before the emotion ids are known."""
    prompt = (
        "请生成一个中文情绪关键词到英文情绪的映射，格式为JSON对象。key为中文情绪词，"
        "value为对应的英文情绪分类（" + _emotion_list(list(EMOTION_MAP)) + "）。"
        "每个情绪分类至少包含5个常用的中文情绪词。" + JSON_ONLY
    )
    return ProviderRequest(prompt=prompt, system=COUNSELOR_ROLE, parameters={"max_length": 500, "temperature": 0.1})


def build_suggestion_map_request(emotion_ids: list[str]) -> ProviderRequest:
    prompt = (
        "请为以下每种情绪生成3条温暖、专业的心理安抚建议语。每条建议应该体现同理心、专业性和支持性。"
        f"情绪列表：{_emotion_list(emotion_ids)}。"
        "输出格式为JSON对象，key为情绪英文名，value为建议语数组。" + JSON_ONLY
    )
    return ProviderRequest(prompt=prompt, system=COUNSELOR_ROLE, parameters={"max_length": 1000, "temperature": 0.7})


def build_summary_map_request(emotion_ids: list[str]) -> ProviderRequest:
    prompt = (
        "请为以下每种情绪生成一段精准的心理分析总结，总结应该简洁专业，体现对该情绪状态的深入理解。"
        f"情绪列表：{_emotion_list(emotion_ids)}。"
        "输出格式为JSON对象，key为情绪英文名，value为分析总结。" + JSON_ONLY
    )
    return ProviderRequest(prompt=prompt, system=COUNSELOR_ROLE, parameters={"max_length": 800, "temperature": 0.3})


# -- Per-utterance enrichment ---------------------------------------------------

def build_commentary_request(text: str, emotion_name: str, confidence: float) -> ProviderRequest:
    """Short personalized reading of the user's emotional state."""
    prompt = "\n".join([
        "基于以下信息生成一段温暖、专业的情绪分析和建议：",
        f"用户说：\"{text}\"",
        f"检测到的情绪：{emotion_name}",
        f"情绪强度：{confidence * 100:.1f}%",
        "",
        "请生成一段简短的回应，包含：",
        "1. 对用户情绪状态的专业理解",
        "2. 温暖的支持和理解",
        "3. 积极的建议或引导",
        "",
        "要求：",
        "- 语言要自然、温暖",
        "- 要体现专业性",
        "- 要基于用户实际说的内容",
        "- 长度控制在100字以内",
    ])
    return ProviderRequest(
        prompt=prompt, system=COUNSELOR_ROLE,
        parameters={"max_length": 300, "temperature": 0.7, "top_p": 0.9},
    )


def build_scene_request(text: str, emotion_name: str, time_context: str) -> ProviderRequest:
    """A short, sensory meditation scene suited to the emotion and time of day."""
    prompt = "\n".join([
        "基于以下信息，推荐一个适合冥想的场景：",
        f"用户说：\"{text}\"",
        f"当前情绪：{emotion_name}",
        f"当前时间：{time_context}",
        "",
        "请生成一段场景描述，要求：",
        f"1. 场景要契合用户的情绪状态，针对{emotion_name}情绪提供治愈和平衡的场景",
        f"2. 考虑当前是{time_context}，描述相应的光线和氛围",
        "3. 场景描述要有代入感和画面感，包含视觉、听觉、触觉等多种感官元素",
        "4. 要包含环境声音的描述和自然元素",
        "5. 长度控制在60字以内",
        "6. 不要包含\"推荐冥想场景：\"这个前缀",
        "7. 描述要能够引导用户进入放松状态",
        "",
        "示例：",
        "宁静的海边，温柔的波浪声轻轻拍打着沙滩，晚风送来淡淡的咸味，"
        "远处的灯塔为夜空点亮一盏明灯，星光如碎钻洒落海面。",
    ])
    return ProviderRequest(
        prompt=prompt, system=COUNSELOR_ROLE,
        parameters={"max_length": 300, "temperature": 0.8, "top_p": 0.9},
    )


# -- Meditation scripts -----------------------------------------------------------

def build_meditation_request(
    prompt: MeditationPrompt,
    type_title: str,
    emotion: Optional[str] = None,
) -> ProviderRequest:
    """Full guided-meditation script for one (type, scene[, emotion]) request."""
    lines = [
        f"请写一段「{type_title}」类型的冥想引导词。",
        f"冥想场景：{prompt.scene}",
    ]
    if emotion:
        lines.append(f"练习者当前的情绪：{emotion}")
    if prompt.duration:
        lines.append(f"引导时长约{prompt.duration}分钟，请据此控制篇幅。")
    lines.extend([
        "",
        "结构要求：",
        "1. 开场：邀请练习者安顿身体",
        "2. 呼吸引导：用省略号表示停顿，例如「吸气...2...3...4...」",
        "3. 主体：在上述场景中展开引导，场景描述要具体",
        "4. 结束：温柔地把注意力带回当下",
        "",
        "只输出引导词正文，不要标题，不要解释。",
    ])
    logger.info("Assembled meditation prompt: type='%s', emotion='%s'", prompt.type, emotion or "-")
    return ProviderRequest(
        prompt="\n".join(lines),
        system=COUNSELOR_ROLE + "你同时是一位经验丰富的冥想导师。",
        parameters={"max_length": 1200, "temperature": 0.7},
    )
