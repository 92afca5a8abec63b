from __future__ import annotations

from json import JSONDecodeError
from typing import Sequence

from loguru import logger

from ..segments import DialogueSegment, SpeakerProfile
from ..voices import VOICE_NAMES, default_voice_for, voice_catalog_text
from .translate.backend import TextGenerator, _extract_first_json_object

_MAX_CONTEXT_CHARS = 4000


def ensure_context_length(text: str, max_length: int = _MAX_CONTEXT_CHARS) -> str:
    if len(text) <= max_length:
        return text
    mid = len(text) // 2
    length = max_length // 2
    before = text[:mid]
    after = text[mid:]
    return before[:length] + after[-length:]


def build_casting_prompt(dialogue: str) -> str:
    return (
        "You are an expert voice casting director. Your task is to create a profile for a speaker for voice dubbing.\n\n"
        "Analyze the speaker's likely gender, age, and emotional tone based on their dialogue.\n\n"
        "Then, review the following catalog of available voices and select the single best voice that matches "
        "the speaker's profile.\n\n"
        f"**Available Voice Catalog:**\n{voice_catalog_text()}\n\n"
        f'**Dialogue Context:** "{dialogue}"\n\n'
        'Respond ONLY with a single JSON object with this exact structure: '
        '{ "gender": "string", "age": "string", "emotion": "string", "voiceName": "string" }.\n'
        'The value for "voiceName" MUST be one of the names from the "Available Voice Catalog" provided above.'
    )


def _profile_from_reply(speaker_id: str, reply: str) -> SpeakerProfile:
    data = _extract_first_json_object(reply)
    gender = str(data.get("gender") or "unknown").strip()
    voice = str(data.get("voiceName") or "").strip()
    if voice not in VOICE_NAMES:
        fallback = default_voice_for(gender)
        logger.warning(f"说话人 {speaker_id} 的音色 {voice!r} 不在音色表中，回退为 {fallback}")
        voice = fallback
    return SpeakerProfile(
        id=speaker_id,
        gender=gender,
        age=str(data.get("age") or "adult").strip(),
        emotion=str(data.get("emotion") or "neutral").strip(),
        voice_name=voice,
    )


def analyze_speakers(
    segments: Sequence[DialogueSegment],
    generator: TextGenerator,
    default_voice: str = "Kore",
) -> dict[str, SpeakerProfile]:
    """Cast one catalog voice per unique speaker, in order of first appearance."""
    profiles: dict[str, SpeakerProfile] = {}
    speaker_ids = list(dict.fromkeys(s.speaker_id for s in segments))
    for speaker_id in speaker_ids:
        lines = [s.transcription for s in segments if s.speaker_id == speaker_id and s.transcription]
        dialogue = ensure_context_length(" ".join(lines))
        try:
            reply = generator.generate(build_casting_prompt(dialogue))
            profile = _profile_from_reply(speaker_id, reply)
        except (ValueError, JSONDecodeError) as exc:
            logger.warning(f"说话人分析结果解析失败 ({speaker_id})，使用默认音色: {exc}")
            profile = SpeakerProfile(speaker_id, "unknown", "adult", "neutral", default_voice_for(None, default_voice))
        except Exception as exc:
            logger.warning(f"说话人分析请求失败 ({speaker_id})，使用默认音色: {exc}")
            profile = SpeakerProfile(speaker_id, "unknown", "adult", "neutral", default_voice_for(None, default_voice))
        logger.info(f"说话人 {speaker_id}: {profile.describe()} -> {profile.voice_name}")
        profiles[speaker_id] = profile
    return profiles
