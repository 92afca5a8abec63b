from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from loguru import logger

from ...segments import DialogueSegment, SpeakerProfile, TranslatedSegment
from ...voices import language_name
from .backend import TextGenerator

LENGTH_TOLERANCE = 0.15
CONTEXT_WINDOW_S = 30.0

_SYSTEM_PROMPT = "You are an expert translator specializing in video dubbing and localization."


def length_deviation(source: str, translated: str) -> float:
    """Relative character-count difference of `translated` against `source` (0.1 == 10% longer)."""
    src_len = len(source or "")
    if src_len == 0:
        return 0.0 if not translated else float("inf")
    return (len(translated or "") - src_len) / float(src_len)


def within_length_tolerance(source: str, translated: str, tolerance: float = LENGTH_TOLERANCE) -> bool:
    return abs(length_deviation(source, translated)) <= float(tolerance)


def build_optimization_prompt(
    text: str,
    target_language: str,
    context: str,
    speaker_description: str | None = None,
) -> str:
    lang = language_name(target_language)
    profile_line = f"**Character Profile:** {speaker_description}\n" if speaker_description else ""
    return (
        "Your task is to translate the following dialogue while maintaining optimal dubbing synchronization.\n\n"
        f'**Original Dialogue:** "{text}"\n'
        f"**Original Length:** {len(text)} characters\n"
        f"**Target Language:** {lang}\n"
        f'**Dialogue Context:** "{context}"\n'
        f"{profile_line}\n"
        "**Translation Guidelines:**\n"
        "1. **Phonetic Length Matching**: The translation should have a similar character count (±15%) "
        "to enable natural TTS audio generation with matching duration\n"
        "2. **Natural Flow**: Maintain the emotional tone and intent of the original speaker\n"
        "3. **Contextual Accuracy**: Consider the surrounding dialogue for proper context and avoid awkward phrasing\n"
        "4. **Speech Patterns**: Match the casualness or formality of the original speaker\n"
        "5. **Syllable Efficiency**: Use vocabulary that fits naturally within the same time frame when spoken\n\n"
        "**Important Constraints:**\n"
        "- If direct translation is too long, rephrase with equivalent meaning using shorter words\n"
        "- If direct translation is too short, expand with natural elaboration that fits the character's voice\n"
        "- Avoid literal word-for-word translation; prioritize dubbing-friendly localization\n"
        f"- The translation should feel native to a {lang} speaker, not mechanical\n\n"
        "Respond with ONLY the translated text, without any explanation or formatting."
    )


@dataclass(frozen=True)
class SpeakerRun:
    """Consecutive segments (in input order) spoken by one speaker."""

    speaker_id: str
    first_index: int
    segments: tuple[DialogueSegment, ...]

    @property
    def start_time(self) -> float:
        return float(self.segments[0].start_time)

    @property
    def last_index(self) -> int:
        return self.first_index + len(self.segments) - 1


def group_consecutive_speakers(segments: Sequence[DialogueSegment]) -> list[SpeakerRun]:
    runs: list[SpeakerRun] = []
    buffer: list[DialogueSegment] = []
    first = 0
    for idx, seg in enumerate(segments):
        if buffer and seg.speaker_id != buffer[-1].speaker_id:
            runs.append(SpeakerRun(speaker_id=buffer[-1].speaker_id, first_index=first, segments=tuple(buffer)))
            buffer = []
        if not buffer:
            first = idx
        buffer.append(seg)
    if buffer:
        runs.append(SpeakerRun(speaker_id=buffer[-1].speaker_id, first_index=first, segments=tuple(buffer)))
    return runs


def build_run_context(segments: Sequence[DialogueSegment], run: SpeakerRun, window_s: float = CONTEXT_WINDOW_S) -> str:
    """
    Context text for one speaker run: that speaker's lines starting within `window_s` of the
    run, plus the line right before and right after the run (other speakers).
    """
    picked: list[str] = []
    for idx, seg in enumerate(segments):
        near = abs(seg.start_time - run.start_time) < window_s and seg.speaker_id == run.speaker_id
        adjacent = idx == run.first_index - 1 or idx == run.last_index + 1
        if (near or adjacent) and seg.transcription:
            picked.append(seg.transcription)
    return " ".join(picked)


class TranslationOptimizer:
    """Context-aware translation tuned so dubbed speech keeps roughly the original duration."""

    def __init__(self, generator: TextGenerator, tolerance: float = LENGTH_TOLERANCE) -> None:
        self.generator = generator
        self.tolerance = float(tolerance)

    def optimize(
        self,
        text: str,
        target_language: str,
        context: str,
        speaker_description: str | None = None,
    ) -> str:
        prompt = build_optimization_prompt(text, target_language, context, speaker_description)
        result = (self.generator.generate(prompt, system=_SYSTEM_PROMPT) or "").strip()

        # Monitored only: the generator is free-form, the bound is a soft target.
        if text and not within_length_tolerance(text, result, self.tolerance):
            logger.warning(
                f"译文长度偏差 {length_deviation(text, result):+.0%} 超出 ±{self.tolerance:.0%}: "
                f"{len(text)} -> {len(result)} 字符"
            )
        return result

    def batch_optimize(
        self,
        segments: Sequence[DialogueSegment],
        speaker_profiles: Mapping[str, SpeakerProfile],
        target_language: str,
    ) -> list[TranslatedSegment]:
        """One TranslatedSegment per input segment, in input order, with timing unchanged."""
        translated: list[TranslatedSegment] = []
        for run in group_consecutive_speakers(segments):
            profile = speaker_profiles.get(run.speaker_id)
            description = profile.describe() if profile else None
            context = build_run_context(segments, run)

            for seg in run.segments:
                if not seg.transcription.strip():
                    translated.append(TranslatedSegment.from_segment(seg, ""))
                    continue
                try:
                    text = self.optimize(seg.transcription, target_language, context, description)
                except Exception as exc:
                    # Degrade to "nothing to synthesize" for this line only.
                    logger.warning(f"优化翻译失败，跳过该片段 ({seg.speaker_id} @ {seg.start_time:.2f}s): {exc}")
                    text = ""
                logger.info(f"原文: {seg.transcription}")
                logger.info(f"译文: {text}")
                translated.append(TranslatedSegment.from_segment(seg, text))
        return translated
