from __future__ import annotations

from typing import Sequence

from loguru import logger

from ...segments import DialogueSegment, TranslatedSegment
from ...voices import language_name
from .backend import TextGenerator

SNIPPET_SEPARATOR = "\n---\n"


def build_batch_prompt(texts: Sequence[str], target_language: str) -> str:
    return (
        f"Translate the following text snippets into {language_name(target_language)}. "
        "Snippets are separated by '---'. Maintain this separation."
        f"{SNIPPET_SEPARATOR}" + SNIPPET_SEPARATOR.join(texts)
    )


def split_batch_response(response: str, expected: int) -> list[str]:
    """
    Split a '---' separated reply and align it 1:1 with the request.

    Missing entries (short/malformed reply) become empty strings; surplus entries are dropped.
    """
    parts = [p.strip() for p in (response or "").split(SNIPPET_SEPARATOR)]
    if parts and parts[0] == "" and len(parts) > expected:
        # Model echoed the leading separator.
        parts = parts[1:]
    if len(parts) != expected:
        logger.warning(f"批量翻译返回段数不一致: 期望 {expected}，实际 {len(parts)}")
    return [(parts[i] if i < len(parts) else "") for i in range(expected)]


def translate_batch(
    segments: Sequence[DialogueSegment],
    target_language: str,
    generator: TextGenerator,
) -> list[TranslatedSegment]:
    """Plain one-shot translation of all segments; timing is inherited unchanged."""
    if not segments:
        return []
    prompt = build_batch_prompt([s.transcription for s in segments], target_language)
    try:
        response = generator.generate(prompt)
    except Exception as exc:
        logger.error(f"批量翻译失败，所有片段将为空: {exc}")
        response = ""
    texts = split_batch_response(response, len(segments))
    return [TranslatedSegment.from_segment(seg, text) for seg, text in zip(segments, texts)]
