from __future__ import annotations

import json
from typing import Any, Protocol

from loguru import logger

from ..config import Settings
from ..errors import TranscriptionFormatError
from ..segments import DialogueSegment
from .translate.backend import _extract_first_json_array

TRANSCRIPTION_PROMPT = (
    "You are an expert audio analyst. Transcribe the provided audio and perform speaker diarization. "
    'Identify each speaker with a unique ID like "Speaker 1". Provide precise start and end timestamps in '
    "seconds for each dialogue segment. Respond ONLY with a JSON array of objects following this exact schema: "
    '[{ "speakerId": string, "startTime": number, "endTime": number, "transcription": string }]'
)


class Transcriber(Protocol):
    """Speaker-labelled transcription of a full WAV audio track."""

    def transcribe(self, wav_bytes: bytes) -> list[DialogueSegment]: ...


def parse_segments(payload: str | list[Any] | dict[str, Any]) -> list[DialogueSegment]:
    """
    Parse collaborator JSON into segments, skipping malformed entries.

    Accepts a bare array or an object wrapping it as `{"segments": [...]}`.
    """
    if isinstance(payload, str):
        try:
            items = json.loads(payload)
        except json.JSONDecodeError:
            try:
                items = _extract_first_json_array(payload)
            except ValueError as exc:
                raise TranscriptionFormatError(f"转写结果中没有 JSON 数组: {exc}") from exc
    else:
        items = payload
    if isinstance(items, dict) and "segments" in items:
        items = items["segments"]
    if not isinstance(items, list):
        raise TranscriptionFormatError(f"转写结果不是 JSON 数组: {type(items).__name__}")

    segments: list[DialogueSegment] = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning(f"跳过无效转写条目 #{idx}: {item!r}")
            continue
        try:
            segments.append(DialogueSegment.from_dict(item))
        except (TypeError, ValueError) as exc:
            logger.warning(f"跳过无效转写条目 #{idx}: {exc}")
    return segments


class GeminiTranscriber:
    """Transcription + diarization through a multimodal Gemini model."""

    def __init__(self, settings: Settings | None = None, client: Any | None = None) -> None:
        self.settings = settings or Settings()
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from google import genai

            api_key = self.settings.gemini_api_key
            if not api_key:
                raise RuntimeError("未在config/env中设置GEMINI_API_KEY")
            self._client = genai.Client(api_key=api_key)
        return self._client

    def transcribe(self, wav_bytes: bytes) -> list[DialogueSegment]:
        from google.genai import types

        logger.info(f"开始转写: {len(wav_bytes)} bytes, model={self.settings.gemini_transcribe_model}")
        response = self._get_client().models.generate_content(
            model=self.settings.gemini_transcribe_model,
            contents=[
                types.Part.from_bytes(data=wav_bytes, mime_type="audio/wav"),
                TRANSCRIPTION_PROMPT,
            ],
            config=types.GenerateContentConfig(response_mime_type="application/json"),
        )
        segments = parse_segments(getattr(response, "text", None) or "[]")
        logger.info(f"转写完成: {len(segments)} 个片段, {len({s.speaker_id for s in segments})} 个说话人")
        return segments
