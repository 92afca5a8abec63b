from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Iterable, Literal, Mapping, Sequence

from loguru import logger

from ..codec import decode_raw_pcm
from ..errors import AllSegmentsFailedError, SegmentSynthesisError
from ..segments import AudioClip, SpeakerProfile, TranslatedSegment
from ..utils import _read_env_float
from .tts_gemini import SpeechSynthesizer


@dataclass(frozen=True)
class LogEntry:
    kind: str
    message: str
    segment_index: int | None = None
    created_at: float = field(default_factory=time.time)

    def format(self) -> str:
        where = f"#{self.segment_index} " if self.segment_index is not None else ""
        return f"[TTS][{self.kind}] {where}{self.message}"


class SynthesisLog:
    """Append-only, caller-owned record of every synthesis attempt (request, response, errors)."""

    def __init__(self) -> None:
        self._entries: list[LogEntry] = []

    def append(self, kind: str, message: str, segment_index: int | None = None) -> LogEntry:
        entry = LogEntry(kind=kind, message=message, segment_index=segment_index)
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self.entries)

    def lines(self) -> list[str]:
        return [e.format() for e in self._entries]


@dataclass(frozen=True, eq=False)
class SegmentOutcome:
    index: int
    segment: TranslatedSegment
    status: Literal["ok", "skipped", "failed"]
    clip: AudioClip | None = None
    reason: str = ""
    warnings: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status == "ok" and self.clip is not None

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "status": self.status,
            "reason": self.reason,
            "warnings": list(self.warnings),
            "clip_seconds": round(self.clip.duration, 3) if self.clip is not None else None,
            **self.segment.to_dict(),
        }


def _tts_duration_guard_params() -> tuple[float, float]:
    """
    Guardrail for "TTS segment should not be significantly longer than source segment".

    Permissive defaults (language expansion is expected); only flags pathological clips.
    """
    ratio = _read_env_float("DUBLINE_TTS_MAX_SEGMENT_DURATION_RATIO", 3.0)
    extra = _read_env_float("DUBLINE_TTS_MAX_SEGMENT_DURATION_EXTRA_SEC", 8.0)
    if not (ratio >= 1.0):
        ratio = 3.0
    if not (extra >= 0.0):
        extra = 8.0
    return float(ratio), float(extra)


def _tts_segment_allowed_max_seconds(seg_dur: float, ratio: float, extra: float) -> float | None:
    sd = float(seg_dur or 0.0)
    if sd <= 0.0:
        return None
    return float(max(sd * float(ratio), sd + float(extra)))


def synthesize_segment(
    index: int,
    segment: TranslatedSegment,
    profile: SpeakerProfile | None,
    synthesizer: SpeechSynthesizer,
    log: SynthesisLog,
) -> SegmentOutcome:
    """Render one segment. Never raises for per-segment problems; they become outcomes."""
    if not segment.text.strip():
        return SegmentOutcome(index=index, segment=segment, status="skipped", reason="empty translation")
    if profile is None or not profile.voice_name:
        return SegmentOutcome(index=index, segment=segment, status="skipped", reason="no voice for speaker")

    log.append(
        "REQUEST",
        f"Segment text: {segment.text}\nSpeaker Profile: {json.dumps(profile.to_dict(), ensure_ascii=False)}",
        index,
    )
    try:
        pcm = synthesizer.synthesize(segment.text, profile.voice_name)
        if not pcm:
            raise SegmentSynthesisError("No audio data returned", segment=segment, profile=profile)
        buffer = decode_raw_pcm(pcm, synthesizer.sample_rate, 1)
        if buffer.num_frames == 0:
            raise SegmentSynthesisError("Audio payload decoded to zero frames", segment=segment, profile=profile)
    except SegmentSynthesisError as exc:
        log.append("ERROR", f'{exc.reason} for segment "{segment.text}"', index)
        logger.warning(f"片段 #{index} 合成失败 ({segment.speaker_id}): {exc.reason}")
        return SegmentOutcome(index=index, segment=segment, status="failed", reason=exc.reason)
    except Exception as exc:
        log.append("EXCEPTION", f'for segment "{segment.text}": {exc!r}', index)
        logger.warning(f"片段 #{index} 合成异常 ({segment.speaker_id}): {exc}")
        return SegmentOutcome(index=index, segment=segment, status="failed", reason=str(exc) or type(exc).__name__)

    clip = AudioClip(
        samples=buffer.channel(0),
        sample_rate=buffer.sample_rate,
        speaker_id=segment.speaker_id,
        start_time=segment.start_time,
    )
    log.append("RESPONSE", f"{len(pcm)} bytes, {clip.duration:.2f}s @ {clip.sample_rate} Hz", index)

    warnings: list[str] = []
    ratio, extra = _tts_duration_guard_params()
    allowed = _tts_segment_allowed_max_seconds(segment.duration, ratio, extra)
    if allowed is not None and clip.duration > allowed + 0.02:
        msg = f"clip {clip.duration:.2f}s exceeds allowed {allowed:.2f}s for a {segment.duration:.2f}s window"
        warnings.append(msg)
        logger.warning(f"片段 #{index} 合成音频过长: {msg}")

    return SegmentOutcome(index=index, segment=segment, status="ok", clip=clip, warnings=tuple(warnings))


def synthesize_segments(
    segments: Sequence[TranslatedSegment],
    profiles: Mapping[str, SpeakerProfile],
    synthesizer: SpeechSynthesizer,
    log: SynthesisLog,
    order: Iterable[int] | None = None,
) -> list[SegmentOutcome]:
    """
    Render segments one at a time in `order` (defaults to input order).

    Returns outcomes sorted by segment index. Use `require_any_success` for the terminal check.
    """
    indices = list(order) if order is not None else list(range(len(segments)))
    logger.info(f"TTS 开始: segments={len(segments)}, speakers={len({s.speaker_id for s in segments})}")

    outcomes: list[SegmentOutcome] = []
    for idx in indices:
        seg = segments[idx]
        outcomes.append(synthesize_segment(idx, seg, profiles.get(seg.speaker_id), synthesizer, log))

    outcomes.sort(key=lambda o: o.index)
    ok = sum(1 for o in outcomes if o.ok)
    failed = sum(1 for o in outcomes if o.status == "failed")
    logger.info(f"TTS 完成: 成功 {ok}, 失败 {failed}, 跳过 {len(outcomes) - ok - failed}")
    return outcomes


def require_any_success(outcomes: Sequence[SegmentOutcome]) -> list[AudioClip]:
    clips = [o.clip for o in outcomes if o.ok and o.clip is not None]
    if not clips:
        raise AllSegmentsFailedError(outcomes)
    return clips
