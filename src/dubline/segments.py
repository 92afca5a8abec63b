from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

import numpy as np


def _first_key(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class DialogueSegment:
    """A time-bounded utterance attributed to one speaker."""

    start_time: float
    end_time: float
    transcription: str
    speaker_id: str

    @property
    def duration(self) -> float:
        return float(self.end_time - self.start_time)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DialogueSegment":
        """Build a segment from collaborator JSON (`startTime`...) or transcript JSON (`start`...)."""
        start = float(_first_key(data, "startTime", "start_time", "start"))
        end = float(_first_key(data, "endTime", "end_time", "end"))
        if not (math.isfinite(start) and math.isfinite(end)):
            raise ValueError(f"Non-finite segment timestamps: {data!r}")
        if start < 0:
            raise ValueError(f"Segment starts before 0: {data!r}")
        if end <= start:
            raise ValueError(f"Segment ends before it starts: {data!r}")
        return cls(
            start_time=start,
            end_time=end,
            transcription=str(_first_key(data, "transcription", "text", default="")).strip(),
            speaker_id=str(_first_key(data, "speakerId", "speaker_id", "speaker", default="SPEAKER_00")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start_time,
            "end": self.end_time,
            "speaker": self.speaker_id,
            "text": self.transcription,
        }


@dataclass(frozen=True)
class SpeakerProfile:
    id: str
    gender: str
    age: str
    emotion: str
    voice_name: str

    def describe(self) -> str:
        return f"{self.gender}, {self.age}, {self.emotion} tone"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "gender": self.gender,
            "age": self.age,
            "emotion": self.emotion,
            "voiceName": self.voice_name,
        }


@dataclass(frozen=True)
class TranslatedSegment:
    """A dialogue segment whose transcription was replaced by translated text; timing is unchanged."""

    speaker_id: str
    text: str
    start_time: float
    end_time: float

    @property
    def duration(self) -> float:
        return float(self.end_time - self.start_time)

    @classmethod
    def from_segment(cls, segment: DialogueSegment, text: str) -> "TranslatedSegment":
        return cls(
            speaker_id=segment.speaker_id,
            text=text,
            start_time=segment.start_time,
            end_time=segment.end_time,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start_time,
            "end": self.end_time,
            "speaker": self.speaker_id,
            "translation": self.text,
        }


@dataclass(frozen=True, eq=False)
class AudioClip:
    """Rendered speech for one segment, positioned on the master timeline."""

    samples: np.ndarray
    sample_rate: int
    speaker_id: str
    start_time: float
    volume: float = 1.0

    def __post_init__(self) -> None:
        wav = np.asarray(self.samples, dtype=np.float32).reshape(-1)
        object.__setattr__(self, "samples", wav)

    @property
    def num_samples(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.num_samples / float(self.sample_rate)

    @property
    def end_time(self) -> float:
        return float(self.start_time) + self.duration
