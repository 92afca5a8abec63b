from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal, Sequence

import numpy as np
from loguru import logger

from .codec import resample
from .segments import AudioClip
from .utils import _peak_abs, _rms

GainMode = Literal["global", "concurrent"]

LIMITER_THRESHOLD = 0.8
LIMITER_KNEE = 0.1
LIMITER_RATIO = 12.0

OVERLAP_THRESHOLD = 0.5
OVERLAP_RATIO = 4.0

_ANALYZER_TARGET_PEAK = 0.95
_ANALYZER_MAX_GAIN = 1.5


def soft_limit(
    wav: np.ndarray,
    threshold: float = LIMITER_THRESHOLD,
    knee: float = LIMITER_KNEE,
    ratio: float = LIMITER_RATIO,
) -> np.ndarray:
    """
    Soft-knee limiter applied in place on a float buffer (and returned).

    |x| <= threshold - knee/2: untouched.
    Inside the knee: quadratic transition whose gain reduction grows smoothly from 0.
    |x| >= threshold + knee/2: threshold + (|x| - threshold) / ratio.
    The curve is continuous with a continuous slope; sign is preserved.
    """
    if wav.size == 0:
        return wav
    th = float(threshold)
    half = float(knee) / 2.0
    r = float(ratio)

    mag = np.abs(wav)
    knee_mask = (mag > th - half) & (mag < th + half)
    hard_mask = mag >= th + half

    if half > 0 and np.any(knee_mask):
        x = mag[knee_mask]
        y = x + (1.0 / r - 1.0) * np.square(x - th + half) / (4.0 * half)
        wav[knee_mask] = np.sign(wav[knee_mask]) * y
    if np.any(hard_mask):
        x = mag[hard_mask]
        wav[hard_mask] = np.sign(wav[hard_mask]) * (th + (x - th) / r)
    return wav


def compress_overlaps(
    wav: np.ndarray,
    coverage: np.ndarray,
    threshold: float = OVERLAP_THRESHOLD,
    ratio: float = OVERLAP_RATIO,
) -> np.ndarray:
    """4:1 compression above `threshold`, only where more than one clip covers the sample."""
    mask = (coverage > 1) & (np.abs(wav) > threshold)
    if np.any(mask):
        x = np.abs(wav[mask])
        wav[mask] = np.sign(wav[mask]) * (threshold + (x - threshold) / ratio)
    return wav


def normalized_gain(source_count: int, volume: float = 1.0) -> float:
    """Headroom gain: 1/sqrt(source_count) scaled by the clip's own volume."""
    n = max(1, int(source_count))
    return (1.0 / math.sqrt(n)) * float(volume)


@dataclass(frozen=True)
class _Placement:
    clip_index: int
    start: int
    end: int
    samples: np.ndarray
    volume: float


class TimelineMixer:
    """Place rendered speech clips on a master timeline and blend overlapping dialogue."""

    def __init__(self, sample_rate: int = 24000, gain_mode: GainMode = "global") -> None:
        if int(sample_rate) <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        if gain_mode not in ("global", "concurrent"):
            raise ValueError(f"Unknown gain_mode: {gain_mode!r}")
        self.sample_rate = int(sample_rate)
        self.gain_mode: GainMode = gain_mode

    def buffer_length(self, total_duration: float) -> int:
        return int(math.ceil(max(0.0, float(total_duration)) * self.sample_rate))

    def _place(self, clips: Sequence[AudioClip], length: int) -> list[_Placement]:
        placements: list[_Placement] = []
        for idx, clip in enumerate(clips):
            if not (clip.start_time >= 0):
                logger.debug(f"丢弃片段 #{idx} ({clip.speaker_id}): start_time={clip.start_time} < 0")
                continue
            samples = clip.samples
            if clip.sample_rate != self.sample_rate:
                samples = resample(samples, clip.sample_rate, self.sample_rate)
            start = int(math.floor(float(clip.start_time) * self.sample_rate))
            end = min(start + int(samples.shape[0]), length)
            if samples.size == 0 or start >= length or end <= start:
                logger.debug(f"丢弃片段 #{idx} ({clip.speaker_id}): 超出主音轨范围 (start={start}, len={length})")
                continue
            placements.append(
                _Placement(
                    clip_index=idx,
                    start=start,
                    end=end,
                    samples=samples[: end - start],
                    volume=float(clip.volume),
                )
            )
        return placements

    @staticmethod
    def _coverage(placements: Sequence[_Placement], length: int) -> np.ndarray:
        delta = np.zeros((length + 1,), dtype=np.int32)
        for p in placements:
            delta[p.start] += 1
            delta[p.end] -= 1
        return np.cumsum(delta[:-1], dtype=np.int32)

    def mix_raw(self, clips: Sequence[AudioClip], total_duration: float) -> tuple[np.ndarray, np.ndarray]:
        """Steps 1-2 only: allocate, place and gain-stage. Returns (buffer, coverage)."""
        length = self.buffer_length(total_duration)
        master = np.zeros((length,), dtype=np.float32)
        placements = self._place(clips, length)
        coverage = self._coverage(placements, length)

        if self.gain_mode == "global":
            # Every clip is attenuated by the total clip count of this call, overlapping or not.
            for p in placements:
                gain = normalized_gain(len(clips), p.volume)
                master[p.start : p.end] += p.samples * np.float32(gain)
        else:
            for p in placements:
                master[p.start : p.end] += p.samples * np.float32(p.volume)
            active = coverage > 1
            if np.any(active):
                master[active] /= np.sqrt(coverage[active].astype(np.float32))

        logger.debug(
            f"混音放置完成: clips={len(clips)}, placed={len(placements)}, "
            f"samples={length}, gain_mode={self.gain_mode}"
        )
        return master, coverage

    def mix(self, clips: Sequence[AudioClip], total_duration: float) -> np.ndarray:
        """
        Mix clips onto a silent master buffer of ceil(total_duration * sample_rate) samples.

        Clips with a negative start, or whose samples all fall outside the buffer, are
        dropped without error. The result is limited, overlap-compressed and clamped to
        [-1, 1].
        """
        master, coverage = self.mix_raw(clips, total_duration)
        soft_limit(master)
        compress_overlaps(master, coverage)
        np.clip(master, -1.0, 1.0, out=master)
        return master


@dataclass(frozen=True)
class PeakAnalysis:
    peak: float
    rms: float
    recommended_gain: float


def analyze_peaks(clips: Sequence[AudioClip]) -> dict[str, PeakAnalysis]:
    """
    Recommend a per-speaker gain so clips can be loudness-equalized before mixing.

    recommended_gain = min(0.95 / max(peak, rms), 1.5). When a speaker has several clips,
    the last one analyzed wins.
    """
    analysis: dict[str, PeakAnalysis] = {}
    for clip in clips:
        peak = _peak_abs(clip.samples)
        rms = _rms(clip.samples)
        level = max(peak, rms)
        gain = _ANALYZER_MAX_GAIN if level <= 0 else min(_ANALYZER_TARGET_PEAK / level, _ANALYZER_MAX_GAIN)
        analysis[clip.speaker_id] = PeakAnalysis(peak=peak, rms=rms, recommended_gain=float(gain))
    return analysis
