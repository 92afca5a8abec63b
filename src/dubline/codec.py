from __future__ import annotations

import io
import wave
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from .errors import ContainerEncodeError

_INT16_SCALE_OUT = 32767
_INT16_SCALE_IN = 32768.0
_SAMPLE_WIDTH = 2  # 16-bit


@dataclass(frozen=True, eq=False)
class AudioBuffer:
    """Decoded PCM audio: `channels` has shape (num_channels, num_frames), float32 in [-1, 1)."""

    channels: np.ndarray
    sample_rate: int

    @property
    def num_channels(self) -> int:
        return int(self.channels.shape[0])

    @property
    def num_frames(self) -> int:
        return int(self.channels.shape[1])

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.num_frames / float(self.sample_rate)

    def channel(self, index: int = 0) -> np.ndarray:
        return self.channels[index]


def float_to_int16(samples: np.ndarray) -> np.ndarray:
    """Quantize unit-amplitude floats: round(clamp(x, -1, 1) * 32767)."""
    wav = np.asarray(samples, dtype=np.float64)
    return np.rint(np.clip(wav, -1.0, 1.0) * _INT16_SCALE_OUT).astype(np.int16)


def int16_to_float(samples: np.ndarray) -> np.ndarray:
    return (np.asarray(samples, dtype=np.int16).astype(np.float32) / np.float32(_INT16_SCALE_IN)).astype(np.float32)


def encode_wav(samples: np.ndarray, sample_rate: int, channels: int = 1) -> bytes:
    """
    Encode float samples into a 16-bit PCM RIFF/WAVE container.

    Mono input is a 1-D array. Multi-channel input is a (frames, channels) array and is
    interleaved frame by frame. The header is the canonical 44-byte layout.
    """
    channels = int(channels)
    sample_rate = int(sample_rate)
    if channels <= 0:
        raise ContainerEncodeError(f"Invalid channel count: {channels}")
    if sample_rate <= 0:
        raise ContainerEncodeError(f"Invalid sample rate: {sample_rate}")

    wav = np.asarray(samples, dtype=np.float64)
    if wav.size == 0:
        raise ContainerEncodeError("Cannot encode an empty sample buffer")
    if not bool(np.all(np.isfinite(wav))):
        raise ContainerEncodeError("Sample buffer contains NaN/Inf values")
    if channels == 1:
        wav = wav.reshape(-1)
    elif wav.ndim != 2 or wav.shape[1] != channels:
        raise ContainerEncodeError(f"Expected (frames, {channels}) samples, got shape {wav.shape}")

    pcm = float_to_int16(wav).astype("<i2", copy=False).tobytes()

    out = io.BytesIO()
    with wave.open(out, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(_SAMPLE_WIDTH)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return out.getvalue()


def decode_raw_pcm(data: bytes, sample_rate: int, channels: int = 1) -> AudioBuffer:
    """
    Decode headerless interleaved 16-bit little-endian PCM.

    frame_count = len(data) // 2 // channels; a trailing partial frame is ignored.
    Zero-length input yields a valid zero-frame buffer.
    """
    channels = int(channels)
    if channels <= 0:
        raise ValueError(f"Invalid channel count: {channels}")
    frame_count = len(data) // _SAMPLE_WIDTH // channels
    if frame_count <= 0:
        return AudioBuffer(channels=np.zeros((channels, 0), dtype=np.float32), sample_rate=int(sample_rate))

    raw = np.frombuffer(data, dtype="<i2", count=frame_count * channels)
    frames = raw.reshape(frame_count, channels).T
    return AudioBuffer(channels=int16_to_float(frames), sample_rate=int(sample_rate))


def decode_wav(data: bytes) -> AudioBuffer:
    """Decode a 16-bit PCM WAV container produced by `encode_wav` (or any PCM16 WAV)."""
    with wave.open(io.BytesIO(data), "rb") as wf:
        if int(wf.getsampwidth() or 0) != _SAMPLE_WIDTH:
            raise ValueError(f"Unsupported sample width: {wf.getsampwidth()} bytes (expected 2)")
        rate = int(wf.getframerate() or 0)
        n_channels = int(wf.getnchannels() or 0)
        payload = wf.readframes(wf.getnframes())
    return decode_raw_pcm(payload, rate, n_channels)


def resample(samples: np.ndarray, orig_rate: int, target_rate: int) -> np.ndarray:
    wav = np.asarray(samples, dtype=np.float32).reshape(-1)
    if int(orig_rate) == int(target_rate) or wav.size == 0:
        return wav
    import librosa

    out = librosa.resample(wav, orig_sr=int(orig_rate), target_sr=int(target_rate))
    return np.asarray(out, dtype=np.float32).reshape(-1)


def write_wav(path: str | Path, samples: np.ndarray, sample_rate: int, channels: int = 1) -> Path:
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(encode_wav(samples, sample_rate, channels=channels))
    return out_path
