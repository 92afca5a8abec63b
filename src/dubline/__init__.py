"""Dialogue-timeline dubbing engine: chunking, mixing and WAV codec re-exports."""

from .chunker import ChunkType, TimelineChunk, chunk_segments, reorder_chunks, validate_chunks
from .codec import AudioBuffer, decode_raw_pcm, decode_wav, encode_wav
from .errors import AllSegmentsFailedError, ContainerEncodeError, EmptyTranscriptionError, SegmentSynthesisError
from .mixer import PeakAnalysis, TimelineMixer, analyze_peaks
from .segments import AudioClip, DialogueSegment, SpeakerProfile, TranslatedSegment

__all__ = [
    "AllSegmentsFailedError",
    "AudioBuffer",
    "AudioClip",
    "ChunkType",
    "ContainerEncodeError",
    "DialogueSegment",
    "EmptyTranscriptionError",
    "PeakAnalysis",
    "SegmentSynthesisError",
    "SpeakerProfile",
    "TimelineChunk",
    "TimelineMixer",
    "TranslatedSegment",
    "analyze_peaks",
    "chunk_segments",
    "decode_raw_pcm",
    "decode_wav",
    "encode_wav",
    "reorder_chunks",
    "validate_chunks",
]
