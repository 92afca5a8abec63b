from .speakers import analyze_speakers
from .synthesize_speech import (
    SegmentOutcome,
    SynthesisLog,
    require_any_success,
    synthesize_segment,
    synthesize_segments,
)
from .transcribe import GeminiTranscriber, parse_segments
from .translate import ChatTextGenerator, TranslationOptimizer, translate_batch
from .tts_gemini import GeminiSpeechSynthesizer

__all__ = [
    "ChatTextGenerator",
    "GeminiSpeechSynthesizer",
    "GeminiTranscriber",
    "SegmentOutcome",
    "SynthesisLog",
    "TranslationOptimizer",
    "analyze_speakers",
    "parse_segments",
    "require_any_success",
    "synthesize_segment",
    "synthesize_segments",
    "translate_batch",
]
