from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Sequence

import numpy as np
from loguru import logger

from .chunker import ChunkValidation, TimelineChunk, chunk_segments, flatten_chunks, reorder_chunks, validate_chunks
from .codec import encode_wav, resample
from .config import Settings
from .errors import EmptyTranscriptionError
from .mixer import TimelineMixer, analyze_peaks
from .models import GEMINI_CREDENTIALS, LLM_CREDENTIALS, CredentialManager
from .segments import AudioClip, DialogueSegment, SpeakerProfile, TranslatedSegment
from .steps.speakers import analyze_speakers
from .steps.synthesize_speech import SegmentOutcome, SynthesisLog, require_any_success, synthesize_segments
from .steps.transcribe import GeminiTranscriber, Transcriber
from .steps.translate import ChatTextGenerator, TextGenerator, TranslationOptimizer, translate_batch
from .steps.tts_gemini import GeminiSpeechSynthesizer, SpeechSynthesizer


@dataclass(eq=False)
class DubResult:
    wav_bytes: bytes
    master: np.ndarray
    sample_rate: int
    chunks: list[TimelineChunk]
    validation: ChunkValidation
    profiles: dict[str, SpeakerProfile]
    translations: list[TranslatedSegment]
    outcomes: list[SegmentOutcome]
    log: SynthesisLog = field(default_factory=SynthesisLog)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "failed")


def schedule_order(chunks: Sequence[TimelineChunk], single_speaker_first: bool = True) -> list[int]:
    """
    Synthesis order as indices into `flatten_chunks(chunks)`.

    Chunks keep their segments contiguous; with `single_speaker_first` the chunks are
    stably regrouped by type before their segment indices are emitted.
    """
    ranges: dict[int, range] = {}
    offset = 0
    for chunk in chunks:
        ranges[id(chunk)] = range(offset, offset + len(chunk.segments))
        offset += len(chunk.segments)
    scheduled = reorder_chunks(chunks) if single_speaker_first else list(chunks)
    return [i for chunk in scheduled for i in ranges[id(chunk)]]


class DubPipeline:
    """Coordinate transcription -> chunking -> casting -> translation -> TTS -> mixing -> WAV."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transcriber: Transcriber | None = None,
        generator: TextGenerator | None = None,
        synthesizer: SpeechSynthesizer | None = None,
        credential_manager: CredentialManager | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.credential_manager = credential_manager or CredentialManager(self.settings)

        required: list[str] = []
        if transcriber is None or synthesizer is None:
            required.append(GEMINI_CREDENTIALS)
        if generator is None:
            required.append(LLM_CREDENTIALS)
        if required:
            self.credential_manager.ensure_ready(names=required)

        self.transcriber: Transcriber = transcriber or GeminiTranscriber(self.settings)
        self.generator: TextGenerator = generator or ChatTextGenerator(self.settings)
        self.synthesizer: SpeechSynthesizer = synthesizer or GeminiSpeechSynthesizer(self.settings)
        self.mixer = TimelineMixer(self.settings.target_sample_rate, gain_mode=self.settings.gain_mode)

    def transcribe(self, samples: np.ndarray, sample_rate: int) -> list[DialogueSegment]:
        rate = int(self.settings.transcribe_sample_rate)
        wav = resample(samples, sample_rate, rate)
        segments = self.transcriber.transcribe(encode_wav(wav, rate))
        if not segments:
            raise EmptyTranscriptionError()
        return segments

    def translate(
        self,
        segments: Sequence[DialogueSegment],
        profiles: dict[str, SpeakerProfile],
        target_language: str,
    ) -> list[TranslatedSegment]:
        if self.settings.optimize_translation:
            return TranslationOptimizer(self.generator).batch_optimize(segments, profiles, target_language)
        return translate_batch(segments, target_language, self.generator)

    def _equalize(self, clips: list[AudioClip]) -> list[AudioClip]:
        analysis = analyze_peaks(clips)
        out: list[AudioClip] = []
        for clip in clips:
            gain = analysis[clip.speaker_id].recommended_gain
            out.append(replace(clip, volume=float(clip.volume) * gain))
        return out

    def dub_segments(
        self,
        segments: Sequence[DialogueSegment],
        total_duration: float,
        target_language: str | None = None,
        log: SynthesisLog | None = None,
    ) -> DubResult:
        if not segments:
            raise EmptyTranscriptionError()
        target_language = target_language or self.settings.translation_target_language
        log = log if log is not None else SynthesisLog()

        chunks = chunk_segments(segments, gap_threshold=self.settings.chunk_gap_threshold)
        validation = validate_chunks(chunks)
        ordered = flatten_chunks(chunks)
        logger.info(
            f"分块: {len(chunks)} 个 ("
            + ", ".join(f"{c.chunk_type.value}@{c.start_time:.2f}-{c.end_time:.2f}s" for c in chunks[:20])
            + (" ..." if len(chunks) > 20 else "")
            + ")"
        )

        profiles = analyze_speakers(ordered, self.generator, default_voice=self.settings.gemini_tts_voice)
        translations = self.translate(ordered, profiles, target_language)

        order = schedule_order(chunks, single_speaker_first=self.settings.schedule_single_speaker_first)
        outcomes = synthesize_segments(translations, profiles, self.synthesizer, log, order=order)
        clips = require_any_success(outcomes)
        if self.settings.equalize_speakers:
            clips = self._equalize(clips)

        master = self.mixer.mix(clips, total_duration)
        wav_bytes = encode_wav(master, self.mixer.sample_rate)
        logger.info(
            f"配音音轨完成: {total_duration:.2f}s, {len(clips)}/{len(outcomes)} 个片段, {len(wav_bytes)} bytes"
        )
        return DubResult(
            wav_bytes=wav_bytes,
            master=master,
            sample_rate=self.mixer.sample_rate,
            chunks=chunks,
            validation=validation,
            profiles=profiles,
            translations=translations,
            outcomes=outcomes,
            log=log,
        )

    def dub_audio(
        self,
        samples: np.ndarray,
        sample_rate: int,
        target_language: str | None = None,
        log: SynthesisLog | None = None,
    ) -> DubResult:
        """Dub an extracted mono audio track; the output spans the same duration."""
        wav = np.asarray(samples, dtype=np.float32).reshape(-1)
        total_duration = wav.shape[0] / float(sample_rate)
        logger.info(f"开始配音: {total_duration:.2f}s 音频, 目标语言={target_language or self.settings.translation_target_language}")
        segments = self.transcribe(wav, sample_rate)
        return self.dub_segments(segments, total_duration, target_language, log=log)
