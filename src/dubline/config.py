from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized configuration loaded from environment variables and .env."""

    # General paths
    output_folder: Path = Field(default=Path("dubs"), description="Base folder for dub outputs and logs")

    # Mixing
    target_sample_rate: int = Field(
        default=24000,
        description="Sample rate of the master dub track",
        alias="DUBLINE_TARGET_SAMPLE_RATE",
    )
    gain_mode: Literal["global", "concurrent"] = Field(
        default="global",
        description="global: 1/sqrt(total clips); concurrent: 1/sqrt(clips sounding at each sample)",
        alias="DUBLINE_GAIN_MODE",
    )
    chunk_gap_threshold: float = Field(
        default=0.5,
        description="Silence (seconds) between segments that starts a new chunk",
        alias="DUBLINE_CHUNK_GAP_THRESHOLD",
    )
    schedule_single_speaker_first: bool = Field(
        default=True, description="Synthesize single-speaker chunks before multi-speaker/overlap chunks"
    )
    equalize_speakers: bool = Field(
        default=False,
        description="Apply the peak/RMS analyzer's recommended gain to each clip before mixing",
        alias="DUBLINE_EQUALIZE_SPEAKERS",
    )

    # Transcription (Gemini)
    gemini_transcribe_model: str = Field(
        default="gemini-2.5-pro",
        description="Gemini model used for transcription + diarization",
        alias="GEMINI_TRANSCRIBE_MODEL",
    )
    transcribe_sample_rate: int = Field(default=44100, description="Sample rate of audio sent for transcription")

    # Translation
    translation_target_language: str = Field(default="es", description="Default translation target language")
    optimize_translation: bool = Field(
        default=True,
        description="Use the length-aware dubbing optimizer instead of plain batch translation",
        alias="DUBLINE_OPTIMIZE_TRANSLATION",
    )
    llm_timeout_s: float = Field(default=240.0, description="Request timeout for chat completions")
    llm_max_attempts: int = Field(default=5, description="Attempts per chat completion before giving up")

    # API tokens / credentials
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key", alias="OPENAI_API_KEY")
    openai_api_base: Optional[str] = Field(default=None, description="OpenAI compatible base URL", alias="OPENAI_API_BASE")
    model_name: str = Field(default="gpt-4o-mini", description="Model name for casting/translation", alias="MODEL_NAME")

    # Gemini TTS
    gemini_api_key: Optional[str] = Field(
        default=None,
        description="Gemini API key for TTS and transcription",
        alias="GEMINI_API_KEY"
    )
    gemini_tts_voice: str = Field(
        default="Kore",
        description="Fallback Gemini TTS voice name",
        alias="GEMINI_TTS_VOICE"
    )
    gemini_tts_model: str = Field(
        default="gemini-2.5-flash-preview-tts",
        description="Gemini TTS model identifier",
        alias="GEMINI_TTS_MODEL"
    )
    tts_sample_rate: int = Field(default=24000, description="Sample rate of raw PCM returned by the TTS service")
    tts_max_retries: int = Field(default=10, description="Attempts per segment for Gemini TTS (rate limits included)")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_prefix="",
        case_sensitive=False,
        populate_by_name=True,
    )
