from __future__ import annotations

import re
import time
from typing import Any, Protocol

from loguru import logger

from ..config import Settings


class SpeechSynthesizer(Protocol):
    """Renders `text` with a catalog voice; returns raw mono PCM16 bytes, or None on failure."""

    sample_rate: int

    def synthesize(self, text: str, voice_name: str) -> bytes | None: ...


_RETRY_HINT_RE = re.compile(r"retry in (\d+\.?\d*)s")


def _rate_limit_delay(error_str: str, default: float = 20.0) -> float | None:
    if "429" not in error_str and "RESOURCE_EXHAUSTED" not in error_str:
        return None
    match = _RETRY_HINT_RE.search(error_str)
    delay = float(match.group(1)) if match else float(default)
    return delay + 1.0


def _inline_audio(response: Any) -> bytes | None:
    candidates = getattr(response, "candidates", None)
    if not candidates:
        return None
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) if content is not None else None
    if not parts:
        return None
    inline = getattr(parts[0], "inline_data", None)
    data = getattr(inline, "data", None) if inline is not None else None
    return data or None


class GeminiSpeechSynthesizer:
    """Gemini prebuilt-voice TTS returning 24 kHz mono 16-bit PCM."""

    def __init__(self, settings: Settings | None = None, client: Any | None = None) -> None:
        self.settings = settings or Settings()
        self.sample_rate = int(self.settings.tts_sample_rate)
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from google import genai

            api_key = self.settings.gemini_api_key
            if not api_key:
                raise RuntimeError("未在config/env中设置GEMINI_API_KEY")
            self._client = genai.Client(api_key=api_key)
        return self._client

    def _request(self, text: str, voice_name: str) -> Any:
        from google.genai import types

        return self._get_client().models.generate_content(
            model=self.settings.gemini_tts_model or "gemini-2.5-flash-preview-tts",
            contents=text,
            config=types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=types.SpeechConfig(
                    voice_config=types.VoiceConfig(
                        prebuilt_voice_config=types.PrebuiltVoiceConfig(
                            voice_name=voice_name,
                        )
                    )
                ),
            ),
        )

    def synthesize(self, text: str, voice_name: str) -> bytes | None:
        """Generate speech; rate limits are retried, an empty payload returns None."""
        voice_name = voice_name or self.settings.gemini_tts_voice or "Kore"
        max_retries = max(1, int(self.settings.tts_max_retries))

        for retry_count in range(max_retries):
            try:
                response = self._request(text, voice_name)
            except Exception as e:
                delay = _rate_limit_delay(str(e))
                if delay is None:
                    logger.error(f"Gemini TTS生成失败: {e}")
                    raise
                logger.warning(f"Gemini TTS速率限制(429)。{delay}秒后重试... (尝试 {retry_count + 1}/{max_retries})")
                time.sleep(delay)
                continue

            pcm_data = _inline_audio(response)
            if pcm_data:
                logger.info(f"Gemini TTS完成: {text[:20]}... ({len(pcm_data)} bytes, voice={voice_name})")
                return bytes(pcm_data)

            logger.warning(
                "Gemini TTS响应结构异常。"
                f"Candidates: {getattr(response, 'candidates', None)}, "
                f"PromptFeedback: {getattr(response, 'prompt_feedback', 'N/A')}"
            )
            return None

        logger.error(f"Gemini TTS重试 {max_retries} 次后仍被限流: {text[:20]}...")
        return None
