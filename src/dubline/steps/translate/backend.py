from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass
from json import JSONDecodeError
from typing import Any, Protocol

from loguru import logger
from openai import (
    APIConnectionError,
    APIStatusError,
    AuthenticationError,
    BadRequestError,
    OpenAI,
    RateLimitError,
)

from ...config import Settings

_DEFAULT_API_BASE = "https://api.openai.com/v1"

# (exception type, max backoff seconds); APITimeoutError is an APIConnectionError.
_RETRYABLE: tuple[tuple[type[Exception], int], ...] = (
    (RateLimitError, 30),
    (APIConnectionError, 20),
)
_RETRYABLE_STATUS = frozenset({500, 502, 503, 504})


class TextGenerator(Protocol):
    """Free-form text generation collaborator (an LLM behind some API)."""

    def generate(self, prompt: str, *, system: str | None = None) -> str: ...


@dataclass(frozen=True)
class _ChatBackend:
    client: OpenAI
    model: str
    timeout_s: float


def _build_chat_backend(settings: Settings) -> _ChatBackend:
    api_key = settings.openai_api_key
    if not api_key:
        raise RuntimeError("缺少 OPENAI_API_KEY：请在 .env 中配置 OpenAI 兼容的 API Key。")
    client = OpenAI(base_url=settings.openai_api_base or _DEFAULT_API_BASE, api_key=api_key)
    return _ChatBackend(client=client, model=settings.model_name, timeout_s=float(settings.llm_timeout_s))


_THREAD_LOCAL = threading.local()


def _get_thread_backend(settings: Settings) -> _ChatBackend:
    """One OpenAI client per thread and per (endpoint, model)."""
    cache: dict[tuple[str, str], _ChatBackend] | None = getattr(_THREAD_LOCAL, "backends", None)
    if cache is None:
        cache = {}
        _THREAD_LOCAL.backends = cache
    key = (settings.openai_api_base or _DEFAULT_API_BASE, settings.model_name)
    if key not in cache:
        cache[key] = _build_chat_backend(settings)
    return cache[key]


def _scan_json(text: str, opener: str, kind: type) -> Any:
    decoder = json.JSONDecoder()
    start = text.find(opener)
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except JSONDecodeError:
            obj = None
        if isinstance(obj, kind):
            return obj
        start = text.find(opener, start + 1)
    return None


def _extract_first_json_object(text: str) -> dict[str, Any]:
    obj = _scan_json(text, "{", dict)
    if obj is None:
        raise ValueError("No JSON object found (模型输出中未找到 JSON 对象)。")
    return obj


def _extract_first_json_array(text: str) -> list[Any]:
    obj = _scan_json(text, "[", list)
    if obj is None:
        raise ValueError("No JSON array found (模型输出中未找到 JSON 数组)。")
    return obj


def _chat_completion_text(backend: _ChatBackend, messages: list[dict[str, str]]) -> str:
    response = backend.client.chat.completions.create(
        model=backend.model,
        messages=messages,
        timeout=backend.timeout_s,
    )
    return (response.choices[0].message.content or "").strip()


def _handle_sdk_exception(exc: Exception, attempt: int) -> float | None:
    """Backoff seconds before the next attempt, or None when the error is final."""
    if isinstance(exc, (AuthenticationError, BadRequestError)):
        logger.error(f"LLM请求被拒绝 ({type(exc).__name__}): {exc}")
        return None
    for exc_type, cap in _RETRYABLE:
        if isinstance(exc, exc_type):
            delay = float(min(2**attempt, cap))
            logger.warning(f"LLM请求暂时失败 ({type(exc).__name__})，{delay:g}秒后重试: {exc}")
            return delay
    if isinstance(exc, APIStatusError):
        status = getattr(exc, "status_code", None)
        if status in _RETRYABLE_STATUS:
            delay = float(min(2**attempt, 20))
            logger.warning(f"LLM服务器错误 ({status})，{delay:g}秒后重试: {exc}")
            return delay
        logger.error(f"LLM请求失败 ({status}): {exc}")
    return None


class ChatTextGenerator:
    """`TextGenerator` backed by an OpenAI compatible chat-completions endpoint."""

    def __init__(self, settings: Settings | None = None, backend: _ChatBackend | None = None) -> None:
        self.settings = settings or Settings()
        self._backend = backend

    @property
    def backend(self) -> _ChatBackend:
        if self._backend is None:
            return _get_thread_backend(self.settings)
        return self._backend

    def generate(self, prompt: str, *, system: str | None = None) -> str:
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})

        attempts = max(1, int(self.settings.llm_max_attempts))
        last_exc: Exception | None = None
        for attempt in range(attempts):
            try:
                return _chat_completion_text(self.backend, messages)
            except Exception as exc:
                last_exc = exc
                delay = _handle_sdk_exception(exc, attempt)
                if delay is None:
                    raise
                time.sleep(delay)
        raise RuntimeError(f"LLM请求在 {attempts} 次尝试后仍失败: {last_exc}") from last_exc
