from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable, Optional

from .config import Settings

GEMINI_CREDENTIALS = "Gemini API Credentials"
LLM_CREDENTIALS = "LLM (OpenAI compatible) Credentials"


class ModelCheckError(RuntimeError):
    """Raised when required credentials are missing."""


@dataclass
class CredentialRequirement:
    name: str
    value: Optional[str]
    hint: str
    env_keys: Optional[list[str]] = None

    def exists(self) -> bool:
        if self.value:
            return True
        if self.env_keys:
            return all(os.getenv(k) for k in self.env_keys)
        return False


class CredentialManager:
    """Central place to validate required credentials and surface user-friendly hints."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()

    def _gemini_requirement(self) -> CredentialRequirement:
        return CredentialRequirement(
            name=GEMINI_CREDENTIALS,
            value=self.settings.gemini_api_key,
            hint="配置 GEMINI_API_KEY 用于 Gemini 转写与 TTS。",
            env_keys=["GEMINI_API_KEY"],
        )

    def _llm_requirement(self) -> CredentialRequirement:
        return CredentialRequirement(
            name=LLM_CREDENTIALS,
            value=self.settings.openai_api_key,
            hint="配置 OPENAI_API_KEY（可选 OPENAI_API_BASE / MODEL_NAME）用于说话人分析与翻译。",
            env_keys=["OPENAI_API_KEY"],
        )

    def list_requirements(self) -> list[CredentialRequirement]:
        return [self._gemini_requirement(), self._llm_requirement()]

    def missing(self, names: Iterable[str] | None = None) -> list[CredentialRequirement]:
        requirements = self.list_requirements()
        if names:
            selected = {name for name in names}
            requirements = [req for req in requirements if req.name in selected]
        return [req for req in requirements if not req.exists()]

    def ensure_ready(self, names: Iterable[str] | None = None) -> None:
        missing = self.missing(names=names)
        if missing:
            raise ModelCheckError(self.format_missing(missing))

    def format_missing(self, missing: list[CredentialRequirement]) -> str:
        if not missing:
            return "凭据已就绪。"
        lines = ["凭据未配置，请先在 .env 或环境变量中设置："]
        for req in missing:
            lines.append(f"- {req.name}: {req.hint}")
        return "\n".join(lines)

    def describe_status(self) -> str:
        statuses = []
        for req in self.list_requirements():
            status = "✅ 已配置" if req.exists() else "❌ 未配置"
            statuses.append(f"{status} {req.name}")
        return "\n".join(statuses)
