from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Voice:
    name: str
    gender: str
    description: str


# Prebuilt Gemini TTS voices available for casting.
VOICE_LIST: tuple[Voice, ...] = (
    Voice(
        "Zephyr",
        "Female",
        "An energetic and bright voice with a clear mid-range pitch, sounding perky and enthusiastic. "
        "It projects positivity and youthfulness, making it very engaging.",
    ),
    Voice(
        "Puck",
        "Male",
        "A friendly, mid-pitched voice with a casual, 'everyman' quality. "
        "It sounds approachable and relatable, ideal for informal communication.",
    ),
    Voice(
        "Charon",
        "Male",
        "A deep, authoritative voice with a serious and commanding tone. "
        "It is resonant and powerful, with a measured, deliberate pace.",
    ),
    Voice(
        "Kore",
        "Female",
        "An energetic and youthful voice with a mid-to-high pitch, conveying confidence and enthusiasm. "
        "It is clear and bright, with a perky, engaging quality.",
    ),
    Voice(
        "Leda",
        "Female",
        "A composed and professional voice, mid-pitched with a slightly lower resonance, conveying authority "
        "and calm. It is articulate and measured, with a sophisticated and trustworthy feel.",
    ),
    Voice(
        "Iapetus",
        "Male",
        "A friendly, mid-pitched voice with a casual, 'everyman' quality, similar to Puck. "
        "It sounds approachable and relatable.",
    ),
    Voice(
        "Despina",
        "Female",
        "A warm and inviting voice with a smooth and clear delivery. It's described as reassuring and "
        "pleasant, with a gentle, persuasive quality.",
    ),
)

VOICE_NAMES = frozenset(v.name for v in VOICE_LIST)

LANGUAGES: dict[str, str] = {
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "ja": "Japanese",
    "it": "Italian",
    "pt": "Portuguese",
    "ko": "Korean",
}


def language_name(code: str) -> str:
    """Map a language code to its English name; unknown values pass through unchanged."""
    key = (code or "").strip()
    return LANGUAGES.get(key.lower(), key)


def voice_catalog_text() -> str:
    return "\n".join(f"- {v.name} ({v.gender}): {v.description}" for v in VOICE_LIST)


def default_voice_for(gender: str | None, fallback: str = "Kore") -> str:
    g = (gender or "").strip().lower()
    if g.startswith("m"):
        return "Puck"
    if g.startswith("f") or g.startswith("w"):
        return "Kore"
    return fallback if fallback in VOICE_NAMES else "Kore"
