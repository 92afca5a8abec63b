from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from .segments import SpeakerProfile, TranslatedSegment


class DubError(RuntimeError):
    """Base class for failures of a dub operation."""


class EmptyTranscriptionError(DubError):
    """Raised when transcription detected no dialogue at all."""

    def __init__(self, message: str = "No speech was detected in the audio.") -> None:
        super().__init__(message)


class SegmentSynthesisError(DubError):
    """A single segment could not be synthesized. Recoverable: the dub continues."""

    def __init__(
        self,
        reason: str,
        segment: "TranslatedSegment | None" = None,
        profile: "SpeakerProfile | None" = None,
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.segment = segment
        self.profile = profile


class AllSegmentsFailedError(DubError):
    """No segment across the whole timeline produced usable audio."""

    def __init__(self, outcomes: Sequence[Any] = ()) -> None:
        self.outcomes = list(outcomes)
        super().__init__(
            f"Audio generation failed for all dialogue segments ({len(self.outcomes)} attempted). "
            "Check the synthesis log for per-segment errors."
        )


class ContainerEncodeError(DubError, ValueError):
    """Sample data cannot be written into a WAV container."""


class TranscriptionFormatError(DubError, ValueError):
    """The transcription reply is not a JSON array of segments."""
