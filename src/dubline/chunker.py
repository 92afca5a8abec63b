from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Sequence

from loguru import logger

from .segments import DialogueSegment

_BOUNDS_TOLERANCE_S = 0.1
_LARGE_GAP_S = 1.0


class ChunkType(str, Enum):
    SINGLE_SPEAKER = "single-speaker"
    MULTI_SPEAKER = "multi-speaker"
    OVERLAP = "overlap"


# Scheduling priority used by `reorder_chunks` (cheapest renders first).
_CHUNK_PRIORITY = (ChunkType.SINGLE_SPEAKER, ChunkType.MULTI_SPEAKER, ChunkType.OVERLAP)


@dataclass(frozen=True)
class TimelineChunk:
    start_time: float
    end_time: float
    segments: tuple[DialogueSegment, ...]
    chunk_type: ChunkType
    speakers: tuple[str, ...]

    @property
    def duration(self) -> float:
        return float(self.end_time - self.start_time)

    def to_dict(self) -> dict:
        return {
            "start": self.start_time,
            "end": self.end_time,
            "type": self.chunk_type.value,
            "speakers": list(self.speakers),
            "segments": [s.to_dict() for s in self.segments],
        }


def _make_chunk(segments: list[DialogueSegment], has_overlap: bool) -> TimelineChunk:
    speakers = tuple(dict.fromkeys(s.speaker_id for s in segments))
    if has_overlap:
        chunk_type = ChunkType.OVERLAP
    elif len(speakers) > 1:
        chunk_type = ChunkType.MULTI_SPEAKER
    else:
        chunk_type = ChunkType.SINGLE_SPEAKER
    return TimelineChunk(
        start_time=float(segments[0].start_time),
        end_time=float(max(s.end_time for s in segments)),
        segments=tuple(segments),
        chunk_type=chunk_type,
        speakers=speakers,
    )


def chunk_segments(segments: Iterable[DialogueSegment], gap_threshold: float = 0.5) -> list[TimelineChunk]:
    """
    Group dialogue segments into contiguous chunks by speaker continuity and overlap.

    Each segment is compared with the latest end time seen so far (in start-time order):
    - overlap: it starts before that end
    - gap: silence after that end exceeds `gap_threshold`
    - speaker change: its speaker differs from the last segment of the open chunk

    A new chunk opens on (speaker change without overlap), on a gap, or on the first
    overlap of the open chunk. The first overlap pulls the segment it overlaps into the
    new overlap chunk, so chunk coverage never overlaps; later overlaps extend that chunk.
    """
    ordered = sorted(segments, key=lambda s: s.start_time)
    if not ordered:
        return []

    chunks: list[TimelineChunk] = []
    current: list[DialogueSegment] = []
    has_overlap = False
    # A short segment nested inside a long one must not hide the long one's end.
    max_end: float | None = None

    for segment in ordered:
        is_overlap = max_end is not None and segment.start_time < max_end
        has_gap = max_end is not None and (segment.start_time - max_end) > gap_threshold
        max_end = segment.end_time if max_end is None else max(max_end, segment.end_time)
        speaker_changed = bool(current) and segment.speaker_id != current[-1].speaker_id

        starts_overlap = is_overlap and not has_overlap
        should_split = (speaker_changed and not is_overlap) or has_gap or starts_overlap

        if should_split and current:
            carried = [current.pop()] if starts_overlap else []
            if current:
                chunks.append(_make_chunk(current, has_overlap))
            current = carried + [segment]
            has_overlap = starts_overlap
        else:
            current.append(segment)
            if is_overlap:
                has_overlap = True

    if current:
        chunks.append(_make_chunk(current, has_overlap))

    logger.debug(
        f"分块完成: segments={len(ordered)}, chunks={len(chunks)}, "
        f"overlap={sum(1 for c in chunks if c.chunk_type is ChunkType.OVERLAP)}"
    )
    return chunks


@dataclass
class ChunkValidation:
    ok: bool = True
    out_of_bounds: list[tuple[int, DialogueSegment]] = field(default_factory=list)
    large_gaps: list[tuple[int, float]] = field(default_factory=list)
    overlapping: list[int] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.ok


def validate_chunks(chunks: Sequence[TimelineChunk]) -> ChunkValidation:
    """
    Check that every segment sits inside its chunk and that consecutive chunks do not
    overlap. Large gaps between chunks are reported but never fail the check.
    """
    report = ChunkValidation()
    for idx, chunk in enumerate(chunks):
        for segment in chunk.segments:
            if (
                segment.start_time < chunk.start_time - _BOUNDS_TOLERANCE_S
                or segment.end_time > chunk.end_time + _BOUNDS_TOLERANCE_S
            ):
                logger.error(f"片段超出分块范围: chunk={idx}, segment={segment}")
                report.out_of_bounds.append((idx, segment))
                report.ok = False

        if idx < len(chunks) - 1:
            if chunks[idx + 1].start_time < chunk.end_time:
                logger.error(
                    f"分块时间重叠: chunk {idx} 结束于 {chunk.end_time:.2f}s, "
                    f"chunk {idx + 1} 开始于 {chunks[idx + 1].start_time:.2f}s"
                )
                report.overlapping.append(idx)
                report.ok = False
            gap = chunks[idx + 1].start_time - chunk.end_time
            if gap > _LARGE_GAP_S:
                logger.warning(f"分块之间存在较大间隔: {gap:.2f}s (chunk {idx} -> {idx + 1})")
                report.large_gaps.append((idx, float(gap)))
    return report


def reorder_chunks(chunks: Sequence[TimelineChunk]) -> list[TimelineChunk]:
    """Stable partition: single-speaker first, then multi-speaker, then overlap."""
    return [c for kind in _CHUNK_PRIORITY for c in chunks if c.chunk_type is kind]


def flatten_chunks(chunks: Iterable[TimelineChunk]) -> list[DialogueSegment]:
    return [s for c in chunks for s in c.segments]
