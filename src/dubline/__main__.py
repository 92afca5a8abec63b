from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from .chunker import chunk_segments, validate_chunks
from .config import Settings
from .errors import DubError
from .models import CredentialManager, ModelCheckError
from .segments import DialogueSegment


def _load_segments(path: Path) -> list[DialogueSegment]:
    with open(path, "r", encoding="utf-8") as f:
        items: Any = json.load(f)
    if isinstance(items, dict):
        items = items.get("segments") or []
    return [DialogueSegment.from_dict(item) for item in items]


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def _cmd_chunk(args: argparse.Namespace, settings: Settings) -> int:
    segments = _load_segments(Path(args.segments))
    gap = args.gap if args.gap is not None else settings.chunk_gap_threshold
    chunks = chunk_segments(segments, gap_threshold=gap)
    report = validate_chunks(chunks)
    print(json.dumps([c.to_dict() for c in chunks], ensure_ascii=False, indent=2))
    return 0 if report.ok else 1


def _cmd_check(_args: argparse.Namespace, settings: Settings) -> int:
    manager = CredentialManager(settings)
    print(manager.describe_status())
    return 0 if not manager.missing() else 1


def _cmd_dub(args: argparse.Namespace, settings: Settings) -> int:
    import librosa

    from .pipeline import DubPipeline
    from .steps.synthesize_speech import SynthesisLog

    if args.equalize:
        settings.equalize_speakers = True
    if args.gain_mode:
        settings.gain_mode = args.gain_mode
    if args.plain_translation:
        settings.optimize_translation = False

    output = Path(args.output) if args.output else settings.output_folder / f"{Path(args.input).stem}_dub.wav"
    output.parent.mkdir(parents=True, exist_ok=True)

    samples, sr = librosa.load(args.input, sr=None, mono=True)
    total_duration = samples.shape[0] / float(sr)

    pipeline = DubPipeline(settings)
    log = SynthesisLog()
    try:
        if args.segments:
            segments = _load_segments(Path(args.segments))
            result = pipeline.dub_segments(segments, total_duration, args.lang, log=log)
        else:
            result = pipeline.dub_audio(samples, int(sr), args.lang, log=log)
    finally:
        log_path = Path(args.log_file) if args.log_file else output.with_suffix(".tts.log")
        log_path.write_text("\n".join(log.lines()) + "\n", encoding="utf-8")

    output.write_bytes(result.wav_bytes)
    outcomes_path = output.with_suffix(".segments.json")
    with open(outcomes_path, "w", encoding="utf-8") as f:
        json.dump([o.to_dict() for o in result.outcomes], f, ensure_ascii=False, indent=2)

    logger.info(f"已保存配音音轨: {output} (成功 {result.succeeded}, 失败 {result.failed})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dubline", description="Dialogue-timeline dubbing engine")
    parser.add_argument("--log-level", default="INFO", help="loguru level for stderr output")
    sub = parser.add_subparsers(dest="command", required=True)

    dub = sub.add_parser("dub", help="Dub an extracted audio track into another language")
    dub.add_argument("input", help="Audio file (any format librosa can read)")
    dub.add_argument("--lang", default=None, help="Target language code or name (default: settings)")
    dub.add_argument("-o", "--output", default=None, help="Output WAV path")
    dub.add_argument("--segments", default=None, help="Skip transcription and use this segments JSON")
    dub.add_argument("--log-file", default=None, help="Where to write the per-segment TTS log")
    dub.add_argument("--equalize", action="store_true", help="Equalize speaker loudness before mixing")
    dub.add_argument("--gain-mode", choices=["global", "concurrent"], default=None)
    dub.add_argument("--plain-translation", action="store_true", help="Use one-shot batch translation")
    dub.set_defaults(func=_cmd_dub)

    chunk = sub.add_parser("chunk", help="Print the chunk timeline of a segments JSON")
    chunk.add_argument("segments", help="Segments JSON (list of {start, end, speaker, text})")
    chunk.add_argument("--gap", type=float, default=None, help="Gap threshold in seconds")
    chunk.set_defaults(func=_cmd_chunk)

    check = sub.add_parser("check", help="Show credential status")
    check.set_defaults(func=_cmd_check)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.log_level)
    settings = Settings()
    try:
        return int(args.func(args, settings))
    except ModelCheckError as exc:
        logger.error(str(exc))
        return 2
    except DubError as exc:
        logger.error(f"配音失败: {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
