"""命令行入口测试."""

from __future__ import annotations

import json

import numpy as np


class _NoTranscriber:
    def transcribe(self, wav_bytes):
        raise AssertionError("a segments file skips transcription")


def _write_segments(path, items):
    path.write_text(json.dumps(items), encoding="utf-8")
    return path


def test_chunk_command_prints_timeline(tmp_path, monkeypatch, capsys):
    from dubline.__main__ import main

    monkeypatch.chdir(tmp_path)
    seg_path = _write_segments(
        tmp_path / "segs.json",
        [
            {"speakerId": "A", "startTime": 0, "endTime": 2, "transcription": "uno"},
            {"speakerId": "A", "startTime": 2, "endTime": 4, "transcription": "dos"},
            {"speakerId": "B", "startTime": 5, "endTime": 7, "transcription": "tres"},
        ],
    )

    assert main(["--log-level", "ERROR", "chunk", str(seg_path)]) == 0
    chunks = json.loads(capsys.readouterr().out)
    assert [(c["type"], c["start"], c["end"]) for c in chunks] == [
        ("single-speaker", 0.0, 4.0),
        ("single-speaker", 5.0, 7.0),
    ]


def test_chunk_command_gap_override(tmp_path, monkeypatch, capsys):
    from dubline.__main__ import main

    monkeypatch.chdir(tmp_path)
    seg_path = _write_segments(
        tmp_path / "segs.json",
        {"segments": [{"start": 0, "end": 1, "speaker": "A", "text": "x"}, {"start": 1.8, "end": 2, "speaker": "A", "text": "y"}]},
    )
    assert main(["--log-level", "ERROR", "chunk", str(seg_path), "--gap", "1.0"]) == 0
    assert len(json.loads(capsys.readouterr().out)) == 1


def test_check_command_reports_missing_credentials(tmp_path, monkeypatch, capsys):
    from dubline.__main__ import main

    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    assert main(["--log-level", "ERROR", "check"]) == 1
    out = capsys.readouterr().out
    assert "❌ 未配置 Gemini API Credentials" in out
    assert "✅ 已配置 LLM (OpenAI compatible) Credentials" in out


def test_dub_command_writes_track_outcomes_and_log(tmp_path, monkeypatch):
    import dubline.pipeline as pipeline_mod
    from dubline.__main__ import main
    from dubline.codec import decode_wav, write_wav

    monkeypatch.chdir(tmp_path)

    class _Gen:
        def generate(self, prompt, *, system=None):
            if "voice casting director" in prompt:
                return '{"gender": "male", "age": "adult", "emotion": "calm", "voiceName": "Charon"}'
            return "hola"

    class _Synth:
        sample_rate = 24000

        def synthesize(self, text, voice_name):
            return np.full(2400, 1000, dtype="<i2").tobytes()

    real_pipeline = pipeline_mod.DubPipeline
    monkeypatch.setattr(
        pipeline_mod,
        "DubPipeline",
        lambda settings: real_pipeline(settings, transcriber=_NoTranscriber(), generator=_Gen(), synthesizer=_Synth()),
    )

    audio = write_wav(tmp_path / "input.wav", np.zeros(16000, dtype=np.float32), 16000)
    seg_path = _write_segments(tmp_path / "segs.json", [{"start": 0.1, "end": 0.6, "speaker": "A", "text": "hello"}])
    out = tmp_path / "out" / "dub.wav"

    code = main(["--log-level", "ERROR", "dub", str(audio), "--segments", str(seg_path), "-o", str(out)])

    assert code == 0
    assert decode_wav(out.read_bytes()).num_frames == 24000
    outcomes = json.loads(out.with_suffix(".segments.json").read_text(encoding="utf-8"))
    assert [(o["status"], o["translation"]) for o in outcomes] == [("ok", "hola")]
    log_lines = out.with_suffix(".tts.log").read_text(encoding="utf-8").splitlines()
    assert log_lines[0].startswith("[TTS][REQUEST] #0")
    assert log_lines[1].startswith("[TTS][RESPONSE] #0")


def test_dub_failure_returns_error_code(tmp_path, monkeypatch):
    import dubline.pipeline as pipeline_mod
    from dubline.__main__ import main
    from dubline.codec import write_wav

    monkeypatch.chdir(tmp_path)

    class _Gen:
        def generate(self, prompt, *, system=None):
            return "{}"

    class _Synth:
        sample_rate = 24000

        def synthesize(self, text, voice_name):
            return None

    real_pipeline = pipeline_mod.DubPipeline
    monkeypatch.setattr(
        pipeline_mod,
        "DubPipeline",
        lambda settings: real_pipeline(settings, transcriber=_NoTranscriber(), generator=_Gen(), synthesizer=_Synth()),
    )

    audio = write_wav(tmp_path / "input.wav", np.zeros(8000, dtype=np.float32), 16000)
    seg_path = _write_segments(tmp_path / "segs.json", [{"start": 0, "end": 0.4, "speaker": "A", "text": "hello"}])
    out = tmp_path / "dub.wav"

    assert main(["--log-level", "ERROR", "dub", str(audio), "--segments", str(seg_path), "-o", str(out)]) == 1
    assert not out.exists()
    assert "[TTS][ERROR] #0" in out.with_suffix(".tts.log").read_text(encoding="utf-8")
