"""逐片段语音合成 / 合成日志测试."""

from __future__ import annotations

import numpy as np
import pytest

from dubline.errors import AllSegmentsFailedError
from dubline.segments import SpeakerProfile, TranslatedSegment


def _pcm(seconds: float, amp: float = 0.25, sr: int = 24000) -> bytes:
    n = int(round(seconds * sr))
    return np.rint(np.full(n, amp * 32767, dtype=np.float64)).astype("<i2").tobytes()


def _tseg(speaker: str, start: float, text: str, dur: float = 2.0) -> TranslatedSegment:
    return TranslatedSegment(speaker_id=speaker, text=text, start_time=start, end_time=start + dur)


_PROFILES = {
    "A": SpeakerProfile("A", "female", "adult", "calm", "Kore"),
    "B": SpeakerProfile("B", "male", "adult", "tense", "Puck"),
}


class _FakeSynth:
    sample_rate = 24000

    def __init__(self, replies: dict):
        self.replies = replies
        self.calls: list[tuple[str, str]] = []

    def synthesize(self, text, voice_name):
        self.calls.append((text, voice_name))
        reply = self.replies.get(text, b"")
        if isinstance(reply, Exception):
            raise reply
        return reply


# --------------------------------------------------------------------------- #
# SynthesisLog
# --------------------------------------------------------------------------- #


def test_synthesis_log_is_append_only_and_formats_lines():
    from dubline.steps.synthesize_speech import SynthesisLog

    log = SynthesisLog()
    log.append("REQUEST", "hello", 3)
    log.append("NOTE", "global")
    assert len(log) == 2
    assert [e.kind for e in log] == ["REQUEST", "NOTE"]
    assert log.lines() == ["[TTS][REQUEST] #3 hello", "[TTS][NOTE] global"]
    assert isinstance(log.entries, tuple)


# --------------------------------------------------------------------------- #
# synthesize_segment
# --------------------------------------------------------------------------- #


def test_successful_segment_becomes_clip_at_segment_start():
    from dubline.steps.synthesize_speech import SynthesisLog, synthesize_segment

    synth = _FakeSynth({"Hola": _pcm(0.5)})
    log = SynthesisLog()
    outcome = synthesize_segment(0, _tseg("A", 1.25, "Hola"), _PROFILES["A"], synth, log)

    assert outcome.ok and outcome.status == "ok"
    clip = outcome.clip
    assert clip.speaker_id == "A"
    assert clip.start_time == 1.25
    assert clip.sample_rate == 24000
    assert clip.num_samples == 12000
    np.testing.assert_allclose(clip.samples, np.round(0.25 * 32767) / 32768, rtol=1e-6)
    assert synth.calls == [("Hola", "Kore")]
    assert [e.kind for e in log] == ["REQUEST", "RESPONSE"]
    assert '"voiceName": "Kore"' in log.entries[0].message
    assert outcome.warnings == ()


def test_empty_text_and_missing_voice_are_skipped_without_calls():
    from dubline.steps.synthesize_speech import SynthesisLog, synthesize_segment

    synth = _FakeSynth({})
    log = SynthesisLog()
    empty = synthesize_segment(0, _tseg("A", 0, "   "), _PROFILES["A"], synth, log)
    no_voice = synthesize_segment(1, _tseg("Z", 0, "Hola"), None, synth, log)

    assert (empty.status, empty.reason) == ("skipped", "empty translation")
    assert (no_voice.status, no_voice.reason) == ("skipped", "no voice for speaker")
    assert synth.calls == []
    assert len(log) == 0


@pytest.mark.parametrize(
    ("reply", "kind", "reason"),
    [
        (None, "ERROR", "No audio data returned"),
        (b"", "ERROR", "No audio data returned"),
        (b"\x01", "ERROR", "Audio payload decoded to zero frames"),
        (RuntimeError("voice offline"), "EXCEPTION", "voice offline"),
    ],
)
def test_failed_segment_is_recorded_not_raised(reply, kind, reason):
    from dubline.steps.synthesize_speech import SynthesisLog, synthesize_segment

    synth = _FakeSynth({"Hola": reply})
    log = SynthesisLog()
    outcome = synthesize_segment(4, _tseg("B", 0, "Hola"), _PROFILES["B"], synth, log)

    assert outcome.status == "failed"
    assert outcome.ok is False
    assert outcome.clip is None
    assert outcome.reason == reason
    assert [e.kind for e in log] == ["REQUEST", kind]
    assert all(e.segment_index == 4 for e in log)
    assert "Hola" in log.entries[1].message


def test_overlong_clip_is_kept_with_warning(monkeypatch):
    from dubline.steps.synthesize_speech import SynthesisLog, synthesize_segment

    monkeypatch.delenv("DUBLINE_TTS_MAX_SEGMENT_DURATION_RATIO", raising=False)
    monkeypatch.delenv("DUBLINE_TTS_MAX_SEGMENT_DURATION_EXTRA_SEC", raising=False)

    synth = _FakeSynth({"Hola": _pcm(10.0)})
    outcome = synthesize_segment(0, _tseg("A", 0, "Hola", dur=1.0), _PROFILES["A"], synth, SynthesisLog())
    assert outcome.ok
    assert len(outcome.warnings) == 1
    assert "exceeds allowed 9.00s" in outcome.warnings[0]


def test_duration_guard_params_from_env(monkeypatch):
    from dubline.steps.synthesize_speech import _tts_duration_guard_params, _tts_segment_allowed_max_seconds

    monkeypatch.setenv("DUBLINE_TTS_MAX_SEGMENT_DURATION_RATIO", "1.5")
    monkeypatch.setenv("DUBLINE_TTS_MAX_SEGMENT_DURATION_EXTRA_SEC", "oops")
    assert _tts_duration_guard_params() == (1.5, 8.0)

    monkeypatch.setenv("DUBLINE_TTS_MAX_SEGMENT_DURATION_RATIO", "0.5")
    monkeypatch.setenv("DUBLINE_TTS_MAX_SEGMENT_DURATION_EXTRA_SEC", "-1")
    assert _tts_duration_guard_params() == (3.0, 8.0)

    assert _tts_segment_allowed_max_seconds(10.0, 3.0, 8.0) == 30.0
    assert _tts_segment_allowed_max_seconds(1.0, 3.0, 8.0) == 9.0
    assert _tts_segment_allowed_max_seconds(0.0, 3.0, 8.0) is None


# --------------------------------------------------------------------------- #
# synthesize_segments / require_any_success
# --------------------------------------------------------------------------- #


def test_one_failure_does_not_stop_the_batch():
    from dubline.steps.synthesize_speech import SynthesisLog, require_any_success, synthesize_segments

    segs = [_tseg("A", 0, "uno"), _tseg("B", 2, "dos"), _tseg("A", 4, "tres")]
    synth = _FakeSynth({"uno": _pcm(0.2), "dos": RuntimeError("boom"), "tres": _pcm(0.3)})
    log = SynthesisLog()

    outcomes = synthesize_segments(segs, _PROFILES, synth, log)

    assert [o.status for o in outcomes] == ["ok", "failed", "ok"]
    clips = require_any_success(outcomes)
    assert [c.start_time for c in clips] == [0, 4]
    assert [e.kind for e in log] == ["REQUEST", "RESPONSE", "REQUEST", "EXCEPTION", "REQUEST", "RESPONSE"]


def test_custom_order_controls_calls_but_not_result_order():
    from dubline.steps.synthesize_speech import SynthesisLog, synthesize_segments

    segs = [_tseg("A", 0, "uno"), _tseg("B", 2, "dos"), _tseg("A", 4, "tres")]
    synth = _FakeSynth({"uno": _pcm(0.1), "dos": _pcm(0.1), "tres": _pcm(0.1)})
    log = SynthesisLog()

    outcomes = synthesize_segments(segs, _PROFILES, synth, log, order=[2, 0, 1])

    assert [t for t, _ in synth.calls] == ["tres", "uno", "dos"]
    assert [o.index for o in outcomes] == [0, 1, 2]
    assert [e.segment_index for e in log if e.kind == "REQUEST"] == [2, 0, 1]


def test_all_failed_raises_with_outcomes():
    from dubline.steps.synthesize_speech import SynthesisLog, require_any_success, synthesize_segments

    segs = [_tseg("A", 0, "uno"), _tseg("A", 2, "")]
    outcomes = synthesize_segments(segs, _PROFILES, _FakeSynth({"uno": None}), SynthesisLog())

    with pytest.raises(AllSegmentsFailedError) as excinfo:
        require_any_success(outcomes)
    assert [o.status for o in excinfo.value.outcomes] == ["failed", "skipped"]
    assert "all dialogue segments" in str(excinfo.value)


def test_outcome_to_dict_is_json_friendly():
    from dubline.steps.synthesize_speech import SynthesisLog, synthesize_segment

    outcome = synthesize_segment(2, _tseg("A", 1.0, "Hola"), _PROFILES["A"], _FakeSynth({"Hola": _pcm(0.5)}), SynthesisLog())
    data = outcome.to_dict()
    assert data["index"] == 2
    assert data["status"] == "ok"
    assert data["clip_seconds"] == 0.5
    assert data["translation"] == "Hola"
    assert data["speaker"] == "A"
