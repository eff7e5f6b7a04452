import json
import logging

import pytest

from songwriting.logging_utils import (
    EditorContextFilter,
    StructuredFormatter,
    bind_session,
    clear_request_context,
    set_request_context,
    unbind_session,
)
from songwriting.settings import beats_per_bar, clamp_tempo, load_settings


def _record(event: str = "bar_added", **fields) -> logging.LogRecord:
    record = logging.LogRecord("songwriting.test", logging.INFO, __file__, 1, event, None, None)
    record.event = event
    for key, value in fields.items():
        setattr(record, key, value)
    EditorContextFilter().filter(record)
    return record


def test_load_settings_defaults(monkeypatch):
    for name in (
        "SONGWRITING_DEFAULT_TEMPO",
        "SONGWRITING_DEFAULT_TIME_SIGNATURE",
        "SONGWRITING_DEFAULT_KEY",
        "SONGWRITING_PIXELS_PER_BEAT",
        "SONGWRITING_DEFAULT_SECTION_BARS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.default_tempo == 120
    assert settings.default_time_signature == "4/4"
    assert settings.default_key == "C"
    assert settings.pixels_per_beat == 60.0
    assert settings.default_section_bars == 16


def test_load_settings_reads_environment(monkeypatch):
    monkeypatch.setenv("SONGWRITING_DEFAULT_TEMPO", "240")
    monkeypatch.setenv("SONGWRITING_DEFAULT_TIME_SIGNATURE", "3/4")
    monkeypatch.setenv("SONGWRITING_PIXELS_PER_BEAT", "48")
    monkeypatch.setenv("SONGWRITING_DEFAULT_SECTION_BARS", "8")

    settings = load_settings()

    assert settings.default_tempo == 200
    assert settings.default_time_signature == "3/4"
    assert settings.pixels_per_beat == 48.0
    assert settings.default_section_bars == 8


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("SONGWRITING_DEFAULT_TIME_SIGNATURE", "5/4"),
        ("SONGWRITING_PIXELS_PER_BEAT", "0"),
        ("SONGWRITING_DEFAULT_SECTION_BARS", "0"),
    ],
)
def test_load_settings_rejects_bad_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError):
        load_settings()


def test_beats_per_bar_and_tempo_helpers():
    assert [beats_per_bar(ts) for ts in ("4/4", "6/8", "3/4", "2/4", "7/8")] == [4, 6, 3, 2, 4]
    assert clamp_tempo(59.6) == 60
    assert clamp_tempo(140.4) == 140
    assert clamp_tempo(1000) == 200


def test_json_formatter_includes_context_and_fields():
    set_request_context(request_id="req-9", route="/api/songs/open", method="POST")
    token = bind_session("session-1")
    try:
        record = _record(section_id="verse-1", bar_count=3)
    finally:
        unbind_session(token)
        clear_request_context()

    payload = json.loads(StructuredFormatter(json_output=True).format(record))

    assert payload["event"] == "bar_added"
    assert payload["logger"] == "songwriting.test"
    assert payload["request_id"] == "req-9"
    assert payload["session_id"] == "session-1"
    assert payload["section_id"] == "verse-1"
    assert payload["bar_count"] == 3


def test_text_formatter_omits_unset_context():
    record = _record(chord="Am")

    line = StructuredFormatter(json_output=False).format(record)

    assert "event=bar_added" in line
    assert "chord=Am" in line
    assert "request_id" not in line
    assert "session_id" not in line
