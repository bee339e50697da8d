import json

import pytest

from conftest import FIXED_NOW, VALID_REPLY, RecordingObserver

from market_moodboard.normalization.normalizer import (
    ResponseNormalizer,
    extract_largest_object,
    normalize,
    strip_code_fences,
)
from market_moodboard.normalization.schemas import ContextTimestamps, moodboard_json_schema

TS = ContextTimestamps.from_clock(FIXED_NOW)
SCHEMA = moodboard_json_schema()


def test_context_timestamps_format():
    assert TS.date == "2025-01-15"
    assert TS.analyzed_at == "2025-01-15T12:30:45.123Z"


def test_valid_reply_is_validated_and_timestamps_overwritten():
    out = normalize(VALID_REPLY, SCHEMA, TS)
    assert out.validated is True
    assert out.raw_fallback is None
    assert out.errors == []
    assert out.data["date"] == TS.date
    assert out.data["analyzed_at"] == TS.analyzed_at
    assert "rawFallback" not in out.to_wire()
    assert out.to_wire()["schemaVersion"] == "moodboard.v1"


def test_fenced_reply_after_prose():
    raw = "Sure! ```json\n" + VALID_REPLY + "\n```"
    out = normalize(raw, SCHEMA, TS)
    assert out.validated is True
    assert out.data["coins"][0]["symbol"] == "BTC"


def test_fenced_round_trip_matches_plain():
    plain = normalize(VALID_REPLY, SCHEMA, TS)
    fenced = normalize("```json\n" + VALID_REPLY + "\n```", SCHEMA, TS)
    assert fenced.data == plain.data
    assert fenced.validated is plain.validated


def test_refusal_degrades_with_raw_verbatim():
    raw = "I cannot help with that."
    out = normalize(raw, SCHEMA, TS)
    assert out.validated is False
    assert out.raw_fallback == raw
    assert out.data is None
    assert out.errors


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        '{"date": "2025-01-01", "coins": [',
        "}{",
        "{{{{",
        '"just a string"',
        "[1, 2, 3]",
        "null",
        "```",
        "\x00\x01binary",
        '{"a":' + "[" * 20000 + "]" * 20000 + "}",
    ],
)
def test_degraded_path_never_raises(raw):
    out = normalize(raw, SCHEMA, TS)
    assert out.validated is False
    assert out.raw_fallback == raw


def test_schema_violation_keeps_best_effort_data():
    reply = json.dumps({"coins": [{"symbol": "BTC", "mood": "🚀", "narrative": "up", "score": 1.7}]})
    out = normalize(reply, SCHEMA, TS)
    assert out.validated is False
    assert out.raw_fallback == reply
    assert out.data["coins"][0]["score"] == 1.7
    assert out.data["date"] == TS.date
    assert any(e.startswith("coins/0/score:") for e in out.errors)


def test_empty_coins_is_invalid():
    out = normalize('{"coins": []}', SCHEMA, TS)
    assert out.validated is False
    assert any(e.startswith("coins:") for e in out.errors)


def test_timestamps_set_even_when_model_omits_them():
    reply = json.loads(VALID_REPLY)
    del reply["date"]
    del reply["analyzed_at"]
    out = normalize(json.dumps(reply), SCHEMA, TS)
    assert out.validated is True
    assert out.data["date"] == TS.date


def test_normalize_is_idempotent_and_deterministic():
    first = normalize("Here you go: " + VALID_REPLY, SCHEMA, TS)
    again = normalize(json.dumps(first.data, ensure_ascii=False), SCHEMA, TS)
    assert again.data == first.data
    assert normalize("Here you go: " + VALID_REPLY, SCHEMA, TS) == first


def test_largest_object_wins_and_braces_in_strings_are_ignored():
    text = 'note {"a": 1} then {"narrative": "weird } brace {", "b": [1, 2, 3]} end'
    assert extract_largest_object(text) == {"narrative": "weird } brace {", "b": [1, 2, 3]}
    assert extract_largest_object("no objects here") is None


def test_strip_code_fences_only_at_the_edges():
    assert strip_code_fences("```json\n{\"a\": 1}\n```") == '{"a": 1}'
    assert strip_code_fences("  ```\n{}\n```  ") == "{}"
    assert strip_code_fences("a ```json b ``` c") == "a ```json b ``` c"


def test_fence_inside_string_value_survives_round_trip():
    obj = json.loads(VALID_REPLY)
    obj["coins"][0]["narrative"] = "see ```json block```"
    obj["date"] = TS.date
    obj["analyzed_at"] = TS.analyzed_at
    out = normalize("```json\n" + json.dumps(obj, ensure_ascii=False) + "\n```", SCHEMA, TS)
    assert out.validated is True
    assert out.data == obj


def test_optional_fields_may_be_omitted_but_not_null():
    reply = json.loads(VALID_REPLY)
    del reply["market_sentiment"]
    del reply["coins"][0]["price_change_24h"]
    assert normalize(json.dumps(reply), SCHEMA, TS).validated is True

    reply["coins"][1]["market_cap_rank"] = None
    out = normalize(json.dumps(reply), SCHEMA, TS)
    assert out.validated is False
    assert any(e.startswith("coins/1/market_cap_rank:") for e in out.errors)


def test_normalizer_reports_degradation():
    obs = RecordingObserver()
    normalizer = ResponseNormalizer(observer=obs)
    normalizer.normalize("nope", TS)
    normalizer.normalize(VALID_REPLY, TS)
    assert obs.names() == ["normalization_degraded"]
