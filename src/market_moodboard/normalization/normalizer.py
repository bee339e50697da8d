"""
Turn raw LLM text into a validated moodboard, or degrade to a raw passthrough.

Pipeline:
  1) strip a leading opening fence and a trailing closing fence
  2) pick the largest top-level JSON object (string-aware scan)
  3) overwrite `date` / `analyzed_at` from the service clock
  4) validate against the JSON Schema

`normalize` never raises for string input.
"""

from __future__ import annotations

import json
import re
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

import jsonschema

from market_moodboard.normalization.schemas import (
    SCHEMA_VERSION,
    ContextTimestamps,
    NormalizedOutput,
    moodboard_json_schema,
)
from market_moodboard.telemetry import InvocationObserver

_OPEN_FENCE_RE = re.compile(r"^```(?:json|JSON)?[ \t]*\n?")
_CLOSE_FENCE_RE = re.compile(r"\n?```$")
_DECODER = json.JSONDecoder()


def strip_code_fences(text: str) -> str:
    """Fences inside the text (including inside string values) are left alone."""
    t = str(text or "").strip()
    t = _OPEN_FENCE_RE.sub("", t, count=1)
    t = _CLOSE_FENCE_RE.sub("", t, count=1)
    return t.strip()


def extract_largest_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Largest top-level JSON object in `text`, or None.

    Each `{` outside an already-parsed object is tried with `raw_decode`, so braces inside string
    literals never confuse the scan.
    """
    best: Optional[Tuple[int, Dict[str, Any]]] = None
    i = 0
    n = len(text)
    while i < n:
        start = text.find("{", i)
        if start < 0:
            break
        try:
            obj, end = _DECODER.raw_decode(text, start)
        except (ValueError, RecursionError):
            i = start + 1
            continue
        if isinstance(obj, dict):
            span = end - start
            if best is None or span > best[0]:
                best = (span, obj)
        i = end
    return best[1] if best else None


@lru_cache(maxsize=8)
def _validator_for(schema_key: str) -> jsonschema.Validator:
    return jsonschema.Draft202012Validator(json.loads(schema_key))


def _schema_key(schema: Dict[str, Any]) -> str:
    return json.dumps(schema, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def schema_errors(data: Any, expected_schema: Dict[str, Any]) -> List[str]:
    """`path: message` strings, sorted by path. Empty list means valid."""
    validator = _validator_for(_schema_key(expected_schema))
    errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])
    out: List[str] = []
    for e in errors:
        path = "/".join(str(p) for p in e.path) or "<root>"
        out.append(f"{path}: {e.message}")
    return out


def normalize(
    raw: str,
    expected_schema: Optional[Dict[str, Any]],
    context_timestamps: ContextTimestamps,
    *,
    observer: Optional[InvocationObserver] = None,
) -> NormalizedOutput:
    raw_text = raw if isinstance(raw, str) else ("" if raw is None else str(raw))
    schema = expected_schema if isinstance(expected_schema, dict) else moodboard_json_schema()

    data = extract_largest_object(strip_code_fences(raw_text))
    if data is None:
        out = NormalizedOutput(
            schema_version=SCHEMA_VERSION,
            data=None,
            validated=False,
            raw_fallback=raw_text,
            errors=["<root>: no JSON object found in model reply"],
        )
        if observer is not None:
            observer.normalization_degraded(out.errors, len(raw_text))
        return out

    data = dict(data)
    data["date"] = context_timestamps.date
    data["analyzed_at"] = context_timestamps.analyzed_at

    try:
        errors = schema_errors(data, schema)
    except jsonschema.SchemaError as e:
        errors = [f"<schema>: {e.message}"]
    except RecursionError:
        errors = ["<root>: reply nests too deeply to validate"]

    if not errors:
        return NormalizedOutput(schema_version=SCHEMA_VERSION, data=data, validated=True, errors=[])

    out = NormalizedOutput(
        schema_version=SCHEMA_VERSION,
        data=data,
        validated=False,
        raw_fallback=raw_text,
        errors=errors,
    )
    if observer is not None:
        observer.normalization_degraded(out.errors, len(raw_text))
    return out


class ResponseNormalizer:
    """`normalize` bound to one schema and observer."""

    def __init__(
        self,
        expected_schema: Optional[Dict[str, Any]] = None,
        observer: Optional[InvocationObserver] = None,
    ) -> None:
        self.expected_schema = expected_schema or moodboard_json_schema()
        self.observer = observer

    def normalize(self, raw: str, context_timestamps: ContextTimestamps) -> NormalizedOutput:
        return normalize(raw, self.expected_schema, context_timestamps, observer=self.observer)


__all__ = [
    "ResponseNormalizer",
    "extract_largest_object",
    "normalize",
    "schema_errors",
    "strip_code_fences",
]
