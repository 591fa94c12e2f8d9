"""Resilient parser for transcript JSON embedded in generative-model output.

WHY: Providers are asked to answer with ``{"transcript": [...],
"changes": "..."}`` but routinely wrap it in markdown fences, leave
trailing commas, emit full-width punctuation, put raw newlines inside
strings, or truncate the object entirely. A single ``json.loads`` would
discard a whole batch of otherwise usable edits.

HOW: Four independent strategies, each a pure function
``text -> Optional[ParsedResponse]``, are tried in order by
``parse_response``; the first hit wins:
  1. parse_normalized      : parse as-is, else clean the whole blob and parse
  2. parse_isolated_object : slice first ``{`` to last ``}``, then parse
  3. parse_isolated_array  : bracket-match the transcript array alone
  4. extract_fields        : regex-scan for segment-shaped fragments
Structured payloads are shape-checked with jsonschema, then each record
is rebuilt through the FIELD_ALIASES table.

RULES:
- Strategies never raise on malformed input; they return None
- parse_response raises ResponseParseError only when all four fail
- An empty array is a success only for strategies 1 and 2
- Segment ids are kept as returned; only missing ids are synthesized
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import jsonschema

from transcript_refiner.config import DEFAULT_SPEAKER, FALLBACK_PARSE_NOTE
from transcript_refiner.core.ir import Segment

logger = logging.getLogger(__name__)


class ResponseParseError(ValueError):
    """Raised when no strategy could recover segments from a response."""


@dataclass
class ParsedResponse:
    """Segments and change notes recovered from one provider response."""

    transcript: List[Segment]
    changes: Optional[str]
    strategy: str


# ---------------------------------------------------------------------------
# Field alias table
# ---------------------------------------------------------------------------

FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "id": ("id", "segment_id", "index", "seq"),
    "speaker": ("speaker", "speaker_label", "speaker_name", "speakerName"),
    "start": ("start", "start_time", "startTime", "begin"),
    "end": ("end", "end_time", "endTime", "stop"),
    "text": ("text", "content", "sentence", "transcript"),
}
"""Priority-ordered source keys for each Segment field."""


def record_value(record: Dict[str, Any], field_name: str) -> Any:
    """Return the first non-null value among a field's aliases, else None."""
    for key in FIELD_ALIASES[field_name]:
        value = record.get(key)
        if value is not None:
            return value
    return None


def to_float(value: Any) -> Optional[float]:
    """Coerce a JSON scalar to a finite float, or None."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _to_int(value: Any) -> Optional[int]:
    number = to_float(value)
    if number is None or number != int(number):
        return None
    return int(number)


def segment_from_record(record: Any, position: int) -> Optional[Segment]:
    """Rebuild one Segment from a loosely shaped record.

    RULES:
    - Non-dict records and records with neither speaker nor text are skipped
    - Missing or non-integer ids become ``position + 1``
    - Missing times default to 0.0, missing speaker to DEFAULT_SPEAKER
    """
    if not isinstance(record, dict):
        return None
    speaker = record_value(record, "speaker")
    text = record_value(record, "text")
    if speaker is None and text is None:
        return None

    segment_id = _to_int(record_value(record, "id"))
    start = to_float(record_value(record, "start"))
    end = to_float(record_value(record, "end"))
    return Segment(
        id=segment_id if segment_id is not None else position + 1,
        speaker=str(speaker) if speaker is not None and str(speaker).strip() else DEFAULT_SPEAKER,
        start=start if start is not None else 0.0,
        end=end if end is not None else 0.0,
        text=str(text) if text is not None else "",
    )


# ---------------------------------------------------------------------------
# Text cleanup
# ---------------------------------------------------------------------------

FULLWIDTH_PUNCTUATION: Dict[str, str] = {
    "\uff0c": ",",   # fullwidth comma
    "\uff1a": ":",   # fullwidth colon
    "\u201c": '"',
    "\u201d": '"',
    "\u2018": "'",
    "\u2019": "'",
    "\u3002": ".",   # ideographic full stop
}

_FENCE_RE = re.compile(r"```[A-Za-z]*[ \t]*")
_LEADING_TICKS_RE = re.compile(r"\A\s*`+(?:json)?", re.IGNORECASE)
_TRAILING_TICKS_RE = re.compile(r"`+\s*\Z")
_OUTER_FENCE_RE = re.compile(r"\A`+[A-Za-z]*\s*(.*?)\s*`+\Z", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_TEXT_VALUE_RE = re.compile(r'("text"\s*:\s*")((?:[^"\\]|\\.)*)(")', re.DOTALL)
_LONE_BACKSLASH_RE = re.compile(r'\\(?!["\\/bfnrtu]|\Z)')
_CHANGES_RE = re.compile(r'"changes"\s*:\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)


def strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def _escape_text_value(match: "re.Match[str]") -> str:
    body = _LONE_BACKSLASH_RE.sub(r"\\\\", match.group(2))
    body = body.replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")
    return match.group(1) + body + match.group(3)


def clean_response_text(text: str, map_punctuation: bool = True) -> str:
    """Apply the normalization pass used by strategies 1 and 3."""
    cleaned = text.lstrip("\ufeff")
    cleaned = _FENCE_RE.sub("", cleaned)
    cleaned = _LEADING_TICKS_RE.sub("", cleaned)
    cleaned = _TRAILING_TICKS_RE.sub("", cleaned)
    if map_punctuation:
        for source, target in FULLWIDTH_PUNCTUATION.items():
            cleaned = cleaned.replace(source, target)
    cleaned = strip_trailing_commas(cleaned)
    cleaned = _TEXT_VALUE_RE.sub(_escape_text_value, cleaned)
    return cleaned.strip()


def _decode_json_string(raw: str) -> str:
    """Decode the body of a JSON string literal captured by a regex."""
    try:
        return json.loads('"{}"'.format(raw), strict=False)
    except ValueError:
        return raw.replace('\\"', '"')


# ---------------------------------------------------------------------------
# Payload handling
# ---------------------------------------------------------------------------

_PAYLOAD_SCHEMA = {
    "type": "object",
    "anyOf": [
        {"required": ["transcript"], "properties": {"transcript": {"type": "array"}}},
        {"required": ["segments"], "properties": {"segments": {"type": "array"}}},
    ],
}
_PAYLOAD_VALIDATOR = jsonschema.Draft7Validator(_PAYLOAD_SCHEMA)


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return None


def _coerce_changes(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, list):
        value = "\n".join(str(item) for item in value if item is not None)
    value = str(value).strip()
    return value or None


def _from_payload(payload: Any, strategy: str, allow_empty: bool) -> Optional[ParsedResponse]:
    if isinstance(payload, list):
        payload = {"transcript": payload}
    if not _PAYLOAD_VALIDATOR.is_valid(payload):
        return None

    records: List[Any] = []
    for key in ("transcript", "segments"):
        if isinstance(payload.get(key), list):
            records = payload[key]
            break

    segments = []
    for position, record in enumerate(records):
        segment = segment_from_record(record, position)
        if segment is not None:
            segments.append(segment)

    if not segments and (records or not allow_empty):
        return None
    return ParsedResponse(
        transcript=segments,
        changes=_coerce_changes(payload.get("changes")),
        strategy=strategy,
    )


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def _unfenced(text: str) -> List[str]:
    """The blob as-is, plus its body when one fence wraps the whole blob."""
    stripped = text.lstrip("\ufeff").strip()
    candidates = [stripped]
    match = _OUTER_FENCE_RE.match(stripped)
    if match:
        candidates.append(match.group(1))
    return candidates


def parse_normalized(text: str) -> Optional[ParsedResponse]:
    """Strategy 1: normalize the whole blob and parse it.

    Valid JSON, bare or inside one outer fence, is parsed before any
    cleanup so string values containing ``, ]`` or backticks survive.
    Cleanup without punctuation mapping is tried next so that full-width
    punctuation inside an otherwise valid payload survives.
    """
    candidates = _unfenced(text) + [
        clean_response_text(text, map_punctuation=False),
        clean_response_text(text, map_punctuation=True),
    ]
    for candidate in candidates:
        result = _from_payload(_loads(candidate), "normalized", allow_empty=True)
        if result is not None:
            return result
    return None


def parse_isolated_object(text: str) -> Optional[ParsedResponse]:
    """Strategy 2: parse the span between the first ``{`` and the last ``}``."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    payload = _loads(strip_trailing_commas(text[start:end + 1]))
    return _from_payload(payload, "isolated_object", allow_empty=True)


_ARRAY_KEY_RE = re.compile(r'"(?:transcript|segments)"\s*:\s*\[')


def _matching_bracket(text: str, open_index: int) -> Optional[int]:
    """Index of the ``]`` closing the ``[`` at open_index, string-aware."""
    depth = 0
    in_string = False
    escaped = False
    for index in range(open_index, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return index
    return None


def parse_isolated_array(text: str) -> Optional[ParsedResponse]:
    """Strategy 3: recover the transcript array on its own."""
    for match in _ARRAY_KEY_RE.finditer(text):
        open_index = match.end() - 1
        close_index = _matching_bracket(text, open_index)
        if close_index is None:
            continue
        wrapped = '{"transcript": ' + text[open_index:close_index + 1] + "}"
        for map_punctuation in (False, True):
            payload = _loads(clean_response_text(wrapped, map_punctuation=map_punctuation))
            result = _from_payload(payload, "isolated_array", allow_empty=False)
            if result is not None:
                changes_match = _CHANGES_RE.search(text)
                if changes_match:
                    result.changes = _coerce_changes(_decode_json_string(changes_match.group(1)))
                return result
    return None


_FULL_SEGMENT_RE = re.compile(
    r'\{\s*"id"\s*:\s*"?(\d+)"?\s*,'
    r'\s*"speaker"\s*:\s*"((?:[^"\\]|\\.)*)"\s*,'
    r'\s*"start"\s*:\s*"?([\d.]+)"?\s*,'
    r'\s*"end"\s*:\s*"?([\d.]+)"?\s*,'
    r'\s*"text"\s*:\s*"((?:[^"\\]|\\.)*)"',
    re.DOTALL,
)
_SPEAKER_TEXT_RE = re.compile(
    r'"speaker"\s*:\s*"((?:[^"\\]|\\.)+)"(.*?)"text"\s*:\s*"((?:[^"\\]|\\.)*)"',
    re.DOTALL,
)
_NUMBER_FIELD_RE = {
    name: re.compile(r'"{}"\s*:\s*"?([\d.]+)'.format(name)) for name in ("id", "start", "end")
}


def _number_in(span: str, name: str) -> Optional[float]:
    match = _NUMBER_FIELD_RE[name].search(span)
    return to_float(match.group(1)) if match else None


def extract_fields(text: str) -> Optional[ParsedResponse]:
    """Strategy 4: rebuild segments from field fragments found anywhere."""
    segments: List[Segment] = []
    for match in _FULL_SEGMENT_RE.finditer(text):
        start = to_float(match.group(3))
        end = to_float(match.group(4))
        segments.append(Segment(
            id=int(match.group(1)),
            speaker=_decode_json_string(match.group(2)),
            start=start if start is not None else 0.0,
            end=end if end is not None else 0.0,
            text=_decode_json_string(match.group(5)),
        ))

    if not segments:
        for match in _SPEAKER_TEXT_RE.finditer(text):
            between = match.group(2)
            segment_id = _number_in(between, "id")
            start = _number_in(between, "start")
            end = _number_in(between, "end")
            segments.append(Segment(
                id=int(segment_id) if segment_id is not None else len(segments) + 1,
                speaker=_decode_json_string(match.group(1)),
                start=start if start is not None else 0.0,
                end=end if end is not None else 0.0,
                text=_decode_json_string(match.group(3)),
            ))

    if not segments:
        return None
    changes_match = _CHANGES_RE.search(text)
    changes = _coerce_changes(_decode_json_string(changes_match.group(1))) if changes_match else None
    return ParsedResponse(
        transcript=segments,
        changes=changes or FALLBACK_PARSE_NOTE,
        strategy="fields",
    )


STRATEGIES: Sequence[Callable[[str], Optional[ParsedResponse]]] = (
    parse_normalized,
    parse_isolated_object,
    parse_isolated_array,
    extract_fields,
)


def parse_response(text: str) -> ParsedResponse:
    """Recover transcript segments and change notes from provider text.

    Args:
        text: Raw provider response of unspecified shape.

    Returns:
        The ParsedResponse of the first strategy that succeeds.

    Raises:
        ResponseParseError: every strategy failed.
    """
    if text and text.strip():
        for strategy in STRATEGIES:
            result = strategy(text)
            if result is not None:
                if strategy is not parse_normalized:
                    logger.info(
                        "Recovered %d segments with %s strategy",
                        len(result.transcript), result.strategy,
                    )
                return result
            logger.debug("Parse strategy %s failed", strategy.__name__)
    raise ResponseParseError(
        "Could not parse the provider response as transcript JSON ({} chars)".format(
            len(text or "")
        )
    )
