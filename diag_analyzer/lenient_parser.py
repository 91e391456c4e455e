"""Lenient record parser: direct decode first, then bounded repair retries.

Tolerant decoding rules:
  - unknown fields ignored, field names matched case-insensitively
  - trailing commas and // or /* */ comments allowed
  - numeric fields may be encoded as strings
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum

from diag_analyzer.models import DiagnosticRecord, record_from_mapping
from diag_analyzer.repair import ELLIPSIS, repair

logger = logging.getLogger(__name__)

MAX_REPAIR_ATTEMPTS = 20
_TRUNCATION_POINTS = ",}]"


class ParseFailure(Enum):
    EMPTY_INPUT = "empty_input"
    UNPARSEABLE = "unparseable"
    REPAIR_EXHAUSTED = "repair_exhausted"


@dataclass(frozen=True)
class ParseOutcome:
    record: DiagnosticRecord | None = None
    failure: ParseFailure | None = None
    error_offset: int | None = None  # syntax error position, when known
    repaired: bool = False
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.record is not None


# ---------------------------------------------------------------------------
# Tolerant decoding
# ---------------------------------------------------------------------------


def _fold_keys(pairs: list[tuple[str, object]]) -> dict:
    return {key.lower(): value for key, value in pairs}


def strip_comments(text: str) -> str:
    """Remove // line comments and /* */ block comments outside strings."""
    out = []
    i = 0
    n = len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
        elif ch == "/" and text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
            continue
        elif ch == "/" and text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def strip_trailing_commas(text: str) -> str:
    """Drop commas that directly precede a closing bracket, outside strings."""
    out = []
    n = len(text)
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            out.append(ch)
            continue
        if ch == '"':
            in_string = True
        elif ch == ",":
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j < n and text[j] in "}]":
                continue
        out.append(ch)
    return "".join(out)


def decode_record(text: str) -> ParseOutcome:
    """Decode one JSON object into a DiagnosticRecord, tolerantly.

    Strict JSON is tried first; comments and trailing commas are only
    stripped when that fails. A syntax error offset is reported only when
    stripping left the text unchanged, so it always points into `text`.
    """
    try:
        data = json.loads(text, object_pairs_hook=_fold_keys)
    except json.JSONDecodeError as e:
        cleaned = strip_trailing_commas(strip_comments(text))
        if cleaned == text:
            return ParseOutcome(failure=ParseFailure.UNPARSEABLE, error_offset=e.pos)
        try:
            data = json.loads(cleaned, object_pairs_hook=_fold_keys)
        except (json.JSONDecodeError, RecursionError):
            return ParseOutcome(failure=ParseFailure.UNPARSEABLE)
    except RecursionError:
        return ParseOutcome(failure=ParseFailure.UNPARSEABLE)

    if not isinstance(data, dict):
        return ParseOutcome(failure=ParseFailure.UNPARSEABLE)
    return ParseOutcome(record=record_from_mapping(data))


# ---------------------------------------------------------------------------
# Repair loop
# ---------------------------------------------------------------------------


def truncate_candidate(text: str, error_offset: int | None) -> str | None:
    """Shorten text for the next repair attempt, or None if there is no cut point.

    Prefers the decoder's error offset; otherwise cuts after the nearest
    ',', '}' or ']' from the end (dropping a comma, keeping a bracket).
    """
    if error_offset is not None and 0 < error_offset < len(text):
        return text[:error_offset]

    last = len(text) - 1
    for i in range(last, 0, -1):
        ch = text[i]
        if ch == ",":
            return text[:i]
        if ch in _TRUNCATION_POINTS and i < last:
            return text[: i + 1]
    return None


def parse_record(line: str | None) -> ParseOutcome:
    """Parse a log line, repairing truncated JSON when the direct decode fails."""
    if line is None or not line.strip():
        return ParseOutcome(failure=ParseFailure.EMPTY_INPUT)

    outcome = decode_record(line)
    if outcome.ok:
        return outcome

    working = line
    error_offset = outcome.error_offset
    for attempt in range(1, MAX_REPAIR_ATTEMPTS + 1):
        # First pass repairs the line untouched
        if attempt > 1:
            truncated = truncate_candidate(working, error_offset)
            if truncated is None:
                logger.debug("No truncation point left after %d attempts: %.80s", attempt - 1, line)
                return ParseOutcome(failure=ParseFailure.UNPARSEABLE, attempts=attempt - 1)
            working = truncated

        candidate = repair(working)
        if candidate is None:
            return ParseOutcome(failure=ParseFailure.UNPARSEABLE, attempts=attempt)

        outcome = decode_record(candidate)
        if outcome.ok:
            return ParseOutcome(record=outcome.record, repaired=True, attempts=attempt)

        working = candidate
        error_offset = outcome.error_offset

    logger.debug("Repair attempts exhausted: %.80s", line)
    return ParseOutcome(failure=ParseFailure.REPAIR_EXHAUSTED, attempts=MAX_REPAIR_ATTEMPTS)


def parse(line: str | None) -> DiagnosticRecord | None:
    return parse_record(line).record


def looks_repaired(line: str) -> bool:
    """Heuristic used for the repaired-lines counter."""
    return ELLIPSIS in line or not line.rstrip().endswith("}")
