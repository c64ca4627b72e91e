"""
CardScan — Response Normalizer

Turns the raw text of a vision reply into a canonical CardRecord.

The model is asked for a bare JSON object but frequently wraps it in
markdown fences, sometimes more than one pair. Fences are stripped in two
bounded passes:

    1. text starts with ```json  → drop every ```json and every ``` fence
    2. text still starts with ``` → drop every remaining bare fence

Field rules (inherited from the scan API contract):
- string / number fields: truthy value wins, else default. A legitimate
  0 or "" is indistinguishable from a missing field.
- is_autographed / is_graded: True only for a strict JSON `true`.
- numbered: the string "true" only for a strict JSON `true`, else "false".
- parallel: always routed through clean_parallel_name().

Malformed JSON returns None; callers decide whether to retry or fall back
to empty_card().
"""

from __future__ import annotations

import json
import math
import re
from datetime import date
from typing import Any, Mapping

import structlog

from src.config import DEFAULT_CONDITION, DEFAULT_PARALLEL, DEFAULT_SPORT
from src.scanner import CardRecord

logger = structlog.get_logger(__name__)

_JSON_FENCE = re.compile(r"```json\n?")
_BARE_FENCE = re.compile(r"```\n?")
_BRACKETED = re.compile(r"\[([^\]]+)\]")
_CARD_NUMBER_TOKEN = re.compile(r"#[0-9]+")
_LEADING_YEAR = re.compile(r"^\s*([0-9]{4})")


# ---------------------------------------------------------------------------
# Fence stripping
# ---------------------------------------------------------------------------


def strip_code_fences(text: str) -> str:
    """
    Remove markdown code fences from a vision reply.

    The json-fence pass runs first; the bare-fence pass only applies when the
    result still opens with a fence (i.e. the reply used ``` with no tag).
    """
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = _JSON_FENCE.sub("", cleaned)
        cleaned = _BARE_FENCE.sub("", cleaned)
    if cleaned.startswith("```"):
        cleaned = _BARE_FENCE.sub("", cleaned)
    return cleaned


# ---------------------------------------------------------------------------
# Parallel cleaning
# ---------------------------------------------------------------------------


def clean_parallel_name(raw: Any) -> str:
    """
    Extract the variant name from a parallel label.

    Vision replies sometimes embed the player and card number in the label,
    e.g. "Josh Allen [Green Shock] #205". First match wins:

    1. falsy → "Base"
    2. bracketed text → the first [...] contents, trimmed
    3. otherwise every "#<digits>" token removed, trimmed, or "Base"

    Args:
        raw: Parallel label from the model (may be None or non-string).

    Returns:
        Non-empty variant name.
    """
    if not raw:
        return DEFAULT_PARALLEL

    label = str(raw)
    if "[" in label and "]" in label:
        match = _BRACKETED.search(label)
        if match and match.group(1).strip():
            return match.group(1).strip()

    return _CARD_NUMBER_TOKEN.sub("", label).strip() or DEFAULT_PARALLEL


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------


def _text(value: Any, default: str = "") -> str:
    return str(value) if value else default


def _optional_text(value: Any) -> str | None:
    return str(value) if value else None


def _year(value: Any, reference_date: date) -> int:
    # bool is an int subclass; a stray `true` is not a year
    if not value or isinstance(value, bool):
        return reference_date.year
    if isinstance(value, float) and not math.isfinite(value):
        return reference_date.year
    if isinstance(value, (int, float)):
        return int(value)
    match = _LEADING_YEAR.match(str(value))  # "2020-21" season labels
    return int(match.group(1)) if match else reference_date.year


def card_from_mapping(
    parsed: Mapping[str, Any],
    reference_date: date | None = None,
) -> CardRecord:
    """
    Build a CardRecord from an already-parsed JSON object.

    Shared by single-card scans and multi-slab detection so every card
    goes through the same defaulting rules.

    Args:
        parsed: Decoded JSON object from the model.
        reference_date: Supplies the default year (default: today).
    """
    if reference_date is None:
        reference_date = date.today()

    return CardRecord(
        player=_text(parsed.get("player")),
        year=_year(parsed.get("year"), reference_date),
        set_name=_text(parsed.get("set_name")),
        card_number=_text(parsed.get("card_number")),
        parallel=clean_parallel_name(parsed.get("parallel")),
        is_autographed=parsed.get("is_autographed") is True,
        numbered="true" if parsed.get("numbered") is True else "false",
        serial_number=_optional_text(parsed.get("serial_number")),
        numbered_to=_optional_text(parsed.get("numbered_to")),
        team=_text(parsed.get("team")),
        sport=_text(parsed.get("sport"), DEFAULT_SPORT),
        condition=_text(parsed.get("condition"), DEFAULT_CONDITION),
        is_graded=parsed.get("is_graded") is True,
        grading_company=_optional_text(parsed.get("grading_company")),
        grade=_optional_text(parsed.get("grade")),
        cert_number=_optional_text(parsed.get("cert_number")),
        ebay_search_string=_text(parsed.get("ebay_search_string")),
    )


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def parse_json_reply(response_text: str) -> Any | None:
    """
    Strip fences and decode; None when the reply is not valid JSON.

    NaN and Infinity literals are rejected, as a strict JSON parser would.
    """
    cleaned = strip_code_fences(response_text)
    try:
        return json.loads(cleaned, parse_constant=_reject_constant)
    except ValueError as e:
        logger.warning(
            "vision_reply_parse_error",
            error=str(e),
            preview=cleaned[:80],
            source="normalize",
        )
        return None


def parse_card_response(
    response_text: str,
    reference_date: date | None = None,
) -> CardRecord | None:
    """
    Normalize a raw vision reply into a CardRecord.

    Args:
        response_text: Text content of the model's message (possibly fenced).
        reference_date: Supplies the default year (default: today).
                        Allows testing with a frozen clock.

    Returns:
        CardRecord, or None if the reply is not a JSON object.
    """
    parsed = parse_json_reply(response_text)
    if parsed is None:
        return None

    if not isinstance(parsed, dict):
        logger.warning(
            "vision_reply_not_object",
            json_type=type(parsed).__name__,
            source="normalize",
        )
        return None

    return card_from_mapping(parsed, reference_date=reference_date)


def empty_card(reference_date: date | None = None) -> CardRecord:
    """Fully defaulted CardRecord for failed or unparseable scans."""
    if reference_date is None:
        reference_date = date.today()
    return CardRecord(year=reference_date.year)
