"""
CardScan — eBay Search-String Synthesizer

Builds the query a knowledgeable collector would type into eBay's sold
listings search:

    [year] [set] [player] [#number] then either
        ungraded: [/numbered_to] [parallel] [Auto]
        graded:   [company] [grade] [Auto]

The graded and ungraded branches are exclusive. Once a card is slabbed
the grading company and grade identify it; parallel and print run are
dropped even when populated.

The year is skipped when the set name already carries it
(e.g. "2020 Panini Prizm").
"""

from __future__ import annotations

import re
from typing import Any, Mapping

import structlog

from src.config import DEFAULT_PARALLEL
from src.scanner import CardRecord

logger = structlog.get_logger(__name__)

_LEADING_YEAR = re.compile(r"^[0-9]{4}\s+")


def _field(card: CardRecord | Mapping[str, Any], name: str) -> Any:
    if isinstance(card, Mapping):
        return card.get(name)
    return getattr(card, name, None)


def has_year_in_set(set_name: Any, year: Any) -> bool:
    """True when the set name starts with a 4-digit year or contains `year`."""
    if not set_name:
        return False
    set_name = str(set_name)
    return bool(_LEADING_YEAR.match(set_name)) or str(year) in set_name


def build_search_string(card: CardRecord | Mapping[str, Any]) -> str:
    """
    Synthesize an eBay search query for a card.

    Args:
        card: CardRecord, or a mapping with the same field names. Missing
              fields simply contribute nothing.

    Returns:
        Space-joined query string, stripped.
    """
    year = _field(card, "year")
    set_name = _field(card, "set_name")
    player = _field(card, "player")
    card_number = _field(card, "card_number")
    parallel = _field(card, "parallel")

    tokens: list[str] = []

    if year and not has_year_in_set(set_name, year):
        tokens.append(str(year))
    if set_name:
        tokens.append(str(set_name))
    if player:
        tokens.append(str(player))
    if card_number:
        tokens.append(f"#{card_number}")

    if not _field(card, "is_graded"):
        numbered_to = _field(card, "numbered_to")
        if _field(card, "numbered") == "true" and numbered_to:
            tokens.append(f"/{numbered_to}")
        if parallel and parallel != DEFAULT_PARALLEL:
            tokens.append(str(parallel))
        if _field(card, "is_autographed"):
            tokens.append("Auto")
    else:
        grading_company = _field(card, "grading_company")
        grade = _field(card, "grade")
        if grading_company:
            tokens.append(str(grading_company))
        if grade:
            tokens.append(str(grade))
        if _field(card, "is_autographed"):
            tokens.append("Auto")

    search_string = " ".join(tokens).strip()
    logger.debug(
        "search_string_built",
        search_string=search_string,
        is_graded=bool(_field(card, "is_graded")),
        source="search_string",
    )
    return search_string
