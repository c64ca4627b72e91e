"""CardScan — Scanner Layer (vision call → canonical card record)"""

from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from src.config import DEFAULT_CONDITION, DEFAULT_PARALLEL, DEFAULT_SPORT


class CardRecord(BaseModel):
    """
    Canonical card data produced from one scan response.

    `numbered` is the string "true"/"false", not a bool; search-string
    synthesis and stored scans compare against the literal.
    `parallel` is never empty; it falls back to "Base".
    """

    model_config = ConfigDict(frozen=True)

    player: str = ""
    year: int = Field(default_factory=lambda: date.today().year)
    set_name: str = ""
    card_number: str = ""
    parallel: str = Field(default=DEFAULT_PARALLEL, min_length=1)
    is_autographed: bool = False
    numbered: Literal["true", "false"] = "false"
    serial_number: str | None = None
    numbered_to: str | None = None
    team: str = ""
    sport: str = DEFAULT_SPORT
    condition: str = DEFAULT_CONDITION
    is_graded: bool = False
    grading_company: str | None = None
    grade: str | None = None
    cert_number: str | None = None
    ebay_search_string: str = ""


class TokenUsage(BaseModel):
    """Token accounting reported by the vision API."""
    input_tokens: int = 0
    output_tokens: int = 0


class ScanOutcome(BaseModel):
    """
    Result handed back to callers of a scan.

    `card` is present on both paths so rendering code never null-checks;
    failures carry a fully defaulted record.
    """
    success: bool
    card: CardRecord
    usage: TokenUsage | None = None   # success only
    error: str | None = None          # failure only


class BoundingBox(BaseModel):
    """Slab location in percent of image width/height."""
    x: float
    y: float
    width: float
    height: float


class SlabPosition(BaseModel):
    """One graded slab located in a multi-slab photo."""
    bounding_box: BoundingBox
    grading_company: str | None = None


class CertReading(BaseModel):
    """Certification label read off a graded slab."""
    cert_number: str | None = None
    grading_company: str | None = None
    grade: str | None = None


__all__ = [
    "BoundingBox",
    "CardRecord",
    "CertReading",
    "ScanOutcome",
    "SlabPosition",
    "TokenUsage",
]
