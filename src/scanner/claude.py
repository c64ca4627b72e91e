"""
CardScan — Vision Scanner (Anthropic Messages API)

Sends card photos to the vision model and normalizes what comes back.
The API client is injected so tests can hand in a fake that records its
own calls; production builds an AsyncAnthropic client from settings.

Failure policy: API errors and unparseable replies never propagate out of
scan_card(). They become ScanOutcome(success=False) carrying a fully
defaulted card, so callers render something and do not count the scan.
"""

from __future__ import annotations

from datetime import date
from typing import Any

import anthropic
import structlog
from pydantic import ValidationError

from src.config import settings
from src.exceptions import ScannerConfigError
from src.scanner import CardRecord, CertReading, ScanOutcome, SlabPosition, TokenUsage
from src.scanner.images import build_image_block
from src.scanner.normalize import (
    card_from_mapping,
    empty_card,
    parse_card_response,
    parse_json_reply,
)
from src.scanner.prompts import (
    CARD_SCAN_PROMPT,
    CERT_NUMBER_PROMPT,
    MULTI_SLAB_PROMPT,
    SLAB_POSITION_PROMPT,
)
from src.scanner.search_string import build_search_string

logger = structlog.get_logger(__name__)

PARSE_ERROR_MESSAGE = "Could not parse card data from vision response"


def with_search_string(card: CardRecord) -> CardRecord:
    """Fill ebay_search_string when the model did not supply one."""
    if card.ebay_search_string:
        return card
    return card.model_copy(update={"ebay_search_string": build_search_string(card)})


class CardScanner:
    """
    Card identification over the Anthropic Messages API.

    Usage:
        scanner = CardScanner()
        outcome = await scanner.scan_card(front_data_url, back_data_url)
    """

    def __init__(
        self,
        client: Any | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> None:
        if client is None:
            if not settings.ANTHROPIC_API_KEY:
                raise ScannerConfigError("ANTHROPIC_API_KEY is not configured")
            client = anthropic.AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
        self._client = client
        self._model = model or settings.SCAN_MODEL_ID
        self._max_tokens = max_tokens or settings.SCAN_MAX_TOKENS

    async def _ask(
        self,
        prompt: str,
        images: list[dict[str, Any]],
        max_tokens: int,
    ) -> tuple[str, Any]:
        """
        Send one user turn; return (first text block, raw message).

        A reply with no text block yields "", which no parser accepts.
        """
        message = await self._client.messages.create(
            model=self._model,
            max_tokens=max_tokens,
            messages=[{
                "role": "user",
                "content": [{"type": "text", "text": prompt}, *images],
            }],
        )
        for block in message.content or []:
            if getattr(block, "type", None) == "text":
                return block.text, message
        logger.warning("vision_reply_without_text", source="scanner")
        return "", message

    async def scan_card(
        self,
        front_image: str,
        back_image: str | None = None,
        reference_date: date | None = None,
    ) -> ScanOutcome:
        """
        Identify a single card from its front (and optional back) photo.

        Args:
            front_image: Base64 payload or data URL of the card front.
            back_image: Optional base64 payload or data URL of the back.
            reference_date: Supplies the default year (default: today).

        Returns:
            ScanOutcome. `card` is always populated.
        """
        images = [build_image_block(front_image)]
        if back_image:
            images.append(build_image_block(back_image))

        try:
            response_text, message = await self._ask(
                CARD_SCAN_PROMPT, images, self._max_tokens
            )
        except Exception as e:
            logger.error(
                "card_scan_failed",
                error=str(e),
                image_count=len(images),
                source="scanner",
            )
            return ScanOutcome(
                success=False,
                error=str(e),
                card=empty_card(reference_date),
            )

        card = parse_card_response(response_text, reference_date=reference_date)
        if card is None:
            logger.warning(
                "card_scan_unparseable",
                image_count=len(images),
                source="scanner",
            )
            return ScanOutcome(
                success=False,
                error=PARSE_ERROR_MESSAGE,
                card=empty_card(reference_date),
            )

        card = with_search_string(card)
        raw_usage = getattr(message, "usage", None)
        usage = TokenUsage(
            input_tokens=getattr(raw_usage, "input_tokens", 0) or 0,
            output_tokens=getattr(raw_usage, "output_tokens", 0) or 0,
        )

        logger.info(
            "card_scanned",
            player=card.player,
            year=card.year,
            is_graded=card.is_graded,
            image_count=len(images),
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            source="scanner",
        )
        return ScanOutcome(success=True, card=card, usage=usage)

    async def detect_slabs(
        self,
        image: str,
        reference_date: date | None = None,
    ) -> list[CardRecord]:
        """
        Identify every graded slab in one photo.

        Entries default to is_graded=True; each one goes through the same
        normalization rules as a single scan.

        Returns:
            One CardRecord per slab, or [] on any failure.
        """
        try:
            response_text, _ = await self._ask(
                MULTI_SLAB_PROMPT, [build_image_block(image)], settings.MULTI_SLAB_MAX_TOKENS
            )
        except Exception as e:
            logger.error("slab_detection_failed", error=str(e), source="scanner")
            return []

        parsed = parse_json_reply(response_text)
        entries = parsed.get("cards") if isinstance(parsed, dict) else None
        if not isinstance(entries, list):
            logger.warning("slab_detection_unparseable", source="scanner")
            return []

        cards = [
            with_search_string(
                card_from_mapping({"is_graded": True, **entry}, reference_date=reference_date)
            )
            for entry in entries
            if isinstance(entry, dict)
        ]
        logger.info("slabs_detected", slab_count=len(cards), source="scanner")
        return cards

    async def detect_slab_positions(self, image: str) -> list[SlabPosition]:
        """
        Locate slabs in a photo (bounding boxes in percent coordinates).

        Entries with a missing or malformed boundingBox are skipped.
        """
        try:
            response_text, _ = await self._ask(
                SLAB_POSITION_PROMPT, [build_image_block(image)], settings.SLAB_POSITION_MAX_TOKENS
            )
        except Exception as e:
            logger.error("slab_position_failed", error=str(e), source="scanner")
            return []

        parsed = parse_json_reply(response_text)
        entries = parsed.get("slabs") if isinstance(parsed, dict) else None
        if not isinstance(entries, list):
            logger.warning("slab_position_unparseable", source="scanner")
            return []

        positions: list[SlabPosition] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            try:
                positions.append(
                    SlabPosition(
                        bounding_box=entry.get("boundingBox"),
                        grading_company=entry.get("gradingCompany"),
                    )
                )
            except ValidationError as e:
                logger.warning(
                    "slab_position_invalid_entry",
                    error=str(e),
                    source="scanner",
                )
        return positions

    async def extract_cert_number(self, image: str) -> CertReading | None:
        """
        Read the certification number off a slab label.

        An unreadable cert comes back as cert_number=None. Returns None only
        when the call fails or the reply is not a JSON object.
        """
        try:
            response_text, _ = await self._ask(
                CERT_NUMBER_PROMPT, [build_image_block(image)], settings.CERT_MAX_TOKENS
            )
        except Exception as e:
            logger.error("cert_extraction_failed", error=str(e), source="scanner")
            return None

        parsed = parse_json_reply(response_text)
        if not isinstance(parsed, dict):
            return None

        def _text(key: str) -> str | None:
            value = parsed.get(key)
            return str(value) if value else None

        return CertReading(
            cert_number=_text("cert_number"),
            grading_company=_text("grading_company"),
            grade=_text("grade"),
        )
