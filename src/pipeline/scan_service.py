"""
CardScan — Scan Service

Ties a scan request together for one user:

    1. reserve a scan against the user's quota (refuse before spending a
       vision call)
    2. scan the card
    3. refund the reservation if the scan failed
    4. optionally price the card on eBay
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any

import structlog
from pydantic import BaseModel

from src.engine.scan_limits import ScanLimitStatus, check_scan_limit
from src.pipeline.ebay import PriceEstimate, eBayClient
from src.pipeline.usage import refund_scan, reserve_scan
from src.scanner import ScanOutcome
from src.scanner.claude import CardScanner

logger = structlog.get_logger(__name__)


class ScanResult(BaseModel):
    """Scan outcome plus quota state and optional price."""

    outcome: ScanOutcome
    limit_status: ScanLimitStatus
    price: PriceEstimate | None = None


class ScanService:
    """
    Metered card scanning.

    Usage:
        service = ScanService(CardScanner(), session_factory)
        result = await service.scan_for_user(user_id, front, back, with_price=True)
    """

    def __init__(
        self,
        scanner: CardScanner,
        session_factory: Any,
        ebay_client_factory: Any = eBayClient,
    ) -> None:
        self._scanner = scanner
        self._session_factory = session_factory
        self._ebay_client_factory = ebay_client_factory

    async def scan_for_user(
        self,
        user_id: uuid.UUID,
        front_image: str,
        back_image: str | None = None,
        with_price: bool = False,
        reference_date: date | None = None,
    ) -> ScanResult:
        """
        Scan a card on behalf of a user.

        The scan is reserved against the quota before the vision call and
        refunded if it fails. No session is held during the vision call.

        Raises:
            ScanLimitExceededError: The user has no scans left this month.
                No vision call is made.
            UserNotFoundError: Unknown user_id.
        """
        async with self._session_factory() as session:
            status = await reserve_scan(session, user_id)

        try:
            outcome = await self._scanner.scan_card(
                front_image, back_image, reference_date=reference_date
            )
        except Exception:
            await self._refund(user_id)
            raise

        if not outcome.success:
            scans_used = await self._refund(user_id)
            status = check_scan_limit(status.plan, scans_used)

        price: PriceEstimate | None = None
        if with_price and outcome.success:
            async with self._ebay_client_factory() as ebay:
                price = await ebay.get_price_estimate(outcome.card)

        logger.info(
            "scan_request_complete",
            user_id=str(user_id),
            success=outcome.success,
            scans_remaining=status.scans_remaining,
            priced=price is not None,
            source="scan_service",
        )
        return ScanResult(outcome=outcome, limit_status=status, price=price)

    async def _refund(self, user_id: uuid.UUID) -> int:
        async with self._session_factory() as session:
            return await refund_scan(session, user_id)
