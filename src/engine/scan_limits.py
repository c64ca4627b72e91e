"""
CardScan — Plan Limits & Scan Quota

Each subscription tier allows a fixed number of scans per month, plus caps
on eBay listings, showcases and bulk scans. Unknown tiers fall back to the
free plan.

    scans_remaining = max(0, scan_limit - scans_used)
    can_scan        = scan_limit - scans_used > 0
"""

from __future__ import annotations

from typing import NamedTuple

import structlog

from src.config import SubscriptionTier, settings

logger = structlog.get_logger(__name__)


class PlanLimits(NamedTuple):
    """Per-tier monthly allowances."""
    scan_limit: int
    ebay_listings_limit: int
    showcase_limit: int
    bulk_scan_limit: int


class ScanLimitStatus(NamedTuple):
    """Where a user stands against their monthly scan quota."""
    plan: str
    scan_limit: int
    scans_used: int
    scans_remaining: int
    can_scan: bool


def _plan_table() -> dict[SubscriptionTier, PlanLimits]:
    # Built per call so patched settings take effect in tests
    return {
        SubscriptionTier.FREE: PlanLimits(settings.FREE_SCAN_LIMIT, 0, 0, 0),
        SubscriptionTier.POWER: PlanLimits(settings.POWER_SCAN_LIMIT, 50, 5, 10),
        SubscriptionTier.DEALER: PlanLimits(settings.DEALER_SCAN_LIMIT, 500, 50, 100),
        SubscriptionTier.ADMIN: PlanLimits(settings.ADMIN_SCAN_LIMIT, 9999, 9999, 9999),
    }


def get_plan_limits(tier: str | SubscriptionTier | None) -> PlanLimits:
    """
    Limits for a subscription tier.

    Args:
        tier: Tier name or enum. Unknown or missing tiers get free limits.
    """
    table = _plan_table()
    try:
        return table[SubscriptionTier(tier)]
    except ValueError:
        logger.warning("unknown_subscription_tier", tier=str(tier), fallback="free")
        return table[SubscriptionTier.FREE]


def check_scan_limit(
    tier: str | SubscriptionTier | None,
    scans_used: int | None,
) -> ScanLimitStatus:
    """
    Evaluate a user's scan quota.

    Args:
        tier: Subscription tier (unknown → free).
        scans_used: Scans consumed this period; None counts as 0.

    Returns:
        ScanLimitStatus. Over-limit usage reports 0 remaining.
    """
    limits = get_plan_limits(tier)
    used = scans_used or 0
    remaining = limits.scan_limit - used

    plan = tier.value if isinstance(tier, SubscriptionTier) else str(tier)
    status = ScanLimitStatus(
        plan=plan,
        scan_limit=limits.scan_limit,
        scans_used=used,
        scans_remaining=max(0, remaining),
        can_scan=remaining > 0,
    )
    logger.debug(
        "scan_limit_checked",
        plan=status.plan,
        scans_used=status.scans_used,
        scan_limit=status.scan_limit,
        can_scan=status.can_scan,
        source="scan_limits",
    )
    return status
