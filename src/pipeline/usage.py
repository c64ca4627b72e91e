"""
CardScan — Scan Usage Tracking

Reads and updates the per-user monthly scan counter. A scan is reserved
before the vision call and refunded if it fails, so only successful scans
stay counted; the monthly job zeroes every counter.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.engine.scan_limits import ScanLimitStatus, check_scan_limit
from src.exceptions import ScanLimitExceededError, UserNotFoundError
from src.models.user import User

logger = structlog.get_logger(__name__)


async def _get_user(session: AsyncSession, user_id: uuid.UUID) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


async def get_scan_status(session: AsyncSession, user_id: uuid.UUID) -> ScanLimitStatus:
    """
    Current scan quota for a user.

    Raises:
        UserNotFoundError: If no users row exists for user_id.
    """
    user = await _get_user(session, user_id)
    return check_scan_limit(user.subscription_tier, user.scans_used)


async def reserve_scan(session: AsyncSession, user_id: uuid.UUID) -> ScanLimitStatus:
    """
    Count one scan against the user's quota before it runs.

    The increment is a single conditional UPDATE (scans_used < scan_limit),
    so concurrent requests cannot push a user past the limit. Call
    refund_scan() if the scan then fails.

    Returns:
        Quota status including the reserved scan.

    Raises:
        UserNotFoundError: If no users row exists for user_id.
        ScanLimitExceededError: If the user has no scans left.
    """
    user = await _get_user(session, user_id)
    status = check_scan_limit(user.subscription_tier, user.scans_used)

    if status.can_scan:
        result = await session.execute(
            update(User)
            .where(User.id == user_id, User.scans_used < status.scan_limit)
            .values(scans_used=User.scans_used + 1)
            .returning(User.scans_used)
            .execution_options(synchronize_session=False)
        )
        scans_used = result.scalar_one_or_none()
        if scans_used is not None:
            await session.commit()
            logger.info(
                "scan_reserved",
                user_id=str(user_id),
                scans_used=scans_used,
                source="usage",
            )
            return check_scan_limit(status.plan, scans_used)

        # Another request took the last scan between the read and the update
        await session.rollback()
        user = await _get_user(session, user_id)
        status = check_scan_limit(user.subscription_tier, user.scans_used)

    logger.warning(
        "scan_refused_limit_reached",
        user_id=str(user_id),
        plan=status.plan,
        scans_used=status.scans_used,
        scan_limit=status.scan_limit,
        source="usage",
    )
    raise ScanLimitExceededError(status.plan, status.scan_limit, status.scans_used)


async def refund_scan(session: AsyncSession, user_id: uuid.UUID) -> int:
    """
    Give back a scan reserved by reserve_scan() that did not succeed.

    The counter never drops below zero, so a monthly reset between the
    reservation and the refund is harmless.

    Returns:
        The new scans_used value (0 if the user no longer exists).
    """
    result = await session.execute(
        update(User)
        .where(User.id == user_id, User.scans_used > 0)
        .values(scans_used=User.scans_used - 1)
        .returning(User.scans_used)
        .execution_options(synchronize_session=False)
    )
    scans_used = result.scalar_one_or_none()
    await session.commit()

    logger.info(
        "scan_refunded",
        user_id=str(user_id),
        scans_used=scans_used,
        source="usage",
    )
    return scans_used or 0


async def reset_monthly_usage(
    session: AsyncSession,
    reset_at: datetime | None = None,
) -> int:
    """
    Zero every user's scan counter.

    Args:
        session: Async DB session.
        reset_at: Timestamp recorded on each row (default: now, UTC).

    Returns:
        Number of users reset.
    """
    if reset_at is None:
        reset_at = datetime.now(timezone.utc)

    result = await session.execute(
        update(User).values(scans_used=0, scans_reset_at=reset_at)
    )
    await session.commit()

    logger.info("scan_usage_reset", users_reset=result.rowcount, source="usage")
    return result.rowcount


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    """Look up a user by login email."""
    result = await session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()
