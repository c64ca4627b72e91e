"""
CardScan — Admin User Registration Script

Creates a metered users row for a new scanner account.

Usage:
    python scripts/add_user.py --email collector@example.com --tier power
    python scripts/add_user.py --email shop@example.com --tier dealer
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.config import SubscriptionTier, settings
from src.models.user import User
from src.pipeline.usage import get_user_by_email

VALID_TIERS = {tier.value for tier in SubscriptionTier}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create a new CardScan account (users row).",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/add_user.py --email collector@example.com --tier power
  python scripts/add_user.py --email shop@example.com --tier dealer
""",
    )
    parser.add_argument(
        "--email",
        type=str,
        required=True,
        help="Login email for the account.",
    )
    parser.add_argument(
        "--tier",
        type=str,
        default="free",
        choices=sorted(VALID_TIERS),
        help="Subscription tier: admin | dealer | free | power (default: free).",
    )
    return parser.parse_args()


async def create_user(email: str, tier: str) -> uuid.UUID:
    """
    Insert a users row with a zeroed scan counter.

    Raises:
        ValueError: If an account with this email already exists.
    """
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    user_id = uuid.uuid4()

    try:
        async with session_factory() as session:
            if await get_user_by_email(session, email) is not None:
                raise ValueError(f"An account for {email} already exists")

            session.add(
                User(id=user_id, email=email, subscription_tier=tier, scans_used=0)
            )
            await session.commit()
    finally:
        await engine.dispose()

    return user_id


async def main() -> None:
    args = parse_args()

    print(f"Creating user: email={args.email}, tier={args.tier}")

    try:
        user_id = await create_user(email=args.email, tier=args.tier)
        print("User created successfully.")
        print(f"  users.id           = {user_id}")
        print(f"  email              = {args.email}")
        print(f"  subscription_tier  = {args.tier}")
    except Exception as e:
        print(f"Failed to create user: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
