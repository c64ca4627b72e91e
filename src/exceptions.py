"""
CardScan — Exception Hierarchy

Raised at integration seams (scanner construction, quota checks, user
lookups). Pure normalization code never raises; it returns sentinels.
"""

from __future__ import annotations

from typing import Any


class CardScanError(Exception):
    """Base class for all CardScan errors."""

    def __init__(
        self,
        message: str,
        code: str = "CARDSCAN_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for API responses."""
        result: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class ScannerConfigError(CardScanError):
    """The vision scanner cannot be built (no API key, no client)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="SCANNER_CONFIG_ERROR")


class UserNotFoundError(CardScanError):
    """No users row for the given id."""

    def __init__(self, user_id: Any) -> None:
        super().__init__(
            f"User {user_id} not found",
            code="USER_NOT_FOUND",
            details={"user_id": str(user_id)},
        )


class ScanLimitExceededError(CardScanError):
    """User has used every scan their plan allows this month."""

    def __init__(self, plan: str, scan_limit: int, scans_used: int) -> None:
        super().__init__(
            f"Scan limit reached for plan '{plan}' ({scans_used}/{scan_limit})",
            code="SCAN_LIMIT_EXCEEDED",
            details={
                "plan": plan,
                "scan_limit": scan_limit,
                "scans_used": scans_used,
            },
        )
