from src.engine.scan_limits import (
    PlanLimits,
    ScanLimitStatus,
    check_scan_limit,
    get_plan_limits,
)

__all__ = [
    "PlanLimits",
    "ScanLimitStatus",
    "check_scan_limit",
    "get_plan_limits",
]
