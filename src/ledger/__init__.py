"""
Ledger package.

Pure computations over a snapshot of the group's records:
rotation schedules, premium reconciliation and reports.
"""

from src.ledger.reconciler import (
    AnnualProgress,
    MonthlyStats,
    PaymentWrite,
    annual_progress,
    find_record,
    month_key,
    parse_month_key,
    plan_mark_month_paid,
    plan_month_toggle,
    reconcile_month,
    status_grid,
)
from src.ledger.scheduler import (
    DEFAULT_CONTRIBUTION_AMOUNT,
    RotationSchedule,
    generate_schedule,
)

__all__ = [
    "AnnualProgress",
    "DEFAULT_CONTRIBUTION_AMOUNT",
    "MonthlyStats",
    "PaymentWrite",
    "RotationSchedule",
    "annual_progress",
    "find_record",
    "generate_schedule",
    "month_key",
    "parse_month_key",
    "plan_mark_month_paid",
    "plan_month_toggle",
    "reconcile_month",
    "status_grid",
]
