"""Derived views over the finance snapshot."""

from finance_tracker.analytics.calculators import (
    EXPENSE_PALETTE,
    FALLBACK_COLOR,
    INCOME_PALETTE,
    UNKNOWN_CATEGORY,
    budget_progress,
    category_series,
    goal_progress,
    goals_by_status,
    goals_progress,
    month_key,
    month_window,
    monthly_summary,
    profile_stats,
    recent_transactions,
    transactions_in_month,
)

__all__ = [
    "EXPENSE_PALETTE",
    "FALLBACK_COLOR",
    "INCOME_PALETTE",
    "UNKNOWN_CATEGORY",
    "budget_progress",
    "category_series",
    "goal_progress",
    "goals_by_status",
    "goals_progress",
    "month_key",
    "month_window",
    "monthly_summary",
    "profile_stats",
    "recent_transactions",
    "transactions_in_month",
]
