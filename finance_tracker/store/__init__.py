"""Finance store package."""

from finance_tracker.store.finance_store import (
    CategoryInUseError,
    DefaultCategoryError,
    DuplicateBudgetError,
    FinanceStore,
    FinanceStoreError,
    GoalFundingError,
    NotAuthenticatedError,
    SnapshotListener,
)

__all__ = [
    "FinanceStore",
    "SnapshotListener",
    # Exceptions
    "CategoryInUseError",
    "DefaultCategoryError",
    "DuplicateBudgetError",
    "FinanceStoreError",
    "GoalFundingError",
    "NotAuthenticatedError",
]
