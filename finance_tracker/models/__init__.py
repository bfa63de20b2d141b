"""
Data Models Package

This package contains all Pydantic models used in the Finance Tracker.
All data flowing between the backend, the store and the UI conforms to these schemas.
"""

from finance_tracker.models.finance import (
    FINANCE_COLLECTIONS,
    RECORD_MODELS,
    Account,
    AccountDraft,
    AccountPatch,
    AccountType,
    Budget,
    BudgetDraft,
    BudgetPatch,
    BudgetPeriod,
    BudgetProgress,
    Category,
    CategoryDraft,
    CategoryPatch,
    CategoryType,
    ChartSeries,
    Collection,
    DashboardView,
    FinanceRecord,
    FinanceSnapshot,
    Goal,
    GoalDraft,
    GoalPatch,
    GoalProgress,
    GoalStatus,
    MonthlySummary,
    PreferencesPatch,
    ProfileStats,
    RecordDraft,
    RecordPatch,
    Theme,
    Transaction,
    TransactionDraft,
    TransactionPatch,
    TransactionType,
    UserPreferences,
    ValidationIssue,
    ValidationResult,
    to_cents,
)
from finance_tracker.models.auth import (
    AuthChangeEvent,
    AuthSession,
    Identity,
    OAuthRequest,
)
from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Collections
    "Collection",
    "FINANCE_COLLECTIONS",
    "RECORD_MODELS",
    # Enums
    "AccountType",
    "BudgetPeriod",
    "CategoryType",
    "GoalStatus",
    "Theme",
    "TransactionType",
    # Records
    "Account",
    "Budget",
    "Category",
    "FinanceRecord",
    "Goal",
    "Transaction",
    "UserPreferences",
    # Drafts and patches
    "AccountDraft",
    "AccountPatch",
    "BudgetDraft",
    "BudgetPatch",
    "CategoryDraft",
    "CategoryPatch",
    "GoalDraft",
    "GoalPatch",
    "PreferencesPatch",
    "RecordDraft",
    "RecordPatch",
    "TransactionDraft",
    "TransactionPatch",
    # Snapshot and derived views
    "BudgetProgress",
    "ChartSeries",
    "DashboardView",
    "FinanceSnapshot",
    "GoalProgress",
    "MonthlySummary",
    "ProfileStats",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    "to_cents",
    # Auth models
    "AuthChangeEvent",
    "AuthSession",
    "Identity",
    "OAuthRequest",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
