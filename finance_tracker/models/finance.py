"""
Core Data Models for Finance Tracker

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for the backend's REST surface
4. Keep money as Decimal with cent precision end to end

DESIGN DECISION: The backend is the single source of truth.
Record models mirror what the backend returns; Draft and Patch models
describe what the client is allowed to send.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    model_validator,
)


CENT = Decimal("0.01")


def to_cents(value: Decimal) -> Decimal:
    """Quantize a monetary value to 2 decimal places."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _round_to_cents(value: Any) -> Any:
    """
    Round numeric input to cents ahead of the field's bounds.

    A limit of "0.004" must be judged as 0.00, the value that is stored.
    Input that is not a finite number is passed on for pydantic to reject.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        value = value.strip()
    if isinstance(value, (int, float, str)):
        try:
            value = Decimal(str(value))
        except InvalidOperation:
            return value
    if isinstance(value, Decimal) and value.is_finite():
        try:
            return to_cents(value)
        except InvalidOperation:
            return value
    return value


Money = Annotated[Decimal, BeforeValidator(_round_to_cents)]


def _require_first_of_month(value: date) -> date:
    if value.day != 1:
        raise ValueError(f"Budget month must be the first day of a month, got {value}")
    return value


MonthKey = Annotated[date, AfterValidator(_require_first_of_month)]


def _as_local_time(value: datetime) -> datetime:
    """Naive input is local wall-clock time; pin it to the local offset."""
    if value.tzinfo is None:
        return value.astimezone()
    return value


# Sent as an unambiguous instant, never as a bare local time
Timestamp = Annotated[datetime, AfterValidator(_as_local_time)]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Collection(str, Enum):
    """Record collections exposed by the backend."""
    ACCOUNTS = "accounts"
    CATEGORIES = "categories"
    TRANSACTIONS = "transactions"
    BUDGETS = "budgets"
    GOALS = "goals"
    USER_PREFERENCES = "user_preferences"


# Collections loaded together by a full refresh
FINANCE_COLLECTIONS = (
    Collection.ACCOUNTS,
    Collection.CATEGORIES,
    Collection.TRANSACTIONS,
    Collection.BUDGETS,
    Collection.GOALS,
)


class AccountType(str, Enum):
    """Kinds of accounts a user can hold money in."""
    CARD = "card"
    DEBIT_CARD = "debit_card"
    WALLET = "wallet"
    CASH = "cash"
    INVESTMENT = "investment"
    SAVINGS = "savings"
    PIGGY_BANK = "piggy_bank"
    SHOP = "shop"
    BITCOIN = "bitcoin"
    STORE = "store"


class CategoryType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class TransactionType(str, Enum):
    """
    Direction of a transaction.

    Amounts are always stored as positive magnitudes; the sign is
    implied by the type.
    """
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class BudgetPeriod(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class GoalStatus(str, Enum):
    """
    Goal lifecycle status.

    Transitions happen only through explicit user edits:
    active -> completed, active <-> paused.
    """
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"


# =============================================================================
# RECORD MODELS - what the backend stores
# =============================================================================

class FinanceRecord(BaseModel):
    """Base for every persisted record. Ids are assigned by the backend."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    id: str = Field(
        ...,
        min_length=1,
        description="Backend-assigned identifier"
    )


class Account(FinanceRecord):
    """
    A place money is held.

    CRITICAL: balance is derived state owned by the backend.
    It changes only through backend triggers reacting to transaction
    writes, and is authoritative only right after a fetch.
    """

    user_id: str
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    balance: Money = Field(default=Decimal("0.00"))
    icon: str = Field(default="wallet")
    color: str = Field(default="#3B82F6")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Category(FinanceRecord):
    """
    Transaction category.

    A category with no owner is a system default shared by everyone.
    """

    user_id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    icon: str = Field(default="tag")
    color: str = Field(default="#6B7280")
    is_default: bool = False
    created_at: Optional[datetime] = None

    @property
    def is_protected(self) -> bool:
        """Default categories cannot be edited or deleted from the client."""
        return self.is_default or self.user_id is None


class Transaction(FinanceRecord):
    """A single movement of money on an account."""

    user_id: str
    account_id: str
    category_id: str
    amount: Money = Field(..., ge=0, description="Positive magnitude")
    type: TransactionType
    description: Optional[str] = None
    receipt_url: Optional[str] = None
    transaction_date: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Budget(FinanceRecord):
    """
    Spending limit for one expense category in one month.

    One budget per (user, category, month); the backend enforces it.
    """

    user_id: str
    category_id: str
    limit_amount: Money = Field(..., gt=0)
    month: date = Field(..., description="First day of the month the budget applies to")
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Goal(FinanceRecord):
    """
    A savings target.

    current_amount moves only through explicit funding updates.
    Funding is not ledgered as transactions and never touches accounts.
    """

    user_id: str
    category_id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    target_amount: Money = Field(..., gt=0)
    current_amount: Money = Field(default=Decimal("0.00"), ge=0)
    target_date: date
    description: Optional[str] = None
    status: GoalStatus = GoalStatus.ACTIVE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserPreferences(FinanceRecord):
    """Per-user display preferences."""

    user_id: str
    theme: Theme = Theme.LIGHT
    currency: str = Field(default="₹", max_length=5)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


RECORD_MODELS: dict[Collection, type[FinanceRecord]] = {
    Collection.ACCOUNTS: Account,
    Collection.CATEGORIES: Category,
    Collection.TRANSACTIONS: Transaction,
    Collection.BUDGETS: Budget,
    Collection.GOALS: Goal,
    Collection.USER_PREFERENCES: UserPreferences,
}


# =============================================================================
# DRAFT MODELS - what the client sends on create
# =============================================================================

class RecordDraft(BaseModel):
    """
    Fields a user submits when creating a record.

    The owner is stamped by the store from the current identity,
    never taken from user input.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    def to_payload(self, user_id: str) -> dict[str, Any]:
        payload = self.model_dump(mode="json")
        payload["user_id"] = user_id
        return payload


class AccountDraft(RecordDraft):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType = AccountType.WALLET
    color: str = Field(default="#3B82F6")
    icon: Optional[str] = Field(
        default=None,
        description="Defaults to the account type"
    )

    @model_validator(mode='after')
    def default_icon(self) -> 'AccountDraft':
        if not self.icon:
            self.icon = self.type.value
        return self

    def to_payload(self, user_id: str) -> dict[str, Any]:
        # New accounts always open at zero; the backend owns it afterwards
        payload = super().to_payload(user_id)
        payload["balance"] = "0.00"
        return payload


class CategoryDraft(RecordDraft):
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType = CategoryType.EXPENSE
    icon: str = Field(default="tag")
    color: str = Field(default="#EF4444")

    def to_payload(self, user_id: str) -> dict[str, Any]:
        payload = super().to_payload(user_id)
        payload["is_default"] = False
        return payload


class TransactionDraft(RecordDraft):
    account_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    amount: Money = Field(..., gt=0)
    type: TransactionType = TransactionType.EXPENSE
    description: Optional[str] = Field(default=None, max_length=500)
    receipt_url: Optional[str] = None
    transaction_date: Timestamp


class BudgetDraft(RecordDraft):
    category_id: str = Field(..., min_length=1)
    limit_amount: Money = Field(..., gt=0)
    month: MonthKey
    period: BudgetPeriod = BudgetPeriod.MONTHLY


class GoalDraft(RecordDraft):
    name: str = Field(..., min_length=1, max_length=100)
    category_id: Optional[str] = None
    target_amount: Money = Field(..., gt=0)
    current_amount: Money = Field(default=Decimal("0.00"), ge=0)
    target_date: date
    description: Optional[str] = Field(default=None, max_length=500)
    status: GoalStatus = GoalStatus.ACTIVE


# =============================================================================
# PATCH MODELS - partial updates
# =============================================================================

class RecordPatch(BaseModel):
    """
    Partial update. Only fields that were explicitly set are sent.

    extra="forbid" keeps backend-owned fields (ids, owners, balances)
    out of client patches.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)

    @property
    def is_empty(self) -> bool:
        return not self.model_fields_set


class AccountPatch(RecordPatch):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[AccountType] = None
    icon: Optional[str] = None
    color: Optional[str] = None


class CategoryPatch(RecordPatch):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[CategoryType] = None
    icon: Optional[str] = None
    color: Optional[str] = None


class TransactionPatch(RecordPatch):
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    amount: Optional[Money] = Field(default=None, gt=0)
    type: Optional[TransactionType] = None
    description: Optional[str] = Field(default=None, max_length=500)
    receipt_url: Optional[str] = None
    transaction_date: Optional[Timestamp] = None


class BudgetPatch(RecordPatch):
    category_id: Optional[str] = None
    limit_amount: Optional[Money] = Field(default=None, gt=0)
    month: Optional[MonthKey] = None
    period: Optional[BudgetPeriod] = None


class GoalPatch(RecordPatch):
    category_id: Optional[str] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    target_amount: Optional[Money] = Field(default=None, gt=0)
    current_amount: Optional[Money] = Field(default=None, ge=0)
    target_date: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=500)
    status: Optional[GoalStatus] = None


class PreferencesPatch(RecordPatch):
    theme: Optional[Theme] = None
    currency: Optional[str] = Field(default=None, min_length=1, max_length=5)


# =============================================================================
# STORE SNAPSHOT
# =============================================================================

class FinanceSnapshot(BaseModel):
    """
    Immutable view of the store's cache at one point in time.

    The store replaces the snapshot on every change rather than
    mutating it, so views can hold on to one safely.
    """
    model_config = ConfigDict(frozen=True)

    accounts: list[Account] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)
    preferences: Optional[UserPreferences] = None

    # True once every collection has been fetched for the current identity
    loaded: bool = False

    # Last fetch error per collection; cleared by a successful fetch
    errors: dict[Collection, str] = Field(default_factory=dict)

    def find_account(self, account_id: str) -> Optional[Account]:
        return next((a for a in self.accounts if a.id == account_id), None)

    def find_category(self, category_id: Optional[str]) -> Optional[Category]:
        if category_id is None:
            return None
        return next((c for c in self.categories if c.id == category_id), None)

    def find_goal(self, goal_id: str) -> Optional[Goal]:
        return next((g for g in self.goals if g.id == goal_id), None)

    def categories_of_type(self, kind: CategoryType) -> list[Category]:
        return [c for c in self.categories if c.type == kind]


# =============================================================================
# DERIVED VIEW MODELS - computed, never persisted
# =============================================================================

class MonthlySummary(BaseModel):
    """Dashboard totals for one calendar month."""

    month_start: datetime
    month_end: datetime
    total_balance: Decimal = Field(description="Sum of all account balances")
    monthly_income: Decimal
    monthly_expenses: Decimal
    net_income: Decimal = Field(description="Income minus expenses")
    transaction_count: int = Field(ge=0)


class BudgetProgress(BaseModel):
    """How much of a budget has been consumed this month."""

    budget: Budget
    category_name: str
    category_color: str
    spent: Decimal
    percentage: float = Field(ge=0, le=100)
    remaining: Decimal = Field(description="May be negative when over budget")
    is_over_budget: bool


class GoalProgress(BaseModel):
    """Progress of a goal towards its target."""

    goal: Goal
    category_name: Optional[str] = None
    category_color: str
    percentage: float = Field(ge=0, description="Not capped")
    display_percentage: float = Field(ge=0, le=100)
    remaining_amount: Decimal
    days_left: int
    is_overdue: bool


class ChartSeries(BaseModel):
    """Label -> value series for a category chart."""

    kind: TransactionType
    labels: list[str] = Field(default_factory=list)
    values: list[Decimal] = Field(default_factory=list)
    colors: list[str] = Field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return sum(self.values, Decimal("0.00"))

    @property
    def is_empty(self) -> bool:
        return not self.labels

    def points(self) -> list[tuple[str, Decimal, str]]:
        return list(zip(self.labels, self.values, self.colors))


class ProfileStats(BaseModel):
    """Record counts shown on the profile page."""

    account_count: int = 0
    transaction_count: int = 0
    category_count: int = 0
    goal_count: int = 0
    active_goal_count: int = 0
    completed_goal_count: int = 0


class DashboardView(BaseModel):
    """Everything the dashboard page shows, computed from one snapshot."""

    summary: MonthlySummary
    budgets: list[BudgetProgress] = Field(default_factory=list)
    goals: list[GoalProgress] = Field(default_factory=list)
    expense_series: ChartSeries
    income_series: ChartSeries
    recent_transactions: list[Transaction] = Field(default_factory=list)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'mismatch')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of validating one form before any request is issued.

    Only error-level issues block submission.
    """

    form: str = Field(
        ...,
        description="Which form was validated (e.g., 'transaction')"
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]
