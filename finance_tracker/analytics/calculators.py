"""
Derived-View Calculators

Pure functions from a store snapshot and a reference time to the numbers
the dashboard shows. Nothing here touches the network or caches results;
every call recomputes from the snapshot it is given.

DESIGN DECISION: "now" is always a parameter. The month window, budget
matching and goal deadlines are all relative to it, which keeps every
function deterministic under test.

Month window: [first day 00:00:00, last day 23:59:59.999999], inclusive
at both ends. Transaction times are compared in the timezone of "now".
"""

import calendar
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from finance_tracker.models.finance import (
    BudgetProgress,
    Category,
    ChartSeries,
    FinanceSnapshot,
    Goal,
    GoalProgress,
    GoalStatus,
    MonthlySummary,
    ProfileStats,
    Transaction,
    TransactionType,
)


# Chart colors, assigned to categories by position
EXPENSE_PALETTE = [
    "#EF4444", "#F97316", "#F59E0B", "#EAB308", "#84CC16", "#22C55E",
    "#10B981", "#14B8A6", "#06B6D4", "#0EA5E9", "#3B82F6", "#6366F1",
    "#8B5CF6", "#A855F7", "#D946EF", "#EC4899", "#F43F5E",
]

INCOME_PALETTE = [
    "#10B981", "#059669", "#0D9488", "#06B6D4", "#3B82F6", "#6366F1",
    "#8B5CF6", "#22C55E", "#84CC16", "#EAB308", "#F59E0B", "#F97316",
    "#EF4444", "#DC2626", "#B91C1C",
]

FALLBACK_COLOR = "#6B7280"
UNKNOWN_CATEGORY = "Unknown"

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


# =============================================================================
# MONTH WINDOW
# =============================================================================

def month_window(now: datetime) -> tuple[datetime, datetime]:
    """First and last instant of the month containing now, both inclusive."""
    last_day = calendar.monthrange(now.year, now.month)[1]
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    end = now.replace(day=last_day, hour=23, minute=59, second=59, microsecond=999999)
    return start, end


def month_key(now: datetime) -> date:
    """The budget month for now: the first day of its month."""
    return date(now.year, now.month, 1)


def _align(moment: datetime, reference: datetime) -> datetime:
    """Express moment in the same timezone convention as reference."""
    if reference.tzinfo is None:
        if moment.tzinfo is None:
            return moment
        return moment.astimezone().replace(tzinfo=None)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=reference.tzinfo)
    return moment.astimezone(reference.tzinfo)


def transactions_in_month(
    transactions: Iterable[Transaction],
    now: datetime,
) -> list[Transaction]:
    start, end = month_window(now)
    return [
        t for t in transactions
        if start <= _align(t.transaction_date, now) <= end
    ]


def _total(transactions: Iterable[Transaction], kind: TransactionType) -> Decimal:
    return sum((t.amount for t in transactions if t.type == kind), ZERO)


# =============================================================================
# SUMMARY
# =============================================================================

def monthly_summary(snapshot: FinanceSnapshot, now: datetime) -> MonthlySummary:
    """
    Totals for the month containing now.

    Transfers count as neither income nor expense.
    """
    start, end = month_window(now)
    in_month = transactions_in_month(snapshot.transactions, now)

    income = _total(in_month, TransactionType.INCOME)
    expenses = _total(in_month, TransactionType.EXPENSE)

    return MonthlySummary(
        month_start=start,
        month_end=end,
        total_balance=sum((a.balance for a in snapshot.accounts), ZERO),
        monthly_income=income,
        monthly_expenses=expenses,
        net_income=income - expenses,
        transaction_count=len(in_month),
    )


# =============================================================================
# BUDGETS
# =============================================================================

def budget_progress(
    snapshot: FinanceSnapshot,
    now: datetime,
    limit: Optional[int] = None,
) -> list[BudgetProgress]:
    """
    Progress of every budget set for the month containing now.

    spent counts expense transactions of the budget's category inside the
    month window. percentage is capped at 100; remaining goes negative
    once the budget is exceeded.
    """
    key = month_key(now)
    expenses = [
        t for t in transactions_in_month(snapshot.transactions, now)
        if t.type == TransactionType.EXPENSE
    ]

    progress = []
    for budget in snapshot.budgets:
        if budget.month != key:
            continue

        spent = sum(
            (t.amount for t in expenses if t.category_id == budget.category_id),
            ZERO,
        )
        percentage = min(HUNDRED, spent * HUNDRED / budget.limit_amount)
        category = snapshot.find_category(budget.category_id)

        progress.append(BudgetProgress(
            budget=budget,
            category_name=category.name if category else UNKNOWN_CATEGORY,
            category_color=category.color if category else FALLBACK_COLOR,
            spent=spent,
            percentage=max(0.0, float(percentage)),
            remaining=budget.limit_amount - spent,
            is_over_budget=spent > budget.limit_amount,
        ))

    return progress[:limit] if limit is not None else progress


# =============================================================================
# GOALS
# =============================================================================

def goal_progress(
    goal: Goal,
    now: datetime,
    category: Optional[Category] = None,
) -> GoalProgress:
    """
    Progress of one goal.

    days_left is counted in whole calendar days from today; the goal is
    overdue only once its target date has passed.
    """
    percentage = float(goal.current_amount * HUNDRED / goal.target_amount)
    days_left = (goal.target_date - now.date()).days

    return GoalProgress(
        goal=goal,
        category_name=category.name if category else None,
        category_color=category.color if category else FALLBACK_COLOR,
        percentage=percentage,
        display_percentage=min(100.0, percentage),
        remaining_amount=max(ZERO, goal.target_amount - goal.current_amount),
        days_left=days_left,
        is_overdue=days_left < 0,
    )


def goals_progress(
    snapshot: FinanceSnapshot,
    now: datetime,
    status: Optional[GoalStatus] = None,
    limit: Optional[int] = None,
) -> list[GoalProgress]:
    goals = [g for g in snapshot.goals if status is None or g.status == status]
    if limit is not None:
        goals = goals[:limit]
    return [
        goal_progress(g, now, snapshot.find_category(g.category_id))
        for g in goals
    ]


def goals_by_status(snapshot: FinanceSnapshot) -> dict[GoalStatus, list[Goal]]:
    grouped: dict[GoalStatus, list[Goal]] = {status: [] for status in GoalStatus}
    for goal in snapshot.goals:
        grouped[goal.status].append(goal)
    return grouped


# =============================================================================
# CHARTS
# =============================================================================

def category_series(
    snapshot: FinanceSnapshot,
    now: datetime,
    kind: TransactionType,
) -> ChartSeries:
    """
    Month totals of one transaction kind, grouped by category name.

    Categories appear in the order their first transaction does.
    Transactions whose category is unknown are left out.
    """
    palette = INCOME_PALETTE if kind == TransactionType.INCOME else EXPENSE_PALETTE

    totals: dict[str, Decimal] = {}
    for transaction in transactions_in_month(snapshot.transactions, now):
        if transaction.type != kind:
            continue
        category = snapshot.find_category(transaction.category_id)
        if category is None:
            continue
        totals[category.name] = totals.get(category.name, ZERO) + transaction.amount

    labels = list(totals)
    return ChartSeries(
        kind=kind,
        labels=labels,
        values=[totals[label] for label in labels],
        colors=[palette[i % len(palette)] for i in range(len(labels))],
    )


# =============================================================================
# LISTS AND COUNTS
# =============================================================================

def recent_transactions(snapshot: FinanceSnapshot, limit: int = 10) -> list[Transaction]:
    """Newest transactions first."""
    ordered = sorted(
        snapshot.transactions,
        key=lambda t: t.transaction_date.timestamp(),
        reverse=True,
    )
    return ordered[:limit]


def profile_stats(snapshot: FinanceSnapshot) -> ProfileStats:
    return ProfileStats(
        account_count=len(snapshot.accounts),
        transaction_count=len(snapshot.transactions),
        category_count=len(snapshot.categories),
        goal_count=len(snapshot.goals),
        active_goal_count=sum(1 for g in snapshot.goals if g.status == GoalStatus.ACTIVE),
        completed_goal_count=sum(1 for g in snapshot.goals if g.status == GoalStatus.COMPLETED),
    )
