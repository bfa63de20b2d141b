"""
Two-Stage Form Validation

DESIGN DECISION: Form input is validated before any request is issued,
in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Amounts parse as decimals and are positive
- Dates parse
- The draft model accepts the values

STAGE 2 - SEMANTIC VALIDATION:
- Referenced accounts and categories exist
- Category kind matches the transaction kind
- Budgets only for expense categories, one per category and month
- Suspicious but allowed values (future dates, past deadlines)

Stage 2 only runs when stage 1 passes, since it works on parsed values.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them, and only builds a draft when there are no errors.
"""

import re
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from pydantic import ValidationError

from finance_tracker.audit import AuditLogger
from finance_tracker.config import get_settings
from finance_tracker.models.audit import AuditEventBuilder
from finance_tracker.models.finance import (
    AccountDraft,
    BudgetDraft,
    CategoryDraft,
    CategoryType,
    FinanceSnapshot,
    Goal,
    GoalDraft,
    RecordDraft,
    TransactionDraft,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    to_cents,
)
from finance_tracker.validation.expression import (
    ExpressionError,
    evaluate_amount,
    looks_like_expression,
)


RawValue = Union[str, int, float, Decimal, date, datetime, None]

MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


class FinanceInputValidator:
    """
    Validates raw form values and builds drafts from them.

    Every validate_* method returns (result, draft). The draft is None
    whenever the result has errors.
    """

    def __init__(self, audit_logger: Optional[AuditLogger] = None):
        """
        Initialize validator.

        Args:
            audit_logger: Where rejected forms are recorded.
                          If None, rejections are not audited.
        """
        self._audit = audit_logger
        self._settings = get_settings().app

    # =========================================================================
    # STAGE 1 HELPERS
    # =========================================================================

    def _parse_amount(
        self,
        field: str,
        raw: RawValue,
        issues: list[ValidationIssue],
        allow_zero: bool = False,
    ) -> Optional[Decimal]:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message="Amount is required",
                severity="error",
                suggested_fix="Enter an amount such as 250.00",
            ))
            return None

        text = str(raw).strip().replace(",", "")
        try:
            amount: Optional[Decimal] = Decimal(text)
        except InvalidOperation:
            amount = None

        # "120 + 45.50" is worked out as the calculator would
        if amount is None and looks_like_expression(text):
            try:
                amount = evaluate_amount(text)
            except ExpressionError as e:
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="invalid_format",
                    message=str(e),
                    severity="error",
                    suggested_fix="Check the calculation, e.g. 120 + 45.50",
                ))
                return None

        if amount is None:
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_format",
                message=f"'{raw}' is not a valid amount",
                severity="error",
                suggested_fix="Use digits with an optional decimal point",
            ))
            return None

        if not amount.is_finite():
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_format",
                message=f"'{raw}' is not a valid amount",
                severity="error",
            ))
            return None

        # Bounds apply to the stored, cent-rounded value
        rounded = to_cents(amount)
        if amount < 0 or (rounded == 0 and not allow_zero):
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=(
                    "Amount cannot be negative" if allow_zero
                    else "Amount must be at least 0.01" if amount > 0
                    else "Amount must be greater than zero"
                ),
                severity="error",
            ))
            return None

        if amount != rounded:
            issues.append(ValidationIssue(
                field=field,
                issue_type="rounded",
                message=f"Amount will be rounded to {rounded}",
                severity="info",
            ))
        return rounded

    def _parse_date(
        self,
        field: str,
        raw: RawValue,
        issues: list[ValidationIssue],
    ) -> Optional[date]:
        if isinstance(raw, datetime):
            return raw.date()
        if isinstance(raw, date):
            return raw
        if raw is None or not str(raw).strip():
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message="Date is required",
                severity="error",
            ))
            return None
        try:
            return date.fromisoformat(str(raw).strip())
        except ValueError:
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_format",
                message=f"'{raw}' is not a valid date",
                severity="error",
                suggested_fix="Use the YYYY-MM-DD format",
            ))
            return None

    def _parse_datetime(
        self,
        field: str,
        raw: RawValue,
        issues: list[ValidationIssue],
    ) -> Optional[datetime]:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, date):
            return datetime(raw.year, raw.month, raw.day)
        if raw is None or not str(raw).strip():
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message="Date is required",
                severity="error",
            ))
            return None
        try:
            return datetime.fromisoformat(str(raw).strip())
        except ValueError:
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_format",
                message=f"'{raw}' is not a valid date",
                severity="error",
                suggested_fix="Use the YYYY-MM-DD format",
            ))
            return None

    def _parse_month(
        self,
        field: str,
        raw: RawValue,
        issues: list[ValidationIssue],
    ) -> Optional[date]:
        """Accept YYYY-MM or any date; normalize to the first of the month."""
        if isinstance(raw, str):
            match = MONTH_PATTERN.match(raw.strip())
            if match:
                year, month = int(match.group(1)), int(match.group(2))
                if not 1 <= month <= 12:
                    issues.append(ValidationIssue(
                        field=field,
                        issue_type="invalid_value",
                        message=f"'{raw}' is not a valid month",
                        severity="error",
                    ))
                    return None
                return date(year, month, 1)

        parsed = self._parse_date(field, raw, issues)
        return parsed.replace(day=1) if parsed else None

    def _require_text(
        self,
        field: str,
        raw: Optional[str],
        label: str,
        issues: list[ValidationIssue],
        max_length: int = 100,
    ) -> Optional[str]:
        value = (raw or "").strip()
        if not value:
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{label} is required",
                severity="error",
            ))
            return None
        if len(value) > max_length:
            issues.append(ValidationIssue(
                field=field,
                issue_type="too_long",
                message=f"{label} must be at most {max_length} characters",
                severity="error",
            ))
            return None
        return value

    def _build(
        self,
        draft_type: type[RecordDraft],
        values: dict[str, Any],
        issues: list[ValidationIssue],
    ) -> Optional[RecordDraft]:
        """Let the draft model run its own checks; report anything it rejects."""
        try:
            return draft_type(**{k: v for k, v in values.items() if v is not None})
        except ValidationError as e:
            for error in e.errors():
                issues.append(ValidationIssue(
                    field=".".join(str(part) for part in error["loc"]) or "form",
                    issue_type="invalid_value",
                    message=error["msg"],
                    severity="error",
                ))
            return None

    def _finish(
        self,
        form: str,
        issues: list[ValidationIssue],
        draft: Optional[RecordDraft],
    ) -> tuple[ValidationResult, Optional[RecordDraft]]:
        result = ValidationResult(form=form, issues=issues)
        if result.has_errors:
            if self._audit is not None:
                self._audit.log(AuditEventBuilder.validation_failed(
                    form, [issue.model_dump() for issue in issues if issue.severity == "error"]
                ))
            return result, None
        return result, draft

    def _has_errors(self, issues: list[ValidationIssue]) -> bool:
        return any(issue.severity == "error" for issue in issues)

    # =========================================================================
    # FORMS
    # =========================================================================

    def validate_transaction(
        self,
        snapshot: FinanceSnapshot,
        *,
        account_id: Optional[str],
        category_id: Optional[str],
        amount: RawValue,
        transaction_type: Union[TransactionType, str],
        transaction_date: RawValue,
        description: Optional[str] = None,
    ) -> tuple[ValidationResult, Optional[TransactionDraft]]:
        issues: list[ValidationIssue] = []

        # Stage 1: schema
        try:
            kind = TransactionType(transaction_type)
        except ValueError:
            kind = None
            issues.append(ValidationIssue(
                field="type",
                issue_type="invalid_value",
                message=f"Unknown transaction type '{transaction_type}'",
                severity="error",
            ))
        if not account_id:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="missing",
                message="Choose an account",
                severity="error",
            ))
        if not category_id:
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="missing",
                message="Choose a category",
                severity="error",
            ))
        parsed_amount = self._parse_amount("amount", amount, issues)
        when = self._parse_datetime("transaction_date", transaction_date, issues)

        if self._has_errors(issues):
            return self._finish("transaction", issues, None)

        # Stage 2: semantic
        if snapshot.find_account(account_id) is None:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="not_found",
                message="The selected account no longer exists",
                severity="error",
                suggested_fix="Refresh and choose another account",
            ))

        category = snapshot.find_category(category_id)
        if category is None:
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="not_found",
                message="The selected category no longer exists",
                severity="error",
                suggested_fix="Refresh and choose another category",
            ))
        elif kind != TransactionType.TRANSFER and category.type.value != kind.value:
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="mismatch",
                message=f"'{category.name}' is an {category.type.value} category, not {kind.value}",
                severity="error",
                suggested_fix=f"Choose an {kind.value} category",
            ))

        if when.date() > date.today() + timedelta(days=1):
            issues.append(ValidationIssue(
                field="transaction_date",
                issue_type="future_date",
                message=f"Transaction date ({when.date()}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        draft = None
        if not self._has_errors(issues):
            draft = self._build(TransactionDraft, {
                "account_id": account_id,
                "category_id": category_id,
                "amount": parsed_amount,
                "type": kind,
                "description": (description or "").strip() or None,
                "transaction_date": when,
            }, issues)
        return self._finish("transaction", issues, draft)

    def validate_budget(
        self,
        snapshot: FinanceSnapshot,
        *,
        category_id: Optional[str],
        limit_amount: RawValue,
        month: RawValue,
        budget_id: Optional[str] = None,
    ) -> tuple[ValidationResult, Optional[BudgetDraft]]:
        """
        Args:
            month: "YYYY-MM" or any date in the month
            budget_id: The budget being edited, excluded from the duplicate check
        """
        issues: list[ValidationIssue] = []

        # Stage 1: schema
        if not category_id:
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="missing",
                message="Choose a category",
                severity="error",
            ))
        parsed_limit = self._parse_amount("limit_amount", limit_amount, issues)
        month_start = self._parse_month("month", month, issues)

        if self._has_errors(issues):
            return self._finish("budget", issues, None)

        # Stage 2: semantic
        category = snapshot.find_category(category_id)
        if category is None:
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="not_found",
                message="The selected category no longer exists",
                severity="error",
            ))
        elif category.type != CategoryType.EXPENSE:
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="mismatch",
                message="Budgets can only be set for expense categories",
                severity="error",
            ))

        duplicate = any(
            b.category_id == category_id and b.month == month_start and b.id != budget_id
            for b in snapshot.budgets
        )
        if duplicate:
            issues.append(ValidationIssue(
                field="month",
                issue_type="potential_duplicate",
                message="A budget already exists for this category and month",
                severity="error",
                suggested_fix="Edit the existing budget instead",
            ))

        draft = None
        if not self._has_errors(issues):
            draft = self._build(BudgetDraft, {
                "category_id": category_id,
                "limit_amount": parsed_limit,
                "month": month_start,
            }, issues)
        return self._finish("budget", issues, draft)

    def validate_goal(
        self,
        *,
        name: Optional[str],
        target_amount: RawValue,
        target_date: RawValue,
        current_amount: RawValue = "0",
        category_id: Optional[str] = None,
        description: Optional[str] = None,
        snapshot: Optional[FinanceSnapshot] = None,
    ) -> tuple[ValidationResult, Optional[GoalDraft]]:
        issues: list[ValidationIssue] = []

        # Stage 1: schema
        clean_name = self._require_text("name", name, "Goal name", issues)
        target = self._parse_amount("target_amount", target_amount, issues)
        current = self._parse_amount("current_amount", current_amount or "0", issues, allow_zero=True)
        deadline = self._parse_date("target_date", target_date, issues)

        if self._has_errors(issues):
            return self._finish("goal", issues, None)

        # Stage 2: semantic
        if deadline < date.today():
            issues.append(ValidationIssue(
                field="target_date",
                issue_type="past_date",
                message=f"Target date ({deadline}) has already passed",
                severity="warning",
            ))
        if current > target:
            issues.append(ValidationIssue(
                field="current_amount",
                issue_type="suspicious_value",
                message="Saved amount is already above the target",
                severity="warning",
            ))
        if category_id and snapshot is not None and snapshot.find_category(category_id) is None:
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="not_found",
                message="The selected category no longer exists",
                severity="error",
            ))

        draft = None
        if not self._has_errors(issues):
            draft = self._build(GoalDraft, {
                "name": clean_name,
                "category_id": category_id or None,
                "target_amount": target,
                "current_amount": current,
                "target_date": deadline,
                "description": (description or "").strip() or None,
            }, issues)
        return self._finish("goal", issues, draft)

    def validate_account(
        self,
        *,
        name: Optional[str],
        account_type: str,
        color: Optional[str] = None,
        snapshot: Optional[FinanceSnapshot] = None,
    ) -> tuple[ValidationResult, Optional[AccountDraft]]:
        issues: list[ValidationIssue] = []
        clean_name = self._require_text("name", name, "Account name", issues)

        if clean_name and snapshot is not None:
            if any(a.name.lower() == clean_name.lower() for a in snapshot.accounts):
                issues.append(ValidationIssue(
                    field="name",
                    issue_type="potential_duplicate",
                    message=f"You already have an account named '{clean_name}'",
                    severity="warning",
                ))

        draft = None
        if not self._has_errors(issues):
            draft = self._build(AccountDraft, {
                "name": clean_name,
                "type": account_type,
                "color": color,
            }, issues)
        return self._finish("account", issues, draft)

    def validate_category(
        self,
        *,
        name: Optional[str],
        category_type: str,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        snapshot: Optional[FinanceSnapshot] = None,
    ) -> tuple[ValidationResult, Optional[CategoryDraft]]:
        issues: list[ValidationIssue] = []
        clean_name = self._require_text("name", name, "Category name", issues)

        if clean_name and snapshot is not None:
            clash = any(
                c.name.lower() == clean_name.lower() and c.type.value == category_type
                for c in snapshot.categories
            )
            if clash:
                issues.append(ValidationIssue(
                    field="name",
                    issue_type="potential_duplicate",
                    message=f"A {category_type} category named '{clean_name}' already exists",
                    severity="warning",
                ))

        draft = None
        if not self._has_errors(issues):
            draft = self._build(CategoryDraft, {
                "name": clean_name,
                "type": category_type,
                "icon": icon,
                "color": color,
            }, issues)
        return self._finish("category", issues, draft)

    def validate_funding(
        self,
        goal: Goal,
        amount: RawValue,
        withdrawal: bool = False,
    ) -> tuple[ValidationResult, Optional[Decimal]]:
        """Check a goal funding or withdrawal amount."""
        issues: list[ValidationIssue] = []
        parsed = self._parse_amount("amount", amount, issues)

        if parsed is not None and withdrawal and parsed > goal.current_amount:
            symbol = self._settings.currency_symbol
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message=f"Cannot withdraw more than the saved {symbol}{goal.current_amount:,.2f}",
                severity="error",
            ))

        result = ValidationResult(form="goal_funding", issues=issues)
        return result, None if result.has_errors else parsed

    # =========================================================================
    # PRESENTATION
    # =========================================================================

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show next to the form.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed!"

        lines = []

        if result.has_errors:
            lines.append("❌ Please fix the following:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        if not result.has_errors:
            lines.append("")
            lines.append("You can still save, but please review carefully.")

        return "\n".join(lines)
