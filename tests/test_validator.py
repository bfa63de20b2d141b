"""
Tests for form validation.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from finance_tracker.audit import AuditLogger
from finance_tracker.models.audit import AuditEventType
from finance_tracker.models.finance import (
    Account,
    AccountType,
    Budget,
    Category,
    CategoryType,
    FinanceSnapshot,
    Goal,
    TransactionType,
)
from finance_tracker.validation import FinanceInputValidator


FOOD = Category(id="food", name="Food & Dining", type=CategoryType.EXPENSE, is_default=True)
SALARY = Category(id="salary", name="Salary", type=CategoryType.INCOME, is_default=True)
WALLET = Account(id="a1", user_id="u1", name="Wallet", type=AccountType.WALLET)
OCTOBER_BUDGET = Budget(
    id="b1",
    user_id="u1",
    category_id="food",
    limit_amount=Decimal("5000"),
    month=date(2026, 10, 1),
)

SNAPSHOT = FinanceSnapshot(
    accounts=[WALLET],
    categories=[FOOD, SALARY],
    budgets=[OCTOBER_BUDGET],
    loaded=True,
)


@pytest.fixture
def audit():
    return AuditLogger()


@pytest.fixture
def validator(audit):
    return FinanceInputValidator(audit)


def issue_types(result) -> list[str]:
    return [issue.issue_type for issue in result.issues]


def transaction(validator, **overrides):
    values = {
        "account_id": "a1",
        "category_id": "food",
        "amount": "250",
        "transaction_type": "expense",
        "transaction_date": "2026-10-03",
    }
    values.update(overrides)
    return validator.validate_transaction(SNAPSHOT, **values)


class TestTransactionForm:
    """Tests for validate_transaction."""

    def test_valid(self, validator):
        """Test that a clean form builds a draft."""
        result, draft = transaction(validator, description="  Lunch  ")
        assert result.is_valid
        assert draft.amount == Decimal("250.00")
        assert draft.type == TransactionType.EXPENSE
        assert draft.transaction_date == datetime(2026, 10, 3).astimezone()
        assert draft.description == "Lunch"

    @pytest.mark.parametrize("amount,expected", [
        (None, "missing"),
        ("", "missing"),
        ("abc", "invalid_format"),
        ("NaN", "invalid_format"),
        ("-5", "invalid_value"),
        ("0", "invalid_value"),
        ("0.004", "invalid_value"),
    ])
    def test_bad_amounts(self, validator, amount, expected):
        """Test that bad amounts block the form."""
        result, draft = transaction(validator, amount=amount)
        assert draft is None
        assert expected in issue_types(result)

    def test_thousands_separator(self, validator):
        """Test that commas in amounts are accepted."""
        _, draft = transaction(validator, amount="1,250.50")
        assert draft.amount == Decimal("1250.50")

    def test_rounding_is_reported(self, validator):
        """Test that sub-cent input is rounded and reported, not silently changed."""
        result, draft = transaction(validator, amount="10.005")
        assert draft.amount == Decimal("10.01")
        assert "rounded" in issue_types(result)
        assert result.is_valid

    def test_calculated_amount(self, validator):
        """Test that a calculation in the amount field is worked out."""
        result, draft = transaction(validator, amount="120 + 45.50")
        assert result.is_valid
        assert draft.amount == Decimal("165.50")

    def test_calculated_amount_is_rounded(self, validator):
        """Test that a calculated amount is rounded to cents like a typed one."""
        result, draft = transaction(validator, amount="100 / 3")
        assert draft.amount == Decimal("33.33")
        assert "rounded" in issue_types(result)

    @pytest.mark.parametrize("amount,expected", [
        ("10 / 0", "invalid_format"),
        ("120 +", "invalid_format"),
        ("50 - 80", "invalid_value"),
    ])
    def test_bad_calculations(self, validator, amount, expected):
        """Test that a broken or negative calculation blocks the form."""
        result, draft = transaction(validator, amount=amount)
        assert draft is None
        assert expected in issue_types(result)

    def test_category_kind_mismatch(self, validator):
        """Test that an income category cannot hold an expense."""
        result, draft = transaction(validator, category_id="salary")
        assert draft is None
        assert "mismatch" in issue_types(result)

    def test_transfer_accepts_any_category(self, validator):
        """Test that transfers skip the kind check."""
        result, draft = transaction(validator, category_id="salary", transaction_type="transfer")
        assert result.is_valid
        assert draft.type == TransactionType.TRANSFER

    def test_unknown_references(self, validator):
        """Test that stale account and category ids are caught."""
        result, draft = transaction(validator, account_id="gone", category_id="also-gone")
        assert draft is None
        assert issue_types(result).count("not_found") == 2

    def test_missing_references(self, validator):
        """Test that unselected fields are reported before anything else."""
        result, _ = transaction(validator, account_id=None, category_id="")
        assert issue_types(result) == ["missing", "missing"]

    def test_unknown_type(self, validator):
        """Test an unrecognized transaction type."""
        result, draft = transaction(validator, transaction_type="refund")
        assert draft is None
        assert result.issues[0].field == "type"

    def test_bad_date(self, validator):
        """Test an unparseable date."""
        result, draft = transaction(validator, transaction_date="03/10/2026")
        assert draft is None
        assert "invalid_format" in issue_types(result)

    def test_date_object(self, validator):
        """Test that a date picker value is accepted."""
        _, draft = transaction(validator, transaction_date=date(2026, 10, 3))
        assert draft.transaction_date == datetime(2026, 10, 3).astimezone()

    def test_future_date_warns(self, validator):
        """Test that a future date is allowed with a warning."""
        result, draft = transaction(
            validator, transaction_date=(date.today() + timedelta(days=10)).isoformat()
        )
        assert draft is not None
        assert result.warnings

    def test_rejection_is_audited(self, validator, audit):
        """Test that rejected forms are recorded."""
        transaction(validator, amount="abc")
        event = audit.recent_events(1)[0]
        assert event.event_type == AuditEventType.VALIDATION_FAILED
        assert event.entity_type == "transaction"

    def test_no_audit_logger(self):
        """Test that validation works without an audit logger."""
        result, draft = transaction(FinanceInputValidator(), amount="abc")
        assert draft is None
        assert result.has_errors


class TestBudgetForm:
    """Tests for validate_budget."""

    def test_month_string(self, validator):
        """Test YYYY-MM input."""
        result, draft = validator.validate_budget(
            SNAPSHOT, category_id="food", limit_amount="3000", month="2026-11",
        )
        assert result.is_valid
        assert draft.month == date(2026, 11, 1)

    def test_date_normalized_to_month(self, validator):
        """Test that any day in the month selects that month."""
        _, draft = validator.validate_budget(
            SNAPSHOT, category_id="food", limit_amount="3000", month=date(2026, 12, 17),
        )
        assert draft.month == date(2026, 12, 1)

    def test_invalid_month(self, validator):
        """Test a month number out of range."""
        result, draft = validator.validate_budget(
            SNAPSHOT, category_id="food", limit_amount="3000", month="2026-13",
        )
        assert draft is None
        assert result.issues[0].field == "month"

    def test_sub_cent_limit(self, validator):
        """Test that a limit which rounds to zero is refused before any request."""
        result, draft = validator.validate_budget(
            SNAPSHOT, category_id="food", limit_amount="0.004", month="2026-11",
        )
        assert draft is None
        assert result.issues[0].message == "Amount must be at least 0.01"

    def test_income_category_rejected(self, validator):
        """Test that budgets are for expense categories only."""
        result, draft = validator.validate_budget(
            SNAPSHOT, category_id="salary", limit_amount="3000", month="2026-11",
        )
        assert draft is None
        assert "mismatch" in issue_types(result)

    def test_duplicate(self, validator):
        """Test that a second budget for the same month is caught early."""
        result, draft = validator.validate_budget(
            SNAPSHOT, category_id="food", limit_amount="3000", month="2026-10",
        )
        assert draft is None
        assert "potential_duplicate" in issue_types(result)

    def test_editing_same_budget(self, validator):
        """Test that a budget does not clash with itself."""
        result, draft = validator.validate_budget(
            SNAPSHOT, category_id="food", limit_amount="6000", month="2026-10", budget_id="b1",
        )
        assert result.is_valid
        assert draft.limit_amount == Decimal("6000.00")


class TestGoalForm:
    """Tests for validate_goal."""

    def test_valid(self, validator):
        """Test a clean goal form."""
        result, draft = validator.validate_goal(
            name="Emergency fund",
            target_amount="100000",
            target_date=date.today() + timedelta(days=365),
        )
        assert result.is_valid
        assert result.warnings == []
        assert draft.current_amount == Decimal("0.00")
        assert draft.category_id is None

    def test_missing_name(self, validator):
        """Test that a name is required."""
        result, draft = validator.validate_goal(
            name="   ", target_amount="1000", target_date="2030-01-01",
        )
        assert draft is None
        assert result.issues[0].field == "name"

    def test_warnings(self, validator):
        """Test that a past date and an already-met target only warn."""
        result, draft = validator.validate_goal(
            name="Bike",
            target_amount="1000",
            current_amount="1500",
            target_date=date.today() - timedelta(days=1),
        )
        assert draft is not None
        assert len(result.warnings) == 2

    def test_unknown_category(self, validator):
        """Test a goal category that no longer exists."""
        result, draft = validator.validate_goal(
            name="Bike",
            target_amount="1000",
            target_date="2030-01-01",
            category_id="gone",
            snapshot=SNAPSHOT,
        )
        assert draft is None
        assert "not_found" in issue_types(result)

    def test_negative_current_amount(self, validator):
        """Test that the saved amount cannot be negative."""
        result, draft = validator.validate_goal(
            name="Bike", target_amount="1000", current_amount="-1", target_date="2030-01-01",
        )
        assert draft is None
        assert result.issues[0].message == "Amount cannot be negative"


class TestAccountAndCategoryForms:
    """Tests for validate_account and validate_category."""

    def test_account(self, validator):
        """Test a clean account form."""
        result, draft = validator.validate_account(name="HDFC Card", account_type="card")
        assert result.is_valid
        assert draft.type == AccountType.CARD
        assert draft.icon == "card"

    def test_duplicate_account_name_warns(self, validator):
        """Test that a repeated account name only warns."""
        result, draft = validator.validate_account(
            name="wallet", account_type="cash", snapshot=SNAPSHOT,
        )
        assert draft is not None
        assert result.warnings

    def test_unknown_account_type(self, validator):
        """Test that the draft model's own checks are reported."""
        result, draft = validator.validate_account(name="Boat", account_type="boat")
        assert draft is None
        assert result.issues[0].field == "type"

    def test_category(self, validator):
        """Test a clean category form."""
        result, draft = validator.validate_category(
            name="Pets", category_type="expense", icon="paw", color="#F59E0B",
        )
        assert result.is_valid
        assert draft.icon == "paw"

    def test_duplicate_category_warns(self, validator):
        """Test that a category name clashing with a default warns."""
        result, draft = validator.validate_category(
            name="Salary", category_type="income", snapshot=SNAPSHOT,
        )
        assert draft is not None
        assert result.warnings

    def test_same_name_other_kind(self, validator):
        """Test that the clash check is per category kind."""
        result, _ = validator.validate_category(
            name="Salary", category_type="expense", snapshot=SNAPSHOT,
        )
        assert result.warnings == []


class TestFundingForm:
    """Tests for validate_funding."""

    GOAL = Goal(
        id="g1",
        user_id="u1",
        name="Trip",
        target_amount=Decimal("1000"),
        current_amount=Decimal("200"),
        target_date=date(2030, 1, 1),
    )

    def test_valid(self, validator):
        """Test a valid contribution."""
        result, amount = validator.validate_funding(self.GOAL, "50")
        assert result.is_valid
        assert amount == Decimal("50.00")

    def test_over_withdrawal(self, validator):
        """Test that a withdrawal is capped by the saved amount."""
        result, amount = validator.validate_funding(self.GOAL, "250", withdrawal=True)
        assert amount is None
        assert "200.00" in result.issues[0].message

    def test_zero(self, validator):
        """Test that zero is not a contribution."""
        _, amount = validator.validate_funding(self.GOAL, "0")
        assert amount is None


class TestSummary:
    """Tests for the user-facing summary text."""

    def test_all_passed(self, validator):
        """Test the summary of a clean form."""
        result, _ = transaction(validator)
        assert validator.get_user_friendly_summary(result) == "✅ All checks passed!"

    def test_errors_listed(self, validator):
        """Test that errors and fixes are listed."""
        result, _ = transaction(validator, amount="abc")
        summary = validator.get_user_friendly_summary(result)
        assert "❌" in summary
        assert "is not a valid amount" in summary
        assert "💡" in summary

    def test_warnings_only(self, validator):
        """Test that a warning-only form can still be saved."""
        result, _ = validator.validate_account(name="Wallet", account_type="wallet", snapshot=SNAPSHOT)
        summary = validator.get_user_friendly_summary(result)
        assert "⚠️" in summary
        assert "You can still save" in summary


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
