"""Form validation package."""

from finance_tracker.validation.expression import ExpressionError, evaluate_amount
from finance_tracker.validation.validator import FinanceInputValidator

__all__ = ["ExpressionError", "FinanceInputValidator", "evaluate_amount"]
