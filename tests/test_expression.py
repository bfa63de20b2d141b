"""
Tests for the amount calculator.
"""

from decimal import Decimal

import pytest

from finance_tracker.validation import ExpressionError, evaluate_amount
from finance_tracker.validation.expression import MAX_EXPRESSION_LENGTH, looks_like_expression


class TestArithmetic:
    """Tests for evaluate_amount on well-formed input."""

    @pytest.mark.parametrize("expression,expected", [
        ("120 + 45.50", "165.50"),
        ("200 - 35", "165"),
        ("12.5 * 4", "50.0"),
        ("90 / 4", "22.5"),
        ("42", "42"),
    ])
    def test_operators(self, expression, expected):
        """Test each operator on its own."""
        assert evaluate_amount(expression) == Decimal(expected)

    def test_precedence(self):
        """Test that multiplication binds tighter than addition."""
        assert evaluate_amount("100 + 20 * 3") == Decimal("160")

    def test_brackets(self):
        """Test that brackets group first."""
        assert evaluate_amount("(100 + 20) * 3") == Decimal("360")

    def test_unary_signs(self):
        """Test leading plus and minus signs."""
        assert evaluate_amount("-20 + 50") == Decimal("30")
        assert evaluate_amount("+5 * -(2)") == Decimal("-10")

    def test_thousands_separators(self):
        """Test that commas are ignored."""
        assert evaluate_amount("1,200 + 300") == Decimal("1500")

    def test_decimal_exactness(self):
        """Test that literals are read exactly, without float error."""
        assert evaluate_amount("0.1 + 0.2") == Decimal("0.3")

    def test_surrounding_whitespace(self):
        assert evaluate_amount("   7 * 3  ") == Decimal("21")


class TestRejection:
    """Tests for input that is not a calculation."""

    def test_divide_by_zero(self):
        """Test that dividing by zero is reported, not raised as ZeroDivisionError."""
        with pytest.raises(ExpressionError, match="divide by zero"):
            evaluate_amount("10 / (5 - 5)")

    @pytest.mark.parametrize("expression", [
        "__import__('os')",
        "abs(-5)",
        "x + 1",
        "2 ** 10",
        "7 // 2",
        "10 % 3",
        "1e3",
    ])
    def test_not_arithmetic(self, expression):
        """Test that names, calls and other operators are refused."""
        with pytest.raises(ExpressionError):
            evaluate_amount(expression)

    @pytest.mark.parametrize("expression", ["", "   ", None])
    def test_empty(self, expression):
        with pytest.raises(ExpressionError, match="Enter an amount"):
            evaluate_amount(expression)

    def test_too_long(self):
        """Test that very long input is refused before parsing."""
        with pytest.raises(ExpressionError, match="too long"):
            evaluate_amount("1+" * MAX_EXPRESSION_LENGTH + "1")

    @pytest.mark.parametrize("expression", ["120 +", "(5 + 3", "5 5", "1..2"])
    def test_incomplete(self, expression):
        """Test that half-typed calculations are reported."""
        with pytest.raises(ExpressionError):
            evaluate_amount(expression)

    def test_is_a_value_error(self):
        """Test that callers catching ValueError also catch calculator errors."""
        with pytest.raises(ValueError):
            evaluate_amount("3 +")


class TestLooksLikeExpression:
    """Tests for telling plain amounts from calculations."""

    @pytest.mark.parametrize("text", ["120 + 45", "10*2", "(5)", "50 - 8", "9/3"])
    def test_calculations(self, text):
        assert looks_like_expression(text)

    @pytest.mark.parametrize("text", ["250", "-5", "1,250.50", "abc"])
    def test_plain_values(self, text):
        """Test that a leading minus sign alone is not a calculation."""
        assert not looks_like_expression(text)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
