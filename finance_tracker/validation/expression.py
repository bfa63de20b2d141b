"""
Amount Calculator

Lets an amount field take simple arithmetic ("120 + 45.50 * 2") the way a
pocket calculator would. The expression is parsed, never executed: only
numbers, + - * /, unary signs and parentheses are accepted, and every
number is read as a Decimal from its source text so no float rounding
creeps into money.
"""

import ast
import re
from decimal import Decimal, InvalidOperation
from typing import Optional


MAX_EXPRESSION_LENGTH = 200

# Anything beyond digits, separators, operators and brackets is not arithmetic
_ALLOWED_CHARACTERS = re.compile(r"^[\d\s.,+\-*/()]+$")
_OPERATOR = re.compile(r"[+*/()]|(?<=[\d)\s])-")

_BINARY_OPERATORS = {
    ast.Add: lambda a, b: a + b,
    ast.Sub: lambda a, b: a - b,
    ast.Mult: lambda a, b: a * b,
    ast.Div: lambda a, b: a / b,
}


class ExpressionError(ValueError):
    """The text is not a calculable amount."""
    pass


def looks_like_expression(text: str) -> bool:
    """True if the text has an operator beyond a leading sign."""
    return bool(_OPERATOR.search(text.strip()))


def evaluate_amount(expression: Optional[str]) -> Decimal:
    """
    Evaluate an arithmetic expression to a Decimal.

    Thousands separators are ignored, so "1,200 + 300" is 1500.

    Raises:
        ExpressionError: If the text is empty, too long, not arithmetic,
            or divides by zero
    """
    text = (expression or "").strip().replace(",", "")
    if not text:
        raise ExpressionError("Enter an amount or a calculation")
    if len(text) > MAX_EXPRESSION_LENGTH:
        raise ExpressionError("Calculation is too long")
    if not _ALLOWED_CHARACTERS.match(text):
        raise ExpressionError("Only numbers, + - * / and brackets are allowed")

    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError as e:
        raise ExpressionError(f"'{expression}' is not a complete calculation") from e

    try:
        result = _evaluate(tree.body, text)
    except InvalidOperation as e:
        raise ExpressionError(f"'{expression}' cannot be calculated") from e

    if not result.is_finite():
        raise ExpressionError(f"'{expression}' cannot be calculated")
    return result


def _evaluate(node: ast.AST, source: str) -> Decimal:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        # Read the literal as written; 0.1 must stay exactly 0.1
        return Decimal(ast.get_source_segment(source, node))

    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.UAdd, ast.USub)):
        operand = _evaluate(node.operand, source)
        return -operand if isinstance(node.op, ast.USub) else operand

    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        left = _evaluate(node.left, source)
        right = _evaluate(node.right, source)
        if isinstance(node.op, ast.Div) and right == 0:
            raise ExpressionError("Cannot divide by zero")
        return _BINARY_OPERATORS[type(node.op)](left, right)

    raise ExpressionError("Only numbers, + - * / and brackets are allowed")
