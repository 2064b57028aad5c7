"""
Default boolean filter evaluator for event subscriptions.

Expressions are evaluated over the event parameters, which are bound as
variables by name. Both C-style (``&&``, ``||``) and Python-style
(``and``, ``or``, ``not``) connectives are accepted:

    amount > 100 && owner == "alice"
"""

import ast
import logging
import operator
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Sequence

from .models import Parameter
from .types import FilterEvaluationError

logger = logging.getLogger(__name__)

NUMERIC_TYPE_PATTERN = re.compile(r"^(u?int\d*|integer|number|decimal|u?fixed[\dx]*|float|double|long)$")
BOOLEAN_TYPES = {"bool", "boolean"}

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}

_UNARY_OPS = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_COMPARE_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
}

_LITERALS = {"true": True, "false": False, "True": True, "False": False}

# String literals are matched first so connectives inside quotes stay as they are
_CONNECTIVE_PATTERN = re.compile(r"""("(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*')|&&|\|\|""")
_CONNECTIVES = {"&&": " and ", "||": " or "}


def _rewrite_connective(match: "re.Match") -> str:
    if match.group(1):
        return match.group(1)
    return _CONNECTIVES[match.group(0)]


def convert_parameter_value(parameter: Parameter) -> Any:
    """Convert a textual parameter value according to its declared type"""
    type_name = (parameter.type or "").strip().lower()

    if type_name in BOOLEAN_TYPES:
        lowered = parameter.value.strip().lower()
        if lowered not in ("true", "false"):
            raise FilterEvaluationError(
                f"Parameter '{parameter.name}' is not a boolean: {parameter.value!r}"
            )
        return lowered == "true"

    if NUMERIC_TYPE_PATTERN.match(type_name):
        try:
            return Decimal(parameter.value.strip())
        except InvalidOperation:
            raise FilterEvaluationError(
                f"Parameter '{parameter.name}' is not numeric: {parameter.value!r}"
            )

    return parameter.value


class ExpressionFilterEvaluator:
    """Evaluates boolean filter expressions over a whitelisted syntax tree"""

    def evaluate(self, expression: Optional[str], parameters: Sequence[Parameter]) -> bool:
        if expression is None or not expression.strip():
            return True

        variables = {p.name: convert_parameter_value(p) for p in parameters}
        tree = self._parse(expression)

        try:
            result = self._eval(tree.body, variables)
        except FilterEvaluationError:
            raise
        except (TypeError, ArithmeticError) as e:
            raise FilterEvaluationError(f"Cannot evaluate filter '{expression}': {e}") from e

        if not isinstance(result, bool):
            raise FilterEvaluationError(
                f"Filter '{expression}' does not evaluate to a boolean (got {type(result).__name__})"
            )
        return result

    def _parse(self, expression: str) -> ast.Expression:
        source = _CONNECTIVE_PATTERN.sub(_rewrite_connective, expression)
        try:
            return ast.parse(source.strip(), mode="eval")
        except SyntaxError as e:
            raise FilterEvaluationError(f"Malformed filter expression '{expression}': {e.msg}") from e

    def _eval(self, node: ast.AST, variables: Dict[str, Any]) -> Any:
        if isinstance(node, ast.BoolOp):
            values = (self._eval(v, variables) for v in node.values)
            if isinstance(node.op, ast.And):
                return all(self._as_bool(v) for v in values)
            return any(self._as_bool(v) for v in values)

        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
            operand = self._eval(node.operand, variables)
            if isinstance(node.op, ast.Not):
                return not self._as_bool(operand)
            return _UNARY_OPS[type(node.op)](operand)

        if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
            return _BIN_OPS[type(node.op)](
                self._eval(node.left, variables),
                self._eval(node.right, variables)
            )

        if isinstance(node, ast.Compare):
            left = self._eval(node.left, variables)
            for op, comparator in zip(node.ops, node.comparators):
                if type(op) not in _COMPARE_OPS:
                    raise FilterEvaluationError(f"Unsupported comparison: {type(op).__name__}")
                right = self._eval(comparator, variables)
                if not _COMPARE_OPS[type(op)](left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.Name):
            if node.id in variables:
                return variables[node.id]
            if node.id in _LITERALS:
                return _LITERALS[node.id]
            raise FilterEvaluationError(f"Unknown variable in filter: {node.id}")

        if isinstance(node, ast.Constant) and isinstance(node.value, (str, int, float, bool)):
            if isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
                return Decimal(str(node.value))
            return node.value

        raise FilterEvaluationError(f"Unsupported filter syntax: {type(node).__name__}")

    @staticmethod
    def _as_bool(value: Any) -> bool:
        if not isinstance(value, bool):
            raise FilterEvaluationError(f"Expected a boolean operand, got {value!r}")
        return value
