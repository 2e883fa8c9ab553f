"""Restricted expression language for step conditions.

Supported: literals, names, subscripts, comparisons, ``and``/``or``/``not``
and unary minus. Names resolve to ``input``, ``variables`` and ``results``
first, then to a variable, then to an input key; anything unknown is None.

    results['extract']['pages'] > 5 and not variables['dry_run']
"""

import ast
import operator
from typing import Any, Dict, Mapping

from ..errors import ValidationError


_COMPARATORS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_ALLOWED = (
    ast.Expression,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.UnaryOp,
    ast.Not,
    ast.USub,
    ast.Compare,
    ast.Name,
    ast.Load,
    ast.Constant,
    ast.Subscript,
    ast.List,
    ast.Tuple,
) + tuple(_COMPARATORS)

_cache: Dict[str, ast.Expression] = {}


def compile_condition(expression: str) -> ast.Expression:
    """
    Parse and vet an expression.

    Raises:
        ValidationError: On syntax errors or unsupported constructs
    """
    if expression in _cache:
        return _cache[expression]

    try:
        tree = ast.parse(expression, mode="eval")
    except SyntaxError as e:
        raise ValidationError(f"Invalid condition {expression!r}: {e.msg}") from e

    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED):
            raise ValidationError(
                f"Invalid condition {expression!r}: {type(node).__name__} is not allowed"
            )

    _cache[expression] = tree
    return tree


def evaluate_condition(expression: str, namespace: Mapping[str, Any]) -> bool:
    tree = compile_condition(expression)
    return bool(_eval(tree.body, namespace))


def _eval(node: ast.AST, namespace: Mapping[str, Any]) -> Any:
    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, ast.Name):
        return _resolve(node.id, namespace)

    if isinstance(node, (ast.List, ast.Tuple)):
        return [_eval(elt, namespace) for elt in node.elts]

    if isinstance(node, ast.Subscript):
        container = _eval(node.value, namespace)
        key = _eval(node.slice, namespace)
        if isinstance(container, Mapping):
            return container.get(key)
        try:
            return container[key]
        except (IndexError, KeyError, TypeError):
            return None

    if isinstance(node, ast.UnaryOp):
        operand = _eval(node.operand, namespace)
        return (not operand) if isinstance(node.op, ast.Not) else -operand

    if isinstance(node, ast.BoolOp):
        if isinstance(node.op, ast.And):
            result: Any = True
            for value in node.values:
                result = _eval(value, namespace)
                if not result:
                    return result
            return result
        result = False
        for value in node.values:
            result = _eval(value, namespace)
            if result:
                return result
        return result

    if isinstance(node, ast.Compare):
        left = _eval(node.left, namespace)
        for op, comparator in zip(node.ops, node.comparators):
            right = _eval(comparator, namespace)
            try:
                if not _COMPARATORS[type(op)](left, right):
                    return False
            except TypeError:
                return False
            left = right
        return True

    raise ValidationError(f"Unsupported condition node: {type(node).__name__}")


def _resolve(name: str, namespace: Mapping[str, Any]) -> Any:
    if name in namespace:
        return namespace[name]
    variables = namespace.get("variables") or {}
    if name in variables:
        return variables[name]
    return (namespace.get("input") or {}).get(name)
