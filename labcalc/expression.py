"""
Restricted formula language for test calculations and template rules.

Formulas are parsed with ``ast.parse(mode="eval")`` and walked by an
allow-list evaluator; formula text is never executed. Supported:

- numbers, identifiers (case-sensitive), ``+ - * /``, unary ``+ -``, parentheses
- ``min``, ``max``, ``abs``, ``round`` on scalars
- conditions only: ``< <= > >= == !=``, ``and``/``or``/``not``
  (``&&``, ``||``, ``!`` are accepted and normalized)
- aggregates only: ``AVG SUM MIN MAX COUNT MAX_INDEX MIN_INDEX`` over row
  columns and ``column[index]``
"""

from __future__ import annotations

import ast
import math
import numbers
import operator
import re
from typing import Any, Mapping

_SAFE_TEXT = re.compile(r"^[A-Za-z0-9_\s+\-*/().,<>=!&|\[\]]*$")
_JS_NOT = re.compile(r"!(?!=)")

_BINOPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}
_UNARY = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}
_COMPARE = {
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
}
_SCALAR_FUNCS = {
    "min": min,
    "max": max,
    "abs": abs,
    "round": round,
}
AGGREGATE_FUNCS = ("AVG", "SUM", "MIN", "MAX", "COUNT", "MAX_INDEX", "MIN_INDEX")


class FormulaError(ValueError):
    """Formula text is malformed, uses a disallowed construct or cannot be evaluated."""


class MissingVariableError(FormulaError):
    def __init__(self, names: list[str]):
        self.names = list(names)
        super().__init__(f"Missing numeric value for: {', '.join(self.names)}")


class DivisionByZero(FormulaError):
    pass


class NonFiniteResult(FormulaError):
    pass


def _normalize(text: str, *, condition: bool) -> str:
    src = (text or "").strip()
    if not src:
        raise FormulaError("Formula is empty")
    if not _SAFE_TEXT.match(src):
        raise FormulaError(f"Formula contains disallowed characters: {src!r}")
    if condition:
        src = src.replace("&&", " and ").replace("||", " or ")
        src = _JS_NOT.sub(" not ", src)
    return src.strip()


def _check_node(node: ast.AST, *, condition: bool, aggregates: bool) -> None:
    if isinstance(node, (ast.Expression, ast.Load)):
        return
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise FormulaError("Only numeric constants allowed")
        return
    if isinstance(node, ast.Name):
        return
    if isinstance(node, ast.BinOp):
        if type(node.op) not in _BINOPS:
            raise FormulaError(f"Disallowed operator: {type(node.op).__name__}")
        return
    if isinstance(node, ast.UnaryOp):
        if isinstance(node.op, ast.Not) and condition:
            return
        if type(node.op) not in _UNARY:
            raise FormulaError(f"Disallowed unary operator: {type(node.op).__name__}")
        return
    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.keywords:
            raise FormulaError("Only simple function calls allowed")
        name = node.func.id
        if name in _SCALAR_FUNCS:
            return
        if name in AGGREGATE_FUNCS and aggregates:
            return
        raise FormulaError(f"Disallowed function: {name}")
    if isinstance(node, ast.Subscript):
        if aggregates and isinstance(node.value, ast.Name):
            return
        raise FormulaError("Indexing is only allowed on row columns in KPI formulas")
    if condition and isinstance(node, (ast.Compare, ast.BoolOp, ast.And, ast.Or, ast.Not)):
        if isinstance(node, ast.Compare):
            for op in node.ops:
                if type(op) not in _COMPARE:
                    raise FormulaError(f"Disallowed comparison: {type(op).__name__}")
        return
    if condition and type(node) in _COMPARE:
        return
    if type(node) in _BINOPS or type(node) in _UNARY:
        return
    raise FormulaError(f"Unsupported expression: {type(node).__name__}")


def parse_formula(text: str, *, condition: bool = False, aggregates: bool = False) -> ast.expr:
    """
    Parse formula text into an AST body.
    Raises FormulaError on empty text, disallowed characters, syntax error or
    disallowed construct.
    """
    src = _normalize(text, condition=condition)
    try:
        tree = ast.parse(src, mode="eval")
    except SyntaxError as exc:
        raise FormulaError(f"Invalid formula syntax: {text!r}") from exc
    for node in ast.walk(tree):
        _check_node(node, condition=condition, aggregates=aggregates)
    return tree.body


def _variable_names(body: ast.AST) -> list[str]:
    func_nodes = {id(n.func) for n in ast.walk(body) if isinstance(n, ast.Call)}
    found = [
        n
        for n in ast.walk(body)
        if isinstance(n, ast.Name) and id(n) not in func_nodes
    ]
    found.sort(key=lambda n: (n.lineno, n.col_offset))
    names: list[str] = []
    for n in found:
        if n.id not in names:
            names.append(n.id)
    return names


def list_variables(text: str, *, condition: bool = False, aggregates: bool = False) -> list[str]:
    """Ordered variable names referenced by the formula; [] when it does not parse."""
    try:
        body = parse_formula(text, condition=condition, aggregates=aggregates)
    except FormulaError:
        return []
    return _variable_names(body)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    return math.isfinite(value)


def numeric_values(values: Mapping[str, Any]) -> dict[str, Any]:
    """
    Keep only values usable by formulas: finite numbers, and tuples/lists of
    finite numbers (row columns). Everything else counts as missing.
    """
    out: dict[str, Any] = {}
    for name, value in values.items():
        if _is_number(value):
            out[name] = float(value)
        elif isinstance(value, (list, tuple)) and all(_is_number(v) for v in value):
            out[name] = tuple(float(v) for v in value)
    return out


def _scalar(value: Any, what: str) -> float:
    if isinstance(value, tuple):
        raise FormulaError(f"{what} is a row column; use an aggregate such as AVG({what})")
    return value


def _flatten(args: list[Any]) -> list[float]:
    flat: list[float] = []
    for arg in args:
        if isinstance(arg, tuple):
            flat.extend(arg)
        else:
            flat.append(arg)
    return flat


def _aggregate(name: str, args: list[Any]) -> float:
    if name in ("MAX_INDEX", "MIN_INDEX"):
        if len(args) != 1 or not isinstance(args[0], tuple):
            raise FormulaError(f"{name} expects exactly one row column")
        col = args[0]
        if not col:
            raise FormulaError(f"{name} of an empty column")
        target = max(col) if name == "MAX_INDEX" else min(col)
        return float(col.index(target))
    flat = _flatten(args)
    if name == "COUNT":
        return float(len(flat))
    if name == "SUM":
        return float(sum(flat))
    if not flat:
        raise FormulaError(f"{name} of an empty column")
    if name == "AVG":
        return sum(flat) / len(flat)
    if name == "MIN":
        return min(flat)
    return max(flat)


def _eval_node(node: ast.AST, values: Mapping[str, Any]) -> Any:
    if isinstance(node, ast.Constant):
        return float(node.value)
    if isinstance(node, ast.Name):
        if node.id not in values:
            raise MissingVariableError([node.id])
        return values[node.id]
    if isinstance(node, ast.BinOp):
        left = _scalar(_eval_node(node.left, values), "left operand")
        right = _scalar(_eval_node(node.right, values), "right operand")
        if isinstance(node.op, ast.Div) and right == 0:
            raise DivisionByZero("Division by zero")
        return _BINOPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp):
        operand = _eval_node(node.operand, values)
        if isinstance(node.op, ast.Not):
            return not operand
        return _UNARY[type(node.op)](_scalar(operand, "operand"))
    if isinstance(node, ast.Call):
        name = node.func.id
        args = [_eval_node(a, values) for a in node.args]
        if name in AGGREGATE_FUNCS:
            return _aggregate(name, args)
        scalars = [_scalar(a, f"argument of {name}") for a in args]
        try:
            if name == "round" and len(scalars) == 2:
                return float(round(scalars[0], int(scalars[1])))
            return float(_SCALAR_FUNCS[name](*scalars))
        except (TypeError, ValueError) as exc:
            raise FormulaError(f"Bad arguments for {name}") from exc
    if isinstance(node, ast.Subscript):
        column = values.get(node.value.id) if isinstance(node.value, ast.Name) else None
        if not isinstance(column, tuple):
            raise FormulaError("Only row columns can be indexed")
        idx = _scalar(_eval_node(node.slice, values), "index")
        if not float(idx).is_integer() or not 0 <= int(idx) < len(column):
            raise FormulaError(f"Index out of range: {idx}")
        return column[int(idx)]
    if isinstance(node, ast.Compare):
        left = _scalar(_eval_node(node.left, values), "comparison operand")
        for op, comparator in zip(node.ops, node.comparators):
            right = _scalar(_eval_node(comparator, values), "comparison operand")
            if not _COMPARE[type(op)](left, right):
                return False
            left = right
        return True
    if isinstance(node, ast.BoolOp):
        results = [bool(_eval_node(v, values)) for v in node.values]
        return all(results) if isinstance(node.op, ast.And) else any(results)
    raise FormulaError(f"Unsupported expression: {type(node).__name__}")


def _evaluate(body: ast.expr, values: Mapping[str, Any]) -> Any:
    usable = numeric_values(values)
    missing = [name for name in _variable_names(body) if name not in usable]
    if missing:
        raise MissingVariableError(missing)
    try:
        return _eval_node(body, usable)
    except OverflowError as exc:
        raise NonFiniteResult("Result overflowed") from exc


def evaluate_expression(
    text: str,
    values: Mapping[str, Any],
    *,
    aggregates: bool = False,
) -> float:
    """
    Evaluate an arithmetic formula against named values.
    Raises MissingVariableError before evaluating anything when a referenced
    name has no numeric value, DivisionByZero, NonFiniteResult, or FormulaError.
    """
    body = parse_formula(text, aggregates=aggregates)
    result = _scalar(_evaluate(body, values), "formula result")
    if isinstance(result, bool):
        raise FormulaError("Arithmetic formula produced a boolean")
    result = float(result)
    if not math.isfinite(result):
        raise NonFiniteResult(f"Formula produced a non-finite result: {result}")
    return result


def evaluate_condition(text: str, values: Mapping[str, Any]) -> bool:
    """Evaluate a boolean pass condition such as ``avg_dry_density >= min_avg_dry_density``."""
    body = parse_formula(text, condition=True)
    result = _evaluate(body, values)
    if not isinstance(result, bool):
        raise FormulaError("Condition must be a comparison")
    return result
