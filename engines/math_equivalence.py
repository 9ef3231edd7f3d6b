"""Number parsing, equivalence checks and misconception detection for learner answers."""

from __future__ import annotations

import ast
import math
import operator
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

STEP_TOLERANCE_SLACK = 1e-9
CLOSE_FACTOR = 100
_ALGEBRAIC_TOLERANCE = 1e-4
_MAX_EXPONENT = 1000.0

_SYMBOL_REPLACEMENTS = (
    ("×", "*"),
    ("÷", "/"),
    ("−", "-"),
    ("·", "*"),
    ("²", "^2"),
    ("³", "^3"),
    ("√", "sqrt"),
    ("π", "pi"),
)

_IMPLICIT_MULTIPLICATION = re.compile(r"(\d)([a-z])", re.IGNORECASE)
_GERMAN_DECIMAL = re.compile(r"(?<=\d),(?=\d)")
_TERM_SPLIT = re.compile(r"(?=[+-])")
_TERM_PATTERN = re.compile(r"^([+-]?)(\d*\.?\d*)\*?([a-z]*)(?:\^(\d+))?$", re.IGNORECASE)
_UNIT = r"[a-zäöüßµ°%€]+(?:\^[23])?"
_UNIT_SUFFIXED = re.compile(rf"^([+-]?(?:\d+\.?\d*|\.\d+))\*?({_UNIT}(?:/{_UNIT})?)$")

_BINARY_OPERATORS: Dict[type, Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPERATORS: Dict[type, Callable[[float], float]] = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}
_ALLOWED_NAMES: Dict[str, float] = {"pi": math.pi, "e": math.e}
_ALLOWED_FUNCTIONS: Dict[str, Callable[[float], float]] = {"sqrt": math.sqrt, "abs": abs}


def normalize_expression(value: Any) -> str:
    """Lower-case, strip whitespace and map unicode math symbols to ASCII."""
    if value is None:
        return ""
    normalized = re.sub(r"\s+", "", str(value).strip().lower())
    for symbol, replacement in _SYMBOL_REPLACEMENTS:
        normalized = normalized.replace(symbol, replacement)
    if normalized.startswith("+"):
        normalized = normalized[1:]
    return _IMPLICIT_MULTIPLICATION.sub(r"\1*\2", normalized)


def _evaluate_node(node: ast.AST) -> float:
    if isinstance(node, ast.Expression):
        return _evaluate_node(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return float(node.value)
    if isinstance(node, ast.Name) and node.id in _ALLOWED_NAMES:
        return _ALLOWED_NAMES[node.id]
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_evaluate_node(node.operand))
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        left = _evaluate_node(node.left)
        right = _evaluate_node(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > _MAX_EXPONENT:
            raise ValueError("Exponent out of range")
        return _BINARY_OPERATORS[type(node.op)](left, right)
    if (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id in _ALLOWED_FUNCTIONS
        and len(node.args) == 1
        and not node.keywords
    ):
        return float(_ALLOWED_FUNCTIONS[node.func.id](_evaluate_node(node.args[0])))
    raise ValueError(f"Unsupported expression element: {type(node).__name__}")


def safe_evaluate(expression: str) -> float:
    """Evaluate an arithmetic expression over a whitelisted AST subset."""
    tree = ast.parse(expression.replace("^", "**"), mode="eval")
    result = _evaluate_node(tree)
    if isinstance(result, complex) or not math.isfinite(result):
        raise ValueError("Expression does not evaluate to a finite real number")
    return result


def _read_quantity(value: Any) -> Optional[Tuple[float, str]]:
    # (number, unit); the unit is "" when the whole text evaluated.
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return (float(value), "") if math.isfinite(value) else None
    normalized = _GERMAN_DECIMAL.sub(".", normalize_expression(value))
    if not normalized:
        return None
    try:
        return safe_evaluate(normalized), ""
    except (SyntaxError, ValueError, TypeError, ZeroDivisionError, OverflowError, RecursionError):
        pass
    match = _UNIT_SUFFIXED.match(normalized)
    if match is None:
        return None
    return float(match.group(1)), match.group(2)


def parse_number(value: Any) -> Optional[float]:
    """Best-effort numeric reading of a learner answer, ``None`` if not numeric.

    Accepts numbers, decimal commas (``0,5``), fractions, unicode math
    symbols and simple arithmetic such as ``2*sqrt(2)`` or ``3π/4``. A
    number followed by a unit (``12 cm``, ``2,5 m/s²``) reads as the number.
    """
    quantity = _read_quantity(value)
    return quantity[0] if quantity else None


def _linear_terms(expression: str) -> Optional[Dict[str, float]]:
    terms: Dict[str, float] = {}
    for part in _TERM_SPLIT.split(expression):
        if not part:
            continue
        match = _TERM_PATTERN.match(part)
        if not match:
            return None
        sign, digits, variable, power = match.groups()
        if not digits and not variable:
            return None
        if power and not variable:
            return None
        try:
            coefficient = float(digits) if digits else 1.0
        except ValueError:
            return None
        if sign == "-":
            coefficient = -coefficient
        key = f"{variable}^{power or '1'}" if variable else "const"
        terms[key] = terms.get(key, 0.0) + coefficient
    return terms or None


def algebraically_equivalent(first: Any, second: Any) -> bool:
    """Compare two sums of monomials term by term (``x+1`` equals ``1+x``)."""
    left = _linear_terms(normalize_expression(first))
    right = _linear_terms(normalize_expression(second))
    if left is None or right is None:
        return False
    for key in set(left) | set(right):
        if abs(left.get(key, 0.0) - right.get(key, 0.0)) > _ALGEBRAIC_TOLERANCE:
            return False
    return True


@dataclass(frozen=True)
class Equivalence:
    is_equivalent: bool
    method: str
    is_close: bool = False
    user_value: Optional[float] = None
    expected_value: Optional[float] = None


def _comparable(first: Optional[Tuple[float, str]], second: Optional[Tuple[float, str]]) -> bool:
    # A bare number compares with any unit; two different units never do.
    if first is None or second is None:
        return False
    return not first[1] or not second[1] or first[1] == second[1]


def check_equivalence(user_answer: Any, expected: Any, tolerance: float = 0.01) -> Equivalence:
    """Decide whether ``user_answer`` matches ``expected``.

    Tries normalised string equality, then numeric comparison with an
    inclusive tolerance, then algebraic equivalence when both sides contain
    variables. A numeric miss within ``CLOSE_FACTOR`` times the tolerance is
    flagged as close.
    """
    user_norm = normalize_expression(user_answer)
    expected_norm = normalize_expression(expected)
    if user_norm and user_norm == expected_norm:
        return Equivalence(True, "exact")

    user_quantity = _read_quantity(user_answer)
    expected_quantity = _read_quantity(expected)
    if _comparable(user_quantity, expected_quantity):
        user_value, expected_value = user_quantity[0], expected_quantity[0]
        difference = abs(user_value - expected_value)
        if difference <= tolerance + STEP_TOLERANCE_SLACK:
            return Equivalence(True, "numeric", user_value=user_value, expected_value=expected_value)
        return Equivalence(
            False,
            "numeric",
            is_close=difference <= tolerance * CLOSE_FACTOR,
            user_value=user_value,
            expected_value=expected_value,
        )

    if re.search(r"[a-z]", user_norm) and re.search(r"[a-z]", expected_norm):
        if algebraically_equivalent(user_norm, expected_norm):
            return Equivalence(True, "algebraic")

    return Equivalence(False, "none")


@dataclass(frozen=True)
class Misconception:
    id: str
    name: str
    description: str
    hint: str
    check: Callable[[float, float], bool]

    def describe(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "description": self.description, "hint": self.hint}


def _ratio_matches(factors, threshold: float) -> Callable[[float, float], bool]:
    def _check(user: float, expected: float) -> bool:
        if expected == 0:
            return False
        ratio = user / expected
        return any(abs(ratio - factor) < threshold for factor in factors)

    return _check


def _power_slip(user: float, expected: float) -> bool:
    if expected <= 0:
        return False
    return abs(user - math.sqrt(expected)) < 1e-3 or abs(user - expected * expected) < 1e-3


MISCONCEPTIONS: tuple[Misconception, ...] = (
    Misconception(
        "sign_error",
        "Vorzeichenfehler",
        "Das Vorzeichen wurde verwechselt",
        "Überprüfe die Vorzeichen in deiner Rechnung.",
        lambda user, expected: expected != 0 and abs(user + expected) < 1e-4,
    ),
    Misconception(
        "factor_error",
        "Faktor vergessen",
        "Ein Faktor wurde vergessen oder hinzugefügt",
        "Überprüfe, ob du alle Faktoren berücksichtigt hast.",
        _ratio_matches((2, 0.5, 10, 0.1, math.pi, 1 / math.pi), 1e-3),
    ),
    Misconception(
        "fraction_flip",
        "Bruch umgekehrt",
        "Zähler und Nenner wurden vertauscht",
        "Überprüfe, ob Zähler und Nenner in der richtigen Position sind.",
        lambda user, expected: user != 0 and abs(user * expected - 1) < 1e-4,
    ),
    Misconception(
        "power_error",
        "Potenzfehler",
        "Fehler beim Potenzieren",
        "Überprüfe die Potenz- und Wurzeloperationen.",
        _power_slip,
    ),
    Misconception(
        "decimal_error",
        "Kommafehler",
        "Das Dezimalkomma wurde falsch gesetzt",
        "Überprüfe die Position des Dezimalkommas.",
        _ratio_matches((10, 100, 1000, 0.1, 0.01, 0.001), 1e-4),
    ),
    Misconception(
        "unit_conversion",
        "Einheitenfehler",
        "Einheiten wurden nicht korrekt umgerechnet",
        "Überprüfe, ob du alle Einheiten korrekt umgerechnet hast.",
        _ratio_matches((60, 1 / 60, 3600, 1 / 3600, 1000, 0.001, 100, 0.01), 1e-4),
    ),
)


def detect_misconceptions(user_answer: Any, expected: Any) -> List[Dict[str, str]]:
    """List the typical slips that would explain a wrong numeric answer."""
    user_value = parse_number(user_answer)
    expected_value = parse_number(expected)
    if user_value is None or expected_value is None:
        return []
    return [m.describe() for m in MISCONCEPTIONS if m.check(user_value, expected_value)]


def unique_misconceptions(items: List[Mapping[str, str]]) -> List[Mapping[str, str]]:
    seen: Dict[str, Mapping[str, str]] = {}
    for item in items:
        seen.setdefault(item["id"], item)
    return list(seen.values())


__all__ = [
    "CLOSE_FACTOR",
    "Equivalence",
    "MISCONCEPTIONS",
    "Misconception",
    "algebraically_equivalent",
    "check_equivalence",
    "detect_misconceptions",
    "normalize_expression",
    "parse_number",
    "safe_evaluate",
    "unique_misconceptions",
]
