"""Arithmetic checking of generated responses."""

import ast
import re
import math
import logging
import operator
from typing import Optional

from schemas.validation import FindingKind, ValidationFinding, ValidationReport
from .exceptions import RecoverableValidationFailure

logger = logging.getLogger(__name__)

_NUMBER = r"[-−]?\d+(?:,\d{3})*(?:\.\d+)?"

EQUATION_PATTERN = re.compile(
    r"(?P<expr>[(\-−]*\d[\d \t.+\-−*/×÷^()]*?)[ \t]*=[ \t]*(?P<value>" + _NUMBER + r")(?![\d.]*\d)"
)
NARRATIVE_PATTERN = re.compile(
    r"\bexpression\s+['\"‘“](?P<expr>[^'\"’”]+)['\"’”]"
    r".{0,80}?\b(?:gives|evaluates to|equals|results in|yields)\s*"
    r"['\"‘“]?(?P<value>" + _NUMBER + r")",
    re.IGNORECASE,
)
ARITHMETIC_ONLY = re.compile(r"[\d\s.+\-−*/×÷^()]+")
LIST_MARKER = re.compile(r"\d+[.)][ \t]+")

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
}
_UNARY_OPS = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

MAX_EXPONENT = 100
MAX_MAGNITUDE = 1e100


def _normalize(expr: str) -> str:
    return (
        expr.replace("×", "*")
        .replace("÷", "/")
        .replace("−", "-")
        .replace("^", "**")
        .strip()
    )


def format_number(value: float) -> str:
    """Render a number the way a person would write it."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.12g}"


class MathValidator:
    """Re-evaluates simple arithmetic statements and flags wrong results."""

    def __init__(self, epsilon: float = 1e-9):
        self.epsilon = epsilon

    def extract_candidates(self, text: str) -> list[tuple[int, int, str, str, bool]]:
        """
        Find arithmetic statements.

        Args:
            text: Generated response

        Returns:
            (start, end, expression, stated value, narrative) tuples in
            textual order, overlapping candidates reduced to the earliest
        """
        found = []
        for pattern in (NARRATIVE_PATTERN, EQUATION_PATTERN):
            for match in pattern.finditer(text):
                start = match.start()
                expr = match.group("expr").strip()
                if pattern is EQUATION_PATTERN:
                    # Numbered step such as "1. 3 * 4 = 12" or "2) 3 * 4 = 12"
                    marker = LIST_MARKER.match(expr)
                    line_start = text.rfind("\n", 0, start) + 1
                    if marker and not text[line_start:start].strip():
                        expr = expr[marker.end():]
                        start = text.index(expr, start)
                    # "(2 + 2 = 4)" captures an unbalanced leading parenthesis
                    while expr.startswith("(") and expr.count("(") > expr.count(")"):
                        expr = expr[1:].lstrip()
                        start = text.index(expr, start)
                found.append((
                    start,
                    match.end(),
                    expr,
                    match.group("value"),
                    pattern is NARRATIVE_PATTERN,
                ))

        found.sort(key=lambda c: (c[0], -c[1]))
        candidates = []
        last_end = -1
        for candidate in found:
            if candidate[0] < last_end:
                continue
            candidates.append(candidate)
            last_end = candidate[1]
        return candidates

    def evaluate(self, expr: str) -> float:
        """
        Evaluate an arithmetic expression.

        Args:
            expr: Expression using + - * / ^ ** × ÷ and parentheses

        Returns:
            Numeric result

        Raises:
            RecoverableValidationFailure: If the expression is not plain arithmetic
                or cannot be computed
        """
        try:
            tree = ast.parse(_normalize(expr), mode="eval")
        except SyntaxError as e:
            raise RecoverableValidationFailure(f"cannot parse {expr!r}") from e

        if not any(isinstance(node, ast.BinOp) for node in ast.walk(tree)):
            raise RecoverableValidationFailure(f"{expr!r} has no operator")

        return self._eval_node(tree.body)

    def _eval_node(self, node: ast.AST) -> float:
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) \
                and not isinstance(node.value, bool):
            return node.value

        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
            return _UNARY_OPS[type(node.op)](self._eval_node(node.operand))

        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
            left = self._eval_node(node.left)
            right = self._eval_node(node.right)

            if isinstance(node.op, ast.Div) and right == 0:
                raise RecoverableValidationFailure("division by zero")
            if isinstance(node.op, ast.Pow) and (abs(right) > MAX_EXPONENT or abs(left) > MAX_MAGNITUDE):
                raise RecoverableValidationFailure("exponent too large")

            try:
                result = _BINARY_OPS[type(node.op)](left, right)
            except (OverflowError, ZeroDivisionError, ValueError) as e:
                raise RecoverableValidationFailure(str(e)) from e

            if isinstance(result, complex) or abs(result) > MAX_MAGNITUDE or math.isnan(result):
                raise RecoverableValidationFailure("result out of range")
            return result

        raise RecoverableValidationFailure(f"unsupported syntax: {type(node).__name__}")

    def _check_candidate(
        self,
        text: str,
        start: int,
        end: int,
        expr: str,
        stated: str,
        narrative: bool = False
    ) -> ValidationFinding:
        if not ARITHMETIC_ONLY.fullmatch(expr):
            raise RecoverableValidationFailure(f"{expr!r} is not purely numeric")

        # Part of a longer algebraic expression such as "x + 2 * 3 = 7"
        if not narrative and start > 0:
            before = text[:start].rstrip()
            if (text[start - 1].isalnum() or text[start - 1] in "_,."
                    or (before and before[-1] in "+-−*/×÷^=")):
                raise RecoverableValidationFailure(f"{expr!r} is part of a larger expression")

        evaluated = self.evaluate(expr)
        stated_value = float(stated.replace(",", "").replace("−", "-"))

        if self._matches(evaluated, stated_value, stated):
            return ValidationFinding(
                kind=FindingKind.MATH_EXPRESSION,
                valid=True,
                original_span=text[start:end],
                confidence=1.0,
                start=start,
                end=end,
                evidence=format_number(evaluated),
            )

        return ValidationFinding(
            kind=FindingKind.MATH_EXPRESSION,
            valid=False,
            original_span=text[start:end],
            corrected_span=f"{expr} = {format_number(evaluated)}",
            confidence=1.0,
            start=start,
            end=end,
            evidence=f"stated {stated}, evaluated {format_number(evaluated)}",
        )

    def _matches(self, evaluated: float, stated_value: float, stated: str) -> bool:
        """Equal within epsilon, or equal after rounding to the stated precision."""
        if abs(evaluated - stated_value) <= self.epsilon:
            return True
        if "." in stated:
            decimals = len(stated.split(".")[-1])
            return abs(evaluated - stated_value) <= 0.5 * 10 ** -decimals + self.epsilon
        return False

    def validate(self, text: str) -> ValidationReport:
        """
        Check every arithmetic statement in a response.

        Args:
            text: Generated response

        Returns:
            ValidationReport; wrong results are listed in a correction block
        """
        findings = []
        for start, end, expr, stated, narrative in self.extract_candidates(text):
            try:
                findings.append(self._check_candidate(text, start, end, expr, stated, narrative))
            except RecoverableValidationFailure as e:
                logger.debug(f"Skipping math candidate {text[start:end]!r}: {e}")

        correction_block = self._correction_block(findings)
        corrected_text = text
        if correction_block:
            corrected_text = f"{text.rstrip()}\n\n{correction_block}"
            logger.info(f"Math check found {len(correction_block.splitlines()) - 1} incorrect result(s)")

        return ValidationReport(
            kind=FindingKind.MATH_EXPRESSION,
            findings=findings,
            corrected_text=corrected_text,
            correction_block=correction_block,
        )

    @staticmethod
    def _correction_block(findings: list[ValidationFinding]) -> Optional[str]:
        wrong = [f for f in findings if not f.valid]
        if not wrong:
            return None

        lines = ["Correction:"]
        for finding in wrong:
            lines.append(f"- {finding.corrected_span} ({finding.evidence})")
        return "\n".join(lines)
