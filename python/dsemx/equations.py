"""Translate equation notation into arrow-notation records.

Equation notation writes one structural equation per line::

    y = beta*x + rho*lag[y, 1] + lag[x, 2]

Terms are combined with ``+`` only. A term is ``coefficient*predictor`` or a
bare ``predictor``; the predictor is a variable name or ``lag[name, k]``. Bare
predictors receive generated parameter names; numeric coefficients are kept as
literals and become fixed arrows downstream.

Names in equations are identifiers: letters (any script), digits, ``_`` and
``.``, not starting with a digit. Variables whose names contain operator
characters such as ``-``, ``+`` or ``*`` can only be used in arrow notation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .errors import GrammarError, InvalidLagError

__all__ = ["ArrowTriple", "convert_equations", "equations_to_arrows"]

_IDENTIFIER = re.compile(r"^(?:[^\W\d]|\.)[\w.]*$")
_NUMBER = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
_LAG_TERM = re.compile(r"^lag\s*\[\s*(?P<name>[^,\]]+?)\s*,\s*(?P<lag>[^\]]+?)\s*\]$")


@dataclass(frozen=True)
class ArrowTriple:
    """One directed edge produced from an equation term."""

    predictor: str
    response: str
    lag: int
    coefficient: str
    line: int = 0

    def to_arrow(self) -> str:
        return f"{self.predictor} -> {self.response}, {self.lag}, {self.coefficient}"


@dataclass
class _Term:
    predictor: str
    lag: int
    coefficient: Optional[str]
    line: int


def convert_equations(text: str) -> List[ArrowTriple]:
    """Parse equation text into ordered :class:`ArrowTriple` records.

    Equations for the same response on separate lines are concatenated in
    source order. Generated names never collide with coefficient symbols that
    appear anywhere in ``text``.
    """
    parsed: List[Tuple[str, List[_Term]]] = []
    explicit: Set[str] = set()
    for lineno, raw in enumerate(text.splitlines(), start=1):
        body = raw.split("#", 1)[0].strip()
        if not body:
            continue
        response, terms = _parse_equation(body, lineno, raw)
        for term in terms:
            if term.coefficient is not None and not _NUMBER.match(term.coefficient):
                explicit.add(term.coefficient)
        parsed.append((response, terms))

    if not parsed:
        raise GrammarError("no equations found")

    counts: Dict[str, int] = {}
    triples: List[ArrowTriple] = []
    for response, terms in parsed:
        for term in terms:
            coefficient = term.coefficient
            if coefficient is None:
                coefficient = _next_parameter_id(response, term.predictor, term.lag, counts, explicit)
            triples.append(
                ArrowTriple(
                    predictor=term.predictor,
                    response=response,
                    lag=term.lag,
                    coefficient=coefficient,
                    line=term.line,
                )
            )
    return triples


def equations_to_arrows(text: str) -> str:
    """Render equation text as arrow-notation text, one arrow per line."""
    return "\n".join(triple.to_arrow() for triple in convert_equations(text))


def _parse_equation(body: str, lineno: int, raw: str) -> Tuple[str, List[_Term]]:
    if body.count("=") != 1:
        raise GrammarError("expected exactly one '=' per equation", line=lineno, text=raw)
    lhs, rhs = (part.strip() for part in body.split("=", 1))
    if not _IDENTIFIER.match(lhs):
        raise GrammarError(f"invalid response variable '{lhs}'", line=lineno, text=raw, token=lhs)
    if not rhs:
        raise GrammarError(f"equation for {lhs} is empty", line=lineno, text=raw)

    terms = []
    for chunk in _split_terms(rhs, lineno, raw):
        terms.append(_parse_term(chunk, lineno, raw))
    return lhs, terms


def _parse_term(chunk: str, lineno: int, raw: str) -> _Term:
    if chunk.startswith("-"):
        raise GrammarError(
            "unary minus is not allowed; signs are estimated, not written",
            line=lineno,
            text=raw,
            token=chunk,
        )
    pieces = [piece.strip() for piece in _split_top_level(chunk, "*")]
    if len(pieces) == 1:
        coefficient, target = None, pieces[0]
    elif len(pieces) == 2:
        coefficient, target = pieces
    else:
        raise GrammarError(f"cannot parse term '{chunk}'", line=lineno, text=raw, token=chunk)

    if coefficient is not None:
        if coefficient.startswith("-"):
            raise GrammarError(
                "negative coefficients are not allowed; signs are estimated, not written",
                line=lineno,
                text=raw,
                token=coefficient,
            )
        if not (_NUMBER.match(coefficient) or _IDENTIFIER.match(coefficient)):
            raise GrammarError(
                f"invalid coefficient '{coefficient}'", line=lineno, text=raw, token=coefficient
            )

    predictor, lag = _parse_predictor(target, lineno, raw)
    return _Term(predictor=predictor, lag=lag, coefficient=coefficient, line=lineno)


def _parse_predictor(target: str, lineno: int, raw: str) -> Tuple[str, int]:
    match = _LAG_TERM.match(target)
    if match:
        name, lag_token = match.group("name"), match.group("lag")
        if not _IDENTIFIER.match(name):
            raise GrammarError(f"invalid variable name '{name}'", line=lineno, text=raw, token=name)
        if not re.match(r"^\d+$", lag_token):
            raise InvalidLagError(
                f"lag must be a non-negative integer, got '{lag_token}'",
                line=lineno,
                text=raw,
                token=lag_token,
            )
        return name, int(lag_token)
    if target.startswith("lag"):
        if "[" in target or "(" in target:
            raise GrammarError(
                f"malformed lag term '{target}', expected lag[name, k]",
                line=lineno,
                text=raw,
                token=target,
            )
    if not _IDENTIFIER.match(target):
        raise GrammarError(f"invalid predictor '{target}'", line=lineno, text=raw, token=target)
    return target, 0


def _split_terms(rhs: str, lineno: int, raw: str) -> List[str]:
    terms = []
    for term in _split_top_level(rhs, "+", reject="-", lineno=lineno, raw=raw):
        term = term.strip()
        if not term:
            raise GrammarError("empty term between '+' operators", line=lineno, text=raw)
        terms.append(term)
    return terms


def _split_top_level(
    text: str,
    separator: str,
    *,
    reject: Optional[str] = None,
    lineno: int = 0,
    raw: str = "",
) -> List[str]:
    parts = []
    current: List[str] = []
    depth = 0
    for i, char in enumerate(text):
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1

        if char == separator and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        if reject is not None and char == reject and depth == 0 and "".join(current).strip():
            # Exponent signs inside numeric literals are part of the literal.
            if not (i > 0 and text[i - 1] in "eE" and _is_in_number(current)):
                raise GrammarError(
                    "subtraction is not supported; only '+' combines terms",
                    line=lineno,
                    text=raw,
                    token=text[i:].strip(),
                )
        current.append(char)
    if depth != 0:
        raise GrammarError("unbalanced brackets", line=lineno or None, text=raw or None)
    parts.append("".join(current))
    return parts


def _is_in_number(current: Sequence[str]) -> bool:
    token = "".join(current).strip().split("*")[-1].strip()
    return bool(re.match(r"^(?:\d+(?:\.\d*)?|\.\d+)[eE]$", token))


def _next_parameter_id(
    response: str,
    predictor: str,
    lag: int,
    counts: Dict[str, int],
    reserved: Set[str],
) -> str:
    base = f"beta_{response}_on_{predictor}"
    if lag:
        base = f"{base}_lag{lag}"
    while True:
        count = counts.get(base, 0)
        counts[base] = count + 1
        candidate = base if count == 0 else f"{base}_{count + 1}"
        if candidate not in reserved:
            return candidate
