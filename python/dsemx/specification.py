"""Compile arrow notation into an immutable arrow list and parameter table.

Each non-comment line is a record::

    from -> to, lag, parameter [, start]
    from <-> to, lag, parameter [, start]

``parameter`` is a symbol (free, shared by name), a numeric literal (fixed at
that value) or ``NA`` (fixed at the record's start value). Compilation runs in
two passes: the first tokenizes every record and builds the symbol table in
first-appearance order, the second resolves each arrow against that table.
"""

from __future__ import annotations

import logging
import re
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .equations import convert_equations
from .errors import (
    DuplicateArrowError,
    GrammarError,
    InvalidLagError,
    ModelSpecificationError,
    SelfLoopError,
    StartValueConflictWarning,
    UnknownVariableError,
)
from .options import DsemOptions

__all__ = [
    "ArrowKind",
    "ArrowSpec",
    "ParameterTable",
    "StartValueConflict",
    "CompiledSpecification",
    "normalize_variables",
    "compile_specification",
    "compile_equations",
]

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
_LAG = re.compile(r"^[+-]?\d+$")


class ArrowKind(Enum):
    Path = "->"
    Covariance = "<->"


@dataclass(frozen=True)
class ArrowSpec:
    """One compiled arrow.

    ``parameter_index`` points into the :class:`ParameterTable` for free
    arrows and is ``None`` for fixed ones, whose value is ``fixed_value``.
    """

    kind: ArrowKind
    source: str
    target: str
    lag: int
    parameter: Optional[str]
    parameter_index: Optional[int]
    fixed_value: Optional[float]
    start: Optional[float]
    line: int
    text: str

    @property
    def is_fixed(self) -> bool:
        return self.parameter_index is None

    @property
    def path(self) -> str:
        return f"{self.source} {self.kind.value} {self.target}"

    def resolve(self, values: np.ndarray) -> float:
        """Scalar value of this arrow under the parameter vector ``values``."""
        if self.parameter_index is None:
            return float(self.fixed_value)
        return float(values[self.parameter_index])


@dataclass(frozen=True)
class StartValueConflict:
    parameter: str
    kept: float
    ignored: float
    line: int


@dataclass(frozen=True)
class ParameterTable:
    """Ordered free parameters; position is the index into the parameter vector."""

    names: Tuple[str, ...]
    starts: Tuple[float, ...]

    def __len__(self) -> int:
        return len(self.names)

    def __iter__(self):
        return iter(self.names)

    def __contains__(self, name: object) -> bool:
        return name in self.names

    def index(self, name: str) -> int:
        try:
            return self.names.index(name)
        except ValueError:
            raise KeyError(f"Parameter '{name}' is not a free parameter") from None

    def start_vector(self) -> np.ndarray:
        return np.asarray(self.starts, dtype=float)

    def vector_from_mapping(
        self,
        mapping: Mapping[str, float],
        default: Optional[Sequence[float]] = None,
    ) -> np.ndarray:
        """Build a parameter vector from ``{name: value}``, e.g. a previous fit.

        Names missing from ``mapping`` take ``default`` (the start values when
        omitted); names in ``mapping`` that are not free parameters are ignored.
        """
        vector = self.start_vector() if default is None else self.coerce(default)
        for i, name in enumerate(self.names):
            if name in mapping:
                vector[i] = float(mapping[name])
        return vector

    def coerce(self, values: Any) -> np.ndarray:
        """Return ``values`` as a float vector, checking its length."""
        if isinstance(values, Mapping):
            return self.vector_from_mapping(values)
        vector = np.array(values, dtype=float).reshape(-1)
        if vector.shape[0] != len(self.names):
            raise ValueError(
                f"Parameter vector has length {vector.shape[0]}, expected {len(self.names)}"
            )
        return vector

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"parameter": list(self.names), "start": list(self.starts)})


@dataclass(frozen=True)
class CompiledSpecification:
    variables: Tuple[str, ...]
    arrows: Tuple[ArrowSpec, ...]
    parameters: ParameterTable
    conflicts: Tuple[StartValueConflict, ...] = ()

    @property
    def max_lag(self) -> int:
        return max((arrow.lag for arrow in self.arrows), default=0)

    def variable_index(self, name: str) -> int:
        try:
            return self.variables.index(name)
        except ValueError:
            raise UnknownVariableError(f"Unknown variable '{name}'", token=name) from None

    def arrow_frame(self) -> pd.DataFrame:
        """One row per arrow, in compilation order."""
        rows = []
        for arrow in self.arrows:
            rows.append(
                {
                    "path": arrow.path,
                    "lag": arrow.lag,
                    "kind": arrow.kind.name.lower(),
                    "from": arrow.source,
                    "to": arrow.target,
                    "parameter": arrow.parameter if arrow.parameter is not None else "",
                    "fixed": arrow.is_fixed,
                    "start": arrow.start if arrow.start is not None else np.nan,
                    "index": arrow.parameter_index if arrow.parameter_index is not None else -1,
                }
            )
        columns = ["path", "lag", "kind", "from", "to", "parameter", "fixed", "start", "index"]
        return pd.DataFrame(rows, columns=columns)


@dataclass
class _Record:
    kind: ArrowKind
    source: str
    target: str
    lag: int
    symbol: Optional[str]
    fixed_value: Optional[float]
    start: Optional[float]
    line: int
    text: str


def normalize_variables(variables: Union[Iterable[str], pd.DataFrame, pd.Index]) -> Tuple[str, ...]:
    """Return the variable universe as an ordered tuple of unique names."""
    if isinstance(variables, pd.DataFrame):
        variables = variables.columns
    names = tuple(str(name).strip() for name in variables)
    if not names:
        raise ModelSpecificationError("at least one variable is required")
    if any(not name for name in names):
        raise ModelSpecificationError("variable names cannot be empty")
    seen = set()
    duplicates = []
    for name in names:
        if name in seen:
            duplicates.append(name)
        seen.add(name)
    if duplicates:
        raise ModelSpecificationError(
            f"Variable names must be unique; duplicated: {', '.join(sorted(set(duplicates)))}"
        )
    return names


def compile_specification(
    sem: str,
    variables: Union[Iterable[str], pd.DataFrame, pd.Index],
    *,
    covs: Optional[Sequence[str]] = None,
    options: Optional[DsemOptions] = None,
) -> CompiledSpecification:
    """Compile arrow-notation text against the ordered variable universe.

    Parameters
    ----------
    sem : str
        Arrow-notation text; ``#`` starts a comment, blank lines are skipped.
    variables : iterable of str, DataFrame or Index
        Ordered variable universe; order defines matrix indices.
    covs : sequence of str, optional
        Comma-separated variable groups; each member gets a free lag-0
        variance ``V[x]`` and each pair a free covariance ``C[x,y]`` unless
        already declared.
    options : DsemOptions, optional
        Start-value defaults.
    """
    spec = _compile_arrow_text(sem, variables, covs, options)
    _warn_conflicts(spec.conflicts, stacklevel=2)
    return spec


def compile_equations(
    equations: str,
    variables: Union[Iterable[str], pd.DataFrame, pd.Index],
    *,
    covs: Optional[Sequence[str]] = None,
    options: Optional[DsemOptions] = None,
) -> CompiledSpecification:
    """Compile equation notation by way of its arrow-notation translation.

    Errors found while compiling the translated arrows point at the equation
    line they came from.
    """
    spec = _compile_equation_text(equations, variables, covs, options)
    _warn_conflicts(spec.conflicts, stacklevel=2)
    return spec


def _compile_arrow_text(
    sem: str,
    variables: Union[Iterable[str], pd.DataFrame, pd.Index],
    covs: Optional[Sequence[str]],
    options: Optional[DsemOptions],
) -> CompiledSpecification:
    sources = []
    for lineno, raw in enumerate(sem.splitlines(), start=1):
        body = raw.split("#", 1)[0].strip()
        if body:
            sources.append((body, lineno, raw))
    return _compile_records(sources, variables, covs, options)


def _compile_equation_text(
    equations: str,
    variables: Union[Iterable[str], pd.DataFrame, pd.Index],
    covs: Optional[Sequence[str]],
    options: Optional[DsemOptions],
) -> CompiledSpecification:
    lines = equations.splitlines()
    sources = [
        (triple.to_arrow(), triple.line, lines[triple.line - 1])
        for triple in convert_equations(equations)
    ]
    return _compile_records(sources, variables, covs, options)


def _compile_records(
    sources: Sequence[Tuple[str, int, str]],
    variables: Union[Iterable[str], pd.DataFrame, pd.Index],
    covs: Optional[Sequence[str]],
    options: Optional[DsemOptions],
) -> CompiledSpecification:
    """Run both passes over ``(record, line, source text)`` triples."""
    options = options or DsemOptions()
    universe = normalize_variables(variables)
    known = set(universe)

    records = [_parse_record(body, lineno, raw, known) for body, lineno, raw in sources]
    _check_duplicates(records)
    records.extend(_default_covariances(records, covs or (), universe))

    if not records:
        raise ModelSpecificationError("specification contains no arrows")

    # Pass 1: symbol table in first-appearance order.
    symbols: Dict[str, int] = {}
    starts: List[Optional[float]] = []
    default_starts: List[float] = []
    conflicts: List[StartValueConflict] = []
    for record in records:
        if record.symbol is None:
            continue
        if record.symbol not in symbols:
            symbols[record.symbol] = len(starts)
            starts.append(record.start)
            default_starts.append(
                options.path_start if record.kind is ArrowKind.Path else options.variance_start
            )
            continue
        slot = symbols[record.symbol]
        if record.start is None:
            continue
        if starts[slot] is None:
            starts[slot] = record.start
        elif starts[slot] != record.start:
            conflicts.append(
                StartValueConflict(
                    parameter=record.symbol, kept=starts[slot], ignored=record.start, line=record.line
                )
            )

    table = ParameterTable(
        names=tuple(symbols),
        starts=tuple(
            start if start is not None else default
            for start, default in zip(starts, default_starts)
        ),
    )

    # Pass 2: resolve every arrow against the table.
    arrows = tuple(
        ArrowSpec(
            kind=record.kind,
            source=record.source,
            target=record.target,
            lag=record.lag,
            parameter=record.symbol,
            parameter_index=symbols[record.symbol] if record.symbol is not None else None,
            fixed_value=record.fixed_value,
            start=table.starts[symbols[record.symbol]] if record.symbol is not None else None,
            line=record.line,
            text=record.text,
        )
        for record in records
    )
    logger.debug(
        "compiled %d arrows into %d free parameters over %d variables",
        len(arrows),
        len(table),
        len(universe),
    )
    return CompiledSpecification(
        variables=universe,
        arrows=arrows,
        parameters=table,
        conflicts=tuple(conflicts),
    )


def _warn_conflicts(conflicts: Sequence[StartValueConflict], stacklevel: int = 1) -> None:
    """Report start-value conflicts; ``stacklevel`` is relative to the caller."""
    for conflict in conflicts:
        message = (
            f"line {conflict.line}: parameter '{conflict.parameter}' already has start value "
            f"{conflict.kept!r}; ignoring {conflict.ignored!r}"
        )
        logger.warning(message)
        warnings.warn(message, StartValueConflictWarning, stacklevel=stacklevel + 1)


def _parse_record(body: str, lineno: int, raw: str, known: set) -> _Record:
    fields = [field.strip() for field in body.split(",")]
    if len(fields) not in (3, 4):
        raise GrammarError(
            f"expected 'from -> to, lag, parameter[, start]' but found {len(fields)} fields",
            line=lineno,
            text=raw,
        )
    arrow_field, lag_token, parameter_token = fields[:3]
    start_token = fields[3] if len(fields) == 4 else None

    if "<->" in arrow_field:
        kind = ArrowKind.Covariance
        left, right = arrow_field.split("<->", 1)
    elif "->" in arrow_field:
        kind = ArrowKind.Path
        left, right = arrow_field.split("->", 1)
    else:
        raise GrammarError(
            "missing arrow operator ('->' or '<->')", line=lineno, text=raw, token=arrow_field
        )
    if "->" in left or "->" in right:
        raise GrammarError(
            "only one arrow operator is allowed per record", line=lineno, text=raw, token=arrow_field
        )
    source, target = left.strip(), right.strip()
    for name in (source, target):
        if not name:
            raise GrammarError("arrow endpoint is empty", line=lineno, text=raw)
        if name not in known:
            raise UnknownVariableError(
                f"unknown variable '{name}'", line=lineno, text=raw, token=name
            )

    if not _LAG.match(lag_token) or int(lag_token) < 0:
        raise InvalidLagError(
            f"lag must be a non-negative integer, got '{lag_token}'",
            line=lineno,
            text=raw,
            token=lag_token,
        )
    lag = int(lag_token)

    if kind is ArrowKind.Path and source == target and lag == 0:
        raise SelfLoopError(
            f"contemporaneous self-loop on '{source}' is not allowed",
            line=lineno,
            text=raw,
            token=source,
        )

    start: Optional[float] = None
    if start_token is not None and start_token not in ("", "NA"):
        if not _NUMBER.match(start_token):
            raise GrammarError(
                f"start value '{start_token}' is not a number",
                line=lineno,
                text=raw,
                token=start_token,
            )
        start = float(start_token)

    if not parameter_token or " " in parameter_token:
        raise GrammarError(
            f"invalid parameter name '{parameter_token}'",
            line=lineno,
            text=raw,
            token=parameter_token,
        )

    symbol: Optional[str] = None
    fixed_value: Optional[float] = None
    if _NUMBER.match(parameter_token):
        fixed_value = float(parameter_token)
        if start is not None:
            logger.debug("line %d: start value ignored for fixed arrow", lineno)
        start = None
    elif parameter_token == "NA":
        if start is None:
            raise GrammarError(
                "parameter 'NA' fixes the arrow at its start value, but no start value was given",
                line=lineno,
                text=raw,
                token=parameter_token,
            )
        fixed_value, start = start, None
    else:
        symbol = parameter_token

    return _Record(
        kind=kind,
        source=source,
        target=target,
        lag=lag,
        symbol=symbol,
        fixed_value=fixed_value,
        start=start,
        line=lineno,
        text=raw,
    )


def _arrow_key(kind: ArrowKind, source: str, target: str, lag: int) -> Tuple[Any, ...]:
    if kind is ArrowKind.Covariance:
        return (kind, frozenset((source, target)), lag)
    return (kind, source, target, lag)


def _check_duplicates(records: Sequence[_Record]) -> None:
    seen: Dict[Tuple[Any, ...], int] = {}
    for record in records:
        key = _arrow_key(record.kind, record.source, record.target, record.lag)
        if key in seen:
            raise DuplicateArrowError(
                f"arrow already declared on line {seen[key]}",
                line=record.line,
                text=record.text,
            )
        seen[key] = record.line


def _default_covariances(
    records: Sequence[_Record],
    covs: Sequence[str],
    universe: Tuple[str, ...],
) -> List[_Record]:
    declared = {_arrow_key(r.kind, r.source, r.target, r.lag) for r in records}
    symbols = {r.symbol for r in records if r.symbol is not None}
    known = set(universe)
    added: List[_Record] = []
    for group in covs:
        members = [name.strip() for name in group.split(",") if name.strip()]
        for name in members:
            if name not in known:
                raise UnknownVariableError(
                    f"unknown variable '{name}' in covariance group '{group}'", token=name
                )
        for i, first in enumerate(members):
            for second in members[i:]:
                key = _arrow_key(ArrowKind.Covariance, first, second, 0)
                if key in declared:
                    continue
                declared.add(key)
                symbol = f"V[{first}]" if first == second else f"C[{first},{second}]"
                if symbol in symbols:
                    raise ModelSpecificationError(
                        f"Default covariance name '{symbol}' is already used as a parameter"
                    )
                added.append(
                    _Record(
                        kind=ArrowKind.Covariance,
                        source=first,
                        target=second,
                        lag=0,
                        symbol=symbol,
                        fixed_value=None,
                        start=None,
                        line=0,
                        text=f"{first} <-> {second}, 0, {symbol}",
                    )
                )
    if added:
        logger.debug("added %d default variance/covariance arrows", len(added))
    return added
