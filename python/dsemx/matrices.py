"""Assemble per-lag path and covariance matrices from a parameter vector."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .options import DsemOptions
from .specification import ArrowKind, CompiledSpecification

__all__ = ["PathMatrixSet", "assemble"]


def _frozen(matrix: np.ndarray) -> np.ndarray:
    matrix = np.array(matrix, dtype=float)
    matrix.setflags(write=False)
    return matrix


@dataclass(frozen=True)
class PathMatrixSet:
    """Square ``V x V`` matrices keyed by lag.

    ``paths[lag][i, j]`` is the coefficient of variable ``j`` at that lag in
    the equation for variable ``i``; ``covariances[lag]`` is symmetric. Every
    stored matrix is read-only, and lags without arrows read as zeros.
    """

    variables: Tuple[str, ...]
    paths: Mapping[int, np.ndarray]
    covariances: Mapping[int, np.ndarray]

    @classmethod
    def from_arrays(
        cls,
        variables: Sequence[str],
        paths: Mapping[int, Any],
        covariances: Optional[Mapping[int, Any]] = None,
    ) -> "PathMatrixSet":
        """Build a set from plain arrays, validating shapes and lags."""
        names = tuple(variables)
        size = len(names)
        checked: Dict[str, Dict[int, np.ndarray]] = {"paths": {}, "covariances": {}}
        for label, source in (("paths", paths), ("covariances", covariances or {})):
            for lag, matrix in source.items():
                lag = int(lag)
                if lag < 0:
                    raise ValueError(f"{label} lag must be non-negative, got {lag}")
                arr = np.asarray(matrix, dtype=float)
                if arr.shape != (size, size):
                    raise ValueError(
                        f"{label}[{lag}] has shape {arr.shape}, expected ({size}, {size})"
                    )
                checked[label][lag] = _frozen(arr)
        return cls(names, checked["paths"], checked["covariances"])

    @property
    def size(self) -> int:
        return len(self.variables)

    @property
    def max_lag(self) -> int:
        return max(self.paths, default=0)

    @property
    def lags(self) -> Tuple[int, ...]:
        return tuple(sorted(self.paths))

    def path(self, lag: int) -> np.ndarray:
        if lag in self.paths:
            return self.paths[lag]
        return _frozen(np.zeros((self.size, self.size)))

    def covariance(self, lag: int = 0) -> np.ndarray:
        if lag in self.covariances:
            return self.covariances[lag]
        return _frozen(np.zeros((self.size, self.size)))

    def to_frame(self, lag: int = 0, kind: str = "path") -> pd.DataFrame:
        """Labelled copy of one matrix (rows are responses, columns predictors)."""
        if kind == "path":
            matrix = self.path(lag)
        elif kind == "covariance":
            matrix = self.covariance(lag)
        else:
            raise ValueError(f"Unknown matrix kind: {kind}")
        return pd.DataFrame(np.array(matrix), index=list(self.variables), columns=list(self.variables))


def assemble(
    spec: CompiledSpecification,
    values: Any = None,
    options: Optional[DsemOptions] = None,
) -> PathMatrixSet:
    """Scatter resolved arrow values into a fresh :class:`PathMatrixSet`.

    Parameters
    ----------
    spec : CompiledSpecification
        Output of :func:`compile_specification`.
    values : sequence of float or mapping, optional
        Free-parameter values in table order (or ``{name: value}``). Defaults
        to the table's start values.
    options : DsemOptions, optional
        Supplies the variance floor for lag-0 diagonal entries no arrow sets.

    Both lag-0 matrices are always present; other lags appear only when an
    arrow declares them.
    """
    options = options or DsemOptions()
    table = spec.parameters
    vector = table.start_vector() if values is None else table.coerce(values)
    size = len(spec.variables)
    index = {name: i for i, name in enumerate(spec.variables)}

    paths: Dict[int, np.ndarray] = {0: np.zeros((size, size))}
    covariances: Dict[int, np.ndarray] = {0: np.zeros((size, size))}
    explicit_variances = set()

    for arrow in spec.arrows:
        value = arrow.resolve(vector)
        row, col = index[arrow.target], index[arrow.source]
        if arrow.kind is ArrowKind.Path:
            matrix = paths.setdefault(arrow.lag, np.zeros((size, size)))
            matrix[row, col] = value
        else:
            matrix = covariances.setdefault(arrow.lag, np.zeros((size, size)))
            matrix[row, col] = value
            matrix[col, row] = value
            if arrow.lag == 0 and row == col:
                explicit_variances.add(row)

    for i in range(size):
        if i not in explicit_variances:
            covariances[0][i, i] = options.variance_floor

    return PathMatrixSet(
        variables=spec.variables,
        paths={lag: _frozen(m) for lag, m in sorted(paths.items())},
        covariances={lag: _frozen(m) for lag, m in sorted(covariances.items())},
    )
