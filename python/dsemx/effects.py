"""Total, cumulative and long-run effects implied by a :class:`PathMatrixSet`.

With ``C = (I - A_0)^{-1}`` and ``B_k = C A_k`` the structural system has the
reduced form ``y_t = sum_k B_k y_{t-k} + C e_t``. The total effect of a unit
pulse on the input of variable ``j`` at ``t - d`` on variable ``i`` at ``t`` is
``(Psi_d C)[i, j]``, where ``Psi_d`` is the top-left block of the ``d``-th power
of the companion matrix of ``B_1 .. B_L``.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import connected_components

from .errors import DivergentSeriesError, NonIdentifiableStructureError
from .matrices import PathMatrixSet
from .options import DsemOptions

__all__ = [
    "reduced_form",
    "companion_matrix",
    "spectral_radius",
    "is_stable",
    "total_effect_matrices",
    "total_effects",
    "cumulative_effect_matrix",
    "cumulative_effects",
    "long_run_effects",
]

logger = logging.getLogger(__name__)

_EFFECT_COLUMNS = ["from", "to", "lag", "total_effect", "direct_effect"]


def _is_singular(block: np.ndarray, tolerance: float) -> bool:
    singular_values = np.linalg.svd(block, compute_uv=False)
    if singular_values[0] == 0:
        return True
    return singular_values[-1] <= tolerance * singular_values[0]


def _implicated_variables(a0: np.ndarray, variables, tolerance: float) -> List[str]:
    """Strongly connected lag-0 blocks whose own ``I - A_SS`` is singular."""
    n_components, labels = connected_components(
        csr_matrix(a0 != 0), directed=True, connection="strong"
    )
    cyclic = []
    implicated = []
    for component in range(n_components):
        members = np.flatnonzero(labels == component)
        if members.size < 2 and a0[members[0], members[0]] == 0:
            continue
        cyclic.extend(members.tolist())
        block = np.eye(members.size) - a0[np.ix_(members, members)]
        if _is_singular(block, tolerance):
            implicated.extend(members.tolist())
    chosen = implicated or cyclic or list(range(len(variables)))
    return [variables[i] for i in sorted(chosen)]


def reduced_form(matrices: PathMatrixSet, options: Optional[DsemOptions] = None) -> np.ndarray:
    """Return ``(I - A_0)^{-1}``, the total simultaneous effect matrix.

    Raises
    ------
    NonIdentifiableStructureError
        If ``I - A_0`` is singular; the error lists the implicated variables.
    """
    options = options or DsemOptions()
    a0 = np.asarray(matrices.path(0))
    system = np.eye(matrices.size) - a0
    if _is_singular(system, options.singular_tolerance):
        raise NonIdentifiableStructureError(
            "simultaneous feedback has unit total gain; I - A_0 is singular",
            _implicated_variables(a0, matrices.variables, options.singular_tolerance),
        )
    return np.linalg.inv(system)


def companion_matrix(matrices: PathMatrixSet, options: Optional[DsemOptions] = None) -> np.ndarray:
    """Stacked one-step transition of the reduced lagged system.

    The first block row holds ``B_1 .. B_L``; identity blocks below the
    diagonal shift the stacked state by one lag. A system without lagged
    arrows yields a ``V x V`` zero matrix.
    """
    size = matrices.size
    order = max(matrices.max_lag, 1)
    inverse = reduced_form(matrices, options)
    companion = np.zeros((size * order, size * order))
    for k in range(1, order + 1):
        companion[:size, (k - 1) * size:k * size] = inverse @ matrices.path(k)
    for k in range(1, order):
        companion[k * size:(k + 1) * size, (k - 1) * size:k * size] = np.eye(size)
    return companion


def spectral_radius(matrices: PathMatrixSet, options: Optional[DsemOptions] = None) -> float:
    companion = companion_matrix(matrices, options)
    radius = float(np.max(np.abs(np.linalg.eigvals(companion))))
    logger.debug("companion spectral radius %.6g", radius)
    return radius


def is_stable(matrices: PathMatrixSet, options: Optional[DsemOptions] = None) -> bool:
    """True when the infinite-horizon effect series converges."""
    options = options or DsemOptions()
    return spectral_radius(matrices, options) < 1.0 - options.stability_tolerance


def total_effect_matrices(
    matrices: PathMatrixSet,
    max_lag: int,
    options: Optional[DsemOptions] = None,
) -> np.ndarray:
    """Array of shape ``(max_lag + 1, V, V)``; entry ``[d, i, j]`` is the
    total effect of variable ``j`` at lag ``d`` on variable ``i``."""
    if max_lag < 0:
        raise ValueError(f"max_lag must be non-negative, got {max_lag}")
    size = matrices.size
    inverse = reduced_form(matrices, options)
    companion = companion_matrix(matrices, options)
    effects = np.empty((max_lag + 1, size, size))
    power = np.eye(companion.shape[0])
    for d in range(max_lag + 1):
        effects[d] = power[:size, :size] @ inverse
        power = companion @ power
    return effects


def _effect_frame(matrices: PathMatrixSet, effects: np.ndarray) -> pd.DataFrame:
    rows = []
    names = matrices.variables
    for lag in range(effects.shape[0]):
        direct = matrices.path(lag)
        for j, source in enumerate(names):
            for i, target in enumerate(names):
                rows.append((source, target, lag, float(effects[lag, i, j]), float(direct[i, j])))
    return pd.DataFrame(rows, columns=_EFFECT_COLUMNS)


def total_effects(
    matrices: PathMatrixSet,
    max_lag: int = 0,
    options: Optional[DsemOptions] = None,
) -> pd.DataFrame:
    """Total and direct effects for every ordered pair and lag ``0..max_lag``.

    Returns
    -------
    pd.DataFrame
        Columns ``from``, ``to``, ``lag``, ``total_effect``, ``direct_effect``.
    """
    return _effect_frame(matrices, total_effect_matrices(matrices, max_lag, options))


def _divergent_variables(companion: np.ndarray, variables, threshold: float) -> List[str]:
    size = len(variables)
    eigenvalues, eigenvectors = np.linalg.eig(companion)
    touched = set()
    for k in np.flatnonzero(np.abs(eigenvalues) >= threshold):
        vector = np.abs(eigenvectors[:, k])
        scale = vector.max()
        if scale == 0:
            continue
        touched.update(int(i) % size for i in np.flatnonzero(vector > 1e-8 * scale))
    return [variables[i] for i in sorted(touched)]


def cumulative_effect_matrix(
    matrices: PathMatrixSet,
    horizon: Optional[int] = None,
    options: Optional[DsemOptions] = None,
) -> np.ndarray:
    """Sum of total effects over lags ``0..horizon``, or over all lags.

    With ``horizon=None`` the closed form ``(I - F)^{-1}`` of the companion
    matrix ``F`` is used, which requires a spectral radius below one.

    Raises
    ------
    DivergentSeriesError
        When ``horizon`` is None and the system is not stable. Pass an
        explicit ``horizon`` for a truncated sum instead.
    """
    options = options or DsemOptions()
    if horizon is not None:
        return total_effect_matrices(matrices, horizon, options).sum(axis=0)

    size = matrices.size
    inverse = reduced_form(matrices, options)
    companion = companion_matrix(matrices, options)
    radius = float(np.max(np.abs(np.linalg.eigvals(companion))))
    threshold = 1.0 - options.stability_tolerance
    if radius >= threshold:
        raise DivergentSeriesError(
            "long-run effect does not converge; use a finite horizon",
            radius,
            _divergent_variables(companion, matrices.variables, threshold),
        )
    logger.debug("long-run effects with companion spectral radius %.6g", radius)
    geometric = np.linalg.inv(np.eye(companion.shape[0]) - companion)
    return geometric[:size, :size] @ inverse


def cumulative_effects(
    matrices: PathMatrixSet,
    horizon: Optional[int] = None,
    options: Optional[DsemOptions] = None,
) -> pd.DataFrame:
    """Cumulative effects as a table with columns ``from``, ``to``, ``total_effect``."""
    matrix = cumulative_effect_matrix(matrices, horizon, options)
    names = matrices.variables
    rows = [
        (source, target, float(matrix[i, j]))
        for j, source in enumerate(names)
        for i, target in enumerate(names)
    ]
    return pd.DataFrame(rows, columns=["from", "to", "total_effect"])


def long_run_effects(matrices: PathMatrixSet, options: Optional[DsemOptions] = None) -> pd.DataFrame:
    return cumulative_effects(matrices, None, options)
