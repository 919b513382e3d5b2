"""Draw synthetic panels from an assembled structural system."""

from __future__ import annotations

from typing import Optional

import numpy as np
import pandas as pd

from .effects import reduced_form
from .matrices import PathMatrixSet
from .options import DsemOptions

__all__ = ["simulate"]


def simulate(
    matrices: PathMatrixSet,
    n_times: int,
    *,
    seed: Optional[int] = None,
    burn_in: int = 0,
    options: Optional[DsemOptions] = None,
) -> pd.DataFrame:
    """Simulate ``n_times`` rows of ``y_t = (I - A_0)^{-1}(sum_k A_k y_{t-k} + e_t)``.

    Innovations ``e_t`` are drawn from ``N(0, S_0)`` where ``S_0`` is the lag-0
    covariance matrix; lagged covariance matrices are not used. The recursion
    starts from zeros and the first ``burn_in`` draws are discarded.

    Returns
    -------
    pd.DataFrame
        One column per variable, in universe order.
    """
    if n_times <= 0:
        raise ValueError(f"n_times must be positive, got {n_times}")
    if burn_in < 0:
        raise ValueError(f"burn_in must be non-negative, got {burn_in}")

    inverse = reduced_form(matrices, options)
    size = matrices.size
    lags = [lag for lag in matrices.lags if lag > 0]
    total = n_times + burn_in

    rng = np.random.default_rng(seed)
    innovations = rng.multivariate_normal(
        np.zeros(size), np.asarray(matrices.covariance(0)), size=total, method="eigh"
    )

    series = np.zeros((total, size))
    for t in range(total):
        drive = innovations[t].copy()
        for lag in lags:
            if t - lag >= 0:
                drive += matrices.path(lag) @ series[t - lag]
        series[t] = inverse @ drive

    return pd.DataFrame(series[burn_in:], columns=list(matrices.variables))
