"""High-level front end tying compilation, assembly and effects together.

:class:`DsemModel` compiles arrow or equation notation once and hands the
external estimation engine everything it needs: the parameter table (and its
start vector), an assembler callable, and the data panel in variable order.
:class:`DsemFit` wraps whatever the engine returns and derives effects and
summaries from it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.stats import norm

from .effects import cumulative_effects, total_effects
from .errors import ModelSpecificationError
from .matrices import PathMatrixSet, assemble
from .options import DsemOptions, resolve_options
from .specification import (
    ArrowSpec,
    CompiledSpecification,
    ParameterTable,
    _compile_arrow_text,
    _compile_equation_text,
    _warn_conflicts,
)

__all__ = ["DsemModel", "DsemFit", "DsemFitSummary", "EngineResult", "EstimationEngine"]


@dataclass
class EngineResult:
    """What an estimation engine reports back, in parameter-table order."""

    estimates: Sequence[float]
    standard_errors: Optional[Sequence[float]] = None
    objective: float = float("nan")
    converged: bool = True


EstimationEngine = Callable[["DsemModel", np.ndarray, np.ndarray], Any]

_NOTATIONS = ("arrow", "equations")


class DsemFit:
    """Wrapper for estimates returned by an external engine."""

    def __init__(
        self,
        model: "DsemModel",
        estimates: Sequence[float],
        standard_errors: Optional[Sequence[float]] = None,
        objective: float = float("nan"),
        converged: bool = True,
        data: Optional[pd.DataFrame] = None,
    ) -> None:
        table = model.parameters
        self.model = model
        self.estimates = table.coerce(estimates)
        if standard_errors is None:
            self.standard_errors = np.full(len(table), np.nan)
        else:
            self.standard_errors = table.coerce(standard_errors)
        self.objective = float(objective)
        self.converged = bool(converged)
        self.data = data

    @property
    def parameter_estimates(self) -> Dict[str, float]:
        """Map parameter names to their estimated values."""
        return dict(zip(self.model.parameters.names, self.estimates.tolist()))

    @property
    def parameter_standard_errors(self) -> Dict[str, float]:
        return dict(zip(self.model.parameters.names, self.standard_errors.tolist()))

    def matrices(self) -> PathMatrixSet:
        return self.model.assemble(self.estimates)

    def total_effects(self, max_lag: int = 0) -> pd.DataFrame:
        return self.model.total_effects(self.estimates, max_lag)

    def cumulative_effects(self, horizon: Optional[int] = None) -> pd.DataFrame:
        return self.model.cumulative_effects(self.estimates, horizon)

    def summary(self) -> "DsemFitSummary":
        """Return a summary object containing parameter and arrow tables."""
        return DsemFitSummary(self)


class DsemFitSummary:
    """Summary of fit results."""

    def __init__(self, fit: DsemFit) -> None:
        self.fit = fit
        self.parameters = self._build_parameter_table()
        self.arrows = self._build_arrow_table()

    def _build_parameter_table(self) -> pd.DataFrame:
        params = self.fit.estimates
        ses = self.fit.standard_errors

        z_values = [p / se if se > 0 else np.nan for p, se in zip(params, ses)]
        p_values = [
            2 * (1 - norm.cdf(abs(z))) if not np.isnan(z) else np.nan for z in z_values
        ]

        data = {
            "Estimate": params,
            "Std.Error": ses,
            "z-value": z_values,
            "P(>|z|)": p_values,
        }
        return pd.DataFrame(data, index=list(self.fit.model.parameters.names))

    def _build_arrow_table(self) -> pd.DataFrame:
        frame = self.fit.model.spec.arrow_frame()
        estimates = []
        errors = []
        for arrow in self.fit.model.arrows:
            estimates.append(arrow.resolve(self.fit.estimates))
            if arrow.is_fixed:
                errors.append(np.nan)
            else:
                errors.append(self.fit.standard_errors[arrow.parameter_index])
        frame["Estimate"] = estimates
        frame["Std.Error"] = errors
        return frame

    def __repr__(self) -> str:
        lines = []
        lines.append(f"Optimization converged: {self.fit.converged}")
        if not np.isnan(self.fit.objective):
            lines.append(f"Objective: {self.fit.objective:.3f}")
        lines.append(
            f"Variables: {len(self.fit.model.variables)}, "
            f"arrows: {len(self.fit.model.arrows)}, "
            f"free parameters: {len(self.fit.model.parameters)}"
        )
        lines.append("")
        lines.append(self.parameters.to_string())

        fixed = self.arrows[self.arrows["fixed"]]
        if not fixed.empty:
            lines.append("")
            lines.append("Fixed arrows:")
            lines.append(fixed[["path", "lag", "Estimate"]].to_string(index=False))
        return "\n".join(lines)


class DsemModel:
    """Compile a dynamic structural equation model specification.

    Parameters
    ----------
    sem:
        Specification text. In ``"arrow"`` notation each line reads
        ``from -> to, lag, parameter[, start]`` (``<->`` for covariances); in
        ``"equations"`` notation each line reads
        ``response = coef*predictor + lag[other, k] + ...``.
    variables:
        Ordered variable universe, or a DataFrame whose columns define it.
    notation:
        ``"arrow"`` (default) or ``"equations"``.
    covs:
        Optional comma-separated variable groups that receive free lag-0
        variances and covariances unless declared explicitly.
    options:
        :class:`DsemOptions`; individual fields may also be overridden as
        keyword arguments.
    """

    def __init__(
        self,
        sem: str,
        variables: Union[Iterable[str], pd.DataFrame, pd.Index],
        *,
        notation: str = "arrow",
        covs: Optional[Sequence[str]] = None,
        options: Optional[DsemOptions] = None,
        **kwargs: Any,
    ) -> None:
        if not sem or not sem.strip():
            raise ModelSpecificationError("at least one arrow or equation is required")
        if notation not in _NOTATIONS:
            raise ModelSpecificationError(
                f"Unknown notation '{notation}'; expected one of {', '.join(_NOTATIONS)}"
            )
        self._options = resolve_options(options, **kwargs)
        self._notation = notation
        self._sem = sem
        if notation == "equations":
            self._spec = _compile_equation_text(sem, variables, covs, self._options)
        else:
            self._spec = _compile_arrow_text(sem, variables, covs, self._options)
        _warn_conflicts(self._spec.conflicts, stacklevel=2)

    def __repr__(self) -> str:
        return (
            f"DsemModel(variables={list(self.variables)!r}, arrows={len(self.arrows)}, "
            f"parameters={len(self.parameters)})"
        )

    @property
    def spec(self) -> CompiledSpecification:
        return self._spec

    @property
    def options(self) -> DsemOptions:
        return self._options

    @property
    def notation(self) -> str:
        return self._notation

    @property
    def variables(self) -> Tuple[str, ...]:
        return self._spec.variables

    @property
    def arrows(self) -> Tuple[ArrowSpec, ...]:
        return self._spec.arrows

    @property
    def parameters(self) -> ParameterTable:
        return self._spec.parameters

    def start_vector(self) -> np.ndarray:
        return self.parameters.start_vector()

    def assemble(self, values: Any = None) -> PathMatrixSet:
        """Build a fresh :class:`PathMatrixSet` for one parameter vector."""
        return assemble(self._spec, values, self._options)

    def total_effects(self, values: Any = None, max_lag: int = 0) -> pd.DataFrame:
        return total_effects(self.assemble(values), max_lag, self._options)

    def cumulative_effects(self, values: Any = None, horizon: Optional[int] = None) -> pd.DataFrame:
        return cumulative_effects(self.assemble(values), horizon, self._options)

    def data_array(self, data: Any) -> np.ndarray:
        """Return ``data`` as a ``(T, V)`` float array in variable order.

        Missing observations stay as NaN.
        """
        if isinstance(data, pd.DataFrame):
            df = data
        else:
            df = pd.DataFrame(data)
        missing_cols = [v for v in self.variables if v not in df.columns]
        if missing_cols:
            raise ValueError(f"Data missing columns for variables: {missing_cols}")
        try:
            return df[list(self.variables)].to_numpy(dtype=float)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Data columns must be numeric: {exc}") from exc

    def fit(
        self,
        data: Any,
        engine: EstimationEngine,
        start: Optional[Union[Mapping[str, float], Sequence[float]]] = None,
    ) -> DsemFit:
        """Fit the model with an external estimation engine.

        Parameters
        ----------
        data : DataFrame or mapping
            One column per variable; NaN marks a missing observation.
        engine : callable
            Called as ``engine(model, start_vector, data_array)``. It must
            return an :class:`EngineResult`, or any object or mapping exposing
            ``estimates`` and optionally ``standard_errors``, ``objective`` and
            ``converged``.
        start : mapping or sequence, optional
            Start values, e.g. ``previous_fit.parameter_estimates`` to warm
            start. Names missing from a mapping keep their table start.

        Returns
        -------
        DsemFit
        """
        array = self.data_array(data)
        if start is None:
            start_vector = self.start_vector()
        else:
            start_vector = self.parameters.coerce(start)

        result = engine(self, start_vector, array)

        estimates = _result_field(result, "estimates")
        if estimates is None:
            raise ValueError("Estimation engine returned no 'estimates'")
        standard_errors = _result_field(result, "standard_errors")
        objective = _result_field(result, "objective")
        converged = _result_field(result, "converged")

        frame = data if isinstance(data, pd.DataFrame) else pd.DataFrame(data)
        return DsemFit(
            self,
            estimates,
            standard_errors,
            objective=float("nan") if objective is None else objective,
            converged=True if converged is None else converged,
            data=frame,
        )


def _result_field(result: Any, name: str) -> Any:
    if isinstance(result, Mapping):
        return result.get(name)
    return getattr(result, name, None)
