#!/usr/bin/env python3
"""
Example: Lagged Predator-Prey Feedback

This example specifies a two-variable dynamic structural equation model in
which wolves and moose each follow a first-order autoregression and affect
each other with a one-year lag:

    wolves_t = arW * wolves_{t-1} + MtoW * moose_{t-1} + e_w
    moose_t  = WtoM * wolves_{t-1} + arM * moose_{t-1} + e_m

The estimation engine is external to dsemx. Here a small conditional least
squares engine built on scipy.optimize stands in for it, so the example runs
end to end: simulate a panel, fit it, then report total effects over several
lags and the long-run cumulative effect.
"""

import numpy as np
from scipy.optimize import minimize

from dsemx import DsemModel, EngineResult, simulate

sem = """
# autoregression
wolves -> wolves, 1, arW
moose -> moose, 1, arM
# cross-lagged feedback
moose -> wolves, 1, MtoW
wolves -> moose, 1, WtoM
# unit innovation variances, held fixed
wolves <-> wolves, 0, 1.0
moose <-> moose, 0, 1.0
"""

model = DsemModel(sem, ["wolves", "moose"])

# True parameter values, in parameter-table order.
truth = {"arW": 0.7, "arM": 0.6, "MtoW": 0.2, "WtoM": -0.3}
true_vector = model.parameters.vector_from_mapping(truth)
panel = simulate(model.assemble(true_vector), n_times=400, seed=2024, burn_in=50)


def least_squares_engine(model, start, data):
    """Minimize the summed squared structural residuals."""
    max_lag = model.spec.max_lag
    observed = data[max_lag:]

    def objective(values):
        matrices = model.assemble(values)
        residuals = observed @ (np.eye(len(model.variables)) - matrices.path(0)).T
        for lag in range(1, max_lag + 1):
            residuals -= data[max_lag - lag:len(data) - lag] @ matrices.path(lag).T
        return float(np.sum(residuals ** 2))

    result = minimize(objective, start, method="BFGS")
    sigma2 = result.fun / observed.size
    standard_errors = np.sqrt(np.clip(np.diag(result.hess_inv) * 2 * sigma2, 0, None))
    return EngineResult(
        estimates=result.x,
        standard_errors=standard_errors,
        objective=result.fun,
        converged=result.success,
    )


fit = model.fit(panel, least_squares_engine)

print("=" * 70)
print("Wolf-Moose Dynamic SEM Example")
print("=" * 70)
print()
print(fit.summary())
print()

print("Comparison to True Values:")
for name in model.parameters.names:
    print(f"  {name:6s} True = {truth[name]:6.2f},  Estimated = {fit.parameter_estimates[name]:6.2f}")
print()

print("=" * 70)
print("Total effect of moose on wolves by lag")
print("=" * 70)
effects = fit.total_effects(max_lag=5)
moose_on_wolves = effects[(effects["from"] == "moose") & (effects["to"] == "wolves")]
print(moose_on_wolves.to_string(index=False))
print()

print("=" * 70)
print("Long-run cumulative effects")
print("=" * 70)
print(fit.cumulative_effects().to_string(index=False))
