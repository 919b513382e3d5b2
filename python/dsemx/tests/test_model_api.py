"""Tests for the high-level dsemx.DsemModel front-end."""

import warnings

import numpy as np
import pandas as pd
import pytest

from dsemx import (
    DsemModel,
    DsemOptions,
    GrammarError,
    ModelSpecificationError,
    PathMatrixSet,
    StartValueConflictWarning,
    compile_equations,
    compile_specification,
)


def test_model_compiles_arrow_notation():
    model = DsemModel("x -> y, 0, beta", ["x", "y"])

    assert model.variables == ("x", "y")
    assert model.parameters.names == ("beta",)
    assert len(model.arrows) == 1
    assert model.notation == "arrow"
    assert "arrows=1" in repr(model)


def test_model_compiles_equation_notation():
    model = DsemModel(
        "y = beta*x + rho*lag[y, 1]",
        ["x", "y"],
        notation="equations",
    )

    assert model.parameters.names == ("beta", "rho")
    matrices = model.assemble([0.5, 0.8])
    assert matrices.path(0)[1, 0] == 0.5
    assert matrices.path(1)[1, 1] == 0.8


def test_both_notations_agree():
    arrows = DsemModel("x -> y, 0, beta\ny -> y, 1, rho", ["x", "y"])
    equations = DsemModel("y = beta*x + rho*lag[y,1]", ["x", "y"], notation="equations")

    values = [0.3, 0.4]
    pd.testing.assert_frame_equal(
        arrows.total_effects(values, max_lag=2),
        equations.total_effects(values, max_lag=2),
    )


def test_model_rejects_empty_text_and_unknown_notation():
    with pytest.raises(ModelSpecificationError):
        DsemModel("   ", ["x"])
    with pytest.raises(ModelSpecificationError, match="notation"):
        DsemModel("x -> y, 0, beta", ["x", "y"], notation="lavaan")


def test_equation_errors_surface_from_model():
    with pytest.raises(GrammarError):
        DsemModel("y = -beta*x", ["x", "y"], notation="equations")


def test_option_overrides():
    model = DsemModel("x -> y, 0, beta", ["x", "y"], variance_floor=0.5)
    assert model.options.variance_floor == 0.5
    assert model.assemble([0.1]).covariance(0)[0, 0] == 0.5

    base = DsemOptions(path_start=0.2)
    model = DsemModel("x -> y, 0, beta", ["x", "y"], options=base, variance_floor=0.3)
    assert model.options.path_start == 0.2
    assert model.options.variance_floor == 0.3
    np.testing.assert_allclose(model.start_vector(), [0.2])


def test_unknown_option_is_rejected():
    with pytest.raises(TypeError, match="not_an_option"):
        DsemModel("x -> y, 0, beta", ["x", "y"], not_an_option=1)


@pytest.mark.parametrize(
    "kwargs",
    [{"variance_floor": 0.0}, {"singular_tolerance": 2.0}, {"stability_tolerance": -1.0}],
)
def test_invalid_option_values(kwargs):
    with pytest.raises(ValueError):
        DsemOptions(**kwargs)


def test_assemble_defaults_to_start_values():
    model = DsemModel("x -> y, 0, beta, 0.4", ["x", "y"])
    matrices = model.assemble()

    assert isinstance(matrices, PathMatrixSet)
    assert matrices.path(0)[1, 0] == pytest.approx(0.4)


def test_covs_reach_the_model():
    model = DsemModel("x -> y, 0, beta", ["x", "y"], covs=["x", "y"])
    assert model.parameters.names == ("beta", "V[x]", "V[y]")


def test_cumulative_effects_from_model():
    model = DsemModel("y -> y, 1, rho", ["y"])
    table = model.cumulative_effects([0.5])

    assert table["total_effect"].iloc[0] == pytest.approx(2.0)
    truncated = model.cumulative_effects([0.5], horizon=1)
    assert truncated["total_effect"].iloc[0] == pytest.approx(1.5)


def test_data_array_orders_columns_and_keeps_missing():
    model = DsemModel("x -> y, 0, beta", ["x", "y"])
    frame = pd.DataFrame({"y": [1.0, np.nan], "x": [2.0, 3.0], "extra": ["a", "b"]})

    array = model.data_array(frame)
    assert array.shape == (2, 2)
    np.testing.assert_array_equal(array[:, 0], [2.0, 3.0])
    assert np.isnan(array[1, 1])


def test_data_array_reports_missing_columns():
    model = DsemModel("x -> y, 0, beta", ["x", "y"])
    with pytest.raises(ValueError, match="missing columns"):
        model.data_array({"x": [1.0]})


def test_start_value_conflict_warns_at_the_model_call_site():
    text = """
    x -> y, 1, shared, 0.1
    y -> x, 1, shared, 0.9
    """
    with pytest.warns(StartValueConflictWarning, match="shared") as record:
        model = DsemModel(text, ["x", "y"])

    assert len(record) == 1
    assert record[0].filename == __file__
    assert model.parameters.starts == (0.1,)
    conflict = model.spec.conflicts[0]
    assert (conflict.kept, conflict.ignored, conflict.line) == (0.1, 0.9, 3)


def test_compile_functions_warn_at_their_call_site():
    with pytest.warns(StartValueConflictWarning) as record:
        spec = compile_specification("x -> y, 0, a, 0.2\ny -> y, 1, a, 0.3", ["x", "y"])
    assert record[0].filename == __file__
    assert spec.conflicts[0].line == 2

    with warnings.catch_warnings():
        warnings.simplefilter("error", StartValueConflictWarning)
        spec = compile_equations("y = a*x + a*lag[y, 1]", ["x", "y"])
    assert spec.conflicts == ()
