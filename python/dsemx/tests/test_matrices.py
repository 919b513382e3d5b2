"""Tests for scattering parameter vectors into per-lag matrices."""

import numpy as np
import pytest

from dsemx import DsemOptions, PathMatrixSet, assemble, compile_specification


def test_single_arrow_assembles_expected_matrix():
    spec = compile_specification("x -> y, 0, beta", ["x", "y"])
    matrices = assemble(spec, [0.5])

    np.testing.assert_array_equal(matrices.path(0), [[0.0, 0.0], [0.5, 0.0]])
    assert matrices.lags == (0,)
    assert matrices.max_lag == 0


def test_lagged_arrows_populate_their_own_matrix():
    spec = compile_specification("x -> y, 2, b2\ny -> y, 1, rho", ["x", "y"])
    matrices = assemble(spec, [0.3, 0.9])

    assert matrices.lags == (0, 1, 2)
    np.testing.assert_array_equal(matrices.path(1), [[0.0, 0.0], [0.0, 0.9]])
    np.testing.assert_array_equal(matrices.path(2), [[0.0, 0.0], [0.3, 0.0]])
    np.testing.assert_array_equal(matrices.path(5), np.zeros((2, 2)))


def test_fixed_literal_is_reproduced_for_any_vector():
    spec = compile_specification("x -> y, 0, 0.25\ny -> y, 1, rho", ["x", "y"])

    for value in (-3.0, 0.0, 7.5):
        matrices = assemble(spec, [value])
        assert matrices.path(0)[1, 0] == 0.25
        assert matrices.path(1)[1, 1] == value


def test_shared_parameters_resolve_to_the_same_value():
    spec = compile_specification("x -> y, 1, shared\ny -> x, 1, shared", ["x", "y"])
    rng = np.random.default_rng(0)

    for value in rng.normal(size=5):
        lagged = assemble(spec, [value]).path(1)
        assert lagged[1, 0] == lagged[0, 1] == value


def test_covariances_are_symmetric_with_variance_floor():
    spec = compile_specification("x <-> y, 0, cxy\ny <-> y, 0, vy", ["x", "y", "z"])
    matrices = assemble(spec, [0.2, 1.5], DsemOptions(variance_floor=0.05))
    cov = matrices.covariance(0)

    np.testing.assert_allclose(cov, cov.T)
    assert cov[0, 1] == 0.2
    assert cov[1, 1] == 1.5
    assert cov[0, 0] == 0.05
    assert cov[2, 2] == 0.05


def test_explicit_variance_overrides_floor_even_when_zero():
    spec = compile_specification("x -> y, 0, beta\nx <-> x, 0, 0", ["x", "y"])
    cov = assemble(spec, [0.1]).covariance(0)

    assert cov[0, 0] == 0.0
    assert cov[1, 1] == DsemOptions().variance_floor


def test_lagged_covariance_goes_to_its_lag():
    spec = compile_specification("x <-> y, 1, c1", ["x", "y"])
    matrices = assemble(spec, [0.4])

    np.testing.assert_array_equal(matrices.covariance(1), [[0.0, 0.4], [0.4, 0.0]])
    assert matrices.covariance(0)[0, 1] == 0.0


def test_defaults_to_start_values_and_accepts_mappings():
    spec = compile_specification("x -> y, 0, beta, 0.3\ny -> y, 1, rho", ["x", "y"])

    assert assemble(spec).path(0)[1, 0] == pytest.approx(0.3)
    matrices = assemble(spec, {"rho": 0.6})
    assert matrices.path(0)[1, 0] == pytest.approx(0.3)
    assert matrices.path(1)[1, 1] == pytest.approx(0.6)


def test_wrong_vector_length_is_rejected():
    spec = compile_specification("x -> y, 0, beta", ["x", "y"])
    with pytest.raises(ValueError, match="expected 1"):
        assemble(spec, [0.1, 0.2])


def test_assembly_returns_fresh_read_only_matrices():
    spec = compile_specification("x -> y, 0, beta", ["x", "y"])
    first = assemble(spec, [0.5])
    second = assemble(spec, [0.9])

    assert first.path(0)[1, 0] == 0.5
    assert second.path(0)[1, 0] == 0.9
    with pytest.raises(ValueError):
        first.path(0)[1, 0] = 1.0


def test_from_arrays_validates_shapes():
    matrices = PathMatrixSet.from_arrays(["a", "b"], {0: np.zeros((2, 2)), 1: np.eye(2)})
    assert matrices.lags == (0, 1)

    with pytest.raises(ValueError, match="shape"):
        PathMatrixSet.from_arrays(["a", "b"], {0: np.zeros((3, 3))})
    with pytest.raises(ValueError, match="non-negative"):
        PathMatrixSet.from_arrays(["a", "b"], {-1: np.zeros((2, 2))})


def test_to_frame_labels_rows_and_columns():
    spec = compile_specification("x -> y, 0, beta", ["x", "y"])
    frame = assemble(spec, [0.5]).to_frame(0)

    assert list(frame.index) == ["x", "y"]
    assert frame.loc["y", "x"] == 0.5
