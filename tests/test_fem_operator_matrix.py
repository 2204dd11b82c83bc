"""Tests for the sparse-by-slot FEM operator matrix."""

import numpy as np
import pytest

from fem_panel.numerics.fem_operator_matrix import FEMOperatorMatrix


@pytest.fixture
def shape_values():
    return np.array([0.1, 0.2, 0.3, 0.4])


@pytest.fixture
def operator(shape_values):
    """3 x (2 vars * 4 shape functions) operator with three populated slots."""
    B = FEMOperatorMatrix()
    B.reinit(3, 2, 4)
    B.set_shape_function(0, 0, shape_values)
    B.set_shape_function(1, 1, 2.0 * shape_values)
    B.set_shape_function(2, 0, -shape_values)
    return B


@pytest.fixture
def dense(shape_values):
    D = np.zeros((3, 8))
    D[0, 0:4] = shape_values
    D[1, 4:8] = 2.0 * shape_values
    D[2, 0:4] = -shape_values
    return D


class TestFEMOperatorMatrixShape:
    def test_dimensions(self, operator):
        assert operator.m == 3
        assert operator.n == 8
        assert operator.shape == (3, 8)

    def test_dense(self, operator, dense):
        np.testing.assert_allclose(operator.dense(), dense)

    def test_set_shape_function_overwrites(self, operator, dense, shape_values):
        operator.set_shape_function(0, 0, 3.0 * shape_values)
        dense[0, 0:4] = 3.0 * shape_values
        np.testing.assert_allclose(operator.dense(), dense)

    def test_reinit_clears(self, operator):
        operator.reinit(3, 2, 4)
        np.testing.assert_allclose(operator.dense(), np.zeros((3, 8)))

    def test_reinit_diagonal(self, shape_values):
        B = FEMOperatorMatrix()
        B.reinit_diagonal(3, shape_values)
        expected = np.kron(np.eye(3), shape_values[None, :])
        np.testing.assert_allclose(B.dense(), expected)


class TestFEMOperatorMatrixProducts:
    def test_vector_mult(self, operator, dense, rng):
        v = rng.normal(size=8)
        np.testing.assert_allclose(operator.vector_mult(v), dense @ v)

    def test_vector_mult_transpose(self, operator, dense, rng):
        v = rng.normal(size=3)
        np.testing.assert_allclose(operator.vector_mult_transpose(v), dense.T @ v)

    def test_left_multiply(self, operator, dense, rng):
        M = rng.normal(size=(5, 3))
        np.testing.assert_allclose(operator.left_multiply(M), M @ dense)

    def test_left_multiply_transpose(self, operator, dense, rng):
        M = rng.normal(size=(5, 8))
        np.testing.assert_allclose(operator.left_multiply_transpose(M), M @ dense.T)

    def test_right_multiply(self, operator, dense, rng):
        M = rng.normal(size=(8, 2))
        np.testing.assert_allclose(operator.right_multiply(M), dense @ M)

    def test_right_multiply_transpose_dense(self, operator, dense, rng):
        M = rng.normal(size=(3, 6))
        np.testing.assert_allclose(operator.right_multiply_transpose(M), dense.T @ M)

    def test_right_multiply_transpose_operator(self, operator, dense, rng):
        other = FEMOperatorMatrix()
        other.reinit(3, 1, 5)
        w = rng.normal(size=5)
        other.set_shape_function(0, 0, w)
        other.set_shape_function(2, 0, 2.0 * w)
        np.testing.assert_allclose(
            operator.right_multiply_transpose(other), dense.T @ other.dense()
        )

    def test_results_are_new_arrays(self, operator, rng):
        v = rng.normal(size=8)
        r1 = operator.vector_mult(v)
        r1[:] = 0.0
        np.testing.assert_allclose(operator.vector_mult(v), operator.dense() @ v)


class TestFEMOperatorMatrixErrors:
    def test_use_before_reinit(self):
        B = FEMOperatorMatrix()
        with pytest.raises(RuntimeError):
            B.vector_mult(np.zeros(3))
        with pytest.raises(RuntimeError):
            B.set_shape_function(0, 0, np.zeros(3))

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            FEMOperatorMatrix().reinit(0, 2, 4)

    def test_wrong_shape_values(self, operator):
        with pytest.raises(ValueError):
            operator.set_shape_function(0, 0, np.zeros(3))

    def test_slot_out_of_range(self, operator, shape_values):
        with pytest.raises(ValueError):
            operator.set_shape_function(3, 0, shape_values)
        with pytest.raises(ValueError):
            operator.set_shape_function(0, 2, shape_values)

    def test_vector_size_mismatch(self, operator):
        with pytest.raises(ValueError):
            operator.vector_mult(np.zeros(7))
        with pytest.raises(ValueError):
            operator.vector_mult_transpose(np.zeros(4))

    def test_matrix_size_mismatch(self, operator):
        with pytest.raises(ValueError):
            operator.left_multiply(np.zeros((2, 4)))
        with pytest.raises(ValueError):
            operator.right_multiply_transpose(np.zeros((4, 2)))

    def test_operator_row_mismatch(self, operator):
        other = FEMOperatorMatrix()
        other.reinit(2, 1, 4)
        with pytest.raises(ValueError):
            operator.right_multiply_transpose(other)
