"""Block interpolation operator for finite element strain operators.

The operator represents a matrix B of shape (n_interp x n_vars * n_phi) in
which every (row, variable) slot is either empty or holds the vector of
shape-function values (or gradients) at one quadrature point:

    B = | W(0,0)  W(0,1)  ...  W(0,n_vars-1) |
        | W(1,0)  W(1,1)  ...                |
        |  ...                               |

where each W(i,j) is a row vector of length n_phi. DOF vectors are ordered
variable-major, so the column block of variable ``j`` spans
``[j * n_phi, (j + 1) * n_phi)``.

Only non-empty slots take part in the products, which keeps the cost of the
typical membrane/bending operators (one or two populated slots per row) far
below that of a dense product.
"""

from typing import List, Optional, Union

import numpy as np


class FEMOperatorMatrix:
    """Sparse block operator built from shape-function vectors.

    Examples
    --------
    >>> B = FEMOperatorMatrix()
    >>> B.reinit(3, 2, 4)
    >>> B.set_shape_function(0, 0, dN_dx)  # eps_xx = du/dx
    >>> eps = B.vector_mult(u)
    """

    def __init__(self):
        self._n_interp = 0
        self._n_discrete_vars = 0
        self._n_dofs_per_var = 0
        self._W: Optional[List[Optional[np.ndarray]]] = None

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def reinit(self, n_interp: int, n_discrete_vars: int, n_dofs_per_var: int) -> None:
        """Clear the operator and resize it.

        Parameters
        ----------
        n_interp : int
            Number of interpolated quantities (rows), e.g. 3 strain components.
        n_discrete_vars : int
            Number of discrete variables per node (column blocks).
        n_dofs_per_var : int
            Number of shape functions per variable.
        """
        if n_interp <= 0 or n_discrete_vars <= 0 or n_dofs_per_var <= 0:
            raise ValueError(
                f"Invalid operator size: ({n_interp}, {n_discrete_vars}, {n_dofs_per_var})"
            )
        self._n_interp = n_interp
        self._n_discrete_vars = n_discrete_vars
        self._n_dofs_per_var = n_dofs_per_var
        self._W = [None] * (n_interp * n_discrete_vars)

    def reinit_diagonal(self, n_vars: int, shape_values: np.ndarray) -> None:
        """Initialize as the variable-identity operator.

        Every variable ``i`` receives ``shape_values`` in slot ``(i, i)`` so
        that ``B @ u`` interpolates all variables at the point.

        Parameters
        ----------
        n_vars : int
            Number of variables (rows and column blocks).
        shape_values : np.ndarray
            Shape-function values at the point.
        """
        shape_values = np.asarray(shape_values, dtype=float)
        self.reinit(n_vars, n_vars, shape_values.size)
        for i in range(n_vars):
            self._W[self._index(i, i)] = shape_values.copy()

    def set_shape_function(self, interpolated_var: int, discrete_var: int, shape_values) -> None:
        """Install the shape-function vector of one slot (overwrites)."""
        self._check_initialized()
        if not (0 <= interpolated_var < self._n_interp):
            raise ValueError(f"Row {interpolated_var} out of range [0, {self._n_interp})")
        if not (0 <= discrete_var < self._n_discrete_vars):
            raise ValueError(
                f"Variable {discrete_var} out of range [0, {self._n_discrete_vars})"
            )
        shape_values = np.asarray(shape_values, dtype=float)
        if shape_values.size != self._n_dofs_per_var:
            raise ValueError(
                f"Expected {self._n_dofs_per_var} shape values, got {shape_values.size}"
            )
        self._W[self._index(interpolated_var, discrete_var)] = shape_values.ravel().copy()

    # ------------------------------------------------------------------
    # Shape
    # ------------------------------------------------------------------

    @property
    def m(self) -> int:
        """Number of rows."""
        return self._n_interp

    @property
    def n(self) -> int:
        """Number of columns."""
        return self._n_discrete_vars * self._n_dofs_per_var

    @property
    def shape(self):
        return self.m, self.n

    def dense(self) -> np.ndarray:
        """Return the operator as a dense (m x n) array."""
        self._check_initialized()
        out = np.zeros((self.m, self.n))
        for i, j, W in self._slots():
            out[i, self._block(j)] = W
        return out

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def vector_mult(self, v) -> np.ndarray:
        """Return ``B @ v``."""
        self._check_initialized()
        v = self._as_vector(v, self.n)
        out = np.zeros(self.m)
        for i, j, W in self._slots():
            out[i] += W @ v[self._block(j)]
        return out

    def vector_mult_transpose(self, v) -> np.ndarray:
        """Return ``B.T @ v``."""
        self._check_initialized()
        v = self._as_vector(v, self.m)
        out = np.zeros(self.n)
        for i, j, W in self._slots():
            out[self._block(j)] += W * v[i]
        return out

    def left_multiply(self, M) -> np.ndarray:
        """Return ``M @ B`` for a dense ``M`` with ``m`` columns."""
        self._check_initialized()
        M = self._as_matrix(M, cols=self.m)
        out = np.zeros((M.shape[0], self.n))
        for i, j, W in self._slots():
            out[:, self._block(j)] += np.outer(M[:, i], W)
        return out

    def left_multiply_transpose(self, M) -> np.ndarray:
        """Return ``M @ B.T`` for a dense ``M`` with ``n`` columns."""
        self._check_initialized()
        M = self._as_matrix(M, cols=self.n)
        out = np.zeros((M.shape[0], self.m))
        for i, j, W in self._slots():
            out[:, i] += M[:, self._block(j)] @ W
        return out

    def right_multiply(self, M) -> np.ndarray:
        """Return ``B @ M`` for a dense ``M`` with ``n`` rows."""
        self._check_initialized()
        M = self._as_matrix(M, rows=self.n)
        out = np.zeros((self.m, M.shape[1]))
        for i, j, W in self._slots():
            out[i, :] += W @ M[self._block(j), :]
        return out

    def right_multiply_transpose(self, M: Union[np.ndarray, "FEMOperatorMatrix"]) -> np.ndarray:
        """Return ``B.T @ M``.

        Parameters
        ----------
        M : np.ndarray or FEMOperatorMatrix
            Dense matrix with ``m`` rows, or another operator with the same
            number of rows, in which case ``B.T @ M`` is a (n x M.n) matrix.
        """
        self._check_initialized()
        if isinstance(M, FEMOperatorMatrix):
            M._check_initialized()
            if M.m != self.m:
                raise ValueError(f"Row mismatch in B.T @ B2: {self.m} != {M.m}")
            out = np.zeros((self.n, M.n))
            for i, j, W in self._slots():
                for k in range(M._n_discrete_vars):
                    W2 = M._W[M._index(i, k)]
                    if W2 is not None:
                        out[self._block(j), M._block(k)] += np.outer(W, W2)
            return out

        M = self._as_matrix(M, rows=self.m)
        out = np.zeros((self.n, M.shape[1]))
        for i, j, W in self._slots():
            out[self._block(j), :] += np.outer(W, M[i, :])
        return out

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _index(self, interpolated_var: int, discrete_var: int) -> int:
        return discrete_var * self._n_interp + interpolated_var

    def _block(self, discrete_var: int) -> slice:
        start = discrete_var * self._n_dofs_per_var
        return slice(start, start + self._n_dofs_per_var)

    def _slots(self):
        for j in range(self._n_discrete_vars):
            for i in range(self._n_interp):
                W = self._W[self._index(i, j)]
                if W is not None:
                    yield i, j, W

    def _check_initialized(self) -> None:
        if self._W is None:
            raise RuntimeError("FEMOperatorMatrix used before reinit()")

    @staticmethod
    def _as_vector(v, size: int) -> np.ndarray:
        v = np.asarray(v, dtype=float).ravel()
        if v.size != size:
            raise ValueError(f"Vector size mismatch: expected {size}, got {v.size}")
        return v

    @staticmethod
    def _as_matrix(M, rows: Optional[int] = None, cols: Optional[int] = None) -> np.ndarray:
        M = np.asarray(M, dtype=float)
        if M.ndim != 2:
            raise ValueError(f"Expected a 2D matrix, got shape {M.shape}")
        if rows is not None and M.shape[0] != rows:
            raise ValueError(f"Row mismatch: expected {rows}, got {M.shape[0]}")
        if cols is not None and M.shape[1] != cols:
            raise ValueError(f"Column mismatch: expected {cols}, got {M.shape[1]}")
        return M

    def __repr__(self):
        return f"<FEMOperatorMatrix {self.m}x{self.n} vars={self._n_discrete_vars}>"
