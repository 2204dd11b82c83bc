"""Reference Quadrilateral Elements (QUAD4, QUAD8, QUAD9)

Isoparametric shape functions, their natural-coordinate derivatives and the
side parametrization used for boundary integrals.

Node numbering convention:

    QUAD4          QUAD8          QUAD9
    3---2         3---6---2       3---6---2
    |   |         |       |       |   |   |
    0---1         7       5       7   8   5
                  |       |       |   |   |
                  0---4---1       0---4---1

Sides are numbered counter-clockwise starting at the edge 0-1, so that the
outward normal of side ``k`` points to the right of the edge tangent.
"""

from typing import Tuple

import numpy as np

from fem_panel.numerics.quadrature import gauss_quad


class QUAD:
    """Base class for reference quadrilaterals on [-1, 1]^2"""

    name = "QUAD"
    n_nodes = 4
    default_order = 2
    corners = np.array([[-1.0, -1.0], [1.0, -1.0], [1.0, 1.0], [-1.0, 1.0]])

    @property
    def n_sides(self) -> int:
        return 4

    def quadrature(self, order: int) -> Tuple[np.ndarray, np.ndarray]:
        """Gauss points and weights exact for polynomials of degree ``order``"""
        return gauss_quad(order)

    def side_point(self, side: int, s: float) -> Tuple[np.ndarray, np.ndarray]:
        """Map the side coordinate ``s`` in [-1, 1] onto the reference square

        Parameters
        ----------
        side : int
            Side index in [0, 4).
        s : float
            Coordinate along the side.

        Returns
        -------
        point : np.ndarray
            (xi, eta) of the side point.
        tangent : np.ndarray
            d(xi, eta)/ds along the side.
        """
        if not (0 <= side < self.n_sides):
            raise ValueError(f"Side {side} out of range for {self.name}")
        a = self.corners[side]
        b = self.corners[(side + 1) % self.n_sides]
        return 0.5 * (1 - s) * a + 0.5 * (1 + s) * b, 0.5 * (b - a)

    def shape_functions(self, xi: float, eta: float) -> np.ndarray:
        raise NotImplementedError

    def shape_function_derivatives(self, xi: float, eta: float) -> Tuple[np.ndarray, np.ndarray]:
        raise NotImplementedError

    def __repr__(self):
        return f"<{self.name} reference element>"


class QUAD4(QUAD):
    """4-node Bilinear Quadrilateral"""

    name = "QUAD4"
    n_nodes = 4
    default_order = 2

    def shape_functions(self, xi: float, eta: float) -> np.ndarray:
        """Bilinear shape functions

        N0 = 0.25(1 - xi)(1 - eta)
        N1 = 0.25(1 + xi)(1 - eta)
        N2 = 0.25(1 + xi)(1 + eta)
        N3 = 0.25(1 - xi)(1 + eta)
        """
        return 0.25 * np.array([
            (1 - xi) * (1 - eta),
            (1 + xi) * (1 - eta),
            (1 + xi) * (1 + eta),
            (1 - xi) * (1 + eta),
        ])

    def shape_function_derivatives(self, xi: float, eta: float) -> Tuple[np.ndarray, np.ndarray]:
        """Shape function derivatives

        Returns
        -------
        dN_dxi : np.ndarray
            Derivatives with respect to xi
        dN_deta : np.ndarray
            Derivatives with respect to eta
        """
        dN_dxi = 0.25 * np.array([-(1 - eta), (1 - eta), (1 + eta), -(1 + eta)])
        dN_deta = 0.25 * np.array([-(1 - xi), -(1 + xi), (1 + xi), (1 - xi)])
        return dN_dxi, dN_deta


class QUAD8(QUAD):
    """8-node Serendipity Quadrilateral"""

    name = "QUAD8"
    n_nodes = 8
    default_order = 4

    def shape_functions(self, xi: float, eta: float) -> np.ndarray:
        """Serendipity shape functions

        Corners:    N = 0.25 (1 + xi_i xi)(1 + eta_i eta)(xi_i xi + eta_i eta - 1)
        Mid-sides:  N = 0.5 (1 - xi^2)(1 + eta_i eta)  or  0.5 (1 + xi_i xi)(1 - eta^2)
        """
        xc, yc = self.corners[:, 0], self.corners[:, 1]
        corners = 0.25 * (1 + xc * xi) * (1 + yc * eta) * (xc * xi + yc * eta - 1)
        midsides = [
            0.5 * (1 - xi**2) * (1 - eta),
            0.5 * (1 + xi) * (1 - eta**2),
            0.5 * (1 - xi**2) * (1 + eta),
            0.5 * (1 - xi) * (1 - eta**2),
        ]
        return np.concatenate([corners, midsides])

    def shape_function_derivatives(self, xi: float, eta: float) -> Tuple[np.ndarray, np.ndarray]:
        """Analytical derivatives of shape functions

        Corner nodes use the compact form with (xi_i, eta_i) = corner
        coordinates:

            dN/dxi  = 0.25 xi_i  (1 + eta_i eta)(2 xi_i xi + eta_i eta)
            dN/deta = 0.25 eta_i (1 + xi_i xi)(xi_i xi + 2 eta_i eta)
        """
        xc, yc = self.corners[:, 0], self.corners[:, 1]
        corner_dxi = 0.25 * xc * (1 + yc * eta) * (2 * xc * xi + yc * eta)
        corner_deta = 0.25 * yc * (1 + xc * xi) * (xc * xi + 2 * yc * eta)

        midside_dxi = [-xi * (1 - eta), 0.5 * (1 - eta**2), -xi * (1 + eta), -0.5 * (1 - eta**2)]
        midside_deta = [-0.5 * (1 - xi**2), -(1 + xi) * eta, 0.5 * (1 - xi**2), -(1 - xi) * eta]
        return np.concatenate([corner_dxi, midside_dxi]), np.concatenate([corner_deta, midside_deta])


def _lagrange_quadratic(s: float) -> np.ndarray:
    """1D quadratic Lagrange polynomials with nodes at s = -1, 0, 1"""
    return np.array([0.5 * s * (s - 1), 1 - s**2, 0.5 * s * (s + 1)])


def _lagrange_quadratic_derivative(s: float) -> np.ndarray:
    return np.array([s - 0.5, -2 * s, s + 0.5])


class QUAD9(QUAD):
    """9-node Lagrange Quadrilateral

    Shape functions are tensor products of 1D quadratic Lagrange polynomials,
    N_k(xi, eta) = L_i(xi) L_j(eta), with (i, j) the 1D node indices of node
    k (0 -> -1, 1 -> 0, 2 -> +1).
    """

    name = "QUAD9"
    n_nodes = 9
    default_order = 4

    # 1D node indices (i, j) of each node
    _I = np.array([0, 2, 2, 0, 1, 2, 1, 0, 1])
    _J = np.array([0, 0, 2, 2, 0, 1, 2, 1, 1])

    def shape_functions(self, xi: float, eta: float) -> np.ndarray:
        """Biquadratic shape functions"""
        return _lagrange_quadratic(xi)[self._I] * _lagrange_quadratic(eta)[self._J]

    def shape_function_derivatives(self, xi: float, eta: float) -> Tuple[np.ndarray, np.ndarray]:
        Lx, Ly = _lagrange_quadratic(xi), _lagrange_quadratic(eta)
        dLx, dLy = _lagrange_quadratic_derivative(xi), _lagrange_quadratic_derivative(eta)
        return dLx[self._I] * Ly[self._J], Lx[self._I] * dLy[self._J]
