"""
Gauss quadrature rules for line, quadrilateral and triangular reference
elements.

Rules are selected by the polynomial degree they integrate exactly (the
quadrature "order"). Line and quadrilateral rules are Gauss-Legendre on
[-1, 1] (tensor product for the square); triangle rules use the parametric
coordinates (xi, eta) on the reference triangle (0,0), (1,0), (0,1), with the
1/2 area factor folded into the weights.

References:
    - Dunavant, D.A. "High degree efficient symmetrical Gaussian
      quadrature rules for the triangle." IJNME, 21(6), 1985.
"""

from typing import Tuple

import numpy as np
from numpy.polynomial.legendre import leggauss


def n_gauss_points(order: int) -> int:
    """Number of 1D Gauss points exact for polynomials of degree ``order``."""
    if order < 0:
        raise ValueError(f"Quadrature order must be non-negative: {order}")
    return order // 2 + 1


def gauss_line(order: int) -> Tuple[np.ndarray, np.ndarray]:
    """Gauss-Legendre rule on [-1, 1].

    Returns
    -------
    points : ndarray, shape (n,)
    weights : ndarray, shape (n,)
    """
    return leggauss(n_gauss_points(order))


def gauss_quad(order: int) -> Tuple[np.ndarray, np.ndarray]:
    """Tensor-product Gauss rule on [-1, 1]^2.

    Returns
    -------
    points : ndarray, shape (n*n, 2)
        (xi, eta) coordinates, xi varying fastest.
    weights : ndarray, shape (n*n,)
    """
    x, w = gauss_line(order)
    xi, eta = np.meshgrid(x, x)
    points = np.column_stack([xi.ravel(), eta.ravel()])
    weights = np.outer(w, w).ravel()
    return points, weights


def gauss_triangle_1pt() -> Tuple[np.ndarray, np.ndarray]:
    """Centroid rule, exact for degree 1."""
    return np.array([[1.0 / 3.0, 1.0 / 3.0]]), np.array([0.5])


def gauss_triangle_3pt() -> Tuple[np.ndarray, np.ndarray]:
    """Three interior points, exact for degree 2."""
    points = np.array([
        [1.0 / 6.0, 1.0 / 6.0],
        [2.0 / 3.0, 1.0 / 6.0],
        [1.0 / 6.0, 2.0 / 3.0],
    ])
    return points, np.full(3, 1.0 / 6.0)


def gauss_triangle_7pt() -> Tuple[np.ndarray, np.ndarray]:
    """Seven point Dunavant rule, exact for degree 5."""
    a1, b1, w1 = 0.059715871789770, 0.470142064105115, 0.132394152788506
    a2, b2, w2 = 0.797426985353087, 0.101286507323456, 0.125939180544827
    points = np.array([
        [1.0 / 3.0, 1.0 / 3.0],
        [b1, b1],
        [a1, b1],
        [b1, a1],
        [b2, b2],
        [a2, b2],
        [b2, a2],
    ])
    weights = np.array([0.225, w1, w1, w1, w2, w2, w2]) * 0.5
    return points, weights


def gauss_triangle(order: int) -> Tuple[np.ndarray, np.ndarray]:
    """Select the cheapest triangle rule exact for degree ``order``."""
    if order <= 1:
        return gauss_triangle_1pt()
    if order == 2:
        return gauss_triangle_3pt()
    if order <= 5:
        return gauss_triangle_7pt()
    raise ValueError(f"No triangle rule available for order {order}")
