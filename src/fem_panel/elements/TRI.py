"""Reference Triangular Element (TRI3)

Linear triangle on the reference simplex (0,0), (1,0), (0,1) with area
coordinates L1 = 1 - xi - eta, L2 = xi, L3 = eta.

    2
    | \\
    |   \\
    0-----1
"""

from typing import Tuple

import numpy as np

from fem_panel.numerics.quadrature import gauss_triangle


class TRI3:
    """3-node Linear Triangle"""

    name = "TRI3"
    n_nodes = 3
    default_order = 2
    corners = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])

    @property
    def n_sides(self) -> int:
        return 3

    def quadrature(self, order: int) -> Tuple[np.ndarray, np.ndarray]:
        return gauss_triangle(order)

    def side_point(self, side: int, s: float) -> Tuple[np.ndarray, np.ndarray]:
        """Map ``s`` in [-1, 1] onto side ``side`` (see ``QUAD.side_point``)"""
        if not (0 <= side < self.n_sides):
            raise ValueError(f"Side {side} out of range for {self.name}")
        a = self.corners[side]
        b = self.corners[(side + 1) % self.n_sides]
        return 0.5 * (1 - s) * a + 0.5 * (1 + s) * b, 0.5 * (b - a)

    def shape_functions(self, xi: float, eta: float) -> np.ndarray:
        return np.array([1 - xi - eta, xi, eta])

    def shape_function_derivatives(self, xi: float, eta: float) -> Tuple[np.ndarray, np.ndarray]:
        return np.array([-1.0, 1.0, 0.0]), np.array([-1.0, 0.0, 1.0])

    def __repr__(self):
        return f"<{self.name} reference element>"
