"""
Finite element evaluation context.

``FEBase`` evaluates, on one element, the data consumed by the structural
kernels at every quadrature point:

- ``phi``     : shape-function values, shape (n_phi, n_qp)
- ``dphi``    : gradients in the element local frame, shape (n_phi, n_qp, 2)
- ``JxW``     : quadrature weight times Jacobian determinant, shape (n_qp,)
- ``xyz``     : physical (global) point, shape (n_qp, 3)
- ``qpoints`` : reference coordinates (xi, eta, zeta), shape (n_qp, 3)
- ``normals`` : outward in-plane normals in the local frame, side
  evaluations only, shape (n_qp, 3)

Gradients are taken with respect to the local in-plane coordinates of a
``PlaneElement``:

    [dN/dx, dN/dy]^T = J^-T [dN/dxi, dN/deta]^T,
    J = | dx/dxi  dx/deta |
        | dy/dxi  dy/deta |
"""

from typing import Optional

import numpy as np

from fem_panel.elements.elements import PlaneElement
from fem_panel.numerics.quadrature import gauss_line


class FEBase:
    """Shape function and quadrature evaluator for one element.

    Parameters
    ----------
    quadrature_order : int, optional
        Polynomial degree integrated exactly. Defaults to the reference
        element's full integration order.
    """

    def __init__(self, quadrature_order: Optional[int] = None):
        self.quadrature_order = quadrature_order
        self._phi = None
        self._dphi = None
        self._JxW = None
        self._xyz = None
        self._qpoints = None
        self._normals = None

    def init(self, elem: PlaneElement, qpoints: Optional[np.ndarray] = None) -> None:
        """Evaluate on the element interior.

        Parameters
        ----------
        elem : PlaneElement
            Element to evaluate.
        qpoints : np.ndarray, optional
            Reference points (n x 2 or n x 3). When given, they replace the
            quadrature rule and carry unit weights; a third column (through
            thickness coordinate) is kept in ``qpoints``.
        """
        ref = elem.reference
        if qpoints is None:
            order = self.quadrature_order
            if order is None:
                order = ref.default_order
            points, weights = ref.quadrature(order)
            qpoints = np.column_stack([points, np.zeros(len(points))])
        else:
            qpoints = np.atleast_2d(np.asarray(qpoints, dtype=float))
            if qpoints.shape[1] == 2:
                qpoints = np.column_stack([qpoints, np.zeros(len(qpoints))])
            weights = np.ones(len(qpoints))

        n_qp = len(qpoints)
        self._allocate(elem.node_count, n_qp)
        self._qpoints = qpoints
        self._normals = None

        for qp in range(n_qp):
            xi, eta = qpoints[qp, :2]
            N, dN_dx, det_J = self._evaluate(elem, xi, eta)
            self._phi[:, qp] = N
            self._dphi[:, qp, :] = dN_dx
            self._JxW[qp] = det_J * weights[qp]
            self._xyz[qp] = elem.to_global(N @ elem.local_node_coords)[0]

    def init_for_side(self, elem: PlaneElement, side: int, compute_normals: bool = True) -> None:
        """Evaluate on one side of the element with a 1D Gauss rule.

        ``JxW`` carries the edge length element; ``dphi`` are the full
        in-plane gradients of the element shape functions at side points.
        """
        ref = elem.reference
        order = self.quadrature_order
        if order is None:
            order = ref.default_order
        s_points, s_weights = gauss_line(order)

        n_qp = len(s_points)
        self._allocate(elem.node_count, n_qp)
        self._qpoints = np.zeros((n_qp, 3))
        self._normals = np.zeros((n_qp, 3)) if compute_normals else None

        for qp, (s, w) in enumerate(zip(s_points, s_weights)):
            point, dxi_ds = ref.side_point(side, s)
            xi, eta = point
            N, dN_dx, _ = self._evaluate(elem, xi, eta)

            J = self._jacobian(elem, xi, eta)
            tangent = J @ dxi_ds
            length = np.linalg.norm(tangent)

            self._qpoints[qp, :2] = point
            self._phi[:, qp] = N
            self._dphi[:, qp, :] = dN_dx
            self._JxW[qp] = w * length
            self._xyz[qp] = elem.to_global(N @ elem.local_node_coords)[0]
            if compute_normals:
                # counter-clockwise nodes: outward normal is to the right of the tangent
                self._normals[qp, :2] = np.array([tangent[1], -tangent[0]]) / length

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def phi(self) -> np.ndarray:
        return self._require(self._phi)

    @property
    def dphi(self) -> np.ndarray:
        return self._require(self._dphi)

    @property
    def JxW(self) -> np.ndarray:
        return self._require(self._JxW)

    @property
    def xyz(self) -> np.ndarray:
        return self._require(self._xyz)

    @property
    def qpoints(self) -> np.ndarray:
        return self._require(self._qpoints)

    @property
    def normals(self) -> np.ndarray:
        if self._normals is None:
            raise RuntimeError("Normals are only available after init_for_side()")
        return self._normals

    @property
    def n_shape_functions(self) -> int:
        return self.phi.shape[0]

    @property
    def n_qp(self) -> int:
        return self.phi.shape[1]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _allocate(self, n_phi: int, n_qp: int) -> None:
        self._phi = np.zeros((n_phi, n_qp))
        self._dphi = np.zeros((n_phi, n_qp, 2))
        self._JxW = np.zeros(n_qp)
        self._xyz = np.zeros((n_qp, 3))

    @staticmethod
    def _jacobian(elem: PlaneElement, xi: float, eta: float) -> np.ndarray:
        dN_dxi, dN_deta = elem.reference.shape_function_derivatives(xi, eta)
        x = elem.local_node_coords[:, 0]
        y = elem.local_node_coords[:, 1]
        return np.array([
            [dN_dxi @ x, dN_deta @ x],
            [dN_dxi @ y, dN_deta @ y],
        ])

    def _evaluate(self, elem: PlaneElement, xi: float, eta: float):
        N = elem.reference.shape_functions(xi, eta)
        dN_dxi, dN_deta = elem.reference.shape_function_derivatives(xi, eta)
        J = self._jacobian(elem, xi, eta)
        det_J = np.linalg.det(J)
        if det_J <= 1e-12:
            raise ValueError(f"Non-positive Jacobian at ({xi}, {eta}) in element {elem.id}")
        dN_dx = np.linalg.solve(J.T, np.vstack([dN_dxi, dN_deta])).T
        return N, dN_dx, det_J

    @staticmethod
    def _require(value):
        if value is None:
            raise RuntimeError("FEBase accessed before init()")
        return value


def build_fe(elem: PlaneElement, quadrature_order: Optional[int] = None) -> FEBase:
    """Default FE factory used by the structural elements"""
    return FEBase(quadrature_order)
