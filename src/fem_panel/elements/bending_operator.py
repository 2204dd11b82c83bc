"""Bending strain operators for 2D structural elements.

The bending operator supplies the curvature operator used by the structural
kernels and, for shear-deformable models, the transverse shear energy
contribution. For the Mindlin-Reissner plate model with rotations
(theta_x, theta_y) about the local axes:

    kappa = { d(theta_y)/dx,  -d(theta_x)/dy,  d(theta_y)/dy - d(theta_x)/dx }
    gamma = { dw/dx + theta_y,  dw/dy - theta_x }

The bending strain at a distance z from the reference plane is z * kappa.
Transverse shear is integrated with a quadrature rule one order below the
element rule to relieve shear locking.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Optional

import numpy as np

from fem_panel.numerics.fem_operator_matrix import FEMOperatorMatrix

if TYPE_CHECKING:
    from fem_panel.core.function import FieldFunction, Parameter
    from fem_panel.elements.fe import FEBase
    from fem_panel.elements.structural_element_2d import StructuralElement2D

logger = logging.getLogger(__name__)

# variable indices in the nodal DOF layout
W, THETA_X, THETA_Y = 2, 3, 4


class BendingModel(str, Enum):
    """Plate bending kinematics."""

    NO_BENDING = "no_bending"
    MINDLIN = "mindlin"
    DKT = "dkt"


class BendingOperator2D(ABC):
    """Interface of the bending operator consumed by ``StructuralElement2D``."""

    def __init__(self, structural_element: "StructuralElement2D"):
        self._structural_elem = structural_element

    @abstractmethod
    def include_transverse_shear_energy(self) -> bool:
        """Whether the transverse shear residual must be added."""

    @abstractmethod
    def initialize_bending_strain_operator(
        self, fe: "FEBase", qp: int, Bmat: FEMOperatorMatrix
    ) -> None:
        """Curvature operator (bending strain per unit z) at ``qp``."""

    @abstractmethod
    def initialize_bending_strain_operator_for_z(
        self, fe: "FEBase", qp: int, z: float, Bmat: FEMOperatorMatrix
    ) -> None:
        """Bending strain operator at the physical depth ``z``."""

    def calculate_transverse_shear_residual(
        self, request_jacobian: bool, local_f: np.ndarray, local_jac: np.ndarray
    ) -> bool:
        return False

    def calculate_transverse_shear_residual_sensitivity(
        self,
        parameter: "Parameter",
        request_jacobian: bool,
        local_f: np.ndarray,
        local_jac: np.ndarray,
    ) -> bool:
        return False

    def calculate_transverse_shear_residual_boundary_velocity(
        self,
        parameter: "Parameter",
        side: int,
        vel_f: "FieldFunction",
        local_f: np.ndarray,
    ) -> None:
        return None


class MindlinBendingOperator2D(BendingOperator2D):
    """First-order shear deformation (Mindlin-Reissner) plate bending."""

    def include_transverse_shear_energy(self) -> bool:
        return True

    def initialize_bending_strain_operator(
        self, fe: "FEBase", qp: int, Bmat: FEMOperatorMatrix
    ) -> None:
        self.initialize_bending_strain_operator_for_z(fe, qp, 1.0, Bmat)

    def initialize_bending_strain_operator_for_z(
        self, fe: "FEBase", qp: int, z: float, Bmat: FEMOperatorMatrix
    ) -> None:
        dphi_x = fe.dphi[:, qp, 0]
        dphi_y = fe.dphi[:, qp, 1]

        Bmat.set_shape_function(0, THETA_Y, z * dphi_x)  # d(theta_y)/dx
        Bmat.set_shape_function(1, THETA_X, -z * dphi_y)  # -d(theta_x)/dy
        Bmat.set_shape_function(2, THETA_X, -z * dphi_x)  # -d(theta_x)/dx
        Bmat.set_shape_function(2, THETA_Y, z * dphi_y)  # d(theta_y)/dy

    def _initialize_transverse_shear_operator(
        self, fe: "FEBase", qp: int, Bmat: FEMOperatorMatrix
    ) -> None:
        phi = fe.phi[:, qp]
        Bmat.set_shape_function(0, W, fe.dphi[:, qp, 0])  # gamma_xz
        Bmat.set_shape_function(0, THETA_Y, phi)
        Bmat.set_shape_function(1, W, fe.dphi[:, qp, 1])  # gamma_yz
        Bmat.set_shape_function(1, THETA_X, -phi)

    def _shear_loop(self, fe, JxW, shear_mat_fn, local_f, local_jac):
        elem = self._structural_elem
        n_phi = fe.n_shape_functions
        u = elem.local_solution
        xyz = fe.xyz

        Bmat_trans = FEMOperatorMatrix()
        Bmat_trans.reinit(2, 6, n_phi)

        for qp in range(len(JxW)):
            S = shear_mat_fn(xyz[qp])
            self._initialize_transverse_shear_operator(fe, qp, Bmat_trans)

            gamma = Bmat_trans.vector_mult(u)
            local_f += JxW[qp] * Bmat_trans.vector_mult_transpose(S @ gamma)

            if local_jac is not None:
                mat = Bmat_trans.left_multiply(S)
                local_jac += JxW[qp] * Bmat_trans.right_multiply_transpose(mat)

    def calculate_transverse_shear_residual(
        self, request_jacobian: bool, local_f: np.ndarray, local_jac: np.ndarray
    ) -> bool:
        elem = self._structural_elem
        fe = elem.build_fe(reduced=True)
        fe.init(elem.elem)

        shear = elem.property.transverse_shear_stiffness_matrix()
        self._shear_loop(
            fe,
            fe.JxW,
            lambda x: shear(x, elem.time),
            local_f,
            local_jac if request_jacobian else None,
        )
        return request_jacobian

    def calculate_transverse_shear_residual_sensitivity(
        self,
        parameter: "Parameter",
        request_jacobian: bool,
        local_f: np.ndarray,
        local_jac: np.ndarray,
    ) -> bool:
        elem = self._structural_elem
        shear = elem.property.transverse_shear_stiffness_matrix()
        if not shear.depends_on(parameter):
            logger.debug("Transverse shear of element %d independent of %s", elem.elem.id, parameter)
            return False

        fe = elem.build_fe(reduced=True)
        fe.init(elem.elem)
        self._shear_loop(
            fe,
            fe.JxW,
            lambda x: shear.derivative(parameter, x, elem.time),
            local_f,
            local_jac if request_jacobian else None,
        )
        return request_jacobian

    def calculate_transverse_shear_residual_boundary_velocity(
        self,
        parameter: "Parameter",
        side: int,
        vel_f: "FieldFunction",
        local_f: np.ndarray,
    ) -> None:
        elem = self._structural_elem
        fe = elem.build_fe(reduced=True)
        fe.init_for_side(elem.elem, side, compute_normals=True)

        JxW_Vn = elem.boundary_velocity_weights(fe, vel_f)
        shear = elem.property.transverse_shear_stiffness_matrix()
        self._shear_loop(fe, JxW_Vn, lambda x: shear(x, elem.time), local_f, None)


def build_bending_operator_2d(
    model: BendingModel, structural_element: "StructuralElement2D"
) -> Optional[BendingOperator2D]:
    """Bending operator for ``model``; ``None`` for membrane-only sections"""
    model = BendingModel(model)
    if model == BendingModel.NO_BENDING:
        return None
    if model == BendingModel.MINDLIN:
        return MindlinBendingOperator2D(structural_element)
    raise NotImplementedError(f"Bending model '{model.value}' is not implemented for 2D elements")
