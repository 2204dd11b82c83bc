"""
Nonlinear 2D Structural Element

Residual and tangent assembly for plate/panel elements with membrane,
bending (through a bending operator), von Karman large-deflection, thermal,
prestress, surface pressure and piston theory loads, together with the
parameter sensitivity of each contribution.

Kinematics:
    ε_mem  = { u,x ,  v,y ,  u,y + v,x }
    ε_vk   = { ½ w,x² ,  ½ w,y² ,  w,x w,y }
    ε(z)   = ε_mem + ε_vk + z κ

Section resultants with A, B, D the section stiffness matrices:
    N = A (ε_mem + ε_vk) + B κ
    M = Bᵀ (ε_mem + ε_vk) + D κ

Internal force at a quadrature point:
    f = Bmemᵀ N + Bvkᵀ (Gᵀ N) + Bbendᵀ M

where G (``vk_dwdxi``) is the 3x2 matrix with dε_vk = G d{w,x, w,y}:

    G = | w,x   0  |
        |  0   w,y |
        | w,y  w,x |

DOF layout:
    Six variables per node (u, v, w, θx, θy, θz), ordered variable-major:
    the DOF of variable k at node i is at index k * n_phi + i. All kernels
    work in the element local frame; contributions are rotated to the global
    frame before they are added to the caller's buffers.

Sign conventions:
    Internal, prestress and boundary velocity contributions are added
    (``f +=``); thermal, surface pressure and piston theory loads are
    subtracted (``f -=``), so that f is "internal force minus load".
"""

import logging
from typing import Callable, Optional

import numpy as np

from fem_panel.core.bc import BoundaryConditionBase, PistonTheoryBoundaryCondition
from fem_panel.core.config import AnalysisOptions
from fem_panel.core.errors import UnsupportedAnalysisError
from fem_panel.core.function import FieldFunction, Parameter
from fem_panel.elements.bending_operator import BendingOperator2D, build_bending_operator_2d
from fem_panel.elements.elements import ElementDimension, FemElement, PlaneElement
from fem_panel.elements.fe import FEBase, build_fe
from fem_panel.numerics.fem_operator_matrix import FEMOperatorMatrix
from fem_panel.postprocess.stress_output import StressStrainOutput

logger = logging.getLogger(__name__)

N_VARS = 6
U, V, W, THETA_X, THETA_Y, THETA_Z = range(N_VARS)

N_DIRECT_STRAIN = 3
N_VON_KARMAN_STRAIN = 2


def _stress_tensor(vec: np.ndarray) -> np.ndarray:
    """{σxx, σyy, σxy} -> 2x2 tensor"""
    return np.array([[vec[0], vec[2]], [vec[2], vec[1]]])


def _stress_vector(mat: np.ndarray) -> np.ndarray:
    """2x2 tensor -> {σxx, σyy, σxy}"""
    return np.array([mat[0, 0], mat[1, 1], mat[0, 1]])


def _to_3d(vec: np.ndarray) -> np.ndarray:
    """{xx, yy, xy} -> {xx, yy, zz, xy, yz, zx} (rows for matrices)"""
    out = np.zeros((6,) + vec.shape[1:])
    out[0], out[1], out[3] = vec[0], vec[1], vec[2]
    return out


class StructuralElement2D:
    """
    Nonlinear structural element for 2D (plate and panel) elements.

    The element context owns the FE evaluator for the element interior, the
    bending operator and the local solution vectors. It is used by one
    thread at a time; all scratch storage is local to each call.

    Parameters
    ----------
    elem : PlaneElement
        Element geometry.
    property : Solid2DSectionElementPropertyCard
        Section property card.
    options : AnalysisOptions, optional
        Analysis switches (follower forces, Jacobian policy, quadrature).
    fe_factory : callable, optional
        ``fe_factory(elem, quadrature_order) -> FEBase``. Defaults to
        ``build_fe``.
    bending_operator : BendingOperator2D, optional
        Replaces the operator built from the section bending model.
    """

    def __init__(
        self,
        elem: PlaneElement,
        property,
        options: Optional[AnalysisOptions] = None,
        fe_factory: Optional[Callable[[FemElement, Optional[int]], FEBase]] = None,
        bending_operator: Optional[BendingOperator2D] = None,
    ):
        if elem.dim != ElementDimension.TWO:
            raise ValueError(f"StructuralElement2D requires a 2D element, got dim={elem.dim}")

        self.elem = elem
        self.property = property
        self.options = options if options is not None else AnalysisOptions()
        self.follower_forces = self.options.follower_forces
        self.time = 0.0

        self._fe_factory = fe_factory if fe_factory is not None else build_fe
        self._Tdof = elem.dof_transformation_matrix()

        self._fe = self.build_fe()
        self._fe.init(elem)
        n2 = N_VARS * self._fe.n_shape_functions
        if n2 != self._Tdof.shape[0]:
            raise ValueError(
                f"FE has {self._fe.n_shape_functions} shape functions for "
                f"{elem.node_count} nodes in element {elem.id}"
            )

        self.local_solution = np.zeros(n2)
        self.local_velocity = np.zeros(n2)
        self.local_solution_sensitivity = np.zeros(n2)

        if property.if_bending:
            self.bending_operator = (
                bending_operator
                if bending_operator is not None
                else build_bending_operator_2d(property.bending_model(elem), self)
            )
        else:
            self.bending_operator = None

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    @property
    def dim(self) -> int:
        return int(self.elem.dim)

    @property
    def fe(self) -> FEBase:
        return self._fe

    @property
    def n_dofs(self) -> int:
        return self.local_solution.size

    @staticmethod
    def n_direct_strain_components() -> int:
        return N_DIRECT_STRAIN

    @staticmethod
    def n_von_karman_strain_components() -> int:
        return N_VON_KARMAN_STRAIN

    def build_fe(self, reduced: bool = False) -> FEBase:
        """New FE evaluator for this element; ``reduced`` lowers the rule by one order"""
        order = self.options.quadrature_order
        if order is None:
            order = self.elem.reference.default_order
        if reduced:
            order = max(order - 1, 0)
        return self._fe_factory(self.elem, order)

    def set_solution(self, sol: np.ndarray, if_sens: bool = False) -> None:
        """Set the element solution (global frame) or its sensitivity"""
        local = self.transform_vector_to_local_system(self._check_size(sol))
        if if_sens:
            self.local_solution_sensitivity = local
        else:
            self.local_solution = local

    def set_solution_sensitivity(self, sol_sens: np.ndarray) -> None:
        self.set_solution(sol_sens, if_sens=True)

    def set_velocity(self, vel: np.ndarray) -> None:
        self.local_velocity = self.transform_vector_to_local_system(self._check_size(vel))

    def set_time(self, time: float) -> None:
        self.time = float(time)

    def transform_vector_to_local_system(self, vec: np.ndarray) -> np.ndarray:
        return self._Tdof.T @ vec

    def transform_vector_to_global_system(self, vec: np.ndarray) -> np.ndarray:
        return self._Tdof @ vec

    def transform_matrix_to_global_system(self, mat: np.ndarray) -> np.ndarray:
        return self._Tdof @ mat @ self._Tdof.T

    def boundary_velocity_weights(self, fe: FEBase, vel_f: FieldFunction) -> np.ndarray:
        """Side quadrature weights multiplied by the normal boundary velocity V·n"""
        T = self.elem.T_matrix
        weights = np.zeros(fe.n_qp)
        for qp in range(fe.n_qp):
            vel = T.T @ np.asarray(vel_f(fe.xyz[qp], self.time), dtype=float)
            weights[qp] = fe.JxW[qp] * (vel[:2] @ fe.normals[qp, :2])
        return weights

    def _check_size(self, vec: np.ndarray) -> np.ndarray:
        vec = np.asarray(vec, dtype=float)
        if vec.shape != (self.n_dofs,):
            raise ValueError(f"Expected element vector of size {self.n_dofs}, got {vec.shape}")
        return vec

    @property
    def _if_bending(self) -> bool:
        return self.bending_operator is not None

    def _new_operators(self, n_phi: int):
        Bmat_mem, Bmat_bend, Bmat_vk = FEMOperatorMatrix(), FEMOperatorMatrix(), FEMOperatorMatrix()
        Bmat_mem.reinit(N_DIRECT_STRAIN, N_VARS, n_phi)
        Bmat_bend.reinit(N_DIRECT_STRAIN, N_VARS, n_phi)
        Bmat_vk.reinit(N_VON_KARMAN_STRAIN, N_VARS, n_phi)
        return Bmat_mem, Bmat_bend, Bmat_vk

    # ------------------------------------------------------------------
    # Strain operators
    # ------------------------------------------------------------------

    def initialize_direct_strain_operator(self, qp: int, fe: FEBase, Bmat: FEMOperatorMatrix) -> None:
        """Membrane strain operator: ``Bmat @ u = {u,x, v,y, u,y + v,x}``"""
        dphi_x = fe.dphi[:, qp, 0]
        dphi_y = fe.dphi[:, qp, 1]

        Bmat.set_shape_function(0, U, dphi_x)  # epsilon_xx
        Bmat.set_shape_function(2, V, dphi_x)  # gamma_xy : v,x
        Bmat.set_shape_function(1, V, dphi_y)  # epsilon_yy
        Bmat.set_shape_function(2, U, dphi_y)  # gamma_xy : u,y

    @staticmethod
    def _fill_vk_dwdxi(vk_dwdxi: np.ndarray, dw_dx: float, dw_dy: float) -> None:
        vk_dwdxi[:] = 0.0
        vk_dwdxi[0, 0] = dw_dx
        vk_dwdxi[2, 1] = dw_dx
        vk_dwdxi[1, 1] = dw_dy
        vk_dwdxi[2, 0] = dw_dy

    def _w_gradient(self, qp: int, fe: FEBase, sol: np.ndarray):
        n_phi = fe.n_shape_functions
        w = sol[W * n_phi:(W + 1) * n_phi]
        return fe.dphi[:, qp, 0] @ w, fe.dphi[:, qp, 1] @ w

    def initialize_von_karman_strain_operator(
        self,
        qp: int,
        fe: FEBase,
        vk_strain: np.ndarray,
        vk_dwdxi: np.ndarray,
        Bmat_vk: FEMOperatorMatrix,
    ) -> None:
        """von Karman strain at ``qp`` from the current solution.

        Fills, in place, ``vk_strain`` (3) with {½w,x², ½w,y², w,x w,y},
        ``vk_dwdxi`` (3x2) with the linearization coefficients G and
        ``Bmat_vk`` with the operator u -> {w,x, w,y}.
        """
        dw_dx, dw_dy = self._w_gradient(qp, fe, self.local_solution)
        self._fill_vk_dwdxi(vk_dwdxi, dw_dx, dw_dy)

        vk_strain[0] = 0.5 * dw_dx * dw_dx
        vk_strain[1] = 0.5 * dw_dy * dw_dy
        vk_strain[2] = dw_dx * dw_dy

        Bmat_vk.set_shape_function(0, W, fe.dphi[:, qp, 0])  # dw/dx
        Bmat_vk.set_shape_function(1, W, fe.dphi[:, qp, 1])  # dw/dy

    def initialize_von_karman_strain_operator_sensitivity(
        self, qp: int, fe: FEBase, vk_dwdxi_sens: np.ndarray
    ) -> None:
        """Linearization coefficients evaluated from the solution sensitivity"""
        dw_dx, dw_dy = self._w_gradient(qp, fe, self.local_solution_sensitivity)
        self._fill_vk_dwdxi(vk_dwdxi_sens, dw_dx, dw_dy)

    # ------------------------------------------------------------------
    # Residual/Jacobian kernel
    # ------------------------------------------------------------------

    def _internal_residual_operation(
        self,
        if_vk: bool,
        qp: int,
        fe: FEBase,
        JxW: np.ndarray,
        request_jacobian: bool,
        local_f: np.ndarray,
        local_jac: Optional[np.ndarray],
        Bmat_mem: FEMOperatorMatrix,
        Bmat_bend: FEMOperatorMatrix,
        Bmat_vk: FEMOperatorMatrix,
        material_A: np.ndarray,
        material_B: Optional[np.ndarray],
        material_D: Optional[np.ndarray],
    ) -> None:
        """Accumulate internal force and tangent of one quadrature point"""
        if_bending = self._if_bending
        u = self.local_solution
        w = JxW[qp]

        vk_strain = np.zeros(N_DIRECT_STRAIN)
        vk_dwdxi = np.zeros((N_DIRECT_STRAIN, N_VON_KARMAN_STRAIN))

        self.initialize_direct_strain_operator(qp, fe, Bmat_mem)
        strain_mem = Bmat_mem.vector_mult(u)

        # linear stress resultant: membrane and membrane-bending coupling
        stress_l = material_A @ strain_mem
        if if_bending:
            self.bending_operator.initialize_bending_strain_operator(fe, qp, Bmat_bend)
            strain_bend = Bmat_bend.vector_mult(u)
            stress_l = stress_l + material_B @ strain_bend
            if if_vk:
                self.initialize_von_karman_strain_operator(qp, fe, vk_strain, vk_dwdxi, Bmat_vk)

        stress = stress_l + material_A @ vk_strain
        strain_direct = strain_mem + vk_strain

        local_f += w * Bmat_mem.vector_mult_transpose(stress)
        if if_bending:
            if if_vk:
                local_f += w * Bmat_vk.vector_mult_transpose(vk_dwdxi.T @ stress)
            # coupling: B^T (epsilon_mem + epsilon_vk)
            local_f += w * Bmat_bend.vector_mult_transpose(material_B.T @ strain_direct)
            local_f += w * Bmat_bend.vector_mult_transpose(material_D @ strain_bend)

        if not request_jacobian:
            return

        # membrane - membrane
        mat = Bmat_mem.left_multiply(material_A)
        local_jac += w * Bmat_mem.right_multiply_transpose(mat)

        if not if_bending:
            return

        if if_vk:
            # membrane - vk
            mat = Bmat_vk.left_multiply(material_A @ vk_dwdxi)
            local_jac += w * Bmat_mem.right_multiply_transpose(mat)

            # vk - membrane
            mat = Bmat_mem.left_multiply(vk_dwdxi.T @ material_A)
            local_jac += w * Bmat_vk.right_multiply_transpose(mat)

            if self.options.linearized_vk_jacobian:
                # vk - vk: first order term, linear stress only
                mat = Bmat_vk.left_multiply(_stress_tensor(stress_l))
                local_jac += w * Bmat_vk.right_multiply_transpose(mat)
            else:
                # vk - vk: stress
                mat = Bmat_vk.left_multiply(_stress_tensor(stress))
                local_jac += w * Bmat_vk.right_multiply_transpose(mat)

                # vk - vk: stiffness
                mat = Bmat_vk.left_multiply(vk_dwdxi.T @ material_A @ vk_dwdxi)
                local_jac += w * Bmat_vk.right_multiply_transpose(mat)

            # bending - vk
            mat = Bmat_vk.left_multiply(material_B.T @ vk_dwdxi)
            local_jac += w * Bmat_bend.right_multiply_transpose(mat)

            # vk - bending
            mat = Bmat_bend.left_multiply(vk_dwdxi.T @ material_B)
            local_jac += w * Bmat_vk.right_multiply_transpose(mat)

        # bending - membrane
        mat = Bmat_mem.left_multiply(material_B.T)
        local_jac += w * Bmat_bend.right_multiply_transpose(mat)

        # membrane - bending
        mat = Bmat_bend.left_multiply(material_B)
        local_jac += w * Bmat_mem.right_multiply_transpose(mat)

        # bending - bending
        mat = Bmat_bend.left_multiply(material_D)
        local_jac += w * Bmat_bend.right_multiply_transpose(mat)

    def _section_matrices(self, xyz, derivative: Optional[Parameter] = None):
        """A, B, D at ``xyz`` (B and D only for bending sections)"""
        fns = [self.property.stiffness_A_matrix()]
        if self._if_bending:
            fns += [self.property.stiffness_B_matrix(), self.property.stiffness_D_matrix()]

        if derivative is None:
            values = [fn(xyz, self.time) for fn in fns]
        else:
            values = [fn.derivative(derivative, xyz, self.time) for fn in fns]
        if len(values) == 1:
            values += [None, None]
        return values

    # ------------------------------------------------------------------
    # Internal residual
    # ------------------------------------------------------------------

    def internal_residual(self, request_jacobian: bool, f: np.ndarray, jac: np.ndarray) -> bool:
        """Add the internal force (and tangent) of the element.

        Parameters
        ----------
        request_jacobian : bool
            Also accumulate the tangent into ``jac``.
        f : np.ndarray
            Residual accumulator (n_dofs), global frame.
        jac : np.ndarray
            Tangent accumulator (n_dofs x n_dofs), global frame.

        Returns
        -------
        bool
            Whether a Jacobian contribution was added.
        """
        fe = self._fe
        JxW, xyz = fe.JxW, fe.xyz
        n_phi = fe.n_shape_functions
        n2 = N_VARS * n_phi

        local_f = np.zeros(n2)
        local_jac = np.zeros((n2, n2))
        Bmat_mem, Bmat_bend, Bmat_vk = self._new_operators(n_phi)
        if_vk = self.property.if_vk

        for qp in range(len(JxW)):
            material_A, material_B, material_D = self._section_matrices(xyz[qp])
            self._internal_residual_operation(
                if_vk, qp, fe, JxW, request_jacobian, local_f, local_jac,
                Bmat_mem, Bmat_bend, Bmat_vk, material_A, material_B, material_D,
            )

        if self._if_bending and self.bending_operator.include_transverse_shear_energy():
            self.bending_operator.calculate_transverse_shear_residual(
                request_jacobian, local_f, local_jac
            )

        f += self.transform_vector_to_global_system(local_f)

        if request_jacobian:
            # drilling rotation has no stiffness of its own
            idx = np.arange(THETA_Z * n_phi, (THETA_Z + 1) * n_phi)
            local_jac[idx, idx] += self.options.drilling_stiffness
            jac += self.transform_matrix_to_global_system(local_jac)

        return request_jacobian

    def internal_residual_sensitivity(
        self, parameter: Parameter, request_jacobian: bool, f: np.ndarray, jac: np.ndarray
    ) -> bool:
        """Partial derivative of the internal residual (and tangent) w.r.t. ``parameter``"""
        if parameter.is_shape_parameter:
            raise NotImplementedError(
                f"Shape sensitivity of the internal residual is not implemented ({parameter.name})"
            )
        if not self.property.depends_on(parameter):
            logger.debug("Element %d: section does not depend on %s", self.elem.id, parameter.name)
            return False

        fe = self._fe
        JxW, xyz = fe.JxW, fe.xyz
        n_phi = fe.n_shape_functions
        n2 = N_VARS * n_phi

        local_f = np.zeros(n2)
        local_jac = np.zeros((n2, n2))
        Bmat_mem, Bmat_bend, Bmat_vk = self._new_operators(n_phi)
        if_vk = self.property.if_vk

        for qp in range(len(JxW)):
            dA, dB, dD = self._section_matrices(xyz[qp], derivative=parameter)
            self._internal_residual_operation(
                if_vk, qp, fe, JxW, request_jacobian, local_f, local_jac,
                Bmat_mem, Bmat_bend, Bmat_vk, dA, dB, dD,
            )

        if self._if_bending and self.bending_operator.include_transverse_shear_energy():
            self.bending_operator.calculate_transverse_shear_residual_sensitivity(
                parameter, request_jacobian, local_f, local_jac
            )

        f += self.transform_vector_to_global_system(local_f)
        if request_jacobian:
            jac += self.transform_matrix_to_global_system(local_jac)

        return request_jacobian

    def internal_residual_boundary_velocity(
        self, parameter: Parameter, side: int, vel_f: FieldFunction, f: np.ndarray
    ) -> None:
        """Boundary-velocity contribution of a shape parameter on ``side``.

        The internal residual integrand is integrated over the side with the
        quadrature weights scaled by the normal velocity V·n of the boundary.
        """
        fe = self.build_fe()
        fe.init_for_side(self.elem, side, compute_normals=True)

        JxW_Vn = self.boundary_velocity_weights(fe, vel_f)
        xyz = fe.xyz
        n_phi = fe.n_shape_functions
        n2 = N_VARS * n_phi

        local_f = np.zeros(n2)
        Bmat_mem, Bmat_bend, Bmat_vk = self._new_operators(n_phi)
        if_vk = self.property.if_vk

        for qp in range(len(JxW_Vn)):
            material_A, material_B, material_D = self._section_matrices(xyz[qp])
            self._internal_residual_operation(
                if_vk, qp, fe, JxW_Vn, False, local_f, None,
                Bmat_mem, Bmat_bend, Bmat_vk, material_A, material_B, material_D,
            )

        if self._if_bending and self.bending_operator.include_transverse_shear_energy():
            self.bending_operator.calculate_transverse_shear_residual_boundary_velocity(
                parameter, side, vel_f, local_f
            )

        f += self.transform_vector_to_global_system(local_f)

    def internal_residual_jac_dot_state_sensitivity(self, jac: np.ndarray) -> bool:
        """Directional derivative of the internal tangent along the solution sensitivity.

        Only the von Karman terms depend on the state. With G and δG the
        linearization matrices of the solution and of its sensitivity and
        δN = A (Bmem + G Bvk) δu + B Bbend δu:

            δJ = Bmemᵀ A δG Bvk  + Bvkᵀ δGᵀ A Bmem
               + Bvkᵀ δGᵀ B Bbend + Bbendᵀ Bᵀ δG Bvk
               + Bvkᵀ (δGᵀ A G + Gᵀ A δG) Bvk
               + Bvkᵀ δN Bvk

        Returns
        -------
        bool
            False when von Karman strain is inactive (the term vanishes).
        """
        if not self.property.if_vk:
            return False

        fe = self._fe
        JxW, xyz = fe.JxW, fe.xyz
        n_phi = fe.n_shape_functions
        n2 = N_VARS * n_phi
        u_sens = self.local_solution_sensitivity

        local_jac = np.zeros((n2, n2))
        Bmat_mem, Bmat_bend, Bmat_vk = self._new_operators(n_phi)
        vk_strain = np.zeros(N_DIRECT_STRAIN)
        vk_dwdxi = np.zeros((N_DIRECT_STRAIN, N_VON_KARMAN_STRAIN))
        vk_dwdxi_sens = np.zeros((N_DIRECT_STRAIN, N_VON_KARMAN_STRAIN))

        for qp in range(len(JxW)):
            material_A, material_B, _ = self._section_matrices(xyz[qp])
            w = JxW[qp]

            self.initialize_direct_strain_operator(qp, fe, Bmat_mem)
            self.bending_operator.initialize_bending_strain_operator(fe, qp, Bmat_bend)
            self.initialize_von_karman_strain_operator(qp, fe, vk_strain, vk_dwdxi, Bmat_vk)
            self.initialize_von_karman_strain_operator_sensitivity(qp, fe, vk_dwdxi_sens)

            # stress resultant sensitivity
            stress_sens = (
                material_A @ Bmat_mem.vector_mult(u_sens)
                + material_B @ Bmat_bend.vector_mult(u_sens)
                + material_A @ (vk_dwdxi @ Bmat_vk.vector_mult(u_sens))
            )

            # membrane - vk
            mat = Bmat_vk.left_multiply(material_A @ vk_dwdxi_sens)
            local_jac += w * Bmat_mem.right_multiply_transpose(mat)

            # vk - membrane
            mat = Bmat_mem.left_multiply(vk_dwdxi_sens.T @ material_A)
            local_jac += w * Bmat_vk.right_multiply_transpose(mat)

            # vk - bending
            mat = Bmat_bend.left_multiply(vk_dwdxi_sens.T @ material_B)
            local_jac += w * Bmat_vk.right_multiply_transpose(mat)

            # bending - vk
            mat = Bmat_vk.left_multiply(material_B.T @ vk_dwdxi_sens)
            local_jac += w * Bmat_bend.right_multiply_transpose(mat)

            # vk - vk: stiffness
            mat = Bmat_vk.left_multiply(
                vk_dwdxi_sens.T @ material_A @ vk_dwdxi + vk_dwdxi.T @ material_A @ vk_dwdxi_sens
            )
            local_jac += w * Bmat_vk.right_multiply_transpose(mat)

            # vk - vk: stress sensitivity
            mat = Bmat_vk.left_multiply(_stress_tensor(stress_sens))
            local_jac += w * Bmat_vk.right_multiply_transpose(mat)

        jac += self.transform_matrix_to_global_system(local_jac)
        return True

    # ------------------------------------------------------------------
    # Prestress
    # ------------------------------------------------------------------

    def prestress_residual(self, request_jacobian: bool, f: np.ndarray, jac: np.ndarray) -> bool:
        """Add the force of the section prestress (and its vk tangent)"""
        return self._prestress_operation(None, request_jacobian, f, jac)

    def prestress_residual_sensitivity(
        self, parameter: Parameter, request_jacobian: bool, f: np.ndarray, jac: np.ndarray
    ) -> bool:
        return self._prestress_operation(parameter, request_jacobian, f, jac)

    def _prestress_operation(self, parameter, request_jacobian, f, jac) -> bool:
        if not self.property.if_prestressed:
            return False
        if parameter is not None and not self.property.depends_on(parameter):
            logger.debug("Element %d: prestress does not depend on %s", self.elem.id, parameter.name)
            return False

        fe = self._fe
        JxW, xyz = fe.JxW, fe.xyz
        n_phi = fe.n_shape_functions
        n2 = N_VARS * n_phi

        local_f = np.zeros(n2)
        local_jac = np.zeros((n2, n2))
        Bmat_mem, Bmat_bend, Bmat_vk = self._new_operators(n_phi)
        vk_strain = np.zeros(N_DIRECT_STRAIN)
        vk_dwdxi = np.zeros((N_DIRECT_STRAIN, N_VON_KARMAN_STRAIN))

        if_bending = self._if_bending
        if_vk = self.property.if_vk
        prestress_A = self.property.prestress_A_matrix()
        prestress_B = self.property.prestress_B_matrix()

        for qp in range(len(JxW)):
            if parameter is None:
                prestress_mat_A = prestress_A(xyz[qp], self.time)
                prestress_mat_B = prestress_B(xyz[qp], self.time)
            else:
                prestress_mat_A = prestress_A.derivative(parameter, xyz[qp], self.time)
                prestress_mat_B = prestress_B.derivative(parameter, xyz[qp], self.time)
            prestress_vec_A = _stress_vector(prestress_mat_A)
            prestress_vec_B = _stress_vector(prestress_mat_B)
            w = JxW[qp]

            self.initialize_direct_strain_operator(qp, fe, Bmat_mem)
            local_f += w * Bmat_mem.vector_mult_transpose(prestress_vec_A)

            if if_bending:
                self.bending_operator.initialize_bending_strain_operator(fe, qp, Bmat_bend)
                if if_vk:
                    self.initialize_von_karman_strain_operator(qp, fe, vk_strain, vk_dwdxi, Bmat_vk)
                    local_f += w * Bmat_vk.vector_mult_transpose(vk_dwdxi.T @ prestress_vec_A)
                local_f += w * Bmat_bend.vector_mult_transpose(prestress_vec_B)

            if request_jacobian and if_vk:
                mat = Bmat_vk.left_multiply(prestress_mat_A)
                local_jac += w * Bmat_vk.right_multiply_transpose(mat)

        f += self.transform_vector_to_global_system(local_f)

        # only the von Karman strain gives a prestress Jacobian
        if request_jacobian and if_vk:
            jac += self.transform_matrix_to_global_system(local_jac)
            return True
        return False

    # ------------------------------------------------------------------
    # Thermal load
    # ------------------------------------------------------------------

    def thermal_residual(
        self, request_jacobian: bool, f: np.ndarray, jac: np.ndarray, bc: BoundaryConditionBase
    ) -> bool:
        """Subtract the thermal load of the temperature condition ``bc``.

        With ΔT = T - T_ref and E_A, E_B the section expansion resultants:

            f -= Bmemᵀ E_A ΔT + Bbendᵀ E_B ΔT + Bvkᵀ Gᵀ E_A ΔT
            J -= Bvkᵀ N_T Bvk      (von Karman only)
        """
        return self._thermal_operation(None, request_jacobian, f, jac, bc)

    def thermal_residual_sensitivity(
        self,
        parameter: Parameter,
        request_jacobian: bool,
        f: np.ndarray,
        jac: np.ndarray,
        bc: BoundaryConditionBase,
    ) -> bool:
        """Partial derivative of ``thermal_residual`` w.r.t. ``parameter``"""
        return self._thermal_operation(parameter, request_jacobian, f, jac, bc)

    def _thermal_operation(self, parameter, request_jacobian, f, jac, bc) -> bool:
        fe = self._fe
        JxW, xyz = fe.JxW, fe.xyz
        n_phi = fe.n_shape_functions
        n2 = N_VARS * n_phi

        local_f = np.zeros(n2)
        local_jac = np.zeros((n2, n2))
        Bmat_mem, Bmat_bend, Bmat_vk = self._new_operators(n_phi)
        vk_strain = np.zeros(N_DIRECT_STRAIN)
        vk_dwdxi = np.zeros((N_DIRECT_STRAIN, N_VON_KARMAN_STRAIN))

        if_bending = self._if_bending
        if_vk = self.property.if_vk
        expansion_A = self.property.thermal_expansion_A_matrix()
        expansion_B = self.property.thermal_expansion_B_matrix()
        temp_func = bc.get("temperature")
        ref_temp_func = bc.get("ref_temperature")

        for qp in range(len(JxW)):
            x, t = xyz[qp], self.time
            delta_t = temp_func(x, t) - ref_temp_func(x, t)
            if parameter is None:
                vec1 = expansion_A(x, t) * delta_t
                vec2 = expansion_B(x, t) * delta_t
            else:
                delta_t_sens = temp_func.derivative(parameter, x, t) - ref_temp_func.derivative(
                    parameter, x, t
                )
                vec1 = (
                    expansion_A.derivative(parameter, x, t) * delta_t
                    + expansion_A(x, t) * delta_t_sens
                )
                vec2 = (
                    expansion_B.derivative(parameter, x, t) * delta_t
                    + expansion_B(x, t) * delta_t_sens
                )
            w = JxW[qp]

            self.initialize_direct_strain_operator(qp, fe, Bmat_mem)
            local_f += w * Bmat_mem.vector_mult_transpose(vec1)

            if if_bending:
                self.bending_operator.initialize_bending_strain_operator(fe, qp, Bmat_bend)
                local_f += w * Bmat_bend.vector_mult_transpose(vec2)

                if if_vk:
                    self.initialize_von_karman_strain_operator(qp, fe, vk_strain, vk_dwdxi, Bmat_vk)
                    local_f += w * Bmat_vk.vector_mult_transpose(vk_dwdxi.T @ vec1)

                    if request_jacobian:
                        mat = Bmat_vk.left_multiply(_stress_tensor(vec1))
                        local_jac += w * Bmat_vk.right_multiply_transpose(mat)

        f -= self.transform_vector_to_global_system(local_f)

        if request_jacobian and if_vk:
            jac -= self.transform_matrix_to_global_system(local_jac)
            return True
        return False

    # ------------------------------------------------------------------
    # Surface pressure
    # ------------------------------------------------------------------

    def surface_pressure_residual(
        self,
        request_jacobian: bool,
        f: np.ndarray,
        jac: np.ndarray,
        side: int,
        bc: BoundaryConditionBase,
    ) -> bool:
        """Subtract the edge load p·h·n of a pressure acting on ``side``.

        The load does not follow the deformation, so no Jacobian is added.
        """
        return self._surface_pressure_operation(None, f, side, bc)

    def surface_pressure_residual_sensitivity(
        self,
        parameter: Parameter,
        request_jacobian: bool,
        f: np.ndarray,
        jac: np.ndarray,
        side: int,
        bc: BoundaryConditionBase,
    ) -> bool:
        return self._surface_pressure_operation(parameter, f, side, bc)

    def _surface_pressure_operation(self, parameter, f, side, bc) -> bool:
        if self.follower_forces:
            raise UnsupportedAnalysisError("Follower forces are not supported for surface pressure")

        fe = self.build_fe()
        fe.init_for_side(self.elem, side, compute_normals=True)
        JxW, xyz, phi, normals = fe.JxW, fe.xyz, fe.phi, fe.normals
        n2 = N_VARS * fe.n_shape_functions

        p_func = bc.get("pressure")
        t_func = self.property.get("h")

        Bmat = FEMOperatorMatrix()
        local_f = np.zeros(n2)
        force = np.zeros(N_VARS)

        for qp in range(len(JxW)):
            x, t = xyz[qp], self.time
            Bmat.reinit_diagonal(N_VARS, phi[:, qp])

            press, t_val = p_func(x, t), t_func(x, t)
            if parameter is None:
                load = press * t_val
            else:
                load = press * t_func.derivative(parameter, x, t) + p_func.derivative(
                    parameter, x, t
                ) * t_val

            force[:3] = load * normals[qp]
            local_f += JxW[qp] * Bmat.vector_mult_transpose(force)

        f -= self.transform_vector_to_global_system(local_f)
        return False

    # ------------------------------------------------------------------
    # Piston theory
    # ------------------------------------------------------------------

    def piston_theory_residual(
        self,
        request_jacobian: bool,
        f: np.ndarray,
        jac_xdot: np.ndarray,
        jac: np.ndarray,
        bc: PistonTheoryBoundaryCondition,
        side: Optional[int] = None,
    ) -> bool:
        """Subtract the piston theory aerodynamic load.

        The pressure acts along the local -z direction and depends on the
        normal velocity dw/dt and on the slope along the flow direction,
        dw/dx·U. Two tangents are produced: ``jac_xdot`` with respect to the
        state rate and ``jac`` with respect to the state.
        """
        self._check_piston_theory(side)
        return self._piston_theory_operation(None, request_jacobian, f, jac_xdot, jac, bc)

    def piston_theory_residual_sensitivity(
        self,
        parameter: Parameter,
        request_jacobian: bool,
        f: np.ndarray,
        jac_xdot: np.ndarray,
        jac: np.ndarray,
        bc: PistonTheoryBoundaryCondition,
        side: Optional[int] = None,
    ) -> bool:
        self._check_piston_theory(side)
        return self._piston_theory_operation(parameter, request_jacobian, f, jac_xdot, jac, bc)

    def _check_piston_theory(self, side: Optional[int]) -> None:
        if side is not None:
            raise NotImplementedError("Piston theory on element sides is not implemented")
        if self.follower_forces:
            raise UnsupportedAnalysisError("Follower forces are not supported for piston theory")

    def _piston_theory_operation(
        self, parameter, request_jacobian, f, jac_xdot, jac, bc: PistonTheoryBoundaryCondition
    ) -> bool:
        fe = self._fe
        JxW, xyz, phi = fe.JxW, fe.xyz, fe.phi
        n_phi = fe.n_shape_functions
        n2 = N_VARS * n_phi

        # pressure acts along the local z-axis
        normal_z = -1.0

        if parameter is None:
            pressure = bc.pressure
            dpressure_dx = bc.dpressure_dx
            dpressure_dxdot = bc.dpressure_dxdot
        else:
            def pressure(*args):
                return bc.pressure_sensitivity(parameter, *args)

            def dpressure_dx(*args):
                return bc.dpressure_dx_sensitivity(parameter, *args)

            def dpressure_dxdot(*args):
                return bc.dpressure_dxdot_sensitivity(parameter, *args)

        # flow direction in the local frame
        vel_vec = self.elem.T_matrix.T @ bc.vel_vec()
        slope_weights = np.array([[vel_vec[0], vel_vec[1]], [0.0, 0.0]])

        Bmat_w, dBmat = FEMOperatorMatrix(), FEMOperatorMatrix()
        dBmat.reinit(N_VON_KARMAN_STRAIN, N_VARS, n_phi)
        dummy = np.zeros(N_DIRECT_STRAIN)
        dwdx = np.zeros((N_DIRECT_STRAIN, N_VON_KARMAN_STRAIN))

        local_f = np.zeros(n2)
        local_jac_xdot = np.zeros((n2, n2))
        local_jac = np.zeros((n2, n2))
        force = np.zeros(2)

        for qp in range(len(JxW)):
            x, t = xyz[qp], self.time

            Bmat_w.reinit(2, N_VARS, n_phi)
            Bmat_w.set_shape_function(0, W, phi[:, qp])  # w-displacement

            dwdt_val = Bmat_w.vector_mult(self.local_velocity)[0]

            self.initialize_von_karman_strain_operator(qp, fe, dummy, dwdx, dBmat)
            dwdx_val = dwdx[0, 0] * vel_vec[0] + dwdx[1, 1] * vel_vec[1]

            force[0] = pressure(dwdx_val, dwdt_val, x, t) * normal_z
            local_f += JxW[qp] * Bmat_w.vector_mult_transpose(force)

            if request_jacobian:
                dp = dpressure_dxdot(dwdx_val, dwdt_val, x, t)
                local_jac_xdot += (JxW[qp] * dp * normal_z) * Bmat_w.right_multiply_transpose(Bmat_w)

                # slope along the flow: U_x w,x + U_y w,y
                dp = dpressure_dx(dwdx_val, dwdt_val, x, t)
                mat = dBmat.left_multiply(slope_weights)
                local_jac += (JxW[qp] * dp * normal_z) * Bmat_w.right_multiply_transpose(mat)

        f -= self.transform_vector_to_global_system(local_f)

        if request_jacobian:
            jac_xdot -= self.transform_matrix_to_global_system(local_jac_xdot)
            jac -= self.transform_matrix_to_global_system(local_jac)

        return request_jacobian

    # ------------------------------------------------------------------
    # Stress recovery
    # ------------------------------------------------------------------

    def calculate_stress(
        self,
        request_derivative: bool,
        parameter: Optional[Parameter],
        output: StressStrainOutput,
    ) -> bool:
        """Evaluate stress and strain at the upper and lower skins.

        A call without derivative and parameter writes new records; calls
        requesting the derivative with respect to the DOFs and/or the
        sensitivity with respect to ``parameter`` update the records of the
        previous primary pass, visiting the points in the same order.

        Returns
        -------
        bool
            Whether derivative or sensitivity data was provided.
        """
        fe = self.build_fe()
        fe.init(self.elem)

        JxW, xyz = fe.JxW, fe.xyz
        qp_loc_fe = fe.qpoints
        n_phi = fe.n_shape_functions
        n2 = N_VARS * n_phi
        samples = tuple(self.options.stress_sample_points)
        n_added_qp = len(samples)
        elem_id = self.elem.id
        t = self.time

        u = self.local_solution
        u_sens = self.local_solution_sensitivity
        if_bending = self._if_bending
        if_vk = self.property.if_vk
        primary = not request_derivative and parameter is None

        Bmat_mem, Bmat_bend, Bmat_vk = self._new_operators(n_phi)
        vk_strain = np.zeros(N_DIRECT_STRAIN)
        vk_dwdxi = np.zeros((N_DIRECT_STRAIN, N_VON_KARMAN_STRAIN))
        eye = np.eye(N_DIRECT_STRAIN)

        mat_stiff = self.property.material.stiffness_matrix(2)
        h = self.property.get("h")
        h_off = self.property.get("off")

        thermal_load = output.get_thermal_load_for_elem(elem_id)
        if thermal_load is not None:
            temp_func = thermal_load.get("temperature")
            ref_temp_func = thermal_load.get("ref_temperature")
            alpha_func = self.property.material.get("alpha_expansion")

        if primary:
            output.begin_element(elem_id, len(qp_loc_fe) * n_added_qp)
        elif output.n_points(elem_id) != len(qp_loc_fe) * n_added_qp:
            raise ValueError(
                f"Element {elem_id}: expected {len(qp_loc_fe) * n_added_qp} stress records, "
                f"found {output.n_points(elem_id)}"
            )

        for qp_loc_index in range(len(qp_loc_fe)):
            x = xyz[qp_loc_index]
            material_mat = mat_stiff(x, t)

            for section_qp_index, z_unit in enumerate(samples):
                qp = qp_loc_index * n_added_qp + section_qp_index
                qp_loc = qp_loc_fe[qp_loc_index].copy()
                qp_loc[2] = z_unit

                self.initialize_direct_strain_operator(qp_loc_index, fe, Bmat_mem)
                strain = Bmat_mem.vector_mult(u)

                if thermal_load is not None:
                    temp = temp_func(x, t)
                    ref_t = ref_temp_func(x, t)
                    alpha = alpha_func(x, t)
                    strain[:2] -= alpha * (temp - ref_t)

                if if_bending:
                    if if_vk:
                        self.initialize_von_karman_strain_operator(
                            qp_loc_index, fe, vk_strain, vk_dwdxi, Bmat_vk
                        )
                        strain += vk_strain

                    z = z_unit * h(x, t) / 2.0 + h_off(x, t)
                    self.bending_operator.initialize_bending_strain_operator_for_z(
                        fe, qp_loc_index, z, Bmat_bend
                    )
                    strain += Bmat_bend.vector_mult(u)

                stress = material_mat @ strain

                if primary:
                    output.record_primary(
                        elem_id, qp, qp_loc, x, JxW[qp_loc_index], _to_3d(stress), _to_3d(strain)
                    )
                    continue

                dstrain_dX = Bmat_mem.left_multiply(eye)
                if if_bending:
                    if if_vk:
                        dstrain_dX += Bmat_vk.left_multiply(vk_dwdxi)
                    dstrain_dX += Bmat_bend.left_multiply(eye)
                dstress_dX = material_mat @ dstrain_dX

                if request_derivative:
                    output.record_derivative(
                        elem_id, qp, _to_3d(dstress_dX), _to_3d(dstrain_dX), qp_location=qp_loc
                    )

                if parameter is not None:
                    # partial sensitivity at fixed solution
                    dstrain_dp = np.zeros(N_DIRECT_STRAIN)
                    if thermal_load is not None:
                        dtemp = temp_func.derivative(parameter, x, t)
                        dref_t = ref_temp_func.derivative(parameter, x, t)
                        dalpha = alpha_func.derivative(parameter, x, t)
                        dstrain_dp[:2] -= alpha * (dtemp - dref_t) + dalpha * (temp - ref_t)

                    if if_bending:
                        dz = z_unit * h.derivative(parameter, x, t) / 2.0 + h_off.derivative(
                            parameter, x, t
                        )
                        self.bending_operator.initialize_bending_strain_operator_for_z(
                            fe, qp_loc_index, dz, Bmat_bend
                        )
                        dstrain_dp += Bmat_bend.vector_mult(u)

                    dstress_dp = material_mat @ dstrain_dp
                    dstress_dp += mat_stiff.derivative(parameter, x, t) @ strain

                    # contribution of the solution sensitivity
                    dstress_dp += dstress_dX @ u_sens
                    dstrain_dp += dstrain_dX @ u_sens

                    output.record_sensitivity(
                        elem_id, qp, parameter, _to_3d(dstress_dp), _to_3d(dstrain_dp),
                        qp_location=qp_loc,
                    )

        if primary:
            logger.debug("Element %d: %d stress points recorded", elem_id, output.n_points(elem_id))
        return request_derivative or parameter is not None

    def __repr__(self):
        return f"<StructuralElement2D elem={self.elem.id} n_dofs={self.n_dofs}>"


def build_structural_element(
    elem: FemElement,
    property,
    options: Optional[AnalysisOptions] = None,
    **kwargs,
) -> StructuralElement2D:
    """Structural element for ``elem``, dispatched on its dimension"""
    if elem.dim == ElementDimension.TWO:
        return StructuralElement2D(elem, property, options, **kwargs)
    raise NotImplementedError(f"Structural elements of dimension {int(elem.dim)} are not implemented")
