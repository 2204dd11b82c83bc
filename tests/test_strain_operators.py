"""Tests for membrane, von Karman and bending strain operators."""

import numpy as np
import pytest

from fem_panel.elements.bending_operator import (
    BendingModel,
    MindlinBendingOperator2D,
    build_bending_operator_2d,
)
from fem_panel.numerics.fem_operator_matrix import FEMOperatorMatrix

U, V, W, TX, TY, TZ = range(6)


def nodal_field(elem, var, func):
    """Element vector with ``func(x, y)`` on variable ``var`` at every node."""
    n = elem.node_count
    sol = np.zeros(6 * n)
    xy = elem.local_node_coords
    sol[var * n:(var + 1) * n] = func(xy[:, 0], xy[:, 1])
    return sol


@pytest.fixture
def vk_element(flat_quad, make_section, make_element):
    return make_element(flat_quad, make_section(strain_type="von_karman"))


class TestDirectStrainOperator:
    def test_constant_strain_patch(self, vk_element):
        elem = vk_element.elem
        sol = nodal_field(elem, U, lambda x, y: 0.01 * x + 0.02 * y)
        sol += nodal_field(elem, V, lambda x, y: -0.03 * x + 0.005 * y)
        vk_element.set_solution(sol)

        B = FEMOperatorMatrix()
        B.reinit(3, 6, elem.node_count)
        for qp in range(vk_element.fe.n_qp):
            vk_element.initialize_direct_strain_operator(qp, vk_element.fe, B)
            strain = B.vector_mult(vk_element.local_solution)
            np.testing.assert_allclose(strain, [0.01, 0.005, 0.02 - 0.03], atol=1e-14)

    def test_operator_layout(self, vk_element):
        fe = vk_element.fe
        n = fe.n_shape_functions
        B = FEMOperatorMatrix()
        B.reinit(3, 6, n)
        vk_element.initialize_direct_strain_operator(0, fe, B)
        D = B.dense()
        dx, dy = fe.dphi[:, 0, 0], fe.dphi[:, 0, 1]
        np.testing.assert_allclose(D[0, U * n:(U + 1) * n], dx)
        np.testing.assert_allclose(D[1, V * n:(V + 1) * n], dy)
        np.testing.assert_allclose(D[2, U * n:(U + 1) * n], dy)
        np.testing.assert_allclose(D[2, V * n:(V + 1) * n], dx)
        assert np.count_nonzero(D[:, W * n:]) == 0


class TestVonKarmanStrainOperator:
    def test_linear_deflection(self, vk_element):
        elem = vk_element.elem
        vk_element.set_solution(nodal_field(elem, W, lambda x, y: 0.3 * x - 0.2 * y))

        vk_strain = np.zeros(3)
        vk_dwdxi = np.zeros((3, 2))
        B = FEMOperatorMatrix()
        B.reinit(2, 6, elem.node_count)
        vk_element.initialize_von_karman_strain_operator(0, vk_element.fe, vk_strain, vk_dwdxi, B)

        np.testing.assert_allclose(vk_strain, [0.5 * 0.09, 0.5 * 0.04, -0.06])
        np.testing.assert_allclose(vk_dwdxi, [[0.3, 0.0], [0.0, -0.2], [-0.2, 0.3]])
        np.testing.assert_allclose(B.vector_mult(vk_element.local_solution), [0.3, -0.2])

    def test_strain_is_quadratic(self, vk_element):
        """Scaling the deflection by s scales the vk strain by s^2."""
        elem = vk_element.elem
        w = nodal_field(elem, W, lambda x, y: 0.1 * x * y + 0.05 * x)
        strains = []
        for s in (1.0, 2.0):
            vk_element.set_solution(s * w)
            vk_strain = np.zeros(3)
            B = FEMOperatorMatrix()
            B.reinit(2, 6, elem.node_count)
            vk_element.initialize_von_karman_strain_operator(
                1, vk_element.fe, vk_strain, np.zeros((3, 2)), B
            )
            strains.append(vk_strain)
        np.testing.assert_allclose(strains[1], 4.0 * strains[0])

    def test_linearization_matches_finite_difference(self, vk_element, rng):
        """G @ (Bvk @ du) is the first variation of the vk strain."""
        elem = vk_element.elem
        fe = vk_element.fe
        u = rng.normal(scale=0.1, size=6 * elem.node_count)
        du = rng.normal(size=u.size)
        eps = 1e-6

        def vk_at(sol):
            vk_element.set_solution(sol)
            vk_strain = np.zeros(3)
            G = np.zeros((3, 2))
            B = FEMOperatorMatrix()
            B.reinit(2, 6, elem.node_count)
            vk_element.initialize_von_karman_strain_operator(2, fe, vk_strain, G, B)
            return vk_strain, G, B

        _, G, B = vk_at(u)
        analytic = G @ B.vector_mult(du)
        fd = (vk_at(u + eps * du)[0] - vk_at(u - eps * du)[0]) / (2 * eps)
        np.testing.assert_allclose(analytic, fd, rtol=1e-6, atol=1e-10)

    def test_sensitivity_uses_solution_sensitivity(self, vk_element):
        elem = vk_element.elem
        vk_element.set_solution(nodal_field(elem, W, lambda x, y: 0.3 * x))
        vk_element.set_solution_sensitivity(nodal_field(elem, W, lambda x, y: -0.7 * y))

        G_sens = np.zeros((3, 2))
        vk_element.initialize_von_karman_strain_operator_sensitivity(0, vk_element.fe, G_sens)
        np.testing.assert_allclose(G_sens, [[0.0, 0.0], [0.0, -0.7], [-0.7, 0.0]], atol=1e-14)


class TestBendingOperator:
    def test_curvature_patch(self, vk_element):
        elem = vk_element.elem
        sol = nodal_field(elem, TY, lambda x, y: 0.02 * x + 0.01 * y)
        sol += nodal_field(elem, TX, lambda x, y: 0.03 * y - 0.04 * x)
        vk_element.set_solution(sol)

        B = FEMOperatorMatrix()
        B.reinit(3, 6, elem.node_count)
        vk_element.bending_operator.initialize_bending_strain_operator(vk_element.fe, 0, B)
        kappa = B.vector_mult(vk_element.local_solution)
        np.testing.assert_allclose(kappa, [0.02, -0.03, 0.01 + 0.04], atol=1e-14)

    def test_strain_at_depth_scales_with_z(self, vk_element, rng):
        fe = vk_element.fe
        n = fe.n_shape_functions
        B1, Bz = FEMOperatorMatrix(), FEMOperatorMatrix()
        B1.reinit(3, 6, n)
        Bz.reinit(3, 6, n)
        vk_element.bending_operator.initialize_bending_strain_operator(fe, 1, B1)
        vk_element.bending_operator.initialize_bending_strain_operator_for_z(fe, 1, -0.25, Bz)
        np.testing.assert_allclose(Bz.dense(), -0.25 * B1.dense())

    def test_factory(self, vk_element):
        assert build_bending_operator_2d(BendingModel.NO_BENDING, vk_element) is None
        op = build_bending_operator_2d("mindlin", vk_element)
        assert isinstance(op, MindlinBendingOperator2D)
        assert op.include_transverse_shear_energy()
        with pytest.raises(NotImplementedError):
            build_bending_operator_2d(BendingModel.DKT, vk_element)

    def test_shear_residual_vanishes_for_kirchhoff_mode(self, vk_element):
        """w = a x with theta_y = -a gives zero transverse shear strain."""
        elem = vk_element.elem
        sol = nodal_field(elem, W, lambda x, y: 0.2 * x)
        sol += nodal_field(elem, TY, lambda x, y: -0.2 + 0.0 * x)
        vk_element.set_solution(sol)

        n2 = 6 * elem.node_count
        f = np.zeros(n2)
        jac = np.zeros((n2, n2))
        assert vk_element.bending_operator.calculate_transverse_shear_residual(True, f, jac)
        np.testing.assert_allclose(f, 0.0, atol=1e-12)
        np.testing.assert_allclose(jac, jac.T, atol=1e-9)
        np.testing.assert_allclose(jac @ vk_element.local_solution, f, atol=1e-12)
