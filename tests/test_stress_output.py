"""Tests for stress recovery and the stress/strain output store."""

import threading

import numpy as np
import pytest

from fem_panel.core.bc import TemperatureBoundaryCondition
from fem_panel.core.errors import StressOutputOrderError
from fem_panel.core.function import Parameter
from fem_panel.core.material import IsotropicMaterialPropertyCard
from fem_panel.postprocess.stress_output import (
    StressStrainData,
    StressStrainOutput,
    von_mises_stress,
)
from fem_panel.property_cards.section_2d import Solid2DSectionElementPropertyCard

U, V, W, TX, TY, TZ = range(6)


def nodal_solution(elem, **fields):
    """Element vector with ``func(x, y)`` on each named variable."""
    names = {"u": U, "v": V, "w": W, "tx": TX, "ty": TY, "tz": TZ}
    n = elem.node_count
    xy = elem.local_node_coords
    sol = np.zeros(6 * n)
    for name, func in fields.items():
        k = names[name]
        sol[k * n:(k + 1) * n] = func(xy[:, 0], xy[:, 1])
    return sol


def primary_stresses(element, sol, output=None):
    output = output if output is not None else StressStrainOutput()
    element.set_solution(sol)
    element.calculate_stress(False, None, output)
    return np.array([d.stress for d in output.get_stress_strain_data_for_elem(element.elem.id)])


class TestCalculateStress:
    def test_record_count(self, flat_quad, make_section, make_element):
        element = make_element(flat_quad, make_section())
        output = StressStrainOutput()
        assert element.calculate_stress(False, None, output) is False
        assert output.n_points(flat_quad.id) == element.fe.n_qp * 2
        records = output.get_stress_strain_data_for_elem(flat_quad.id)
        np.testing.assert_allclose([r.qp_location[2] for r in records[:2]], [1.0, -1.0])

    def test_uniform_membrane_strain(self, flat_quad, make_section, make_element, material):
        element = make_element(flat_quad, make_section())
        sol = nodal_solution(flat_quad, u=lambda x, y: 0.01 * x + 0.02 * y, v=lambda x, y: 0.005 * y)
        stresses = primary_stresses(element, sol)

        C = material.stiffness_matrix(2)(None, 0.0)
        expected = C @ [0.01, 0.005, 0.02]
        np.testing.assert_allclose(stresses[:, [0, 1, 3]], np.tile(expected, (len(stresses), 1)))
        np.testing.assert_allclose(stresses[:, [2, 4, 5]], 0.0)

    def test_bending_strain_at_skins(self, flat_quad, make_section, make_element):
        element = make_element(flat_quad, make_section(h=0.1))
        output = StressStrainOutput()
        element.set_solution(nodal_solution(flat_quad, ty=lambda x, y: 0.3 * x))
        element.calculate_stress(False, None, output)

        strains = np.array([d.strain[0] for d in output.get_stress_strain_data_for_elem(flat_quad.id)])
        np.testing.assert_allclose(strains[0::2], 0.3 * 0.05)
        np.testing.assert_allclose(strains[1::2], -0.3 * 0.05)

    def test_custom_sample_points(self, flat_quad, make_section, make_element):
        element = make_element(flat_quad, make_section(), stress_sample_points=(0.0,))
        output = StressStrainOutput()
        element.set_solution(nodal_solution(flat_quad, ty=lambda x, y: 0.3 * x))
        element.calculate_stress(False, None, output)
        records = output.get_stress_strain_data_for_elem(flat_quad.id)
        assert len(records) == element.fe.n_qp
        np.testing.assert_allclose([r.strain[0] for r in records], 0.0, atol=1e-14)

    def test_free_thermal_expansion_is_stress_free(self, flat_quad, make_section, make_element):
        element = make_element(flat_quad, make_section(strain_type="von_karman"))
        output = StressStrainOutput()
        output.set_thermal_load_for_elem(flat_quad.id, TemperatureBoundaryCondition(60.0, 20.0))
        sol = nodal_solution(flat_quad, u=lambda x, y: 0.04 * x, v=lambda x, y: 0.04 * y)
        stresses = primary_stresses(element, sol, output)
        np.testing.assert_allclose(stresses, 0.0, atol=1e-10)

    def test_derivative_pass_linear(self, panel_quad, make_section, make_element, rng):
        element = make_element(panel_quad, make_section(off=0.01))
        output = StressStrainOutput()
        sol = rng.normal(scale=0.01, size=element.n_dofs)
        element.set_solution(sol)
        element.calculate_stress(False, None, output)
        assert element.calculate_stress(True, None, output) is True

        u_local = element.local_solution
        for record in output.get_stress_strain_data_for_elem(panel_quad.id):
            assert record.dstress_dX.shape == (6, element.n_dofs)
            np.testing.assert_allclose(record.dstress_dX @ u_local, record.stress, atol=1e-10)
            np.testing.assert_allclose(record.dstrain_dX @ u_local, record.strain, atol=1e-14)

    def test_derivative_pass_von_karman(self, flat_quad, make_section, make_element, rng):
        element = make_element(flat_quad, make_section(strain_type="von_karman"))
        output = StressStrainOutput()
        sol = rng.normal(scale=0.05, size=element.n_dofs)
        du = rng.normal(size=element.n_dofs)
        eps = 1e-6

        element.set_solution(sol)
        element.calculate_stress(False, None, output)
        element.calculate_stress(True, None, output)
        analytic = np.array(
            [d.dstress_dX @ du for d in output.get_stress_strain_data_for_elem(flat_quad.id)]
        )
        fd = (
            primary_stresses(element, sol + eps * du) - primary_stresses(element, sol - eps * du)
        ) / (2 * eps)
        np.testing.assert_allclose(analytic, fd, rtol=1e-5, atol=1e-6 * np.abs(fd).max())

    def test_derivative_pass_requires_primary(self, flat_quad, make_section, make_element):
        element = make_element(flat_quad, make_section())
        with pytest.raises(ValueError):
            element.calculate_stress(True, None, StressStrainOutput())

    @pytest.mark.parametrize("name", ["h", "off", "E"])
    def test_sensitivity_pass(self, flat_quad, make_element, rng, name):
        """The recorded sensitivity is the total derivative along u(p) = u0 + (p - p0) u_sens."""

        params = {"h": Parameter("h", 0.1), "off": Parameter("off", 0.01), "E": Parameter("E", 1.0e4)}
        mat = IsotropicMaterialPropertyCard("alloy", E=params["E"], nu=0.3, alpha=1.0e-3)
        section = Solid2DSectionElementPropertyCard(
            mat, h=params["h"], off=params["off"], strain_type="von_karman"
        )
        element = make_element(flat_quad, section)
        p = params[name]
        p0 = p.value

        u0 = rng.normal(scale=0.05, size=element.n_dofs)
        u_sens = rng.normal(scale=0.05, size=element.n_dofs)

        output = StressStrainOutput()
        element.set_solution(u0)
        element.set_solution_sensitivity(u_sens)
        element.calculate_stress(False, None, output)
        assert element.calculate_stress(False, p, output) is True
        analytic = np.array(
            [d.stress_sensitivity[p] for d in output.get_stress_strain_data_for_elem(flat_quad.id)]
        )

        dp = 1e-6 * max(abs(p0), 1.0)
        p.value = p0 + dp
        plus = primary_stresses(element, u0 + dp * u_sens)
        p.value = p0 - dp
        minus = primary_stresses(element, u0 - dp * u_sens)
        p.value = p0
        fd = (plus - minus) / (2 * dp)
        np.testing.assert_allclose(analytic, fd, rtol=1e-5, atol=1e-6 * np.abs(fd).max())

    def test_temperature_sensitivity(self, flat_quad, make_section, make_element, material):
        T = Parameter("T", 40.0)
        element = make_element(flat_quad, make_section(bending_model="no_bending"))
        output = StressStrainOutput()
        output.set_thermal_load_for_elem(flat_quad.id, TemperatureBoundaryCondition(T, 20.0))

        element.calculate_stress(False, None, output)
        element.calculate_stress(False, T, output)

        # heating a clamped element produces compression
        C = material.stiffness_matrix(2)(None, 0.0)
        expected = C @ [-1.0e-3, -1.0e-3, 0.0]
        for record in output.get_stress_strain_data_for_elem(flat_quad.id):
            np.testing.assert_allclose(record.stress_sensitivity[T][[0, 1, 3]], expected)
            np.testing.assert_allclose(record.strain_sensitivity[T][:2], -1.0e-3)
            assert record.dvon_mises_stress_dp(T) > 0.0


class TestVonMises:
    def test_uniaxial(self):
        assert np.isclose(von_mises_stress(np.array([5.0, 0, 0, 0, 0, 0])), 5.0)

    def test_pure_shear(self):
        assert np.isclose(von_mises_stress(np.array([0, 0, 0, 2.0, 0, 0])), 2.0 * np.sqrt(3.0))

    def test_derivative_matches_finite_differences(self, rng):
        stress = rng.normal(size=6)
        dstress_dX = rng.normal(size=(6, 4))
        data = StressStrainData(np.zeros(3), np.zeros(3), 1.0, stress, np.zeros(6), dstress_dX=dstress_dX)

        h = 1e-6
        fd = np.array([
            (von_mises_stress(stress + h * dstress_dX[:, k]) - von_mises_stress(stress - h * dstress_dX[:, k]))
            / (2 * h)
            for k in range(4)
        ])
        np.testing.assert_allclose(data.dvon_mises_stress_dX(), fd, rtol=1e-6)

    def test_zero_stress_derivative(self):
        data = StressStrainData(
            np.zeros(3), np.zeros(3), 1.0, np.zeros(6), np.zeros(6), dstress_dX=np.ones((6, 3))
        )
        np.testing.assert_allclose(data.dvon_mises_stress_dX(), 0.0)

    def test_missing_derivative(self):
        data = StressStrainData(np.zeros(3), np.zeros(3), 1.0, np.ones(6), np.zeros(6))
        with pytest.raises(ValueError):
            data.dvon_mises_stress_dX()
        with pytest.raises(ValueError):
            data.dvon_mises_stress_dp("h")

    def test_to_dict(self):
        data = StressStrainData(
            np.zeros(3), np.zeros(3), 1.0, np.array([3.0, 0, 0, 0, 0, 0]), np.array([1e-3, 0, 0, 0, 0, 0])
        )
        out = data.to_dict()
        assert out["sigma_xx"] == 3.0
        assert out["epsilon_xx"] == 1e-3
        assert np.isclose(out["von_mises"], 3.0)


class TestStressStrainOutput:
    @staticmethod
    def fill(output, elem_id, n, value=1.0):
        output.begin_element(elem_id, n)
        for i in range(n):
            output.record_primary(
                elem_id, i, [0.0, 0.0, 1.0], np.zeros(3), 1.0, np.full(6, value * (i + 1)), np.zeros(6)
            )

    def test_primary_records(self):
        output = StressStrainOutput()
        self.fill(output, 3, 2)
        self.fill(output, 1, 1, value=10.0)
        assert output.element_ids() == [1, 3]
        assert output.n_points(3) == 2

    def test_max_von_mises(self):
        output = StressStrainOutput()
        output.begin_element(0, 2)
        output.record_primary(0, 0, np.zeros(3), np.zeros(3), 1.0, [1.0, 0, 0, 0, 0, 0], np.zeros(6))
        output.record_primary(0, 1, np.zeros(3), np.zeros(3), 1.0, [0, 0, 0, 2.0, 0, 0], np.zeros(6))
        assert output.max_von_mises_stress() == pytest.approx(2.0 * np.sqrt(3.0))

    def test_begin_element_requires_points(self):
        with pytest.raises(ValueError):
            StressStrainOutput().begin_element(0, 0)

    def test_primary_out_of_order(self):
        output = StressStrainOutput()
        output.begin_element(0, 2)
        with pytest.raises(StressOutputOrderError):
            output.record_primary(0, 1, np.zeros(3), np.zeros(3), 1.0, np.zeros(6), np.zeros(6))

    def test_primary_overflow(self):
        output = StressStrainOutput()
        self.fill(output, 0, 1)
        with pytest.raises(StressOutputOrderError):
            output.record_primary(0, 1, np.zeros(3), np.zeros(3), 1.0, np.zeros(6), np.zeros(6))

    def test_record_before_begin(self):
        with pytest.raises(StressOutputOrderError):
            StressStrainOutput().record_derivative(0, 0, np.zeros((6, 2)), np.zeros((6, 2)))

    def test_derivative_before_primary_complete(self):
        output = StressStrainOutput()
        output.begin_element(0, 2)
        output.record_primary(0, 0, np.zeros(3), np.zeros(3), 1.0, np.zeros(6), np.zeros(6))
        with pytest.raises(StressOutputOrderError):
            output.record_derivative(0, 0, np.zeros((6, 2)), np.zeros((6, 2)))

    def test_passes_visit_points_in_order(self):
        output = StressStrainOutput()
        self.fill(output, 0, 2)
        output.record_derivative(0, 0, np.ones((6, 2)), np.ones((6, 2)))
        with pytest.raises(StressOutputOrderError):
            output.record_derivative(0, 0, np.ones((6, 2)), np.ones((6, 2)))
        output.record_derivative(0, 1, np.ones((6, 2)), np.ones((6, 2)))
        # a completed pass may be repeated
        output.record_derivative(0, 0, np.ones((6, 2)), np.ones((6, 2)))

    def test_sensitivity_cursor_per_parameter(self):
        output = StressStrainOutput()
        self.fill(output, 0, 2)
        output.record_sensitivity(0, 0, "h", np.ones(6), np.ones(6))
        output.record_sensitivity(0, 0, "E", 2.0 * np.ones(6), np.ones(6))
        record = output.get_stress_strain_data_for_elem(0)[0]
        assert set(record.stress_sensitivity) == {"h", "E"}

    def test_location_mismatch(self):
        output = StressStrainOutput()
        self.fill(output, 0, 1)
        with pytest.raises(StressOutputOrderError):
            output.record_sensitivity(0, 0, "h", np.ones(6), np.ones(6), qp_location=[0.5, 0.0, 1.0])

    def test_clear(self):
        output = StressStrainOutput()
        self.fill(output, 0, 1)
        output.clear()
        assert output.element_ids() == []
        assert output.n_points(0) == 0

    def test_queries_wait_for_writers(self):
        output = StressStrainOutput()
        self.fill(output, 0, 1)
        results = {}

        def read():
            results["bc"] = output.get_thermal_load_for_elem(0)
            results["n"] = output.n_points(0)

        bc = TemperatureBoundaryCondition(20.0)
        with output._lock:
            reader = threading.Thread(target=read)
            reader.start()
            reader.join(timeout=0.1)
            assert reader.is_alive()
            output._thermal_loads[0] = bc
        reader.join(timeout=5.0)
        assert not reader.is_alive()
        assert results == {"bc": bc, "n": 1}

    def test_concurrent_elements(self):
        output = StressStrainOutput()

        def write(elem_id):
            for _ in range(20):
                self.fill(output, elem_id, 3, value=float(elem_id))
                output.n_points(elem_id)
                output.get_thermal_load_for_elem(elem_id)

        threads = [threading.Thread(target=write, args=(k,)) for k in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert output.element_ids() == list(range(8))
        assert all(output.n_points(k) == 3 for k in range(8))
