"""Shared fixtures for the fem-panel test suite."""

import numpy as np
import pytest

from fem_panel.core.config import AnalysisOptions
from fem_panel.core.material import IsotropicMaterialPropertyCard
from fem_panel.elements.elements import ElementFactory
from fem_panel.elements.structural_element_2d import StructuralElement2D
from fem_panel.property_cards.section_2d import Solid2DSectionElementPropertyCard


def rotation_matrix(axis, angle):
    """Rodrigues rotation about ``axis`` by ``angle`` (radians)."""
    axis = np.asarray(axis, dtype=float)
    axis = axis / np.linalg.norm(axis)
    K = np.array([
        [0.0, -axis[2], axis[1]],
        [axis[2], 0.0, -axis[0]],
        [-axis[1], axis[0], 0.0],
    ])
    return np.eye(3) + np.sin(angle) * K + (1.0 - np.cos(angle)) * K @ K


@pytest.fixture
def material():
    """Isotropic material with moderate constants for finite difference checks."""
    return IsotropicMaterialPropertyCard("alloy", E=1.0e4, nu=0.3, alpha=1.0e-3, rho=2.7)


@pytest.fixture
def flat_quad():
    """
    QUAD4 in the global xy-plane, so that the local frame is the global one.

        3 ------- 2
        |         |
        0 ------- 1
    """
    coords = np.array([[0.0, 0.0, 0.0], [2.0, 0.0, 0.0], [2.0, 1.0, 0.0], [0.0, 1.0, 0.0]])
    return ElementFactory.get_element(coords, [0, 1, 2, 3])


@pytest.fixture
def flat_tri():
    """Unit right triangle in the global xy-plane."""
    coords = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
    return ElementFactory.get_element(coords, [0, 1, 2])


@pytest.fixture
def panel_quad():
    """Distorted planar QUAD4 rotated and translated into 3D space."""
    local = np.array([[0.0, 0.0, 0.0], [1.2, 0.1, 0.0], [1.0, 0.9, 0.0], [-0.1, 0.8, 0.0]])
    R = rotation_matrix([1.0, 1.0, 1.0], 0.5)
    coords = local @ R.T + np.array([0.3, -0.2, 0.5])
    return ElementFactory.get_element(coords, [4, 5, 6, 7])


@pytest.fixture
def make_section(material):
    """Factory for solid sections made of ``material``."""

    def _make(h=0.1, off=0.0, strain_type="linear", bending_model="mindlin", prestress=None):
        return Solid2DSectionElementPropertyCard(
            material,
            h=h,
            off=off,
            strain_type=strain_type,
            bending_model=bending_model,
            prestress=prestress,
        )

    return _make


@pytest.fixture
def make_element():
    """Factory for structural elements; keyword arguments go to AnalysisOptions."""

    def _make(elem, section, **options):
        options.setdefault("drilling_stiffness", 0.0)
        return StructuralElement2D(elem, section, AnalysisOptions(**options))

    return _make


@pytest.fixture
def rng():
    return np.random.default_rng(20240611)


@pytest.fixture
def fd_jacobian():
    """Central finite difference Jacobian of a vector function."""

    def _fd(func, x, step=1.0e-6):
        f0 = func(x)
        J = np.zeros((f0.size, x.size))
        for i in range(x.size):
            dx = np.zeros_like(x)
            dx[i] = step
            J[:, i] = (func(x + dx) - func(x - dx)) / (2.0 * step)
        return J

    return _fd


def assert_close_relative(actual, expected, rtol=1.0e-5, atol_scale=1.0e-7):
    """Compare arrays with an absolute tolerance scaled by the largest entry."""
    scale = max(np.max(np.abs(expected)), 1.0e-12)
    np.testing.assert_allclose(actual, expected, rtol=rtol, atol=atol_scale * scale)


@pytest.fixture
def assert_close():
    return assert_close_relative
