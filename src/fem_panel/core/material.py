"""
Isotropic material property card.

Material constants are held as field functions so that every constitutive
matrix can be differentiated with respect to design parameters. The card
produces the plane-stress stiffness

    C = E / (1 - nu^2) * | 1   nu  0          |
                         | nu  1   0          |
                         | 0   0   (1 - nu)/2 |

the transverse shear stiffness kappa * G * I (G = E / (2 (1 + nu))) and the
thermal expansion vector [alpha, alpha, 0].
"""

from typing import Dict, Union

import numpy as np

from fem_panel.core.function import FieldFunction, Parameter, as_field_function

Scalar = Union[float, Parameter, FieldFunction]

# d/dnu of the nu-dependent factor matrix of C
_DM_DNU = np.array([[0.0, 1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, -0.5]])


def _plane_stress_factor(E: float, nu: float):
    f = E / (1.0 - nu**2)
    M = np.array([[1.0, nu, 0.0], [nu, 1.0, 0.0], [0.0, 0.0, 0.5 * (1.0 - nu)]])
    return f, M


class PlaneStressStiffness(FieldFunction):
    """Plane-stress constitutive matrix C (3x3)."""

    def __init__(self, E: FieldFunction, nu: FieldFunction):
        super().__init__("plane_stress_stiffness", (E, nu))
        self._E = E
        self._nu = nu

    def __call__(self, point, time) -> np.ndarray:
        f, M = _plane_stress_factor(self._E(point, time), self._nu(point, time))
        return f * M

    def derivative(self, parameter, point, time) -> np.ndarray:
        E, nu = self._E(point, time), self._nu(point, time)
        dE = self._E.derivative(parameter, point, time)
        dnu = self._nu.derivative(parameter, point, time)
        f, M = _plane_stress_factor(E, nu)
        df = dE / (1.0 - nu**2) + 2.0 * E * nu / (1.0 - nu**2) ** 2 * dnu
        return df * M + f * _DM_DNU * dnu


class TransverseShearStiffness(FieldFunction):
    """Transverse shear stiffness kappa * G * I (2x2)."""

    def __init__(self, E: FieldFunction, nu: FieldFunction, kappa: FieldFunction):
        super().__init__("transverse_shear_stiffness", (E, nu, kappa))
        self._E = E
        self._nu = nu
        self._kappa = kappa

    def __call__(self, point, time) -> np.ndarray:
        E, nu, k = self._E(point, time), self._nu(point, time), self._kappa(point, time)
        return k * E / (2.0 * (1.0 + nu)) * np.eye(2)

    def derivative(self, parameter, point, time) -> np.ndarray:
        E, nu, k = self._E(point, time), self._nu(point, time), self._kappa(point, time)
        dE = self._E.derivative(parameter, point, time)
        dnu = self._nu.derivative(parameter, point, time)
        dk = self._kappa.derivative(parameter, point, time)
        G = E / (2.0 * (1.0 + nu))
        dG = dE / (2.0 * (1.0 + nu)) - E * dnu / (2.0 * (1.0 + nu) ** 2)
        return (dk * G + k * dG) * np.eye(2)


class ThermalExpansionVector(FieldFunction):
    """In-plane thermal expansion [alpha, alpha, 0]."""

    def __init__(self, alpha: FieldFunction):
        super().__init__("thermal_expansion", (alpha,))
        self._alpha = alpha

    def __call__(self, point, time) -> np.ndarray:
        a = self._alpha(point, time)
        return np.array([a, a, 0.0])

    def derivative(self, parameter, point, time) -> np.ndarray:
        da = self._alpha.derivative(parameter, point, time)
        return np.array([da, da, 0.0])


class IsotropicMaterialPropertyCard:
    """Isotropic linear elastic material.

    Parameters
    ----------
    name : str
        Material name.
    E : float, Parameter or FieldFunction
        Young's modulus.
    nu : float, Parameter or FieldFunction
        Poisson's ratio.
    alpha : float, Parameter or FieldFunction
        Coefficient of thermal expansion.
    rho : float, Parameter or FieldFunction
        Density.
    kappa : float, Parameter or FieldFunction
        Transverse shear correction factor (5/6 for homogeneous sections).
    """

    def __init__(
        self,
        name: str,
        E: Scalar,
        nu: Scalar,
        alpha: Scalar = 0.0,
        rho: Scalar = 0.0,
        kappa: Scalar = 5.0 / 6.0,
    ):
        if isinstance(E, (int, float)) and E <= 0:
            raise ValueError(f"Young's modulus must be positive: {E}")
        if isinstance(nu, (int, float)) and not -1.0 < nu < 0.5:
            raise ValueError(f"Poisson's ratio must be in (-1, 0.5): {nu}")

        self.name = name
        self._functions: Dict[str, FieldFunction] = {
            "E": as_field_function("E", E),
            "nu": as_field_function("nu", nu),
            "alpha_expansion": as_field_function("alpha_expansion", alpha),
            "rho": as_field_function("rho", rho),
            "kappa": as_field_function("kappa", kappa),
        }

    def get(self, name: str) -> FieldFunction:
        try:
            return self._functions[name]
        except KeyError:
            raise KeyError(f"Material '{self.name}' has no property '{name}'") from None

    def contains(self, name: str) -> bool:
        return name in self._functions

    def depends_on(self, parameter: Parameter) -> bool:
        return any(f.depends_on(parameter) for f in self._functions.values())

    def stiffness_matrix(self, dim: int = 2) -> FieldFunction:
        """Constitutive matrix for ``dim``-dimensional elements (plane stress for 2D)"""
        if dim != 2:
            raise NotImplementedError(f"Material stiffness for dim={dim} is not available")
        return PlaneStressStiffness(self.get("E"), self.get("nu"))

    def transverse_shear_stiffness_matrix(self) -> FieldFunction:
        return TransverseShearStiffness(self.get("E"), self.get("nu"), self.get("kappa"))

    def thermal_expansion_matrix(self) -> FieldFunction:
        return ThermalExpansionVector(self.get("alpha_expansion"))

    def __repr__(self):
        return f"<IsotropicMaterialPropertyCard {self.name}>"
