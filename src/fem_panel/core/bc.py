"""
Boundary and load conditions for structural elements.

Every condition carries a ``LoadType`` tag and a set of named field functions
("pressure", "temperature", "ref_temperature", ...) that the element
assemblers evaluate at quadrature points.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, Union

import numpy as np

from fem_panel.core.function import FieldFunction, Parameter, as_field_function

logger = logging.getLogger(__name__)

Scalar = Union[float, Parameter, FieldFunction]


class LoadType(str, Enum):
    """Type tag of a boundary condition."""

    SURFACE_PRESSURE = "surface_pressure"
    TEMPERATURE = "temperature"
    PISTON_THEORY = "piston_theory"


class BoundaryConditionBase:
    """Named collection of field functions with a load-type tag.

    Parameters
    ----------
    load_type : LoadType
        Kind of load this condition applies.
    """

    def __init__(self, load_type: LoadType):
        self.load_type = LoadType(load_type)
        self._functions: Dict[str, FieldFunction] = {}

    def add(self, name: str, function: FieldFunction) -> None:
        """Register ``function`` under ``name``, whatever the function's own name"""
        if name in self._functions:
            raise ValueError(f"Function '{name}' already defined for {self.load_type.value}")
        self._functions[name] = function

    def get(self, name: str) -> FieldFunction:
        try:
            return self._functions[name]
        except KeyError:
            raise KeyError(f"No function '{name}' in {self.load_type.value} condition") from None

    def contains(self, name: str) -> bool:
        return name in self._functions

    def depends_on(self, parameter: Parameter) -> bool:
        return any(f.depends_on(parameter) for f in self._functions.values())

    def __repr__(self):
        return f"<{type(self).__name__} {self.load_type.value} {sorted(self._functions)}>"


class SurfacePressureBoundaryCondition(BoundaryConditionBase):
    """Distributed pressure acting on element sides.

    Parameters
    ----------
    pressure : float, Parameter or FieldFunction
        Pressure magnitude; positive pressure pushes against the outward
        normal.
    """

    def __init__(self, pressure: Scalar):
        super().__init__(LoadType.SURFACE_PRESSURE)
        self.add("pressure", as_field_function("pressure", pressure))


class TemperatureBoundaryCondition(BoundaryConditionBase):
    """Temperature field and stress-free reference temperature.

    Parameters
    ----------
    temperature : float, Parameter or FieldFunction
        Current temperature.
    ref_temperature : float, Parameter or FieldFunction
        Reference (stress-free) temperature.
    """

    def __init__(self, temperature: Scalar, ref_temperature: Scalar = 0.0):
        super().__init__(LoadType.TEMPERATURE)
        self.add("temperature", as_field_function("temperature", temperature))
        self.add("ref_temperature", as_field_function("ref_temperature", ref_temperature))


class PistonTheoryBoundaryCondition(BoundaryConditionBase):
    """Quasi-steady piston theory aerodynamic pressure.

    The pressure on a surface moving with normal velocity dw/dt and slope
    dw/dx along the flow direction is

        p = rho a^2 [ c1 v + c2 v^2 + c3 v^3 ],   v = dw/dx + dw/dt / (M a)

    with c1 = M, c2 = (gamma + 1) M^2 / 4 and c3 = (gamma + 1) M^3 / 12.
    First order theory keeps c1 only, second order c1 and c2.

    Parameters
    ----------
    order : int
        Order of piston theory (1, 2 or 3).
    vel_vec : array_like
        Flow direction (3 components, global frame); normalized on input.
    mach : float, Parameter or FieldFunction
        Free-stream Mach number.
    a_inf : float, Parameter or FieldFunction
        Free-stream speed of sound.
    gamma : float, Parameter or FieldFunction
        Ratio of specific heats.
    rho_inf : float, Parameter or FieldFunction
        Free-stream density.

    References
    ----------
    - Ashley, H. and Zartarian, G. (1956). "Piston Theory - A New
      Aerodynamic Tool for the Aeroelastician", J. Aero. Sci., 23(12).
    """

    def __init__(
        self,
        order: int,
        vel_vec: Iterable[float],
        mach: Scalar,
        a_inf: Scalar,
        gamma: Scalar = 1.4,
        rho_inf: Scalar = 1.0,
    ):
        super().__init__(LoadType.PISTON_THEORY)
        if order not in (1, 2, 3):
            raise ValueError(f"Piston theory order must be 1, 2 or 3, got {order}")
        vel_vec = np.asarray(vel_vec, dtype=float)
        if vel_vec.shape != (3,) or np.linalg.norm(vel_vec) == 0:
            raise ValueError(f"Flow direction must be a non-zero 3-vector, got {vel_vec}")

        self.order = order
        self._vel_vec = vel_vec / np.linalg.norm(vel_vec)
        self.add("mach", as_field_function("mach", mach))
        self.add("a_inf", as_field_function("a_inf", a_inf))
        self.add("gamma", as_field_function("gamma", gamma))
        self.add("rho_inf", as_field_function("rho_inf", rho_inf))

        if isinstance(mach, (int, float)) and mach < 1.0:
            logger.warning("Piston theory used at subsonic Mach number %.3f", mach)

    def vel_vec(self) -> np.ndarray:
        """Unit flow direction in the global frame"""
        return self._vel_vec

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _state(self, point, time):
        return tuple(self.get(n)(point, time) for n in ("rho_inf", "a_inf", "mach", "gamma"))

    def _state_derivative(self, parameter, point, time):
        return tuple(
            self.get(n).derivative(parameter, point, time)
            for n in ("rho_inf", "a_inf", "mach", "gamma")
        )

    def _coefficients(self, M, gamma):
        c1 = M
        c2 = (gamma + 1.0) * M**2 / 4.0 if self.order >= 2 else 0.0
        c3 = (gamma + 1.0) * M**3 / 12.0 if self.order >= 3 else 0.0
        return c1, c2, c3

    def _coefficients_derivative(self, M, gamma, dM, dgamma):
        dc1 = dM
        dc2 = dc3 = 0.0
        if self.order >= 2:
            dc2 = dgamma * M**2 / 4.0 + (gamma + 1.0) * M * dM / 2.0
        if self.order >= 3:
            dc3 = dgamma * M**3 / 12.0 + (gamma + 1.0) * M**2 * dM / 4.0
        return dc1, dc2, dc3

    def _slope_and_derivative(self, parameter, dwdx, dwdt, point, time):
        rho, a, M, gamma = self._state(point, time)
        drho, da, dM, dgamma = self._state_derivative(parameter, point, time)
        v = dwdx + dwdt / (M * a)
        dv = -dwdt / (M * a) ** 2 * (dM * a + M * da)
        c = self._coefficients(M, gamma)
        dc = self._coefficients_derivative(M, gamma, dM, dgamma)
        q = rho * a**2
        dq = drho * a**2 + 2.0 * rho * a * da
        return v, dv, c, dc, q, dq, M, a, dM, da

    # ------------------------------------------------------------------
    # Pressure and its derivatives
    # ------------------------------------------------------------------

    def pressure(self, dwdx: float, dwdt: float, point, time: float) -> float:
        rho, a, M, gamma = self._state(point, time)
        c1, c2, c3 = self._coefficients(M, gamma)
        v = dwdx + dwdt / (M * a)
        return rho * a**2 * (c1 * v + c2 * v**2 + c3 * v**3)

    def dpressure_dx(self, dwdx: float, dwdt: float, point, time: float) -> float:
        """Derivative of the pressure with respect to the surface slope dw/dx"""
        rho, a, M, gamma = self._state(point, time)
        c1, c2, c3 = self._coefficients(M, gamma)
        v = dwdx + dwdt / (M * a)
        return rho * a**2 * (c1 + 2.0 * c2 * v + 3.0 * c3 * v**2)

    def dpressure_dxdot(self, dwdx: float, dwdt: float, point, time: float) -> float:
        """Derivative of the pressure with respect to the normal velocity dw/dt"""
        _, a, M, _ = self._state(point, time)
        return self.dpressure_dx(dwdx, dwdt, point, time) / (M * a)

    def pressure_sensitivity(self, parameter, dwdx, dwdt, point, time) -> float:
        """Partial derivative of the pressure with respect to ``parameter``"""
        v, dv, c, dc, q, dq, *_ = self._slope_and_derivative(parameter, dwdx, dwdt, point, time)
        c1, c2, c3 = c
        dc1, dc2, dc3 = dc
        P = c1 * v + c2 * v**2 + c3 * v**3
        dP = dc1 * v + dc2 * v**2 + dc3 * v**3 + (c1 + 2.0 * c2 * v + 3.0 * c3 * v**2) * dv
        return dq * P + q * dP

    def dpressure_dx_sensitivity(self, parameter, dwdx, dwdt, point, time) -> float:
        v, dv, c, dc, q, dq, *_ = self._slope_and_derivative(parameter, dwdx, dwdt, point, time)
        c1, c2, c3 = c
        dc1, dc2, dc3 = dc
        Q = c1 + 2.0 * c2 * v + 3.0 * c3 * v**2
        dQ = dc1 + 2.0 * dc2 * v + 3.0 * dc3 * v**2 + (2.0 * c2 + 6.0 * c3 * v) * dv
        return dq * Q + q * dQ

    def dpressure_dxdot_sensitivity(self, parameter, dwdx, dwdt, point, time) -> float:
        *_, M, a, dM, da = self._slope_and_derivative(parameter, dwdx, dwdt, point, time)
        g = self.dpressure_dx(dwdx, dwdt, point, time)
        dg = self.dpressure_dx_sensitivity(parameter, dwdx, dwdt, point, time)
        Ma = M * a
        return dg / Ma - g * (dM * a + M * da) / Ma**2
