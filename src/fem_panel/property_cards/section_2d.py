"""
Solid (homogeneous) 2D section property card.

Section stiffness follows classical plate theory for a single isotropic layer
of thickness ``h`` whose mid-plane is offset by ``off`` from the element
reference plane. With C the plane-stress material matrix:

    A = C h
    B = C h off
    D = C (h^3 / 12 + h off^2)

Thermal expansion and prestress resultants integrate the same way:

    E_A = C alpha h,             E_B = E_A off
    N_0 = sigma_0 h,             M_0 = sigma_0 h off

and the transverse shear stiffness is kappa G h. All matrices are returned as
field functions with analytical parameter derivatives.
"""

import logging
from enum import Enum
from typing import Optional, Union

import numpy as np

from fem_panel.core.function import (
    CompositeFieldFunction,
    FieldFunction,
    Parameter,
    as_field_function,
)
from fem_panel.core.material import IsotropicMaterialPropertyCard
from fem_panel.elements.bending_operator import BendingModel

logger = logging.getLogger(__name__)


class StrainType(str, Enum):
    """Membrane strain measure."""

    LINEAR = "linear"
    VON_KARMAN = "von_karman"


class PrestressField(FieldFunction):
    """Uniform in-plane prestress tensor (2x2) built from {sxx, syy, sxy}."""

    def __init__(self, sigma_xx, sigma_yy, sigma_xy):
        self._components = [
            as_field_function("prestress_xx", sigma_xx),
            as_field_function("prestress_yy", sigma_yy),
            as_field_function("prestress_xy", sigma_xy),
        ]
        super().__init__("prestress", self._components)

    @staticmethod
    def _tensor(sxx, syy, sxy) -> np.ndarray:
        return np.array([[sxx, sxy], [sxy, syy]])

    def __call__(self, point, time) -> np.ndarray:
        return self._tensor(*(f(point, time) for f in self._components))

    def derivative(self, parameter, point, time) -> np.ndarray:
        return self._tensor(*(f.derivative(parameter, point, time) for f in self._components))


class Solid2DSectionElementPropertyCard:
    """Homogeneous isotropic plate section.

    Parameters
    ----------
    material : IsotropicMaterialPropertyCard
        Section material.
    h : float, Parameter or FieldFunction
        Section thickness.
    off : float, Parameter or FieldFunction
        Offset of the section mid-plane from the element reference plane.
    strain_type : StrainType
        Linear or von Karman membrane strain.
    bending_model : BendingModel
        Plate bending kinematics; ``NO_BENDING`` gives a membrane element.
    prestress : FieldFunction, optional
        Initial in-plane stress tensor (2x2), e.g. a ``PrestressField``.
    """

    def __init__(
        self,
        material: IsotropicMaterialPropertyCard,
        h: Union[float, Parameter, FieldFunction],
        off: Union[float, Parameter, FieldFunction] = 0.0,
        strain_type: StrainType = StrainType.LINEAR,
        bending_model: BendingModel = BendingModel.MINDLIN,
        prestress: Optional[FieldFunction] = None,
    ):
        if isinstance(h, (int, float)) and h <= 0:
            raise ValueError(f"Section thickness must be positive: {h}")

        self.material = material
        self._h = as_field_function("h", h)
        self._off = as_field_function("off", off)
        self._strain_type = StrainType(strain_type)
        self._bending_model = BendingModel(bending_model)
        self._prestress = prestress

        if self._strain_type == StrainType.VON_KARMAN and not self.if_bending:
            logger.warning("von Karman strain has no effect on a section without bending")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, name: str) -> FieldFunction:
        if name == "h":
            return self._h
        if name == "off":
            return self._off
        if name == "prestress" and self._prestress is not None:
            return self._prestress
        return self.material.get(name)

    @property
    def strain_type(self) -> StrainType:
        return self._strain_type

    def bending_model(self, elem=None) -> BendingModel:
        return self._bending_model

    @property
    def if_bending(self) -> bool:
        return self._bending_model != BendingModel.NO_BENDING

    @property
    def if_vk(self) -> bool:
        """von Karman strain is active (requires bending kinematics)"""
        return self._strain_type == StrainType.VON_KARMAN and self.if_bending

    @property
    def if_prestressed(self) -> bool:
        return self._prestress is not None

    def depends_on(self, parameter: Parameter) -> bool:
        return (
            self.material.depends_on(parameter)
            or self._h.depends_on(parameter)
            or self._off.depends_on(parameter)
            or (self._prestress is not None and self._prestress.depends_on(parameter))
        )

    # ------------------------------------------------------------------
    # Section matrices
    # ------------------------------------------------------------------

    def stiffness_A_matrix(self) -> FieldFunction:
        C, h = self.material.stiffness_matrix(2), self._h

        def value(x, t):
            return C(x, t) * h(x, t)

        def derivative(p, x, t):
            return C.derivative(p, x, t) * h(x, t) + C(x, t) * h.derivative(p, x, t)

        return CompositeFieldFunction("A", value, derivative, (C, h))

    def stiffness_B_matrix(self) -> FieldFunction:
        C, h, off = self.material.stiffness_matrix(2), self._h, self._off

        def value(x, t):
            return C(x, t) * h(x, t) * off(x, t)

        def derivative(p, x, t):
            hv, ov = h(x, t), off(x, t)
            return C.derivative(p, x, t) * hv * ov + C(x, t) * (
                h.derivative(p, x, t) * ov + hv * off.derivative(p, x, t)
            )

        return CompositeFieldFunction("B", value, derivative, (C, h, off))

    def stiffness_D_matrix(self) -> FieldFunction:
        C, h, off = self.material.stiffness_matrix(2), self._h, self._off

        def value(x, t):
            hv, ov = h(x, t), off(x, t)
            return C(x, t) * (hv**3 / 12.0 + hv * ov**2)

        def derivative(p, x, t):
            hv, ov = h(x, t), off(x, t)
            dh, doff = h.derivative(p, x, t), off.derivative(p, x, t)
            factor = hv**3 / 12.0 + hv * ov**2
            dfactor = dh * (hv**2 / 4.0 + ov**2) + 2.0 * hv * ov * doff
            return C.derivative(p, x, t) * factor + C(x, t) * dfactor

        return CompositeFieldFunction("D", value, derivative, (C, h, off))

    def thermal_expansion_A_matrix(self) -> FieldFunction:
        C, alpha, h = self.material.stiffness_matrix(2), self.material.thermal_expansion_matrix(), self._h

        def value(x, t):
            return C(x, t) @ alpha(x, t) * h(x, t)

        def derivative(p, x, t):
            hv = h(x, t)
            Cv, av = C(x, t), alpha(x, t)
            return (
                C.derivative(p, x, t) @ av * hv
                + Cv @ alpha.derivative(p, x, t) * hv
                + Cv @ av * h.derivative(p, x, t)
            )

        return CompositeFieldFunction("thermal_expansion_A", value, derivative, (C, alpha, h))

    def thermal_expansion_B_matrix(self) -> FieldFunction:
        exp_A, off = self.thermal_expansion_A_matrix(), self._off

        def value(x, t):
            return exp_A(x, t) * off(x, t)

        def derivative(p, x, t):
            return exp_A.derivative(p, x, t) * off(x, t) + exp_A(x, t) * off.derivative(p, x, t)

        return CompositeFieldFunction("thermal_expansion_B", value, derivative, (exp_A, off))

    def prestress_A_matrix(self) -> FieldFunction:
        s0, h = self._require_prestress(), self._h

        def value(x, t):
            return s0(x, t) * h(x, t)

        def derivative(p, x, t):
            return s0.derivative(p, x, t) * h(x, t) + s0(x, t) * h.derivative(p, x, t)

        return CompositeFieldFunction("prestress_A", value, derivative, (s0, h))

    def prestress_B_matrix(self) -> FieldFunction:
        s0_A, off = self.prestress_A_matrix(), self._off

        def value(x, t):
            return s0_A(x, t) * off(x, t)

        def derivative(p, x, t):
            return s0_A.derivative(p, x, t) * off(x, t) + s0_A(x, t) * off.derivative(p, x, t)

        return CompositeFieldFunction("prestress_B", value, derivative, (s0_A, off))

    def transverse_shear_stiffness_matrix(self) -> FieldFunction:
        S, h = self.material.transverse_shear_stiffness_matrix(), self._h

        def value(x, t):
            return S(x, t) * h(x, t)

        def derivative(p, x, t):
            return S.derivative(p, x, t) * h(x, t) + S(x, t) * h.derivative(p, x, t)

        return CompositeFieldFunction("transverse_shear_stiffness", value, derivative, (S, h))

    def _require_prestress(self) -> FieldFunction:
        if self._prestress is None:
            raise ValueError("Section has no prestress")
        return self._prestress

    def __repr__(self):
        return (
            f"<Solid2DSectionElementPropertyCard material={self.material.name} "
            f"strain={self._strain_type.value} bending={self._bending_model.value}>"
        )
