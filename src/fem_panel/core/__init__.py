"""
Core module for fem-panel.

Provides design parameters and field functions, materials, boundary
conditions, errors and configuration.
"""

from .bc import (
    BoundaryConditionBase,
    LoadType,
    PistonTheoryBoundaryCondition,
    SurfacePressureBoundaryCondition,
    TemperatureBoundaryCondition,
)
from .config import AnalysisOptions, PanelModelConfig
from .errors import StressOutputOrderError, UnsupportedAnalysisError
from .function import (
    CallableFieldFunction,
    CompositeFieldFunction,
    ConstantFieldFunction,
    FieldFunction,
    Parameter,
)
from .material import IsotropicMaterialPropertyCard

__all__ = [
    "AnalysisOptions",
    "BoundaryConditionBase",
    "CallableFieldFunction",
    "CompositeFieldFunction",
    "ConstantFieldFunction",
    "FieldFunction",
    "IsotropicMaterialPropertyCard",
    "LoadType",
    "PanelModelConfig",
    "Parameter",
    "PistonTheoryBoundaryCondition",
    "StressOutputOrderError",
    "SurfacePressureBoundaryCondition",
    "TemperatureBoundaryCondition",
    "UnsupportedAnalysisError",
]
