from .elements import ElementDimension, ElementFactory, FemElement, PlaneElement
from .fe import FEBase, build_fe
from .QUAD import QUAD4, QUAD8, QUAD9
from .TRI import TRI3

__all__ = [
    "ElementDimension",
    "ElementFactory",
    "FEBase",
    "FemElement",
    "PlaneElement",
    "QUAD4",
    "QUAD8",
    "QUAD9",
    "TRI3",
    "build_fe",
]
