from .section_2d import PrestressField, Solid2DSectionElementPropertyCard, StrainType

__all__ = ["PrestressField", "Solid2DSectionElementPropertyCard", "StrainType"]
