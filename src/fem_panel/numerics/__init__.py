from .fem_operator_matrix import FEMOperatorMatrix

__all__ = ["FEMOperatorMatrix"]
