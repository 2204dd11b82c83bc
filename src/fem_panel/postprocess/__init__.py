from .stress_output import StressStrainData, StressStrainOutput, von_mises_stress

__all__ = ["StressStrainData", "StressStrainOutput", "von_mises_stress"]
