"""
Panel Model Configuration Module.

This module provides a YAML-based configuration for the material, section and
analysis switches of structural panel elements, so that a section property
card can be built without writing Python code.

Example YAML configuration:
    material:
      name: "Al2024"
      E: 72.0e9
      nu: 0.33
      alpha: 2.3e-5
      rho: 2780.0

    section:
      thickness: 0.002
      offset: 0.0
      strain_type: "von_karman"
      bending_model: "mindlin"
      prestress: [1.0e6, 0.0, 0.0]

    analysis:
      follower_forces: false
      linearized_vk_jacobian: false
      drilling_stiffness: 1.0e-8
      stress_sample_points: [1.0, -1.0]
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from fem_panel.core.material import IsotropicMaterialPropertyCard
from fem_panel.property_cards.section_2d import PrestressField, Solid2DSectionElementPropertyCard

logger = logging.getLogger(__name__)

_STRAIN_TYPES = ("linear", "von_karman")
_BENDING_MODELS = ("no_bending", "mindlin", "dkt")


# =============================================================================
# Configuration Data Classes
# =============================================================================


@dataclass
class MaterialConfig:
    """Isotropic material configuration."""

    E: float
    nu: float
    name: str = "Material"
    alpha: float = 0.0
    rho: float = 0.0
    kappa: float = 5.0 / 6.0

    def __post_init__(self):
        if self.E <= 0:
            raise ValueError(f"Young's modulus must be positive: {self.E}")
        if not -1.0 < self.nu < 0.5:
            raise ValueError(f"Poisson's ratio must be in (-1, 0.5): {self.nu}")
        if self.rho < 0:
            raise ValueError(f"Density must be non-negative: {self.rho}")
        if self.kappa <= 0:
            raise ValueError(f"Shear correction factor must be positive: {self.kappa}")


@dataclass
class SectionConfig:
    """Solid 2D section configuration."""

    thickness: float
    offset: float = 0.0
    strain_type: str = "linear"
    bending_model: str = "mindlin"
    # in-plane prestress [sxx, syy, sxy]
    prestress: Optional[List[float]] = None

    def __post_init__(self):
        if self.thickness <= 0:
            raise ValueError(f"Section thickness must be positive: {self.thickness}")
        if self.strain_type not in _STRAIN_TYPES:
            raise ValueError(f"Invalid strain type: {self.strain_type}")
        if self.bending_model not in _BENDING_MODELS:
            raise ValueError(f"Invalid bending model: {self.bending_model}")
        if self.prestress is not None:
            self.prestress = [float(s) for s in self.prestress]
            if len(self.prestress) != 3:
                raise ValueError(f"Prestress needs 3 components [sxx, syy, sxy]: {self.prestress}")


@dataclass
class AnalysisOptions:
    """Switches of the structural element kernels.

    Attributes
    ----------
    follower_forces : bool
        Loads follow the deformed geometry. Not supported by the surface
        pressure and piston theory loads, which raise when it is set.
    linearized_vk_jacobian : bool
        Keep only the first-order von Karman term of the tangent, built from
        the linear stress resultant; the second-order stiffness term is
        dropped (first-order buckling linearization).
    drilling_stiffness : float
        Penalty added to the drilling rotation diagonal of the tangent.
    quadrature_order : int, optional
        Quadrature order; ``None`` uses the element default.
    stress_sample_points : tuple of float
        Through-thickness sample points (in units of h/2) of stress recovery.
    """

    follower_forces: bool = False
    linearized_vk_jacobian: bool = False
    drilling_stiffness: float = 1.0e-8
    quadrature_order: Optional[int] = None
    stress_sample_points: Tuple[float, ...] = (1.0, -1.0)

    def __post_init__(self):
        self.stress_sample_points = tuple(float(z) for z in self.stress_sample_points)
        if self.drilling_stiffness < 0:
            raise ValueError(f"Drilling stiffness must be non-negative: {self.drilling_stiffness}")
        if self.quadrature_order is not None and self.quadrature_order < 0:
            raise ValueError(f"Invalid quadrature order: {self.quadrature_order}")
        if not self.stress_sample_points:
            raise ValueError("At least one stress sample point is required")
        if any(abs(z) > 1.0 for z in self.stress_sample_points):
            raise ValueError(
                f"Stress sample points must lie in [-1, 1]: {self.stress_sample_points}"
            )


@dataclass
class PanelModelConfig:
    """Complete panel model configuration."""

    material: MaterialConfig
    section: SectionConfig
    analysis: AnalysisOptions = field(default_factory=AnalysisOptions)

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "PanelModelConfig":
        """Load configuration from YAML file.

        Parameters
        ----------
        yaml_path : str or Path
            Path to the YAML configuration file.

        Returns
        -------
        PanelModelConfig
            Validated configuration object.

        Raises
        ------
        FileNotFoundError
            If the YAML file does not exist.
        ValueError
            If the configuration is invalid.
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(yaml_path, "r") as f:
            data = yaml.safe_load(f)

        logger.info("Loaded panel configuration from %s", yaml_path)
        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PanelModelConfig":
        """Create configuration from dictionary.

        Parameters
        ----------
        data : dict
            Configuration dictionary.

        Returns
        -------
        PanelModelConfig
            Validated configuration object.
        """
        if "material" not in data:
            raise ValueError("Configuration requires a 'material' section")
        if "section" not in data:
            raise ValueError("Configuration requires a 'section' section")

        mat_data = data["material"]
        material_config = MaterialConfig(
            E=float(mat_data["E"]),
            nu=float(mat_data["nu"]),
            name=mat_data.get("name", "Material"),
            alpha=float(mat_data.get("alpha", 0.0)),
            rho=float(mat_data.get("rho", 0.0)),
            kappa=float(mat_data.get("kappa", 5.0 / 6.0)),
        )

        sec_data = data["section"]
        section_config = SectionConfig(
            thickness=float(sec_data["thickness"]),
            offset=float(sec_data.get("offset", 0.0)),
            strain_type=sec_data.get("strain_type", "linear"),
            bending_model=sec_data.get("bending_model", "mindlin"),
            prestress=sec_data.get("prestress"),
        )

        analysis_data = data.get("analysis", {})
        analysis_config = AnalysisOptions(
            follower_forces=bool(analysis_data.get("follower_forces", False)),
            linearized_vk_jacobian=bool(analysis_data.get("linearized_vk_jacobian", False)),
            drilling_stiffness=float(analysis_data.get("drilling_stiffness", 1.0e-8)),
            quadrature_order=analysis_data.get("quadrature_order"),
            stress_sample_points=analysis_data.get("stress_sample_points", (1.0, -1.0)),
        )

        return cls(material=material_config, section=section_config, analysis=analysis_config)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization."""
        result = {
            "material": {
                "name": self.material.name,
                "E": self.material.E,
                "nu": self.material.nu,
                "alpha": self.material.alpha,
                "rho": self.material.rho,
                "kappa": self.material.kappa,
            },
            "section": {
                "thickness": self.section.thickness,
                "offset": self.section.offset,
                "strain_type": self.section.strain_type,
                "bending_model": self.section.bending_model,
            },
            "analysis": {
                "follower_forces": self.analysis.follower_forces,
                "linearized_vk_jacobian": self.analysis.linearized_vk_jacobian,
                "drilling_stiffness": self.analysis.drilling_stiffness,
                "stress_sample_points": list(self.analysis.stress_sample_points),
            },
        }

        if self.section.prestress is not None:
            result["section"]["prestress"] = list(self.section.prestress)

        if self.analysis.quadrature_order is not None:
            result["analysis"]["quadrature_order"] = self.analysis.quadrature_order

        return result

    def save_yaml(self, yaml_path: Union[str, Path]) -> None:
        """Save configuration to YAML file.

        Parameters
        ----------
        yaml_path : str or Path
            Path to the output YAML file.
        """
        with open(yaml_path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def validate(self) -> List[str]:
        """Validate the complete configuration.

        Returns
        -------
        list of str
            List of validation warnings (empty if all OK).
        """
        warnings = []

        if self.section.strain_type == "von_karman" and self.section.bending_model == "no_bending":
            warnings.append("von Karman strain has no effect without bending")

        if self.section.bending_model == "dkt":
            warnings.append("DKT bending is not available for 2D structural elements")

        if self.material.alpha == 0.0:
            warnings.append("Thermal expansion coefficient is zero; thermal loads vanish")

        if self.analysis.linearized_vk_jacobian and self.section.strain_type != "von_karman":
            warnings.append("Linearized von Karman Jacobian requested for a linear section")

        return warnings

    def build_property_card(self) -> Solid2DSectionElementPropertyCard:
        """Build the section property card described by this configuration.

        Returns
        -------
        Solid2DSectionElementPropertyCard
            Section card with constant material and section properties.
        """
        material = IsotropicMaterialPropertyCard(
            self.material.name,
            E=self.material.E,
            nu=self.material.nu,
            alpha=self.material.alpha,
            rho=self.material.rho,
            kappa=self.material.kappa,
        )
        prestress = PrestressField(*self.section.prestress) if self.section.prestress else None
        return Solid2DSectionElementPropertyCard(
            material,
            h=self.section.thickness,
            off=self.section.offset,
            strain_type=self.section.strain_type,
            bending_model=self.section.bending_model,
            prestress=prestress,
        )

    def __str__(self) -> str:
        """Human-readable string representation."""
        lines = [
            "Panel Model Configuration",
            "=" * 40,
            f"Material: {self.material.name}",
            f"  E={self.material.E}, nu={self.material.nu}, alpha={self.material.alpha}",
            f"Section: h={self.section.thickness}, off={self.section.offset}",
            f"  Strain: {self.section.strain_type}, Bending: {self.section.bending_model}",
        ]
        if self.section.prestress is not None:
            lines.append(f"  Prestress: {self.section.prestress}")
        lines.append(
            f"Analysis: follower_forces={self.analysis.follower_forces}, "
            f"linearized_vk_jacobian={self.analysis.linearized_vk_jacobian}"
        )
        return "\n".join(lines)
