"""
Stress and strain output records for structural elements.

Elements write one record per stress evaluation point (in-plane quadrature
point times through-thickness sample). Records are created by a primary pass
and later augmented by derivative and sensitivity passes:

    output.begin_element(elem_id, n_points)
    for i in range(n_points):
        output.record_primary(elem_id, i, ...)
    ...
    for i in range(n_points):
        output.record_derivative(elem_id, i, ...)         # optional
        output.record_sensitivity(elem_id, i, param, ...)  # optional

Derivative and sensitivity passes must visit the points of a completed
primary pass in the same order; any other sequence raises
``StressOutputOrderError``.

Stress and strain are 6-component vectors {xx, yy, zz, xy, yz, zx}. The
von Mises stress is

    σ_vm = √(½[(σxx-σyy)² + (σyy-σzz)² + (σzz-σxx)²] + 3(σxy² + σyz² + σzx²))
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Optional

import numpy as np

from fem_panel.core.errors import StressOutputOrderError

logger = logging.getLogger(__name__)

_DERIVATIVE = "derivative"


def _von_mises_gradient(stress: np.ndarray) -> np.ndarray:
    """d(σ_vm²)/dσ"""
    sxx, syy, szz, sxy, syz, szx = stress
    return np.array([
        2 * sxx - syy - szz,
        2 * syy - szz - sxx,
        2 * szz - sxx - syy,
        6 * sxy,
        6 * syz,
        6 * szx,
    ])


def von_mises_stress(stress: np.ndarray) -> float:
    sxx, syy, szz, sxy, syz, szx = stress
    vm2 = 0.5 * ((sxx - syy) ** 2 + (syy - szz) ** 2 + (szz - sxx) ** 2) + 3.0 * (
        sxy**2 + syz**2 + szx**2
    )
    return float(np.sqrt(vm2))


@dataclass
class StressStrainData:
    """
    Stress and strain at one evaluation point.

    Attributes
    ----------
    qp_location : np.ndarray
        Reference coordinates (xi, eta, zeta) of the point.
    point : np.ndarray
        Physical coordinates.
    JxW : float
        Quadrature weight of the in-plane point.
    stress : np.ndarray
        Stress vector (6).
    strain : np.ndarray
        Strain vector (6).
    dstress_dX : np.ndarray, optional
        Derivative of stress with respect to the element DOFs (6 x n_dofs).
    dstrain_dX : np.ndarray, optional
        Derivative of strain with respect to the element DOFs (6 x n_dofs).
    stress_sensitivity : dict
        Total derivative of stress with respect to each parameter.
    strain_sensitivity : dict
        Total derivative of strain with respect to each parameter.
    """

    qp_location: np.ndarray
    point: np.ndarray
    JxW: float
    stress: np.ndarray
    strain: np.ndarray
    dstress_dX: Optional[np.ndarray] = None
    dstrain_dX: Optional[np.ndarray] = None
    stress_sensitivity: Dict[Hashable, np.ndarray] = field(default_factory=dict)
    strain_sensitivity: Dict[Hashable, np.ndarray] = field(default_factory=dict)

    def von_mises_stress(self) -> float:
        return von_mises_stress(self.stress)

    def dvon_mises_stress_dX(self) -> np.ndarray:
        """Derivative of the von Mises stress with respect to the element DOFs"""
        if self.dstress_dX is None:
            raise ValueError("Stress derivative not recorded for this point")
        vm = self.von_mises_stress()
        if vm == 0.0:
            return np.zeros(self.dstress_dX.shape[1])
        return _von_mises_gradient(self.stress) @ self.dstress_dX / (2.0 * vm)

    def dvon_mises_stress_dp(self, parameter: Hashable) -> float:
        """Sensitivity of the von Mises stress with respect to ``parameter``"""
        try:
            dstress = self.stress_sensitivity[parameter]
        except KeyError:
            raise ValueError(f"No sensitivity recorded for {parameter}") from None
        vm = self.von_mises_stress()
        if vm == 0.0:
            return 0.0
        return float(_von_mises_gradient(self.stress) @ dstress / (2.0 * vm))

    def to_dict(self) -> Dict[str, np.ndarray]:
        """Convert to dictionary for result output."""
        return {
            "sigma_xx": self.stress[0],
            "sigma_yy": self.stress[1],
            "sigma_xy": self.stress[3],
            "epsilon_xx": self.strain[0],
            "epsilon_yy": self.strain[1],
            "gamma_xy": self.strain[3],
            "von_mises": self.von_mises_stress(),
        }


class StressStrainOutput:
    """
    Per-element store of stress and strain records.

    Each element only touches its own records; a lock serializes table
    updates so that elements may be evaluated from several worker threads.
    Thermal loads needed for thermal strain are registered per element.
    """

    def __init__(self):
        self._records: Dict[int, List[StressStrainData]] = {}
        self._n_points: Dict[int, int] = {}
        self._cursors: Dict[tuple, int] = {}
        self._thermal_loads: Dict[int, object] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Thermal loads
    # ------------------------------------------------------------------

    def set_thermal_load_for_elem(self, elem_id: int, bc) -> None:
        with self._lock:
            self._thermal_loads[elem_id] = bc

    def get_thermal_load_for_elem(self, elem_id: int):
        with self._lock:
            return self._thermal_loads.get(elem_id)

    # ------------------------------------------------------------------
    # Record protocol
    # ------------------------------------------------------------------

    def begin_element(self, elem_id: int, n_points: int) -> None:
        """Reserve ``n_points`` ordered records for ``elem_id`` (drops old ones)"""
        if n_points <= 0:
            raise ValueError(f"Number of stress points must be positive, got {n_points}")
        with self._lock:
            self._records[elem_id] = []
            self._n_points[elem_id] = n_points
            for key in [k for k in self._cursors if k[0] == elem_id]:
                del self._cursors[key]
        logger.debug("Reserved %d stress records for element %d", n_points, elem_id)

    def record_primary(
        self,
        elem_id: int,
        i: int,
        qp_location: np.ndarray,
        point: np.ndarray,
        JxW: float,
        stress: np.ndarray,
        strain: np.ndarray,
    ) -> StressStrainData:
        with self._lock:
            records = self._element_records(elem_id)
            if len(records) >= self._n_points[elem_id]:
                raise StressOutputOrderError(
                    f"Element {elem_id}: all {self._n_points[elem_id]} records already written"
                )
            if i != len(records):
                raise StressOutputOrderError(
                    f"Element {elem_id}: expected primary record {len(records)}, got {i}"
                )
            data = StressStrainData(
                qp_location=np.array(qp_location, dtype=float),
                point=np.array(point, dtype=float),
                JxW=float(JxW),
                stress=np.array(stress, dtype=float),
                strain=np.array(strain, dtype=float),
            )
            records.append(data)
            return data

    def record_derivative(
        self,
        elem_id: int,
        i: int,
        dstress_dX: np.ndarray,
        dstrain_dX: np.ndarray,
        qp_location: Optional[np.ndarray] = None,
    ) -> StressStrainData:
        with self._lock:
            data = self._next_record(elem_id, _DERIVATIVE, i, qp_location)
            data.dstress_dX = np.array(dstress_dX, dtype=float)
            data.dstrain_dX = np.array(dstrain_dX, dtype=float)
            return data

    def record_sensitivity(
        self,
        elem_id: int,
        i: int,
        parameter: Hashable,
        dstress_dp: np.ndarray,
        dstrain_dp: np.ndarray,
        qp_location: Optional[np.ndarray] = None,
    ) -> StressStrainData:
        with self._lock:
            data = self._next_record(elem_id, parameter, i, qp_location)
            data.stress_sensitivity[parameter] = np.array(dstress_dp, dtype=float)
            data.strain_sensitivity[parameter] = np.array(dstrain_dp, dtype=float)
            return data

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def n_points(self, elem_id: int) -> int:
        with self._lock:
            return self._n_points.get(elem_id, 0)

    def get_stress_strain_data_for_elem(self, elem_id: int) -> List[StressStrainData]:
        with self._lock:
            return list(self._records.get(elem_id, []))

    def element_ids(self) -> List[int]:
        with self._lock:
            return sorted(self._records)

    def max_von_mises_stress(self) -> float:
        with self._lock:
            records = [d for recs in self._records.values() for d in recs]
        values = [d.von_mises_stress() for d in records]
        return max(values) if values else 0.0

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._n_points.clear()
            self._cursors.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _element_records(self, elem_id: int) -> List[StressStrainData]:
        if elem_id not in self._records:
            raise StressOutputOrderError(f"Element {elem_id}: begin_element() not called")
        return self._records[elem_id]

    def _next_record(self, elem_id, key, i, qp_location) -> StressStrainData:
        records = self._element_records(elem_id)
        n = self._n_points[elem_id]
        if len(records) != n:
            raise StressOutputOrderError(
                f"Element {elem_id}: primary pass incomplete ({len(records)}/{n} records)"
            )
        cursor = self._cursors.get((elem_id, key), 0)
        if i != cursor:
            raise StressOutputOrderError(
                f"Element {elem_id}: expected record {cursor} in {key} pass, got {i}"
            )
        data = records[i]
        if qp_location is not None and not np.allclose(data.qp_location, qp_location):
            raise StressOutputOrderError(
                f"Element {elem_id}: point {i} location {qp_location} does not match "
                f"primary location {data.qp_location}"
            )
        self._cursors[(elem_id, key)] = (i + 1) % n
        return data
