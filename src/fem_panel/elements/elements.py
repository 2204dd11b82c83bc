from enum import IntEnum
from typing import Iterable, List, Sequence, Union

import numpy as np
from scipy.linalg import block_diag

from fem_panel.elements.QUAD import QUAD4, QUAD8, QUAD9
from fem_panel.elements.TRI import TRI3


class ElementDimension(IntEnum):
    ONE = 1
    TWO = 2
    THREE = 3


class FemElement:
    """Geometric finite element: node coordinates, ids and reference shape.

    Parameters
    ----------
    name : str
        Element type name.
    node_coords : array_like
        Nodal coordinates (n_nodes x 2 or n_nodes x 3).
    node_ids : list of int
        Global node ids.
    reference : QUAD or TRI3
        Reference element providing shape functions and quadrature.
    dim : ElementDimension
        Topological dimension.
    """

    _id_counter: int = 0

    def __init__(
        self,
        name: str,
        node_coords: Iterable[Union[Sequence[float], np.ndarray]],
        node_ids: List[int],
        reference,
        dim: ElementDimension,
    ):
        coords = np.atleast_2d(np.asarray(node_coords, dtype=float))
        if coords.shape[1] == 2:
            coords = np.column_stack([coords, np.zeros(len(coords))])
        if coords.shape[1] != 3:
            raise ValueError(f"Node coordinates must have 2 or 3 components, got {coords.shape}")
        if len(node_ids) != len(coords):
            raise ValueError(
                f"Got {len(node_ids)} node ids for {len(coords)} nodes in element {name}"
            )

        self.name = name
        self.node_coords = coords
        self.node_ids = tuple(node_ids)
        self.reference = reference
        self.dim = ElementDimension(dim)
        self.node_count = len(coords)
        self.id = FemElement._id_counter
        FemElement._id_counter += 1

    def __repr__(self):
        return f"<Element id={self.id} name={self.name}>"


class PlaneElement(FemElement):
    """2D element embedded in 3D space, with its own local coordinate system.

    The local x-axis runs along the first edge (node 0 to node 1), the local
    z-axis is normal to the plane spanned by the first edge and the edge from
    node 0 to the last corner, and y = z x x. Local node coordinates are
    measured from node 0.
    """

    def __init__(
        self,
        name: str,
        node_coords: Union[Sequence[float], np.ndarray],
        node_ids: List[int],
        reference,
    ):
        super().__init__(name, node_coords, node_ids, reference, ElementDimension.TWO)
        self._Tmat = self._compute_local_axes()
        self.origin = self.node_coords[0].copy()
        self.local_node_coords = (self.node_coords - self.origin) @ self._Tmat[:, :2]

    def _compute_local_axes(self) -> np.ndarray:
        nodes = self.node_coords
        last_corner = nodes[len(self.reference.corners) - 1]

        x_axis = nodes[1] - nodes[0]
        z_axis = np.cross(x_axis, last_corner - nodes[0])
        y_axis = np.cross(z_axis, x_axis)

        lengths = [np.linalg.norm(a) for a in (x_axis, y_axis, z_axis)]
        if min(lengths) <= 1e-14:
            raise ValueError(f"Degenerate element geometry for element {self.id}")

        # columns are the local axes expressed in the global frame
        return np.column_stack([x_axis / lengths[0], y_axis / lengths[1], z_axis / lengths[2]])

    @property
    def T_matrix(self) -> np.ndarray:
        """Local-to-global rotation (3x3); ``x_global = T @ x_local``"""
        return self._Tmat

    def dof_transformation_matrix(self) -> np.ndarray:
        """Element DOF rotation for the variable-major DOF ordering.

        Translations and rotations of every node are rotated by ``T``:
        ``u_global = R @ u_local``, ``R`` being (6 n x 6 n).
        """
        return np.kron(block_diag(self._Tmat, self._Tmat), np.eye(self.node_count))

    def to_global(self, local_points: np.ndarray) -> np.ndarray:
        """Map local in-plane points (n x 2) to global coordinates (n x 3)"""
        local_points = np.atleast_2d(local_points)
        return self.origin + local_points @ self._Tmat[:, :2].T

    def __repr__(self):
        return f"<PlaneElement id={self.id} name={self.name}>"


class ElementFactory:
    PLANE_ELEMENT_MAP = {3: TRI3, 4: QUAD4, 8: QUAD8, 9: QUAD9}

    @staticmethod
    def get_element(
        node_coords: Union[Sequence[Sequence[float]], np.ndarray],
        node_ids: List[int],
    ) -> PlaneElement:
        """Build a 2D element from its node count"""
        try:
            reference = ElementFactory.PLANE_ELEMENT_MAP[len(node_ids)]()
        except KeyError:
            raise ValueError(f"No 2D element with {len(node_ids)} nodes") from None
        return PlaneElement(reference.name, node_coords, node_ids, reference)
