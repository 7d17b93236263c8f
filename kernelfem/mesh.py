"""Structured meshes with cell and boundary attributes.

Meshes carry integer cell attributes (material regions) and integer boundary
facet attributes. Attributes are 1-based; boundary conditions select facets
by attribute.

Example:
    >>> from kernelfem.mesh import rectangle_mesh
    >>> mesh = rectangle_mesh(4, 2, lx=2.0, ly=1.0)
    >>> mesh.boundary_nodes([4])  # left edge
"""

from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as onp

from kernelfem.errors import ConfigurationError


@dataclass
class Mesh:
    """Finite element mesh.

    Attributes:
        points (onp.ndarray): Node coordinates with shape (num_nodes, dim).
        cells (onp.ndarray): Cell connectivity with shape (num_cells, num_nodes_per_cell).
        ele_type (str): Element type, ``'LINE2'`` or ``'QUAD4'``.
        cell_attributes (onp.ndarray, optional): Cell attribute per cell, defaults to ones.
        boundary_facets (onp.ndarray, optional): Node indices of each boundary facet
            with shape (num_facets, num_nodes_per_facet).
        boundary_attributes (onp.ndarray, optional): Attribute per boundary facet.
    """

    points: onp.ndarray
    cells: onp.ndarray
    ele_type: str
    cell_attributes: Optional[onp.ndarray] = None
    boundary_facets: Optional[onp.ndarray] = None
    boundary_attributes: Optional[onp.ndarray] = None

    def __post_init__(self):
        self.points = onp.asarray(self.points, dtype=onp.float64)
        if self.points.ndim == 1:
            self.points = self.points[:, None]
        self.cells = onp.asarray(self.cells, dtype=onp.int32)
        if self.cell_attributes is None:
            self.cell_attributes = onp.ones(len(self.cells), dtype=onp.int32)
        self.cell_attributes = onp.asarray(self.cell_attributes, dtype=onp.int32)
        if self.boundary_facets is None:
            self.boundary_facets = onp.zeros((0, 1), dtype=onp.int32)
            self.boundary_attributes = onp.zeros(0, dtype=onp.int32)
        self.boundary_facets = onp.asarray(self.boundary_facets, dtype=onp.int32)
        self.boundary_attributes = onp.asarray(self.boundary_attributes, dtype=onp.int32)

        if len(self.cell_attributes) != len(self.cells):
            raise ConfigurationError(
                f"Mesh has {len(self.cells)} cells but {len(self.cell_attributes)} cell attributes")
        if len(self.boundary_attributes) != len(self.boundary_facets):
            raise ConfigurationError(
                f"Mesh has {len(self.boundary_facets)} boundary facets but "
                f"{len(self.boundary_attributes)} boundary attributes")

    @property
    def dim(self) -> int:
        return self.points.shape[1]

    @property
    def num_nodes(self) -> int:
        return self.points.shape[0]

    @property
    def num_cells(self) -> int:
        return self.cells.shape[0]

    @property
    def max_boundary_attribute(self) -> int:
        if len(self.boundary_attributes) == 0:
            return 0
        return int(self.boundary_attributes.max())

    def check_boundary_attributes(self, attributes: Iterable[int], requester: str = "") -> None:
        """Raise ``ConfigurationError`` if an attribute is outside ``[1, max]``."""
        max_attr = self.max_boundary_attribute
        for attr in attributes:
            if attr < 1 or attr > max_attr:
                where = f" (requested by {requester})" if requester else ""
                raise ConfigurationError(
                    f"Boundary attribute {attr} out of range [1, {max_attr}]{where}")

    def boundary_facet_mask(self, attributes: Iterable[int]) -> onp.ndarray:
        return onp.isin(self.boundary_attributes, onp.asarray(list(attributes), dtype=onp.int32))

    def boundary_nodes(self, attributes: Iterable[int]) -> onp.ndarray:
        """Sorted unique node indices on the facets carrying ``attributes``."""
        mask = self.boundary_facet_mask(attributes)
        return onp.unique(self.boundary_facets[mask].reshape(-1))


def interval_mesh(num_elements: int, length: float = 1.0, x0: float = 0.0) -> Mesh:
    """Uniform LINE2 mesh of ``[x0, x0 + length]``.

    Boundary attributes: 1 at the left end, 2 at the right end.
    """
    if num_elements < 1:
        raise ConfigurationError(f"interval_mesh needs at least one element, got {num_elements}")
    points = onp.linspace(x0, x0 + length, num_elements + 1)[:, None]
    cells = onp.stack([onp.arange(num_elements), onp.arange(1, num_elements + 1)], axis=1)
    boundary_facets = onp.array([[0], [num_elements]])
    boundary_attributes = onp.array([1, 2])
    return Mesh(points, cells, 'LINE2',
                boundary_facets=boundary_facets,
                boundary_attributes=boundary_attributes)


def rectangle_mesh(nx: int, ny: int, lx: float = 1.0, ly: float = 1.0) -> Mesh:
    """Uniform QUAD4 mesh of ``[0, lx] x [0, ly]``.

    Nodes are numbered row by row, cells counter-clockwise. Boundary attributes:
    1 bottom, 2 right, 3 top, 4 left.
    """
    if nx < 1 or ny < 1:
        raise ConfigurationError(f"rectangle_mesh needs nx, ny >= 1, got ({nx}, {ny})")
    xs = onp.linspace(0., lx, nx + 1)
    ys = onp.linspace(0., ly, ny + 1)
    X, Y = onp.meshgrid(xs, ys, indexing='xy')
    points = onp.stack([X.reshape(-1), Y.reshape(-1)], axis=1)

    def node(i, j):
        return j * (nx + 1) + i

    cells = onp.array([[node(i, j), node(i + 1, j), node(i + 1, j + 1), node(i, j + 1)]
                       for j in range(ny) for i in range(nx)])

    facets, attrs = [], []
    for i in range(nx):
        facets.append([node(i, 0), node(i + 1, 0)])
        attrs.append(1)
    for j in range(ny):
        facets.append([node(nx, j), node(nx, j + 1)])
        attrs.append(2)
    for i in range(nx):
        facets.append([node(i + 1, ny), node(i, ny)])
        attrs.append(3)
    for j in range(ny):
        facets.append([node(0, j + 1), node(0, j)])
        attrs.append(4)

    return Mesh(points, cells, 'QUAD4',
                boundary_facets=onp.array(facets),
                boundary_attributes=onp.array(attrs))
