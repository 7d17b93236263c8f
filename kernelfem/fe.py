"""Continuous Lagrange finite element spaces.

A ``FiniteElement`` bundles a mesh, a number of solution components and a
quadrature rule, and precomputes everything the integrators need: shape
values, physical shape gradients, ``JxW`` and the physical quadrature points.

DOFs are ordered node-major: component ``i`` of node ``n`` is DOF
``n * vec + i``.
"""

from typing import Dict, Iterable, Optional

import jax.numpy as np
import numpy as onp

from kernelfem import logger
from kernelfem.basis import get_shape_vals_and_grads, get_facet_shape_vals
from kernelfem.errors import ConfigurationError
from kernelfem.mesh import Mesh


class FiniteElement:
    """Lagrange space of ``vec`` components on a mesh.

    Attributes:
        mesh (Mesh): Underlying mesh.
        vec (int): Number of solution components per node.
        dim (int): Spatial dimension.
        gauss_order (int): Polynomial degree integrated exactly by the cell rule.
        shape_vals (np.ndarray): (num_quads, num_nodes) reference shape values.
        shape_grads (np.ndarray): (num_cells, num_quads, num_nodes, dim) physical gradients.
        JxW (np.ndarray): (num_cells, num_quads) Jacobian determinant times weights.
        physical_quad_points (np.ndarray): (num_cells, num_quads, dim).
        cell_dofs (np.ndarray): (num_cells, num_nodes * vec) global DOF indices per cell.
    """

    def __init__(self, mesh: Mesh, vec: int = 1, gauss_order: int = 2):
        if vec < 1:
            raise ConfigurationError(f"Number of components must be positive, got {vec}")
        self.mesh = mesh
        self.vec = vec
        self.dim = mesh.dim
        self.gauss_order = gauss_order
        self.ele_type = mesh.ele_type

        self.points = np.array(mesh.points)
        self.cells = np.array(mesh.cells)
        self.cell_attributes = np.array(mesh.cell_attributes)
        self.num_cells = mesh.num_cells
        self.num_total_nodes = mesh.num_nodes
        self.num_total_dofs = self.num_total_nodes * vec

        shape_vals, shape_grads_ref, quad_weights = get_shape_vals_and_grads(self.ele_type, gauss_order)
        self.shape_vals = np.array(shape_vals)
        self.quad_weights = np.array(quad_weights)
        self.num_quads, self.num_nodes = shape_vals.shape

        self.shape_grads, self.JxW = self.get_shape_grads(np.array(shape_grads_ref))
        self.physical_quad_points = self.get_physical_quad_points()
        self.cell_dofs = self.get_cell_dofs()

        logger.debug(f"FiniteElement {self.ele_type}: {self.num_cells} cells, "
                     f"vec = {vec}, {self.num_total_dofs} dofs")

    def get_shape_grads(self, shape_grads_ref):
        """Physical shape gradients and ``JxW``.

        Returns:
            tuple: (num_cells, num_quads, num_nodes, dim) gradients and
                (num_cells, num_quads) ``JxW``.
        """
        cell_coords = self.points[self.cells]
        # jacobian[c, q, d, e] = d x_d / d xi_e
        jacobian = np.einsum('cnd,qne->cqde', cell_coords, shape_grads_ref)
        jacobian_det = np.linalg.det(jacobian)
        if onp.any(onp.asarray(jacobian_det) <= 0.):
            raise ConfigurationError("Mesh has inverted or degenerate cells")
        jacobian_inv = np.linalg.inv(jacobian)
        shape_grads = np.einsum('qne,cqed->cqnd', shape_grads_ref, jacobian_inv)
        JxW = jacobian_det * self.quad_weights[None, :]
        return shape_grads, JxW

    def get_physical_quad_points(self):
        cell_coords = self.points[self.cells]
        return np.einsum('qn,cnd->cqd', self.shape_vals, cell_coords)

    def get_cell_dofs(self):
        dofs = self.cells[:, :, None] * self.vec + np.arange(self.vec)[None, None, :]
        return dofs.reshape(self.num_cells, self.num_nodes * self.vec)

    def node_dofs(self, nodes: onp.ndarray, components: Optional[Iterable[int]] = None) -> onp.ndarray:
        """Global DOF indices of ``components`` (default all) at ``nodes``."""
        if components is None:
            components = range(self.vec)
        components = onp.asarray(list(components), dtype=onp.int32)
        if components.size and (components.min() < 0 or components.max() >= self.vec):
            raise ConfigurationError(
                f"Component index out of range [0, {self.vec - 1}]: {components.tolist()}")
        nodes = onp.asarray(nodes, dtype=onp.int32)
        return (nodes[:, None] * self.vec + components[None, :]).reshape(-1)

    def facet_data(self, attributes: Iterable[int]) -> Dict[str, np.ndarray]:
        """Quadrature data on the boundary facets carrying ``attributes``.

        Returns:
            dict: ``dofs`` (num_facets, num_facet_nodes * vec), ``shape_vals``
                (num_face_quads, num_facet_nodes), ``JxW`` (num_facets, num_face_quads),
                ``quad_points`` (num_facets, num_face_quads, dim) and ``attributes``
                (num_facets,).
        """
        mask = self.mesh.boundary_facet_mask(attributes)
        facets = np.array(self.mesh.boundary_facets[mask])
        facet_attrs = np.array(self.mesh.boundary_attributes[mask])
        shape_vals, weights = get_facet_shape_vals(self.ele_type, self.gauss_order)
        shape_vals, weights = np.array(shape_vals), np.array(weights)

        facet_coords = self.points[facets]
        quad_points = np.einsum('qn,fnd->fqd', shape_vals, facet_coords)
        if facets.shape[1] == 1:
            JxW = np.ones((facets.shape[0], 1))
        else:
            length = np.linalg.norm(facet_coords[:, 1, :] - facet_coords[:, 0, :], axis=-1)
            JxW = length[:, None] * weights[None, :]

        dofs = facets[:, :, None] * self.vec + np.arange(self.vec)[None, None, :]
        dofs = dofs.reshape(facets.shape[0], -1)
        return {'dofs': dofs, 'shape_vals': shape_vals, 'JxW': JxW,
                'quad_points': quad_points, 'attributes': facet_attrs}
