"""Lagrange shape functions and quadrature on reference elements, tabulated with basix.

Reference cells are basix's: ``[0, 1]`` for intervals and ``[0, 1]^2`` for
quadrilaterals. Basix numbers quadrilateral vertices lexicographically; the
shape data returned here follows the mesh convention instead, which is
counter-clockwise starting from ``(0, 0)``.
"""

import basix
import numpy as onp

from kernelfem.errors import ConfigurationError


def get_elements(ele_type: str):
    """Basix cell type, facet cell type and vertex re-ordering of ``ele_type``."""
    if ele_type == 'LINE2':
        return basix.CellType.interval, basix.CellType.point, [0, 1]
    if ele_type == 'QUAD4':
        return basix.CellType.quadrilateral, basix.CellType.interval, [0, 1, 3, 2]
    raise ConfigurationError(f"Unsupported element type '{ele_type}'")


def tabulate_p1(cell_type, points: onp.ndarray):
    """First-order Lagrange values (num_points, num_nodes) and gradients (num_points, num_nodes, dim)."""
    element = basix.create_element(basix.ElementFamily.P, cell_type, 1, basix.LagrangeVariant.equispaced)
    # (1 + dim, num_points, num_nodes, 1)
    tab = element.tabulate(1, points)[:, :, :, 0]
    vals = tab[0]
    grads = onp.transpose(tab[1:], axes=(1, 2, 0))
    return vals, grads


def get_shape_vals_and_grads(ele_type: str, gauss_order: int = 2):
    """Shape data at the quadrature points of a reference cell.

    Args:
        ele_type (str): ``'LINE2'`` or ``'QUAD4'``.
        gauss_order (int, optional): Polynomial degree integrated exactly. Defaults to 2.

    Returns:
        tuple: ``(shape_vals, shape_grads_ref, weights)`` with shapes
            (num_quads, num_nodes), (num_quads, num_nodes, dim), (num_quads,).
    """
    cell_type, _, re_order = get_elements(ele_type)
    quad_points, weights = basix.make_quadrature(cell_type, gauss_order)
    vals, grads = tabulate_p1(cell_type, quad_points)
    return vals[:, re_order], grads[:, re_order, :], weights


def get_facet_shape_vals(ele_type: str, gauss_order: int = 2):
    """Shape values and weights on a reference boundary facet of ``ele_type``.

    Returns:
        tuple: ``(shape_vals, weights)`` with shapes (num_face_quads, num_facet_nodes)
            and (num_face_quads,). Point facets have a single unit-weight point.
    """
    _, facet_type, _ = get_elements(ele_type)
    if facet_type == basix.CellType.point:
        return onp.ones((1, 1)), onp.ones(1)
    quad_points, weights = basix.make_quadrature(facet_type, gauss_order)
    vals, _ = tabulate_p1(facet_type, quad_points)
    return vals, weights
