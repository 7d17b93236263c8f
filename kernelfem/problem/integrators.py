"""Element integrators for weak-form terms.

This module provides the IntegratorGenerator class, whose methods build the
element-level routines used by bilinear, mixed and linear forms. Each routine
evaluates its coefficient at the quadrature points and computes element
matrices (or vectors) for all cells at once with ``jax.vmap``.

Bilinear integrators have the signature ``integrator(test_fe, trial_fe)`` and
return (num_cells, num_nodes_test * vec_test, num_nodes_trial * vec_trial).
Linear integrators have the signature ``integrator(fe)`` and return
(num_cells, num_nodes * vec). Boundary integrators take ``(fe, facet_data)``
and return (num_facets, num_facet_nodes * vec).

Example:
    >>> from kernelfem.problem.integrators import IntegratorGenerator
    >>> mass = IntegratorGenerator.get_mass_integrator(ConstantCoefficient(1.))
    >>> cell_mats = mass(fe, fe)
"""

from typing import Callable

import jax
import jax.numpy as np

from kernelfem.errors import ConfigurationError
from kernelfem.problem.coefficients import Coefficient, VectorCoefficient


def expand_components(cell_mats: np.ndarray, vec: int) -> np.ndarray:
    """Repeat a nodal element matrix on the diagonal of every component.

    (num_cells, a, b) -> (num_cells, a * vec, b * vec) in node-major order.
    """
    if vec == 1:
        return cell_mats
    num_cells, a, b = cell_mats.shape
    expanded = np.einsum('cab,ij->caibj', cell_mats, np.eye(vec))
    return expanded.reshape(num_cells, a * vec, b * vec)


def check_same_discretization(test_fe, trial_fe) -> None:
    if test_fe.mesh is not trial_fe.mesh or test_fe.num_quads != trial_fe.num_quads:
        raise ConfigurationError(
            "Coupled spaces must share the mesh and the quadrature rule")


class IntegratorGenerator:
    """Generator of element integrators.

    Note:
        Coefficients are evaluated when the integrator runs, not when it is
        created, so a form assembled later sees the current simulation time.
    """

    @staticmethod
    def get_mass_integrator(coefficient: Coefficient) -> Callable:
        """Element matrices of ``(c u, v)`` for trial and test in the same space."""

        def mass_integrator(test_fe, trial_fe):
            check_same_discretization(test_fe, trial_fe)
            if test_fe.vec != trial_fe.vec:
                raise ConfigurationError(
                    f"Mass term needs equal component counts, got {test_fe.vec} and {trial_fe.vec}")
            # (num_cells, num_quads)
            c = coefficient.eval(test_fe.physical_quad_points, test_fe.cell_attributes)
            cJxW = c * test_fe.JxW

            def cell_mass(cell_cJxW):
                # (num_quads,) -> (num_nodes, num_nodes)
                return np.einsum('q,qa,qb->ab', cell_cJxW, test_fe.shape_vals, trial_fe.shape_vals)

            return expand_components(jax.vmap(cell_mass)(cJxW), test_fe.vec)

        return mass_integrator

    @staticmethod
    def get_diffusion_integrator(coefficient: Coefficient) -> Callable:
        """Element matrices of ``(c grad u, grad v)``."""

        def diffusion_integrator(test_fe, trial_fe):
            check_same_discretization(test_fe, trial_fe)
            c = coefficient.eval(test_fe.physical_quad_points, test_fe.cell_attributes)
            cJxW = c * test_fe.JxW

            def cell_stiffness(cell_cJxW, test_grads, trial_grads):
                # test_grads, trial_grads: (num_quads, num_nodes, dim)
                return np.einsum('q,qad,qbd->ab', cell_cJxW, test_grads, trial_grads)

            cell_mats = jax.vmap(cell_stiffness)(cJxW, test_fe.shape_grads, trial_fe.shape_grads)
            return expand_components(cell_mats, test_fe.vec)

        return diffusion_integrator

    @staticmethod
    def get_mixed_gradient_integrator(coefficient: Coefficient) -> Callable:
        """Element matrices of ``(c grad p, v)`` with scalar ``p`` and vector ``v``."""

        def mixed_gradient_integrator(test_fe, trial_fe):
            check_same_discretization(test_fe, trial_fe)
            if trial_fe.vec != 1 or test_fe.vec != test_fe.dim:
                raise ConfigurationError(
                    f"Gradient coupling needs a scalar trial space and a test space with "
                    f"{test_fe.dim} components, got {trial_fe.vec} and {test_fe.vec}")
            c = coefficient.eval(test_fe.physical_quad_points, test_fe.cell_attributes)
            cJxW = c * test_fe.JxW

            def cell_gradient(cell_cJxW, trial_grads):
                # (num_quads, num_nodes_v) x (num_quads, num_nodes_p, dim) -> (num_nodes_v, dim, num_nodes_p)
                val = np.einsum('q,qa,qbi->aib', cell_cJxW, test_fe.shape_vals, trial_grads)
                return val.reshape(-1, trial_grads.shape[1])

            return jax.vmap(cell_gradient)(cJxW, trial_fe.shape_grads)

        return mixed_gradient_integrator

    @staticmethod
    def get_domain_lf_integrator(coefficient) -> Callable:
        """Element vectors of ``(f, v)``.

        A scalar coefficient requires a scalar space; a vector coefficient must
        have as many components as the space.
        """

        def domain_lf_integrator(fe):
            f = coefficient.eval(fe.physical_quad_points, fe.cell_attributes)
            if isinstance(coefficient, VectorCoefficient):
                if coefficient.vdim != fe.vec:
                    raise ConfigurationError(
                        f"Vector load with {coefficient.vdim} components on a space with {fe.vec}")
            elif fe.vec != 1:
                raise ConfigurationError(
                    f"Scalar load on a space with {fe.vec} components; use a vector coefficient")
            else:
                f = f[..., None]

            def cell_load(cell_f, cell_JxW):
                # (num_quads, vec) x (num_quads, num_nodes) -> (num_nodes, vec)
                val = np.einsum('qi,q,qa->ai', cell_f, cell_JxW, fe.shape_vals)
                return val.reshape(-1)

            return jax.vmap(cell_load)(f, fe.JxW)

        return domain_lf_integrator

    @staticmethod
    def get_weak_diffusion_lf_integrator(coefficient: Coefficient, variable) -> Callable:
        """Element vectors of ``-(c grad u, grad v)`` for the current values of ``variable``."""

        def weak_diffusion_lf_integrator(fe):
            check_same_discretization(fe, variable.space)
            if variable.space.vec != fe.vec:
                raise ConfigurationError(
                    f"Variable '{variable.name}' has {variable.space.vec} components, "
                    f"test space has {fe.vec}")
            # (num_cells, num_nodes, vec)
            cell_sol = variable.values.reshape(-1, fe.vec)[fe.cells]
            c = coefficient.eval(fe.physical_quad_points, fe.cell_attributes)
            cJxW = c * fe.JxW

            def cell_flux(cell_u, cell_cJxW, cell_grads):
                # (num_quads, vec, dim)
                u_grads = np.einsum('nv,qnd->qvd', cell_u, cell_grads)
                val = -np.einsum('q,qvd,qad->av', cell_cJxW, u_grads, cell_grads)
                return val.reshape(-1)

            return jax.vmap(cell_flux)(cell_sol, cJxW, fe.shape_grads)

        return weak_diffusion_lf_integrator

    @staticmethod
    def get_boundary_lf_integrator(coefficient) -> Callable:
        """Facet vectors of ``(g, v)_Gamma``."""

        def boundary_lf_integrator(fe, facet_data):
            g = coefficient.eval(facet_data['quad_points'], facet_data['attributes'])
            if isinstance(coefficient, VectorCoefficient):
                if coefficient.vdim != fe.vec:
                    raise ConfigurationError(
                        f"Vector boundary load with {coefficient.vdim} components on a space with {fe.vec}")
            elif fe.vec != 1:
                raise ConfigurationError(
                    f"Scalar boundary load on a space with {fe.vec} components")
            else:
                g = g[..., None]
            shape_vals = facet_data['shape_vals']

            def facet_load(facet_g, facet_JxW):
                val = np.einsum('qi,q,qa->ai', facet_g, facet_JxW, shape_vals)
                return val.reshape(-1)

            return jax.vmap(facet_load)(g, facet_data['JxW'])

        return boundary_lf_integrator
