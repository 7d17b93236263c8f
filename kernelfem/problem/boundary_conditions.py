"""Boundary conditions selected by boundary attribute.

Essential conditions constrain DOFs and are eliminated from the linear
system; integrated conditions add boundary terms to a linear form. Both are
stored in a ``BCMap`` and looked up by the name of the variable they act on.

Key Classes:
    DirichletBC: Essential condition with prescribed values
    NeumannBC: Integrated condition with a prescribed boundary flux
    BCMap: Named boundary conditions of a problem

Example:
    >>> bc_map = BCMap()
    >>> bc_map.add('left', DirichletBC('u', [1], ConstantCoefficient(0.)))
    >>> bc_map.add('right_flux', NeumannBC('u', [2], ConstantCoefficient(1.)))
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import jax.numpy as np
import numpy as onp

from kernelfem.errors import ConfigurationError
from kernelfem.problem.coefficients import Coefficient, ConstantCoefficient, VectorCoefficient
from kernelfem.problem.integrators import IntegratorGenerator
from kernelfem.problem.registry import NamedMap


@dataclass
class BoundaryCondition:
    """Condition on ``variable_name`` over the facets carrying ``boundary_attributes``."""

    variable_name: str
    boundary_attributes: Sequence[int]

    @property
    def label(self) -> str:
        return f"{type(self).__name__} on '{self.variable_name}'"


@dataclass
class DirichletBC(BoundaryCondition):
    """Prescribed values on the boundary.

    Attributes:
        coefficient (Coefficient or VectorCoefficient, optional): Prescribed
            value, zero when omitted. A vector coefficient prescribes all
            components at once.
        components (Sequence[int], optional): Constrained components of a
            vector variable. Defaults to all components.
    """

    coefficient: Optional[Union[Coefficient, VectorCoefficient]] = None
    components: Optional[Sequence[int]] = None

    def __post_init__(self):
        if self.coefficient is None:
            self.coefficient = ConstantCoefficient(0.)

    def _components(self, space) -> List[int]:
        if self.components is None:
            return list(range(space.vec))
        return list(self.components)

    def essential_dofs(self, space, mesh) -> onp.ndarray:
        """Local DOF indices constrained by this condition."""
        mesh.check_boundary_attributes(self.boundary_attributes, requester=self.label)
        nodes = mesh.boundary_nodes(self.boundary_attributes)
        return space.node_dofs(nodes, self._components(space))

    def project(self, boundary_field, mesh) -> None:
        """Write the prescribed values into ``boundary_field`` at the constrained DOFs."""
        space = boundary_field.space
        components = self._components(space)
        values = boundary_field.values
        for attr in self.boundary_attributes:
            nodes = mesh.boundary_nodes([attr])
            x = np.array(mesh.points[nodes])[:, None, :]
            attrs = np.full(len(nodes), attr)
            vals = self.coefficient.eval(x, attrs)[:, 0]
            if isinstance(self.coefficient, VectorCoefficient):
                if self.coefficient.vdim != space.vec:
                    raise ConfigurationError(
                        f"{self.label}: vector value has {self.coefficient.vdim} components, "
                        f"variable has {space.vec}")
                vals = vals[:, np.array(components)]
            else:
                vals = np.broadcast_to(vals[:, None], (len(nodes), len(components)))
            dofs = space.node_dofs(nodes, components)
            values = values.at[np.array(dofs)].set(vals.reshape(-1))
        boundary_field.values = values


@dataclass
class NeumannBC(BoundaryCondition):
    """Prescribed boundary flux ``(g, v)_Gamma`` added to the right-hand side."""

    coefficient: Optional[Union[Coefficient, VectorCoefficient]] = None

    def __post_init__(self):
        if self.coefficient is None:
            raise ConfigurationError(f"{self.label} needs a flux coefficient")

    def apply(self, linear_form, mesh) -> None:
        mesh.check_boundary_attributes(self.boundary_attributes, requester=self.label)
        linear_form.add_boundary_integrator(
            IntegratorGenerator.get_boundary_lf_integrator(self.coefficient),
            self.boundary_attributes)


class BCMap(NamedMap[BoundaryCondition]):
    """Named boundary conditions.

    The equation system calls ``apply_essential`` and ``apply_integrated``
    with the name of the variable being assembled; every condition whose
    ``variable_name`` matches contributes.
    """

    def __init__(self):
        super().__init__(kind='Boundary condition')

    def add(self, name: str, bc: BoundaryCondition) -> None:
        if not isinstance(bc, BoundaryCondition):
            raise ConfigurationError(
                f"Boundary condition '{name}' has unsupported type {type(bc).__name__}")
        super().add(name, bc)

    def essential(self, variable_name: str) -> List[DirichletBC]:
        return [bc for bc in self.values()
                if isinstance(bc, DirichletBC) and bc.variable_name == variable_name]

    def integrated(self, variable_name: str) -> List[NeumannBC]:
        return [bc for bc in self.values()
                if isinstance(bc, NeumannBC) and bc.variable_name == variable_name]

    def apply_essential(self, variable_name: str, essential_dofs: list, boundary_field, mesh) -> None:
        """Extend ``essential_dofs`` and project imposed values into ``boundary_field``.

        Raises:
            ConfigurationError: If a condition references a boundary attribute
                the mesh does not have.
        """
        for bc in self.essential(variable_name):
            essential_dofs.extend(bc.essential_dofs(boundary_field.space, mesh).tolist())
            bc.project(boundary_field, mesh)

    def apply_integrated(self, variable_name: str, linear_form, mesh) -> None:
        for bc in self.integrated(variable_name):
            bc.apply(linear_form, mesh)


def validate_boundary_conditions(bc_map: BCMap, variables) -> None:
    """Check that every condition targets a registered variable with valid components.

    Raises:
        ConfigurationError: On the first inconsistent condition.
    """
    for name, bc in bc_map.items():
        variable = variables.get(bc.variable_name, requester=f"boundary condition '{name}'")
        if not bc.boundary_attributes:
            raise ConfigurationError(f"Boundary condition '{name}': no boundary attributes given")
        if isinstance(bc, DirichletBC) and bc.components is not None:
            vec = variable.space.vec
            for comp in bc.components:
                if comp < 0 or comp >= vec:
                    raise ConfigurationError(
                        f"Boundary condition '{name}': component {comp} must be in range [0, {vec - 1}]")
