"""Bilinear, mixed bilinear and linear forms.

A form collects integrators added by kernels and turns them into a global
sparse matrix or vector on ``assemble``. Forms are cleared and refilled each
time their owner reassembles; they never solve anything.
"""

from typing import Callable, Iterable, List, Optional, Tuple

import jax.numpy as np
from jax.experimental.sparse import BCOO

from kernelfem.problem.assembly import AssemblyManager


class BilinearForm:
    """Square form ``a(u, v)`` with trial and test functions in ``space``."""

    kind = 'bilinear'

    def __init__(self, space):
        self.test_space = space
        self.trial_space = space
        self.domain_integrators: List[Callable] = []
        self.matrix: Optional[BCOO] = None

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.test_space.num_total_dofs, self.trial_space.num_total_dofs)

    def add_domain_integrator(self, integrator: Callable) -> None:
        self.domain_integrators.append(integrator)

    def clear(self) -> None:
        self.domain_integrators = []
        self.matrix = None

    def assemble(self) -> BCOO:
        matrix = AssemblyManager.empty_matrix(self.shape)
        for integrator in self.domain_integrators:
            cell_mats = integrator(self.test_space, self.trial_space)
            contribution = AssemblyManager.assemble_matrix(
                cell_mats, self.test_space.cell_dofs, self.trial_space.cell_dofs, self.shape)
            matrix = contribution if matrix.nse == 0 else AssemblyManager.add_matrices(matrix, contribution)
        self.matrix = matrix
        return matrix


class MixedBilinearForm(BilinearForm):
    """Rectangular form ``b(p, v)`` coupling a trial space to a different test space."""

    kind = 'mixed'

    def __init__(self, trial_space, test_space):
        super().__init__(test_space)
        self.trial_space = trial_space


class LinearForm:
    """Form ``l(v)`` on ``space``: domain and boundary loads."""

    kind = 'linear'

    def __init__(self, space):
        self.space = space
        self.domain_integrators: List[Callable] = []
        self.boundary_integrators: List[Tuple[Callable, Tuple[int, ...]]] = []
        self.vector: Optional[np.ndarray] = None

    def add_domain_integrator(self, integrator: Callable) -> None:
        self.domain_integrators.append(integrator)

    def add_boundary_integrator(self, integrator: Callable, attributes: Iterable[int]) -> None:
        self.boundary_integrators.append((integrator, tuple(attributes)))

    def clear(self) -> None:
        self.domain_integrators = []
        self.boundary_integrators = []
        self.vector = None

    def assemble(self) -> np.ndarray:
        size = self.space.num_total_dofs
        vector = np.zeros(size)
        for integrator in self.domain_integrators:
            vector = vector + AssemblyManager.assemble_vector(
                integrator(self.space), self.space.cell_dofs, size)
        for integrator, attributes in self.boundary_integrators:
            facet_data = self.space.facet_data(attributes)
            vector = vector + AssemblyManager.assemble_vector(
                integrator(self.space, facet_data), facet_data['dofs'], size)
        self.vector = vector
        return vector
