"""Linear solvers and time integrators.

Public API:
    SolverOptions: Validated solver configuration
    LinearSolver: Solver bound to one operator, applied with ``mult``
    solve: One-shot linear solve
    BackwardEulerSolver: Implicit Euler time integrator
    jax_get_diagonal, eliminate_rows_cols, lift_essential_values: Sparse helpers
"""

from .linear_algebra import (
    jax_get_diagonal,
    dof_mask,
    eliminate_rows_cols,
    lift_essential_values,
)
from .linear_solvers import (
    SolverOptions,
    LinearSolver,
    solve,
)
from .time_integrators import BackwardEulerSolver

__all__ = [
    'jax_get_diagonal',
    'dof_mask',
    'eliminate_rows_cols',
    'lift_essential_values',
    'SolverOptions',
    'LinearSolver',
    'solve',
    'BackwardEulerSolver',
]
