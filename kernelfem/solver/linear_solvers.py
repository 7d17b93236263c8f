"""Linear solvers for assembled block systems.

A ``LinearSolver`` is built once for an operator (extracting the Jacobi
preconditioner or factorising, which is the expensive part) and then applied
to right-hand sides with ``mult``. Every iterative solve checks the true
residual afterwards and raises ``SolverConvergenceError`` if the tolerance
was not reached, since the JAX solvers do not report convergence.

Functions:
    solve: One-shot solve with a dict of solver options
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, Optional, Union

import jax
import jax.numpy as np
import jax.scipy.linalg
import jax.scipy.sparse.linalg
from jax.experimental.sparse import BCOO

from kernelfem import logger
from kernelfem.context import CommContext
from kernelfem.errors import ConfigurationError, SingularOperatorError, SolverConvergenceError
from .linear_algebra import jax_get_diagonal

from jax import config
config.update("jax_enable_x64", True)


METHODS = ('cg', 'bicgstab', 'gmres', 'direct')
PRECONDITIONERS = ('jacobi', 'none')
REUSE_POLICIES = ('reuse', 'always_rebuild')

# Recurrence residuals drift from the true residual by round-off.
RESIDUAL_SLACK = 10.


@dataclass(frozen=True)
class SolverOptions:
    """Linear solver configuration.

    Attributes:
        method (str): 'cg', 'bicgstab', 'gmres' or 'direct'. Defaults to 'bicgstab'.
        precond (str): 'jacobi' or 'none'; ``True``/``False`` are accepted. Defaults to 'jacobi'.
        tol (float): Relative residual tolerance. Defaults to 1e-10.
        atol (float): Absolute residual tolerance. Defaults to 1e-12.
        maxiter (int): Maximum iterations (restart cycles for gmres). Defaults to 1000.
        print_level (int): 0 silent, 1 residual after each solve.
        restart (int): Krylov dimension of gmres. Defaults to 20.
        reuse_policy (str): 'reuse' keeps a solver while the operator and the
            time step are unchanged; 'always_rebuild' builds one per solve.
        dt_rtol (float): Relative time-step change that counts as a new time step.
    """

    method: str = 'bicgstab'
    precond: Union[str, bool] = 'jacobi'
    tol: float = 1e-10
    atol: float = 1e-12
    maxiter: int = 1000
    print_level: int = 0
    restart: int = 20
    reuse_policy: str = 'reuse'
    dt_rtol: float = 1e-12

    def __post_init__(self):
        if isinstance(self.precond, bool):
            object.__setattr__(self, 'precond', 'jacobi' if self.precond else 'none')
        if self.precond is None:
            object.__setattr__(self, 'precond', 'none')
        if self.method not in METHODS:
            raise ConfigurationError(f"Unknown solver method '{self.method}', expected one of {METHODS}")
        if self.precond not in PRECONDITIONERS:
            raise ConfigurationError(
                f"Unknown preconditioner '{self.precond}', expected one of {PRECONDITIONERS}")
        if self.reuse_policy not in REUSE_POLICIES:
            raise ConfigurationError(
                f"Unknown reuse policy '{self.reuse_policy}', expected one of {REUSE_POLICIES}")
        if self.maxiter < 1:
            raise ConfigurationError(f"maxiter must be positive, got {self.maxiter}")
        if self.tol < 0. or self.atol < 0. or self.dt_rtol < 0.:
            raise ConfigurationError("Solver tolerances must be non-negative")

    @classmethod
    def from_dict(cls, options: Optional[Dict[str, Any]] = None) -> "SolverOptions":
        """Build options from a ``solver_options`` dict, rejecting unknown keys."""
        options = dict(options or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigurationError(f"Unknown solver option(s) {unknown}, expected a subset of {sorted(known)}")
        return cls(**options)


class LinearSolver:
    """Solver bound to one operator.

    Args:
        A (BCOO): System matrix.
        options (SolverOptions): Solver configuration.
        context (CommContext, optional): Communicator context for norms.
    """

    def __init__(self, A: BCOO, options: SolverOptions, context: Optional[CommContext] = None):
        self.A = A
        self.options = options
        self.context = context or CommContext()
        self.size = A.shape[0]
        self.precond = None
        self._lu = None

        if options.method == 'direct':
            self._lu = jax.scipy.linalg.lu_factor(A.todense())
        elif options.precond == 'jacobi':
            diagonal = jax_get_diagonal(A)
            safe_diag = np.where(np.abs(diagonal) > 1e-12, diagonal, 1.0)
            self.precond = lambda x: x / safe_diag

        logger.debug(f"Linear solver {options.method} (precond = {options.precond}) "
                     f"built for operator of size {self.size}")

    def matvec(self, x: np.ndarray) -> np.ndarray:
        return self.A @ x

    def norm(self, v: np.ndarray) -> float:
        return float(np.sqrt(self.context.allreduce_sum(float(np.dot(v, v)))))

    def mult(self, b: np.ndarray, x: Optional[np.ndarray] = None) -> np.ndarray:
        """Solve ``A x = b`` starting from ``x``.

        Raises:
            SolverConvergenceError: If the residual tolerance is not met.
            SingularOperatorError: If the direct solve produced non-finite values.
        """
        opts = self.options
        x0 = np.zeros_like(b) if x is None else x

        if opts.method == 'direct':
            solution = jax.scipy.linalg.lu_solve(self._lu, b)
            if not bool(np.all(np.isfinite(solution))):
                raise SingularOperatorError(f"Direct solve of a size {self.size} operator produced non-finite values")
            return solution

        if opts.method == 'cg':
            solution, _ = jax.scipy.sparse.linalg.cg(
                self.matvec, b, x0=x0, M=self.precond, tol=opts.tol, atol=opts.atol, maxiter=opts.maxiter)
        elif opts.method == 'gmres':
            solution, _ = jax.scipy.sparse.linalg.gmres(
                self.matvec, b, x0=x0, M=self.precond, tol=opts.tol, atol=opts.atol,
                restart=opts.restart, maxiter=opts.maxiter)
        else:
            solution, _ = jax.scipy.sparse.linalg.bicgstab(
                self.matvec, b, x0=x0, M=self.precond, tol=opts.tol, atol=opts.atol, maxiter=opts.maxiter)

        residual = self.norm(b - self.matvec(solution))
        threshold = max(opts.tol * self.norm(b), opts.atol)
        if opts.print_level > 0 and self.context.is_root:
            logger.info(f"{opts.method}: residual {residual:.3e} (threshold {threshold:.3e})")
        if not residual <= threshold * RESIDUAL_SLACK:
            raise SolverConvergenceError(opts.method, opts.maxiter, residual, threshold)
        return solution


def solve(A: BCOO, b: np.ndarray, solver_options: Optional[Dict[str, Any]] = None) -> np.ndarray:
    """Solve ``A x = b`` once.

    Args:
        A (BCOO): System matrix in JAX BCOO sparse format.
        b (np.ndarray): Right-hand side vector.
        solver_options (dict, optional): Keys of ``SolverOptions``.

    Returns:
        np.ndarray: Solution vector x.

    Example:
        >>> x = solve(A, b, {'method': 'cg', 'precond': True, 'tol': 1e-8})
    """
    return LinearSolver(A, SolverOptions.from_dict(solver_options)).mult(b)
