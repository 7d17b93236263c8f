"""Implicit time integration of ``du/dt = f(u, t)``.

The integrator owns no physics: it asks a time-domain operator for the time
derivative at the end of the step and advances the state with it.
"""

from typing import Tuple

from kernelfem.problem.blocks import BlockVector


class BackwardEulerSolver:
    """First-order implicit Euler: ``u_{n+1} = u_n + dt * du/dt_{n+1}``.

    The operator must provide ``time`` and ``implicit_solve(dt, X, dX_dt)``.
    """

    order = 1

    def __init__(self, operator=None):
        self.operator = None
        if operator is not None:
            self.init(operator)

    def init(self, operator) -> None:
        self.operator = operator

    def step(self, X: BlockVector, t: float, dt: float) -> Tuple[float, float]:
        """Advance ``X`` from ``t`` to ``t + dt``.

        ``X`` is only modified once the implicit solve succeeded, so a raised
        ``SolverConvergenceError`` leaves the state at time ``t``.

        Returns:
            tuple: New time and the time step that was taken.
        """
        dX_dt = BlockVector(X.offsets)
        self.operator.time = t + dt
        self.operator.implicit_solve(dt, X, dX_dt)
        X.data = X.data + dt * dX_dt.data
        return t + dt, dt
