"""Executioners running a finalized problem.

``SteadyExecutioner`` solves once. ``TransientExecutioner`` runs the time
loop with the problem's time integrator and owns the retry policy for
failed steps: on ``SolverConvergenceError`` the step is repeated with a
smaller time step, up to ``max_retries`` times, before the error is
re-raised. Auxiliary solvers and then postprocessors run after every
accepted solve.
"""

from typing import Callable, Optional

from kernelfem import logger
from kernelfem.errors import ConfigurationError, SolverConvergenceError


def solve_aux(problem, t: float) -> None:
    problem.aux_solvers.solve(t)
    problem.postprocessors.solve(t)


class SteadyExecutioner:
    """Solve a steady problem once."""

    def __init__(self, problem):
        self.problem = problem

    def execute(self) -> None:
        p = self.problem
        p.operator.solve(p.state)
        solve_aux(p, p.operator.time)
        if p.context.is_root:
            logger.info("Steady solve finished")


class TransientExecutioner:
    """Backward-Euler time loop from ``start_time`` to ``end_time``.

    Args:
        problem (Problem): Finalized time-domain problem.
        time_step (float): Nominal time step.
        start_time (float, optional): Defaults to 0.
        end_time (float, optional): Defaults to 1.
        max_retries (int, optional): Retries of a failed step. Defaults to 0.
        dt_shrink (float, optional): Factor applied to ``dt`` on each retry. Defaults to 0.5.
        on_step (Callable, optional): Called as ``on_step(step, t, problem)``
            after every accepted step.
    """

    def __init__(self, problem, time_step: float, start_time: float = 0., end_time: float = 1.,
                 max_retries: int = 0, dt_shrink: float = 0.5,
                 on_step: Optional[Callable] = None):
        if problem.ode_solver is None:
            raise ConfigurationError("TransientExecutioner needs a time-domain problem")
        if time_step <= 0.:
            raise ConfigurationError(f"Time step must be positive, got {time_step}")
        if end_time < start_time:
            raise ConfigurationError(f"End time {end_time} precedes start time {start_time}")
        if not 0. < dt_shrink < 1.:
            raise ConfigurationError(f"dt_shrink must lie in (0, 1), got {dt_shrink}")
        self.problem = problem
        self.time_step = time_step
        self.start_time = start_time
        self.end_time = end_time
        self.max_retries = max_retries
        self.dt_shrink = dt_shrink
        self.on_step = on_step
        self.t = start_time
        self.it = 0

    def _take_step(self, dt: float) -> float:
        p = self.problem
        retries = 0
        while True:
            try:
                self.t, taken = p.ode_solver.step(p.state, self.t, dt)
                return taken
            except SolverConvergenceError as err:
                if retries >= self.max_retries:
                    raise
                retries += 1
                dt *= self.dt_shrink
                logger.warning(f"{err}; retrying with dt = {dt:.3e} ({retries}/{self.max_retries})")

    def execute(self) -> None:
        p = self.problem
        self.t = self.start_time
        p.operator.time = self.t
        # round-off in the accumulated time must not add a sliver step
        eps = 1e-12 * max(1., abs(self.end_time))
        while self.t < self.end_time - eps:
            dt = min(self.time_step, self.end_time - self.t)
            taken = self._take_step(dt)
            self.it += 1
            solve_aux(p, self.t)
            if p.context.is_root:
                logger.info(f"step {self.it:6d}, t = {self.t:.6f}, dt = {taken:.3e}")
            if self.on_step is not None:
                self.on_step(self.it, self.t, p)
