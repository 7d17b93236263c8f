"""Exception hierarchy for kernelfem.

Three families of failure are distinguished:

    - ``ConfigurationError``: a named dependency is missing or duplicated, or a
      problem is set up inconsistently. Raised while the problem is being
      declared or initialised and never caught inside the package.
    - ``NumericalError``: the numerics failed at solve time (non-convergence,
      singular operator). Callers decide whether to retry.
    - ``InvariantViolationError``: internal state is inconsistent, which points
      at a programming error rather than a bad input.
"""

from typing import Optional


class KernelFEMError(Exception):
    """Base class for all kernelfem errors."""


class ConfigurationError(KernelFEMError):
    """Invalid or incomplete problem configuration."""


class DuplicateRegistrationError(ConfigurationError):
    """A name was registered twice in the same registry."""


class NotFoundError(ConfigurationError):
    """A named entity was requested but never registered."""


class NumericalError(KernelFEMError):
    """Failure of the numerical solution process."""


class SingularOperatorError(NumericalError):
    """The linear operator could not be inverted."""


class SolverConvergenceError(NumericalError):
    """A linear solve stopped before reaching its tolerance.

    Attributes:
        method (str): Name of the solver method.
        max_iterations (int): Iteration budget the solver was given.
        residual (float): Residual norm of the returned iterate.
        tolerance (float): Residual norm that had to be reached.
        step (int, optional): Time step index the solve belonged to.
        time (float, optional): Simulation time of that step.
    """

    def __init__(self, method: str, max_iterations: int, residual: float,
                 tolerance: float, step: Optional[int] = None,
                 time: Optional[float] = None):
        self.method = method
        self.max_iterations = max_iterations
        self.residual = residual
        self.tolerance = tolerance
        self.step = step
        self.time = time
        super().__init__(self._format())

    def _format(self) -> str:
        msg = (f"{self.method} did not converge within {self.max_iterations} iterations: "
               f"residual {self.residual:.3e} > tolerance {self.tolerance:.3e}")
        if self.step is not None:
            msg += f" (step {self.step}, t = {self.time})"
        return msg

    def with_context(self, step: int, time: float) -> "SolverConvergenceError":
        """Return a copy of the error annotated with the step index and time."""
        return SolverConvergenceError(self.method, self.max_iterations, self.residual,
                                      self.tolerance, step=step, time=time)


class InvariantViolationError(KernelFEMError):
    """Internal consistency check failed."""
