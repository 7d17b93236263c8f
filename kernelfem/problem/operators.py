"""Problem operators driving one solve of an equation system.

The operator owns the linear solver and decides when it has to be rebuilt.
Under the default ``'reuse'`` policy a new solver is constructed only when

    - no solver exists yet,
    - the eliminated operator changed (``operator_version``), or
    - the time step moved by more than ``dt_rtol`` relative to the one the
      solver was built for.

With ``'always_rebuild'`` every solve constructs a fresh solver.
"""

from typing import List, Optional

from kernelfem import logger
from kernelfem.context import CommContext
from kernelfem.errors import InvariantViolationError, SolverConvergenceError
from kernelfem.problem.blocks import BlockVector
from kernelfem.problem.variables import Variable
from kernelfem.solver.linear_solvers import LinearSolver, SolverOptions


class ProblemOperator:
    """Steady problem operator: assemble, solve and write back once per call.

    Args:
        equation_system: Initialised ``EquationSystem``.
        variables (VariableRegistry): Registry the solution is written into.
        coefficients (Coefficients): Problem coefficients.
        bc_map (BCMap): Boundary conditions.
        sources (Sources): Sources.
        solver_options (SolverOptions, optional): Linear solver configuration.
        context (CommContext, optional): Communicator context.
    """

    def __init__(self, equation_system, variables, coefficients, bc_map, sources,
                 solver_options: Optional[SolverOptions] = None,
                 context: Optional[CommContext] = None):
        self.equation_system = equation_system
        self.variables = variables
        self.coefficients = coefficients
        self.bc_map = bc_map
        self.sources = sources
        self.solver_options = solver_options or SolverOptions()
        self.context = context or CommContext()

        self.time = 0.
        self.step_index = 0
        self.solver: Optional[LinearSolver] = None
        self.solver_builds = 0
        self._solver_version: Optional[int] = None
        self._solver_dt: Optional[float] = None
        self._solving = False

    @property
    def true_offsets(self):
        return self.equation_system.offsets

    def _resolve(self, names: List[str]) -> List[Variable]:
        return [self.variables.get(name, requester=type(self).__name__) for name in names]

    def _bind(self, variables: List[Variable], vector: BlockVector) -> None:
        offsets = self.true_offsets
        if vector.offsets != offsets:
            raise InvariantViolationError(
                f"Block vector layout {vector.offsets} does not match operator layout {offsets}")
        for i, variable in enumerate(variables):
            variable.make_ref(vector, offsets[i])

    def solver_needs_rebuild(self, dt: Optional[float] = None) -> bool:
        if self.solver is None or self.solver_options.reuse_policy == 'always_rebuild':
            return True
        if self._solver_version != self.equation_system.operator_version:
            return True
        if dt is not None and self._solver_dt is not None:
            return abs(dt - self._solver_dt) > self.solver_options.dt_rtol * abs(dt)
        return dt != self._solver_dt

    def _assembly_time_step(self, dt: float) -> float:
        # a dt within dt_rtol of the cached one must not dirty dt-dependent blocks
        cached = self._solver_dt
        if (cached is not None and self.solver_options.reuse_policy == 'reuse'
                and abs(dt - cached) <= self.solver_options.dt_rtol * abs(dt)):
            return cached
        return dt

    def _build_solver(self, A, dt: Optional[float]) -> None:
        self.solver = LinearSolver(A, self.solver_options, self.context)
        self.solver_builds += 1
        self._solver_version = self.equation_system.operator_version
        self._solver_dt = dt
        if self.context.is_root:
            logger.debug(f"Built {self.solver_options.method} solver #{self.solver_builds} "
                         f"(operator version {self._solver_version}, dt = {dt})")

    def _assemble_and_solve(self, dt: Optional[float]) -> None:
        system = self.equation_system
        self.coefficients.set_time(self.time)
        if dt is not None:
            dt = self._assembly_time_step(dt)
            system.set_time_step(dt)
        system.update_system(self.bc_map, self.sources)
        A, x, b = system.form_linear_system()

        if self.solver_needs_rebuild(dt):
            self._build_solver(A, dt)
        try:
            x = self.solver.mult(b, x)
        except SolverConvergenceError as err:
            raise err.with_context(step=self.step_index, time=self.time) from err
        system.recover_solution(x, self.variables)

    def solve(self, X: BlockVector) -> None:
        """Solve the steady system and write the result into ``X``."""
        if self._solving:
            raise InvariantViolationError(f"{type(self).__name__}.solve is not re-entrant")
        self._solving = True
        try:
            self.step_index += 1
            self._bind(self._resolve(self.equation_system.trial_var_names), X)
            self._assemble_and_solve(dt=None)
        finally:
            self._solving = False


class TimeDomainProblemOperator(ProblemOperator):
    """Operator computing ``du/dt`` at the end of an implicit step.

    ``time`` must hold the time at the end of the step when
    ``implicit_solve`` is called; time integrators set it.
    """

    def implicit_solve(self, dt: float, X: BlockVector, dX_dt: BlockVector) -> None:
        """Solve for the time derivatives of the state ``X`` over a step ``dt``.

        The state variables are aliased onto ``X`` and their derivatives onto
        ``dX_dt``, so kernels that read the state see ``X`` and the solution
        lands in ``dX_dt``.

        Raises:
            SolverConvergenceError: Annotated with the step index and time.
        """
        if self._solving:
            raise InvariantViolationError(f"{type(self).__name__}.implicit_solve is not re-entrant")
        self._solving = True
        try:
            self.step_index += 1
            dX_dt.fill(0.)
            system = self.equation_system
            self._bind(self._resolve(system.var_names), X)
            self._bind(self._resolve(system.trial_var_names), dX_dt)
            self._assemble_and_solve(dt=dt)
        finally:
            self._solving = False
