"""Auxiliary solvers and postprocessors.

An auxiliary solver computes a derived field from the solved fields after a
step has been accepted. Postprocessors share the same interface and run
after the auxiliary solvers, so they may read the fields those produce.

Example:
    >>> builder.add_variable('q', 'H1')
    >>> builder.add_aux_solver('flux', ScaledVariableAux('u', 'q', 'alpha', scale=-1.))
"""

from typing import Any, Dict, Optional

from kernelfem import logger
from kernelfem.errors import ConfigurationError, InvariantViolationError
from kernelfem.problem.coefficients import ConstantCoefficient
from kernelfem.problem.forms import BilinearForm, MixedBilinearForm
from kernelfem.problem.integrators import IntegratorGenerator
from kernelfem.problem.registry import NamedMap
from kernelfem.solver.linear_solvers import LinearSolver, SolverOptions


class AuxSolver:
    """Base class of auxiliary solvers and postprocessors."""

    def init(self, variables, coefficients) -> None:
        pass

    def solve(self, t: float) -> None:
        raise NotImplementedError


class ScaledVariableAux(AuxSolver):
    """L2 projection of ``scale * c * input`` onto the space of ``scaled``.

    Solves ``M q = scale * B u`` where ``M`` is the mass matrix of the space
    of ``scaled_name`` and ``B`` the mixed mass matrix weighted by the
    coefficient ``coefficient_name``. ``M`` is assembled once on ``init``;
    ``B`` is reassembled on every ``solve`` so time-varying coefficients are
    picked up.

    Args:
        input_name (str): Variable that is scaled.
        scaled_name (str): Variable receiving the result.
        coefficient_name (str): Scalar coefficient ``c``.
        scale (float, optional): Constant factor. Defaults to 1.
        solver_options (dict, optional): Options of the mass-matrix solver.
            Defaults to Jacobi-preconditioned cg.
    """

    def __init__(self, input_name: str, scaled_name: str, coefficient_name: str,
                 scale: float = 1., solver_options: Optional[Dict[str, Any]] = None):
        self.input_name = input_name
        self.scaled_name = scaled_name
        self.coefficient_name = coefficient_name
        self.scale = float(scale)
        self.options = SolverOptions.from_dict(solver_options or {'method': 'cg', 'precond': 'jacobi'})
        self.input = None
        self.scaled = None
        self.coefficient = None
        self.solver: Optional[LinearSolver] = None
        self._mixed: Optional[MixedBilinearForm] = None

    @property
    def label(self) -> str:
        return f"{type(self).__name__} '{self.input_name}' -> '{self.scaled_name}'"

    def init(self, variables, coefficients):
        self.input = variables.get(self.input_name, requester=self.label)
        self.scaled = variables.get(self.scaled_name, requester=self.label)
        self.coefficient = coefficients.get_scalar(self.coefficient_name, requester=self.label)
        if self.input.space.vec != self.scaled.space.vec:
            raise ConfigurationError(
                f"{self.label}: component counts differ ({self.input.space.vec} and {self.scaled.space.vec})")

        mass = BilinearForm(self.scaled.space)
        mass.add_domain_integrator(IntegratorGenerator.get_mass_integrator(ConstantCoefficient(1.)))
        self.solver = LinearSolver(mass.assemble(), self.options)

        self._mixed = MixedBilinearForm(self.input.space, self.scaled.space)
        self._mixed.add_domain_integrator(IntegratorGenerator.get_mass_integrator(self.coefficient))

    def solve(self, t):
        if self.solver is None:
            raise InvariantViolationError(f"{self.label} solved before init")
        self.coefficient.set_time(t)
        b = self.scale * (self._mixed.assemble() @ self.input.values)
        self.scaled.values = self.solver.mult(b)


class AuxSolvers(NamedMap[AuxSolver]):
    """Named auxiliary solvers, run in registration order."""

    def __init__(self, kind: str = 'Aux solver'):
        super().__init__(kind=kind)

    def init(self, variables, coefficients) -> None:
        for solver in self.values():
            solver.init(variables, coefficients)

    def solve(self, t: float) -> None:
        for name, solver in self.items():
            logger.debug(f"{self.kind} '{name}' at t = {t}")
            solver.solve(t)
