"""Assembling a problem from its parts.

The builders collect spaces, variables, coefficients, kernels, boundary
conditions, sources, auxiliary solvers and solver options, and ``finalize``
wires them into a ``Problem`` in a fixed order:

    1. check coefficients and boundary conditions,
    2. initialise the equation system (kernels) and the sources,
    3. construct the problem operator,
    4. construct the block state vector and alias the variables onto it,
    5. construct the time integrator (time-domain problems),
    6. initialise the auxiliary solvers and postprocessors.

Example:
    >>> builder = TimeDomainProblemBuilder(interval_mesh(16))
    >>> builder.add_fespace('H1', vec=1)
    >>> builder.add_variable('u', 'H1')
    >>> builder.add_coefficient('alpha', ConstantCoefficient(1.))
    >>> builder.add_kernel('u', MassKernel('alpha'))
    >>> problem = builder.finalize()
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from kernelfem import logger
from kernelfem.context import CommContext
from kernelfem.errors import InvariantViolationError
from kernelfem.fe import FiniteElement
from kernelfem.mesh import Mesh
from kernelfem.problem.aux_solvers import AuxSolver, AuxSolvers
from kernelfem.problem.blocks import BlockVector
from kernelfem.problem.boundary_conditions import BCMap, validate_boundary_conditions
from kernelfem.problem.coefficients import Coefficients
from kernelfem.problem.equation_system import EquationSystem, TimeDependentEquationSystem
from kernelfem.problem.kernels import Kernel
from kernelfem.problem.operators import ProblemOperator, TimeDomainProblemOperator
from kernelfem.problem.registry import NamedMap
from kernelfem.problem.sources import Source, Sources
from kernelfem.problem.variables import Variable, VariableRegistry
from kernelfem.solver.linear_solvers import SolverOptions
from kernelfem.solver.time_integrators import BackwardEulerSolver


@dataclass
class Problem:
    """Everything needed to run a simulation."""

    mesh: Mesh
    spaces: NamedMap
    variables: VariableRegistry
    coefficients: Coefficients
    bc_map: BCMap
    sources: Sources
    solver_options: SolverOptions
    context: CommContext
    equation_system: Optional[EquationSystem] = None
    operator: Optional[ProblemOperator] = None
    state: Optional[BlockVector] = None
    aux_solvers: AuxSolvers = field(default_factory=AuxSolvers)
    postprocessors: AuxSolvers = field(default_factory=lambda: AuxSolvers(kind='Postprocessor'))
    ode_solver: Optional[BackwardEulerSolver] = None

    def variable(self, name: str) -> Variable:
        return self.variables.get(name)


class ProblemBuilder:
    """Builder of steady problems."""

    equation_system_class = EquationSystem
    operator_class = ProblemOperator

    def __init__(self, mesh: Mesh, context: Optional[CommContext] = None):
        self.context = context or CommContext()
        self.problem = Problem(
            mesh=mesh,
            spaces=NamedMap(kind='FE space'),
            variables=VariableRegistry(),
            coefficients=Coefficients(),
            bc_map=BCMap(),
            sources=Sources(),
            solver_options=SolverOptions(),
            context=self.context,
            equation_system=self.equation_system_class(self.context),
        )
        self._finalized = False

    def add_fespace(self, name: str, vec: int = 1, gauss_order: int = 2) -> FiniteElement:
        space = FiniteElement(self.problem.mesh, vec=vec, gauss_order=gauss_order)
        self.problem.spaces.add(name, space)
        return space

    def add_variable(self, name: str, fespace_name: str, values=None) -> Variable:
        space = self.problem.spaces.get(fespace_name, requester=f"variable '{name}'")
        return self.problem.variables.add_variable(Variable(name, space, values))

    def add_coefficient(self, name: str, coefficient) -> None:
        self.problem.coefficients.add(name, coefficient)

    def add_kernel(self, variable_name: str, kernel: Kernel) -> None:
        system = self.problem.equation_system
        system.add_trial_variable_name_if_missing(variable_name)
        system.add_kernel(variable_name, kernel)

    def add_boundary_condition(self, name: str, bc) -> None:
        self.problem.bc_map.add(name, bc)

    def add_source(self, name: str, source: Source) -> None:
        self.problem.sources.add(name, source)

    def add_aux_solver(self, name: str, aux_solver: AuxSolver) -> None:
        self.problem.aux_solvers.add(name, aux_solver)

    def add_postprocessor(self, name: str, postprocessor: AuxSolver) -> None:
        self.problem.postprocessors.add(name, postprocessor)

    def set_solver_options(self, options: Dict[str, Any]) -> None:
        self.problem.solver_options = SolverOptions.from_dict(options)

    def finalize(self) -> Problem:
        if self._finalized:
            raise InvariantViolationError("Problem has already been finalized")
        p = self.problem
        validate_boundary_conditions(p.bc_map, p.variables)

        p.equation_system.init(p.variables, p.spaces, p.bc_map, p.coefficients)
        p.sources.init(p.variables, p.spaces, p.bc_map, p.coefficients)

        p.operator = self.operator_class(
            p.equation_system, p.variables, p.coefficients, p.bc_map, p.sources,
            solver_options=p.solver_options, context=self.context)

        p.state = BlockVector(p.equation_system.offsets)
        for i, name in enumerate(self._state_names()):
            variable = p.variables.get(name)
            p.state.set_block(i, variable.values)
            variable.make_ref(p.state, p.state.offsets[i])

        self._construct_timestepper()
        p.aux_solvers.init(p.variables, p.coefficients)
        p.postprocessors.init(p.variables, p.coefficients)
        self._finalized = True
        if self.context.is_root:
            logger.info(f"Total number of DOFs: {p.state.offsets.total}")
        return p

    def _state_names(self):
        return self.problem.equation_system.trial_var_names

    def _construct_timestepper(self) -> None:
        pass


class TimeDomainProblemBuilder(ProblemBuilder):
    """Builder of transient problems integrated with backward Euler."""

    equation_system_class = TimeDependentEquationSystem
    operator_class = TimeDomainProblemOperator

    def _state_names(self):
        return self.problem.equation_system.var_names

    def _construct_timestepper(self) -> None:
        self.problem.ode_solver = BackwardEulerSolver(self.problem.operator)
