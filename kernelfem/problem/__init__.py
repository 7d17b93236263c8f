"""Problem definition: variables, kernels, equation systems and operators.

Key Components:
    registry, variables, blocks: Named fields and block layout
    coefficients: Scalar and vector coefficients
    integrators, forms, assembly: Element integration and global assembly
    kernels: Weak-form terms registered on a test variable
    boundary_conditions, sources: Collaborators applied during assembly
    equation_system: Block assembly and essential-BC elimination
    operators: One (implicit) solve per call
    aux_solvers: Derived fields computed after accepted solves
    builder: Wiring everything into a Problem
"""

from .registry import NamedMap, time_derivative_name
from .blocks import BlockOffsets, BlockVector
from .variables import Variable, VariableRegistry
from .coefficients import (
    Coefficient,
    ConstantCoefficient,
    FunctionCoefficient,
    PiecewiseCoefficient,
    ProductCoefficient,
    TimeStepCoefficient,
    VectorCoefficient,
    VectorConstantCoefficient,
    VectorFunctionCoefficient,
    Coefficients,
)
from .assembly import AssemblyManager
from .integrators import IntegratorGenerator
from .forms import BilinearForm, MixedBilinearForm, LinearForm
from .kernels import (
    KernelKind,
    Kernel,
    MassKernel,
    DiffusionKernel,
    MixedGradientKernel,
    MixedMassKernel,
    WeakDiffusionKernel,
    DomainLFKernel,
    make_kernel,
)
from .boundary_conditions import (
    BoundaryCondition,
    DirichletBC,
    NeumannBC,
    BCMap,
    validate_boundary_conditions,
)
from .sources import Source, DomainSource, Sources
from .equation_system import EquationSystem, TimeDependentEquationSystem
from .operators import ProblemOperator, TimeDomainProblemOperator
from .aux_solvers import AuxSolver, ScaledVariableAux, AuxSolvers
from .builder import Problem, ProblemBuilder, TimeDomainProblemBuilder

__all__ = [
    'NamedMap', 'time_derivative_name',
    'BlockOffsets', 'BlockVector',
    'Variable', 'VariableRegistry',
    'Coefficient', 'ConstantCoefficient', 'FunctionCoefficient', 'PiecewiseCoefficient',
    'ProductCoefficient', 'TimeStepCoefficient', 'VectorCoefficient',
    'VectorConstantCoefficient', 'VectorFunctionCoefficient', 'Coefficients',
    'AssemblyManager', 'IntegratorGenerator',
    'BilinearForm', 'MixedBilinearForm', 'LinearForm',
    'KernelKind', 'Kernel', 'MassKernel', 'DiffusionKernel', 'MixedGradientKernel',
    'MixedMassKernel', 'WeakDiffusionKernel', 'DomainLFKernel', 'make_kernel',
    'BoundaryCondition', 'DirichletBC', 'NeumannBC', 'BCMap', 'validate_boundary_conditions',
    'Source', 'DomainSource', 'Sources',
    'EquationSystem', 'TimeDependentEquationSystem',
    'ProblemOperator', 'TimeDomainProblemOperator',
    'AuxSolver', 'ScaledVariableAux', 'AuxSolvers',
    'Problem', 'ProblemBuilder', 'TimeDomainProblemBuilder',
]
