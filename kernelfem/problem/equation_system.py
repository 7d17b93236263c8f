"""Block-structured equation systems assembled from kernels.

An equation system keeps one bucket of kernels per test variable. On every
assembly pass it turns the buckets into forms, the forms into sparse blocks,
and the blocks into one global operator and right-hand side whose layout is
given by ``offsets``:

    - bilinear kernels of variable ``i`` -> diagonal block ``(i, i)``
    - mixed kernels of ``i`` coupled to ``j`` -> off-diagonal block ``(i, j)``
    - linear kernels, integrated BCs and sources of ``i`` -> rhs block ``i``

Diagonal blocks are only rebuilt when they are dirty: after ``init``, when
the time step changes and a kernel depends on it, when a kernel coefficient
varies in time, or when a variable changed size. Mixed and linear forms are
cheap and may depend on the current fields, so they are rebuilt on every
pass.

Key Classes:
    EquationSystem: Steady system solving for the variables themselves
    TimeDependentEquationSystem: System solving for the time derivatives

Example:
    >>> system = TimeDependentEquationSystem()
    >>> system.add_kernel('u', MassKernel('one'))
    >>> system.add_kernel('u', DiffusionKernel('dt_alpha'))
    >>> system.add_kernel('u', WeakDiffusionKernel('u', 'alpha'))
    >>> system.init(variables, spaces, bc_map, coefficients)
    >>> system.set_time_step(0.1)
    >>> system.update_system(bc_map, sources)
    >>> A, x, b = system.form_linear_system()
"""

from typing import Dict, List, Optional, Tuple

import jax.numpy as np
import numpy as onp
from jax.experimental.sparse import BCOO

from kernelfem import logger
from kernelfem.context import CommContext
from kernelfem.errors import ConfigurationError, InvariantViolationError
from kernelfem.problem.assembly import AssemblyManager
from kernelfem.problem.blocks import BlockOffsets
from kernelfem.problem.boundary_conditions import BCMap
from kernelfem.problem.coefficients import ProductCoefficient, TimeStepCoefficient
from kernelfem.problem.forms import BilinearForm, LinearForm, MixedBilinearForm
from kernelfem.problem.kernels import Kernel, KernelKind
from kernelfem.problem.registry import time_derivative_name
from kernelfem.problem.sources import Sources
from kernelfem.problem.variables import Variable
from kernelfem.solver.linear_algebra import eliminate_rows_cols, lift_essential_values


def same_matrix(a: Optional[BCOO], b: BCOO) -> bool:
    """Exact structural and numerical equality of two assembled matrices."""
    if a is None or a.shape != b.shape or a.nse != b.nse:
        return False
    return bool(np.array_equal(a.indices, b.indices)) and bool(np.array_equal(a.data, b.data))


class EquationSystem:
    """Steady equation system.

    The unknowns are the registered variables themselves, in the order in
    which they were first referenced.

    Args:
        context (CommContext, optional): Communicator context.

    Attributes:
        var_names (List[str]): Variables the kernels are declared on.
        trial_var_names (List[str]): Variables solved for, one block each.
        operator_version (int): Incremented whenever ``form_linear_system``
            returns a different eliminated operator.
    """

    def __init__(self, context: Optional[CommContext] = None):
        self.context = context or CommContext()
        self.var_names: List[str] = []
        self._kernels: Dict[str, List[Kernel]] = {}
        self._registration: List[Tuple[str, Kernel]] = []

        self._trial_variables: List[Variable] = []
        self._offsets: Optional[BlockOffsets] = None
        self._bilinear_forms: Dict[str, BilinearForm] = {}
        self._mixed_forms: Dict[Tuple[str, str], MixedBilinearForm] = {}
        self._linear_forms: Dict[str, LinearForm] = {}
        self._blocks: Dict[Tuple[int, int], BCOO] = {}
        self._dirty: Dict[str, bool] = {}

        self._time_step: Optional[float] = None
        self._bc_map: Optional[BCMap] = None
        self._operator: Optional[BCOO] = None
        self._rhs: Optional[np.ndarray] = None
        self.assembly_version = 0

        self._eliminated: Optional[BCOO] = None
        self._eliminated_key = None
        self.operator_version = 0
        self._pending_recovery = None
        self._initialised = False

    # Naming

    def solved_name(self, name: str) -> str:
        """Name of the unknown solved for when kernels are declared on ``name``."""
        return name

    @property
    def trial_var_names(self) -> List[str]:
        return [self.solved_name(name) for name in self.var_names]

    # Registration

    def add_trial_variable_name_if_missing(self, name: str) -> None:
        if name not in self.var_names:
            self.var_names.append(name)
            self._kernels.setdefault(name, [])

    def add_kernel(self, variable_name: str, kernel: Kernel) -> None:
        """Register ``kernel`` in the bucket of ``variable_name``.

        Names are only recorded here; they are resolved by ``init``.
        """
        kernel.test_variable_name = self.solved_name(variable_name)
        self._kernels.setdefault(variable_name, []).append(kernel)
        self._registration.append((variable_name, kernel))
        self._initialised = False

    # Initialisation

    def init(self, variables, spaces, bc_map, coefficients) -> None:
        """Resolve every name and initialise the kernels in registration order.

        Raises:
            ConfigurationError: If a variable, coefficient or coupled field is
                missing, or a mixed kernel couples a variable to itself.
        """
        for variable_name, kernel in self._registration:
            self.add_trial_variable_name_if_missing(variable_name)
            if kernel.kind is KernelKind.MIXED:
                if kernel.trial_variable_name == variable_name:
                    raise ConfigurationError(f"{kernel.label}: mixed kernels must couple two different variables")
                self.add_trial_variable_name_if_missing(kernel.trial_variable_name)

        for name in self.var_names:
            variables.get(name, requester=f"{type(self).__name__} bucket '{name}'")
        self._register_variables(variables)
        self._register_coefficients(coefficients)

        for _, kernel in self._registration:
            kernel.init(variables, spaces, bc_map, coefficients)

        self._trial_variables = [variables.get(name) for name in self.trial_var_names]
        self._offsets = None
        self._refresh_offsets()
        self._rhs = None
        self._initialised = True

        if self.context.is_root:
            logger.info(f"{type(self).__name__}: {len(self.var_names)} variable(s) "
                        f"{self.trial_var_names}, {len(self._registration)} kernel(s), "
                        f"{self._offsets.total} dofs")

    def _build_forms(self) -> None:
        """Create empty forms on the current spaces of the solved variables."""
        self._bilinear_forms = {}
        self._mixed_forms = {}
        self._linear_forms = {}
        for name, variable in zip(self.var_names, self._trial_variables):
            self._bilinear_forms[name] = BilinearForm(variable.space)
            self._linear_forms[name] = LinearForm(variable.space)
            for kernel in self._kernels.get(name, []):
                if kernel.kind is KernelKind.MIXED:
                    key = (name, kernel.trial_variable_name)
                    if key not in self._mixed_forms:
                        trial = self._trial_variables[self.var_names.index(kernel.trial_variable_name)]
                        self._mixed_forms[key] = MixedBilinearForm(trial.space, variable.space)

    def _register_variables(self, variables) -> None:
        pass

    def _register_coefficients(self, coefficients) -> None:
        pass

    def _check_initialised(self) -> None:
        if not self._initialised:
            raise InvariantViolationError(f"{type(self).__name__} used before init")

    # Offsets

    @property
    def offsets(self) -> BlockOffsets:
        self._check_initialised()
        return self._offsets

    def _refresh_offsets(self) -> None:
        sizes = tuple(variable.size for variable in self._trial_variables)
        if self._offsets is not None and self._offsets.sizes == sizes:
            return
        self._offsets = BlockOffsets(sizes)
        self._build_forms()
        self._blocks = {}
        self._dirty = {name: True for name in self.var_names}
        self._operator = None
        self._eliminated = None
        self._eliminated_key = None
        self._pending_recovery = None
        logger.debug(f"Block offsets {list(self._offsets.offsets)}")

    def _check_offsets(self) -> None:
        sizes = tuple(variable.size for variable in self._trial_variables)
        if sizes != self._offsets.sizes:
            raise InvariantViolationError(
                f"Block offsets {list(self._offsets.offsets)} do not match variable sizes {list(sizes)}")

    # Assembly

    def set_time_step(self, dt: float) -> None:
        """Store ``dt`` and mark blocks whose kernels depend on it for rebuilding."""
        self._check_initialised()
        if dt <= 0.:
            raise ConfigurationError(f"Time step must be positive, got {dt}")
        if self._time_step is not None and dt == self._time_step:
            return
        self._time_step = dt
        for name in self.var_names:
            if any(k.kind is KernelKind.BILINEAR and k.depends_on_time_step() for k in self._kernels[name]):
                self._dirty[name] = True

    @property
    def time_step(self) -> Optional[float]:
        return self._time_step

    def mark_dirty(self, variable_name: Optional[str] = None) -> None:
        """Force the diagonal block of ``variable_name`` (default all) to be rebuilt."""
        for name in ([variable_name] if variable_name is not None else self.var_names):
            self._dirty[name] = True

    def update_system(self, bc_map: Optional[BCMap] = None, sources: Optional[Sources] = None) -> None:
        """Reassemble the forms that need it and refresh the block operator and rhs."""
        self._check_initialised()
        self._bc_map = bc_map if bc_map is not None else BCMap()
        sources = sources if sources is not None else Sources()
        self._refresh_offsets()

        changed = False
        rhs_blocks = []
        for i, name in enumerate(self.var_names):
            kernels = self._kernels[name]
            space = self._trial_variables[i].space

            bilinear = [k for k in kernels if k.kind is KernelKind.BILINEAR]
            if self._dirty[name] or any(k.is_time_varying() for k in bilinear):
                logger.debug(f"Assembling bilinear form of '{self.solved_name(name)}'")
                form = self._bilinear_forms[name]
                form.clear()
                for kernel in bilinear:
                    kernel.apply(form)
                block = form.assemble()
                if not same_matrix(self._blocks.get((i, i)), block):
                    self._blocks[(i, i)] = block
                    changed = True
                self._dirty[name] = False

            for (test_name, trial_name), form in self._mixed_forms.items():
                if test_name != name:
                    continue
                form.clear()
                for kernel in kernels:
                    if kernel.kind is KernelKind.MIXED and kernel.trial_variable_name == trial_name:
                        kernel.apply(form)
                block = form.assemble()
                key = (i, self.var_names.index(trial_name))
                if not same_matrix(self._blocks.get(key), block):
                    self._blocks[key] = block
                    changed = True

            form = self._linear_forms[name]
            form.clear()
            self._bc_map.apply_integrated(name, form, space.mesh)
            for kernel in kernels:
                if kernel.kind is KernelKind.LINEAR:
                    kernel.apply(form)
            sources.apply(name, form)
            rhs_blocks.append(form.assemble())

        if changed or self._operator is None:
            self._operator = AssemblyManager.assemble_block_operator(self._blocks, self._offsets, self._offsets)
            self.assembly_version += 1
        self._rhs = np.concatenate(rhs_blocks) if rhs_blocks else np.zeros(0)

    @property
    def block_operator(self) -> BCOO:
        """Global operator before essential boundary conditions are eliminated."""
        return self._operator

    @property
    def rhs(self) -> np.ndarray:
        return self._rhs

    def block(self, i: int, j: int) -> Optional[BCOO]:
        """Assembled block ``(i, j)``, ``None`` if it is structurally zero."""
        return self._blocks.get((i, j))

    def form_linear_system(self) -> Tuple[BCOO, np.ndarray, np.ndarray]:
        """Apply essential boundary conditions and return ``(A, x, b)``.

        ``x`` is the initial guess: zero except for the imposed essential values.

        Raises:
            ConfigurationError: If a variable has no DOFs or a boundary condition
                references an unknown boundary attribute.
            InvariantViolationError: If ``update_system`` has not run or the
                offsets no longer match the variable sizes.
        """
        if self._operator is None:
            raise InvariantViolationError("form_linear_system called before update_system")
        self._check_offsets()
        for name, size in zip(self.trial_var_names, self._offsets.sizes):
            if size == 0:
                raise ConfigurationError(f"Variable '{name}' has no degrees of freedom")

        total = self._offsets.total
        essential = []
        imposed = np.zeros(total)
        for i, name in enumerate(self.var_names):
            variable = self._trial_variables[i]
            local_dofs: list = []
            field = Variable(f"{variable.name}_essential", variable.space)
            self._bc_map.apply_essential(name, local_dofs, field, variable.space.mesh)
            if local_dofs:
                essential.append(onp.unique(onp.asarray(local_dofs)) + self._offsets[i])
                imposed = imposed.at[self._offsets.slice(i)].set(field.values)
        ess = onp.concatenate(essential).astype(onp.int32) if essential else onp.zeros(0, dtype=onp.int32)
        ess_dofs = np.array(ess, dtype=np.int32)
        ess_values = imposed[ess_dofs]

        key = (self.assembly_version, ess.tobytes())
        if self._eliminated is None or key != self._eliminated_key:
            self._eliminated = eliminate_rows_cols(self._operator, ess_dofs)
            self._eliminated_key = key
            self.operator_version += 1

        b = lift_essential_values(self._operator, self._rhs, ess_dofs, ess_values)
        x = np.zeros(total).at[ess_dofs].set(ess_values)
        self._pending_recovery = (ess_dofs, ess_values)
        return self._eliminated, x, b

    def recover_solution(self, x: np.ndarray, variables) -> np.ndarray:
        """Write ``x`` into the solved variables, restoring imposed essential values.

        Raises:
            InvariantViolationError: Without a matching ``form_linear_system`` call,
                or if ``x`` has the wrong size.
        """
        if self._pending_recovery is None:
            raise InvariantViolationError("recover_solution requires a preceding form_linear_system")
        x = np.asarray(x, dtype=np.float64)
        if x.shape != (self._offsets.total,):
            raise InvariantViolationError(
                f"Solution has shape {x.shape}, expected ({self._offsets.total},)")
        ess_dofs, ess_values = self._pending_recovery
        x = x.at[ess_dofs].set(ess_values)
        for i, name in enumerate(self.trial_var_names):
            variables.get(name).values = x[self._offsets.slice(i)]
        self._pending_recovery = None
        return x


class TimeDependentEquationSystem(EquationSystem):
    """Equation system for the time derivatives of its variables.

    Kernels are declared on a state variable ``u`` and contribute to the
    equation for ``du_dt``. Mixed kernels couple to the derivative of their
    trial variable and essential conditions declared on ``u`` constrain
    ``du_dt``. A kernel coefficient named ``dt_<name>`` is created on ``init``
    as the product of the time step and coefficient ``<name>``.
    """

    def __init__(self, context: Optional[CommContext] = None):
        super().__init__(context)
        self.dt_coefficient = TimeStepCoefficient(1.)

    def solved_name(self, name: str) -> str:
        return time_derivative_name(name)

    def _register_variables(self, variables) -> None:
        for name in self.var_names:
            variables.add_time_derivative_if_missing(name, requester=type(self).__name__)

    def _register_coefficients(self, coefficients) -> None:
        for _, kernel in self._registration:
            for name in kernel.required_coefficients:
                if name.startswith('dt_') and not coefficients.has(name):
                    base = coefficients.get_scalar(name[len('dt_'):], requester=kernel.label)
                    coefficients.add(name, ProductCoefficient(self.dt_coefficient, base))

    def set_time_step(self, dt: float) -> None:
        if dt > 0.:
            self.dt_coefficient.constant = float(dt)
        super().set_time_step(dt)
