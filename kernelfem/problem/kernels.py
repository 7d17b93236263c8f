"""Weak-form kernels.

A kernel is one term of one equation. It is registered against a test
variable, names the coefficients (and for some variants the variables) it
needs, resolves those names once in ``init`` and afterwards adds exactly one
integrator to the form it is given in ``apply``.

Variants form a closed set tagged by ``KernelKind``:

    - BILINEAR: square term in the test variable's own block.
    - MIXED: off-diagonal term coupling a different trial variable.
    - LINEAR: right-hand-side term.

Example:
    >>> system.add_kernel('u', MassKernel('beta'))
    >>> system.add_kernel('u', DiffusionKernel('dt_alpha'))
    >>> system.add_kernel('u', WeakDiffusionKernel('u', 'alpha'))
"""

import enum
from typing import List, Optional

from kernelfem.errors import ConfigurationError, InvariantViolationError
from kernelfem.problem.integrators import IntegratorGenerator


class KernelKind(enum.Enum):
    BILINEAR = 'bilinear'
    MIXED = 'mixed'
    LINEAR = 'linear'


class Kernel:
    """Base class of all kernels.

    Args:
        coefficient_name (str): Name of the coefficient scaling the term.

    Attributes:
        test_variable_name (str): Bucket the kernel belongs to, set on registration.
        trial_variable_name (str, optional): Coupled trial variable of mixed kernels.
        coefficient: Resolved coefficient, ``None`` until ``init``.
    """

    kind: KernelKind = KernelKind.BILINEAR

    def __init__(self, coefficient_name: str):
        self.coefficient_name = coefficient_name
        self.coefficient = None
        self.test_variable_name: Optional[str] = None
        self.trial_variable_name: Optional[str] = None
        self._initialised = False

    @property
    def label(self) -> str:
        return f"{type(self).__name__} on '{self.test_variable_name}'"

    @property
    def required_coefficients(self) -> List[str]:
        return [self.coefficient_name]

    def init(self, variables, spaces, bc_map, coefficients) -> None:
        """Resolve named dependencies. Raises ``ConfigurationError`` on a missing name."""
        self.coefficient = coefficients.get_scalar(self.coefficient_name, requester=self.label)
        self._initialised = True

    def is_time_varying(self) -> bool:
        self._check_initialised()
        return self.coefficient.time_dependent

    def depends_on_time_step(self) -> bool:
        self._check_initialised()
        return self.coefficient.depends_on_time_step

    def apply(self, form) -> None:
        """Add this kernel's term to ``form``, dispatching on the kernel kind."""
        self._check_initialised()
        if self.kind is KernelKind.BILINEAR:
            self.apply_bilinear(form)
        elif self.kind is KernelKind.MIXED:
            self.apply_mixed(form)
        else:
            self.apply_linear(form)

    def apply_bilinear(self, form) -> None:
        raise InvariantViolationError(f"{self.label} does not provide a bilinear term")

    def apply_mixed(self, form) -> None:
        raise InvariantViolationError(f"{self.label} does not provide a mixed term")

    def apply_linear(self, form) -> None:
        raise InvariantViolationError(f"{self.label} does not provide a linear term")

    def _check_initialised(self) -> None:
        if not self._initialised:
            raise InvariantViolationError(f"{self.label} used before init")


class MassKernel(Kernel):
    """``(c u, v)``."""

    kind = KernelKind.BILINEAR

    def apply_bilinear(self, form):
        form.add_domain_integrator(IntegratorGenerator.get_mass_integrator(self.coefficient))


class DiffusionKernel(Kernel):
    """``(c grad u, grad v)``.

    In a time-dependent system pass ``'dt_<name>'`` to get the term scaled by
    the time step.
    """

    kind = KernelKind.BILINEAR

    def apply_bilinear(self, form):
        form.add_domain_integrator(IntegratorGenerator.get_diffusion_integrator(self.coefficient))


class MixedKernel(Kernel):
    """Base of kernels coupling the test variable to ``trial_variable_name``."""

    kind = KernelKind.MIXED

    def __init__(self, trial_variable_name: str, coefficient_name: str):
        super().__init__(coefficient_name)
        self.trial_variable_name = trial_variable_name

    @property
    def label(self) -> str:
        return (f"{type(self).__name__} on '{self.test_variable_name}' "
                f"coupled to '{self.trial_variable_name}'")


class MixedGradientKernel(MixedKernel):
    """``(c grad p, v)`` with scalar trial ``p`` and vector test ``v``."""

    def apply_mixed(self, form):
        form.add_domain_integrator(IntegratorGenerator.get_mixed_gradient_integrator(self.coefficient))


class MixedMassKernel(MixedKernel):
    """``(c p, v)`` between spaces with equal component counts."""

    def apply_mixed(self, form):
        form.add_domain_integrator(IntegratorGenerator.get_mass_integrator(self.coefficient))


class WeakDiffusionKernel(Kernel):
    """``-(c grad u, grad v)`` evaluated with the current values of ``u``.

    Moves the diffusion of the known state to the right-hand side, which
    together with ``DiffusionKernel('dt_<c>')`` gives the backward Euler
    update for ``du/dt``.
    """

    kind = KernelKind.LINEAR

    def __init__(self, coupled_variable_name: str, coefficient_name: str):
        super().__init__(coefficient_name)
        self.coupled_variable_name = coupled_variable_name
        self.coupled_variable = None

    def init(self, variables, spaces, bc_map, coefficients):
        self.coupled_variable = variables.get(self.coupled_variable_name, requester=self.label)
        super().init(variables, spaces, bc_map, coefficients)

    def apply_linear(self, form):
        form.add_domain_integrator(IntegratorGenerator.get_weak_diffusion_lf_integrator(
            self.coefficient, self.coupled_variable))


class DomainLFKernel(Kernel):
    """``(f, v)`` with a scalar or vector coefficient ``f``."""

    kind = KernelKind.LINEAR

    def init(self, variables, spaces, bc_map, coefficients):
        self.coefficient = coefficients.get(self.coefficient_name, requester=self.label)
        self._initialised = True

    def apply_linear(self, form):
        form.add_domain_integrator(IntegratorGenerator.get_domain_lf_integrator(self.coefficient))


KERNEL_TYPES = {
    'MassKernel': MassKernel,
    'DiffusionKernel': DiffusionKernel,
    'MixedGradientKernel': MixedGradientKernel,
    'MixedMassKernel': MixedMassKernel,
    'WeakDiffusionKernel': WeakDiffusionKernel,
    'DomainLFKernel': DomainLFKernel,
}


def make_kernel(type_name: str, **params) -> Kernel:
    """Construct a kernel from its class name, e.g. from a parsed input file."""
    try:
        kernel_cls = KERNEL_TYPES[type_name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown kernel type '{type_name}', expected one of {sorted(KERNEL_TYPES)}") from None
    return kernel_cls(**params)
