"""Source terms.

Sources behave like linear kernels that are owned by the problem rather than
by an equation: they are initialised once and add a load to the linear form
of the variable they target on every assembly pass.
"""

from kernelfem.problem.integrators import IntegratorGenerator
from kernelfem.problem.registry import NamedMap


class Source:
    """Base class of sources targeting ``variable_name``."""

    def __init__(self, variable_name: str):
        self.variable_name = variable_name

    def init(self, variables, spaces, bc_map, coefficients) -> None:
        pass

    def apply(self, linear_form) -> None:
        raise NotImplementedError


class DomainSource(Source):
    """Volumetric load ``(f, v)`` with ``f`` a named scalar or vector coefficient."""

    def __init__(self, variable_name: str, coefficient_name: str):
        super().__init__(variable_name)
        self.coefficient_name = coefficient_name
        self.coefficient = None

    def init(self, variables, spaces, bc_map, coefficients):
        requester = f"DomainSource on '{self.variable_name}'"
        variables.get(self.variable_name, requester=requester)
        self.coefficient = coefficients.get(self.coefficient_name, requester=requester)

    def apply(self, linear_form):
        linear_form.add_domain_integrator(IntegratorGenerator.get_domain_lf_integrator(self.coefficient))


class Sources(NamedMap[Source]):
    """Named sources of a problem."""

    def __init__(self):
        super().__init__(kind='Source')

    def init(self, variables, spaces, bc_map, coefficients) -> None:
        for source in self.values():
            source.init(variables, spaces, bc_map, coefficients)

    def apply(self, variable_name: str, linear_form) -> None:
        """Apply every source that targets ``variable_name``."""
        for source in self.values():
            if source.variable_name == variable_name:
                source.apply(linear_form)
