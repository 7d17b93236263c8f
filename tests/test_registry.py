"""
Tests for name registries, variables and block layout.
"""
import pytest
import jax.numpy as jnp

from kernelfem.errors import (
    ConfigurationError,
    DuplicateRegistrationError,
    InvariantViolationError,
    NotFoundError,
)
from kernelfem.fe import FiniteElement
from kernelfem.mesh import interval_mesh
from kernelfem.problem import (
    BlockOffsets,
    BlockVector,
    MassKernel,
    NamedMap,
    ProblemBuilder,
    Variable,
    VariableRegistry,
    time_derivative_name,
)

pytestmark = pytest.mark.problem


class TestNamedMap:
    """Registration and lookup by name."""

    def test_insertion_order(self):
        registry = NamedMap(kind='Thing')
        for name in ['c', 'a', 'b']:
            registry.add(name, name.upper())
        assert registry.names() == ['c', 'a', 'b']
        assert registry.get('a') == 'A'
        assert registry.has('b') and 'b' in registry
        assert len(registry) == 3

    def test_duplicate_registration(self):
        registry = NamedMap(kind='Thing')
        registry.add('x', 1)
        with pytest.raises(DuplicateRegistrationError, match="'x'"):
            registry.add('x', 2)
        assert registry.get('x') == 1, "Failed registration must not overwrite"

    def test_duplicate_is_configuration_error(self):
        assert issubclass(DuplicateRegistrationError, ConfigurationError)
        assert issubclass(NotFoundError, ConfigurationError)

    def test_missing_name_reports_requester(self):
        registry = NamedMap(kind='Scalar coefficient')
        with pytest.raises(NotFoundError) as excinfo:
            registry.get('alpha', requester='MassKernel on du_dt')
        message = str(excinfo.value)
        assert 'alpha' in message and 'MassKernel on du_dt' in message


class TestVariableRegistry:
    """Variables and their time-derivative companions."""

    def test_time_derivative_name(self):
        assert time_derivative_name('u') == 'du_dt'
        assert time_derivative_name('u') == time_derivative_name('u')
        assert VariableRegistry().time_derivative_name('temperature') == 'dtemperature_dt'

    def test_add_time_derivative_if_missing(self):
        space = FiniteElement(interval_mesh(4))
        variables = VariableRegistry()
        u = variables.add_variable(Variable('u', space))

        du = variables.add_time_derivative_if_missing('u')
        assert du.name == 'du_dt'
        assert du.space is u.space
        assert variables.add_time_derivative_if_missing('u') is du, "Second call must reuse the variable"

    def test_time_derivative_of_unknown_variable(self):
        with pytest.raises(NotFoundError):
            VariableRegistry().add_time_derivative_if_missing('ghost')


class TestBlockLayout:
    """Block offsets, block vectors and aliasing."""

    def test_offsets_are_prefix_sums(self):
        offsets = BlockOffsets([3, 0, 4])
        assert offsets.offsets == (0, 3, 3, 7)
        assert offsets.total == 7
        assert offsets.num_blocks == 3
        assert offsets.slice(2) == slice(3, 7)

    def test_block_vector_blocks(self):
        vector = BlockVector(BlockOffsets([2, 3]))
        vector.set_block(1, jnp.array([1., 2., 3.]))
        assert jnp.array_equal(vector.data, jnp.array([0., 0., 1., 2., 3.]))
        assert jnp.array_equal(vector.get_block(0), jnp.zeros(2))

    def test_block_vector_rejects_wrong_size(self):
        vector = BlockVector(BlockOffsets([2, 3]))
        with pytest.raises(InvariantViolationError):
            vector.data = jnp.zeros(4)

    def test_variable_alias_is_write_through(self):
        p = Variable('p', FiniteElement(interval_mesh(1)))       # 2 dofs
        u = Variable('u', FiniteElement(interval_mesh(2)))       # 3 dofs
        vector = BlockVector(BlockOffsets([u.size, p.size]))
        u.make_ref(vector, 0)
        p.make_ref(vector, 3)

        p.values = jnp.array([1., 2.])
        assert jnp.array_equal(vector.data[3:], jnp.array([1., 2.]))

        vector.set_block(0, jnp.array([4., 5., 6.]))
        assert jnp.array_equal(u.values, jnp.array([4., 5., 6.]))

    def test_variable_alias_out_of_range(self):
        u = Variable('u', FiniteElement(interval_mesh(2)))
        with pytest.raises(InvariantViolationError):
            u.make_ref(BlockVector(BlockOffsets([2])), 0)

    def test_release_ref_keeps_values(self):
        u = Variable('u', FiniteElement(interval_mesh(1)))
        vector = BlockVector(BlockOffsets([2]), data=jnp.array([7., 8.]))
        u.make_ref(vector, 0)
        u.release_ref()
        vector.fill(0.)
        assert jnp.array_equal(u.values, jnp.array([7., 8.]))


class TestBuilderRegistration:
    """Registration errors surface before any assembly."""

    def test_duplicate_variable(self):
        builder = ProblemBuilder(interval_mesh(4))
        builder.add_fespace('H1')
        builder.add_variable('u', 'H1')
        with pytest.raises(DuplicateRegistrationError):
            builder.add_variable('u', 'H1')
        assert builder.problem.operator is None
        assert builder.problem.equation_system.block_operator is None

    def test_unknown_space(self):
        builder = ProblemBuilder(interval_mesh(4))
        with pytest.raises(NotFoundError, match="variable 'u'"):
            builder.add_variable('u', 'H1')

    def test_missing_coefficient_fails_at_finalize(self):
        builder = ProblemBuilder(interval_mesh(4))
        builder.add_fespace('H1')
        builder.add_variable('u', 'H1')
        builder.add_kernel('u', MassKernel('rho'))
        with pytest.raises(ConfigurationError, match="'rho'.*MassKernel"):
            builder.finalize()

    def test_unknown_solver_option(self):
        builder = ProblemBuilder(interval_mesh(4))
        with pytest.raises(ConfigurationError, match='max_iter'):
            builder.set_solver_options({'max_iter': 10})
