"""
Tests for block assembly, essential boundary conditions and recovery in
equation systems.
"""
import itertools

import pytest
import numpy as onp
import jax.numpy as jnp

from kernelfem.errors import ConfigurationError, InvariantViolationError, NotFoundError
from kernelfem.fe import FiniteElement
from kernelfem.mesh import interval_mesh, rectangle_mesh
from kernelfem.problem import (
    ConstantCoefficient,
    DiffusionKernel,
    DirichletBC,
    DomainLFKernel,
    EquationSystem,
    FunctionCoefficient,
    MassKernel,
    MixedGradientKernel,
    TimeDependentEquationSystem,
    Variable,
)
from kernelfem.solver import LinearSolver, SolverOptions

pytestmark = pytest.mark.assembly


class ZeroSpace:
    """Space without degrees of freedom."""

    num_total_dofs = 0
    mesh = None


def dense(A):
    return onp.asarray(A.todense())


class TestBlockOffsets:

    @pytest.mark.parametrize('order', list(itertools.permutations(['a', 'b', 'c'])))
    def test_offsets_follow_registration_order(self, line_setup, order):
        vecs = {'a': 1, 'b': 2, 'c': 3}
        for name in ['a', 'b', 'c']:
            line_setup.add_variable(name, vec=vecs[name])
        system = EquationSystem()
        for name in order:
            system.add_kernel(name, MassKernel('one'))
        line_setup.init(system)

        sizes = [9 * vecs[name] for name in order]
        assert system.trial_var_names == list(order)
        assert list(system.offsets.offsets) == [0] + list(onp.cumsum(sizes))

    def test_mixed_kernel_registers_trial_variable(self, quad_setup):
        quad_setup.add_variable('p')
        quad_setup.add_variable('u', vec=2)
        system = EquationSystem()
        system.add_kernel('u', MixedGradientKernel('p', 'one'))
        quad_setup.init(system)
        assert system.trial_var_names == ['u', 'p']
        assert list(system.offsets.offsets) == [0, 18, 27]


class TestInitErrors:

    def test_unregistered_bucket(self, line_setup):
        line_setup.add_variable('u')
        system = EquationSystem()
        system.add_kernel('w', MassKernel('one'))
        with pytest.raises(NotFoundError, match="'w'"):
            line_setup.init(system)

    def test_self_coupling(self, quad_setup):
        quad_setup.add_variable('u', vec=2)
        system = EquationSystem()
        system.add_kernel('u', MixedGradientKernel('u', 'one'))
        with pytest.raises(ConfigurationError, match='different'):
            quad_setup.init(system)

    def test_use_before_init(self):
        with pytest.raises(InvariantViolationError):
            EquationSystem().update_system()


class TestUpdateSystem:

    def test_variable_without_kernels_gives_zero_rows(self, line_setup):
        line_setup.add_variable('u')
        line_setup.add_variable('p')
        system = EquationSystem()
        system.add_trial_variable_name_if_missing('u')
        system.add_kernel('u', MassKernel('one'))
        system.add_trial_variable_name_if_missing('p')
        line_setup.init(system)
        system.update_system(line_setup.bc_map, line_setup.sources)

        A = dense(system.block_operator)
        assert A.shape == (18, 18)
        assert onp.allclose(A[9:, :], 0.)
        assert onp.allclose(A[:, 9:], 0.)
        assert system.rhs.shape == (18,)

    def test_update_is_idempotent(self, line_setup):
        line_setup.add_variable('u')
        system = EquationSystem()
        system.add_kernel('u', DiffusionKernel('one'))
        system.add_kernel('u', DomainLFKernel('one'))
        line_setup.init(system)

        system.update_system(line_setup.bc_map, line_setup.sources)
        A1, b1, version = dense(system.block_operator), system.rhs, system.assembly_version
        system.update_system(line_setup.bc_map, line_setup.sources)

        assert onp.array_equal(A1, dense(system.block_operator))
        assert jnp.array_equal(b1, system.rhs)
        assert system.assembly_version == version, "Unchanged blocks must not rebuild the operator"

    def test_time_varying_coefficient_reassembles(self, line_setup):
        line_setup.coefficients.add('k', FunctionCoefficient(lambda x, t: 1. + t + 0. * x[0]))
        line_setup.add_variable('u')
        system = EquationSystem()
        system.add_kernel('u', MassKernel('k'))
        line_setup.init(system)

        system.update_system(line_setup.bc_map, line_setup.sources)
        version = system.assembly_version
        line_setup.coefficients.set_time(1.)
        system.update_system(line_setup.bc_map, line_setup.sources)
        assert system.assembly_version == version + 1
        assert jnp.isclose(jnp.sum(system.block_operator.todense()), 2.)

    def test_dt_change_rebuilds_only_dependent_blocks(self, line_setup):
        line_setup.coefficients.add('alpha', ConstantCoefficient(3.))
        line_setup.add_variable('p')
        line_setup.add_variable('u')
        system = TimeDependentEquationSystem()
        system.add_kernel('p', MassKernel('one'))
        system.add_kernel('u', MassKernel('one'))
        system.add_kernel('u', DiffusionKernel('dt_alpha'))
        line_setup.init(system)

        system.set_time_step(0.1)
        system.update_system(line_setup.bc_map, line_setup.sources)
        p_block, u_block = system.block(0, 0), system.block(1, 1)
        p_data = onp.asarray(p_block.data).copy()

        system.set_time_step(0.2)
        system.update_system(line_setup.bc_map, line_setup.sources)
        assert system.block(0, 0) is p_block, "dt-independent block must not be reassembled"
        assert onp.array_equal(onp.asarray(system.block(0, 0).data), p_data)
        assert not onp.allclose(dense(system.block(1, 1)), dense(u_block))

        # M + dt * alpha * K, with K[4, 4] = 2 / h = 16
        h = 1. / 8.
        assert onp.isclose(dense(system.block(1, 1))[4, 4], 4. * h / 6. + 0.2 * 3. * 16.)

    def test_dt_scaled_coefficient_registered(self, line_setup):
        line_setup.coefficients.add('alpha', ConstantCoefficient(3.))
        line_setup.add_variable('u')
        system = TimeDependentEquationSystem()
        system.add_kernel('u', DiffusionKernel('dt_alpha'))
        line_setup.init(system)
        assert line_setup.coefficients.has('dt_alpha')
        assert line_setup.variables.has('du_dt')

        system.set_time_step(0.5)
        coef = line_setup.coefficients.get_scalar('dt_alpha')
        assert coef.depends_on_time_step
        assert jnp.allclose(coef.eval(jnp.zeros((1, 1, 1)), jnp.ones(1)), 1.5)

    def test_invalid_time_step(self, line_setup):
        line_setup.add_variable('u')
        system = TimeDependentEquationSystem()
        system.add_kernel('u', MassKernel('one'))
        line_setup.init(system)
        with pytest.raises(ConfigurationError):
            system.set_time_step(0.)

    def test_mark_dirty_rebuilds_block(self, line_setup):
        rho = ConstantCoefficient(1.)
        line_setup.coefficients.add('rho', rho)
        line_setup.add_variable('u')
        system = EquationSystem()
        system.add_kernel('u', MassKernel('rho'))
        line_setup.init(system)
        system.update_system(line_setup.bc_map, line_setup.sources)
        version = system.assembly_version

        rho.constant = 2.
        system.update_system(line_setup.bc_map, line_setup.sources)
        assert jnp.isclose(jnp.sum(system.block(0, 0).todense()), 1.), "Clean blocks keep the old constant"
        assert system.assembly_version == version

        system.mark_dirty('u')
        system.update_system(line_setup.bc_map, line_setup.sources)
        assert jnp.isclose(jnp.sum(system.block(0, 0).todense()), 2.)
        assert system.assembly_version == version + 1

    def test_resized_variable_rebuilds_forms(self, line_setup):
        u = line_setup.add_variable('u')
        system = EquationSystem()
        system.add_kernel('u', MassKernel('one'))
        system.add_kernel('u', DomainLFKernel('one'))
        line_setup.init(system)
        system.update_system(line_setup.bc_map, line_setup.sources)
        assert system.block(0, 0).shape == (9, 9)

        u.space = FiniteElement(interval_mesh(16))
        system.update_system(line_setup.bc_map, line_setup.sources)

        assert system.offsets.total == 17
        assert system.block(0, 0).shape == (17, 17)
        assert jnp.isclose(jnp.sum(system.block(0, 0).todense()), 1.)
        A, x, b = system.form_linear_system()
        assert A.shape == (17, 17) and x.shape == (17,) and b.shape == (17,)
        assert jnp.isclose(jnp.sum(b), 1.)


class TestEssentialBoundaryConditions:

    def _poisson(self, setup, bc_attrs=(1, 2)):
        u = setup.add_variable('u')
        setup.bc_map.add('left', DirichletBC('u', [bc_attrs[0]], ConstantCoefficient(0.)))
        setup.bc_map.add('right', DirichletBC('u', [bc_attrs[1]], ConstantCoefficient(1.)))
        system = EquationSystem()
        system.add_kernel('u', DiffusionKernel('one'))
        setup.init(system)
        return system, u

    def test_form_before_update(self, line_setup):
        system, _ = self._poisson(line_setup)
        with pytest.raises(InvariantViolationError):
            system.form_linear_system()

    def test_elimination(self, line_setup):
        system, _ = self._poisson(line_setup)
        system.update_system(line_setup.bc_map, line_setup.sources)
        A, x, b = system.form_linear_system()
        A = dense(A)

        assert onp.allclose(A, A.T), "Elimination must keep the operator symmetric"
        assert onp.allclose(A[0], onp.eye(9)[0]) and onp.allclose(A[-1], onp.eye(9)[-1])
        assert onp.isclose(b[0], 0.) and onp.isclose(b[-1], 1.)
        assert onp.isclose(b[-2], 8.), "Lifted boundary value: -K[7, 8] * 1"
        assert onp.isclose(x[-1], 1.) and onp.allclose(x[:-1], 0.)

    def test_recover_round_trip(self, line_setup):
        system, u = self._poisson(line_setup)
        system.update_system(line_setup.bc_map, line_setup.sources)
        system.form_linear_system()

        garbage = jnp.arange(9.) + 10.
        system.recover_solution(garbage, line_setup.variables)
        assert jnp.isclose(u.values[0], 0.) and jnp.isclose(u.values[-1], 1.)
        assert jnp.array_equal(u.values[1:-1], garbage[1:-1])

        with pytest.raises(InvariantViolationError):
            system.recover_solution(garbage, line_setup.variables)

    def test_operator_version(self, line_setup):
        line_setup.add_variable('u')
        line_setup.bc_map.add('left', DirichletBC('u', [1]))
        system = EquationSystem()
        system.add_kernel('u', DiffusionKernel('one'))
        line_setup.init(system)

        system.update_system(line_setup.bc_map, line_setup.sources)
        system.form_linear_system()
        version = system.operator_version
        system.update_system(line_setup.bc_map, line_setup.sources)
        system.form_linear_system()
        assert system.operator_version == version

        line_setup.bc_map.add('right', DirichletBC('u', [2], ConstantCoefficient(2.)))
        system.update_system(line_setup.bc_map, line_setup.sources)
        A, x, b = system.form_linear_system()
        assert system.operator_version == version + 1, "New essential dofs must change the operator"
        assert onp.isclose(b[-1], 2.)

    def test_out_of_range_attribute(self, line_setup):
        system, _ = self._poisson(line_setup, bc_attrs=(1, 7))
        system.update_system(line_setup.bc_map, line_setup.sources)
        with pytest.raises(ConfigurationError, match='7'):
            system.form_linear_system()

    def test_zero_size_variable(self, line_setup):
        line_setup.add_variable('u')
        line_setup.variables.add_variable(Variable('empty', ZeroSpace()))
        system = EquationSystem()
        system.add_kernel('u', MassKernel('one'))
        system.add_trial_variable_name_if_missing('empty')
        line_setup.init(system)
        system.update_system(line_setup.bc_map, line_setup.sources)
        with pytest.raises(ConfigurationError, match="'empty'"):
            system.form_linear_system()


class TestCoupledScenario:
    """Scalar p and vector u coupled through a gradient term."""

    def test_homogeneous_problem_has_zero_solution(self, make_setup):
        setup = make_setup(rectangle_mesh(1, 1))
        setup.add_variable('p')
        setup.add_variable('u', vec=2)
        setup.bc_map.add('p_all', DirichletBC('p', [1, 2, 3, 4]))
        setup.bc_map.add('u_all', DirichletBC('u', [1, 2, 3, 4]))

        system = TimeDependentEquationSystem()
        system.add_kernel('u', MassKernel('one'))
        system.add_kernel('u', MixedGradientKernel('p', 'one'))
        setup.init(system)
        assert system.trial_var_names == ['du_dt', 'dp_dt']

        system.set_time_step(0.1)
        system.update_system(setup.bc_map, setup.sources)
        assert system.block(0, 1) is not None, "Gradient coupling block"

        A, x, b = system.form_linear_system()
        assert onp.allclose(dense(A), onp.eye(12))
        solution = LinearSolver(A, SolverOptions(method='direct')).mult(b, x)
        system.recover_solution(solution, setup.variables)

        assert jnp.allclose(solution, 0.)
        assert jnp.allclose(setup.variables.get('du_dt').values, 0.)
        assert jnp.allclose(setup.variables.get('dp_dt').values, 0.)

    def test_steady_variant_on_interval(self, make_setup):
        setup = make_setup(interval_mesh(1))
        setup.add_variable('p')
        setup.add_variable('u')
        setup.bc_map.add('p_all', DirichletBC('p', [1, 2]))
        setup.bc_map.add('u_all', DirichletBC('u', [1, 2]))
        system = EquationSystem()
        system.add_kernel('u', MassKernel('one'))
        system.add_kernel('u', MixedGradientKernel('p', 'one'))
        setup.init(system)
        system.update_system(setup.bc_map, setup.sources)
        A, x, b = system.form_linear_system()
        assert onp.allclose(dense(A), onp.eye(4))
        assert onp.allclose(b, 0.)
