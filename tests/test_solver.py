"""
Tests for kernelfem linear solvers and sparse helpers.

These tests exercise the solver front end on small hand-built systems,
independent of any finite element setup.
"""
import pytest
import jax.numpy as jnp
from jax.experimental.sparse import BCOO

from kernelfem.context import CommContext
from kernelfem.errors import ConfigurationError, SingularOperatorError, SolverConvergenceError

# Mark all tests in this module as solver tests
pytestmark = pytest.mark.solver


def tridiagonal(n, diag=2.0, off=-1.0):
    rows = [[i, i] for i in range(n)]
    data = [diag] * n
    for i in range(n - 1):
        rows += [[i, i + 1], [i + 1, i]]
        data += [off, off]
    return BCOO((jnp.array(data), jnp.array(rows)), shape=(n, n))


class TestBasicSolverFunctions:
    """Sparse helpers that don't require a full FE setup."""

    def test_jax_get_diagonal(self):
        """Test JAX diagonal extraction function."""
        from kernelfem.solver import jax_get_diagonal

        indices = jnp.array([[0, 0], [1, 1], [2, 2], [0, 1], [2, 2]])
        data = jnp.array([1.0, 2.0, 3.0, 4.0, 0.5])
        A = BCOO((data, indices), shape=(3, 3))

        diagonal = jax_get_diagonal(A)
        expected = jnp.array([1.0, 2.0, 3.5])

        assert jnp.allclose(diagonal, expected), f"Expected {expected}, got {diagonal}"

    def test_eliminate_rows_cols(self):
        """Eliminated rows and columns become identity rows."""
        from kernelfem.solver import eliminate_rows_cols

        A = eliminate_rows_cols(tridiagonal(4), jnp.array([0, 3])).todense()
        expected = jnp.array([[1., 0., 0., 0.],
                              [0., 2., -1., 0.],
                              [0., -1., 2., 0.],
                              [0., 0., 0., 1.]])
        assert jnp.allclose(A, expected), f"Expected {expected}, got {A}"

    def test_eliminate_nothing(self):
        from kernelfem.solver import eliminate_rows_cols

        A = tridiagonal(3)
        assert eliminate_rows_cols(A, jnp.zeros(0, dtype=jnp.int32)) is A

    def test_lift_essential_values(self):
        """Known values move to the right-hand side."""
        from kernelfem.solver import lift_essential_values

        b = lift_essential_values(tridiagonal(3), jnp.zeros(3), jnp.array([2]), jnp.array([5.0]))
        assert jnp.allclose(b, jnp.array([0.0, 5.0, 5.0])), f"Got {b}"


class TestLinearSolver:
    """Solving small systems with every method."""

    @pytest.mark.parametrize('method', ['cg', 'bicgstab', 'gmres', 'direct'])
    def test_solve_tridiagonal(self, method):
        from kernelfem.solver import solve

        A = tridiagonal(10)
        x_true = jnp.linspace(1.0, 2.0, 10)
        b = A @ x_true

        x = solve(A, b, {'method': method, 'precond': True, 'tol': 1e-12, 'atol': 1e-14})
        assert jnp.allclose(x, x_true, atol=1e-8), f"{method}: expected {x_true}, got {x}"

    def test_solve_identity(self):
        from kernelfem.solver import solve

        indices = jnp.array([[0, 0], [1, 1], [2, 2]])
        A = BCOO((jnp.ones(3), indices), shape=(3, 3))
        b = jnp.array([1.0, 2.0, 3.0])

        x = solve(A, b, {'method': 'cg', 'precond': False})
        assert jnp.allclose(x, b, rtol=1e-8), f"Expected {b}, got {x}"

    def test_zero_rhs(self):
        from kernelfem.solver import LinearSolver, SolverOptions

        solver = LinearSolver(tridiagonal(5), SolverOptions(method='cg'))
        assert jnp.allclose(solver.mult(jnp.zeros(5)), 0.0)

    def test_solver_is_reusable(self):
        from kernelfem.solver import LinearSolver, SolverOptions

        A = tridiagonal(6)
        solver = LinearSolver(A, SolverOptions(method='cg'))
        for rhs in (jnp.ones(6), jnp.arange(6.0)):
            x = solver.mult(rhs)
            assert jnp.allclose(A @ x, rhs, atol=1e-8)

    def test_non_convergence(self):
        """A single iteration cannot solve a 50 x 50 tridiagonal system."""
        from kernelfem.solver import LinearSolver, SolverOptions

        solver = LinearSolver(tridiagonal(50), SolverOptions(method='cg', precond='none', maxiter=1))
        with pytest.raises(SolverConvergenceError) as excinfo:
            solver.mult(jnp.ones(50))
        err = excinfo.value
        assert err.max_iterations == 1
        assert 'within 1 iterations' in str(err)
        assert err.residual > err.tolerance
        assert err.step is None

    def test_singular_direct(self):
        from kernelfem.solver import LinearSolver, SolverOptions

        A = BCOO((jnp.array([1.0]), jnp.array([[0, 0]])), shape=(2, 2))
        solver = LinearSolver(A, SolverOptions(method='direct'))
        with pytest.raises(SingularOperatorError):
            solver.mult(jnp.ones(2))

    def test_norm_uses_context(self):
        """Norms are reduced over all ranks of the context."""
        from kernelfem.solver import LinearSolver, SolverOptions

        class TwoRankComm:
            def Get_rank(self):
                return 0

            def Get_size(self):
                return 2

            def allreduce(self, value):
                return 2 * value

        context = CommContext.from_comm(TwoRankComm())
        assert context.is_root and context.size == 2
        solver = LinearSolver(tridiagonal(2), SolverOptions(), context)
        assert jnp.isclose(solver.norm(jnp.array([3.0, 4.0])), jnp.sqrt(50.0))


class TestSolverOptions:
    """Test solver option handling and validation."""

    def test_defaults(self):
        from kernelfem.solver import SolverOptions

        options = SolverOptions.from_dict(None)
        assert options.method == 'bicgstab'
        assert options.precond == 'jacobi'
        assert options.reuse_policy == 'reuse'

    def test_boolean_precond(self):
        from kernelfem.solver import SolverOptions

        assert SolverOptions.from_dict({'precond': False}).precond == 'none'
        assert SolverOptions.from_dict({'precond': True}).precond == 'jacobi'

    @pytest.mark.parametrize('options', [
        {'method': 'superlu'},
        {'precond': 'amg'},
        {'reuse_policy': 'sometimes'},
        {'maxiter': 0},
        {'tol': -1.0},
        {'use_jit': True},
    ])
    def test_invalid_options(self, options):
        from kernelfem.solver import SolverOptions

        with pytest.raises(ConfigurationError):
            SolverOptions.from_dict(options)


if __name__ == "__main__":
    pytest.main([__file__])
