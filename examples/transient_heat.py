#!/usr/bin/env python3
"""
Transient heat conduction on a unit square with backward Euler.

Solves du/dt = div(alpha grad u) + f on [0, 1]^2 with

- QUAD4 elements
- u = 0 on the left and right edges
- an insulated top and bottom
- a heat source that switches on after t = 0.05

Every step solves for du/dt with the kernels

    (du/dt, v) + (dt * alpha grad du/dt, grad v) = -(alpha grad u, grad v) + (f, v)

and the state is advanced with u <- u + dt * du/dt. The linear solver is
built once and reused because alpha and dt stay fixed.
"""

import jax.numpy as jnp

from kernelfem.executioners import TransientExecutioner
from kernelfem.mesh import rectangle_mesh
from kernelfem.problem import (
    ConstantCoefficient,
    DiffusionKernel,
    DirichletBC,
    DomainSource,
    FunctionCoefficient,
    MassKernel,
    TimeDomainProblemBuilder,
    WeakDiffusionKernel,
)


def heat_source(x, t):
    # Gaussian spot in the middle of the plate
    r2 = jnp.sum((x - 0.5)**2)
    return jnp.where(t > 0.05, 10. * jnp.exp(-r2 / 0.02), 0.)


def build_problem(nx=16, ny=16, alpha=0.5):
    builder = TimeDomainProblemBuilder(rectangle_mesh(nx, ny))
    builder.add_fespace('H1', vec=1)
    builder.add_variable('temperature', 'H1')

    builder.add_coefficient('one', ConstantCoefficient(1.))
    builder.add_coefficient('alpha', ConstantCoefficient(alpha))
    builder.add_coefficient('source', FunctionCoefficient(heat_source))

    builder.add_kernel('temperature', MassKernel('one'))
    builder.add_kernel('temperature', DiffusionKernel('dt_alpha'))
    builder.add_kernel('temperature', WeakDiffusionKernel('temperature', 'alpha'))
    builder.add_source('heater', DomainSource('temperature', 'source'))

    # Right = 2, left = 4
    builder.add_boundary_condition('cold_walls', DirichletBC('temperature', [2, 4]))
    builder.set_solver_options({'method': 'cg', 'precond': True, 'tol': 1e-10})
    return builder.finalize()


def main():
    problem = build_problem()

    def report(step, t, p):
        if step % 5 == 0:
            u = p.variable('temperature').values
            print(f"step {step:3d}, t = {t:.3f}, max temperature = {float(jnp.max(u)):.4f}")

    executioner = TransientExecutioner(problem, time_step=0.01, end_time=0.3, on_step=report)
    executioner.execute()

    print(f"Linear solver builds: {problem.operator.solver_builds}")
    return problem


if __name__ == "__main__":
    main()
