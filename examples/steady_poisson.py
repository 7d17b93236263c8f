#!/usr/bin/env python3
"""
Steady Poisson problem -div(grad u) = 1 on [0, 1] with u(0) = u(1) = 0.

Linear elements reproduce the exact solution u = x (1 - x) / 2 at the nodes,
so the printed nodal error is at round-off level.
"""

import numpy as onp

from kernelfem.executioners import SteadyExecutioner
from kernelfem.mesh import interval_mesh
from kernelfem.problem import (
    ConstantCoefficient,
    DiffusionKernel,
    DirichletBC,
    DomainSource,
    ProblemBuilder,
)


def main(num_elements=32):
    builder = ProblemBuilder(interval_mesh(num_elements))
    builder.add_fespace('H1', vec=1)
    builder.add_variable('u', 'H1')
    builder.add_coefficient('one', ConstantCoefficient(1.))
    builder.add_kernel('u', DiffusionKernel('one'))
    builder.add_source('load', DomainSource('u', 'one'))
    builder.add_boundary_condition('ends', DirichletBC('u', [1, 2]))
    builder.set_solver_options({'method': 'direct'})
    problem = builder.finalize()

    SteadyExecutioner(problem).execute()

    x = onp.asarray(problem.mesh.points[:, 0])
    u = onp.asarray(problem.variable('u').values)
    error = onp.max(onp.abs(u - x * (1. - x) / 2.))
    print(f"max nodal error: {error:.3e}")
    return problem


if __name__ == "__main__":
    main()
