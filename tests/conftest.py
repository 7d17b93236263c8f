"""Shared fixtures for the kernelfem test suite."""

import pytest

from kernelfem.fe import FiniteElement
from kernelfem.mesh import interval_mesh, rectangle_mesh
from kernelfem.problem import (
    BCMap,
    Coefficients,
    ConstantCoefficient,
    NamedMap,
    Sources,
    Variable,
    VariableRegistry,
)


class Setup:
    """Registries of a hand-built problem."""

    def __init__(self, mesh):
        self.mesh = mesh
        self.spaces = NamedMap(kind='FE space')
        self.variables = VariableRegistry()
        self.coefficients = Coefficients()
        self.bc_map = BCMap()
        self.sources = Sources()
        self.coefficients.add('one', ConstantCoefficient(1.))

    def add_variable(self, name, vec=1, values=None):
        space_name = f"H1_{vec}"
        if not self.spaces.has(space_name):
            self.spaces.add(space_name, FiniteElement(self.mesh, vec=vec))
        return self.variables.add_variable(Variable(name, self.spaces.get(space_name), values))

    def init(self, system):
        system.init(self.variables, self.spaces, self.bc_map, self.coefficients)
        self.sources.init(self.variables, self.spaces, self.bc_map, self.coefficients)
        return system


@pytest.fixture
def line_mesh():
    return interval_mesh(8)


@pytest.fixture
def quad_mesh():
    return rectangle_mesh(2, 2)


@pytest.fixture
def line_setup(line_mesh):
    return Setup(line_mesh)


@pytest.fixture
def quad_setup(quad_mesh):
    return Setup(quad_mesh)


@pytest.fixture
def make_setup():
    return Setup
