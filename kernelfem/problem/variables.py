"""Named discrete fields.

A ``Variable`` owns its coefficient vector until it is aliased onto a slice
of a ``BlockVector`` with ``make_ref``. From then on reads return the slice
and writes go straight into the block vector, so the solver's block vector
and the named fields never diverge.
"""

from typing import Optional

import jax.numpy as np

from kernelfem.errors import InvariantViolationError
from kernelfem.problem.blocks import BlockVector
from kernelfem.problem.registry import NamedMap, time_derivative_name


class Variable:
    """Discrete field ``name`` living in ``space``."""

    def __init__(self, name: str, space, values=None):
        self.name = name
        self.space = space
        self._own = np.zeros(self.size)
        self._ref: Optional[BlockVector] = None
        self._offset = 0
        if values is not None:
            self.values = values

    @property
    def size(self) -> int:
        return int(self.space.num_total_dofs)

    @property
    def is_ref(self) -> bool:
        return self._ref is not None

    def make_ref(self, vector: BlockVector, offset: int) -> None:
        """Alias this variable onto ``vector[offset:offset + size]``."""
        if offset < 0 or offset + self.size > len(vector):
            raise InvariantViolationError(
                f"Variable '{self.name}' of size {self.size} does not fit at offset "
                f"{offset} of a block vector of size {len(vector)}")
        self._ref = vector
        self._offset = offset

    def release_ref(self) -> None:
        """Copy the aliased values into own storage and drop the alias."""
        if self._ref is not None:
            self._own = self.values
            self._ref = None

    @property
    def values(self) -> np.ndarray:
        if self._ref is None:
            return self._own
        return self._ref.data[self._offset:self._offset + self.size]

    @values.setter
    def values(self, new_values) -> None:
        new_values = np.asarray(new_values, dtype=np.float64).reshape(-1)
        if new_values.shape[0] != self.size:
            raise InvariantViolationError(
                f"Variable '{self.name}' expects {self.size} values, got {new_values.shape[0]}")
        if self._ref is None:
            self._own = new_values
        else:
            self._ref.data = self._ref.data.at[self._offset:self._offset + self.size].set(new_values)

    def __repr__(self) -> str:
        return f"Variable({self.name!r}, size={self.size})"


class VariableRegistry(NamedMap[Variable]):
    """Registry of the named fields of a problem."""

    def __init__(self):
        super().__init__(kind='Variable')

    def time_derivative_name(self, name: str) -> str:
        return time_derivative_name(name)

    def add_variable(self, variable: Variable) -> Variable:
        self.add(variable.name, variable)
        return variable

    def add_time_derivative_if_missing(self, name: str, requester: str = "") -> Variable:
        """Register ``d<name>_dt`` in the space of ``name`` unless it exists."""
        derivative_name = self.time_derivative_name(name)
        if not self.has(derivative_name):
            parent = self.get(name, requester=requester)
            self.add(derivative_name, Variable(derivative_name, parent.space))
        return self.get(derivative_name)
