"""Scalar and vector coefficients.

Coefficients are evaluated at arrays of points with shape ``(..., dim)`` and
return ``(...)`` (scalar) or ``(..., vdim)`` (vector) arrays. ``attributes``
holds one region attribute per leading row of the point array (cell
attributes for domain terms, facet attributes for boundary terms).

Two flags drive reassembly decisions:

    - ``time_dependent``: the value changes with the simulation time.
    - ``depends_on_time_step``: the value is built from the time step.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Sequence

import jax
import jax.numpy as np

from kernelfem.errors import ConfigurationError
from kernelfem.problem.registry import NamedMap


class Coefficient(ABC):
    """Scalar coefficient."""

    time_dependent = False
    depends_on_time_step = False

    def __init__(self):
        self.time = 0.

    def set_time(self, t: float) -> None:
        self.time = t

    @abstractmethod
    def eval(self, x: np.ndarray, attributes: np.ndarray) -> np.ndarray:
        """Evaluate at points ``x`` of shape (num_rows, num_points, dim)."""


class ConstantCoefficient(Coefficient):

    def __init__(self, value: float):
        super().__init__()
        self.constant = float(value)

    def eval(self, x, attributes):
        return np.full(x.shape[:-1], self.constant)


class TimeStepCoefficient(ConstantCoefficient):
    """Constant holding the current time step."""

    depends_on_time_step = True

    def __init__(self, dt: float = 1.):
        super().__init__(dt)


class FunctionCoefficient(Coefficient):
    """Coefficient given by ``fn(x, t)`` with ``x`` a single point of shape (dim,).

    ``fn`` must be traceable by ``jax.vmap`` (use ``jax.numpy`` operations).
    """

    def __init__(self, fn: Callable, time_dependent: bool = True):
        super().__init__()
        self.fn = fn
        self.time_dependent = time_dependent

    def eval(self, x, attributes):
        points = x.reshape(-1, x.shape[-1])
        vals = jax.vmap(lambda p: self.fn(p, self.time))(points)
        return np.asarray(vals, dtype=np.float64).reshape(x.shape[:-1])


class PiecewiseCoefficient(Coefficient):
    """Coefficient selected by region attribute.

    Args:
        pieces (dict): Attribute to ``Coefficient``. Rows whose attribute is not
            listed evaluate to ``default``.
    """

    def __init__(self, pieces: Dict[int, Coefficient], default: float = 0.):
        super().__init__()
        self.pieces = dict(pieces)
        self.default = default

    @property
    def time_dependent(self):
        return any(c.time_dependent for c in self.pieces.values())

    @property
    def depends_on_time_step(self):
        return any(c.depends_on_time_step for c in self.pieces.values())

    def set_time(self, t):
        super().set_time(t)
        for coef in self.pieces.values():
            coef.set_time(t)

    def eval(self, x, attributes):
        result = np.full(x.shape[:-1], self.default)
        attrs = np.asarray(attributes).reshape((-1,) + (1,) * (x.ndim - 2))
        for attr, coef in self.pieces.items():
            result = np.where(attrs == attr, coef.eval(x, attributes), result)
        return result


class ProductCoefficient(Coefficient):
    """Pointwise product ``a * b``."""

    def __init__(self, a: Coefficient, b: Coefficient):
        super().__init__()
        self.a = a
        self.b = b

    @property
    def time_dependent(self):
        return self.a.time_dependent or self.b.time_dependent

    @property
    def depends_on_time_step(self):
        return self.a.depends_on_time_step or self.b.depends_on_time_step

    def set_time(self, t):
        super().set_time(t)
        self.a.set_time(t)
        self.b.set_time(t)

    def eval(self, x, attributes):
        return self.a.eval(x, attributes) * self.b.eval(x, attributes)


class VectorCoefficient(ABC):
    """Vector coefficient with ``vdim`` components."""

    time_dependent = False
    depends_on_time_step = False

    def __init__(self, vdim: int):
        self.vdim = vdim
        self.time = 0.

    def set_time(self, t: float) -> None:
        self.time = t

    @abstractmethod
    def eval(self, x: np.ndarray, attributes: np.ndarray) -> np.ndarray:
        """Evaluate at points ``x``; returns shape ``x.shape[:-1] + (vdim,)``."""


class VectorConstantCoefficient(VectorCoefficient):

    def __init__(self, values: Sequence[float]):
        values = np.asarray(values, dtype=np.float64).reshape(-1)
        super().__init__(values.shape[0])
        self.constant = values

    def eval(self, x, attributes):
        return np.broadcast_to(self.constant, x.shape[:-1] + (self.vdim,))


class VectorFunctionCoefficient(VectorCoefficient):
    """Vector coefficient given by ``fn(x, t) -> (vdim,)``."""

    def __init__(self, vdim: int, fn: Callable, time_dependent: bool = True):
        super().__init__(vdim)
        self.fn = fn
        self.time_dependent = time_dependent

    def eval(self, x, attributes):
        points = x.reshape(-1, x.shape[-1])
        vals = jax.vmap(lambda p: np.asarray(self.fn(p, self.time), dtype=np.float64))(points)
        return vals.reshape(x.shape[:-1] + (self.vdim,))


class Coefficients:
    """Named scalar and vector coefficients of a problem.

    Attributes:
        time (float): Current simulation time, pushed into every coefficient
            by ``set_time``.
    """

    def __init__(self):
        self.scalars: NamedMap[Coefficient] = NamedMap(kind='Scalar coefficient')
        self.vectors: NamedMap[VectorCoefficient] = NamedMap(kind='Vector coefficient')
        self.time = 0.

    def add(self, name: str, coefficient) -> None:
        if isinstance(coefficient, Coefficient):
            self.scalars.add(name, coefficient)
        elif isinstance(coefficient, VectorCoefficient):
            self.vectors.add(name, coefficient)
        else:
            raise ConfigurationError(
                f"Coefficient '{name}' must be a Coefficient or VectorCoefficient, "
                f"got {type(coefficient).__name__}")

    def has(self, name: str) -> bool:
        return self.scalars.has(name) or self.vectors.has(name)

    def get_scalar(self, name: str, requester: str = "") -> Coefficient:
        return self.scalars.get(name, requester=requester)

    def get(self, name: str, requester: str = ""):
        """Vector coefficient ``name`` if registered, otherwise the scalar one."""
        if self.vectors.has(name):
            return self.vectors.get(name)
        return self.scalars.get(name, requester=requester)

    def set_time(self, t: float) -> None:
        self.time = t
        for coef in self.scalars.values() + self.vectors.values():
            coef.set_time(t)
