"""Name-keyed registries.

``NamedMap`` is the single lookup structure used for spaces, variables,
coefficients, boundary conditions and sources. Names are registered at most
once and lookups of unknown names fail with the name of the requester, so a
misconfigured problem stops at setup instead of during assembly.
"""

from typing import Dict, Generic, Iterator, List, Tuple, TypeVar

from kernelfem.errors import DuplicateRegistrationError, NotFoundError

T = TypeVar('T')


class NamedMap(Generic[T]):
    """Insertion-ordered map from names to objects.

    Args:
        kind (str, optional): Human-readable kind of the stored objects, used
            in error messages. Defaults to ``'object'``.
    """

    def __init__(self, kind: str = 'object'):
        self.kind = kind
        self._items: Dict[str, T] = {}

    def add(self, name: str, obj: T) -> None:
        if name in self._items:
            raise DuplicateRegistrationError(f"{self.kind} '{name}' is already registered")
        self._items[name] = obj

    def has(self, name: str) -> bool:
        return name in self._items

    def get(self, name: str, requester: str = "") -> T:
        try:
            return self._items[name]
        except KeyError:
            where = f" (requested by {requester})" if requester else ""
            raise NotFoundError(f"{self.kind} '{name}' not found{where}") from None

    def names(self) -> List[str]:
        return list(self._items)

    def items(self) -> List[Tuple[str, T]]:
        return list(self._items.items())

    def values(self) -> List[T]:
        return list(self._items.values())

    def __contains__(self, name: str) -> bool:
        return name in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)


def time_derivative_name(name: str) -> str:
    """Name of the time derivative companion of variable ``name``."""
    return f"d{name}_dt"
