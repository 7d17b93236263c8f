"""Block offsets and block vectors.

The global unknown vector of a coupled system is the concatenation of the
per-variable coefficient vectors. ``BlockOffsets`` stores where each block
starts; ``BlockVector`` is the concatenated vector with block accessors.
"""

from typing import Iterable, Optional, Sequence

import jax.numpy as np
import numpy as onp

from kernelfem.errors import InvariantViolationError


class BlockOffsets:
    """Prefix sums of block sizes.

    ``offsets[i]`` is the first index of block ``i`` and ``offsets[-1]`` the
    total size, so ``len(offsets) == num_blocks + 1``.
    """

    def __init__(self, sizes: Iterable[int]):
        self.sizes = tuple(int(s) for s in sizes)
        self.offsets = tuple(int(o) for o in onp.concatenate([[0], onp.cumsum(self.sizes, dtype=onp.int64)]))

    @property
    def num_blocks(self) -> int:
        return len(self.sizes)

    @property
    def total(self) -> int:
        return self.offsets[-1]

    def slice(self, i: int) -> slice:
        return slice(self.offsets[i], self.offsets[i + 1])

    def __getitem__(self, i: int) -> int:
        return self.offsets[i]

    def __len__(self) -> int:
        return len(self.offsets)

    def __eq__(self, other) -> bool:
        return isinstance(other, BlockOffsets) and self.offsets == other.offsets

    def __repr__(self) -> str:
        return f"BlockOffsets({list(self.offsets)})"


class BlockVector:
    """Vector partitioned by ``BlockOffsets``.

    Args:
        offsets (BlockOffsets): Block layout.
        data (np.ndarray, optional): Initial values, zeros by default.
    """

    def __init__(self, offsets: BlockOffsets, data: Optional[Sequence[float]] = None):
        self.offsets = offsets
        self._data = np.zeros(offsets.total)
        if data is not None:
            self.data = data

    @property
    def data(self) -> np.ndarray:
        return self._data

    @data.setter
    def data(self, values) -> None:
        values = np.asarray(values, dtype=np.float64)
        if values.shape != (self.offsets.total,):
            raise InvariantViolationError(
                f"BlockVector expects shape ({self.offsets.total},), got {values.shape}")
        self._data = values

    def get_block(self, i: int) -> np.ndarray:
        return self._data[self.offsets.slice(i)]

    def set_block(self, i: int, values) -> None:
        sl = self.offsets.slice(i)
        self._data = self._data.at[sl].set(values)

    def fill(self, value: float) -> None:
        self._data = np.full(self.offsets.total, value, dtype=np.float64)

    def __len__(self) -> int:
        return self.offsets.total
