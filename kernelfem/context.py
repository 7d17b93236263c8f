"""Communicator context threaded through the solver stack.

Every object that takes part in a collective operation (assembly, norms,
console output) receives a ``CommContext`` at construction instead of
reaching for a global communicator. The default context describes a single
process; passing an mpi4py-style communicator (anything with ``Get_rank``,
``Get_size`` and ``allreduce``) makes reductions collective.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class CommContext:
    """Rank, size and communicator of the running process.

    Attributes:
        comm (Any, optional): Communicator object, ``None`` for serial runs.
        rank (int): Rank of this process.
        size (int): Number of processes.
    """

    comm: Optional[Any] = None
    rank: int = 0
    size: int = 1

    @classmethod
    def from_comm(cls, comm: Any) -> "CommContext":
        return cls(comm=comm, rank=comm.Get_rank(), size=comm.Get_size())

    @property
    def is_root(self) -> bool:
        return self.rank == 0

    def allreduce_sum(self, value: float) -> float:
        """Sum ``value`` over all ranks."""
        if self.comm is None or self.size == 1:
            return value
        return self.comm.allreduce(value)

