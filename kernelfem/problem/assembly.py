"""Global assembly of element contributions.

Element matrices and vectors computed by the integrators are scattered into
global JAX BCOO matrices and dense vectors here, and per-variable blocks are
stitched into the global block operator.

Key Classes:
    AssemblyManager: Static scatter and block assembly routines

Example:
    >>> from kernelfem.problem.assembly import AssemblyManager
    >>> A = AssemblyManager.assemble_matrix(cell_mats, fe.cell_dofs, fe.cell_dofs,
    ...                                     (fe.num_total_dofs, fe.num_total_dofs))
"""

from typing import Dict, Tuple

import jax.numpy as np
from jax.experimental.sparse import BCOO

from kernelfem import logger
from kernelfem.errors import InvariantViolationError
from kernelfem.problem.blocks import BlockOffsets


class AssemblyManager:
    """Scatter routines from element level to global level.

    All methods are static; the class only groups them, as the form and
    equation-system classes call them independently.
    """

    @staticmethod
    def empty_matrix(shape: Tuple[int, int]) -> BCOO:
        return BCOO((np.zeros(0), np.zeros((0, 2), dtype=np.int32)), shape=shape)

    @staticmethod
    def assemble_matrix(cell_mats: np.ndarray, test_dofs: np.ndarray, trial_dofs: np.ndarray,
                        shape: Tuple[int, int]) -> BCOO:
        """Scatter element matrices into a sparse matrix.

        Args:
            cell_mats (np.ndarray): Element matrices with shape
                (num_cells, num_test_dofs_per_cell, num_trial_dofs_per_cell).
            test_dofs (np.ndarray): (num_cells, num_test_dofs_per_cell) global row indices.
            trial_dofs (np.ndarray): (num_cells, num_trial_dofs_per_cell) global column indices.
            shape (tuple): Global matrix shape.

        Returns:
            BCOO: Matrix with duplicate entries summed.
        """
        num_cells, nt, ns = cell_mats.shape
        I = np.broadcast_to(test_dofs[:, :, None], (num_cells, nt, ns)).reshape(-1)
        J = np.broadcast_to(trial_dofs[:, None, :], (num_cells, nt, ns)).reshape(-1)
        V = cell_mats.reshape(-1)
        logger.debug(f"Creating sparse matrix {shape} from {V.shape[0]} element entries")
        indices = np.column_stack([I, J]).astype(np.int32)
        return BCOO((V, indices), shape=shape).sum_duplicates()

    @staticmethod
    def assemble_vector(cell_vecs: np.ndarray, dofs: np.ndarray, size: int) -> np.ndarray:
        """Scatter-add element vectors of shape (num_cells, num_dofs_per_cell)."""
        return np.zeros(size).at[dofs.reshape(-1)].add(cell_vecs.reshape(-1))

    @staticmethod
    def add_matrices(a: BCOO, b: BCOO) -> BCOO:
        if a.shape != b.shape:
            raise InvariantViolationError(f"Cannot add matrices of shapes {a.shape} and {b.shape}")
        data = np.concatenate([a.data, b.data])
        indices = np.vstack([a.indices, b.indices.astype(a.indices.dtype)])
        return BCOO((data, indices), shape=a.shape).sum_duplicates()

    @staticmethod
    def assemble_block_operator(blocks: Dict[Tuple[int, int], BCOO],
                                row_offsets: BlockOffsets,
                                col_offsets: BlockOffsets) -> BCOO:
        """Stitch sparse blocks into one global matrix.

        Missing ``(i, j)`` entries are structurally zero blocks, so a block row
        without any contribution still has the right size.
        """
        shape = (row_offsets.total, col_offsets.total)
        data, indices = [], []
        for (i, j) in sorted(blocks):
            block = blocks[(i, j)]
            expected = (row_offsets.sizes[i], col_offsets.sizes[j])
            if block.shape != expected:
                raise InvariantViolationError(
                    f"Block ({i}, {j}) has shape {block.shape}, offsets expect {expected}")
            shift = np.array([row_offsets[i], col_offsets[j]], dtype=np.int32)
            indices.append(block.indices.astype(np.int32) + shift[None, :])
            data.append(block.data)
        if not data:
            return AssemblyManager.empty_matrix(shape)
        return BCOO((np.concatenate(data), np.vstack(indices)), shape=shape)
