"""Sparse linear algebra helpers for assembled systems."""

import jax.numpy as np
from jax.experimental.sparse import BCOO


def jax_get_diagonal(A: BCOO) -> np.ndarray:
    """Extract diagonal elements from BCOO sparse matrix.

    Duplicate diagonal entries are summed.

    Args:
        A (BCOO): Sparse matrix in BCOO format.

    Returns:
        np.ndarray: Diagonal elements.
    """
    is_diagonal = A.indices[:, 0] == A.indices[:, 1]
    diagonal = np.zeros(A.shape[0])
    diagonal = diagonal.at[A.indices[:, 0]].add(
        np.where(is_diagonal, A.data, 0.0)
    )
    return diagonal


def dof_mask(size: int, dofs: np.ndarray) -> np.ndarray:
    """Boolean mask of length ``size`` that is True at ``dofs``."""
    return np.zeros(size, dtype=bool).at[dofs].set(True)


def eliminate_rows_cols(A: BCOO, dofs: np.ndarray) -> BCOO:
    """Zero out rows AND columns ``dofs`` of a square matrix and put 1.0 on their diagonal.

    The sparsity structure is kept; eliminated entries are stored as zeros.

    Args:
        A (BCOO): Input sparse matrix.
        dofs (np.ndarray): Indices of the rows/columns to eliminate.

    Returns:
        BCOO: Matrix with the given rows and columns replaced by identity rows.
    """
    if dofs.shape[0] == 0:
        return A
    mask = dof_mask(A.shape[0], dofs)
    constrained = mask[A.indices[:, 0]] | mask[A.indices[:, 1]]
    modified_data = np.where(constrained, 0.0, A.data)

    diagonal_indices = np.column_stack([dofs, dofs]).astype(A.indices.dtype)
    diagonal_data = np.ones(dofs.shape[0])

    all_indices = np.vstack([A.indices, diagonal_indices])
    all_data = np.concatenate([modified_data, diagonal_data])
    return BCOO((all_data, all_indices), shape=A.shape)


def lift_essential_values(A: BCOO, b: np.ndarray, dofs: np.ndarray, values: np.ndarray) -> np.ndarray:
    """Move known essential values to the right-hand side.

    Returns ``b - A g`` with ``g`` equal to ``values`` on ``dofs`` and zero
    elsewhere, then overwrites ``b[dofs]`` with ``values``, which matches the
    identity rows produced by ``eliminate_rows_cols``.
    """
    if dofs.shape[0] == 0:
        return b
    g = np.zeros_like(b).at[dofs].set(values)
    b = b - A @ g
    return b.at[dofs].set(values)
