"""
Linear-Algebra Primitives

Dense helpers shared by the model input layer and the sampler:

Host-side (NumPy, used once while building the model input):
    cbind: Column-concatenate a per-outcome collection of matrices
    create_fast_ind: Last row of each subject's contiguous block of rows
    upper_part_indices: Strictly upper-triangular (row, col) pairs, column-major
    cov2cor: Covariance matrix to correlation matrix

Device-side (JAX, traced inside the sampler):
    chol_upper: Upper Cholesky factor U with A = U'U
    group_sum: Per-subject sums of row values
    fast_group_sum: Per-subject sums over contiguous row blocks, via the fast index
    corr_chol_from_free: Rebuild the correlation Cholesky factor from its free entries
    free_from_corr_chol: Extract the free entries of a correlation Cholesky factor
    reconstruct_correlation / reconstruct_covariance: R = L'L, D = diag(sds) R diag(sds)
    is_valid_correlation: Structural check of a reconstructed correlation matrix
"""

from typing import Sequence, Tuple

import numpy as np
import jax.numpy as jnp


# Tolerance for the unit diagonal of a reconstructed correlation matrix
CORR_DIAG_TOL = 1e-8


# ============================================================================
# HOST-SIDE HELPERS
# ============================================================================

def cbind(matrices: Sequence[np.ndarray], n_rows: int = 0) -> np.ndarray:
    """
    Column-concatenate a collection of matrices indexed by outcome.

    Args:
        matrices: Sequence of 2-D arrays sharing the same row count
        n_rows: Row count to use when the collection is empty

    Returns:
        (n_rows, sum of columns) array
    """
    mats = [np.atleast_2d(np.asarray(m, dtype=np.float64)) for m in matrices]
    if not mats:
        return np.zeros((n_rows, 0))
    row_counts = {m.shape[0] for m in mats}
    if len(row_counts) != 1:
        raise ValueError(f"Cannot column-bind matrices with row counts {sorted(row_counts)}")
    return np.concatenate(mats, axis=1)


def create_fast_ind(group_ids: np.ndarray) -> np.ndarray:
    """
    Index of the last row of each group in a sorted grouping vector.

    For group_ids = [0, 0, 0, 1, 1, 2] returns [2, 4, 5]. Rows of subject i
    are then fast_ind[i-1]+1 .. fast_ind[i].

    Args:
        group_ids: 0-based, non-decreasing group index per row

    Returns:
        Integer array with one entry per distinct group
    """
    group_ids = np.asarray(group_ids)
    if group_ids.size == 0:
        return np.zeros(0, dtype=np.int64)
    change = np.flatnonzero(np.diff(group_ids) != 0)
    return np.append(change, group_ids.size - 1).astype(np.int64)


def upper_part_indices(q: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Strictly upper-triangular positions of a q x q matrix in column-major order.

    For q = 3 the order is (0,1), (0,2), (1,2).

    Returns:
        (rows, cols) integer arrays of length q*(q-1)/2
    """
    pairs = [(r, c) for c in range(q) for r in range(c)]
    if not pairs:
        return np.zeros(0, dtype=np.int32), np.zeros(0, dtype=np.int32)
    rows, cols = zip(*pairs)
    return np.array(rows, dtype=np.int32), np.array(cols, dtype=np.int32)


def cov2cor(cov: np.ndarray) -> np.ndarray:
    """Convert a covariance matrix to the corresponding correlation matrix."""
    cov = np.asarray(cov, dtype=np.float64)
    sds = np.sqrt(np.diag(cov))
    corr = cov / np.outer(sds, sds)
    np.fill_diagonal(corr, 1.0)
    return corr


# ============================================================================
# DEVICE-SIDE HELPERS
# ============================================================================

def chol_upper(a: jnp.ndarray) -> jnp.ndarray:
    """Upper-triangular Cholesky factor U such that a = U'U."""
    return jnp.linalg.cholesky(a).T


def group_sum(values: jnp.ndarray, group_ids: jnp.ndarray, num_groups: int) -> jnp.ndarray:
    """
    Sum row values within groups.

    Args:
        values: (n_rows,) values
        group_ids: (n_rows,) 0-based group index per row
        num_groups: Number of groups (static)

    Returns:
        (num_groups,) group sums, 0 for groups without rows
    """
    return jnp.zeros(num_groups, dtype=values.dtype).at[group_ids].add(values)


def fast_group_sum(values: jnp.ndarray, fast_ind: jnp.ndarray) -> jnp.ndarray:
    """
    Sum row values over contiguous per-subject blocks.

    fast_ind holds the last row of each subject (see create_fast_ind), so
    every subject must own at least one row. Block sums are differences of
    the running total taken at those rows.
    """
    totals = jnp.cumsum(values)[fast_ind]
    return jnp.diff(totals, prepend=jnp.zeros(1, dtype=totals.dtype))


def corr_chol_from_free(free: jnp.ndarray, q: int) -> jnp.ndarray:
    """
    Build the upper Cholesky factor of a correlation matrix from its free entries.

    The free entries fill the strictly upper triangle (column-major order);
    each diagonal entry is set to sqrt(1 - sum of squares above it) so that
    every column has unit norm and R = L'L has an exact unit diagonal. When a
    column's off-diagonal norm reaches 1 the diagonal is NaN, which the
    sampler treats as an automatic rejection.

    Args:
        free: (q*(q-1)/2,) strictly upper-triangular entries
        q: Dimension of the correlation matrix (static)

    Returns:
        (q, q) upper-triangular factor
    """
    rows, cols = upper_part_indices(q)
    L = jnp.zeros((q, q), dtype=free.dtype).at[rows, cols].set(free)
    off_diag_ss = jnp.sum(L ** 2, axis=0)
    diag = jnp.sqrt(1.0 - off_diag_ss)
    return L + jnp.diag(diag)


def free_from_corr_chol(L: jnp.ndarray) -> jnp.ndarray:
    """Strictly upper-triangular entries of L, column-major."""
    rows, cols = upper_part_indices(L.shape[0])
    return L[rows, cols]


def reconstruct_correlation(L: jnp.ndarray) -> jnp.ndarray:
    """R = L'L."""
    return L.T @ L


def reconstruct_covariance(sds: jnp.ndarray, L: jnp.ndarray) -> jnp.ndarray:
    """D = diag(sds) L'L diag(sds)."""
    chol_D = L * sds[None, :]
    return chol_D.T @ chol_D


def is_valid_correlation(R: jnp.ndarray) -> jnp.ndarray:
    """
    Check that R is a valid correlation matrix.

    Valid means: finite, symmetric, unit diagonal, off-diagonal in (-1, 1),
    and positive-definite (its Cholesky factorisation succeeds).

    Returns:
        Scalar boolean array
    """
    q = R.shape[0]
    finite = jnp.all(jnp.isfinite(R))
    safe_R = jnp.where(finite, R, jnp.eye(q, dtype=R.dtype))
    unit_diag = jnp.all(jnp.abs(jnp.diag(safe_R) - 1.0) < CORR_DIAG_TOL)
    off_diag = jnp.where(jnp.eye(q, dtype=bool), 0.0, safe_R)
    bounded = jnp.all(jnp.abs(off_diag) < 1.0)
    symmetric = jnp.allclose(safe_R, safe_R.T)
    chol = jnp.linalg.cholesky(safe_R)
    positive_definite = jnp.all(jnp.isfinite(chol))
    return finite & unit_diag & bounded & symmetric & positive_definite
