"""
Null-model randomization of site x species community matrices.
"""

from enum import Enum

import numpy as np


class NullModel(str, Enum):
    """Randomization schemes, named as in picante's randomizeMatrix."""
    RICHNESS = 'richness'
    FREQUENCY = 'frequency'
    INDEPENDENT_SWAP = 'independentswap'


def _rng_from_state(random_state):
    if isinstance(random_state, np.random.Generator):
        return random_state
    return np.random.default_rng(random_state)


def randomize_matrix(matrix, null_model='richness', iterations=1000, rng=None):
    """
    Randomize a community matrix under a null model.

    Parameters:
    -----------
    matrix : numpy.ndarray
        Sites as rows, species as columns
    null_model : str or NullModel
        'richness' shuffles species within each site (keeps site richness),
        'frequency' shuffles sites within each species (keeps species
        frequency), 'independentswap' applies checkerboard swaps (keeps both)
    iterations : int
        Number of swap attempts for 'independentswap'; the shuffling models
        ignore it
    rng : numpy.random.Generator or int, optional
        Random source

    Returns:
    --------
    numpy.ndarray
        Randomized copy with the same shape as the input
    """
    model = NullModel(null_model)
    rng = _rng_from_state(rng)
    matrix = np.asarray(matrix)

    if matrix.ndim != 2:
        raise ValueError(f"Community matrix must be 2-dimensional, got shape {matrix.shape}")

    if model is NullModel.RICHNESS:
        return rng.permuted(matrix, axis=1)
    if model is NullModel.FREQUENCY:
        return rng.permuted(matrix, axis=0)
    return independent_swap(matrix, iterations=iterations, rng=rng)


def independent_swap(matrix, iterations=1000, rng=None):
    """
    Independent swap algorithm (Gotelli 2000).

    Each iteration picks two sites and two species; when the 2x2 submatrix
    is a checkerboard of presences the values are swapped along the
    diagonal, which leaves all row and column totals unchanged.
    """
    rng = _rng_from_state(rng)
    result = np.array(matrix, copy=True)
    n_rows, n_cols = result.shape

    if n_rows < 2 or n_cols < 2:
        return result

    present = result > 0
    for _ in range(iterations):
        r1, r2 = rng.choice(n_rows, size=2, replace=False)
        c1, c2 = rng.choice(n_cols, size=2, replace=False)

        checkerboard = (
            (present[r1, c1] and present[r2, c2] and not present[r1, c2] and not present[r2, c1])
            or (present[r1, c2] and present[r2, c1] and not present[r1, c1] and not present[r2, c2])
        )
        if not checkerboard:
            continue

        rows = np.ix_([r1, r2], [c1, c2])
        swapped = np.ix_([r1, r2], [c2, c1])
        result[rows] = result[swapped]
        present[rows] = present[swapped]

    return result
