"""
Functional richness (FRic) and functional divergence (FDiv) of communities.

Species are placed in a trait space built from a Gower dissimilarity and a
principal coordinate analysis, following the distance-based framework of
Laliberté & Legendre (2010). FRic is the convex hull volume of the species
present in a site (Cornwell et al. 2006); FDiv is the divergence index of
Villéger et al. (2008).
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd
from scipy.spatial import ConvexHull, QhullError
from skbio import DistanceMatrix
from skbio.stats.ordination import pcoa

from .errors import InputShapeMismatch
from .logger import log_print

FUNCTIONAL_METRICS = ('FRic', 'FDiv')


@dataclass(frozen=True)
class FunctionalSpace:
    """PCoA coordinates of every species in the pool."""
    species: tuple
    coordinates: np.ndarray
    n_axes: int
    pool_fric: float


def gower_distance(traits_df):
    """
    Gower dissimilarity between the rows of a trait table.

    Numeric traits contribute |x_i - x_j| / range, other traits contribute
    0 when equal and 1 otherwise. Missing values drop the trait for that
    pair; the distance is the mean over the remaining traits.

    Parameters:
    -----------
    traits_df : pandas.DataFrame
        Species as index, traits as columns

    Returns:
    --------
    numpy.ndarray
        Square symmetric distance matrix with values in [0, 1]
    """
    n = traits_df.shape[0]
    total = np.zeros((n, n), dtype=float)
    weight = np.zeros((n, n), dtype=float)

    for col in traits_df.columns:
        values = traits_df[col]
        missing = values.isna().to_numpy()
        if missing.all():
            continue

        if pd.api.types.is_numeric_dtype(values) and not pd.api.types.is_bool_dtype(values):
            x = values.to_numpy(dtype=float)
            trait_range = np.nanmax(x) - np.nanmin(x)
            if trait_range > 0:
                diff = np.abs(x[:, None] - x[None, :]) / trait_range
            else:
                diff = np.zeros((n, n), dtype=float)
        else:
            x = values.astype(str).to_numpy()
            diff = (x[:, None] != x[None, :]).astype(float)

        valid = ~missing[:, None] & ~missing[None, :]
        total += np.where(valid, diff, 0.0)
        weight += valid

    if (weight == 0).any():
        raise InputShapeMismatch("Some species pairs share no non-missing trait; Gower distance is undefined")

    distances = total / weight
    np.fill_diagonal(distances, 0.0)
    return distances


def build_functional_space(traits_df, species, n_axes='max', correction='sqrt', min_richness=None):
    """
    Build the trait space used by ``functional_diversity``.

    Parameters:
    -----------
    traits_df : pandas.DataFrame
        Species as index, traits as columns; extra species are ignored
    species : list of str
        Community matrix columns, in order
    n_axes : 'max' or int
        Number of PCoA axes kept. 'max' keeps as many positive axes as the
        poorest site allows (its richness minus one)
    correction : str
        'sqrt' takes the square root of the Gower distances before the
        PCoA, 'none' uses them as is
    min_richness : int, optional
        Lowest number of species in any site; required for n_axes='max'

    Returns:
    --------
    FunctionalSpace

    Raises:
    -------
    InputShapeMismatch
        If a species has no trait row or the space has no usable axis
    """
    species = [str(s) for s in species]
    missing = [s for s in species if s not in traits_df.index]
    if missing:
        shown = ', '.join(missing[:10])
        raise InputShapeMismatch(f"{len(missing)} community species have no trait values: {shown}")

    extra = len(traits_df.index) - len(species)
    if extra > 0:
        log_print(f"Ignoring {extra} trait rows for species outside the community", level="info")

    traits = traits_df.loc[species]
    distances = gower_distance(traits)
    if correction == 'sqrt':
        distances = np.sqrt(distances)
    elif correction != 'none':
        raise ValueError(f"Unknown correction: {correction}. Use 'sqrt' or 'none'.")

    ordination = pcoa(DistanceMatrix(distances, ids=species))
    eigvals = np.asarray(ordination.eigvals, dtype=float)
    positive = eigvals > eigvals.max() * 1e-8
    coordinates = ordination.samples.to_numpy()[:, positive]
    n_positive = coordinates.shape[1]

    if n_axes == 'max':
        if min_richness is None:
            raise ValueError("min_richness is required when n_axes='max'")
        chosen = min(n_positive, int(min_richness) - 1)
    else:
        chosen = min(int(n_axes), n_positive)
        if chosen < int(n_axes):
            log_print(f"Only {n_positive} positive PCoA axes; using {chosen} instead of {n_axes}", level="warning")

    if chosen < 1:
        raise InputShapeMismatch(
            "Trait space has no usable axis: every site needs at least 2 species "
            "and the traits must separate at least 2 species"
        )

    coordinates = coordinates[:, :chosen]
    log_print(f"Functional space: {len(species)} species on {chosen} PCoA axes", level="info")

    pool_fric, _ = _fric_fdiv(coordinates)
    return FunctionalSpace(species=tuple(species), coordinates=coordinates,
                           n_axes=chosen, pool_fric=pool_fric)


def _fric_fdiv(points):
    """FRic and FDiv of one community given its species coordinates."""
    n_species, n_axes = points.shape
    if n_species <= n_axes:
        return np.nan, np.nan

    if n_axes == 1:
        x = points[:, 0]
        fric = float(np.ptp(x))
        vertices = np.array([np.argmin(x), np.argmax(x)])
    else:
        try:
            hull = ConvexHull(points)
        except QhullError as e:
            # Flat or duplicated point sets have no volume
            log_print(f"Convex hull undefined for {n_species} species: {e}", level="debug")
            return np.nan, np.nan
        fric = float(hull.volume)
        vertices = hull.vertices

    centroid = points[vertices].mean(axis=0)
    dist_centroid = np.sqrt(((points - centroid) ** 2).sum(axis=1))

    weights = np.full(n_species, 1.0 / n_species)
    mean_dist = np.sum(weights * dist_centroid)
    deviation = dist_centroid - mean_dist
    delta_d = np.sum(weights * deviation)
    delta_abs = np.sum(weights * np.abs(deviation))

    with np.errstate(divide='ignore', invalid='ignore'):
        fdiv = (delta_d + mean_dist) / (delta_abs + mean_dist)

    return fric, float(fdiv)


def functional_diversity(matrix, space, standardize_fric=False):
    """
    FRic and FDiv of every site.

    Parameters:
    -----------
    matrix : numpy.ndarray
        Presence/absence matrix, sites as rows, species in the order of
        ``space.species``
    space : FunctionalSpace
        Output of ``build_functional_space``
    standardize_fric : bool
        Express FRic as a fraction of the whole species pool's FRic

    Returns:
    --------
    numpy.ndarray
        Shape (2, n_sites); rows are FRic and FDiv. Sites with too few
        species for the trait space get NaN.
    """
    matrix = np.asarray(matrix)
    if matrix.shape[1] != space.coordinates.shape[0]:
        raise InputShapeMismatch(
            f"Community matrix has {matrix.shape[1]} species, trait space has {space.coordinates.shape[0]}"
        )

    result = np.full((2, matrix.shape[0]), np.nan)
    for site in range(matrix.shape[0]):
        present = matrix[site] > 0
        result[0, site], result[1, site] = _fric_fdiv(space.coordinates[present])

    if standardize_fric:
        with np.errstate(divide='ignore', invalid='ignore'):
            result[0] = result[0] / space.pool_fric

    return result
