"""
Loading and validation of community and trait tables.
"""

from pathlib import Path

import numpy as np
import pandas as pd

from .errors import InputShapeMismatch
from .logger import log_print


def _infer_sep(filepath, sep):
    if sep is not None:
        return sep
    return '\t' if Path(filepath).suffix.lower() in ('.tsv', '.txt', '.tab') else ','


def load_community_matrix(filepath, sep=None, taxa_as_rows=False):
    """
    Load a community matrix from a delimited file.

    Parameters:
    -----------
    filepath : str or Path
        Table with labels in the first column
    sep : str, optional
        Field separator; tab for .tsv/.txt/.tab files, comma otherwise
    taxa_as_rows : bool
        Set when species are rows and sites are columns (the layout of the
        abundance tables produced by the profiling pipelines)

    Returns:
    --------
    pandas.DataFrame
        Community matrix with sites as index, species as columns
    """
    community_df = pd.read_csv(filepath, sep=_infer_sep(filepath, sep), index_col=0)

    if taxa_as_rows:
        community_df = community_df.T

    # Make sure labels are strings for consistent matching with tree tips and traits
    community_df.index = community_df.index.astype(str)
    community_df.columns = community_df.columns.astype(str)

    log_print(f"Loaded community matrix: {community_df.shape[0]} sites, {community_df.shape[1]} species", level="info")
    return community_df


def load_traits(filepath, sep=None):
    """
    Load a species x traits table.

    Parameters:
    -----------
    filepath : str or Path
        Table with species names in the first column
    sep : str, optional
        Field separator, inferred from the extension when omitted

    Returns:
    --------
    pandas.DataFrame
        Traits with species as index
    """
    traits_df = pd.read_csv(filepath, sep=_infer_sep(filepath, sep), index_col=0)
    traits_df.index = traits_df.index.astype(str)

    if traits_df.index.duplicated().any():
        raise InputShapeMismatch(
            f"Trait table has {traits_df.index.duplicated().sum()} duplicated species names"
        )

    log_print(f"Loaded traits: {traits_df.shape[0]} species, {traits_df.shape[1]} traits", level="info")
    return traits_df


def binarize(community_df):
    """Convert abundances to presence/absence (1 where the value is positive)."""
    return (community_df > 0).astype(int)


def check_community_matrix(community_df):
    """
    Validate a community matrix before any permutation work starts.

    Parameters:
    -----------
    community_df : pandas.DataFrame
        Sites as index, species as columns

    Returns:
    --------
    pandas.DataFrame
        The validated matrix

    Raises:
    -------
    InputShapeMismatch
        On missing or negative values, duplicated labels, fewer than two
        sites, or sites without any species
    """
    if community_df.shape[0] < 2:
        raise InputShapeMismatch(f"Community matrix needs at least 2 sites, found {community_df.shape[0]}")

    if community_df.index.duplicated().any():
        dupes = community_df.index[community_df.index.duplicated()].tolist()
        raise InputShapeMismatch(f"Duplicated site labels: {dupes}")

    if community_df.columns.duplicated().any():
        dupes = community_df.columns[community_df.columns.duplicated()].tolist()
        raise InputShapeMismatch(f"Duplicated species labels: {dupes}")

    values = community_df.to_numpy(dtype=float)
    if np.isnan(values).any():
        raise InputShapeMismatch("Community matrix contains missing values")
    if (values < 0).any():
        raise InputShapeMismatch("Community matrix contains negative values")

    empty_sites = community_df.index[values.sum(axis=1) == 0].tolist()
    if empty_sites:
        raise InputShapeMismatch(f"Sites without any species cannot be randomized: {empty_sites}")

    # Absent species stay in the pool; the richness and swap models can draw them
    absent = int((values.sum(axis=0) == 0).sum())
    if absent:
        log_print(f"{absent} species are absent from every site but kept in the species pool", level="info")

    return community_df
