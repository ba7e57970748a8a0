"""
End-to-end null-model tests: observed metrics, null samples, SES table.
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd

from .functional import FUNCTIONAL_METRICS, build_functional_space, functional_diversity
from .logger import log_print
from .permutation import run_permutations
from .phylo import PHYLO_BETA_METRICS, build_branch_data, phylo_beta_pair
from .stats import MetricTable, NullStats, aggregate_null, assemble_results, pair_names
from .utils import binarize, check_community_matrix


@dataclass
class NullModelResult:
    observed: MetricTable
    null_stats: NullStats
    table: pd.DataFrame
    null_samples: np.ndarray


def run_null_model_test(matrix, aux, evaluator, metrics, labels, nperm=1000, n_workers=4,
                        null_model='richness', iterations=1000, seed=None,
                        p_value_convention='plus_one', evaluator_kwargs=None,
                        include_null_summary=False, fdr=False):
    """
    Compare observed metrics against their null distribution.

    Parameters:
    -----------
    matrix : numpy.ndarray
        Community matrix, sites as rows, species as columns
    aux : object
        Read-only data for the evaluator (tree branches, trait space, ...)
    evaluator : callable
        ``evaluator(matrix, aux, **evaluator_kwargs)`` returning an array of
        shape (len(metrics), len(labels))
    metrics : list of str
        Metric names, one per evaluator output row
    labels : list of str
        Site or pair names, one per evaluator output column
    nperm, n_workers, null_model, iterations, seed
        Passed to ``run_permutations``
    p_value_convention : str
        'plus_one' or 'raw', see ``null_p_values``
    include_null_summary, fdr : bool
        Extra report columns, see ``assemble_results``

    Returns:
    --------
    NullModelResult
    """
    evaluator_kwargs = dict(evaluator_kwargs or {})
    matrix = np.asarray(matrix)

    # A shape error here is raised before any permutation work
    observed = MetricTable(
        values=np.asarray(evaluator(matrix, aux, **evaluator_kwargs), dtype=float),
        metrics=metrics,
        labels=labels,
    )
    log_print(f"Observed metrics computed: {len(observed.metrics)} metrics x {len(observed.labels)} columns", level="info")

    null_samples = run_permutations(
        matrix, aux, evaluator,
        nperm=nperm,
        n_workers=n_workers,
        null_model=null_model,
        iterations=iterations,
        seed=seed,
        expected_shape=observed.shape,
        evaluator_kwargs=evaluator_kwargs,
    )

    null_stats = aggregate_null(observed, null_samples, convention=p_value_convention)
    table = assemble_results(observed, null_stats, include_null_summary=include_null_summary, fdr=fdr)

    return NullModelResult(observed=observed, null_stats=null_stats, table=table, null_samples=null_samples)


def _permutation_kwargs(config):
    perm = config['permutations']
    output = config['output']
    return {
        'nperm': perm['nperm'],
        'n_workers': perm['n_workers'],
        'null_model': perm['null_model'],
        'iterations': perm['iterations'],
        'seed': perm['seed'],
        'include_null_summary': output['include_null_summary'],
        'fdr': output['fdr'],
    }


def run_phylo_beta_ses(community_df, tree, config):
    """
    SES of phylogenetic turnover, nestedness and total beta diversity for
    every pair of sites.

    Parameters:
    -----------
    community_df : pandas.DataFrame
        Sites as index, species as columns; binarized before use
    tree : skbio.TreeNode
        Rooted phylogeny whose tips include every species
    config : dict
        Output of ``load_config``

    Returns:
    --------
    NullModelResult
    """
    community_df = binarize(check_community_matrix(community_df))
    branch_data = build_branch_data(tree, community_df.columns)
    labels = pair_names(community_df.index, sep=config['phylo_beta']['pair_separator'])

    log_print(f"Phylogenetic beta diversity for {len(labels)} site pairs", level="info")
    return run_null_model_test(
        community_df.to_numpy(),
        branch_data,
        phylo_beta_pair,
        metrics=PHYLO_BETA_METRICS,
        labels=labels,
        p_value_convention=config['phylo_beta']['p_value_convention'],
        **_permutation_kwargs(config)
    )


def run_functional_ses(community_df, traits_df, config):
    """
    SES of functional richness and divergence for every site.

    Parameters:
    -----------
    community_df : pandas.DataFrame
        Sites as index, species as columns; binarized before use
    traits_df : pandas.DataFrame
        Species as index, traits as columns
    config : dict
        Output of ``load_config``

    Returns:
    --------
    NullModelResult
    """
    functional_config = config['functional']
    community_df = binarize(check_community_matrix(community_df))

    space = build_functional_space(
        traits_df,
        community_df.columns,
        n_axes=functional_config['n_axes'],
        correction=functional_config['correction'],
        min_richness=int(community_df.sum(axis=1).min()),
    )

    log_print(f"Functional diversity for {community_df.shape[0]} sites", level="info")
    return run_null_model_test(
        community_df.to_numpy(),
        space,
        functional_diversity,
        metrics=FUNCTIONAL_METRICS,
        labels=[str(site) for site in community_df.index],
        p_value_convention=functional_config['p_value_convention'],
        evaluator_kwargs={'standardize_fric': functional_config['standardize_fric']},
        **_permutation_kwargs(config)
    )
