"""
Statistics for comparing observed diversity metrics against a null distribution.
"""

import itertools
import warnings
from dataclasses import dataclass
from enum import Enum

import numpy as np
import pandas as pd
from statsmodels.stats.multitest import multipletests

from .errors import DegenerateStatisticsWarning, InputShapeMismatch
from .logger import log_print


class PValueConvention(str, Enum):
    """How the one-tailed p-value counts null draws above the observed value."""
    ONE_SIDED_PLUS_ONE_CORRECTION = 'plus_one'
    ONE_SIDED_RAW = 'raw'


@dataclass(frozen=True)
class MetricTable:
    """
    Fixed-shape table of metric values.

    ``values`` has one row per metric and one column per site or site pair.
    """
    values: np.ndarray
    metrics: tuple
    labels: tuple

    def __post_init__(self):
        values = np.asarray(self.values, dtype=float)
        object.__setattr__(self, 'values', values)
        object.__setattr__(self, 'metrics', tuple(self.metrics))
        object.__setattr__(self, 'labels', tuple(self.labels))

        expected = (len(self.metrics), len(self.labels))
        if values.shape != expected:
            raise InputShapeMismatch(
                f"Metric values have shape {values.shape}, expected {expected} "
                f"({len(self.metrics)} metrics x {len(self.labels)} columns)"
            )

    @property
    def shape(self):
        return self.values.shape

    def to_frame(self):
        """Return the table with labels as rows and metrics as columns."""
        return pd.DataFrame(self.values.T, index=list(self.labels), columns=list(self.metrics))


@dataclass(frozen=True)
class NullStats:
    """Per-cell summary of the null distribution, aligned with a MetricTable."""
    mean: np.ndarray
    sd: np.ndarray
    p: np.ndarray
    ses: np.ndarray
    degenerate: np.ndarray
    nperm: int
    convention: PValueConvention


def pair_names(labels, sep='-'):
    """
    Names for every unordered pair of labels.

    Pairs follow the condensed order used by scipy's ``pdist`` and R's
    ``dist``: for A, B, C this gives A-B, A-C, B-C.
    """
    return [f"{first}{sep}{second}" for first, second in itertools.combinations(labels, 2)]


def null_p_values(observed, null_samples, convention=PValueConvention.ONE_SIDED_PLUS_ONE_CORRECTION):
    """
    One-tailed p-value of each observed cell against its null draws.

    Parameters:
    -----------
    observed : numpy.ndarray
        Observed values, shape (n_metrics, n_columns)
    null_samples : numpy.ndarray
        Null draws, shape (nperm, n_metrics, n_columns)
    convention : PValueConvention or str
        'plus_one' gives (count(null > observed) + 1) / nperm,
        'raw' gives count(null > observed) / nperm

    Returns:
    --------
    numpy.ndarray
        p-values with the shape of ``observed``; NaN where the observed
        value is undefined
    """
    convention = PValueConvention(convention)
    observed = np.asarray(observed, dtype=float)
    null_samples = np.asarray(null_samples, dtype=float)
    nperm = null_samples.shape[0]

    # NaN comparisons are False, so undefined draws never count as exceedances
    exceed = np.sum(null_samples > observed[np.newaxis, ...], axis=0)

    if convention is PValueConvention.ONE_SIDED_PLUS_ONE_CORRECTION:
        p = (exceed + 1) / nperm
    else:
        p = exceed / nperm
    return np.where(np.isnan(observed), np.nan, p)


def standardized_effect_size(observed, mean, sd):
    """
    SES = (observed - null mean) / null sd.

    Cells whose null sd is zero or undefined get NaN and are reported in the
    returned mask; a DegenerateStatisticsWarning is issued when any exist.

    Returns:
    --------
    tuple of numpy.ndarray
        (ses, degenerate_mask)
    """
    observed = np.asarray(observed, dtype=float)
    mean = np.asarray(mean, dtype=float)
    sd = np.asarray(sd, dtype=float)

    degenerate = ~(sd > 0)
    ses = np.full(observed.shape, np.nan)
    valid = ~degenerate
    ses[valid] = (observed[valid] - mean[valid]) / sd[valid]

    n_degenerate = int(degenerate.sum())
    if n_degenerate:
        message = (f"{n_degenerate} of {degenerate.size} cells have zero or undefined "
                   f"null standard deviation; SES set to NaN")
        log_print(message, level="warning")
        warnings.warn(message, DegenerateStatisticsWarning, stacklevel=2)

    return ses, degenerate


def aggregate_null(observed, null_samples, convention=PValueConvention.ONE_SIDED_PLUS_ONE_CORRECTION):
    """
    Summarize the null distribution for every (metric, column) cell.

    Parameters:
    -----------
    observed : MetricTable or numpy.ndarray
        Observed values, shape (n_metrics, n_columns)
    null_samples : numpy.ndarray
        Null draws, shape (nperm, n_metrics, n_columns). Order along the
        first axis does not matter.
    convention : PValueConvention or str
        p-value convention, see ``null_p_values``

    Returns:
    --------
    NullStats
        Mean, sample sd (ddof=1), p-value and SES per cell
    """
    convention = PValueConvention(convention)
    observed_values = observed.values if isinstance(observed, MetricTable) else np.asarray(observed, dtype=float)
    null_samples = np.asarray(null_samples, dtype=float)

    if null_samples.ndim != 3 or null_samples.shape[1:] != observed_values.shape:
        raise ValueError(
            f"Null samples have shape {null_samples.shape}, expected "
            f"(nperm, {observed_values.shape[0]}, {observed_values.shape[1]})"
        )
    nperm = null_samples.shape[0]
    if nperm < 2:
        raise ValueError(f"At least 2 null samples are needed, got {nperm}")

    # Cells where every draw is NaN stay NaN without RuntimeWarnings
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', category=RuntimeWarning)
        mean = np.nanmean(null_samples, axis=0)
        sd = np.nanstd(null_samples, axis=0, ddof=1)

    p = null_p_values(observed_values, null_samples, convention)
    ses, degenerate = standardized_effect_size(observed_values, mean, sd)

    return NullStats(mean=mean, sd=sd, p=p, ses=ses, degenerate=degenerate,
                     nperm=nperm, convention=convention)


def assemble_results(observed, null_stats, include_null_summary=False, fdr=False):
    """
    Build the final report.

    Parameters:
    -----------
    observed : MetricTable
        Observed values with metric names and row labels
    null_stats : NullStats
        Output of ``aggregate_null`` for the same table
    include_null_summary : bool
        Add ``{metric}_null_mean`` and ``{metric}_null_sd`` columns
    fdr : bool
        Add Benjamini-Hochberg adjusted p-values as ``{metric}_p_adj``

    Returns:
    --------
    pandas.DataFrame
        One row per pair or site, columns ``{metric}_observed``,
        ``{metric}_SES`` and ``{metric}_p`` for each metric
    """
    columns = {}
    for i, metric in enumerate(observed.metrics):
        columns[f'{metric}_observed'] = observed.values[i]
        columns[f'{metric}_SES'] = null_stats.ses[i]
        columns[f'{metric}_p'] = null_stats.p[i]
        if include_null_summary:
            columns[f'{metric}_null_mean'] = null_stats.mean[i]
            columns[f'{metric}_null_sd'] = null_stats.sd[i]
        if fdr:
            columns[f'{metric}_p_adj'] = _adjust_p_values(null_stats.p[i])

    return pd.DataFrame(columns, index=pd.Index(list(observed.labels), name='id'))


def _adjust_p_values(p_values):
    # p can exceed 1 under the plus-one convention; multipletests needs [0, 1]
    p_values = np.clip(np.asarray(p_values, dtype=float), 0, 1)
    adjusted = np.full(p_values.shape, np.nan)
    finite = np.isfinite(p_values)
    if finite.sum() > 0:
        adjusted[finite] = multipletests(p_values[finite], method='fdr_bh')[1]
    return adjusted


def write_results(results_df, output_file, sep='\t'):
    """Write the report to a delimited text file."""
    results_df.to_csv(output_file, sep=sep)
    log_print(f"Results saved to {output_file}", level="info")
    return output_file


def write_summary_report(results_df, metrics, parameters, output_file, alpha=0.05):
    """
    Write a markdown summary of an SES run.

    Parameters:
    -----------
    results_df : pandas.DataFrame
        Report from ``assemble_results``
    metrics : list of str
        Metrics in the report
    parameters : dict
        Analysis parameters listed at the top of the summary
    output_file : str or Path
        Destination file
    alpha : float
        Significance threshold for the counts in the table
    """
    with open(output_file, 'w') as f:
        f.write("# Null Model SES Results Summary\n\n")
        f.write("## Analysis Parameters\n")
        for name, value in parameters.items():
            f.write(f"- **{name}:** {value}\n")
        f.write(f"- **Rows:** {len(results_df)}\n\n")

        f.write("## Results Table\n\n")
        f.write(f"| Metric | Mean SES | SES > 0 | SES < 0 | p < {alpha} | SES undefined |\n")
        f.write("|--------|----------|---------|---------|----------|---------------|\n")

        for metric in metrics:
            ses = results_df[f'{metric}_SES']
            p = results_df[f'{metric}_p']
            mean_ses = f"{ses.mean():.3f}" if ses.notna().any() else "NA"
            f.write(f"| {metric} | {mean_ses} | {int((ses > 0).sum())} | {int((ses < 0).sum())} "
                    f"| {int((p < alpha).sum())} | {int(ses.isna().sum())} |\n")

    log_print(f"Summary report saved to {output_file}", level="info")
    return output_file
