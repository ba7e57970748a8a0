"""
Visualization functions for null-model SES results.
"""

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns


def plot_ses_heatmap(results_df, metrics, max_rows=50):
    """
    Create a heatmap of standardized effect sizes.

    Parameters:
    -----------
    results_df : pandas.DataFrame
        Report from ``assemble_results`` with ``{metric}_SES`` columns
    metrics : list of str
        Metrics to show, one heatmap column each
    max_rows : int
        Only the first ``max_rows`` sites or pairs are drawn

    Returns:
    --------
    matplotlib.figure.Figure
        Heatmap figure
    """
    ses_columns = [f'{metric}_SES' for metric in metrics]
    missing = [col for col in ses_columns if col not in results_df.columns]
    if missing:
        raise ValueError(f"SES columns not found in results: {missing}")

    plot_data = results_df[ses_columns].iloc[:max_rows]
    plot_data.columns = list(metrics)

    # Symmetric color scale centered on zero
    limit = np.nanmax(np.abs(plot_data.to_numpy())) if plot_data.notna().any().any() else 1.0
    limit = max(limit, 1.96)

    fig, ax = plt.subplots(figsize=(2 + 1.2 * len(metrics), max(4, 0.3 * len(plot_data))))
    sns.heatmap(plot_data, cmap='coolwarm', center=0, vmin=-limit, vmax=limit,
                cbar_kws={'label': 'SES'}, ax=ax)

    ax.set_title('Standardized effect size vs. null model')
    ax.set_xlabel('Metric')
    ax.set_ylabel(results_df.index.name or '')

    plt.tight_layout()

    return fig


def plot_null_distribution(null_samples, observed, metric_index, column_index, metric_name=None, label=None):
    """
    Create a histogram of one cell's null distribution with the observed value.

    Parameters:
    -----------
    null_samples : numpy.ndarray
        Null draws, shape (nperm, n_metrics, n_columns)
    observed : MetricTable
        Observed values
    metric_index, column_index : int
        Cell to plot
    metric_name, label : str, optional
        Titles; taken from ``observed`` when omitted

    Returns:
    --------
    matplotlib.figure.Figure
        Histogram figure
    """
    metric_name = metric_name or observed.metrics[metric_index]
    label = label or observed.labels[column_index]

    values = pd.Series(np.asarray(null_samples)[:, metric_index, column_index]).dropna()
    observed_value = observed.values[metric_index, column_index]

    fig, ax = plt.subplots(figsize=(8, 5))
    sns.histplot(values, bins=30, color='grey', ax=ax)
    ax.axvline(observed_value, color='red', linestyle='--', label=f'Observed ({observed_value:.3g})')

    ax.set_title(f'Null distribution of {metric_name} for {label}')
    ax.set_xlabel(metric_name)
    ax.set_ylabel('Permutations')
    ax.legend()

    plt.tight_layout()

    return fig
