import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from nullmodel_tools import MetricTable, plot_null_distribution, plot_ses_heatmap


def test_ses_heatmap():
    results_df = pd.DataFrame(
        {'SOR_SES': [0.5, -2.5, np.nan], 'SIM_SES': [1.0, 0.0, 3.1], 'SOR_p': [0.2, 0.01, 0.5]},
        index=pd.Index(['a-b', 'a-c', 'b-c'], name='id'),
    )

    fig = plot_ses_heatmap(results_df, ['SOR', 'SIM'])

    assert fig.axes[0].get_ylabel() == 'id'
    plt.close(fig)


def test_ses_heatmap_requires_ses_columns():
    results_df = pd.DataFrame({'SOR_observed': [0.5]}, index=['a-b'])

    with pytest.raises(ValueError):
        plot_ses_heatmap(results_df, ['SOR'])


def test_null_distribution_histogram():
    observed = MetricTable(values=np.array([[2.0, 5.0]]), metrics=('FRic',), labels=('lake1', 'lake2'))
    rng = np.random.default_rng(0)
    null_samples = rng.normal(3.0, 1.0, size=(50, 1, 2))
    null_samples[0, 0, 1] = np.nan

    fig = plot_null_distribution(null_samples, observed, metric_index=0, column_index=1)

    assert fig.axes[0].get_title() == 'Null distribution of FRic for lake2'
    plt.close(fig)
