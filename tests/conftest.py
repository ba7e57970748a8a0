import io

import matplotlib
matplotlib.use('Agg')

import numpy as np
import pandas as pd
import pytest
from skbio import TreeNode

from nullmodel_tools import load_config

TREE_NEWICK = "((A:1,B:1):1,(C:1,D:1):1);"


@pytest.fixture
def tree():
    return TreeNode.read(io.StringIO(TREE_NEWICK), format='newick', convert_underscores=False)


@pytest.fixture
def community_df():
    return pd.DataFrame(
        [[1, 1, 0, 0],
         [1, 0, 1, 0],
         [1, 0, 0, 0]],
        index=['s1', 's2', 's3'],
        columns=['A', 'B', 'C', 'D'],
    )


@pytest.fixture
def random_matrix():
    rng = np.random.default_rng(2024)
    matrix = (rng.random((8, 30)) < 0.4).astype(int)
    # Every site keeps at least one species
    matrix[:, 0] = 1
    return matrix


@pytest.fixture
def traits_df():
    return pd.DataFrame(
        {
            'height': [0.0, 1.0, 0.0, 1.0, 0.5, 0.2],
            'seed_mass': [0.0, 0.0, 1.0, 1.0, 0.5, 0.9],
            'growth_form': ['herb', 'herb', 'shrub', 'shrub', 'tree', 'herb'],
        },
        index=['A', 'B', 'C', 'D', 'E', 'F'],
    )


@pytest.fixture
def small_config():
    config = load_config()
    config['permutations'].update({'nperm': 20, 'n_workers': 2, 'seed': 7})
    return config
