import io

import numpy as np
import pytest
from skbio import TreeNode

from nullmodel_tools import (
    InputShapeMismatch,
    PHYLO_BETA_METRICS,
    build_branch_data,
    load_tree,
    pair_names,
    phylo_beta_pair,
)


def test_branch_data_structure(tree):
    branch_data = build_branch_data(tree, ['A', 'B', 'C', 'D'])

    # Four terminal branches plus the two internal ones below the root
    assert branch_data.n_branches == 6
    assert branch_data.incidence.shape == (4, 6)
    assert branch_data.lengths.sum() == pytest.approx(6.0)
    # Every species sits below its own branch and one internal branch
    np.testing.assert_array_equal(branch_data.incidence.sum(axis=1), [2, 2, 2, 2])


def test_phylo_beta_components_by_hand(tree, community_df):
    branch_data = build_branch_data(tree, community_df.columns)
    result = phylo_beta_pair(community_df.to_numpy(), branch_data)

    assert result.shape == (3, 3)
    sim, sne, sor = result

    # s1-s2: a=2 (A, AB), b=1 (B), c=2 (C, CD)
    assert sor[0] == pytest.approx(3 / 7)
    assert sim[0] == pytest.approx(1 / 3)
    assert sne[0] == pytest.approx(2 / 21)
    # s1-s3: s3 is nested in s1
    assert sim[1] == pytest.approx(0.0)
    assert sne[1] == pytest.approx(1 / 5)
    assert sor[1] == pytest.approx(1 / 5)
    # s2-s3
    assert sor[2] == pytest.approx(1 / 3)
    assert sne[2] == pytest.approx(1 / 3)


def test_turnover_and_nestedness_sum_to_total(tree):
    rng = np.random.default_rng(4)
    matrix = (rng.random((6, 4)) < 0.6).astype(int)
    matrix[:, 0] = 1

    sim, sne, sor = phylo_beta_pair(matrix, build_branch_data(tree, ['A', 'B', 'C', 'D']))

    np.testing.assert_allclose(sim + sne, sor)


def test_column_order_matches_pair_names(tree, community_df):
    branch_data = build_branch_data(tree, community_df.columns)
    result = phylo_beta_pair(community_df.to_numpy(), branch_data)
    names = pair_names(community_df.index)

    assert names == ['s1-s2', 's1-s3', 's2-s3']
    assert result.shape[1] == len(names)

    # Swapping s2 and s3 must move the s1-s2 value to the s1-s3 position
    swapped = community_df.loc[['s1', 's3', 's2']].to_numpy()
    swapped_result = phylo_beta_pair(swapped, branch_data)
    assert swapped_result[2, 1] == pytest.approx(result[2, 0])


def test_identical_sites_have_zero_dissimilarity(tree):
    matrix = np.array([[1, 1, 0, 0], [1, 1, 0, 0]])
    result = phylo_beta_pair(matrix, build_branch_data(tree, ['A', 'B', 'C', 'D']))

    np.testing.assert_allclose(result[:, 0], [0.0, 0.0, 0.0])


def test_metric_names():
    assert PHYLO_BETA_METRICS == ('SIM', 'SNE', 'SOR')


def test_species_missing_from_tree(tree):
    with pytest.raises(InputShapeMismatch, match="not tips"):
        build_branch_data(tree, ['A', 'B', 'Z'])


def test_extra_tips_are_pruned(community_df):
    tree = TreeNode.read(io.StringIO("((A:1,B:1):1,(C:1,(D:1,E:1):0):1);"), format='newick')
    branch_data = build_branch_data(tree, community_df.columns)

    assert branch_data.incidence.shape[0] == 4
    sim, sne, sor = phylo_beta_pair(community_df.to_numpy(), branch_data)
    assert sor[0] == pytest.approx(3 / 7)


def test_matrix_width_must_match(tree):
    branch_data = build_branch_data(tree, ['A', 'B', 'C', 'D'])

    with pytest.raises(InputShapeMismatch):
        phylo_beta_pair(np.ones((3, 3)), branch_data)


def test_load_tree_keeps_underscores(tmp_path):
    path = tmp_path / 'tree.nwk'
    path.write_text("((Genus_one:1,Genus_two:1):1,Genus_three:2);\n")

    tree = load_tree(path)

    assert sorted(tip.name for tip in tree.tips()) == ['Genus_one', 'Genus_three', 'Genus_two']
