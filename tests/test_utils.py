import numpy as np
import pandas as pd
import pytest

from nullmodel_tools import (
    InputShapeMismatch,
    binarize,
    check_community_matrix,
    load_community_matrix,
    load_traits,
)


def test_load_csv_community(tmp_path):
    path = tmp_path / 'community.csv'
    path.write_text("site,sp1,sp2\nA,1,0\nB,3,2\n")

    community_df = load_community_matrix(path)

    assert list(community_df.index) == ['A', 'B']
    assert list(community_df.columns) == ['sp1', 'sp2']
    assert community_df.loc['B', 'sp1'] == 3


def test_load_tsv_with_taxa_as_rows(tmp_path):
    path = tmp_path / 'abundance.tsv'
    path.write_text("taxon\tS1\tS2\tS3\nsp1\t0.5\t0\t1.2\nsp2\t0\t2.0\t0.1\n")

    community_df = load_community_matrix(path, taxa_as_rows=True)

    assert community_df.shape == (3, 2)
    assert list(community_df.index) == ['S1', 'S2', 'S3']
    assert community_df.loc['S3', 'sp1'] == pytest.approx(1.2)


def test_numeric_labels_become_strings(tmp_path):
    path = tmp_path / 'community.csv'
    path.write_text("site,10,20\n1,1,0\n2,0,1\n")

    community_df = load_community_matrix(path)

    assert list(community_df.index) == ['1', '2']
    assert list(community_df.columns) == ['10', '20']


def test_load_traits_rejects_duplicate_species(tmp_path):
    path = tmp_path / 'traits.csv'
    path.write_text("species,height\nA,1.0\nA,2.0\n")

    with pytest.raises(InputShapeMismatch):
        load_traits(path)


def test_binarize():
    community_df = pd.DataFrame({'x': [0.0, 2.5], 'y': [7, 0]}, index=['s1', 's2'])

    result = binarize(community_df)

    np.testing.assert_array_equal(result.to_numpy(), [[0, 1], [1, 0]])


@pytest.mark.parametrize("community_df", [
    pd.DataFrame({'x': [1]}, index=['only']),
    pd.DataFrame({'x': [1, 1], 'y': [0, 1]}, index=['s1', 's1']),
    pd.DataFrame([[1, 1], [1, 0]], index=['s1', 's2'], columns=['x', 'x']),
    pd.DataFrame({'x': [1.0, np.nan], 'y': [0, 1]}, index=['s1', 's2']),
    pd.DataFrame({'x': [1, -1], 'y': [0, 1]}, index=['s1', 's2']),
    pd.DataFrame({'x': [1, 0], 'y': [1, 0]}, index=['s1', 's2']),
])
def test_invalid_community_matrix(community_df):
    with pytest.raises(InputShapeMismatch):
        check_community_matrix(community_df)


def test_absent_species_are_kept():
    community_df = pd.DataFrame({'x': [1, 0], 'y': [0, 1], 'z': [0, 0]}, index=['s1', 's2'])

    result = check_community_matrix(community_df)

    assert list(result.columns) == ['x', 'y', 'z']
