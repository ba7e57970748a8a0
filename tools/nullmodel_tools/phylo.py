"""
Phylogenetic beta diversity partitioned into turnover and nestedness.

Branch lengths of a rooted tree are treated as the "species" of a
Sørensen-type dissimilarity (Baselga 2010; Leprieur et al. 2012). For a pair
of sites, ``a`` is the length of branches shared by both, ``b`` and ``c`` the
lengths found only in the first or only in the second site.
"""

from dataclasses import dataclass

import numpy as np
from skbio import TreeNode

from .errors import InputShapeMismatch
from .logger import log_print

PHYLO_BETA_METRICS = ('SIM', 'SNE', 'SOR')


@dataclass(frozen=True)
class PhyloBranchData:
    """Species x branch incidence of a tree, aligned to the community columns."""
    species: tuple
    incidence: np.ndarray
    lengths: np.ndarray

    @property
    def n_branches(self):
        return self.lengths.shape[0]


def load_tree(filepath):
    """Read a rooted Newick tree, keeping underscores in tip names."""
    tree = TreeNode.read(str(filepath), format='newick', convert_underscores=False)
    n_tips = sum(1 for _ in tree.tips())
    log_print(f"Loaded tree with {n_tips} tips from {filepath}", level="info")
    return tree


def build_branch_data(tree, species):
    """
    Prune ``tree`` to ``species`` and record which branches lie above each.

    Parameters:
    -----------
    tree : skbio.TreeNode
        Rooted phylogeny
    species : list of str
        Community matrix columns, in order

    Returns:
    --------
    PhyloBranchData
        Incidence matrix (n_species x n_branches) and branch lengths

    Raises:
    -------
    InputShapeMismatch
        If a species is missing from the tree tips
    """
    species = [str(s) for s in species]
    tip_names = [tip.name for tip in tree.tips()]

    if len(set(tip_names)) != len(tip_names):
        raise InputShapeMismatch("Tree has duplicated tip names")

    missing = sorted(set(species) - set(tip_names))
    if missing:
        shown = ', '.join(missing[:10])
        raise InputShapeMismatch(
            f"{len(missing)} community species are not tips of the tree: {shown}"
        )

    if len(set(species)) < len(tip_names):
        log_print(f"Pruning tree from {len(tip_names)} to {len(set(species))} tips to match the community", level="info")
        tree = tree.shear(species)

    tip_index = {name: i for i, name in enumerate(species)}
    below = {}
    columns = []
    lengths = []

    for node in tree.postorder(include_self=True):
        if node.is_tip():
            members = [tip_index[node.name]]
        else:
            members = [m for child in node.children for m in below[id(child)]]
        below[id(node)] = members

        if node.is_root():
            continue

        column = np.zeros(len(species), dtype=float)
        column[members] = 1.0
        columns.append(column)
        lengths.append(float(node.length) if node.length is not None else 0.0)

    incidence = np.column_stack(columns) if columns else np.zeros((len(species), 0))
    return PhyloBranchData(species=tuple(species), incidence=incidence, lengths=np.asarray(lengths, dtype=float))


def phylo_beta_pair(matrix, branch_data):
    """
    Pairwise phylogenetic beta diversity components.

    Parameters:
    -----------
    matrix : numpy.ndarray
        Presence/absence matrix, sites as rows, species in the order of
        ``branch_data.species``
    branch_data : PhyloBranchData
        Output of ``build_branch_data``

    Returns:
    --------
    numpy.ndarray
        Shape (3, n_pairs); rows are SIM (turnover), SNE (nestedness) and
        SOR (total), columns follow ``pair_names`` order. 0/0 gives NaN.
    """
    matrix = np.asarray(matrix, dtype=float)
    if matrix.shape[1] != branch_data.incidence.shape[0]:
        raise InputShapeMismatch(
            f"Community matrix has {matrix.shape[1]} species, tree data has {branch_data.incidence.shape[0]}"
        )

    # Branches spanned by each site's species
    spanned = (matrix > 0).astype(float) @ branch_data.incidence > 0
    spanned = spanned.astype(float)

    shared = (spanned * branch_data.lengths) @ spanned.T
    total = spanned @ branch_data.lengths

    rows, cols = np.triu_indices(matrix.shape[0], k=1)
    a = shared[rows, cols]
    b = np.clip(total[rows] - a, 0, None)
    c = np.clip(total[cols] - a, 0, None)

    min_bc = np.minimum(b, c)
    max_bc = np.maximum(b, c)

    with np.errstate(divide='ignore', invalid='ignore'):
        sor = (b + c) / (2 * a + b + c)
        sim = min_bc / (a + min_bc)
        sne = ((max_bc - min_bc) / (2 * a + b + c)) * (a / (a + min_bc))

    return np.vstack([sim, sne, sor])
