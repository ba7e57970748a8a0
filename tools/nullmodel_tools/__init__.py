# nullmodel_tools/__init__.py

from .errors import (
    NullModelError,
    InputShapeMismatch,
    EvaluatorFailure,
    DegenerateStatisticsWarning
)

from .logger import setup_logger, log_print

from .config import load_config, validate_config, apply_overrides, DEFAULT_CONFIG

from .utils import (
    load_community_matrix,
    load_traits,
    binarize,
    check_community_matrix
)

from .randomize import NullModel, randomize_matrix, independent_swap

from .permutation import partition_permutations, run_permutations

from .stats import (
    PValueConvention,
    MetricTable,
    NullStats,
    pair_names,
    null_p_values,
    standardized_effect_size,
    aggregate_null,
    assemble_results,
    write_results,
    write_summary_report
)

from .phylo import (
    PHYLO_BETA_METRICS,
    PhyloBranchData,
    load_tree,
    build_branch_data,
    phylo_beta_pair
)

from .functional import (
    FUNCTIONAL_METRICS,
    FunctionalSpace,
    gower_distance,
    build_functional_space,
    functional_diversity
)

from .pipeline import (
    NullModelResult,
    run_null_model_test,
    run_phylo_beta_ses,
    run_functional_ses
)

from .viz import plot_ses_heatmap, plot_null_distribution

__version__ = "0.1.0"
