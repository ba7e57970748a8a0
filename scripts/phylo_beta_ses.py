#!/usr/bin/env python
# scripts/phylo_beta_ses.py

"""
Standardized effect sizes of phylogenetic beta diversity.

This script:
1. Loads a community matrix and a rooted Newick tree
2. Computes phylogenetic turnover (SIM), nestedness (SNE) and total
   dissimilarity (SOR) for every pair of sites
3. Builds a null distribution by randomizing the community matrix on
   several worker processes
4. Writes observed values, SES and p-values per site pair

Usage:
    python scripts/phylo_beta_ses.py --community comm.csv --tree tree.nwk [--config CONFIG_FILE]
"""

import argparse
import logging
import os
import sys
import traceback

import yaml

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from nullmodel_tools import (
    NullModelError,
    PHYLO_BETA_METRICS,
    apply_overrides,
    load_community_matrix,
    load_config,
    load_tree,
    log_print,
    plot_ses_heatmap,
    run_phylo_beta_ses,
    setup_logger,
    write_results,
    write_summary_report
)


def parse_arguments():
    parser = argparse.ArgumentParser(description="Null-model SES of phylogenetic beta diversity (SIM/SNE/SOR)")

    parser.add_argument(
        "--community",
        required=True,
        help="Path to community matrix (sites as rows, species as columns)"
    )

    parser.add_argument(
        "--tree",
        required=True,
        help="Path to rooted phylogeny in Newick format"
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Path to configuration file (YAML, default: built-in parameters)"
    )

    parser.add_argument(
        "--output-dir",
        default="results/phylo_beta_ses",
        help="Directory for output files (default: results/phylo_beta_ses)"
    )

    parser.add_argument(
        "--taxa-as-rows",
        action="store_true",
        help="Community file has species as rows and sites as columns"
    )

    parser.add_argument(
        "--nperm",
        type=int,
        default=None,
        help="Total number of permutations (default: from config)"
    )

    parser.add_argument(
        "--n-workers",
        type=int,
        default=None,
        help="Number of worker processes (default: from config)"
    )

    parser.add_argument(
        "--null-model",
        choices=["richness", "frequency", "independentswap"],
        default=None,
        help="Randomization scheme (default: from config)"
    )

    parser.add_argument(
        "--iterations",
        type=int,
        default=None,
        help="Swap iterations for swap-based null models (default: from config)"
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Base random seed for reproducible runs (default: from config)"
    )

    parser.add_argument(
        "--p-value-convention",
        choices=["plus_one", "raw"],
        default=None,
        help="p = (count + 1) / nperm or count / nperm (default: from config)"
    )

    parser.add_argument(
        "--log-file",
        default=None,
        help="Path to log file (default: log to console only)"
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)"
    )

    return parser.parse_args()


def config_overrides(args):
    """Configuration values given on the command line."""
    return {
        ('permutations', 'nperm'): args.nperm,
        ('permutations', 'n_workers'): args.n_workers,
        ('permutations', 'null_model'): args.null_model,
        ('permutations', 'iterations'): args.iterations,
        ('permutations', 'seed'): args.seed,
        ('phylo_beta', 'p_value_convention'): args.p_value_convention,
    }


def main():
    # Parse command line arguments
    args = parse_arguments()

    # Setup logging
    setup_logger(log_file=args.log_file, log_level=getattr(logging, args.log_level))
    log_print("Starting phylogenetic beta diversity SES analysis", level="info")

    # Check input files exist
    for path in (args.community, args.tree):
        if not os.path.exists(path):
            log_print(f"Error: Input file not found: {path}", level="error")
            sys.exit(1)

    try:
        config = apply_overrides(load_config(args.config), config_overrides(args))
    except (OSError, ValueError, yaml.YAMLError) as e:
        log_print(f"Error loading configuration: {str(e)}", level="error")
        sys.exit(1)

    os.makedirs(args.output_dir, exist_ok=True)
    output_config = config['output']

    try:
        community_df = load_community_matrix(args.community, taxa_as_rows=args.taxa_as_rows)
        tree = load_tree(args.tree)
        result = run_phylo_beta_ses(community_df, tree, config)
    except (NullModelError, ValueError, OSError) as e:
        log_print(f"Error during phylogenetic beta diversity analysis: {str(e)}", level="error")
        log_print(traceback.format_exc(), level="debug")
        sys.exit(1)

    # Save results
    extension = 'tsv' if output_config['sep'] == '\t' else 'csv'
    results_file = os.path.join(args.output_dir, f'phylo_beta_ses.{extension}')
    write_results(result.table, results_file, sep=output_config['sep'])

    perm = config['permutations']
    write_summary_report(
        result.table,
        PHYLO_BETA_METRICS,
        {
            'Null Model': perm['null_model'],
            'Number of Permutations': result.null_stats.nperm,
            'Workers': perm['n_workers'],
            'Seed': perm['seed'],
            'p-value Convention': config['phylo_beta']['p_value_convention'],
        },
        os.path.join(args.output_dir, 'phylo_beta_ses_summary.md')
    )

    if output_config['plots']:
        fig = plot_ses_heatmap(result.table, PHYLO_BETA_METRICS)
        figure_file = os.path.join(args.output_dir, 'phylo_beta_ses_heatmap.png')
        fig.savefig(figure_file, dpi=300, bbox_inches='tight')
        plt.close(fig)
        log_print(f"Heatmap saved to {figure_file}", level="info")

    log_print("Phylogenetic beta diversity SES analysis completed", level="info")


if __name__ == "__main__":
    main()
