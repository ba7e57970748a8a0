#!/usr/bin/env python
# scripts/functional_diversity_ses.py

"""
Standardized effect sizes of functional richness and divergence.

This script:
1. Loads a community matrix and a species x traits table
2. Builds a trait space (Gower distance + PCoA) and computes FRic and FDiv
   for every site
3. Builds a null distribution by randomizing the community matrix on
   several worker processes
4. Writes observed values, SES and p-values per site

Usage:
    python scripts/functional_diversity_ses.py --community comm.csv --traits traits.csv [--config CONFIG_FILE]
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
    FUNCTIONAL_METRICS,
    NullModelError,
    apply_overrides,
    load_community_matrix,
    load_config,
    load_traits,
    log_print,
    plot_ses_heatmap,
    run_functional_ses,
    setup_logger,
    write_results,
    write_summary_report
)


def parse_n_axes(value):
    """argparse type for --n-axes: 'max' or a positive integer."""
    if value == 'max':
        return value
    try:
        n_axes = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected 'max' or an integer, got {value!r}")
    if n_axes < 1:
        raise argparse.ArgumentTypeError(f"number of axes must be positive, got {n_axes}")
    return n_axes


def parse_arguments():
    parser = argparse.ArgumentParser(description="Null-model SES of functional richness (FRic) and divergence (FDiv)")

    parser.add_argument(
        "--community",
        required=True,
        help="Path to community matrix (sites as rows, species as columns)"
    )

    parser.add_argument(
        "--traits",
        required=True,
        help="Path to trait table (species as rows, traits as columns)"
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Path to configuration file (YAML, default: built-in parameters)"
    )

    parser.add_argument(
        "--output-dir",
        default="results/functional_ses",
        help="Directory for output files (default: results/functional_ses)"
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
        "--n-axes",
        type=parse_n_axes,
        default=None,
        help="PCoA axes used for FRic/FDiv, 'max' or an integer (default: from config)"
    )

    parser.add_argument(
        "--standardize-fric",
        action="store_true",
        default=None,
        help="Express FRic relative to the whole species pool"
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
        ('functional', 'p_value_convention'): args.p_value_convention,
        ('functional', 'n_axes'): args.n_axes,
        ('functional', 'standardize_fric'): args.standardize_fric,
    }


def main():
    # Parse command line arguments
    args = parse_arguments()

    # Setup logging
    setup_logger(log_file=args.log_file, log_level=getattr(logging, args.log_level))
    log_print("Starting functional diversity SES analysis", level="info")

    # Check input files exist
    for path in (args.community, args.traits):
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
        traits_df = load_traits(args.traits)
        result = run_functional_ses(community_df, traits_df, config)
    except (NullModelError, ValueError, OSError) as e:
        log_print(f"Error during functional diversity analysis: {str(e)}", level="error")
        log_print(traceback.format_exc(), level="debug")
        sys.exit(1)

    # Save results
    extension = 'tsv' if output_config['sep'] == '\t' else 'csv'
    results_file = os.path.join(args.output_dir, f'functional_ses.{extension}')
    write_results(result.table, results_file, sep=output_config['sep'])

    perm = config['permutations']
    functional_config = config['functional']
    write_summary_report(
        result.table,
        FUNCTIONAL_METRICS,
        {
            'Null Model': perm['null_model'],
            'Number of Permutations': result.null_stats.nperm,
            'Workers': perm['n_workers'],
            'Seed': perm['seed'],
            'p-value Convention': functional_config['p_value_convention'],
            'PCoA Axes': functional_config['n_axes'],
            'Standardized FRic': functional_config['standardize_fric'],
        },
        os.path.join(args.output_dir, 'functional_ses_summary.md')
    )

    if output_config['plots']:
        fig = plot_ses_heatmap(result.table, FUNCTIONAL_METRICS)
        figure_file = os.path.join(args.output_dir, 'functional_ses_heatmap.png')
        fig.savefig(figure_file, dpi=300, bbox_inches='tight')
        plt.close(fig)
        log_print(f"Heatmap saved to {figure_file}", level="info")

    log_print("Functional diversity SES analysis completed", level="info")


if __name__ == "__main__":
    main()
