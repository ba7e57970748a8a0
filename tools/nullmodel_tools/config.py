"""
Configuration loading for the null-model SES analyses.

Values come from a YAML file laid over the built-in defaults below; the
analysis scripts then override individual values from the command line.
"""

import copy

import yaml

from .randomize import NullModel
from .stats import PValueConvention


DEFAULT_CONFIG = {
    'permutations': {
        'nperm': 1000,
        'n_workers': 4,
        'iterations': 1000,
        'null_model': 'richness',
        'seed': None,
    },
    'phylo_beta': {
        'p_value_convention': 'plus_one',
        'pair_separator': '-',
    },
    'functional': {
        'p_value_convention': 'raw',
        'n_axes': 'max',
        'correction': 'sqrt',
        'standardize_fric': False,
    },
    'output': {
        'sep': '\t',
        'include_null_summary': False,
        'fdr': False,
        'plots': False,
    },
}


def _deep_update(base, overrides):
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


def load_config(config_path=None):
    """
    Load analysis parameters.

    Parameters:
    -----------
    config_path : str or Path, optional
        YAML file whose values replace the defaults. Missing keys keep
        their default value.

    Returns:
    --------
    dict
        Validated configuration
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path is not None:
        with open(config_path, 'r') as f:
            user_config = yaml.safe_load(f) or {}
        if not isinstance(user_config, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")
        _deep_update(config, user_config)

    validate_config(config)
    return config


def validate_config(config):
    """Raise ValueError if any configuration value is out of range."""
    perm = config['permutations']

    for key in ('nperm', 'n_workers', 'iterations'):
        value = perm[key]
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValueError(f"permutations.{key} must be a positive integer, got {value!r}")

    if perm['nperm'] < 2:
        raise ValueError(f"permutations.nperm must be at least 2 to estimate a null sd, got {perm['nperm']}")

    if perm['nperm'] < perm['n_workers']:
        raise ValueError(
            f"permutations.nperm ({perm['nperm']}) must be at least "
            f"permutations.n_workers ({perm['n_workers']})"
        )

    seed = perm['seed']
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int) or seed < 0):
        raise ValueError(f"permutations.seed must be a non-negative integer or null, got {seed!r}")

    # Raises ValueError on unknown names
    NullModel(perm['null_model'])
    PValueConvention(config['phylo_beta']['p_value_convention'])
    PValueConvention(config['functional']['p_value_convention'])

    n_axes = config['functional']['n_axes']
    if n_axes != 'max' and (isinstance(n_axes, bool) or not isinstance(n_axes, int) or n_axes < 1):
        raise ValueError(f"functional.n_axes must be 'max' or a positive integer, got {n_axes!r}")

    if config['functional']['correction'] not in ('none', 'sqrt'):
        raise ValueError(
            f"functional.correction must be 'none' or 'sqrt', "
            f"got {config['functional']['correction']!r}"
        )

    return config


def apply_overrides(config, overrides):
    """
    Replace configuration values, typically from command-line flags.

    Parameters:
    -----------
    config : dict
        Configuration from ``load_config``
    overrides : dict
        Maps (section, key) to a value; None values are skipped

    Returns:
    --------
    dict
        The updated, re-validated configuration
    """
    for (section, key), value in overrides.items():
        if value is None:
            continue
        if section not in config or key not in config[section]:
            raise ValueError(f"Unknown configuration key: {section}.{key}")
        config[section][key] = value

    validate_config(config)
    return config
