"""Configuration for Multi-MA normalization.

Settings are plain dictionaries: built-in defaults, optionally overridden by
a YAML file.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from .fitting import make_fitter

if TYPE_CHECKING:
    from .fitting import FittingFunction


DEFAULT_CONFIG = {
    'normalization': {
        'represent': 'mean',
        'log_transform': True,
        'n_workers': 1,
        'fitting': {
            'method': 'multi_ma',
            'lowess': {'frac': 0.75, 'iterations': 3},
            'robust_linear': {'max_iterations': 100},
        },
    },
}


def load_config(config_path: Path | None) -> dict:
    """Load configuration from YAML file or return defaults."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path and config_path.exists():
        with open(config_path) as f:
            user_config = yaml.safe_load(f)
        if user_config:
            config = _deep_merge(config, user_config)

    return config


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override dict into base dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def fitting_function_from_config(config: dict) -> FittingFunction | None:
    """Build the fitting function named in config ('multi_ma' gives None)."""
    fitting = config.get('normalization', {}).get('fitting', {})
    method = fitting.get('method', 'multi_ma')
    params = fitting.get(method, {}) or {}
    return make_fitter(method, **params)
