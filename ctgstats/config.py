#!/usr/bin/env python3
"""
Configuration loader for the CTG analysis pipeline.

Covers:
- Reading YAML files (packaged defaults plus an optional study file)
- Deep-merging the study file over the defaults
- ${...} expansion from the environment or other keys
- Range checks on analysis parameters
- Dot-path access and overrides (e.g. CLI flags)
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional
import yaml

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Invalid YAML, a missing file or an out-of-range analysis parameter."""
    pass


def load_yaml(file_path: Path) -> Dict[str, Any]:
    """
    Load YAML configuration file.

    Parameters
    ----------
    file_path : Path
        Path to YAML file

    Returns
    -------
    dict
        Loaded configuration

    Raises
    ------
    ConfigurationError
        If file doesn't exist or YAML is invalid
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise ConfigurationError(f"Configuration file not found: {file_path}")

    try:
        with open(file_path, 'r') as f:
            config = yaml.safe_load(f)
        return config if config is not None else {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {file_path}: {e}")


def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep-merge ``override`` into a copy of ``base``.

    Parameters
    ----------
    base : dict
        Base configuration (defaults)
    override : dict
        Override configuration (study-specific)

    Returns
    -------
    dict
        New dict; values from ``override`` win, nested dicts merge
    """
    merged = base.copy()

    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged


def substitute_variables(config: Dict[str, Any], context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Expand ``${...}`` placeholders in every string value.

    Supports:
    - ${CTG_DATA} - environment variable
    - ${output.dir} - another key of the same config, dot-separated

    Parameters
    ----------
    config : dict
        Configuration dictionary
    context : dict, optional
        Context for variable substitution (defaults to config itself)

    Returns
    -------
    dict
        Configuration with substituted values
    """
    pattern = re.compile(r'\$\{([^}]+)\}')

    def substitute_string(value: str, ctx: Dict[str, Any]) -> str:
        def replacer(match):
            var_path = match.group(1)

            if var_path in os.environ:
                return os.environ[var_path]

            # Config reference, e.g. ${output.dir}
            try:
                val = ctx
                for part in var_path.split('.'):
                    val = val[part]
                return str(val)
            except (KeyError, TypeError):
                return match.group(0)

        return pattern.sub(replacer, value)

    def process_value(value: Any, ctx: Dict[str, Any]) -> Any:
        if isinstance(value, str):
            return substitute_string(value, ctx)
        elif isinstance(value, dict):
            return {k: process_value(v, ctx) for k, v in value.items()}
        elif isinstance(value, list):
            return [process_value(item, ctx) for item in value]
        else:
            return value

    # Iterate to resolve chained references (A -> B -> C)
    result = config
    for _ in range(5):
        resolved = process_value(result, result if context is None else context)
        if resolved == result:
            break
        result = resolved

    return result


def _require_positive_int(config: Dict[str, Any], key_path: str, minimum: int = 1) -> None:
    value = get_config_value(config, key_path)
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigurationError(
            f"{key_path} must be an integer >= {minimum}, got {value!r}"
        )


def _require_fraction(config: Dict[str, Any], key_path: str) -> None:
    value = get_config_value(config, key_path)
    if value is None:
        return
    if not isinstance(value, (int, float)) or not 0.0 < float(value) < 1.0:
        raise ConfigurationError(f"{key_path} must be in (0, 1), got {value!r}")


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate configuration has sensible analysis parameters.

    Parameters
    ----------
    config : dict
        Configuration to validate

    Raises
    ------
    ConfigurationError
        If required parameters are missing or invalid
    """
    if 'data' in config and 'path' not in config.get('data', {}):
        raise ConfigurationError("Missing required data field: data.path")

    _require_positive_int(config, 'pca.n_components')
    _require_positive_int(config, 'gam.spline_df', minimum=3)
    _require_positive_int(config, 'cross_validation.n_splits', minimum=2)
    _require_positive_int(config, 'cross_validation.n_repeats')
    _require_positive_int(config, 'group_comparison.n_permutations')
    _require_positive_int(config, 'plsda.n_splits', minimum=2)
    _require_positive_int(config, 'plsda.n_repeats')
    _require_positive_int(config, 'plsda.preferred_components')
    _require_positive_int(config, 'selection.rank_index')

    _require_fraction(config, 'naive_bayes.test_size')
    _require_fraction(config, 'selection.alpha')
    _require_fraction(config, 'group_comparison.alpha')
    _require_fraction(config, 'gam.alpha')

    interactions = get_config_value(config, 'selection.interactions', [])
    for term in interactions or []:
        parts = str(term).split(':')
        if len(parts) != 2:
            raise ConfigurationError(
                f"selection.interactions entries must be two-way 'A:B' terms, got {term!r}"
            )

    counts = get_config_value(config, 'plsda.component_counts', [])
    for n in counts or []:
        if isinstance(n, bool) or not isinstance(n, int) or n < 1:
            raise ConfigurationError(
                f"plsda.component_counts must hold positive integers, got {n!r}"
            )

    targets = get_config_value(config, 'roc.sensitivity_targets', [])
    for t in targets or []:
        if not isinstance(t, (int, float)) or not 0.0 < float(t) <= 1.0:
            raise ConfigurationError(
                f"roc.sensitivity_targets must lie in (0, 1], got {t!r}"
            )

    logger.debug("Configuration validation passed")


def default_config_path() -> Path:
    """Location of the packaged default configuration."""
    return Path(__file__).parent / 'configs' / 'default.yaml'


def load_config(config_path: Optional[Path] = None, validate: bool = True) -> Dict[str, Any]:
    """
    Load and process configuration file.

    Steps:
    1. Loads the study config (if given)
    2. Loads and merges default config
    3. Substitutes variables
    4. Validates the result

    Parameters
    ----------
    config_path : Path, optional
        Path to study-specific configuration file. If None, the defaults
        are used on their own.
    validate : bool
        Whether to validate the configuration

    Returns
    -------
    dict
        Processed configuration

    Raises
    ------
    ConfigurationError
        If configuration is invalid
    """
    study_config: Dict[str, Any] = {}
    default_path = default_config_path()

    if config_path is not None:
        config_path = Path(config_path)
        study_config = load_yaml(config_path)

        # A default.yaml next to the study config wins over the packaged one
        sibling = config_path.parent / 'default.yaml'
        if sibling.exists() and sibling.resolve() != config_path.resolve():
            default_path = sibling

    if default_path.exists():
        config = merge_configs(load_yaml(default_path), study_config)
    else:
        logger.warning(
            "Default configuration not found at %s; using the study config alone",
            default_path,
        )
        config = study_config

    config = substitute_variables(config)

    if validate:
        validate_config(config)

    return config


def get_config_value(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Look up a nested value by dot-separated path.

    Parameters
    ----------
    config : dict
        Configuration dictionary
    key_path : str
        Dot-separated path (e.g., 'cross_validation.n_splits')
    default : any
        Default value if key not found

    Returns
    -------
    any
        Value at key_path, or default if not found

    Examples
    --------
    >>> get_config_value(config, 'pca.n_components')
    5
    >>> get_config_value(config, 'missing.key', default=0.3)
    0.3
    """
    try:
        value = config
        for part in key_path.split('.'):
            value = value[part]
        return value
    except (KeyError, TypeError):
        return default


def set_config_value(config: Dict[str, Any], key_path: str, value: Any) -> Dict[str, Any]:
    """Return a copy of ``config`` with ``key_path`` set to ``value``."""
    parts = key_path.split('.')
    override: Dict[str, Any] = {parts[-1]: value}
    for part in reversed(parts[:-1]):
        override = {part: override}
    return merge_configs(config, override)
