#!/usr/bin/env python3

import os
import json
import tomllib
from pathlib import Path

import logging
import sys

import toml
import yaml

logger = logging.getLogger("repocurate")

CONFIG_FILENAMES = ['config.json', 'config.toml', 'config.yaml', 'config.yml']
DEFAULT_FORMAT = "%(levelname)s: %(message)s"
DEBUG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level="INFO", fmt=DEFAULT_FORMAT):
    """Send repocurate logging to stderr at the given level.

    stdout is left alone so curated data and reports can be piped.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    logger.handlers[:] = [handler]
    logger.setLevel(level)
    logger.propagate = False
    return logger


def get_config_path():
    """Get the path to the configuration file.

    Checks in order:
    1. REPOCURATE_CONFIG environment variable
    2. ~/.repocurate/ directory
    """
    if 'REPOCURATE_CONFIG' in os.environ:
        path = Path(os.environ['REPOCURATE_CONFIG']).expanduser()
        if path.exists():
            return path

    config_dir = Path.home() / '.repocurate'
    for filename in CONFIG_FILENAMES:
        path = config_dir / filename
        if path.exists() and path.stat().st_size > 0:
            return path

    # If no file exists, return default path for saving
    return config_dir / 'config.json'


def _read_config_file(config_path):
    suffix = config_path.suffix.lower()
    if suffix == '.toml':
        with open(config_path, 'rb') as f:
            return tomllib.load(f)
    if suffix in ('.yaml', '.yml'):
        with open(config_path, 'r') as f:
            return yaml.safe_load(f) or {}
    with open(config_path, 'r') as f:
        return json.load(f)


def load_config(path=None):
    """Load configuration: defaults, then the config file, then environment."""
    config_path = Path(path).expanduser() if path else get_config_path()

    config = get_default_config()

    if config_path.exists():
        try:
            file_config = _read_config_file(config_path)
            if not isinstance(file_config, dict):
                raise ValueError("top level is not a mapping")
            config = merge_configs(config, file_config)
        except (OSError, ValueError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
            logger.error(f"Error loading config from {config_path}: {e}")

    config = apply_env_overrides(config)

    return config


def save_config(config, path=None):
    """Save configuration to file. Format follows the file suffix."""
    config_path = Path(path).expanduser() if path else get_config_path()

    config_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = config_path.suffix.lower()
    if suffix == '.toml':
        # tomllib is read-only
        with open(config_path, 'w') as f:
            toml.dump(config, f)
    elif suffix in ('.yaml', '.yml'):
        with open(config_path, 'w') as f:
            yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
    else:
        with open(config_path, 'w') as f:
            json.dump(config, f, indent=2)
            f.write('\n')

    logger.info(f"Configuration saved to {config_path}")
    return config_path


def get_default_config():
    """Get default configuration."""
    return {
        "curation": {
            "channel_alias": "https://conda.anaconda.org/conda-forge/",
            "subdirs": ["linux-64", "noarch"],
            "ban_features": ["pypy"],
            "compatible_with": ["python"],
            "exclude_prerelease": True,
            "prerelease_tokens": ["dev", "a", "b", "rc", "alpha", "beta"],
            "max_closure_passes": 1000,
            "append_subdir_to_base_url": False,
        },
        "oracle": {
            "max_workers": 8,
            "max_rounds": 100000,
        },
        "workers": {
            "max_workers": 4,
        },
        "logging": {
            "level": "INFO",
            "format": DEFAULT_FORMAT,
        },
    }


def merge_configs(base_config, override_config):
    """
    Recursively merge two configuration dictionaries.

    Args:
        base_config (dict): Base configuration
        override_config (dict): Configuration to merge/override with

    Returns:
        dict: Merged configuration
    """
    merged = base_config.copy()

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged


def _coerce(value, current):
    """Convert an environment string to the type of the value it replaces."""
    if isinstance(current, list):
        return [item.strip() for item in value.split(',') if item.strip()]
    if value.lower() in ('true', 'yes', 'on'):
        return True
    if value.lower() in ('false', 'no', 'off'):
        return False
    if value.isdigit():
        return int(value)
    return value


def apply_env_overrides(config):
    """
    Apply environment variable overrides to configuration.
    Environment variables follow the pattern: REPOCURATE_SECTION_KEY
    For example: REPOCURATE_CURATION_MAX_CLOSURE_PASSES=50

    List-valued keys take comma-separated values:
    REPOCURATE_CURATION_BAN_FEATURES=pypy,debug
    """
    env_prefix = "REPOCURATE_"

    for env_key, value in os.environ.items():
        if not env_key.startswith(env_prefix):
            continue

        key_parts = env_key[len(env_prefix):].lower().split('_')

        current_level = config
        i = 0
        while i < len(key_parts):
            # Find the longest key in current_level that is a prefix of the remaining key_parts
            best_match_len = 0
            matched_key = None

            for config_key in current_level.keys():
                config_key_parts = config_key.split('_')
                if key_parts[i:i + len(config_key_parts)] == config_key_parts:
                    if len(config_key_parts) > best_match_len:
                        best_match_len = len(config_key_parts)
                        matched_key = config_key

            if not matched_key:
                break

            if i + best_match_len == len(key_parts):
                if not isinstance(current_level[matched_key], dict):
                    current_level[matched_key] = _coerce(value, current_level[matched_key])
                break

            if isinstance(current_level[matched_key], dict):
                current_level = current_level[matched_key]
                i += best_match_len
            else:
                break

    return config
