"""
YAML configuration for the word chain tools.

Configuration files live in a configs/ directory. The environment-specific
file (word_chain_<environment>.yaml) wins over the shared word_chain.yaml;
whichever is found is merged over DEFAULT_CONFIG, so a file only needs to
list the values it changes.
"""

import copy
import logging
import os

import yaml

DEFAULT_CONFIG = {
    "generation": {
        "length": 30,
        "count": 1,
        "seed": None,
    },
    "corpus": {
        "lowercase": False,
        "csv_text_column": 0,
        "csv_header": None,
        "encoding": "utf-8",
    },
    "logging": {
        "log_file": None,
        "console_json": False,
        "level": "INFO",
    },
}

CONFIG_BASENAME = "word_chain"


class ConfigError(ValueError):
    """Raised when a configuration file cannot be used."""


def get_default_config_dir():
    """configs/ at the repository root."""
    package_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(os.path.dirname(package_dir), "configs")


def merge_config(base, override):
    """
    Recursively merge override into a copy of base.

    Nested mappings are merged key by key; any other value in override
    replaces the one in base.
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def find_config_file(environment="development", config_dir=None):
    """
    Locate the configuration file to use.

    Returns:
        str or None: Path of the environment file, else of the shared file,
        else None
    """
    config_dir = config_dir or get_default_config_dir()

    env_config_path = os.path.join(config_dir, f"{CONFIG_BASENAME}_{environment}.yaml")
    default_config_path = os.path.join(config_dir, f"{CONFIG_BASENAME}.yaml")

    for path in (env_config_path, default_config_path):
        if os.path.exists(path):
            return path
    return None


def load_config(environment="development", config_dir=None, logger=None):
    """
    Load the configuration for an environment.

    Args:
        environment (str): Environment name ('development', 'test', 'production')
        config_dir (str, optional): Directory holding the YAML files
        logger (logging.Logger, optional): Logger for reporting which file was used

    Returns:
        dict: DEFAULT_CONFIG with the file's values merged in

    Raises:
        ConfigError: If the file is not valid YAML or its top level is not a mapping
    """
    logger = logger or logging.getLogger(__name__)
    path = find_config_file(environment, config_dir)

    if path is None:
        logger.info("No configuration file found, using defaults", extra={
            "metrics": {"environment": environment, "config_dir": config_dir}
        })
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing config file {path}: {e}") from e

    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ConfigError(
            f"Config file {path} must contain a mapping, got {type(loaded).__name__}")

    logger.info(f"Loaded config from {path}", extra={
        "metrics": {"environment": environment, "config_path": path}
    })
    return merge_config(DEFAULT_CONFIG, loaded)
