"""Configuration models and loaders for hashcc."""

from .loader import CONFIG_ENV_VAR, ConfigError, DEFAULT_CONFIG_PATH, WORKERS_ENV_VAR, dump_example_config, load_config
from .models import (
    AlgorithmName,
    HashccConfig,
    HashingConfig,
    OutputConfig,
    OutputFormatName,
    PolicyConfig,
    RuntimeConfig,
    ScanConfig,
    VerifyConfig,
)

__all__ = [
    "AlgorithmName",
    "CONFIG_ENV_VAR",
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "HashccConfig",
    "HashingConfig",
    "OutputConfig",
    "OutputFormatName",
    "PolicyConfig",
    "RuntimeConfig",
    "ScanConfig",
    "VerifyConfig",
    "WORKERS_ENV_VAR",
    "dump_example_config",
    "load_config",
]
