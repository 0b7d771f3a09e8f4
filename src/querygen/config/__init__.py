"""Configuration management for querygen."""
from .generate import (
    GenerateConfig,
    TypeOverride,
    load_config,
    merge_configs,
    redact_conn_string,
)

__all__ = [
    "GenerateConfig",
    "TypeOverride",
    "load_config",
    "merge_configs",
    "redact_conn_string",
]
