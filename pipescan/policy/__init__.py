"""Policy evaluation: the engine adapter and rule configuration."""

from __future__ import annotations

from .config import Config, ConfigInclude, ConfigSkip, load_config, parse_config
from .engine import (
    FINDINGS_QUERY,
    INVENTORY_QUERY,
    OpaServerConfig,
    OpaServerEngine,
    PolicyEngine,
    evaluate_as,
    query_path,
)
from .errors import ConfigError, PolicyConfigError, PolicyEngineError

__all__ = [
    "FINDINGS_QUERY",
    "INVENTORY_QUERY",
    "Config",
    "ConfigError",
    "ConfigInclude",
    "ConfigSkip",
    "OpaServerConfig",
    "OpaServerEngine",
    "PolicyConfigError",
    "PolicyEngine",
    "PolicyEngineError",
    "evaluate_as",
    "load_config",
    "parse_config",
    "query_path",
]
