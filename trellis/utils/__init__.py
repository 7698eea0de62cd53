"""Utility functions and helpers."""

from trellis.utils.config import (
    load_env,
    get_config,
    get_max_iterations,
    get_sqlite_path,
    configure_logging,
)
from trellis.utils.errors import (
    TrellisError,
    GraphValidationError,
    GraphConfigurationError,
    GraphExecutionError,
    NodeExecutionError,
    IterationLimitError,
    InvalidRouteError,
    StateSerializationError,
    CheckpointError,
    CheckpointNotFoundError,
)

__all__ = [
    "load_env",
    "get_config",
    "get_max_iterations",
    "get_sqlite_path",
    "configure_logging",
    "TrellisError",
    "GraphValidationError",
    "GraphConfigurationError",
    "GraphExecutionError",
    "NodeExecutionError",
    "IterationLimitError",
    "InvalidRouteError",
    "StateSerializationError",
    "CheckpointError",
    "CheckpointNotFoundError",
]
