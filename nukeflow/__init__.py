"""
nukeflow - Command-batch execution for Nuke compositing tools

Runs ordered batches of node-graph operations with dependency
references between steps, failure policies and bounded concurrency.
"""

__version__ = "0.1.0"


__all__ = [
    "NukeflowConfig",
    "load_config",
    "get_nukeflow_home",
    "OperationRegistry",
    "BatchExecutor",
    "CancellationToken",
    "FailurePolicy",
    "execute",
    "execute_batch",
]

from .config import NukeflowConfig, load_config, get_nukeflow_home
from .executor import BatchExecutor, CancellationToken, FailurePolicy, execute, execute_batch
from .registry import OperationRegistry
