"""
Base bridge protocol and common implementations.

A bridge is the seam between the batch core and the compositing host.
The executor hands it an operation name and fully resolved, validated
arguments; the bridge performs the operation and returns its output as a
dictionary. The core never looks at what a bridge does internally.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable


class Bridge(ABC):
    """
    Abstract base class for host bridges.

    Bridges receive an operation name plus resolved arguments and return
    the operation output. Failures are signalled by raising; bridges should
    raise ExternalExecutionError for host-side problems.
    """

    @abstractmethod
    def execute(self, operation: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """
        Execute an operation on the host.

        Args:
            operation: Registered operation name
            arguments: Validated arguments with canonical parameter names

        Returns:
            The operation output as a dictionary

        Raises:
            Exception: If execution fails
        """
        pass


class CallableBridge(Bridge):
    """
    Adapt a plain callable `(operation, arguments) -> dict` to the Bridge seam.

    Useful for plugging in a remote client or a test double.
    """

    def __init__(self, func: Callable[[str, dict[str, Any]], dict[str, Any]]):
        self._func = func

    def execute(self, operation: str, arguments: dict[str, Any]) -> dict[str, Any]:
        return self._func(operation, arguments)
