"""
OperationRegistry - name -> OperationSpec lookup for the executor.

The registry is populated once during initialization and then frozen.
Executors only read from it, so no locking is needed while batches run.
"""

import logging
from typing import Iterator, Optional

from nukeflow.errors import DuplicateOperation, RegistryFrozen, UnknownOperation
from nukeflow.schemas import OperationSpec

logger = logging.getLogger(__name__)


class OperationRegistry:
    """
    Registry of operation contracts.

    Usage:
        registry = OperationRegistry()
        registry.register(OperationSpec(name="createNode", ...))
        registry.freeze()

        spec = registry.lookup("createNode")

        # Or use the factory with every built-in operation
        registry = OperationRegistry.create_default()
    """

    def __init__(self) -> None:
        """Initialize an empty, unfrozen registry."""
        self._specs: dict[str, OperationSpec] = {}
        self._frozen = False

    def register(self, spec: OperationSpec) -> OperationSpec:
        """
        Register an operation contract.

        Args:
            spec: The OperationSpec to register

        Returns:
            The registered spec

        Raises:
            DuplicateOperation: If an operation with this name is registered
            RegistryFrozen: If the registry has been frozen
        """
        if self._frozen:
            raise RegistryFrozen(
                f"Cannot register '{spec.name}': registry is frozen"
            )
        if spec.name in self._specs:
            raise DuplicateOperation(f"Operation already registered: {spec.name}")
        self._specs[spec.name] = spec
        logger.debug("Registered operation %s", spec.name)
        return spec

    def lookup(self, name: str) -> OperationSpec:
        """
        Get the contract for an operation.

        Raises:
            UnknownOperation: If no operation is registered under this name
        """
        if name not in self._specs:
            raise UnknownOperation(
                f"Unknown operation: {name}. Registered: {sorted(self._specs)}"
            )
        return self._specs[name]

    def has(self, name: str) -> bool:
        return name in self._specs

    def list_operations(self, category: Optional[str] = None) -> list[OperationSpec]:
        """List registered operations in registration order, optionally by category."""
        return [
            spec for spec in self._specs.values()
            if category is None or spec.category == category
        ]

    def categories(self) -> list[str]:
        seen: list[str] = []
        for spec in self._specs.values():
            if spec.category not in seen:
                seen.append(spec.category)
        return seen

    def freeze(self) -> "OperationRegistry":
        """Seal the registry against further registration."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    def __iter__(self) -> Iterator[OperationSpec]:
        return iter(self._specs.values())

    @classmethod
    def create_default(cls) -> "OperationRegistry":
        """
        Create a frozen registry holding every built-in compositing operation.

        Returns:
            Frozen OperationRegistry
        """
        from nukeflow.operations import BUILTIN_OPERATIONS

        registry = cls()
        for spec in BUILTIN_OPERATIONS:
            registry.register(spec)
        return registry.freeze()
