"""Exception hierarchy for minik8s.

All minik8s-specific exceptions inherit from MiniK8sError, enabling
callers to catch every actuation failure with a single except clause.
"""

from __future__ import annotations


class MiniK8sError(Exception):
    """Base exception for all minik8s errors."""


class InvalidConfigError(MiniK8sError):
    """Raised for an invalid cluster spec or provider configuration."""


class InvalidQuantityError(InvalidConfigError):
    """Raised when a resource quantity cannot be parsed."""

    def __init__(self, quantity: str) -> None:
        self.quantity = quantity
        super().__init__(f"invalid resource quantity: {quantity!r}")


class ClusterExistsError(MiniK8sError):
    """Raised when creating a cluster whose nodes already exist."""

    def __init__(self, cluster: str) -> None:
        self.cluster = cluster
        super().__init__(f"cluster already exists: {cluster}")


class ClusterNotFoundError(MiniK8sError):
    """Raised when operating on a cluster that has no runtime resources."""

    def __init__(self, cluster: str) -> None:
        self.cluster = cluster
        super().__init__(f"cluster not found: {cluster}")


class ProviderNotReadyError(MiniK8sError):
    """Raised when the container runtime is unreachable or the provider is closed."""


class RuntimeOperationError(MiniK8sError):
    """Raised when a container runtime call fails.

    The original runtime error is chained as ``__cause__``.
    """

    def __init__(self, operation: str, cause: BaseException) -> None:
        self.operation = operation
        super().__init__(f"failed to {operation}: {cause}")


class ProvisioningError(MiniK8sError):
    """Raised when node creation fails during cluster creation.

    A full rollback has been attempted before this is raised;
    ``rollback_error`` holds the rollback's own failure, if any.
    """

    def __init__(
        self, node: str, cause: BaseException, rollback_error: BaseException | None = None,
    ) -> None:
        self.node = node
        self.rollback_error = rollback_error
        message = f"failed to create node {node}: {cause}"
        if rollback_error is not None:
            message += f" (rollback also failed: {rollback_error})"
        super().__init__(message)


class StoreError(MiniK8sError):
    """Base exception for cluster store failures."""


class ConflictError(StoreError):
    """Raised when a write carries a stale resource version."""

    def __init__(self, key: str, expected: int, actual: int) -> None:
        self.key = key
        super().__init__(
            f"conflict writing {key}: resource version {expected} is stale (current {actual})"
        )


class ObjectNotFoundError(StoreError):
    """Raised when writing an object that is not in the store."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"object not found: {key}")


class ObjectExistsError(StoreError):
    """Raised when creating an object that is already in the store."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"object already exists: {key}")


class QueueShutDownError(MiniK8sError):
    """Raised when dequeuing from a work queue that has been shut down."""
