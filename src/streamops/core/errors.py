"""Error taxonomy for streamops.

Every error raised by the core derives from StreamOpsError. Errors that
describe an ambiguous outcome (timeouts, an unreachable cluster) are kept
distinct from errors that carry a verdict (rejection, conflict) so callers
never mistake "unknown" for "failed".
"""

from __future__ import annotations


class StreamOpsError(Exception):
    """Base class for all streamops errors."""


class ConflictError(StreamOpsError):
    """Raised when an operation conflicts with current cluster or local state."""


class BusyError(ConflictError):
    """Raised when another lifecycle operation on the same application is in flight."""

    def __init__(self, app_id: str):
        super().__init__(f"Application {app_id} is busy with another operation")
        self.app_id = app_id


class InvalidStateError(ConflictError):
    """Raised when an operation is not allowed from the application's current state."""


class ConfigurationError(StreamOpsError, ValueError):
    """Raised when declared or namespace configuration is incomplete or invalid."""


class ApplicationNotFoundError(StreamOpsError, LookupError):
    """Raised when an application id is unknown to the repository."""

    def __init__(self, app_id: str):
        super().__init__(f"Application {app_id} not found")
        self.app_id = app_id


class ClusterError(StreamOpsError):
    """Base class for errors reported while talking to a cluster backend."""


class ClusterUnreachableError(ClusterError):
    """Raised when the cluster could not be reached; retryable by the caller."""


class ClusterRejectedError(ClusterError):
    """Raised when the resource manager permanently rejected a request."""


class OperationTimeoutError(StreamOpsError, TimeoutError):
    """
    Raised when a local bounded wait expired.

    This is not a verdict on the cluster-side operation, which keeps going;
    its outcome is resolved later by reconciliation.
    """


class ArtifactBackupError(StreamOpsError, OSError):
    """Raised when backing up a previously deployed artifact fails."""
