"""Error taxonomy shared by the orchestrator, workers and HTTP layer."""

from typing import Any


class LaunchpadError(Exception):
    """Base class for every error the control plane raises on purpose."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(LaunchpadError):
    """A required credential or identifier is missing. Never retried."""

    status_code = 503


class UpstreamError(LaunchpadError):
    """Non-success response from the management, tenant or hosting API."""

    status_code = 502

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class MigrationFailedError(UpstreamError):
    """A catalog migration could not be applied to a tenant database."""

    def __init__(self, filename: str, cause: Exception) -> None:
        super().__init__(
            f"Migration {filename} failed: {cause}",
            status=getattr(cause, "status", None),
            body=getattr(cause, "body", ""),
        )
        self.filename = filename


class ReadinessTimeoutError(LaunchpadError):
    """Readiness polling ran out of time; the instance may still come up."""

    status_code = 504


class InputValidationError(LaunchpadError):
    """Slug, hostname or identifier rejected before any I/O."""

    status_code = 400


class NotFoundError(LaunchpadError):
    status_code = 404


class ConflictError(LaunchpadError):
    """Duplicate slug or hostname."""

    status_code = 409


class ConcurrentModificationError(ConflictError):
    """Optimistic lock lost: the tenant row changed under us."""


class OperationCancelled(LaunchpadError):
    """The cancellation token fired or its deadline passed."""

    status_code = 499


class PartialFailure(LaunchpadError):
    """Batch where some units succeeded and some failed.

    Always carries the itemized per-unit results.
    """

    status_code = 207

    def __init__(self, message: str, results: list[Any]) -> None:
        super().__init__(message)
        self.results = results
