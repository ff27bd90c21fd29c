"""Service error hierarchy for enqueue, job store and asset persistence.

Provider call failures live in brandshot.services.generation.errors because
the orchestrator branches on them; everything here is raised by the
persistence side of the pipeline.
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class QuotaExceededError(ServiceError):
    """Daily quota cannot cover the requested quantity. No job is created."""

    def __init__(self, user_id, requested: int, remaining: int):
        self.user_id = user_id
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Quota exceeded for user {user_id}: requested {requested}, remaining {remaining}"
        )


class UserNotFoundError(ServiceError):
    """User row does not exist."""

    pass


class JobNotFoundError(ServiceError):
    """Job does not exist or is not owned by the caller."""

    pass


class NoJobAvailable(ServiceError):
    """Queue is empty. A normal poll outcome, not a failure."""

    pass


class PersistenceError(ServiceError):
    """Writing a generated asset (bytes or row) failed after generation succeeded."""

    pass


class StorageError(PersistenceError):
    """File store rejected a key or failed to write."""

    pass


class SourceAssetError(ServiceError):
    """Referenced source asset is missing or belongs to another user."""

    pass
