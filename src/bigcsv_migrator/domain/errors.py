"""Domain exceptions for migration operations."""


class MigrationError(Exception):
    """Base class for migration errors."""


class NotFoundError(MigrationError):
    """Raised when a job, batch, file task or split cannot be found."""


class ConflictError(MigrationError):
    """Raised when an operation conflicts with current state."""


class MigrationValidationError(MigrationError):
    """Raised when request or descriptor validation fails."""


class DdlError(MigrationValidationError):
    """Raised when a column-definition file is missing or malformed."""


class TranscodeFatalError(MigrationError):
    """Raised when transcoding must abort the whole file."""


class TargetDatabaseError(MigrationError):
    """Raised when the target database rejects a statement or is unreachable."""


class DiffLimitExceededError(MigrationError):
    """Raised when a diff writer reached its configured maximum."""


class ClusterForwardError(MigrationError):
    """Raised when forwarding a request to the owning node fails."""


__all__ = [
    "ClusterForwardError",
    "ConflictError",
    "DdlError",
    "DiffLimitExceededError",
    "MigrationError",
    "MigrationValidationError",
    "NotFoundError",
    "TargetDatabaseError",
    "TranscodeFatalError",
]
