"""
Domain-specific exception hierarchy for the scheduling core.

Validation failures (overlap, outside business hours, ...) are never raised;
they travel as ``Rejection`` values. The exceptions below cover configuration
mistakes, contract violations and persistence failures.
"""


class SchedulingError(Exception):
    """Base class for all application-level errors."""


class ConfigurationError(SchedulingError):
    """Raised when business-hours configuration is malformed."""


class IntervalNotFoundError(SchedulingError):
    """Raised when an operation references an unknown appointment or blocked time."""

    def __init__(self, interval_id: str, message: str | None = None):
        self.interval_id = interval_id
        super().__init__(message or f"Interval not found: {interval_id}")


class ServiceNotFoundError(SchedulingError):
    """Raised when a service id cannot be resolved to a bookable duration."""

    def __init__(self, service_id: str, message: str | None = None):
        self.service_id = service_id
        super().__init__(message or f"Service not found: {service_id}")


class AuthorizationError(SchedulingError):
    """Raised when the current actor's role may not request an operation."""


class PersistenceError(SchedulingError):
    """Base class for failures reported by the record store."""


class PersistenceUnavailableError(PersistenceError):
    """
    The record store could not be reached or answered with a server error.

    ``retryable`` is only True for idempotent reads. Writes must not be
    retried blindly since the first attempt may already have been committed.
    """

    def __init__(self, message: str, retryable: bool = False):
        self.retryable = retryable
        super().__init__(message)


class ConstraintViolationError(PersistenceError):
    """The record store rejected a write because of a uniqueness/exclusion constraint."""

    def __init__(self, message: str, conflicting_id: str | None = None, code: str | None = None):
        self.conflicting_id = conflicting_id
        self.code = code
        super().__init__(message)


class RecordNotFoundError(PersistenceError):
    """An update or delete targeted a record that does not exist."""

    def __init__(self, table: str, record_id: str):
        self.table = table
        self.record_id = record_id
        super().__init__(f"No record {record_id!r} in {table}")


class RecordRejectedError(PersistenceError):
    """The record store refused a write for a reason other than a time conflict, e.g. an unknown foreign key."""

    def __init__(self, message: str, code: str | None = None):
        self.code = code
        super().__init__(message)
