"""
Error taxonomy for the repricing engine.

Controllers translate these into HTTP statuses; the engine itself only
raises them.
"""


class RepricerError(Exception):
    """Base class for all repricer errors."""

    status_code: int = 500
    code: str = "REPRICER_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(RepricerError):
    """Bad or missing strategy/rule fields, or malformed input."""
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(RepricerError):
    """Unknown strategy, rule, listing or competitor."""
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(RepricerError):
    """Duplicate name, or deleting a configuration that is still applied."""
    status_code = 409
    code = "CONFLICT"


class UpstreamUnavailable(RepricerError):
    """A collaborator fetch or push failed or timed out."""
    status_code = 502
    code = "UPSTREAM_UNAVAILABLE"
