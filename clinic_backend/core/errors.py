"""Typed failures raised by the scheduling core."""


class SchedulingError(Exception):
    """Base class for every failure the scheduling core reports to callers."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(SchedulingError):
    """The request is malformed or cannot be honoured as stated."""


class NotFoundError(SchedulingError):
    """A referenced therapist, service, branch, client or record does not exist."""


class ConflictError(SchedulingError):
    """The requested time is no longer free."""
