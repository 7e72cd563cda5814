"""Error taxonomy shared by the store, the coordinator and the entry point."""


class SchedulerError(Exception):
    """Base class for scheduling errors. ``code`` is stable for callers."""

    code = "scheduler_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "error": self.message}


class ValidationError(SchedulerError):
    """Malformed rule or missing required field."""

    code = "validation_error"


class NotFoundError(SchedulerError):
    code = "not_found"


class UnauthorizedError(SchedulerError):
    """The caller's owner key does not match the entry's."""

    code = "unauthorized"


class QuotaExceededError(SchedulerError):
    """The owner already has as many enabled entries as their tier allows."""

    code = "quota_exceeded"


class PersistenceFailure(SchedulerError):
    code = "persistence_failure"


class ActionFailure(SchedulerError):
    """The external action did not succeed. Recorded, never fatal to a cycle."""

    code = "action_failure"
