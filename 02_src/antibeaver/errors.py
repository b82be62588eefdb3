"""Governance engine exceptions."""


class GovernanceError(Exception):
    """Base class for governance engine errors."""


class InvalidThoughtError(GovernanceError, ValueError):
    """Thought content is not a non-empty string."""


class StoreUnavailableError(GovernanceError):
    """The durable thought store could not complete an operation in time."""

    def __init__(self, operation: str, cause: BaseException | None = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Thought store unavailable during {operation}{detail}")
