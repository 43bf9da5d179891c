"""
Exceptions raised by the retention policy engine.

All errors are fatal to the call that raised them. A partially evaluated
partition is never returned, since a wrong keep/discard split can lead to
over-deletion downstream.
"""


class RetentionPolicyError(Exception):
    """Base class for all retention policy errors."""
    pass


class InvalidTimestamp(RetentionPolicyError, ValueError):
    """Raised when a candidate or reference date cannot be coerced to an instant."""

    def __init__(self, value, reason: str | None = None):
        self.value = value
        self.reason = reason
        message = f"Cannot interpret {value!r} as a timestamp"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class InvalidRule(RetentionPolicyError, ValueError):
    """Raised when a retention rule or engine configuration is malformed."""
    pass
