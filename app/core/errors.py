"""Domain errors raised by the scheduling services.

Routes translate these into HTTP responses; the reminder sweep catches them per
appointment and folds them into its summary.
"""


class SchedulingError(Exception):
    """Base class for every error raised by the scheduling core."""


class ValidationError(SchedulingError):
    """Malformed input, rejected before any lookup."""


class NotFoundError(SchedulingError):
    """A record expected to exist does not."""


class ConflictError(SchedulingError):
    """An appointment would overlap an existing one."""


class IllegalTransitionError(SchedulingError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move appointment from '{current}' to '{target}'")
        self.current = current
        self.target = target


class GatewayError(SchedulingError):
    """The notification gateway could not deliver a message."""
