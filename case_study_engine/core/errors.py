"""Error taxonomy for lifecycle operations."""


class LifecycleError(Exception):
    """Base exception for case study lifecycle errors."""

    pass


class NotFoundError(LifecycleError):
    """Referenced draft, case study or label category does not exist."""

    pass


class ValidationError(LifecycleError):
    """Submitted payload is malformed."""

    pass


class InvalidTransitionError(ValidationError):
    """Requested status change is not allowed from the current status."""

    pass


class BackingStoreError(LifecycleError):
    """Blob store or document generator failed on the critical path."""

    pass


class NonFatalSideEffectError(LifecycleError):
    """Best-effort follow-up step failed after the case study was committed."""

    def __init__(self, step: str, cause: BaseException):
        super().__init__(f"{step} failed: {cause}")
        self.step = step
        self.cause = cause
