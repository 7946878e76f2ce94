"""
Bring-up exception hierarchy.

Stages never let these escape; they are carried inside `Err` results and
only turned into a process exit by the Bootstrapper.
"""

from typing import Optional


class BootstrapError(Exception):
    """
    Base exception for all bring-up errors.

    Catch this to handle any failure of the bring-up protocol without
    caring which stage produced it.
    """

    pass


class InitError(BootstrapError):
    """
    Raised (or returned inside `Err`) when a bring-up stage fails.

    Attributes:
        stage: Name of the failing stage ("transport", "persistence",
            "observability", "cors", "routes", "error-handler", "listen")
        cause: The underlying exception, also chained as `__cause__`

    Example:
        >>> err = InitError("persistence", ConnectionError("refused"))
        >>> str(err)
        'persistence initialization failed: refused'
    """

    def __init__(self, stage: str, cause: Optional[BaseException] = None):
        detail = str(cause) if cause is not None and str(cause) else type(cause).__name__
        message = f"{stage} initialization failed"
        if cause is not None:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.stage = stage
        self.cause = cause
        self.__cause__ = cause


class BootTransitionError(BootstrapError):
    """
    Raised when the Bootstrapper attempts a state change the
    bring-up state machine does not allow (skipping or reordering stages).

    Attributes:
        from_state: The state being left
        to_state: The state that was requested
    """

    def __init__(self, from_state: str, to_state: str):
        super().__init__(f"Cannot transition bring-up from {from_state} to {to_state}")
        self.from_state = from_state
        self.to_state = to_state


class ContextFrozenError(BootstrapError):
    """Raised when a service context is mutated after serving has begun."""

    pass


class RouteRegistrationError(BootstrapError):
    """Raised by route tables that cannot register their handlers."""

    pass
