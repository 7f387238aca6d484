

class CafeEngineError(Exception):
    """
    Base exception for all domain-level errors
    inside the cafe session engine.
    """


class BookingValidationError(CafeEngineError):
    """Raised when a request is malformed or inconsistent with the booking."""


class NotFoundError(CafeEngineError):
    """Raised when a booking, room or terminal is unknown to the caller's cafe."""


class WrongStateError(CafeEngineError):
    """Raised when an operation is invalid for the current booking/terminal status."""


class InvalidStateTransitionError(WrongStateError):
    """
    Raised when an illegal state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class OTPRequiredError(WrongStateError):
    """Raised when a mobile booking is assigned before its OTP was verified."""


class ConflictError(CafeEngineError):
    """Raised when a conditional update loses a race."""


class TerminalConflictError(ConflictError):
    """Raised when a selected terminal is no longer available."""


class BookingConflictError(ConflictError):
    """Raised when the booking was transitioned by a concurrent caller."""


class CancellationWindowClosedError(CafeEngineError):
    """Raised when the post-start cancellation window has elapsed."""


class OTPInvalidError(CafeEngineError):
    """Raised when the supplied OTP does not match the booking."""


class OTPConsumedError(CafeEngineError):
    """Raised when the booking's OTP was already used."""
