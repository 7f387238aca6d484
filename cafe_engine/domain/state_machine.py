# cafe_engine/domain/state_machine.py

from enum import Enum
from typing import Dict, Set

from cafe_engine.domain.exceptions import InvalidStateTransitionError


class BookingStatus(str, Enum):
    BOOKED = "Booked"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class TerminalStatus(str, Enum):
    AVAILABLE = "Available"
    ACTIVE = "Active"
    UNDER_MAINTENANCE = "Under Maintenance"


class PaymentStatus(str, Enum):
    NOT_SET = "not-set"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class BookingSource(str, Enum):
    WALK_IN = "walk-in"
    MOBILE = "mobile"


class _TransitionTable:
    """
    Shared lookup logic for a status enum and its legal transitions.
    Subclasses provide _STATUS_TYPE and _ALLOWED_TRANSITIONS.
    """

    _STATUS_TYPE: type = Enum
    _ALLOWED_TRANSITIONS: Dict[Enum, Set[Enum]] = {}

    @classmethod
    def can_transition(cls, from_status, to_status) -> bool:
        """
        Returns True if transition is allowed.
        """
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(cls, from_status, to_status) -> None:
        """
        Raises InvalidStateTransitionError if transition is illegal.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransitionError(
                from_state=from_status.value,
                to_state=to_status.value,
            )

    @classmethod
    def is_terminal(cls, status) -> bool:
        """
        Returns True if the state is terminal (no further transitions allowed).
        """
        cls._ensure_valid_status(status)
        return len(cls._ALLOWED_TRANSITIONS.get(status, set())) == 0

    @classmethod
    def get_allowed_transitions(cls, status) -> Set:
        cls._ensure_valid_status(status)
        return cls._ALLOWED_TRANSITIONS.get(status, set())

    @classmethod
    def _ensure_valid_status(cls, status) -> None:
        if not isinstance(status, cls._STATUS_TYPE):
            raise TypeError(
                f"Expected {cls._STATUS_TYPE.__name__}, got {type(status)}"
            )


class BookingStateMachine(_TransitionTable):
    """
    Central lifecycle controller for booking transitions.
    Completed and Cancelled are absorbing.
    """

    _STATUS_TYPE = BookingStatus
    _ALLOWED_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
        BookingStatus.BOOKED: {
            BookingStatus.ACTIVE,
            BookingStatus.CANCELLED,
        },
        BookingStatus.ACTIVE: {
            BookingStatus.COMPLETED,
            BookingStatus.CANCELLED,
        },
        BookingStatus.COMPLETED: set(),
        BookingStatus.CANCELLED: set(),
    }


class TerminalStateMachine(_TransitionTable):
    """
    Terminal status transitions. A terminal only goes into maintenance
    from Available, never while a session holds it.
    """

    _STATUS_TYPE = TerminalStatus
    _ALLOWED_TRANSITIONS: Dict[TerminalStatus, Set[TerminalStatus]] = {
        TerminalStatus.AVAILABLE: {
            TerminalStatus.ACTIVE,
            TerminalStatus.UNDER_MAINTENANCE,
        },
        TerminalStatus.ACTIVE: {
            TerminalStatus.AVAILABLE,
        },
        TerminalStatus.UNDER_MAINTENANCE: {
            TerminalStatus.AVAILABLE,
        },
    }


_STATUS_RANK = {
    BookingStatus.BOOKED: 0,
    BookingStatus.ACTIVE: 1,
    BookingStatus.COMPLETED: 2,
    BookingStatus.CANCELLED: 2,
}


def status_rank(status: BookingStatus) -> int:
    """Ordering used to check that booking status only ever moves forward."""
    return _STATUS_RANK[status]
