# cafe_engine/domain/assignment.py
"""
Matching of a booking's abstract requirements (room, terminal type, count)
against the concrete terminal ids an operator picked.
"""

from collections import Counter
from dataclasses import dataclass

from cafe_engine.domain.exceptions import BookingValidationError, NotFoundError


@dataclass(frozen=True)
class RoomAssignment:
    room_type: str
    terminal_ids: tuple[str, ...]


@dataclass(frozen=True)
class PlannedTerminal:
    room_type: str
    terminal_id: str
    terminal_type: str


def plan_assignment(
    requirements,
    assignments: list[RoomAssignment],
    terminal_types: dict[tuple[str, str], str],
) -> list[PlannedTerminal]:
    """
    requirements: objects with room_type, terminal_type, number_of_terminals.
    terminal_types: (room_type, terminal_id) -> terminal type, for the
    terminals that exist in the cafe.

    Raises BookingValidationError when counts or types do not line up and
    NotFoundError when a picked terminal does not exist in its room.
    """
    if not any(assignment.terminal_ids for assignment in assignments):
        raise BookingValidationError("Please select at least one terminal")

    seen: set[str] = set()
    picked: dict[str, list[str]] = {}
    for assignment in assignments:
        for terminal_id in assignment.terminal_ids:
            if terminal_id in seen:
                raise BookingValidationError("Each terminal can only be selected once")
            seen.add(terminal_id)
            picked.setdefault(assignment.room_type, []).append(terminal_id)

    required: dict[str, Counter] = {}
    for requirement in requirements:
        required.setdefault(requirement.room_type, Counter())[
            requirement.terminal_type
        ] += requirement.number_of_terminals

    for room_type in picked:
        if room_type not in required:
            raise BookingValidationError(f"No terminals were booked in {room_type}")

    planned: list[PlannedTerminal] = []
    for room_type, wanted in required.items():
        chosen = picked.get(room_type, [])
        if not chosen:
            raise BookingValidationError(f"Please select terminals for {room_type}")

        supplied: Counter = Counter()
        for terminal_id in chosen:
            terminal_type = terminal_types.get((room_type, terminal_id))
            if terminal_type is None:
                raise NotFoundError(f"Terminal not found in {room_type}")
            supplied[terminal_type] += 1
            planned.append(PlannedTerminal(room_type, terminal_id, terminal_type))

        for terminal_type, count in wanted.items():
            if supplied[terminal_type] != count:
                raise BookingValidationError(
                    f"Please select exactly {count} {terminal_type}(s) in {room_type}"
                )
        extra = set(supplied) - set(wanted)
        if extra:
            raise BookingValidationError(
                f"{', '.join(sorted(extra))} was not booked in {room_type}"
            )

    return sorted(planned, key=lambda item: item.terminal_id)
