from enum import Enum
from typing import Optional, Sequence

from session_mapper import Exercise


class NavigationPhase(str, Enum):
    pending = "pending"
    applied = "applied"


def resolve_exercise_index(exercises: Sequence[Exercise], hint: Optional[str]) -> int:
    """Return the index of the exercise named ``hint``, or 0 when nothing matches.

    Matching ignores case and surrounding whitespace on the hint but is
    otherwise exact.
    """
    if not hint or not exercises:
        return 0
    wanted = hint.strip().lower()
    for index, exercise in enumerate(exercises):
        if exercise.name.lower() == wanted:
            return index
    return 0


class NavigationState:
    """One-shot restoration of the current exercise after returning to a session."""

    def __init__(self, hint: Optional[str] = None) -> None:
        self.hint = hint
        self.phase = NavigationPhase.pending if hint else NavigationPhase.applied

    def reset(self, hint: Optional[str]) -> None:
        """Start a new return event; without a hint it resolves to the first exercise."""
        self.hint = hint
        self.phase = NavigationPhase.pending

    def apply(self, exercises: Sequence[Exercise]) -> Optional[int]:
        """Resolve the hint once exercises are available.

        Returns ``None`` while there is nothing to apply, either because the
        hint was already consumed or because the exercises have not loaded.
        """
        if self.phase is NavigationPhase.applied or not exercises:
            return None
        self.phase = NavigationPhase.applied
        return resolve_exercise_index(exercises, self.hint)
