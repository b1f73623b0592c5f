"""Secret Santa draw (derangement by randomized retry).

Guarantees for a successful draw over n >= 3 participants:
  1. No participant is assigned to themselves.
  2. Every participant gives to exactly one other participant.
  3. Every participant receives from exactly one other participant.

Algorithm: walk the participants in input order, picking each recipient
uniformly from the remaining pool minus the giver. If the only id left for a
giver is their own, the attempt is a dead end and restarts from scratch. A
completed attempt is re-validated before being returned. The retry budget is a
safety valve; for n >= 3 an attempt succeeds with substantial probability.

The engine is pure: persistence, status transitions and notifications belong
to the caller (see ``app.services.draws``).
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence

from app.config import LOTTERY_SETTINGS


@dataclass(frozen=True)
class LotteryParticipant:
    id: str
    name: str = ""


class LotteryError(Exception):
    """Base class for draw failures; no partial assignment exists when raised."""


class InsufficientParticipantsError(LotteryError):
    def __init__(self, count: int, minimum: int):
        super().__init__(f"At least {minimum} participants are required for Secret Santa (got {count})")
        self.count = count
        self.minimum = minimum


class UnableToGenerateAssignmentsError(LotteryError):
    def __init__(self, attempts: int):
        super().__init__(f"Failed to generate valid Secret Santa assignments after {attempts} attempts")
        self.attempts = attempts


def validate_lottery_assignments(
    participants: Sequence[LotteryParticipant],
    assignments: Mapping[str, str],
) -> bool:
    """True iff ``assignments`` is a bijection over the participants with no fixed points."""
    if len(assignments) != len(participants):
        return False
    ids = {p.id for p in participants}
    if len(ids) != len(participants):
        return False
    if set(assignments.keys()) != ids:
        return False

    received: Dict[str, int] = {}
    for giver_id, recipient_id in assignments.items():
        if giver_id == recipient_id:
            return False
        received[recipient_id] = received.get(recipient_id, 0) + 1

    return all(received.get(pid) == 1 for pid in ids)


class LotteryEngine:
    def __init__(
        self,
        max_attempts: Optional[int] = None,
        min_participants: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ):
        self.max_attempts = int(max_attempts if max_attempts is not None else LOTTERY_SETTINGS["max_attempts"])
        self.min_participants = int(
            min_participants if min_participants is not None else LOTTERY_SETTINGS["min_participants"]
        )
        # SystemRandom by default; pass a seeded Random for reproducible draws
        self._rng = rng or random.SystemRandom()

    def _attempt(self, participants: Sequence[LotteryParticipant]) -> Optional[Dict[str, str]]:
        available = [p.id for p in participants]
        assignments: Dict[str, str] = {}
        for participant in participants:
            candidates = [pid for pid in available if pid != participant.id]
            if not candidates:
                return None  # dead end: only the giver is left
            recipient = self._rng.choice(candidates)
            assignments[participant.id] = recipient
            available.remove(recipient)
        return assignments

    def draw(self, participants: Sequence[LotteryParticipant]) -> Dict[str, str]:
        if len(participants) < self.min_participants:
            raise InsufficientParticipantsError(len(participants), self.min_participants)
        if len({p.id for p in participants}) != len(participants):
            raise ValueError("Participant ids must be unique")

        for _ in range(self.max_attempts):
            assignments = self._attempt(participants)
            if assignments is not None and validate_lottery_assignments(participants, assignments):
                return assignments

        raise UnableToGenerateAssignmentsError(self.max_attempts)


def run_secret_santa_lottery(participants: Sequence[LotteryParticipant]) -> Dict[str, str]:
    """Draw with the configured defaults."""
    return LotteryEngine().draw(participants)


__all__ = [
    "LotteryParticipant",
    "LotteryEngine",
    "LotteryError",
    "InsufficientParticipantsError",
    "UnableToGenerateAssignmentsError",
    "validate_lottery_assignments",
    "run_secret_santa_lottery",
]
