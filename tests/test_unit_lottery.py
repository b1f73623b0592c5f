import random
from collections import Counter
import pytest
from app.services.lottery import (
    InsufficientParticipantsError,
    LotteryEngine,
    LotteryParticipant,
    UnableToGenerateAssignmentsError,
    run_secret_santa_lottery,
    validate_lottery_assignments,
)


def _people(n: int):
    return [LotteryParticipant(id=str(i), name=f"P{i}") for i in range(1, n + 1)]


@pytest.mark.parametrize("n", range(3, 51))
def test_draw_is_a_derangement(n):
    participants = _people(n)
    for _ in range(5):
        assignments = run_secret_santa_lottery(participants)
        assert validate_lottery_assignments(participants, assignments)
        assert all(giver != recipient for giver, recipient in assignments.items())
        assert sorted(assignments.values()) == sorted(p.id for p in participants)


def test_recipients_are_spread_across_draws():
    participants = _people(5)
    engine = LotteryEngine(rng=random.Random(2024))
    trials = 4000
    counts = Counter(engine.draw(participants)["1"] for _ in range(trials))

    assert set(counts) == {"2", "3", "4", "5"}
    fair_share = trials / 4
    for recipient, hits in counts.items():
        assert fair_share / 2 < hits < fair_share * 2, (recipient, counts)


def test_three_participants_always_form_a_cycle():
    participants = _people(3)
    seen = set()
    for _ in range(100):
        assignments = run_secret_santa_lottery(participants)
        seen.add(tuple(sorted(assignments.items())))
        # the only derangements of 3 elements are the two 3-cycles
        assert assignments["1"] != "1"
        assert assignments[assignments[assignments["1"]]] == "1"
    assert seen == {
        (("1", "2"), ("2", "3"), ("3", "1")),
        (("1", "3"), ("2", "1"), ("3", "2")),
    }


def test_too_few_participants():
    with pytest.raises(InsufficientParticipantsError) as exc:
        run_secret_santa_lottery(_people(2))
    assert exc.value.count == 2
    assert exc.value.minimum == 3
    assert "At least 3 participants" in str(exc.value)


def test_duplicate_ids_rejected():
    participants = [LotteryParticipant("1"), LotteryParticipant("1"), LotteryParticipant("2")]
    with pytest.raises(ValueError):
        run_secret_santa_lottery(participants)


def test_seeded_rng_is_reproducible():
    participants = _people(8)
    first = LotteryEngine(rng=random.Random(42)).draw(participants)
    second = LotteryEngine(rng=random.Random(42)).draw(participants)
    assert first == second


def test_exhausted_attempts_raise():
    class Stuck(random.Random):
        def choice(self, seq):
            return seq[0]

    # first-candidate picks: 1->2, 2->1, then 3 is left with only itself
    engine = LotteryEngine(max_attempts=5, rng=Stuck())
    with pytest.raises(UnableToGenerateAssignmentsError) as exc:
        engine.draw(_people(3))
    assert exc.value.attempts == 5


def test_validator_rejects_bad_maps():
    participants = _people(3)
    assert validate_lottery_assignments(participants, {"1": "2", "2": "3", "3": "1"})
    assert not validate_lottery_assignments(participants, {"1": "1", "2": "3", "3": "2"})
    assert not validate_lottery_assignments(participants, {"1": "2", "2": "1", "3": "1"})
    assert not validate_lottery_assignments(participants, {"1": "2", "2": "3"})
    assert not validate_lottery_assignments(participants, {"1": "2", "2": "3", "4": "1"})
