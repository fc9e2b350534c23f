from datetime import datetime

import pytest

from kidleague.clock import FixedClock
from kidleague.models import Participant
from kidleague.store import InMemoryStore

# A Wednesday; the current week starts Monday 2024-05-13.
NOW = datetime(2024, 5, 15, 12, 0)


class ScriptedRandom:
    """Random source returning queued values; ``choice`` always takes the first candidate."""

    def __init__(self, values=()) -> None:
        self.values = list(values)

    def random(self) -> float:
        if not self.values:
            raise AssertionError("ScriptedRandom ran out of values")
        return self.values.pop(0)

    def choice(self, seq):
        return seq[0]


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def store(clock: FixedClock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def family(store: InMemoryStore) -> InMemoryStore:
    store.add_participant(Participant("ava", "fam-1", "Ava", avatar="fox", level=3), balance=100)
    store.add_participant(Participant("ben", "fam-1", "Ben", avatar="owl", level=12), balance=40)
    store.add_participant(Participant("cleo", "fam-1", "Cleo", level=30), balance=0)
    return store
