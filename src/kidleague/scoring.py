"""Per-participant score aggregation over raw activity records."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Dict, Union

from .clock import Clock, SystemClock
from .config import STREAK_LOOKBACK_DAYS
from .models import (
    PROMOTED_STATUS_COMPLETED,
    TRANSACTION_EARNED,
    Category,
    Window,
)
from .store import ActivityStore


class ScoreAggregator:
    """Compute a non-negative score for one participant, category and window."""

    def __init__(
        self,
        activity: ActivityStore,
        *,
        clock: Clock | None = None,
        streak_follows_window: bool = False,
        streak_lookback_days: int = STREAK_LOOKBACK_DAYS,
    ) -> None:
        self._activity = activity
        self._clock = clock or SystemClock()
        self._streak_follows_window = streak_follows_window
        self._streak_lookback = timedelta(days=streak_lookback_days)
        self._scorers: Dict[Category, Callable[[str, Window], int]] = {
            Category.EXPERIENCE: self.experience,
            Category.TASKS_COMPLETED: self.tasks_completed,
            Category.PROMOTED_EARNINGS: self.promoted_earnings,
            Category.STREAK: self.streak,
            Category.CARE_INTERACTIONS: self.care_interactions,
        }

    def score(self, participant_id: str, category: Union[Category, str], window: Window) -> int:
        scorer = self._scorers[Category.parse(category)]
        return max(scorer(participant_id, window), 0)

    def experience(self, participant_id: str, window: Window) -> int:
        transactions = self._activity.list_currency_transactions(
            participant_id, TRANSACTION_EARNED, window.start, window.end
        )
        return sum(tx.amount for tx in transactions)

    def tasks_completed(self, participant_id: str, window: Window) -> int:
        return len(self._activity.list_task_completions(participant_id, True, window.start, window.end))

    def promoted_earnings(self, participant_id: str, window: Window) -> int:
        activities = self._activity.list_promoted_activity(
            participant_id, PROMOTED_STATUS_COMPLETED, window.start, window.end
        )
        return sum(activity.offered_amount for activity in activities)

    def care_interactions(self, participant_id: str, window: Window) -> int:
        # Placeholder metric: every interaction counts once.
        return len(self._activity.list_care_interactions(participant_id, window.start, window.end))

    def streak(self, participant_id: str, window: Window) -> int:
        """Count distinct days with an approved task completion.

        By default the lookback trails the clock's current instant and ignores
        ``window``; ``streak_follows_window`` makes it honour the window.
        """

        start, end = self.streak_bounds(window)
        completions = self._activity.list_task_completions(participant_id, True, start, end)
        return len({completion.submitted_at.date() for completion in completions})

    def streak_bounds(self, window: Window) -> tuple[datetime, datetime]:
        if self._streak_follows_window:
            return window.start, window.end
        now = self._clock.now()
        return now - self._streak_lookback, now


__all__ = ["ScoreAggregator"]
