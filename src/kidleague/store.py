"""Collaborator interfaces consumed by the engine and an in-memory implementation."""

from __future__ import annotations

import threading
from collections import defaultdict
from datetime import date, datetime
from typing import Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from .clock import Clock, SystemClock
from .exceptions import DuplicateRecordError, InsufficientFundsError, ParticipantNotFoundError
from .models import (
    CONNECTION_ACCEPTED,
    CONNECTION_PENDING,
    TRANSACTION_BONUS,
    TRANSACTION_SPENT,
    Achievement,
    CareInteraction,
    Category,
    ChampionRecord,
    CurrencyTransaction,
    DailyAllowance,
    FeedEvent,
    Participant,
    ProductType,
    PromotedActivity,
    RankingSettings,
    RankSnapshot,
    Scope,
    TaskCompletion,
)


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------
class ActivityStore(Protocol):
    def list_task_completions(
        self,
        participant_id: str,
        approved_only: bool,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Sequence[TaskCompletion]:
        ...

    def list_currency_transactions(
        self,
        participant_id: str,
        subtype: Optional[str],
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Sequence[CurrencyTransaction]:
        ...

    def list_promoted_activity(
        self,
        participant_id: str,
        state: Optional[str],
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Sequence[PromotedActivity]:
        ...

    def list_care_interactions(
        self,
        participant_id: str,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Sequence[CareInteraction]:
        ...


class ParticipantDirectory(Protocol):
    def get_participant(self, participant_id: str) -> Optional[Participant]:
        ...

    def list_group_members(self, group_id: str) -> Sequence[Participant]:
        ...

    def list_accepted_connections(self, participant_id: str) -> Sequence[str]:
        ...


class BalanceMutator(Protocol):
    def adjust_currency(self, participant_id: str, delta: int, *, reason: str = "") -> int:
        ...

    def adjust_experience(self, participant_id: str, delta: int) -> int:
        ...

    def currency_balance(self, participant_id: str) -> int:
        ...

    def add_achievement(self, achievement: Achievement) -> None:
        ...

    def add_collectible_item(self, participant_id: str, item_id: str, *, premium_variant: bool = False) -> None:
        ...

    def has_collectible_item(self, participant_id: str, item_id: str) -> bool:
        ...

    def remove_collectible_item(self, participant_id: str, item_id: str) -> None:
        ...


class FeedSink(Protocol):
    def publish_event(
        self,
        group_id: str,
        participant_id: str,
        type: str,
        message: str,
        payload: Mapping[str, object],
    ) -> FeedEvent:
        ...


class SnapshotStore(Protocol):
    def replace_snapshot(self, snapshot: RankSnapshot) -> None:
        """Insert or overwrite the single snapshot keyed by (group, scope, category, window start)."""

    def get_snapshot(
        self,
        group_id: str,
        scope: Scope,
        category: Category,
        window_start: datetime,
    ) -> Optional[RankSnapshot]:
        ...


class ChampionStore(Protocol):
    def insert_champion(self, record: ChampionRecord) -> None:
        """Insert ``record``; raise :class:`DuplicateRecordError` if its key exists."""

    def list_champions(
        self,
        group_id: str,
        participant_id: str,
        window_start: datetime,
    ) -> Sequence[ChampionRecord]:
        ...


class AllowanceStore(Protocol):
    def get_allowance(self, participant_id: str, product_type: ProductType) -> Optional[DailyAllowance]:
        ...

    def save_allowance(self, allowance: DailyAllowance) -> None:
        ...

    def consume_unit(
        self,
        participant_id: str,
        product_type: ProductType,
        today: date,
        daily_grant: int,
    ) -> Optional[DailyAllowance]:
        """Roll the allowance to ``today`` and take one unit in a single step.

        Returns the updated allowance, or ``None`` when no unit is left.
        """
        ...

    def refund_unit(self, participant_id: str, product_type: ProductType) -> None:
        ...

    def grant_units(
        self,
        participant_id: str,
        product_type: ProductType,
        today: date,
        daily_grant: int,
        units: int,
    ) -> DailyAllowance:
        ...


class SettingsStore(Protocol):
    def get_ranking_settings(self, group_id: str) -> Optional[RankingSettings]:
        ...

    def save_ranking_settings(self, settings: RankingSettings) -> None:
        ...


class EngineStore(
    ActivityStore,
    ParticipantDirectory,
    BalanceMutator,
    FeedSink,
    SnapshotStore,
    ChampionStore,
    AllowanceStore,
    SettingsStore,
    Protocol,
):
    """Everything the engine facade needs from a single backing store."""


def _within(moment: Optional[datetime], start: Optional[datetime], end: Optional[datetime]) -> bool:
    if moment is None:
        return False
    if start is not None and moment < start:
        return False
    if end is not None and moment > end:
        return False
    return True


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------
class InMemoryStore:
    """Dictionary backed store implementing every collaborator interface.

    Uniqueness of champion records is enforced on the record key, mirroring
    the constraint the relational store declares. Mutations of balances and
    allowances run under one lock so two concurrent rewards cannot spend
    the same unit or point.
    """

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._participants: Dict[str, Participant] = {}
        self._connections: List[Tuple[str, str, str]] = []
        self._tasks: List[TaskCompletion] = []
        self._transactions: List[CurrencyTransaction] = []
        self._promoted: List[PromotedActivity] = []
        self._care: List[CareInteraction] = []
        self._balances: Dict[str, int] = defaultdict(int)
        self._experience: Dict[str, int] = defaultdict(int)
        self._lifetime_experience: Dict[str, int] = defaultdict(int)
        self._achievements: List[Achievement] = []
        self._collections: Dict[str, Dict[str, bool]] = defaultdict(dict)
        self._feed: List[FeedEvent] = []
        self._snapshots: Dict[tuple, RankSnapshot] = {}
        self._champions: Dict[tuple, ChampionRecord] = {}
        self._allowances: Dict[tuple[str, ProductType], DailyAllowance] = {}
        self._settings: Dict[str, RankingSettings] = {}

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------
    def add_participant(self, participant: Participant, *, balance: int = 0) -> Participant:
        self._participants[participant.participant_id] = participant
        self._balances[participant.participant_id] = balance
        return participant

    def connect(self, participant_id: str, friend_id: str, *, status: str = CONNECTION_ACCEPTED) -> None:
        if status not in {CONNECTION_ACCEPTED, CONNECTION_PENDING}:
            raise ValueError(f"Unsupported connection status: {status!r}")
        self._connections.append((participant_id, friend_id, status))

    def record_task_completion(self, completion: TaskCompletion) -> TaskCompletion:
        self._tasks.append(completion)
        return completion

    def record_transaction(self, transaction: CurrencyTransaction) -> CurrencyTransaction:
        self._transactions.append(transaction)
        return transaction

    def record_promoted_activity(self, activity: PromotedActivity) -> PromotedActivity:
        self._promoted.append(activity)
        return activity

    def record_care_interaction(self, interaction: CareInteraction) -> CareInteraction:
        self._care.append(interaction)
        return interaction

    # ------------------------------------------------------------------
    # ActivityStore
    # ------------------------------------------------------------------
    def list_task_completions(
        self,
        participant_id: str,
        approved_only: bool,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Sequence[TaskCompletion]:
        return tuple(
            task
            for task in self._tasks
            if task.participant_id == participant_id
            and (task.approved or not approved_only)
            and _within(task.submitted_at, start, end)
        )

    def list_currency_transactions(
        self,
        participant_id: str,
        subtype: Optional[str],
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Sequence[CurrencyTransaction]:
        return tuple(
            tx
            for tx in self._transactions
            if tx.participant_id == participant_id
            and (subtype is None or tx.subtype == subtype)
            and _within(tx.created_at, start, end)
        )

    def list_promoted_activity(
        self,
        participant_id: str,
        state: Optional[str],
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Sequence[PromotedActivity]:
        return tuple(
            activity
            for activity in self._promoted
            if activity.participant_id == participant_id
            and (state is None or activity.status == state)
            and _within(activity.completed_at, start, end)
        )

    def list_care_interactions(
        self,
        participant_id: str,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Sequence[CareInteraction]:
        return tuple(
            interaction
            for interaction in self._care
            if interaction.participant_id == participant_id and _within(interaction.occurred_at, start, end)
        )

    # ------------------------------------------------------------------
    # ParticipantDirectory
    # ------------------------------------------------------------------
    def get_participant(self, participant_id: str) -> Optional[Participant]:
        return self._participants.get(participant_id)

    def list_group_members(self, group_id: str) -> Sequence[Participant]:
        return tuple(p for p in self._participants.values() if p.group_id == group_id)

    def list_accepted_connections(self, participant_id: str) -> Sequence[str]:
        outgoing = [
            friend for owner, friend, status in self._connections
            if owner == participant_id and status == CONNECTION_ACCEPTED
        ]
        incoming = [
            owner for owner, friend, status in self._connections
            if friend == participant_id and status == CONNECTION_ACCEPTED
        ]
        return tuple(outgoing + incoming)

    # ------------------------------------------------------------------
    # BalanceMutator
    # ------------------------------------------------------------------
    def _require(self, participant_id: str) -> Participant:
        participant = self._participants.get(participant_id)
        if participant is None:
            raise ParticipantNotFoundError(f"Participant '{participant_id}' does not exist.")
        return participant

    def adjust_currency(self, participant_id: str, delta: int, *, reason: str = "") -> int:
        participant = self._require(participant_id)
        with self._lock:
            balance = self._balances[participant_id] + delta
            if balance < 0:
                raise InsufficientFundsError(
                    f"Participant '{participant_id}' has {self._balances[participant_id]} points; {-delta} required."
                )
            self._balances[participant_id] = balance
            if delta:
                self._transactions.append(
                    CurrencyTransaction(
                        participant_id=participant_id,
                        group_id=participant.group_id,
                        amount=abs(delta),
                        created_at=self._clock.now(),
                        subtype=TRANSACTION_BONUS if delta > 0 else TRANSACTION_SPENT,
                        description=reason,
                    )
                )
        return balance

    def adjust_experience(self, participant_id: str, delta: int) -> int:
        self._require(participant_id)
        with self._lock:
            self._experience[participant_id] += delta
            if delta > 0:
                self._lifetime_experience[participant_id] += delta
            return self._experience[participant_id]

    def currency_balance(self, participant_id: str) -> int:
        self._require(participant_id)
        return self._balances[participant_id]

    def experience(self, participant_id: str) -> int:
        return self._experience[participant_id]

    def lifetime_experience(self, participant_id: str) -> int:
        return self._lifetime_experience[participant_id]

    def add_achievement(self, achievement: Achievement) -> None:
        self._require(achievement.participant_id)
        self._achievements.append(achievement)

    def achievements(self, participant_id: str) -> Tuple[Achievement, ...]:
        return tuple(a for a in self._achievements if a.participant_id == participant_id)

    def add_collectible_item(self, participant_id: str, item_id: str, *, premium_variant: bool = False) -> None:
        self._require(participant_id)
        with self._lock:
            collection = self._collections[participant_id]
            if item_id in collection:
                raise DuplicateRecordError(f"Participant '{participant_id}' already owns '{item_id}'.")
            collection[item_id] = premium_variant

    def has_collectible_item(self, participant_id: str, item_id: str) -> bool:
        return item_id in self._collections.get(participant_id, {})

    def remove_collectible_item(self, participant_id: str, item_id: str) -> None:
        with self._lock:
            self._collections.get(participant_id, {}).pop(item_id, None)

    def collection(self, participant_id: str) -> Mapping[str, bool]:
        return dict(self._collections.get(participant_id, {}))

    # ------------------------------------------------------------------
    # FeedSink
    # ------------------------------------------------------------------
    def publish_event(
        self,
        group_id: str,
        participant_id: str,
        type: str,
        message: str,
        payload: Mapping[str, object],
    ) -> FeedEvent:
        event = FeedEvent(
            group_id=group_id,
            participant_id=participant_id,
            type=type,
            message=message,
            payload=dict(payload),
            created_at=self._clock.now(),
        )
        self._feed.append(event)
        return event

    def feed(self, group_id: str) -> Tuple[FeedEvent, ...]:
        return tuple(event for event in self._feed if event.group_id == group_id)

    # ------------------------------------------------------------------
    # SnapshotStore / ChampionStore
    # ------------------------------------------------------------------
    def replace_snapshot(self, snapshot: RankSnapshot) -> None:
        self._snapshots[snapshot.key] = snapshot

    def get_snapshot(
        self,
        group_id: str,
        scope: Scope,
        category: Category,
        window_start: datetime,
    ) -> Optional[RankSnapshot]:
        return self._snapshots.get((group_id, scope, category, window_start))

    def snapshots(self, group_id: str) -> Tuple[RankSnapshot, ...]:
        return tuple(s for s in self._snapshots.values() if s.group_id == group_id)

    def insert_champion(self, record: ChampionRecord) -> None:
        with self._lock:
            if record.key in self._champions:
                raise DuplicateRecordError(f"Champion record {record.key!r} already exists.")
            self._champions[record.key] = record

    def list_champions(
        self,
        group_id: str,
        participant_id: str,
        window_start: datetime,
    ) -> Sequence[ChampionRecord]:
        return tuple(
            record
            for record in self._champions.values()
            if record.group_id == group_id
            and record.participant_id == participant_id
            and record.window_start == window_start
        )

    def champions(self, group_id: str) -> Tuple[ChampionRecord, ...]:
        return tuple(record for record in self._champions.values() if record.group_id == group_id)

    # ------------------------------------------------------------------
    # AllowanceStore / SettingsStore
    # ------------------------------------------------------------------
    def get_allowance(self, participant_id: str, product_type: ProductType) -> Optional[DailyAllowance]:
        allowance = self._allowances.get((participant_id, product_type))
        if allowance is None:
            return None
        return DailyAllowance(
            participant_id=allowance.participant_id,
            product_type=allowance.product_type,
            last_grant_date=allowance.last_grant_date,
            units_available=allowance.units_available,
            lifetime_units_used=allowance.lifetime_units_used,
        )

    def save_allowance(self, allowance: DailyAllowance) -> None:
        with self._lock:
            self._allowances[(allowance.participant_id, allowance.product_type)] = DailyAllowance(
                participant_id=allowance.participant_id,
                product_type=allowance.product_type,
                last_grant_date=allowance.last_grant_date,
                units_available=allowance.units_available,
                lifetime_units_used=allowance.lifetime_units_used,
            )

    def _rolled_allowance(
        self,
        participant_id: str,
        product_type: ProductType,
        today: date,
        daily_grant: int,
    ) -> DailyAllowance:
        allowance = self._allowances.get((participant_id, product_type))
        if allowance is None:
            allowance = DailyAllowance(
                participant_id=participant_id,
                product_type=product_type,
                last_grant_date=today,
                units_available=daily_grant,
            )
            self._allowances[(participant_id, product_type)] = allowance
        else:
            allowance.roll_to(today, daily_grant)
        return allowance

    def consume_unit(
        self,
        participant_id: str,
        product_type: ProductType,
        today: date,
        daily_grant: int,
    ) -> Optional[DailyAllowance]:
        with self._lock:
            allowance = self._rolled_allowance(participant_id, product_type, today, daily_grant)
            if allowance.units_available <= 0:
                return None
            allowance.consume()
            return self.get_allowance(participant_id, product_type)

    def refund_unit(self, participant_id: str, product_type: ProductType) -> None:
        with self._lock:
            allowance = self._allowances.get((participant_id, product_type))
            if allowance is not None:
                allowance.refund()

    def grant_units(
        self,
        participant_id: str,
        product_type: ProductType,
        today: date,
        daily_grant: int,
        units: int,
    ) -> DailyAllowance:
        with self._lock:
            allowance = self._rolled_allowance(participant_id, product_type, today, daily_grant)
            allowance.units_available += units
            return self.get_allowance(participant_id, product_type)

    def get_ranking_settings(self, group_id: str) -> Optional[RankingSettings]:
        return self._settings.get(group_id)

    def save_ranking_settings(self, settings: RankingSettings) -> None:
        self._settings[settings.group_id] = settings


__all__ = [
    "ActivityStore",
    "AllowanceStore",
    "BalanceMutator",
    "ChampionStore",
    "EngineStore",
    "FeedSink",
    "InMemoryStore",
    "ParticipantDirectory",
    "SettingsStore",
    "SnapshotStore",
]
