"""SQLModel tables and the relational implementation of the collaborator interfaces."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import Column, DateTime, JSON, UniqueConstraint, case, delete, insert, or_, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, select

from .clock import Clock, SystemClock, utcnow
from .config import DATABASE_URL
from .exceptions import DuplicateRecordError, InsufficientFundsError, ParticipantNotFoundError
from .models import (
    CONNECTION_ACCEPTED,
    CONNECTION_PENDING,
    TASK_STATUS_APPROVED,
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
    SnapshotRow,
    TaskCompletion,
    Tier,
)

# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------
# Timestamps are naive UTC (see clock.utcnow) and stored without an offset.


class ParticipantRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    participant_id: str = Field(index=True, unique=True)
    group_id: str = Field(index=True)
    name: str
    avatar: Optional[str] = None
    level: int = 1
    balance: int = 0
    experience: int = 0
    lifetime_experience: int = 0
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())


class ConnectionRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    participant_id: str = Field(index=True)
    friend_id: str = Field(index=True)
    status: str = CONNECTION_PENDING  # pending|accepted


class TaskCompletionRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    participant_id: str = Field(index=True)
    group_id: str
    status: str
    submitted_at: datetime = Field(sa_type=DateTime())


class TransactionRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    participant_id: str = Field(index=True)
    group_id: str
    subtype: str  # earned|spent|bonus
    amount: int
    description: str = ""
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())


class PromotedActivityRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    participant_id: str = Field(index=True)
    group_id: str
    status: str
    offered_amount: int
    completed_at: Optional[datetime] = Field(default=None, sa_type=DateTime())


class CareInteractionRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    participant_id: str = Field(index=True)
    group_id: str
    occurred_at: datetime = Field(sa_type=DateTime())


class AchievementRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    participant_id: str = Field(index=True)
    group_id: str
    achievement_id: str
    name: str
    description: str = ""
    category: str = "special"
    xp_reward: int = 0
    awarded_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())


class CollectibleRecord(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("participant_id", "item_id", name="uq_collectible_owner_item"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    participant_id: str = Field(index=True)
    item_id: str
    premium_variant: bool = False
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())


class FeedEventRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    group_id: str = Field(index=True)
    participant_id: str
    type: str
    message: str
    payload: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())


class SnapshotRecord(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("group_id", "scope", "category", "window_start", name="uq_snapshot_window"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    group_id: str = Field(index=True)
    scope: str
    category: str
    window_start: datetime = Field(sa_type=DateTime())
    window_end: datetime = Field(sa_type=DateTime())
    rows: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())


class ChampionRecordRow(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint(
            "group_id", "participant_id", "scope", "category", "window_start", name="uq_champion_window"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    group_id: str = Field(index=True)
    participant_id: str = Field(index=True)
    scope: str
    category: str
    window_start: datetime = Field(sa_type=DateTime())
    window_end: datetime = Field(sa_type=DateTime())
    score: int = 0
    rewards: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())


class AllowanceRecord(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("participant_id", "product_type", name="uq_allowance_product"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    participant_id: str = Field(index=True)
    product_type: str
    last_grant_date: date
    units_available: int = 0
    lifetime_units_used: int = 0


class RankingSettingsRecord(SQLModel, table=True):
    group_id: str = Field(primary_key=True)
    rankings_enabled: bool = True
    family_enabled: bool = True
    friends_enabled: bool = False
    promoted_enabled: bool = True
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def make_engine(url: str = DATABASE_URL, *, echo: bool = False) -> Engine:
    """Create an engine and make sure every table exists."""

    kwargs: Dict[str, Any] = {"echo": echo}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in {"sqlite://", "sqlite:///:memory:"}:
            # One shared connection, otherwise each session sees an empty database.
            kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    SQLModel.metadata.create_all(engine)
    return engine


def _to_participant(row: ParticipantRecord) -> Participant:
    return Participant(
        participant_id=row.participant_id,
        group_id=row.group_id,
        name=row.name,
        avatar=row.avatar,
        level=row.level,
    )


def _to_snapshot(row: SnapshotRecord) -> RankSnapshot:
    return RankSnapshot(
        group_id=row.group_id,
        scope=Scope(row.scope),
        category=Category(row.category),
        window_start=row.window_start,
        window_end=row.window_end,
        rows=tuple(
            SnapshotRow(
                participant_id=item["participant_id"],
                score=item["score"],
                rank=item["rank"],
                tier=Tier(item["tier"]),
                title=item["title"],
            )
            for item in row.rows or []
        ),
        created_at=row.created_at,
    )


def _to_champion(row: ChampionRecordRow) -> ChampionRecord:
    return ChampionRecord(
        group_id=row.group_id,
        participant_id=row.participant_id,
        scope=Scope(row.scope),
        category=Category(row.category),
        window_start=row.window_start,
        window_end=row.window_end,
        score=row.score,
        rewards=dict(row.rewards or {}),
        created_at=row.created_at,
    )


def _bounded(statement: Any, column: Any, start: Optional[datetime], end: Optional[datetime]) -> Any:
    if start is not None:
        statement = statement.where(column >= start)
    if end is not None:
        statement = statement.where(column <= end)
    return statement


def _allowance_key(participant_id: str, product_type: ProductType) -> Tuple[Any, ...]:
    return (
        AllowanceRecord.participant_id == participant_id,
        AllowanceRecord.product_type == ProductType(product_type).value,
    )


def _roll_allowance(connection: Connection, key: Tuple[Any, ...], today: date, daily_grant: int) -> None:
    connection.execute(
        update(AllowanceRecord)
        .where(*key, AllowanceRecord.last_grant_date < today)
        .values(last_grant_date=today, units_available=daily_grant)
    )


def _read_allowance(connection: Connection, key: Tuple[Any, ...]) -> DailyAllowance:
    row = connection.execute(
        select(
            AllowanceRecord.participant_id,
            AllowanceRecord.product_type,
            AllowanceRecord.last_grant_date,
            AllowanceRecord.units_available,
            AllowanceRecord.lifetime_units_used,
        ).where(*key)
    ).one()
    return DailyAllowance(
        participant_id=row.participant_id,
        product_type=ProductType(row.product_type),
        last_grant_date=row.last_grant_date,
        units_available=row.units_available,
        lifetime_units_used=row.lifetime_units_used,
    )


class SqlStore:
    """Relational store implementing every collaborator interface.

    Champion, snapshot, allowance and collectible uniqueness is declared as
    table constraints; a violation surfaces as :class:`DuplicateRecordError`.
    Balances and allowance units change through guarded ``UPDATE``
    statements, so the database rejects a debit or spin that a concurrent
    writer already took.
    """

    def __init__(self, engine: Optional[Engine] = None, *, clock: Clock | None = None) -> None:
        self.engine = engine or make_engine()
        self._clock = clock or SystemClock()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self.engine, expire_on_commit=False) as session:
            yield session

    def _participant_row(self, session: Session, participant_id: str) -> ParticipantRecord:
        row = session.exec(
            select(ParticipantRecord).where(ParticipantRecord.participant_id == participant_id)
        ).first()
        if row is None:
            raise ParticipantNotFoundError(f"Participant '{participant_id}' does not exist.")
        return row

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------
    def add_participant(self, participant: Participant, *, balance: int = 0) -> Participant:
        with self._session() as session:
            session.add(
                ParticipantRecord(
                    participant_id=participant.participant_id,
                    group_id=participant.group_id,
                    name=participant.name,
                    avatar=participant.avatar,
                    level=participant.level,
                    balance=balance,
                )
            )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(f"Participant '{participant.participant_id}' already exists.") from exc
        return participant

    def connect(self, participant_id: str, friend_id: str, *, status: str = CONNECTION_ACCEPTED) -> None:
        if status not in {CONNECTION_ACCEPTED, CONNECTION_PENDING}:
            raise ValueError(f"Unsupported connection status: {status!r}")
        with self._session() as session:
            session.add(ConnectionRecord(participant_id=participant_id, friend_id=friend_id, status=status))
            session.commit()

    def record_task_completion(self, completion: TaskCompletion) -> TaskCompletion:
        with self._session() as session:
            session.add(
                TaskCompletionRecord(
                    participant_id=completion.participant_id,
                    group_id=completion.group_id,
                    status=completion.status,
                    submitted_at=completion.submitted_at,
                )
            )
            session.commit()
        return completion

    def record_transaction(self, transaction: CurrencyTransaction) -> CurrencyTransaction:
        with self._session() as session:
            session.add(
                TransactionRecord(
                    participant_id=transaction.participant_id,
                    group_id=transaction.group_id,
                    subtype=transaction.subtype,
                    amount=transaction.amount,
                    description=transaction.description,
                    created_at=transaction.created_at,
                )
            )
            session.commit()
        return transaction

    def record_promoted_activity(self, activity: PromotedActivity) -> PromotedActivity:
        with self._session() as session:
            session.add(
                PromotedActivityRecord(
                    participant_id=activity.participant_id,
                    group_id=activity.group_id,
                    status=activity.status,
                    offered_amount=activity.offered_amount,
                    completed_at=activity.completed_at,
                )
            )
            session.commit()
        return activity

    def record_care_interaction(self, interaction: CareInteraction) -> CareInteraction:
        with self._session() as session:
            session.add(
                CareInteractionRecord(
                    participant_id=interaction.participant_id,
                    group_id=interaction.group_id,
                    occurred_at=interaction.occurred_at,
                )
            )
            session.commit()
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
        statement = select(TaskCompletionRecord).where(TaskCompletionRecord.participant_id == participant_id)
        if approved_only:
            statement = statement.where(TaskCompletionRecord.status == TASK_STATUS_APPROVED)
        statement = _bounded(statement, TaskCompletionRecord.submitted_at, start, end)
        with self._session() as session:
            rows = session.exec(statement.order_by(TaskCompletionRecord.id)).all()
        return tuple(
            TaskCompletion(
                participant_id=row.participant_id,
                group_id=row.group_id,
                submitted_at=row.submitted_at,
                status=row.status,
            )
            for row in rows
        )

    def list_currency_transactions(
        self,
        participant_id: str,
        subtype: Optional[str],
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Sequence[CurrencyTransaction]:
        statement = select(TransactionRecord).where(TransactionRecord.participant_id == participant_id)
        if subtype is not None:
            statement = statement.where(TransactionRecord.subtype == subtype)
        statement = _bounded(statement, TransactionRecord.created_at, start, end)
        with self._session() as session:
            rows = session.exec(statement.order_by(TransactionRecord.id)).all()
        return tuple(
            CurrencyTransaction(
                participant_id=row.participant_id,
                group_id=row.group_id,
                amount=row.amount,
                created_at=row.created_at,
                subtype=row.subtype,
                description=row.description,
            )
            for row in rows
        )

    def list_promoted_activity(
        self,
        participant_id: str,
        state: Optional[str],
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Sequence[PromotedActivity]:
        statement = select(PromotedActivityRecord).where(PromotedActivityRecord.participant_id == participant_id)
        if state is not None:
            statement = statement.where(PromotedActivityRecord.status == state)
        statement = statement.where(PromotedActivityRecord.completed_at.is_not(None))  # type: ignore[union-attr]
        statement = _bounded(statement, PromotedActivityRecord.completed_at, start, end)
        with self._session() as session:
            rows = session.exec(statement.order_by(PromotedActivityRecord.id)).all()
        return tuple(
            PromotedActivity(
                participant_id=row.participant_id,
                group_id=row.group_id,
                offered_amount=row.offered_amount,
                completed_at=row.completed_at,
                status=row.status,
            )
            for row in rows
        )

    def list_care_interactions(
        self,
        participant_id: str,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Sequence[CareInteraction]:
        statement = select(CareInteractionRecord).where(CareInteractionRecord.participant_id == participant_id)
        statement = _bounded(statement, CareInteractionRecord.occurred_at, start, end)
        with self._session() as session:
            rows = session.exec(statement.order_by(CareInteractionRecord.id)).all()
        return tuple(
            CareInteraction(participant_id=row.participant_id, group_id=row.group_id, occurred_at=row.occurred_at)
            for row in rows
        )

    # ------------------------------------------------------------------
    # ParticipantDirectory
    # ------------------------------------------------------------------
    def get_participant(self, participant_id: str) -> Optional[Participant]:
        with self._session() as session:
            row = session.exec(
                select(ParticipantRecord).where(ParticipantRecord.participant_id == participant_id)
            ).first()
        return _to_participant(row) if row else None

    def list_group_members(self, group_id: str) -> Sequence[Participant]:
        with self._session() as session:
            rows = session.exec(
                select(ParticipantRecord).where(ParticipantRecord.group_id == group_id).order_by(ParticipantRecord.id)
            ).all()
        return tuple(_to_participant(row) for row in rows)

    def list_accepted_connections(self, participant_id: str) -> Sequence[str]:
        statement = (
            select(ConnectionRecord)
            .where(ConnectionRecord.status == CONNECTION_ACCEPTED)
            .where(
                or_(
                    ConnectionRecord.participant_id == participant_id,
                    ConnectionRecord.friend_id == participant_id,
                )
            )
            .order_by(ConnectionRecord.id)
        )
        with self._session() as session:
            rows = session.exec(statement).all()
        return tuple(row.friend_id if row.participant_id == participant_id else row.participant_id for row in rows)

    # ------------------------------------------------------------------
    # BalanceMutator
    # ------------------------------------------------------------------
    def adjust_currency(self, participant_id: str, delta: int, *, reason: str = "") -> int:
        owner = ParticipantRecord.participant_id == participant_id
        with self.engine.begin() as connection:
            group_id = connection.execute(select(ParticipantRecord.group_id).where(owner)).scalar_one_or_none()
            if group_id is None:
                raise ParticipantNotFoundError(f"Participant '{participant_id}' does not exist.")
            changed = connection.execute(
                update(ParticipantRecord)
                .where(owner, ParticipantRecord.balance + delta >= 0)
                .values(balance=ParticipantRecord.balance + delta)
            ).rowcount
            balance = connection.execute(select(ParticipantRecord.balance).where(owner)).scalar_one()
            if not changed:
                raise InsufficientFundsError(
                    f"Participant '{participant_id}' has {balance} points; {-delta} required."
                )
            if delta:
                connection.execute(
                    insert(TransactionRecord).values(
                        participant_id=participant_id,
                        group_id=group_id,
                        subtype=TRANSACTION_BONUS if delta > 0 else TRANSACTION_SPENT,
                        amount=abs(delta),
                        description=reason,
                        created_at=self._clock.now(),
                    )
                )
        return balance

    def adjust_experience(self, participant_id: str, delta: int) -> int:
        owner = ParticipantRecord.participant_id == participant_id
        with self.engine.begin() as connection:
            changed = connection.execute(
                update(ParticipantRecord)
                .where(owner)
                .values(
                    experience=ParticipantRecord.experience + delta,
                    lifetime_experience=ParticipantRecord.lifetime_experience + max(delta, 0),
                )
            ).rowcount
            if not changed:
                raise ParticipantNotFoundError(f"Participant '{participant_id}' does not exist.")
            return connection.execute(select(ParticipantRecord.experience).where(owner)).scalar_one()

    def currency_balance(self, participant_id: str) -> int:
        with self._session() as session:
            return self._participant_row(session, participant_id).balance

    def experience(self, participant_id: str) -> int:
        with self._session() as session:
            return self._participant_row(session, participant_id).experience

    def add_achievement(self, achievement: Achievement) -> None:
        with self._session() as session:
            self._participant_row(session, achievement.participant_id)
            session.add(
                AchievementRecord(
                    participant_id=achievement.participant_id,
                    group_id=achievement.group_id,
                    achievement_id=achievement.achievement_id,
                    name=achievement.name,
                    description=achievement.description,
                    category=achievement.category,
                    xp_reward=achievement.xp_reward,
                    awarded_at=achievement.awarded_at,
                )
            )
            session.commit()

    def achievements(self, participant_id: str) -> Tuple[Achievement, ...]:
        with self._session() as session:
            rows = session.exec(
                select(AchievementRecord)
                .where(AchievementRecord.participant_id == participant_id)
                .order_by(AchievementRecord.id)
            ).all()
        return tuple(
            Achievement(
                participant_id=row.participant_id,
                group_id=row.group_id,
                achievement_id=row.achievement_id,
                name=row.name,
                description=row.description,
                category=row.category,
                xp_reward=row.xp_reward,
                awarded_at=row.awarded_at,
            )
            for row in rows
        )

    def add_collectible_item(self, participant_id: str, item_id: str, *, premium_variant: bool = False) -> None:
        with self._session() as session:
            self._participant_row(session, participant_id)
            session.add(
                CollectibleRecord(
                    participant_id=participant_id,
                    item_id=item_id,
                    premium_variant=premium_variant,
                    created_at=self._clock.now(),
                )
            )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(f"Participant '{participant_id}' already owns '{item_id}'.") from exc

    def has_collectible_item(self, participant_id: str, item_id: str) -> bool:
        with self._session() as session:
            row = session.exec(
                select(CollectibleRecord)
                .where(CollectibleRecord.participant_id == participant_id)
                .where(CollectibleRecord.item_id == item_id)
            ).first()
        return row is not None

    def remove_collectible_item(self, participant_id: str, item_id: str) -> None:
        with self.engine.begin() as connection:
            connection.execute(
                delete(CollectibleRecord)
                .where(CollectibleRecord.participant_id == participant_id)
                .where(CollectibleRecord.item_id == item_id)
            )

    def collection(self, participant_id: str) -> Mapping[str, bool]:
        with self._session() as session:
            rows = session.exec(
                select(CollectibleRecord).where(CollectibleRecord.participant_id == participant_id)
            ).all()
        return {row.item_id: row.premium_variant for row in rows}

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
        with self._session() as session:
            session.add(
                FeedEventRecord(
                    group_id=group_id,
                    participant_id=participant_id,
                    type=type,
                    message=message,
                    payload=dict(payload),
                    created_at=event.created_at,
                )
            )
            session.commit()
        return event

    def feed(self, group_id: str) -> Tuple[FeedEvent, ...]:
        with self._session() as session:
            rows = session.exec(
                select(FeedEventRecord).where(FeedEventRecord.group_id == group_id).order_by(FeedEventRecord.id)
            ).all()
        return tuple(
            FeedEvent(
                group_id=row.group_id,
                participant_id=row.participant_id,
                type=row.type,
                message=row.message,
                payload=dict(row.payload or {}),
                created_at=row.created_at,
            )
            for row in rows
        )

    # ------------------------------------------------------------------
    # SnapshotStore / ChampionStore
    # ------------------------------------------------------------------
    def replace_snapshot(self, snapshot: RankSnapshot) -> None:
        rows = [
            {
                "participant_id": row.participant_id,
                "score": row.score,
                "rank": row.rank,
                "tier": row.tier.value,
                "title": row.title,
            }
            for row in snapshot.rows
        ]
        with self._session() as session:
            existing = session.exec(
                select(SnapshotRecord)
                .where(SnapshotRecord.group_id == snapshot.group_id)
                .where(SnapshotRecord.scope == snapshot.scope.value)
                .where(SnapshotRecord.category == snapshot.category.value)
                .where(SnapshotRecord.window_start == snapshot.window_start)
            ).first()
            if existing is None:
                existing = SnapshotRecord(
                    group_id=snapshot.group_id,
                    scope=snapshot.scope.value,
                    category=snapshot.category.value,
                    window_start=snapshot.window_start,
                    window_end=snapshot.window_end,
                )
            existing.window_end = snapshot.window_end
            existing.rows = rows
            existing.created_at = snapshot.created_at
            session.add(existing)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(f"Snapshot {snapshot.key!r} was written concurrently.") from exc

    def get_snapshot(
        self,
        group_id: str,
        scope: Scope,
        category: Category,
        window_start: datetime,
    ) -> Optional[RankSnapshot]:
        with self._session() as session:
            row = session.exec(
                select(SnapshotRecord)
                .where(SnapshotRecord.group_id == group_id)
                .where(SnapshotRecord.scope == Scope(scope).value)
                .where(SnapshotRecord.category == Category(category).value)
                .where(SnapshotRecord.window_start == window_start)
            ).first()
        return _to_snapshot(row) if row else None

    def snapshots(self, group_id: str) -> Tuple[RankSnapshot, ...]:
        with self._session() as session:
            rows = session.exec(select(SnapshotRecord).where(SnapshotRecord.group_id == group_id)).all()
        return tuple(_to_snapshot(row) for row in rows)

    def insert_champion(self, record: ChampionRecord) -> None:
        with self._session() as session:
            session.add(
                ChampionRecordRow(
                    group_id=record.group_id,
                    participant_id=record.participant_id,
                    scope=record.scope.value,
                    category=record.category.value,
                    window_start=record.window_start,
                    window_end=record.window_end,
                    score=record.score,
                    rewards=dict(record.rewards),
                    created_at=record.created_at,
                )
            )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(f"Champion record {record.key!r} already exists.") from exc

    def list_champions(
        self,
        group_id: str,
        participant_id: str,
        window_start: datetime,
    ) -> Sequence[ChampionRecord]:
        with self._session() as session:
            rows = session.exec(
                select(ChampionRecordRow)
                .where(ChampionRecordRow.group_id == group_id)
                .where(ChampionRecordRow.participant_id == participant_id)
                .where(ChampionRecordRow.window_start == window_start)
                .order_by(ChampionRecordRow.id)
            ).all()
        return tuple(_to_champion(row) for row in rows)

    def champions(self, group_id: str) -> Tuple[ChampionRecord, ...]:
        with self._session() as session:
            rows = session.exec(
                select(ChampionRecordRow).where(ChampionRecordRow.group_id == group_id).order_by(ChampionRecordRow.id)
            ).all()
        return tuple(_to_champion(row) for row in rows)

    # ------------------------------------------------------------------
    # AllowanceStore / SettingsStore
    # ------------------------------------------------------------------
    def get_allowance(self, participant_id: str, product_type: ProductType) -> Optional[DailyAllowance]:
        with self._session() as session:
            row = session.exec(
                select(AllowanceRecord)
                .where(AllowanceRecord.participant_id == participant_id)
                .where(AllowanceRecord.product_type == ProductType(product_type).value)
            ).first()
        if row is None:
            return None
        return DailyAllowance(
            participant_id=row.participant_id,
            product_type=ProductType(row.product_type),
            last_grant_date=row.last_grant_date,
            units_available=row.units_available,
            lifetime_units_used=row.lifetime_units_used,
        )

    def save_allowance(self, allowance: DailyAllowance) -> None:
        with self._session() as session:
            row = session.exec(
                select(AllowanceRecord)
                .where(AllowanceRecord.participant_id == allowance.participant_id)
                .where(AllowanceRecord.product_type == allowance.product_type.value)
            ).first()
            if row is None:
                row = AllowanceRecord(
                    participant_id=allowance.participant_id,
                    product_type=allowance.product_type.value,
                    last_grant_date=allowance.last_grant_date,
                )
            row.last_grant_date = allowance.last_grant_date
            row.units_available = allowance.units_available
            row.lifetime_units_used = allowance.lifetime_units_used
            session.add(row)
            session.commit()

    def consume_unit(
        self,
        participant_id: str,
        product_type: ProductType,
        today: date,
        daily_grant: int,
    ) -> Optional[DailyAllowance]:
        key = _allowance_key(participant_id, product_type)
        self._ensure_allowance(participant_id, product_type, today, daily_grant)
        with self.engine.begin() as connection:
            _roll_allowance(connection, key, today, daily_grant)
            taken = connection.execute(
                update(AllowanceRecord)
                .where(*key, AllowanceRecord.units_available > 0)
                .values(
                    units_available=AllowanceRecord.units_available - 1,
                    lifetime_units_used=AllowanceRecord.lifetime_units_used + 1,
                )
            ).rowcount
            if not taken:
                return None
            return _read_allowance(connection, key)

    def refund_unit(self, participant_id: str, product_type: ProductType) -> None:
        used = AllowanceRecord.lifetime_units_used
        with self.engine.begin() as connection:
            connection.execute(
                update(AllowanceRecord)
                .where(*_allowance_key(participant_id, product_type))
                .values(
                    units_available=AllowanceRecord.units_available + 1,
                    lifetime_units_used=case((used > 0, used - 1), else_=0),
                )
            )

    def grant_units(
        self,
        participant_id: str,
        product_type: ProductType,
        today: date,
        daily_grant: int,
        units: int,
    ) -> DailyAllowance:
        key = _allowance_key(participant_id, product_type)
        self._ensure_allowance(participant_id, product_type, today, daily_grant)
        with self.engine.begin() as connection:
            _roll_allowance(connection, key, today, daily_grant)
            connection.execute(
                update(AllowanceRecord)
                .where(*key)
                .values(units_available=AllowanceRecord.units_available + units)
            )
            return _read_allowance(connection, key)

    def _ensure_allowance(
        self,
        participant_id: str,
        product_type: ProductType,
        today: date,
        daily_grant: int,
    ) -> None:
        with self._session() as session:
            existing = session.exec(
                select(AllowanceRecord.id).where(*_allowance_key(participant_id, product_type))
            ).first()
            if existing is not None:
                return
            session.add(
                AllowanceRecord(
                    participant_id=participant_id,
                    product_type=ProductType(product_type).value,
                    last_grant_date=today,
                    units_available=daily_grant,
                )
            )
            try:
                session.commit()
            except IntegrityError:
                # Created concurrently; the row exists either way.
                session.rollback()

    def get_ranking_settings(self, group_id: str) -> Optional[RankingSettings]:
        with self._session() as session:
            row = session.get(RankingSettingsRecord, group_id)
        if row is None:
            return None
        return RankingSettings(
            group_id=row.group_id,
            rankings_enabled=row.rankings_enabled,
            family_enabled=row.family_enabled,
            friends_enabled=row.friends_enabled,
            promoted_enabled=row.promoted_enabled,
            updated_at=row.updated_at,
        )

    def save_ranking_settings(self, settings: RankingSettings) -> None:
        with self._session() as session:
            row = session.get(RankingSettingsRecord, settings.group_id) or RankingSettingsRecord(
                group_id=settings.group_id
            )
            row.rankings_enabled = settings.rankings_enabled
            row.family_enabled = settings.family_enabled
            row.friends_enabled = settings.friends_enabled
            row.promoted_enabled = settings.promoted_enabled
            row.updated_at = settings.updated_at
            session.add(row)
            session.commit()


__all__ = [
    "AchievementRecord",
    "AllowanceRecord",
    "CareInteractionRecord",
    "ChampionRecordRow",
    "CollectibleRecord",
    "ConnectionRecord",
    "FeedEventRecord",
    "ParticipantRecord",
    "PromotedActivityRecord",
    "RankingSettingsRecord",
    "SnapshotRecord",
    "SqlStore",
    "TaskCompletionRecord",
    "TransactionRecord",
    "make_engine",
]
