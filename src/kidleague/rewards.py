"""Daily spin and collectible pack reward generation."""

from __future__ import annotations

import random
from dataclasses import asdict
from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .admin import AuditLog
from .clock import Clock, SystemClock
from .config import (
    DEFAULT_DAILY_SPINS,
    DUPLICATE_COMPENSATION,
    FLAT_BONUS_AMOUNT,
    GUARANTEED_RARITY_CHANCE,
    PREMIUM_VARIANT_CHANCE,
    SPIN_MILESTONES,
)
from .draws import (
    COLLECTIBLE_CATALOG,
    DEFAULT_PACKS,
    DEFAULT_SPIN_TABLE,
    PRIZE_BONUS,
    PRIZE_POINTS,
    PRIZE_STICKER,
    PRIZE_XP,
    CollectibleItem,
    PackConfig,
    RandomSource,
    SpinPrize,
    WeightedTable,
    items_of_rarity,
)
from .exceptions import (
    DuplicateRecordError,
    NoUnitsAvailableError,
    ParticipantNotFoundError,
    RewardMutationError,
    UnknownProductError,
)
from .models import (
    Achievement,
    CollectibleReward,
    CurrencyReward,
    DailyAllowance,
    DuplicateCompensation,
    ExperienceReward,
    FlatBonusReward,
    PackOpening,
    Participant,
    ProductType,
    Rarity,
    RewardOutcome,
    RewardPayload,
    SpinStatus,
)
from .ops import StructuredLogger
from .store import AllowanceStore, BalanceMutator, ParticipantDirectory


def _describe(payload: RewardPayload) -> Dict[str, Any]:
    return {"kind": type(payload).__name__, **asdict(payload)}


class RewardGenerator:
    """Draw randomised rewards and apply them to a participant.

    Every mutation follows the same order: consume the unit or deduct the
    cost, record the drawn outcome in the audit log, then apply the reward.
    When applying fails the unit or cost is returned before
    :class:`RewardMutationError` is raised, so a participant is never left
    charged without a reward. A pack is all or nothing: items handed out
    before the failure are taken back and the full cost is refunded.
    """

    def __init__(
        self,
        allowances: AllowanceStore,
        mutator: BalanceMutator,
        directory: ParticipantDirectory,
        *,
        rng: RandomSource | None = None,
        clock: Clock | None = None,
        logger: StructuredLogger | None = None,
        audit_log: AuditLog | None = None,
        spin_table: WeightedTable[SpinPrize] = DEFAULT_SPIN_TABLE,
        packs: Mapping[str, PackConfig] = DEFAULT_PACKS,
        catalog: Sequence[CollectibleItem] = COLLECTIBLE_CATALOG,
        daily_spins: int = DEFAULT_DAILY_SPINS,
        duplicate_compensation: int = DUPLICATE_COMPENSATION,
    ) -> None:
        self._allowances = allowances
        self._mutator = mutator
        self._directory = directory
        self._rng = rng or random.Random()
        self._clock = clock or SystemClock()
        self._logger = logger or StructuredLogger()
        self._audit_log = audit_log or AuditLog(clock=self._clock)
        self.spin_table = spin_table
        self.packs = dict(packs)
        self.catalog = tuple(catalog)
        self.daily_spins = daily_spins
        self.duplicate_compensation = duplicate_compensation

    # ------------------------------------------------------------------
    # Daily spin
    # ------------------------------------------------------------------
    def spin_status(self, participant_id: str) -> SpinStatus:
        self._participant(participant_id)
        allowance = self._current_allowance(participant_id)
        tomorrow = self._clock.today() + timedelta(days=1)
        return SpinStatus(
            units_available=allowance.units_available,
            next_reset=datetime.combine(tomorrow, time.min),
        )

    def draw_spin(self, participant_id: str) -> RewardOutcome:
        participant = self._participant(participant_id)
        allowance = self._allowances.consume_unit(
            participant_id, ProductType.SPIN, self._clock.today(), self.daily_spins
        )
        if allowance is None:
            raise NoUnitsAvailableError(f"Participant '{participant_id}' has no spins left today.")

        planned: Optional[RewardOutcome] = None
        try:
            prize = self.spin_table.draw(self._rng, logger=self._logger)
            planned = self._spin_outcome(prize)
            self._audit_log.record(
                participant_id,
                "spin_drawn",
                ProductType.SPIN.value,
                details={"label": planned.label, "rarity": planned.rarity.value, **_describe(planned.payload)},
            )
            outcome = self._apply(participant, planned, reason=f"Daily spin: {planned.label}")
        except Exception as exc:
            self._allowances.refund_unit(participant_id, ProductType.SPIN)
            context = {
                "planned": _describe(planned.payload) if planned is not None else None,
                "unit_refunded": True,
            }
            self._audit_log.record(participant_id, "spin_refunded", ProductType.SPIN.value, details=context)
            self._logger.error(
                "reward_mutation_failed",
                participant=participant_id,
                product=ProductType.SPIN.value,
                error=repr(exc),
                **context,
            )
            raise RewardMutationError(
                f"Could not apply spin reward for '{participant_id}'.",
                participant_id=participant_id,
                product=ProductType.SPIN.value,
                context=context,
            ) from exc

        self._logger.log(
            "spin_drawn",
            participant=participant_id,
            label=outcome.label,
            rarity=outcome.rarity.value,
            remaining=allowance.units_available,
        )
        self._award_milestone(participant, allowance.lifetime_units_used)
        return outcome

    # ------------------------------------------------------------------
    # Collectible packs
    # ------------------------------------------------------------------
    def open_pack(self, participant_id: str, pack_id: str) -> PackOpening:
        pack = self.packs.get(pack_id)
        if pack is None:
            raise UnknownProductError(f"Unknown collectible pack: {pack_id!r}")
        participant = self._participant(participant_id)
        planned = self._draw_pack(pack)

        self._mutator.adjust_currency(participant_id, -pack.cost, reason=f"Collectible pack: {pack_id}")
        self._audit_log.record(
            participant_id,
            "pack_opened",
            ProductType.PACK.value,
            details={
                "pack": pack_id,
                "cost": pack.cost,
                "items": [_describe(outcome.payload) for outcome in planned],
            },
        )

        applied: List[RewardOutcome] = []
        try:
            for outcome in planned:
                applied.append(self._apply(participant, outcome, reason=f"Collectible pack: {pack_id}"))
        except Exception as exc:
            not_reverted = self._revert(participant_id, applied, reason=f"Refund: {pack_id}")
            self._mutator.adjust_currency(participant_id, pack.cost, reason=f"Refund: {pack_id}")
            context = {
                "pack": pack_id,
                "cost_refunded": pack.cost,
                "reverted": [_describe(outcome.payload) for outcome in applied if outcome not in not_reverted],
                "not_reverted": [_describe(outcome.payload) for outcome in not_reverted],
                "pending": [_describe(outcome.payload) for outcome in planned[len(applied):]],
            }
            self._audit_log.record(participant_id, "pack_refunded", ProductType.PACK.value, details=context)
            self._logger.error(
                "reward_mutation_failed",
                participant=participant_id,
                product=ProductType.PACK.value,
                error=repr(exc),
                **context,
            )
            raise RewardMutationError(
                f"Could not apply pack '{pack_id}' for '{participant_id}'.",
                participant_id=participant_id,
                product=ProductType.PACK.value,
                context=context,
            ) from exc

        opening = PackOpening(pack_id=pack_id, cost=pack.cost, outcomes=tuple(applied))
        self._logger.log(
            "pack_opened",
            participant=participant_id,
            pack=pack_id,
            cost=pack.cost,
            duplicates=len(opening.duplicates),
        )
        return opening

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _participant(self, participant_id: str) -> Participant:
        participant = self._directory.get_participant(participant_id)
        if participant is None:
            raise ParticipantNotFoundError(f"Unknown participant: {participant_id!r}")
        return participant

    def _current_allowance(self, participant_id: str) -> DailyAllowance:
        today = self._clock.today()
        allowance = self._allowances.get_allowance(participant_id, ProductType.SPIN)
        if allowance is None:
            return DailyAllowance(
                participant_id=participant_id,
                product_type=ProductType.SPIN,
                last_grant_date=today,
                units_available=self.daily_spins,
            )
        allowance.roll_to(today, self.daily_spins)
        return allowance

    def _spin_outcome(self, prize: SpinPrize) -> RewardOutcome:
        payload: Optional[RewardPayload] = self._prize_payload(prize)
        if payload is None:
            fallback = self.spin_table.first()
            self._logger.warning(
                "unknown_prize_descriptor",
                kind=prize.kind,
                label=prize.label,
                fallback=fallback.label,
            )
            prize = fallback
            payload = self._prize_payload(fallback) or CurrencyReward(fallback.amount)
        return RewardOutcome(
            product_type=ProductType.SPIN,
            rarity=prize.rarity,
            payload=payload,
            label=prize.label,
            is_special_effect=prize.rarity is Rarity.LEGENDARY,
        )

    def _prize_payload(self, prize: SpinPrize) -> Optional[RewardPayload]:
        if prize.kind == PRIZE_POINTS:
            return CurrencyReward(prize.amount)
        if prize.kind == PRIZE_XP:
            return ExperienceReward(prize.amount)
        if prize.kind == PRIZE_BONUS:
            # Deferred effects are not modelled; the bonus pays out immediately.
            return FlatBonusReward(FLAT_BONUS_AMOUNT, code=prize.code or "double_next")
        if prize.kind == PRIZE_STICKER:
            item, premium = self._pick_item(prize.rarity)
            return CollectibleReward(item.item_id, item.name, premium_variant=premium)
        return None

    def _draw_pack(self, pack: PackConfig) -> Tuple[RewardOutcome, ...]:
        outcomes: List[RewardOutcome] = []
        guaranteed_awarded = False
        for _ in range(pack.size):
            if (
                pack.guaranteed_rarity is not None
                and not guaranteed_awarded
                and self._rng.random() < GUARANTEED_RARITY_CHANCE
            ):
                rarity = pack.guaranteed_rarity
            else:
                rarity = pack.rarities.draw(self._rng, logger=self._logger)
            if rarity is pack.guaranteed_rarity:
                guaranteed_awarded = True
            item, premium = self._pick_item(rarity)
            outcomes.append(
                RewardOutcome(
                    product_type=ProductType.PACK,
                    rarity=item.rarity,
                    payload=CollectibleReward(item.item_id, item.name, premium_variant=premium),
                    label=item.name,
                    is_special_effect=premium,
                )
            )
        return tuple(outcomes)

    def _pick_item(self, rarity: Rarity) -> Tuple[CollectibleItem, bool]:
        candidates = items_of_rarity(self.catalog, rarity)
        if not candidates:
            self._logger.warning("empty_rarity_pool", rarity=rarity.value)
            candidates = [self.catalog[0]]
        item: CollectibleItem = self._rng.choice(candidates)
        premium = item.rarity is Rarity.LEGENDARY or self._rng.random() < PREMIUM_VARIANT_CHANCE
        return item, premium

    def _apply(self, participant: Participant, outcome: RewardOutcome, *, reason: str) -> RewardOutcome:
        participant_id = participant.participant_id
        payload = outcome.payload
        if isinstance(payload, (CurrencyReward, FlatBonusReward)):
            self._mutator.adjust_currency(participant_id, payload.amount, reason=reason)
            return outcome
        if isinstance(payload, ExperienceReward):
            self._mutator.adjust_experience(participant_id, payload.amount)
            return outcome
        if isinstance(payload, CollectibleReward):
            if self._mutator.has_collectible_item(participant_id, payload.item_id):
                return self._compensate(participant_id, outcome, payload)
            try:
                self._mutator.add_collectible_item(
                    participant_id, payload.item_id, premium_variant=payload.premium_variant
                )
            except DuplicateRecordError:
                return self._compensate(participant_id, outcome, payload)
            return outcome
        raise TypeError(f"Unsupported reward payload: {payload!r}")

    def _compensate(
        self,
        participant_id: str,
        outcome: RewardOutcome,
        payload: CollectibleReward,
    ) -> RewardOutcome:
        amount = self.duplicate_compensation
        self._mutator.adjust_currency(participant_id, amount, reason=f"Duplicate bonus: {payload.item_id}")
        self._logger.debug("duplicate_compensated", participant=participant_id, item=payload.item_id, amount=amount)
        return RewardOutcome(
            product_type=outcome.product_type,
            rarity=outcome.rarity,
            payload=DuplicateCompensation(payload.item_id, amount),
            label=outcome.label,
            is_duplicate=True,
            is_special_effect=outcome.is_special_effect,
        )

    def _revert(
        self,
        participant_id: str,
        applied: Sequence[RewardOutcome],
        *,
        reason: str,
    ) -> List[RewardOutcome]:
        """Take back pack items already handed out; return the ones that could not be."""

        failed: List[RewardOutcome] = []
        for outcome in reversed(applied):
            payload = outcome.payload
            try:
                if isinstance(payload, DuplicateCompensation):
                    self._mutator.adjust_currency(participant_id, -payload.amount, reason=reason)
                elif isinstance(payload, CollectibleReward):
                    self._mutator.remove_collectible_item(participant_id, payload.item_id)
            except Exception as exc:
                self._logger.error(
                    "reward_revert_failed",
                    participant=participant_id,
                    error=repr(exc),
                    **_describe(payload),
                )
                failed.append(outcome)
        return failed

    def _award_milestone(self, participant: Participant, lifetime_spins: int) -> None:
        milestone = SPIN_MILESTONES.get(lifetime_spins)
        if milestone is None:
            return
        achievement_id, name, xp_reward = milestone
        try:
            self._mutator.add_achievement(
                Achievement(
                    participant_id=participant.participant_id,
                    group_id=participant.group_id,
                    achievement_id=achievement_id,
                    name=name,
                    description=f"Reached {lifetime_spins} daily spins!",
                    category="special",
                    xp_reward=xp_reward,
                    awarded_at=self._clock.now(),
                )
            )
        except DuplicateRecordError:
            self._logger.debug(
                "milestone_already_awarded",
                participant=participant.participant_id,
                achievement=achievement_id,
            )


__all__ = ["RewardGenerator"]
