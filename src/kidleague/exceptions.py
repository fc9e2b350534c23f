"""Custom exception hierarchy for the KidLeague package."""

from __future__ import annotations

from typing import Any, Mapping, Optional


class KidLeagueError(Exception):
    """Base class for all KidLeague specific errors."""


class InvalidCategoryError(KidLeagueError, ValueError):
    """Raised when a ranking category is not recognised."""


class InvalidScopeError(KidLeagueError, ValueError):
    """Raised when a ranking scope is not recognised."""


class InvalidPricingConfigError(KidLeagueError, ValueError):
    """Raised when dynamic pricing parameters are out of range."""


class ParticipantNotFoundError(KidLeagueError, LookupError):
    """Raised when a participant lookup fails."""


class UnknownProductError(KidLeagueError, ValueError):
    """Raised when a reward product (for example a pack id) does not exist."""


class NoUnitsAvailableError(KidLeagueError):
    """Raised when a participant has no allowance units left for today."""


class InsufficientFundsError(KidLeagueError):
    """Raised when a currency adjustment would result in a negative balance."""


class DuplicateRecordError(KidLeagueError):
    """Raised by stores when a uniqueness constraint rejects an insert."""


class RewardMutationError(KidLeagueError):
    """Raised when a reward could not be applied after its cost was taken.

    The cost has already been refunded when this is raised; ``context`` holds
    what is needed to reconcile the participant's records by hand.
    """

    def __init__(
        self,
        message: str,
        *,
        participant_id: str,
        product: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.participant_id = participant_id
        self.product = product
        self.context = dict(context or {})
