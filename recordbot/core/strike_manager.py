from __future__ import annotations

import logging
from collections import Counter
from typing import List

from recordbot.db.models import UserStrike, UserStrikeCount
from recordbot.db.store import EntityKind, EntityStore
from recordbot.errors import NotFoundError
from recordbot.utils.timestamps import utcnow

from .sequence_allocator import ScopeKind, SequenceAllocator

logger = logging.getLogger(__name__)


class StrikeManager:
    """Manages the strikes moderators give to users."""

    def __init__(self, store: EntityStore, allocator: SequenceAllocator) -> None:
        self._store = store
        self._allocator = allocator

    async def give_strike(self, user_id: int, *, reason: str, author_id: int) -> UserStrike:
        """Give *user_id* a strike numbered after their highest existing one."""
        if not reason.strip():
            raise ValueError("Strike reason must not be empty")
        strike = await self._allocator.insert_with_next_id(
            ScopeKind.USER,
            user_id,
            lambda strike_id: UserStrike(
                user_id=user_id,
                strike_id=strike_id,
                reason=reason.strip(),
                author_id=author_id,
            ),
        )
        logger.info("Strike %d given to user %d by %d", strike.strike_id, user_id, author_id)
        return strike

    async def get_strike(self, user_id: int, strike_id: int) -> UserStrike:
        strike = await self._store.get_by_id(EntityKind.USER_STRIKE, (user_id, strike_id))
        if strike is None:
            raise NotFoundError(f"Strike {strike_id} not found for user {user_id}")
        return strike

    async def list_strikes(self, user_id: int) -> List[UserStrike]:
        return await self._store.query_by_foreign_key(EntityKind.USER_STRIKE, "user_id", user_id)

    async def strike_count(self, user_id: int) -> UserStrikeCount:
        strikes = await self.list_strikes(user_id)
        return UserStrikeCount(user_id=user_id, count=len(strikes))

    async def strike_counts(self) -> List[UserStrikeCount]:
        """Strike totals for every user holding at least one strike, by user id."""
        strikes = await self._store.list_all(EntityKind.USER_STRIKE)
        totals = Counter(strike.user_id for strike in strikes)
        return [UserStrikeCount(user_id=user_id, count=count) for user_id, count in sorted(totals.items())]

    async def edit_strike(self, user_id: int, strike_id: int, *, reason: str) -> UserStrike:
        if not reason.strip():
            raise ValueError("Strike reason must not be empty")
        strike = await self.get_strike(user_id, strike_id)
        updated = strike.model_copy(update={"reason": reason.strip(), "edited_at": utcnow()})
        if not await self._store.update(EntityKind.USER_STRIKE, (user_id, strike_id), updated):
            raise NotFoundError(f"Strike {strike_id} not found for user {user_id}")
        return updated

    async def remove_strike(self, user_id: int, strike_id: int) -> UserStrike:
        strike = await self.get_strike(user_id, strike_id)
        if not await self._store.delete(EntityKind.USER_STRIKE, (user_id, strike_id)):
            raise NotFoundError(f"Strike {strike_id} not found for user {user_id}")
        logger.info("Strike %d removed from user %d", strike_id, user_id)
        return strike
