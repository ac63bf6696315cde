"""The narrow storage contract the chain resolver and sequence allocator depend on."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Protocol, Tuple, Union

from .models import BuildRecord, GuildTicketChannel, UserStrike

Entity = Union[BuildRecord, UserStrike, GuildTicketChannel]
EntityKey = Union[int, Tuple[int, ...]]


class EntityKind(str, Enum):
    BUILD_RECORD = "build_record"
    USER_STRIKE = "user_strike"
    GUILD_TICKET_CHANNEL = "guild_ticket_channel"


class EntityStore(Protocol):
    """Get/create/update/delete by key plus query-by-foreign-key.

    Absence is reported as ``None`` or ``False``; only real failures raise.
    """

    async def get_by_id(self, kind: EntityKind, key: EntityKey) -> Optional[Entity]:
        ...

    async def query_by_foreign_key(self, kind: EntityKind, fk_name: str, fk_value: int) -> List[Entity]:
        ...

    async def list_all(self, kind: EntityKind) -> List[Entity]:
        ...

    async def insert(self, kind: EntityKind, entity: Entity) -> EntityKey:
        ...

    async def update(self, kind: EntityKind, key: EntityKey, entity: Entity) -> bool:
        ...

    async def delete(self, kind: EntityKind, key: EntityKey) -> bool:
        ...
