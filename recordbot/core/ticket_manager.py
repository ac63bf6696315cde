from __future__ import annotations

import logging
from typing import List

from recordbot.db.models import GuildTicketChannel, TicketType
from recordbot.db.store import EntityKind, EntityStore
from recordbot.errors import NotFoundError

from .sequence_allocator import ScopeKind, SequenceAllocator

logger = logging.getLogger(__name__)


class TicketManager:
    """Numbers and tracks ticket channels per guild."""

    def __init__(self, store: EntityStore, allocator: SequenceAllocator) -> None:
        self._store = store
        self._allocator = allocator

    async def open_ticket(
        self,
        guild_id: int,
        *,
        channel_id: int,
        creator_id: int,
        ticket_type: TicketType = TicketType.GENERAL,
    ) -> GuildTicketChannel:
        ticket = await self._allocator.insert_with_next_id(
            ScopeKind.GUILD,
            guild_id,
            lambda ticket_id: GuildTicketChannel(
                guild_id=guild_id,
                ticket_id=ticket_id,
                channel_id=channel_id,
                ticket_type=ticket_type,
                creator_id=creator_id,
            ),
        )
        logger.info(
            "Ticket %d (%s) opened in guild %d by %d",
            ticket.ticket_id,
            ticket.ticket_type.name,
            guild_id,
            creator_id,
        )
        return ticket

    async def get_ticket(self, guild_id: int, ticket_id: int) -> GuildTicketChannel:
        ticket = await self._store.get_by_id(EntityKind.GUILD_TICKET_CHANNEL, (guild_id, ticket_id))
        if ticket is None:
            raise NotFoundError(f"Ticket {ticket_id} not found in guild {guild_id}")
        return ticket

    async def list_tickets(self, guild_id: int) -> List[GuildTicketChannel]:
        return await self._store.query_by_foreign_key(EntityKind.GUILD_TICKET_CHANNEL, "guild_id", guild_id)

    async def get_ticket_by_channel(self, guild_id: int, channel_id: int) -> GuildTicketChannel:
        """Look a ticket up by the channel it lives in."""
        tickets = await self._store.query_by_foreign_key(EntityKind.GUILD_TICKET_CHANNEL, "channel_id", channel_id)
        for ticket in tickets:
            if ticket.guild_id == guild_id:
                return ticket
        raise NotFoundError(f"No ticket for channel {channel_id} in guild {guild_id}")

    async def edit_ticket_type(self, guild_id: int, ticket_id: int, ticket_type: TicketType) -> GuildTicketChannel:
        ticket = await self.get_ticket(guild_id, ticket_id)
        updated = ticket.model_copy(update={"ticket_type": TicketType(ticket_type)})
        if not await self._store.update(EntityKind.GUILD_TICKET_CHANNEL, (guild_id, ticket_id), updated):
            raise NotFoundError(f"Ticket {ticket_id} not found in guild {guild_id}")
        logger.info("Ticket %d in guild %d changed to %s", ticket_id, guild_id, updated.ticket_type.name)
        return updated

    async def close_ticket(self, guild_id: int, ticket_id: int) -> GuildTicketChannel:
        ticket = await self.get_ticket(guild_id, ticket_id)
        if not await self._store.delete(EntityKind.GUILD_TICKET_CHANNEL, (guild_id, ticket_id)):
            raise NotFoundError(f"Ticket {ticket_id} not found in guild {guild_id}")
        logger.info("Ticket %d closed in guild %d", ticket_id, guild_id)
        return ticket
