import datetime
from enum import IntEnum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from recordbot.utils.timestamps import (
    decode_optional,
    decode_timestamp,
    encode_optional,
    encode_timestamp,
    utcnow,
)


class TicketType(IntEnum):
    """What a guild ticket channel was opened for."""

    GENERAL = 0
    SUBMIT_BUILD = 1
    SUBMIT_RECORD = 2
    SUBMIT_BUILD_UPDATE = 3
    SUBMIT_RECORD_UPDATE = 4


def _flag(value: Any) -> bool:
    """Read a 0/1 column as a strict boolean."""
    if value in (0, 1, True, False):
        return bool(value)
    raise ValueError(f"Expected 0/1 flag, got {value!r}")


class ModerationMark(BaseModel):
    """A flag set by a moderator, with who set it and when."""

    flagged: bool = False
    actor_id: Optional[int] = None
    timestamp: Optional[datetime.datetime] = None


class BuildRecord(BaseModel):
    """A build entered under a record; either a chain anchor or a tie.

    ``joint_root_id`` names the earlier entry this one ties with. It is only
    meaningful when ``is_joint`` is true and is normalised to ``None`` otherwise.
    """

    id: Optional[int] = None
    build_id: int
    record_id: int
    is_joint: bool = False
    joint_root_id: Optional[int] = None
    verification: ModerationMark = Field(default_factory=ModerationMark)
    dispute: ModerationMark = Field(default_factory=ModerationMark)
    submitter_id: int
    created_at: datetime.datetime = Field(default_factory=utcnow)
    edited_at: datetime.datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def clear_unused_pointer(self) -> "BuildRecord":
        if not self.is_joint:
            self.joint_root_id = None
        return self

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "build_id": self.build_id,
            "record_id": self.record_id,
            "verified": int(self.verification.flagged),
            "verifier_id": self.verification.actor_id,
            "verified_at": encode_optional(self.verification.timestamp),
            "reported": int(self.dispute.flagged),
            "reporter_id": self.dispute.actor_id,
            "reported_at": encode_optional(self.dispute.timestamp),
            "is_joint": int(self.is_joint),
            "joint_root_id": self.joint_root_id,
            "submitter_id": self.submitter_id,
            "created_at": encode_timestamp(self.created_at),
            "edited_at": encode_timestamp(self.edited_at),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "BuildRecord":
        is_joint = _flag(row["is_joint"])
        return cls(
            id=row["id"],
            build_id=row["build_id"],
            record_id=row["record_id"],
            is_joint=is_joint,
            # legacy rows use 0 for "no pointer"
            joint_root_id=row["joint_root_id"] or None,
            verification=ModerationMark(
                flagged=_flag(row["verified"]),
                actor_id=row["verifier_id"],
                timestamp=decode_optional(row["verified_at"]),
            ),
            dispute=ModerationMark(
                flagged=_flag(row["reported"]),
                actor_id=row["reporter_id"],
                timestamp=decode_optional(row["reported_at"]),
            ),
            submitter_id=row["submitter_id"],
            created_at=decode_timestamp(row["created_at"]),
            edited_at=decode_timestamp(row["edited_at"]),
        )


class UserStrike(BaseModel):
    """A strike given to a user. ``strike_id`` is unique per user, not a count."""

    user_id: int
    strike_id: int
    reason: str
    author_id: int
    created_at: datetime.datetime = Field(default_factory=utcnow)
    edited_at: datetime.datetime = Field(default_factory=utcnow)

    @field_validator("strike_id")
    def strike_id_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Strike id must not be negative")
        return v

    def to_row(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "strike_id": self.strike_id,
            "reason": self.reason,
            "author_id": self.author_id,
            "created_at": encode_timestamp(self.created_at),
            "edited_at": encode_timestamp(self.edited_at),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "UserStrike":
        return cls(
            user_id=row["user_id"],
            strike_id=row["strike_id"],
            reason=row["reason"],
            author_id=row["author_id"],
            created_at=decode_timestamp(row["created_at"]),
            edited_at=decode_timestamp(row["edited_at"]),
        )


class UserStrikeCount(BaseModel):
    """Number of strikes currently held by a user."""

    user_id: int
    count: int


class GuildTicketChannel(BaseModel):
    """A ticket channel opened within a guild."""

    guild_id: int
    ticket_id: int
    channel_id: int
    ticket_type: TicketType = TicketType.GENERAL
    creator_id: int
    created_at: datetime.datetime = Field(default_factory=utcnow)

    @field_validator("ticket_id")
    def ticket_id_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Ticket id must not be negative")
        return v

    def to_row(self) -> Dict[str, Any]:
        return {
            "guild_id": self.guild_id,
            "ticket_id": self.ticket_id,
            "channel_id": self.channel_id,
            "ticket_type": int(self.ticket_type),
            "creator_id": self.creator_id,
            "created_at": encode_timestamp(self.created_at),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "GuildTicketChannel":
        return cls(
            guild_id=row["guild_id"],
            ticket_id=row["ticket_id"],
            channel_id=row["channel_id"],
            ticket_type=TicketType(row["ticket_type"]),
            creator_id=row["creator_id"],
            created_at=decode_timestamp(row["created_at"]),
        )
