from .build_record_manager import BuildRecordManager
from .chain_resolver import ChainResolver
from .sequence_allocator import ScopeKind, SequenceAllocator, SequenceScope
from .strike_manager import StrikeManager
from .ticket_manager import TicketManager

__all__ = [
    "BuildRecordManager",
    "ChainResolver",
    "ScopeKind",
    "SequenceAllocator",
    "SequenceScope",
    "StrikeManager",
    "TicketManager",
]
