"""chatvault persistence layer."""

from chatvault.store.chat_store import ChatStore
from chatvault.store.codec import PART_COLUMNS, PartRow, decode_part, encode_part, encode_parts
from chatvault.store.pool import ConnectionPool
from chatvault.store.reconstruct import JoinedRow, reconstruct_messages

__all__ = [
    "ChatStore",
    "ConnectionPool",
    "PART_COLUMNS",
    "PartRow",
    "encode_part",
    "encode_parts",
    "decode_part",
    "JoinedRow",
    "reconstruct_messages",
]
