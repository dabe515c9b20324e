"""Rebuild ordered, hierarchical chat messages from flat message/part join rows."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from chatvault.errors import MalformedRowError
from chatvault.models.message import MessagePart, UIMessage
from chatvault.store.codec import PartRow, decode_part


@dataclass
class JoinedRow:
    """
    One row of ``messages LEFT JOIN parts``.

    ``part`` is ``None`` when the message has no parts at all.
    """

    message_id: str
    role: str
    created_at: int
    seq: int
    """Insertion sequence of the message (SQLite rowid). Breaks timestamp ties."""
    part: PartRow | None = None


@dataclass
class _MessageGroup:
    message_id: str
    role: str
    created_at: int
    seq: int
    parts: list[tuple[int, MessagePart]] = field(default_factory=list)


def reconstruct_messages(rows: Iterable[JoinedRow]) -> list[UIMessage]:
    """
    Group join rows into messages with ordered parts.

    Algorithm:
    1. Group rows by message id, keeping the first-seen message metadata.
    2. Decode every non-null part through the codec.
    3. Order each message's parts by their stored ``order``, which must be
       exactly ``0..n-1``.
    4. Order messages by ``(created_at, seq, message_id)``.

    Rows may arrive in any order. An empty input yields an empty list; a
    message whose only row has ``part=None`` is kept with ``parts == []``.

    Raises:
        MalformedRowError: If a message's part orders have gaps or duplicates,
            or a part row fails to decode.
        UnsupportedVariantError: If a part row has an unknown type.
    """
    groups: dict[str, _MessageGroup] = {}
    for row in rows:
        group = groups.get(row.message_id)
        if group is None:
            group = _MessageGroup(
                message_id=row.message_id,
                role=row.role,
                created_at=row.created_at,
                seq=row.seq,
            )
            groups[row.message_id] = group
        if row.part is not None:
            group.parts.append((row.part.order, decode_part(row.part)))

    ordered = sorted(groups.values(), key=lambda g: (g.created_at, g.seq, g.message_id))

    messages: list[UIMessage] = []
    for group in ordered:
        group.parts.sort(key=lambda item: item[0])
        orders = [order for order, _ in group.parts]
        if orders != list(range(len(orders))):
            raise MalformedRowError(
                None,
                f"message {group.message_id!r} has non-contiguous part orders {orders}",
            )
        messages.append(
            UIMessage(
                id=group.message_id,
                role=group.role,  # type: ignore[arg-type]
                parts=[part for _, part in group.parts],
            )
        )
    return messages
