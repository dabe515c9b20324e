"""
Bidirectional mapping between typed message parts and wide ``parts`` rows.

A stored part is one row with a ``type`` tag and one nullable column group
per variant. Exactly the columns owned by the row's variant are populated;
everything else is NULL. All wide-row knowledge lives in this module, the
rest of the package only sees :data:`~chatvault.models.message.MessagePart`
values.

Round-trip law::

    decode_part(encode_part(part, message_id, order)) == part
"""

from __future__ import annotations

import json
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, fields
from typing import Any

from pydantic import BaseModel, ValidationError

from chatvault.errors import MalformedRowError, UnsupportedVariantError
from chatvault.ids import make_id
from chatvault.models.message import (
    DataPart,
    FilePart,
    MessagePart,
    ReasoningPart,
    SourceDocumentPart,
    SourceUrlPart,
    StepStartPart,
    TextPart,
    ToolPart,
)

# ── Storage row ────────────────────────────────────────────────────────────────


@dataclass
class PartRow:
    """
    Storage model for a ``parts`` row. A plain dataclass, so reads skip validation.

    JSON-valued columns (``data_content``, ``tool_input``, ``tool_output``,
    ``provider_metadata``) hold serialised JSON text.
    """

    id: str
    message_id: str
    type: str
    order: int
    created_at: int = 0

    text_text: str | None = None

    reasoning_text: str | None = None

    file_media_type: str | None = None
    file_filename: str | None = None
    file_url: str | None = None

    source_url_source_id: str | None = None
    source_url_url: str | None = None
    source_url_title: str | None = None

    source_document_source_id: str | None = None
    source_document_media_type: str | None = None
    source_document_title: str | None = None
    source_document_filename: str | None = None

    tool_name: str | None = None
    tool_call_id: str | None = None
    tool_state: str | None = None
    tool_input: str | None = None
    tool_output: str | None = None
    tool_error_text: str | None = None

    data_content: str | None = None

    provider_metadata: str | None = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any], *, prefix: str = "") -> PartRow:
        """Build a row from a mapping (e.g. ``aiosqlite.Row``), reading ``prefix + column``."""
        return cls(**{name: row[prefix + name] for name in PART_COLUMNS})

    def values(self) -> tuple[Any, ...]:
        """Column values in :data:`PART_COLUMNS` order, for parameterised inserts."""
        return tuple(getattr(self, name) for name in PART_COLUMNS)


PART_COLUMNS: tuple[str, ...] = tuple(f.name for f in fields(PartRow))

# ── Variant table ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class _Variant:
    model: type[BaseModel]
    columns: dict[str, str]
    """Domain field name -> storage column."""
    required: tuple[str, ...] = ()
    """Columns that must be non-NULL for this variant."""
    json_fields: frozenset[str] = frozenset()


_META = {"provider_metadata": "provider_metadata"}
_META_JSON = frozenset({"provider_metadata"})

_VARIANTS: dict[str, _Variant] = {
    "text": _Variant(
        TextPart,
        {"text": "text_text", **_META},
        required=("text_text",),
        json_fields=_META_JSON,
    ),
    "reasoning": _Variant(
        ReasoningPart,
        {"text": "reasoning_text", **_META},
        required=("reasoning_text",),
        json_fields=_META_JSON,
    ),
    "file": _Variant(
        FilePart,
        {
            "media_type": "file_media_type",
            "url": "file_url",
            "filename": "file_filename",
            **_META,
        },
        required=("file_media_type", "file_url"),
        json_fields=_META_JSON,
    ),
    "source-url": _Variant(
        SourceUrlPart,
        {
            "source_id": "source_url_source_id",
            "url": "source_url_url",
            "title": "source_url_title",
            **_META,
        },
        required=("source_url_source_id", "source_url_url"),
        json_fields=_META_JSON,
    ),
    "source-document": _Variant(
        SourceDocumentPart,
        {
            "source_id": "source_document_source_id",
            "media_type": "source_document_media_type",
            "title": "source_document_title",
            "filename": "source_document_filename",
            **_META,
        },
        required=(
            "source_document_source_id",
            "source_document_media_type",
            "source_document_title",
        ),
        json_fields=_META_JSON,
    ),
    "step-start": _Variant(StepStartPart, {}),
    "data": _Variant(
        DataPart,
        {"data": "data_content", **_META},
        required=("data_content",),
        json_fields=frozenset({"data", "provider_metadata"}),
    ),
    "tool": _Variant(
        ToolPart,
        {
            "tool_name": "tool_name",
            "tool_call_id": "tool_call_id",
            "state": "tool_state",
            "input": "tool_input",
            "output": "tool_output",
            "error_text": "tool_error_text",
            **_META,
        },
        required=("tool_name", "tool_call_id", "tool_state"),
        json_fields=frozenset({"input", "output", "provider_metadata"}),
    ),
}

# ── Encode / decode ────────────────────────────────────────────────────────────


def encode_part(
    part: MessagePart,
    message_id: str,
    order: int,
    *,
    part_id: str | None = None,
    created_at: int | None = None,
) -> PartRow:
    """
    Encode a typed part into a storage row.

    Args:
        part: The domain part.
        message_id: Owning message.
        order: Zero-based position of the part within its message.
        part_id: Row id. Generated when omitted.
        created_at: Unix ms timestamp. Defaults to now.

    Raises:
        UnsupportedVariantError: If ``part.type`` is not a known variant.
        ValueError: If ``order`` is negative.
    """
    part_type = getattr(part, "type", None)
    variant = _VARIANTS.get(part_type) if isinstance(part_type, str) else None
    if variant is None or not isinstance(part, variant.model):
        raise UnsupportedVariantError(part_type)
    if order < 0:
        raise ValueError(f"Part order must be >= 0, got {order}")

    row = PartRow(
        id=part_id or make_id("part"),
        message_id=message_id,
        type=part_type,
        order=order,
        created_at=created_at if created_at is not None else int(time.time() * 1000),
    )
    for field_name, column in variant.columns.items():
        value = getattr(part, field_name)
        if field_name in variant.json_fields:
            # A required JSON column stores a literal ``null`` rather than NULL.
            if value is not None or column in variant.required:
                value = json.dumps(value)
        setattr(row, column, value)
    return row


def encode_parts(
    parts: Sequence[MessagePart],
    message_id: str,
    *,
    created_at: int | None = None,
) -> list[PartRow]:
    """Encode a message's parts, assigning dense orders ``0..n-1``."""
    now = created_at if created_at is not None else int(time.time() * 1000)
    return [encode_part(part, message_id, i, created_at=now) for i, part in enumerate(parts)]


def decode_part(row: PartRow) -> MessagePart:
    """
    Decode a storage row into a typed part.

    Only the columns owned by the row's variant are read; stray values in
    other columns are ignored.

    Raises:
        UnsupportedVariantError: If ``row.type`` is not a known variant.
        MalformedRowError: If a required column is NULL or the payload is invalid.
    """
    variant = _VARIANTS.get(row.type)
    if variant is None:
        raise UnsupportedVariantError(row.type)

    missing = [column for column in variant.required if getattr(row, column) is None]
    if missing:
        raise MalformedRowError(
            row.id, f"required column(s) {', '.join(missing)} are NULL for type {row.type!r}"
        )

    payload: dict[str, Any] = {"type": row.type}
    for field_name, column in variant.columns.items():
        value = getattr(row, column)
        if value is not None and field_name in variant.json_fields:
            try:
                value = json.loads(value)
            except (TypeError, json.JSONDecodeError) as exc:
                raise MalformedRowError(row.id, f"column {column} is not valid JSON") from exc
        payload[field_name] = value

    try:
        return variant.model.model_validate(payload)  # type: ignore[return-value]
    except ValidationError as exc:
        raise MalformedRowError(row.id, str(exc)) from exc
