"""Tests for the part codec (typed parts <-> wide parts rows)."""

from __future__ import annotations

import json

import pytest

from chatvault.errors import MalformedRowError, UnsupportedVariantError
from chatvault.models.message import (
    PART_TYPES,
    DataPart,
    FilePart,
    SourceUrlPart,
    StepStartPart,
    TextPart,
    ToolPart,
    UIMessage,
    part_to_wire,
)
from chatvault.store.codec import PART_COLUMNS, PartRow, decode_part, encode_part, encode_parts
from tests.conftest import sample_parts

_BOOKKEEPING = {"id", "message_id", "type", "order", "created_at"}


class TestRoundTrip:
    @pytest.mark.parametrize("part", sample_parts(), ids=lambda p: p.type)
    def test_decode_inverts_encode(self, part):
        """Every variant survives encode -> decode unchanged."""
        row = encode_part(part, "msg_1", 0)
        assert decode_part(row) == part

    def test_minimal_fields_round_trip(self):
        """Optional fields left unset come back unset, not as empty values."""
        part = FilePart(media_type="text/plain", url="data:text/plain;base64,aGk=")
        decoded = decode_part(encode_part(part, "msg_1", 3))
        assert decoded == part
        assert decoded.filename is None
        assert decoded.provider_metadata is None

    def test_data_payload_is_opaque(self):
        """Arbitrary JSON payloads are stored as json.dumps text and come back equal."""
        payload = [{"b": 1, "a": [True, None, "ü"]}, 3.25, "x"]
        row = encode_part(DataPart(data=payload), "msg_1", 0)
        assert row.data_content == json.dumps(payload)
        decoded = decode_part(row)
        assert decoded.data == payload
        assert encode_part(decoded, "msg_1", 0).data_content == row.data_content

    def test_data_null_payload_round_trips(self):
        """A ``None`` data payload is stored as JSON null and decodes back to None."""
        row = encode_part(DataPart(data=None), "msg_1", 0)
        assert row.data_content == "null"
        assert decode_part(row) == DataPart(data=None)

    def test_tool_error_state_round_trips(self):
        part = ToolPart(
            tool_name="search",
            tool_call_id="call_9",
            state="output-error",
            input={"q": "x"},
            error_text="rate limited",
        )
        assert decode_part(encode_part(part, "msg_1", 1)) == part


class TestEncode:
    def test_only_variant_columns_populated(self):
        """A text part fills text_text and nothing else."""
        row = encode_part(TextPart(text="hi"), "msg_1", 0)
        populated = {c for c in PART_COLUMNS if getattr(row, c) is not None} - _BOOKKEEPING
        assert populated == {"text_text"}

    def test_tool_columns(self):
        row = encode_part(
            ToolPart(tool_name="t", tool_call_id="c", input={"a": 1}), "msg_1", 0
        )
        populated = {c for c in PART_COLUMNS if getattr(row, c) is not None} - _BOOKKEEPING
        assert populated == {"tool_name", "tool_call_id", "tool_state", "tool_input"}
        assert row.tool_state == "input-available"
        assert json.loads(row.tool_input) == {"a": 1}

    def test_step_start_has_no_payload(self):
        row = encode_part(StepStartPart(), "msg_1", 2)
        populated = {c for c in PART_COLUMNS if getattr(row, c) is not None} - _BOOKKEEPING
        assert populated == set()
        assert row.type == "step-start"

    def test_bookkeeping_fields(self):
        row = encode_part(TextPart(text="hi"), "msg_7", 4, part_id="part_x", created_at=123)
        assert (row.id, row.message_id, row.type, row.order, row.created_at) == (
            "part_x",
            "msg_7",
            "text",
            4,
            123,
        )

    def test_generated_part_id(self):
        row = encode_part(TextPart(text="hi"), "msg_1", 0)
        assert row.id.startswith("part_")

    def test_negative_order_rejected(self):
        with pytest.raises(ValueError):
            encode_part(TextPart(text="hi"), "msg_1", -1)

    def test_unknown_variant_rejected(self):
        """Objects that are not one of the known part models are refused."""

        class Bogus:
            type = "video"

        with pytest.raises(UnsupportedVariantError) as exc_info:
            encode_part(Bogus(), "msg_1", 0)  # type: ignore[arg-type]
        assert exc_info.value.part_type == "video"

    def test_encode_parts_assigns_dense_orders(self):
        rows = encode_parts(sample_parts(), "msg_1", created_at=5)
        assert [r.order for r in rows] == list(range(len(sample_parts())))
        assert {r.created_at for r in rows} == {5}
        assert len({r.id for r in rows}) == len(rows)


class TestDecode:
    def test_unknown_type_rejected(self):
        row = PartRow(id="p1", message_id="m1", type="video", order=0)
        with pytest.raises(UnsupportedVariantError):
            decode_part(row)

    def test_missing_required_column(self):
        """A text row without text_text is a data-integrity error."""
        row = PartRow(id="p1", message_id="m1", type="text", order=0)
        with pytest.raises(MalformedRowError) as exc_info:
            decode_part(row)
        assert exc_info.value.part_id == "p1"
        assert "text_text" in exc_info.value.reason

    def test_partial_tool_row(self):
        row = PartRow(id="p1", message_id="m1", type="tool", order=0, tool_name="t")
        with pytest.raises(MalformedRowError):
            decode_part(row)

    def test_invalid_json_column(self):
        row = PartRow(id="p1", message_id="m1", type="data", order=0, data_content="{nope")
        with pytest.raises(MalformedRowError):
            decode_part(row)

    def test_invalid_tool_state(self):
        row = PartRow(
            id="p1",
            message_id="m1",
            type="tool",
            order=0,
            tool_name="t",
            tool_call_id="c",
            tool_state="exploded",
        )
        with pytest.raises(MalformedRowError):
            decode_part(row)

    def test_foreign_columns_ignored(self):
        """Values in columns owned by other variants do not leak into the part."""
        row = encode_part(TextPart(text="hi"), "m1", 0)
        row.file_url = "https://stray.example"
        row.tool_name = "stray"
        assert decode_part(row) == TextPart(text="hi")

    def test_step_start_from_all_null_row(self):
        row = PartRow(id="p1", message_id="m1", type="step-start", order=0)
        assert decode_part(row) == StepStartPart()

    def test_from_mapping_with_prefix(self):
        original = encode_part(SourceUrlPart(source_id="s", url="https://x"), "m1", 0)
        mapping = {f"p_{c}": v for c, v in zip(PART_COLUMNS, original.values(), strict=True)}
        assert PartRow.from_mapping(mapping, prefix="p_") == original


class TestWireForm:
    def test_tool_wire_type_normalised(self):
        """``tool-<name>`` parts from the client become ToolPart with tool_name."""
        message = UIMessage.model_validate(
            {
                "id": "m1",
                "role": "assistant",
                "parts": [
                    {
                        "type": "tool-weather",
                        "toolCallId": "call_1",
                        "state": "output-available",
                        "input": {"city": "Oslo"},
                        "output": {"temp": 3},
                    }
                ],
            }
        )
        part = message.parts[0]
        assert isinstance(part, ToolPart)
        assert part.tool_name == "weather"
        assert part_to_wire(part)["type"] == "tool-weather"

    def test_dynamic_tool_keeps_tool_name(self):
        message = UIMessage.model_validate(
            {
                "id": "m1",
                "role": "assistant",
                "parts": [
                    {
                        "type": "dynamic-tool",
                        "toolName": "mcp_search",
                        "toolCallId": "call_2",
                        "state": "input-available",
                        "input": {},
                    }
                ],
            }
        )
        assert message.parts[0].tool_name == "mcp_search"

    def test_camel_case_wire_keys(self):
        wire = part_to_wire(FilePart(media_type="image/png", url="u"))
        assert wire == {"type": "file", "mediaType": "image/png", "url": "u"}

    def test_unknown_wire_type_rejected(self):
        with pytest.raises(ValueError):
            UIMessage.model_validate(
                {"id": "m1", "role": "user", "parts": [{"type": "video", "url": "x"}]}
            )

    def test_sample_covers_every_part_type(self):
        assert {part.type for part in sample_parts()} == PART_TYPES
