"""
Example 02: Reference Text Tool
===============================

Demonstrates tool use during a turn:
- Registering the reference-text tool for a local document
- Passing the registry to ChatPipeline so the model can call it
- Inspecting the tool part stored on the assistant message

The mock model never calls tools, so this example needs a real provider:
    GEMINI_API_KEY=... uv run python examples/02_reference_text_tool.py
"""

import asyncio
import sys
import tempfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

DOCUMENT = """\
The Nellie, a cruising yawl, swung to her anchor without a flutter of the
sails, and was at rest. The flood had made, the wind was nearly calm, and
being bound down the river, the only thing for it was to come to and wait
for the turn of the tide.
"""


async def main() -> None:
    from chatvault import (
        ChatPipeline,
        ChatVaultConfig,
        ReferenceTextCache,
        StoreConfig,
        ToolPart,
        ToolRegistry,
        new_chat_id,
        reference_text_tool,
    )

    with tempfile.TemporaryDirectory() as tmp:
        book = Path(tmp) / "opening.txt"
        book.write_text(DOCUMENT, encoding="utf-8")

        tools = ToolRegistry(
            [
                reference_text_tool(
                    ReferenceTextCache(),
                    book,
                    name="opening_passage",
                    description="Answer questions about the opening passage of the novel.",
                )
            ]
        )
        config = ChatVaultConfig(store=StoreConfig(db_path=str(Path(tmp) / "chats.db")))

        async with await ChatPipeline.create(config, tools=tools) as pipeline:
            request = {
                "id": new_chat_id(),
                "trigger": "submit-message",
                "messages": [
                    {
                        "id": "client-1",
                        "role": "user",
                        "parts": [{"type": "text", "text": "What is the Nellie waiting for?"}],
                    }
                ],
            }
            turn = await pipeline.handle(request, user_id="reader")
            async for chunk in turn.stream():
                if chunk.type == "tool-input-available":
                    print(f"-> {chunk.tool_name}({chunk.input})")
                elif chunk.type == "text-delta":
                    print(chunk.delta, end="", flush=True)
            print()

            stored = await turn.wait_persisted()
            for part in stored.parts:
                if isinstance(part, ToolPart):
                    print(f"Stored tool part: {part.tool_name} [{part.state}]")


if __name__ == "__main__":
    asyncio.run(main())
