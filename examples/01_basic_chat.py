"""
Example 01: Basic Chat
======================

Demonstrates the simplest end-to-end usage of ChatPipeline:
- Building a pipeline with create()
- Sending a first turn and a follow-up to the same chat
- Streaming the reply as server-sent events
- Reading the persisted history back

Run without an API key:
    CHATVAULT_MOCK_LLM=1 uv run python examples/01_basic_chat.py

Run with a real LLM (set your provider key first):
    GEMINI_API_KEY=... uv run python examples/01_basic_chat.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path when running directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def user_turn(message_id: str, text: str) -> dict:
    return {"id": message_id, "role": "user", "parts": [{"type": "text", "text": text}]}


async def main() -> None:
    from chatvault import ChatPipeline, ChatVaultConfig, StoreConfig, encode_sse, new_chat_id

    print("=== chatvault Basic Chat Example ===\n")

    config = ChatVaultConfig(store=StoreConfig(db_path="/tmp/chatvault_example_01.db"))
    chat_id = new_chat_id()
    history: list[dict] = []

    async with await ChatPipeline.create(config) as pipeline:
        for i, question in enumerate(["What is a ULID?", "Why are they sortable?"], 1):
            history.append(user_turn(f"client-{i}", question))
            request = {"id": chat_id, "trigger": "submit-message", "messages": history}

            turn = await pipeline.handle(request, user_id="example-user")
            print(f"Turn {i} ({'created' if turn.created else 'appended'}): {question}")
            async for chunk in turn.stream():
                if chunk.type == "text-delta":
                    print(chunk.delta, end="", flush=True)
                elif chunk.type == "finish":
                    print(f"\n  SSE frame: {encode_sse(chunk).strip()}")

            stored = await turn.wait_persisted()
            print(f"  Persisted as {stored.id} ({len(stored.parts)} parts)\n")
            history.append(stored.to_wire())

        chat = await pipeline.get_chat(chat_id)
        print(f"Messages stored for {chat.id}: {len(chat.messages)}")
        for message in chat.messages:
            print(f"  {message.role:>9}: {message.text_content()[:60]!r}")

    print("\nPipeline closed cleanly.")


if __name__ == "__main__":
    asyncio.run(main())
