"""clai quickstart: one streamed turn with sandboxed tools and terminal approvals."""

import asyncio

from clai import ChatMessage, StreamingSession, TextDeltaEvent, ToolApprovalEvent, ToolDoneEvent


async def main() -> None:
    session = StreamingSession()
    turn = session.stream_chat([ChatMessage.user("Summarize the README in this directory")], model="haiku")

    async for event in turn:
        if isinstance(event, TextDeltaEvent):
            print(event.text, end="", flush=True)
        elif isinstance(event, ToolDoneEvent):
            print(f"\n[{event.tool.name}] {'error' if event.tool.is_error else 'ok'}")
        elif isinstance(event, ToolApprovalEvent):
            answer = await asyncio.to_thread(input, f"\nAllow {event.tool.name} {event.tool.input}? [y/N] ")
            if answer.strip().lower() == "y":
                event.approve()
            else:
                event.deny()

    print(f"\n\nRounds: {turn.result.rounds}, cost: ${turn.result.usage.total_cost:.4f}")
    session.close()


asyncio.run(main())
