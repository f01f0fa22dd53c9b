# src/llmbridge/streaming/reducers.py
"""
Subscriber-side operators over relayed chat completion streams.

`accumulate_content` is a pure reducer: folding it over the same events
always yields the same text, so a subscriber that replays a channel from its
start rebuilds exactly the state it had before disconnecting.
"""

from functools import reduce
from typing import Any, AsyncIterable, AsyncIterator, Dict, Iterable

from ..exceptions import ProviderError
from ..models import StreamEvent


def accumulate_content(accumulated: str, event: StreamEvent) -> str:
    """Append a content delta; role and done events leave the text unchanged."""
    if event.content is not None:
        return accumulated + event.content
    return accumulated


def fold_content(events: Iterable[StreamEvent], initial: str = "") -> str:
    """Left fold of `accumulate_content` over a finite event sequence."""
    return reduce(accumulate_content, events, initial)


async def content_events(messages: AsyncIterable[Dict[str, Any]]) -> AsyncIterator[StreamEvent]:
    """
    Parse relayed transport messages into stream events.

    Stops after the first `done` event. An `{"error": ...}` message is raised
    as a `ProviderError`.
    """
    async for message in messages:
        if "error" in message:
            raise ProviderError("relay", str(message["error"]))
        for event in StreamEvent.from_message(message):
            yield event
            if event.done:
                return


async def accumulate_stream(messages: AsyncIterable[Dict[str, Any]]) -> AsyncIterator[str]:
    """Yield the running text after each content delta of a relayed stream."""
    accumulated = ""
    async for event in content_events(messages):
        if event.content is None:
            continue
        accumulated = accumulate_content(accumulated, event)
        yield accumulated
