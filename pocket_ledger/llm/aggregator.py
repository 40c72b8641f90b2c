"""
Streaming Aggregator

Builds the running text shown while a reply streams in.

The model usually answers with one JSON object, sometimes preceded by
chatter. Once the reply (or the current fragment) looks like JSON we
keep appending; otherwise we only show the first fragment of text and
ignore the rest, so the display doesn't fill up with prose.

The aggregated text is display-only. The interpreter always gets the
engine's complete reply.
"""


class StreamingAggregator:
    """One running buffer per generation. Call `reset()` when one starts."""

    def __init__(self):
        self._buffer = ""

    @property
    def text(self) -> str:
        return self._buffer

    def reset(self) -> None:
        self._buffer = ""

    def feed(self, fragment: str) -> str:
        """Apply one fragment and return the buffer."""
        if fragment.strip().startswith("{") or self._buffer.strip().startswith("{"):
            self._buffer += fragment
        elif not self._buffer.strip():
            self._buffer = fragment
        return self._buffer
