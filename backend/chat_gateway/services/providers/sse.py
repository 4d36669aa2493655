"""Server-sent-event frame decoding for upstream provider streams."""

import json
from collections.abc import AsyncGenerator, AsyncIterable
from typing import Any

from chat_gateway.errors import StreamTransportError

DONE_MARKER = "[DONE]"


async def decode_sse_frames(
    lines: AsyncIterable[str],
) -> AsyncGenerator[dict[str, Any], None]:
    """Decode `data:` lines into JSON frames, one frame ahead of the consumer.

    Blank lines, comments and `event:` lines are skipped. Decoding stops at
    the [DONE] marker.

    Raises:
        StreamTransportError: If a payload is not a JSON object, or the
            upstream closes before sending [DONE]
    """
    async for line in lines:
        if not line or not line.strip():
            continue
        if not line.startswith("data:"):
            # event:, id:, retry: and ": keep-alive" comment lines
            continue

        data = line[5:].strip()
        if data == DONE_MARKER:
            return
        try:
            frame = json.loads(data)
        except json.JSONDecodeError:
            raise StreamTransportError(f"Could not decode stream frame: {data[:80]!r}")
        if not isinstance(frame, dict):
            raise StreamTransportError("Stream frame is not a JSON object")
        yield frame

    raise StreamTransportError("Upstream stream closed before completion")
