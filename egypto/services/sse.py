"""
SSE TRANSPORT MODULE
====================

Turns text deltas into Server-Sent Events for one HTTP response.

  transport = SseTransport()
  response = transport.open()     # StreamingResponse; headers go out first
  transport.send("Hello")         # data: Hello\n\n
  transport.end()                 # event: done\ndata: END\n\n, then close
  transport.send_error("...")     # data: {"error": "..."}\n\n, then close

The producer (the chat pipeline task) only queues frames; the response body
iterator drains the queue. When the client disconnects the iterator is closed,
the transport marks itself closed, and the next send() raises
TransportClosedError so the broker stops forwarding.

Before open() there is no stream yet, so send_error() returns a JSON error
response instead of writing a frame.

NEWLINES:
  A delta containing "\\n" becomes one event with several `data:` lines. SSE
  clients join those lines back with "\\n", so the text arrives intact and the
  blank line stays the only event separator.
"""

import asyncio
import json
import logging
from typing import AsyncIterator, Dict, Optional, Union

from fastapi.responses import JSONResponse, StreamingResponse

from egypto.errors import TransportClosedError

logger = logging.getLogger("EgyptoAI")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

DONE_FRAME = "event: done\ndata: END\n\n"


def format_data_frame(text: str) -> str:
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return "".join(f"data: {line}\n" for line in lines) + "\n"


def format_error_frame(message: str) -> str:
    return f"data: {json.dumps({'error': message}, ensure_ascii=False)}\n\n"


def error_body(message: str, details: Optional[str] = None) -> dict:
    body = {"error": message}
    if details:
        body["details"] = details
    return body


class SseTransport:
    def __init__(self):
        self._queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        self.opened = False
        self.closed = False

    def open(self, headers: Optional[Dict[str, str]] = None) -> StreamingResponse:
        if self.opened:
            raise RuntimeError("SSE stream already opened")
        self.opened = True
        return StreamingResponse(
            self._frames(),
            media_type="text/event-stream",
            headers={**SSE_HEADERS, **(headers or {})},
        )

    def send(self, delta: str) -> None:
        if not self.opened:
            raise RuntimeError("send() before open()")
        if self.closed:
            raise TransportClosedError("client disconnected")
        self._queue.put_nowait(format_data_frame(delta))

    def end(self) -> None:
        self._finish(DONE_FRAME)

    def send_error(
        self, message: str, status_code: int = 500, details: Optional[str] = None
    ) -> Union[JSONResponse, None]:
        """JSON error response if nothing was sent yet, otherwise an in-band frame and close."""
        if not self.opened:
            return JSONResponse(status_code=status_code, content=error_body(message, details))
        self._finish(format_error_frame(message))
        return None

    def _finish(self, frame: str) -> None:
        if self.closed:
            return
        self._queue.put_nowait(frame)
        self._queue.put_nowait(None)
        self.closed = True

    async def _frames(self) -> AsyncIterator[str]:
        try:
            while True:
                frame = await self._queue.get()
                if frame is None:
                    break
                yield frame
        finally:
            if not self.closed:
                logger.warning("SSE client disconnected before the stream finished")
            self.closed = True
