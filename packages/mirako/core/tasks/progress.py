"""Single-line terminal progress display.

The spinner redraws one line in place with ANSI escapes. It runs as its own
asyncio task so a slow request never delays a redraw.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable
from typing import TextIO, TypeVar

from mirako.core.errors import CancellationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SPINNER_FRAMES = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")
DEFAULT_SPINNER_INTERVAL = 0.1

CLEAR_LINE = "\r\x1b[K"


class ProgressLine:
    """A terminal line that is overwritten on every draw and cleared once.

    Args:
        stream: Output stream (defaults to ``sys.stdout``)
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self.cleared = False

    def draw(self, text: str) -> None:
        if self.cleared:
            return
        self._stream.write(f"{CLEAR_LINE}{text}")
        self._stream.flush()

    def clear(self) -> None:
        """Erase the line. Only the first call writes anything."""
        if self.cleared:
            return
        self.cleared = True
        self._stream.write(CLEAR_LINE)
        self._stream.flush()


class Spinner:
    """Rotating-frame indicator showing the latest status text.

    ``status`` is written by the poll loop and read by the redraw task. Both
    run on the same event loop, so plain attribute access is race-free.

    Args:
        line: Line to draw on
        status: Initial status text
        template: Format string with ``{frame}`` and ``{status}`` fields
    """

    def __init__(
        self, line: ProgressLine, status: str, template: str = "{frame} Status: {status}"
    ) -> None:
        self.line = line
        self.status = status
        self._template = template
        self._index = 0

    def tick(self) -> None:
        """Draw the next frame."""
        frame = SPINNER_FRAMES[self._index % len(SPINNER_FRAMES)]
        self._index += 1
        self.line.draw(self._template.format(frame=frame, status=self.status))

    async def run(self, interval: float = DEFAULT_SPINNER_INTERVAL) -> None:
        """Redraw every ``interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.tick()


async def stop_tasks(*tasks: asyncio.Future | None) -> None:
    """Cancel helper tasks and wait for them to unwind."""
    pending = [t for t in tasks if t is not None and not t.done()]
    for t in pending:
        t.cancel()
    if pending:
        await asyncio.wait(pending)


async def run_with_spinner(
    awaitable: Awaitable[T],
    label: str,
    cancel_token: asyncio.Event | None = None,
    *,
    stream: TextIO | None = None,
    interval: float = DEFAULT_SPINNER_INTERVAL,
) -> T:
    """Await one request while showing ``<frame> <label>``.

    Used for single round-trip operations (speech-to-text, text-to-speech).
    Cancellation takes priority over a request that completes at the same
    moment, and the line is cleared exactly once on every exit path.

    Args:
        awaitable: The request to await
        label: Text shown next to the spinner
        cancel_token: Event that aborts the wait when set
        stream: Output stream for the progress line
        interval: Seconds between redraws

    Returns:
        The awaitable's result

    Raises:
        CancellationError: If the token is set before the request finishes
    """
    line = ProgressLine(stream)
    spinner = Spinner(line, label, template="{frame} {status}")
    request = asyncio.ensure_future(awaitable)
    spinner.tick()
    spin_task = asyncio.create_task(spinner.run(interval))
    cancel_wait = asyncio.create_task(cancel_token.wait()) if cancel_token is not None else None
    try:
        waiters = {request} if cancel_wait is None else {request, cancel_wait}
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        if cancel_token is not None and cancel_token.is_set():
            logger.debug(f"Cancelled while waiting for: {label}")
            raise CancellationError()
        return request.result()
    finally:
        await stop_tasks(request, spin_task, cancel_wait)
        line.clear()
