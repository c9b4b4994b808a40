"""Generic poll loop for long-running Mirako jobs.

One poller serves every job kind. The kind-specific parts (status fetch,
wire vocabulary, initial label) come from a ``TaskBinding``; see
``mirako.core.tasks.bindings``.

Two activities run concurrently for the lifetime of a poll:

* the poll loop: wait one interval, fetch status, repeat until terminal
* the spinner: redraw the progress line every ``spinner_interval``

A cancellation token (``asyncio.Event``) is raced against every wait and every
fetch. When it is set the poll stops at once, without a final fetch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TextIO, TypeVar

from mirako.core.errors import CancellationError, JobFailureError
from mirako.core.tasks.models import PollConfig, TaskHandle, TaskState, TaskStatus
from mirako.core.tasks.progress import ProgressLine, Spinner, stop_tasks

logger = logging.getLogger(__name__)

T = TypeVar("T")

StatusFetcher = Callable[[str], Awaitable[TaskStatus]]


class TaskPoller:
    """Poll a job until it completes, fails or is cancelled.

    Args:
        fetch: ``fetch(task_id) -> TaskStatus``; transport errors propagate
        config: Poll and spinner intervals, optional deadline
        initial_label: Status text shown before the first fetch returns
        cancel_token: Event that aborts polling when set
        stream: Output stream for the progress line (defaults to stdout)

    Example:
        >>> poller = TaskPoller(fetch, PollConfig(poll_interval=2), initial_label="PROCESSING")
        >>> status = await poller.run(TaskHandle(id=task_id, kind=TaskKind.IMAGE_GENERATE))
        >>> artifact = status.payload
    """

    def __init__(
        self,
        fetch: StatusFetcher,
        config: PollConfig,
        *,
        initial_label: str,
        cancel_token: asyncio.Event | None = None,
        stream: TextIO | None = None,
    ) -> None:
        self._fetch = fetch
        self.config = config
        self.initial_label = initial_label
        self._cancel_token = cancel_token
        self._stream = stream

    def _cancelled(self) -> bool:
        return self._cancel_token is not None and self._cancel_token.is_set()

    async def run(self, handle: TaskHandle) -> TaskStatus:
        """Poll ``handle`` to a terminal state.

        Returns:
            The COMPLETED status, whose ``payload`` carries the artifact

        Raises:
            JobFailureError: The job reported FAILED, CANCELED or TIMEDOUT
            CancellationError: The token fired or the deadline passed first
            ApiError: A status fetch failed (never retried here)
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.timeout if self.config.timeout else None

        line = ProgressLine(self._stream)
        spinner = Spinner(line, self.initial_label)
        logger.info(f"Polling {handle.kind.value} task {handle.id}")

        spinner.tick()
        spin_task = asyncio.create_task(spinner.run(self.config.spinner_interval))
        cancel_wait = (
            asyncio.create_task(self._cancel_token.wait())
            if self._cancel_token is not None
            else None
        )
        try:
            while True:
                await self._race(asyncio.sleep(self.config.poll_interval), cancel_wait, deadline)
                status = await self._race(self._fetch(handle.id), cancel_wait, deadline)

                if status.label != spinner.status:
                    logger.debug(f"Task {handle.id}: {spinner.status} -> {status.label}")
                spinner.status = status.label

                if status.state is TaskState.COMPLETED:
                    logger.info(f"Task {handle.id} completed")
                    return status
                if status.state.is_failure:
                    logger.warning(f"Task {handle.id} ended with {status.label}")
                    raise JobFailureError(status.label, status.error_detail)
        finally:
            await stop_tasks(spin_task, cancel_wait)
            line.clear()

    async def _race(
        self,
        awaitable: Awaitable[T],
        cancel_wait: asyncio.Task | None,
        deadline: float | None,
    ) -> T:
        """Await ``awaitable`` unless cancellation or the deadline comes first."""
        if self._cancelled():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise CancellationError()

        task = asyncio.ensure_future(awaitable)
        waiters: set[asyncio.Future] = {task}
        if cancel_wait is not None:
            waiters.add(cancel_wait)
        timeout = None
        if deadline is not None:
            timeout = max(0.0, deadline - asyncio.get_running_loop().time())

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            await stop_tasks(task)

        # Cancellation wins over a result that became ready at the same time
        if self._cancelled():
            raise CancellationError()
        if task not in done:
            raise CancellationError(f"timed out after {self.config.timeout:g}s")
        return task.result()
