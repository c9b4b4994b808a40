"""Tests for the progress line and the single-request spinner."""

from __future__ import annotations

import asyncio
import io

import pytest

from mirako.core.errors import CancellationError
from mirako.core.tasks.progress import (
    CLEAR_LINE,
    SPINNER_FRAMES,
    ProgressLine,
    Spinner,
    run_with_spinner,
)


class TestProgressLine:
    def test_draw_overwrites_line(self) -> None:
        stream = io.StringIO()
        line = ProgressLine(stream)

        line.draw("one")
        line.draw("two")

        assert stream.getvalue() == f"{CLEAR_LINE}one{CLEAR_LINE}two"

    def test_clear_writes_once(self) -> None:
        stream = io.StringIO()
        line = ProgressLine(stream)

        line.clear()
        line.clear()

        assert stream.getvalue() == CLEAR_LINE
        assert line.cleared

    def test_draw_after_clear_is_ignored(self) -> None:
        stream = io.StringIO()
        line = ProgressLine(stream)
        line.clear()

        line.draw("late frame")

        assert stream.getvalue() == CLEAR_LINE


class TestSpinner:
    def test_frames_rotate(self) -> None:
        stream = io.StringIO()
        spinner = Spinner(ProgressLine(stream), "PENDING")

        for _ in range(len(SPINNER_FRAMES) + 1):
            spinner.tick()

        frames = [part.split(" ")[0] for part in stream.getvalue().split(CLEAR_LINE)[1:]]
        assert frames[: len(SPINNER_FRAMES)] == list(SPINNER_FRAMES)
        assert frames[-1] == SPINNER_FRAMES[0]

    def test_template(self) -> None:
        stream = io.StringIO()
        Spinner(ProgressLine(stream), "READY").tick()

        assert stream.getvalue() == f"{CLEAR_LINE}{SPINNER_FRAMES[0]} Status: READY"


class TestRunWithSpinner:
    @pytest.mark.asyncio
    async def test_returns_result_and_clears(self) -> None:
        async def request() -> str:
            await asyncio.sleep(0.02)
            return "transcript"

        stream = io.StringIO()
        result = await run_with_spinner(
            request(), "Transcribing audio...", stream=stream, interval=0.005
        )

        assert result == "transcript"
        output = stream.getvalue()
        assert f"{SPINNER_FRAMES[0]} Transcribing audio..." in output
        assert output.endswith(CLEAR_LINE)
        assert output.count(CLEAR_LINE + CLEAR_LINE) == 0

    @pytest.mark.asyncio
    async def test_request_errors_propagate(self) -> None:
        async def request() -> str:
            raise ValueError("boom")

        stream = io.StringIO()
        with pytest.raises(ValueError, match="boom"):
            await run_with_spinner(request(), "Working", stream=stream)

        assert stream.getvalue().endswith(CLEAR_LINE)

    @pytest.mark.asyncio
    async def test_cancellation_aborts_wait(self) -> None:
        token = asyncio.Event()
        started = asyncio.Event()

        async def request() -> str:
            started.set()
            await asyncio.sleep(30)
            return "never"

        async def cancel_soon() -> None:
            await started.wait()
            token.set()

        stream = io.StringIO()
        canceller = asyncio.create_task(cancel_soon())
        with pytest.raises(CancellationError):
            await asyncio.wait_for(
                run_with_spinner(request(), "Synthesizing speech...", token, stream=stream),
                timeout=5,
            )
        await canceller

        assert stream.getvalue().endswith(CLEAR_LINE)

    @pytest.mark.asyncio
    async def test_cancellation_wins_over_completed_request(self) -> None:
        token = asyncio.Event()

        async def request() -> str:
            token.set()
            return "done"

        with pytest.raises(CancellationError):
            await run_with_spinner(request(), "Working", token, stream=io.StringIO())
