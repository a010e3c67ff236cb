"""Time-paced reveal of a finished suggestion, independent of network timing."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Callable

from .models import RevealSettings

LOGGER = logging.getLogger(__name__)

FrameCallback = Callable[[str, bool], None]


def tick_count(text: str, chars_per_tick: int) -> int:
    if not text:
        return 0
    if chars_per_tick <= 0:
        return 1
    return math.ceil(len(text) / chars_per_tick)


def revealed_prefix(text: str, ticks: int, chars_per_tick: int) -> str:
    """Return the part of ``text`` visible after ``ticks`` ticks."""

    if ticks <= 0:
        return ""
    if chars_per_tick <= 0:
        return text
    return text[: ticks * chars_per_tick]


class RevealAnimator:
    """Drive :func:`revealed_prefix` from an asyncio task.

    ``on_frame`` receives the visible prefix and whether it is the final
    frame. Cancelling the task stops the animation without a final frame.
    """

    def __init__(self, text: str, settings: RevealSettings, on_frame: FrameCallback) -> None:
        self._text = text
        self._settings = settings
        self._on_frame = on_frame
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[None]:
        if self._task is not None:
            raise RuntimeError("Reveal animation already started")
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        if self._task is None:
            return
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    async def _run(self) -> None:
        total = tick_count(self._text, self._settings.chars_per_tick)
        for tick in range(1, total + 1):
            await asyncio.sleep(self._settings.tick_seconds)
            prefix = revealed_prefix(self._text, tick, self._settings.chars_per_tick)
            self._on_frame(prefix, tick == total)
        if total == 0:
            self._on_frame("", True)
        LOGGER.debug("Reveal finished after %d tick(s)", total)


__all__ = ["RevealAnimator", "revealed_prefix", "tick_count"]
