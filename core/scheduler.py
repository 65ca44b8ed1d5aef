"""
PixelPulse — Tick Schedulers
The host's per-frame timing facility. The engine and the capture bridge only
ever call schedule(callback) -> handle and cancel(handle), one callback per tick.

AsyncioScheduler: real-time ticks on an asyncio event loop (HTTP server).
ManualScheduler : a queue the caller drains explicitly (CLI, preview window, tests).
"""

import asyncio
from collections import deque

FRAME_INTERVAL = 1 / 60  # seconds between live ticks


class AsyncioScheduler:
    """Schedules ticks with loop.call_later on the running event loop."""

    def __init__(self, interval: float = FRAME_INTERVAL, loop=None):
        self.interval = interval
        self._loop = loop

    def schedule(self, callback):
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(self.interval, callback)

    def cancel(self, handle):
        if handle is not None:
            handle.cancel()


class ManualScheduler:
    """FIFO of pending tick callbacks, run only when the owner asks.

    run_pending() runs the ticks that were queued before the call, so a loop
    that reschedules itself advances exactly one step per call.
    """

    def __init__(self):
        self._queue = deque()
        self._cancelled = set()
        self._next_handle = 0

    def schedule(self, callback):
        self._next_handle += 1
        self._queue.append((self._next_handle, callback))
        return self._next_handle

    def cancel(self, handle):
        if handle is not None:
            self._cancelled.add(handle)

    @property
    def pending(self) -> int:
        return sum(1 for handle, _ in self._queue if handle not in self._cancelled)

    def run_once(self) -> bool:
        """Run the oldest live callback. Returns False when nothing was pending."""
        while self._queue:
            handle, callback = self._queue.popleft()
            if handle in self._cancelled:
                self._cancelled.discard(handle)
                continue
            callback()
            return True
        return False

    def run_pending(self) -> int:
        """Run one round: every callback queued before this call."""
        ran = 0
        for _ in range(len(self._queue)):
            handle, callback = self._queue.popleft()
            if handle in self._cancelled:
                self._cancelled.discard(handle)
                continue
            callback()
            ran += 1
        return ran

    def run_until_idle(self, max_steps: int = 100_000) -> int:
        """Drain the queue, including callbacks scheduled along the way.

        Raises:
            RuntimeError: Still busy after max_steps (a self-rescheduling loop
                such as live playback never goes idle).
        """
        steps = 0
        while self.run_once():
            steps += 1
            if steps >= max_steps:
                raise RuntimeError(f"Scheduler still busy after {max_steps} steps")
        return steps
