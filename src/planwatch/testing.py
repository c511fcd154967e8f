import asyncio
from typing import Callable, Iterable, List, Optional, Union

from planwatch.runtime.snapshot import DashboardSnapshot, RenderTrigger


class ScriptedLineSource:
    """
    A LineSource that replays a fixed list of lines.

    After the last line it either raises `error`, hangs forever (`hang=True`)
    or reports end of stream.
    """

    def __init__(
        self,
        lines: Iterable[str],
        error: Optional[Exception] = None,
        hang: bool = False,
    ):
        self._lines = list(lines)
        self._error = error
        self._hang = hang
        self.reads = 0

    async def readline(self) -> Optional[str]:
        self.reads += 1
        # Yield so that reads behave like real I/O completions
        await asyncio.sleep(0)
        if self._lines:
            return self._lines.pop(0)
        if self._error is not None:
            raise self._error
        if self._hang:
            await asyncio.Event().wait()
        return None


class QueueLineSource:
    """A LineSource fed by the test while the controller is running."""

    def __init__(self):
        self._queue: "asyncio.Queue[Union[str, None, Exception]]" = asyncio.Queue()

    def feed(self, *lines: str):
        for line in lines:
            self._queue.put_nowait(line)

    def fail(self, error: Exception):
        self._queue.put_nowait(error)

    def close(self):
        self._queue.put_nowait(None)

    async def readline(self) -> Optional[str]:
        item = await self._queue.get()
        if isinstance(item, Exception):
            raise item
        return item


class SpyRenderSink:
    """A RenderSink that records every snapshot it receives."""

    def __init__(self):
        self.snapshots: List[DashboardSnapshot] = []

    def render(self, snapshot: DashboardSnapshot) -> None:
        self.snapshots.append(snapshot)

    @property
    def last(self) -> Optional[DashboardSnapshot]:
        return self.snapshots[-1] if self.snapshots else None

    def with_trigger(self, trigger: RenderTrigger) -> List[DashboardSnapshot]:
        return [s for s in self.snapshots if s.trigger is trigger]

    async def wait_for(
        self,
        predicate: Callable[[DashboardSnapshot], bool],
        timeout: float = 2.0,
    ) -> DashboardSnapshot:
        """Waits until a rendered snapshot satisfies `predicate`."""

        async def poll():
            while True:
                for snapshot in self.snapshots:
                    if predicate(snapshot):
                        return snapshot
                await asyncio.sleep(0.01)

        return await asyncio.wait_for(poll(), timeout)
