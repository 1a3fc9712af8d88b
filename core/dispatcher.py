# core/dispatcher.py
import asyncio
import logging
from typing import Optional, Set

from core.debounce import DebounceGate
from core.leaderboards import LeaderboardStore
from data.models import MemberSnapshot

logger = logging.getLogger(__name__)


class UpdateDispatcher:
    """
    Queue of member leaderboard updates, run in the background with a fixed
    number of concurrent tasks and a minimum delay between dispatches so the
    database doesn't get flooded.
    """

    def __init__(
        self,
        store: LeaderboardStore,
        gate: DebounceGate,
        concurrency: int = 10,
        interval_seconds: float = 0.5,
    ):
        self.store = store
        self.gate = gate
        self.concurrency = concurrency
        self.interval_seconds = interval_seconds
        self._queue: "asyncio.Queue[MemberSnapshot]" = asyncio.Queue()
        self._slots = asyncio.Semaphore(concurrency)
        self._in_flight: Set[asyncio.Task] = set()
        self._runner: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(self, member: MemberSnapshot):
        """Queue an update for the member, never waits."""
        self._queue.put_nowait(member)

    def start(self):
        if self._runner is None:
            self._runner = asyncio.create_task(self._run())
            print(f"Leaderboard update dispatcher started ({self.concurrency} workers).")

    async def _run(self):
        while True:
            member = await self._queue.get()
            await self._slots.acquire()
            task = asyncio.create_task(self.process(member))
            self._in_flight.add(task)
            task.add_done_callback(self._on_task_done)
            await asyncio.sleep(self.interval_seconds)

    def _on_task_done(self, task: asyncio.Task):
        self._in_flight.discard(task)
        self._slots.release()
        self._queue.task_done()

    async def process(self, member: MemberSnapshot) -> bool:
        """
        Run one member update. Returns True if the leaderboards were written.
        Failures are logged and dropped, the member's next update retries naturally.
        """
        # the member's been updated too recently
        if not await self.gate.should_proceed(f"{member.profile_uuid}{member.uuid}"):
            return False

        logger.debug(f"[DISPATCH] Adding member to leaderboards: {member.username or member.uuid}")
        try:
            applicable = await self.store.update_member(member)
        except Exception as e:
            logger.error(f"[DISPATCH] Failed to update member {member.uuid}: {e}", exc_info=True)
            return False

        logger.debug(
            f"[DISPATCH] Added member {member.username or member.uuid} to {len(applicable)} leaderboards"
        )
        return True

    async def join(self):
        """Wait until everything queued so far has been processed."""
        await self._queue.join()

    async def stop(self):
        if self._runner is not None:
            self._runner.cancel()
            try:
                await self._runner
            except asyncio.CancelledError:
                pass
            self._runner = None
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
