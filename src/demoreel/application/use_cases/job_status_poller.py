from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator, Awaitable, Callable, Optional

from ...domain.entities import JobSnapshot
from ...domain.errors import BackendUnreachableError, PollDeadlineExceededError
from ...domain.shared import JobApiProtocol

logger = logging.getLogger(__name__)


def _discard_outcome(task: "asyncio.Future[JobSnapshot]") -> None:
    # marks a late failure as retrieved once nobody awaits the request any more
    if not task.cancelled():
        task.exception()


class JobStatusPoller:
    """Polls the job API until a job reaches a terminal state.

    ``poll`` is an async generator. Stopping iteration (``break``, ``aclose``
    or cancelling the consuming task) ends polling; a request already in
    flight is left to finish and its answer is dropped.
    """

    def __init__(
        self,
        job_api: JobApiProtocol,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._job_api = job_api
        self._clock = clock
        self._sleep = sleep

    async def poll(
        self,
        job_id: str,
        interval: float,
        deadline: float,
    ) -> AsyncIterator[JobSnapshot]:
        """Yield a snapshot per successful status query.

        Args:
            job_id: Backend job identifier
            interval: Seconds between queries
            deadline: Seconds from the first query after which polling gives up

        Raises:
            JobNotFoundError: The backend does not know ``job_id``.
            PollDeadlineExceededError: No terminal state before ``deadline``.
        """
        if interval <= 0:
            raise ValueError("Polling interval must be positive")
        ends_at = self._clock() + deadline
        last: Optional[JobSnapshot] = None

        while True:
            try:
                snapshot = await self._fetch(job_id)
            except BackendUnreachableError as e:
                logger.warning("Status query for job %s failed, will retry: %s", job_id, e)
            else:
                if not 0 <= snapshot.progress <= 100:
                    logger.warning(
                        "Job %s reported progress %s outside 0-100",
                        job_id,
                        snapshot.progress,
                    )
                if last is not None and snapshot.progress < last.progress:
                    logger.warning(
                        "Job %s progress went backwards: %s -> %s",
                        job_id,
                        last.progress,
                        snapshot.progress,
                    )
                last = snapshot
                yield snapshot
                if snapshot.is_terminal:
                    return

            remaining = ends_at - self._clock()
            if remaining <= 0:
                raise PollDeadlineExceededError(job_id, last)
            await self._sleep(min(interval, remaining))

    async def _fetch(self, job_id: str) -> JobSnapshot:
        task = asyncio.ensure_future(self._job_api.get_job_status(job_id))
        task.add_done_callback(_discard_outcome)
        return await asyncio.shield(task)

    async def wait_for_terminal(
        self,
        job_id: str,
        interval: float,
        deadline: float,
        on_snapshot: Optional[Callable[[JobSnapshot], None]] = None,
    ) -> JobSnapshot:
        """Consume ``poll`` and return the terminal snapshot."""
        last: Optional[JobSnapshot] = None
        async for snapshot in self.poll(job_id, interval, deadline):
            last = snapshot
            if on_snapshot is not None:
                on_snapshot(snapshot)
        # poll only returns normally after a terminal snapshot
        assert last is not None
        return last
