"""In-process retry queue for outbound catalog webhooks.

Single-flight, FIFO and time-gated: one drain task works the head of
the queue, waiting until the head's ``next_retry`` has passed.  A failed
send is retried after 5s, 30s and then 5min; once a job has failed
``max_attempts`` times it is dropped with an error log.

Jobs live only in this process and are lost on restart.  That is
tolerable because a full catalog pull reconciles anything missed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable

from orderhub.webhooks.outbound import JobKind

logger = logging.getLogger(__name__)

RETRY_DELAYS: tuple[float, ...] = (5.0, 30.0, 300.0)
MAX_ATTEMPTS = 3
POLL_INTERVAL = 1.0

SendFn = Callable[[JobKind, str], Awaitable[Any]]


@dataclass
class RetryJob:
    kind: JobKind
    target_id: str
    attempts: int = 0
    max_attempts: int = MAX_ATTEMPTS
    next_retry: float = 0.0
    last_error: str = ""


class WebhookRetryQueue:

    def __init__(
        self,
        send: SendFn,
        *,
        retry_delays: tuple[float, ...] = RETRY_DELAYS,
        max_attempts: int = MAX_ATTEMPTS,
        poll_interval: float = POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._send = send
        self._retry_delays = retry_delays
        self._max_attempts = max_attempts
        self._poll_interval = poll_interval
        self._clock = clock
        self._jobs: deque[RetryJob] = deque()
        self._processing = False
        self._task: asyncio.Task | None = None

    @property
    def processing(self) -> bool:
        return self._processing

    def add(self, kind: JobKind, target_id: str) -> RetryJob:
        """Queue a push and make sure a drain task is running."""
        job = RetryJob(
            kind=JobKind(kind),
            target_id=target_id,
            max_attempts=self._max_attempts,
            next_retry=self._clock(),
        )
        self._jobs.append(job)
        logger.info("Queued %s webhook for %s (queue length %d)", job.kind.value, target_id, len(self._jobs))

        if not self._processing:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning("No running event loop; %s job waits for drain()", job.kind.value)
                return job
            self._processing = True
            self._task = loop.create_task(self._run())
        return job

    async def drain(self) -> None:
        """Work the queue until it is empty.  No-op if a drain is already running."""
        if self._processing:
            return
        self._processing = True
        await self._run()

    async def _run(self) -> None:
        try:
            while self._jobs:
                job = self._jobs[0]
                if job.next_retry > self._clock():
                    await asyncio.sleep(self._poll_interval)
                    continue
                await self._attempt(job)
        finally:
            self._processing = False

    async def _attempt(self, job: RetryJob) -> None:
        try:
            await self._send(job.kind, job.target_id)
        except Exception as exc:
            job.attempts += 1
            job.last_error = f"{type(exc).__name__}: {exc}"
            if job.attempts >= job.max_attempts:
                self._jobs.popleft()
                logger.error(
                    "Dropping %s webhook for %s after %d attempts: %s",
                    job.kind.value,
                    job.target_id,
                    job.attempts,
                    job.last_error,
                )
                return
            delay = self._retry_delays[min(job.attempts, len(self._retry_delays)) - 1]
            job.next_retry = self._clock() + delay
            logger.warning(
                "%s webhook for %s failed (attempt %d/%d): %s; retrying in %.0fs",
                job.kind.value,
                job.target_id,
                job.attempts,
                job.max_attempts,
                job.last_error,
                delay,
            )
            return

        self._jobs.popleft()
        logger.info("%s webhook for %s delivered", job.kind.value, job.target_id)

    def status(self) -> dict[str, Any]:
        return {
            "queue_length": len(self._jobs),
            "processing": self._processing,
            "jobs": [{**asdict(j), "kind": j.kind.value} for j in self._jobs],
        }

    async def close(self) -> None:
        """Cancel the running drain task (queued jobs are discarded)."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._jobs.clear()
