from __future__ import annotations

import asyncio
import contextvars
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Annotated, Any

from fastapi import Depends, Request

from bren_api.observability import metrics
from bren_api.observability.context import get_request_id, request_id_var
from bren_api.settings import Settings

JobFn = Callable[[], Awaitable[object]]


@dataclass(frozen=True)
class OutboundJob:
    name: str
    run: JobFn
    attributes: dict[str, Any] = field(default_factory=dict)
    request_id: str | None = None


class OutboundDispatcher:
    """Runs acknowledgement work after the inbound request has been answered.

    Jobs are executed one at a time by a single worker task. A failing job is
    logged and counted; it never propagates to the handler that submitted it.
    The worker is started lazily on first submit so it always lives on the
    loop that serves requests.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 1,
        retry_backoff_seconds: float = 1.0,
        max_queue_size: int = 1000,
    ) -> None:
        self._max_attempts = max(1, max_attempts)
        self._retry_backoff_seconds = retry_backoff_seconds
        self._max_queue_size = max_queue_size
        self._queue: asyncio.Queue[OutboundJob] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._logger = logging.getLogger("bren_api.outbound.dispatcher")
        self.failed_jobs: deque[str] = deque(maxlen=100)

    @classmethod
    def from_settings(cls, settings: Settings) -> "OutboundDispatcher":
        return cls(
            max_attempts=settings.outbound_max_attempts,
            retry_backoff_seconds=settings.outbound_retry_backoff_seconds,
            max_queue_size=settings.outbound_queue_size,
        )

    def _ensure_worker(self) -> asyncio.Queue[OutboundJob]:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self._max_queue_size)
        if self._worker is None or self._worker.done():
            # A fresh context keeps the first caller's request id off the worker.
            self._worker = asyncio.get_running_loop().create_task(
                self._run_worker(self._queue),
                name="bren-outbound-dispatcher",
                context=contextvars.Context(),
            )
        return self._queue

    def submit(self, name: str, run: JobFn, **attributes: Any) -> bool:
        queue = self._ensure_worker()
        job = OutboundJob(name=name, run=run, attributes=attributes, request_id=get_request_id())
        try:
            queue.put_nowait(job)
        except asyncio.QueueFull:
            self._logger.warning("outbound_job_dropped", extra={"job": name, **attributes})
            metrics.outbound_job_total.labels(job=name, outcome="dropped").inc()
            return False
        return True

    async def join(self) -> None:
        """Wait until every submitted job has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        if self._queue is not None and self._worker is not None and not self._worker.done():
            await self._queue.join()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        self._queue = None

    async def _run_worker(self, queue: asyncio.Queue[OutboundJob]) -> None:
        while True:
            job = await queue.get()
            token = request_id_var.set(job.request_id)
            try:
                await self._run_job(job)
            finally:
                request_id_var.reset(token)
                queue.task_done()

    async def _run_job(self, job: OutboundJob) -> None:
        for attempt in range(1, self._max_attempts + 1):
            try:
                await job.run()
            except Exception:  # noqa: BLE001
                self._logger.exception(
                    "outbound_job_failed",
                    extra={"job": job.name, "attempt": attempt, **job.attributes},
                )
                if attempt < self._max_attempts:
                    metrics.outbound_job_total.labels(job=job.name, outcome="retry").inc()
                    await asyncio.sleep(self._retry_backoff_seconds)
                    continue
                metrics.outbound_job_total.labels(job=job.name, outcome="failed").inc()
                self.failed_jobs.append(job.name)
                return
            metrics.outbound_job_total.labels(job=job.name, outcome="success").inc()
            return


def get_outbound_dispatcher(request: Request) -> OutboundDispatcher:
    return request.app.state.outbound_dispatcher


OutboundDispatcherDep = Annotated[OutboundDispatcher, Depends(get_outbound_dispatcher)]
