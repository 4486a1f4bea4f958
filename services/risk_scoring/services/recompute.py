"""
Recompute Queue
===============

Fire-and-forget recalculation of risk scores for task-completion events and
the aging scheduler.

Requests are coalesced per scope while they wait in the queue. A single
worker drains the queue and retries calculations that fail with
DataUnavailableError using exponential backoff.

Version: 0.1.0
"""

import asyncio
import contextlib
from dataclasses import dataclass

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from services.risk_scoring.errors import DataUnavailableError, RiskScoringError
from services.risk_scoring.services.scoring import RiskScoringService
from shared.config import settings
from shared.logging import bind_context, clear_context, get_logger
from shared.models.risk import TaskCompletedEvent, TriggeredBy


logger = get_logger(__name__)


@dataclass(frozen=True)
class RecomputeRequest:
    """A pending recalculation for one scope."""

    user_id: str
    framework_id: str | None = None
    triggered_by: TriggeredBy = TriggeredBy.TASK_COMPLETION
    context: tuple[str, ...] = ()

    @property
    def scope(self) -> tuple[str, str | None]:
        return (self.user_id, self.framework_id)


class RecomputeQueue:
    """In-process queue feeding RiskScoringService.calculate_score."""

    def __init__(
        self,
        service: RiskScoringService,
        max_attempts: int | None = None,
        backoff_max_seconds: float | None = None,
    ) -> None:
        config = settings.risk_scoring
        self.service = service
        self.max_attempts = max_attempts or config.recompute_max_attempts
        self.backoff_max_seconds = (
            config.recompute_backoff_max_seconds
            if backoff_max_seconds is None
            else backoff_max_seconds
        )
        self._queue: asyncio.Queue[RecomputeRequest] = asyncio.Queue()
        self._pending: set[tuple[str, str | None]] = set()
        self._worker: asyncio.Task[None] | None = None
        self.processed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Start the worker if it is not already running."""
        if not self.running:
            self._worker = asyncio.create_task(self._run(), name="risk-recompute-worker")
            logger.info("recompute_worker_started")

    async def stop(self) -> None:
        """Cancel the worker; queued requests are discarded."""
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
            logger.info("recompute_worker_stopped", discarded=self._queue.qsize())

    async def join(self) -> None:
        """Wait until every queued request has been processed."""
        await self._queue.join()

    def submit(self, request: RecomputeRequest) -> bool:
        """
        Enqueue a recalculation without waiting for it.

        Returns:
            True if queued, False if coalesced into an already pending
            request for the same scope
        """
        if request.scope in self._pending:
            logger.debug(
                "recompute_coalesced",
                user_id=request.user_id,
                framework_id=request.framework_id,
            )
            return False

        self._pending.add(request.scope)
        self._queue.put_nowait(request)
        self.start()
        return True

    def submit_task_completed(self, event: TaskCompletedEvent) -> bool:
        """Queue a recalculation for a completed task."""
        context = (f"Completed task: {event.task_title}",) if event.task_title else ()
        return self.submit(
            RecomputeRequest(
                user_id=event.user_id,
                framework_id=event.framework_id,
                triggered_by=TriggeredBy.TASK_COMPLETION,
                context=context,
            )
        )

    async def _run(self) -> None:
        while True:
            request = await self._queue.get()
            # New events arriving from here on may change the data again
            self._pending.discard(request.scope)
            try:
                await self._process(request)
            finally:
                self._queue.task_done()

    async def _process(self, request: RecomputeRequest) -> None:
        bind_context(
            user_id=request.user_id,
            framework_id=request.framework_id,
            triggered_by=request.triggered_by.value,
        )
        try:
            await self._calculate(request)
        finally:
            clear_context()

    async def _calculate(self, request: RecomputeRequest) -> None:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(DataUnavailableError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=0.5, max=self.backoff_max_seconds),
            before_sleep=lambda rs: logger.warning(
                "recompute_retry",
                user_id=request.user_id,
                attempt=rs.attempt_number,
            ),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    await self.service.calculate_score(
                        request.user_id,
                        request.framework_id,
                        triggered_by=request.triggered_by,
                        context=list(request.context),
                    )
        except RiskScoringError as e:
            self.failed += 1
            logger.error(
                "recompute_failed",
                user_id=request.user_id,
                framework_id=request.framework_id,
                error_code=e.error_code,
                error=e.message,
            )
        except Exception as e:
            self.failed += 1
            logger.exception(
                "recompute_unexpected_error",
                user_id=request.user_id,
                framework_id=request.framework_id,
                error=str(e),
            )
        else:
            self.processed += 1
