"""Worker pool paying accepted withdrawal invoices.

The withdraw callback answers before the payment is attempted. Jobs go into
a bounded queue and a fixed number of workers pay them through the shared
node adapter. Outcomes are reported through logs, counters and events; none
of them ever reach the original HTTP caller.
"""

import asyncio
from typing import Any

from lnurlbridge.core.events.base import GlobalEventBus, get_global_event_bus
from lnurlbridge.domain.events import WithdrawPaymentFailed, WithdrawPaymentSucceeded
from lnurlbridge.domain.value_objects import PaymentJob
from lnurlbridge.exceptions import PaymentExecutionError, PaymentQueueFullError
from lnurlbridge.infrastructure.node_rpc import NodeRpc
from lnurlbridge.utils.logging import get_logger

logger = get_logger(__name__)

PAY_STATUS_COMPLETE = "complete"


class PaymentExecutor:
    """Bounded queue plus worker tasks for withdrawal payments."""

    def __init__(
        self,
        node_rpc: NodeRpc,
        workers: int = 4,
        queue_size: int = 100,
        event_bus: GlobalEventBus | None = None,
    ):
        """Initialize the executor.

        Args:
            node_rpc: Shared node adapter
            workers: Number of concurrent payment workers
            queue_size: Accepted payments that may wait for a worker
            event_bus: Bus receiving ``WithdrawPayment*`` events (default: global bus)
        """
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.node_rpc = node_rpc
        self.workers = workers
        self.event_bus = event_bus or get_global_event_bus()
        self._queue: asyncio.Queue[PaymentJob] = asyncio.Queue(maxsize=queue_size)
        self._tasks: list[asyncio.Task] = []
        self._in_flight = 0
        self._submitted = 0
        self._succeeded = 0
        self._failed = 0

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        """Spawn the worker tasks."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"withdraw-payment-{i}")
            for i in range(self.workers)
        ]
        logger.info("payment_executor_started", workers=self.workers)

    async def stop(self) -> None:
        """Cancel the workers. Queued jobs are dropped."""
        if not self._tasks:
            return
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        dropped = self._queue.qsize()
        if dropped:
            logger.warning("payment_executor_dropped_jobs", count=dropped)
        logger.info("payment_executor_stopped", **self.stats())

    def submit(self, job: PaymentJob) -> None:
        """Queue a payment without waiting.

        Raises:
            PaymentQueueFullError: the queue is at capacity
        """
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            logger.error("payment_queue_full", capacity=self._queue.maxsize)
            raise PaymentQueueFullError(
                "Payment queue is full", context={"capacity": self._queue.maxsize}
            ) from None
        self._submitted += 1
        logger.debug("payment_queued", amount_msat=job.amount_msat, queued=self._queue.qsize())

    async def join(self) -> None:
        """Wait until every queued payment has been attempted."""
        await self._queue.join()

    def stats(self) -> dict[str, Any]:
        return {
            "submitted": self._submitted,
            "succeeded": self._succeeded,
            "failed": self._failed,
            "pending": self._queue.qsize() + self._in_flight,
            "workers": len(self._tasks),
        }

    async def _worker(self, worker_id: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._execute(job, worker_id)
            finally:
                self._queue.task_done()

    async def _execute(self, job: PaymentJob, worker_id: int) -> None:
        self._in_flight += 1
        logger.info(
            "withdraw_payment_started",
            worker=worker_id,
            amount_msat=job.amount_msat,
            max_fee_msat=job.max_fee_msat,
        )
        try:
            result = await self.node_rpc.pay(
                job.invoice, job.max_fee_percent, job.retry_for_seconds
            )
            if result.status != PAY_STATUS_COMPLETE:
                raise PaymentExecutionError(
                    f"Payment ended with status {result.status}",
                    context={"payment_hash": result.payment_hash},
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e if isinstance(e, PaymentExecutionError) else PaymentExecutionError(
                f"Withdraw payment failed: {e}", original_error=e
            )
            self._failed += 1
            logger.error(
                "withdraw_payment_failed",
                worker=worker_id,
                amount_msat=job.amount_msat,
                error=str(error),
                error_type=type(e).__name__,
            )
            await self.event_bus.publish_async(
                WithdrawPaymentFailed(
                    invoice=job.invoice, amount_msat=job.amount_msat, reason=error.message
                )
            )
        else:
            self._succeeded += 1
            logger.info(
                "withdraw_payment_succeeded",
                worker=worker_id,
                payment_hash=result.payment_hash,
                amount_msat=job.amount_msat,
                amount_sent_msat=result.amount_sent_msat,
                preimage=result.payment_preimage,
            )
            await self.event_bus.publish_async(
                WithdrawPaymentSucceeded(
                    invoice=job.invoice,
                    payment_hash=result.payment_hash,
                    amount_msat=job.amount_msat,
                    amount_sent_msat=result.amount_sent_msat,
                )
            )
        finally:
            self._in_flight -= 1
