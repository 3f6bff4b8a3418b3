"""
Invocation-level poll loop.

Processes the messages delivered with the invocation, then keeps pulling
batches from the source queue until it is empty or the remaining execution
time drops below the safety margin. A batch that has started always runs to
completion; the margin only stops new fetches.
"""

import logging
import time
from typing import Callable, List, Optional

from models import InvocationSummary, RawQueueItem
from sqs_client import MAX_BATCH_SIZE, chunked

logger = logging.getLogger()

SAFETY_MARGIN_MS = 30_000
POLL_WAIT_SECONDS = 1
POLL_INTERVAL_SECONDS = 0.1


class PollLoop:
    """Drains the source queue within an execution time budget."""

    def __init__(
        self,
        gateway,
        coordinator,
        source_queue_url: str,
        safety_margin_ms: int = SAFETY_MARGIN_MS,
        wait_seconds: int = POLL_WAIT_SECONDS,
        poll_interval_seconds: float = POLL_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.gateway = gateway
        self.coordinator = coordinator
        self.source_queue_url = source_queue_url
        self.safety_margin_ms = safety_margin_ms
        self.wait_seconds = wait_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._sleep = sleep

    def run(
        self,
        remaining_time_ms: Callable[[], int],
        initial_items: Optional[List[RawQueueItem]] = None
    ) -> InvocationSummary:
        """
        Process delivered items, then poll until drained or out of time.

        Args:
            remaining_time_ms: Returns the invocation's remaining time in ms
            initial_items: Items delivered with the invocation

        Returns:
            InvocationSummary: Aggregate counts and elapsed duration

        Raises:
            Exception: Anything the coordinator or queue fetch raises
        """
        start_time = time.monotonic()
        summary = InvocationSummary()

        for batch in chunked(initial_items or []):
            summary.add(self.coordinator.process_batch(batch))

        if initial_items:
            logger.info(f"[poll] Processed {len(initial_items)} initially delivered messages")

        while True:
            remaining = remaining_time_ms()
            if remaining < self.safety_margin_ms:
                logger.info(
                    f"[poll] {remaining}ms remaining, below {self.safety_margin_ms}ms "
                    f"safety margin; stopping"
                )
                break

            items = self.gateway.receive(
                self.source_queue_url,
                max_messages=MAX_BATCH_SIZE,
                wait_seconds=self.wait_seconds
            )
            if not items:
                logger.info("[poll] Source queue is empty; stopping")
                break

            summary.add(self.coordinator.process_batch(items))
            self._sleep(self.poll_interval_seconds)

        summary.duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(f"[poll] Poll loop finished. {summary.to_message()}")
        return summary
