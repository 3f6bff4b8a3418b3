"""
Batch coordinator for tender messages.

Runs one batch through four ordered phases. Each phase's outcome is final for
the messages it touches; nothing is rolled back.

1. Classify & process: route every raw item and process it. A failing item
   moves to the failed set with its original body; the batch continues.
2. Commit success: send processed messages to the write queue. If the send
   fails as a whole every message moves to the failed set; entries the queue
   rejects individually move on their own.
3. Commit failure: send the failed set to the dead-letter queue. Any failure
   here raises DeadLetterWriteError so the invocation fails and the source
   queue redelivers.
4. Delete acknowledged: delete from the source queue only the items the write
   queue acknowledged. Delete failures are logged; those messages are
   redelivered and processed again.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Tuple

from exceptions import ClassificationError, DeadLetterWriteError
from models import BatchOutcome, FailureRecord, RawQueueItem, TenderMessage
from sqs_client import MAX_BATCH_SIZE, SendEntry

logger = logging.getLogger()

CATEGORY_CLASSIFICATION = "classification"
CATEGORY_PROCESSING = "processing"
CATEGORY_COMMIT = "commit"


@dataclass
class ProcessedItem:
    item: RawQueueItem
    message: TenderMessage


@dataclass
class FailedItem:
    item: RawQueueItem
    payload: str
    error_message: str
    error_category: str
    error_type: str

    def to_record(self) -> FailureRecord:
        return FailureRecord(
            original_message=self.payload,
            classification_key=self.item.classification_key,
            error_message=self.error_message,
            error_category=self.error_category,
            error_type=self.error_type,
        )


def _failed(item: RawQueueItem, payload: str, error: Exception, category: str) -> FailedItem:
    return FailedItem(
        item=item,
        payload=payload,
        error_message=str(error),
        error_category=category,
        error_type=type(error).__name__,
    )


class BatchCoordinator:
    """Moves one batch of raw queue items through the commit protocol."""

    def __init__(
        self,
        gateway,
        router,
        processor,
        source_queue_url: str,
        write_queue_url: str,
        failed_queue_url: str,
        max_workers: int = MAX_BATCH_SIZE
    ):
        self.gateway = gateway
        self.router = router
        self.processor = processor
        self.source_queue_url = source_queue_url
        self.write_queue_url = write_queue_url
        self.failed_queue_url = failed_queue_url
        self.max_workers = max_workers

    def process_batch(self, items: List[RawQueueItem]) -> BatchOutcome:
        """
        Process one batch.

        Returns:
            BatchOutcome: processed (acknowledged by the write queue), failed,
            deleted

        Raises:
            DeadLetterWriteError: Failed messages could not be dead-lettered
        """
        if not items:
            return BatchOutcome()

        logger.info(f"[batch] Processing batch of {len(items)} messages")

        processed, failures = self._classify_and_process(items)
        acknowledged, commit_failures = self._commit_success(processed)
        failures.extend(commit_failures)
        self._commit_failures(failures)
        deleted = self._delete_acknowledged(acknowledged)

        outcome = BatchOutcome(processed=len(acknowledged), failed=len(failures), deleted=deleted)
        logger.info(
            f"[batch] Batch complete. Processed: {outcome.processed}, "
            f"Failed: {outcome.failed}, Deleted: {outcome.deleted}"
        )
        return outcome

    # ========================================================================
    # Phase 1: Classify & Process
    # ========================================================================

    def _classify_and_process(
        self, items: List[RawQueueItem]
    ) -> Tuple[List[ProcessedItem], List[FailedItem]]:
        classified: List[ProcessedItem] = []
        failures: List[FailedItem] = []

        for item in items:
            try:
                message = self.router.classify(item.body, item.classification_key)
                classified.append(ProcessedItem(item=item, message=message))
            except Exception as e:
                category = CATEGORY_CLASSIFICATION if isinstance(e, ClassificationError) else CATEGORY_PROCESSING
                logger.error(
                    f"[batch] Failed to classify message {item.message_id} "
                    f"with key {item.classification_key}: {e}"
                )
                failures.append(_failed(item, item.body, e, category))

        if not classified:
            return [], failures

        processed: List[ProcessedItem] = []
        workers = min(len(classified), self.max_workers)

        # Enrichment concurrency is capped by the enrichment client itself
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                (entry, executor.submit(self.processor.process, entry.message))
                for entry in classified
            ]
            for entry, future in futures:
                try:
                    processed.append(ProcessedItem(item=entry.item, message=future.result()))
                except Exception as e:
                    logger.error(
                        f"[batch] Failed to process message {entry.item.message_id}: {e}",
                        exc_info=True
                    )
                    failures.append(_failed(entry.item, entry.item.body, e, CATEGORY_PROCESSING))

        return processed, failures

    # ========================================================================
    # Phase 2: Commit Success
    # ========================================================================

    def _commit_success(
        self, processed: List[ProcessedItem]
    ) -> Tuple[List[RawQueueItem], List[FailedItem]]:
        if not processed:
            return [], []

        entries = {
            str(index): (entry, SendEntry(
                entry_id=str(index),
                body=entry.message.to_json(),
                group_id=entry.message.get_group_key(),
            ))
            for index, entry in enumerate(processed)
        }

        try:
            result = self.gateway.send_batch(
                self.write_queue_url, [send_entry for _, send_entry in entries.values()]
            )
        except Exception as e:
            logger.error(
                f"[batch] Failed to send {len(processed)} processed messages to write queue: {e}"
            )
            return [], [
                _failed(entry.item, send_entry.body, e, CATEGORY_COMMIT)
                for entry, send_entry in entries.values()
            ]

        acknowledged: List[RawQueueItem] = []
        failures: List[FailedItem] = []

        for entry_id, (entry, send_entry) in entries.items():
            if entry_id in result.failed:
                failures.append(FailedItem(
                    item=entry.item,
                    payload=send_entry.body,
                    error_message=result.failed[entry_id],
                    error_category=CATEGORY_COMMIT,
                    error_type="SendMessageBatchEntryFailure",
                ))
            elif entry_id in result.successful:
                acknowledged.append(entry.item)
            else:
                # Neither acknowledged nor rejected: not safe to delete
                failures.append(FailedItem(
                    item=entry.item,
                    payload=send_entry.body,
                    error_message="No acknowledgement from write queue",
                    error_category=CATEGORY_COMMIT,
                    error_type="MissingAcknowledgement",
                ))

        logger.info(f"[batch] Sent {len(acknowledged)} processed messages to write queue")
        return acknowledged, failures

    # ========================================================================
    # Phase 3: Commit Failure
    # ========================================================================

    def _commit_failures(self, failures: List[FailedItem]) -> None:
        if not failures:
            return

        entries = [
            SendEntry(
                entry_id=str(index),
                body=failure.to_record().to_json(),
                group_id=failure.item.classification_key,
            )
            for index, failure in enumerate(failures)
        ]

        try:
            result = self.gateway.send_batch(self.failed_queue_url, entries)
        except Exception as e:
            logger.error(f"[batch] Failed to send {len(failures)} messages to dead-letter queue: {e}")
            raise DeadLetterWriteError(f"Dead-letter send failed: {e}") from e

        if result.failed:
            logger.error(
                f"[batch] Dead-letter queue rejected {len(result.failed)} of {len(failures)} entries"
            )
            raise DeadLetterWriteError(
                f"Dead-letter queue rejected {len(result.failed)} entries: "
                + "; ".join(result.failed.values())
            )

        logger.info(f"[batch] Sent {len(failures)} failed messages to dead-letter queue")

    # ========================================================================
    # Phase 4: Delete Acknowledged
    # ========================================================================

    def _delete_acknowledged(self, acknowledged: List[RawQueueItem]) -> int:
        if not acknowledged:
            return 0

        try:
            result = self.gateway.delete_batch(self.source_queue_url, acknowledged)
        except Exception as e:
            logger.error(
                f"[batch] Failed to delete {len(acknowledged)} messages from source queue, "
                f"they will be redelivered: {e}"
            )
            return 0

        for message_id, reason in result.failed.items():
            logger.warning(
                f"[batch] Message {message_id} not deleted from source queue "
                f"and will be redelivered: {reason}"
            )

        return len(result.successful)
