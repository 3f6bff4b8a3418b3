"""
SQS gateway for the source, write and dead-letter queues.

Sends, receives and deletes messages in batches of at most 10 entries (the
SQS batch API limit) and reports per-entry failures back to the caller.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from models import CLASSIFICATION_ATTRIBUTE, RawQueueItem

logger = logging.getLogger()

# SQS batch limit
MAX_BATCH_SIZE = 10


@dataclass
class SendEntry:
    """
    One outgoing message.

    entry_id is the caller's key for the entry and is what BatchResult reports
    against. group_id is required when the target is a FIFO queue.
    """

    entry_id: str
    body: str
    group_id: Optional[str] = None


@dataclass
class BatchResult:
    """Per-entry result of a batch send or delete."""

    successful: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


def is_fifo_queue(queue_url: str) -> bool:
    return queue_url.endswith(".fifo")


def chunked(items: List[Any], size: int = MAX_BATCH_SIZE) -> List[List[Any]]:
    """Split items into consecutive chunks of at most size elements."""
    return [items[i:i + size] for i in range(0, len(items), size)]


def _failure_reason(failed: Dict[str, Any]) -> str:
    return f"{failed.get('Code', 'Unknown')}: {failed.get('Message', 'no message')}"


class QueueGateway:
    """Batch operations against named SQS queues."""

    def __init__(self, sqs_client):
        """
        Initialize gateway.

        Args:
            sqs_client: boto3 SQS client
        """
        self.sqs_client = sqs_client

    # ========================================================================
    # Receiving
    # ========================================================================

    def receive(
        self,
        queue_url: str,
        max_messages: int = MAX_BATCH_SIZE,
        wait_seconds: int = 1
    ) -> List[RawQueueItem]:
        """
        Receive up to max_messages from a queue.

        Requests the MessageGroupId system attribute and all message attributes
        so the classification key can be resolved.

        Returns:
            List of received items (empty when the queue is drained)
        """
        response = self.sqs_client.receive_message(
            QueueUrl=queue_url,
            MaxNumberOfMessages=min(max_messages, MAX_BATCH_SIZE),
            WaitTimeSeconds=wait_seconds,
            AttributeNames=["All"],
            MessageAttributeNames=["All"],
        )

        messages = response.get("Messages", [])
        logger.info(f"[sqs] Received {len(messages)} messages from {queue_url}")
        return [RawQueueItem.from_sqs_message(message) for message in messages]

    # ========================================================================
    # Sending
    # ========================================================================

    def send_batch(self, queue_url: str, entries: List[SendEntry]) -> BatchResult:
        """
        Send messages to a queue in chunks of 10.

        For FIFO queues each entry must carry a group id; the deduplication id
        is derived from a hash of the message body.

        Returns:
            BatchResult keyed by SendEntry.entry_id

        Raises:
            ValueError: FIFO queue and an entry without a group id
            ClientError: A batch call failed as a whole
        """
        result = BatchResult()
        if not entries:
            return result

        fifo = is_fifo_queue(queue_url)

        for chunk in chunked(entries):
            # Wire ids are positional; SQS restricts the allowed characters
            wire_ids = {f"msg_{index}": entry for index, entry in enumerate(chunk)}
            request_entries = [
                self._build_send_entry(wire_id, entry, fifo)
                for wire_id, entry in wire_ids.items()
            ]

            try:
                response = self.sqs_client.send_message_batch(
                    QueueUrl=queue_url,
                    Entries=request_entries
                )
            except ClientError as e:
                logger.error(f"[sqs] Failed to send message batch to {queue_url}: {e}")
                raise

            for sent in response.get("Successful", []):
                result.successful.append(wire_ids[sent["Id"]].entry_id)

            for failed in response.get("Failed", []):
                entry = wire_ids[failed["Id"]]
                result.failed[entry.entry_id] = _failure_reason(failed)
                logger.warning(
                    f"[sqs] Failed to send entry {entry.entry_id} to {queue_url}: "
                    f"{_failure_reason(failed)}"
                )

            logger.info(
                f"[sqs] Batch sent to {queue_url}. "
                f"Successful: {len(response.get('Successful', []))}, "
                f"Failed: {len(response.get('Failed', []))}"
            )

        return result

    def _build_send_entry(self, wire_id: str, entry: SendEntry, fifo: bool) -> Dict[str, Any]:
        request_entry = {
            "Id": wire_id,
            "MessageBody": entry.body,
        }

        if entry.group_id:
            # Carried as a message attribute too so standard queues keep the key
            request_entry["MessageAttributes"] = {
                CLASSIFICATION_ATTRIBUTE: {"DataType": "String", "StringValue": entry.group_id}
            }

        if fifo:
            if not entry.group_id:
                raise ValueError(f"FIFO queue requires a group id for entry {entry.entry_id}")
            content_hash = hashlib.sha256(entry.body.encode()).hexdigest()
            request_entry["MessageGroupId"] = entry.group_id
            request_entry["MessageDeduplicationId"] = content_hash[:128]

        return request_entry

    # ========================================================================
    # Deleting
    # ========================================================================

    def delete_batch(self, queue_url: str, items: List[RawQueueItem]) -> BatchResult:
        """
        Delete received items from a queue in chunks of 10.

        A failed batch call marks every entry of that chunk as failed instead
        of raising; deletion is cleanup and undeleted messages are redelivered.

        Returns:
            BatchResult keyed by RawQueueItem.message_id
        """
        result = BatchResult()

        for chunk in chunked(items):
            wire_ids = {f"msg_{index}": item for index, item in enumerate(chunk)}

            try:
                response = self.sqs_client.delete_message_batch(
                    QueueUrl=queue_url,
                    Entries=[
                        {"Id": wire_id, "ReceiptHandle": item.receipt_handle}
                        for wire_id, item in wire_ids.items()
                    ]
                )
            except ClientError as e:
                logger.error(f"[sqs] Failed to delete message batch from {queue_url}: {e}")
                for item in chunk:
                    result.failed[item.message_id] = str(e)
                continue

            for deleted in response.get("Successful", []):
                result.successful.append(wire_ids[deleted["Id"]].message_id)

            for failed in response.get("Failed", []):
                item = wire_ids[failed["Id"]]
                result.failed[item.message_id] = _failure_reason(failed)
                logger.warning(
                    f"[sqs] Failed to delete message {item.message_id}: {_failure_reason(failed)}"
                )

        logger.info(
            f"[sqs] Deleted {len(result.successful)} messages from {queue_url}, "
            f"{len(result.failed)} failed"
        )
        return result
