"""
Lambda handler for processing scraped tender messages.

This handler:
1. Converts delivered SQS records into raw queue items
2. Classifies each message into its tender type and attaches an AI summary
3. Writes processed tenders to the write queue and failures to the
   dead-letter queue
4. Deletes source messages once the write queue has acknowledged them
5. Keeps polling the source queue until it is empty or time runs short
"""

import logging
import os
import time
from typing import Any, Callable, Dict, Optional

import boto3

from batch_coordinator import BatchCoordinator
from bedrock_client import EnrichmentClient
from config import load_config
from message_processor import MessageProcessor
from message_router import MessageRouter
from models import RawQueueItem
from poll_loop import PollLoop
from prompt_store import PromptStore
from sqs_client import QueueGateway

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())

# Built once per container on first invocation
_poll_loop: Optional[PollLoop] = None
_time_budget_ms: int = 0


def build_poll_loop(sqs_client=None, ssm_client=None, bedrock_client=None) -> PollLoop:
    """
    Wire the pipeline from configuration.

    Raises:
        ConfigurationError: Required configuration is missing
    """
    global _time_budget_ms

    sqs_client = sqs_client or boto3.client("sqs")
    ssm_client = ssm_client or boto3.client("ssm")

    config = load_config(ssm_client)
    _time_budget_ms = config.time_budget_ms

    enrichment_client = None
    if config.enrichment_enabled:
        enrichment_client = EnrichmentClient(
            bedrock_client or boto3.client("bedrock-runtime"),
            PromptStore(ssm_client, config.prompt_parameter_prefix),
            model_id=config.bedrock_model_id,
        )

    gateway = QueueGateway(sqs_client)
    coordinator = BatchCoordinator(
        gateway=gateway,
        router=MessageRouter(),
        processor=MessageProcessor(enrichment_client, config.enrichment_enabled),
        source_queue_url=config.source_queue_url,
        write_queue_url=config.write_queue_url,
        failed_queue_url=config.failed_queue_url,
    )

    logger.info(
        f"[process-tenders] Initialized: source={config.source_queue_url}, "
        f"write={config.write_queue_url}, failed={config.failed_queue_url}, "
        f"enrichment={config.enrichment_enabled}"
    )
    return PollLoop(gateway, coordinator, config.source_queue_url)


def get_poll_loop() -> PollLoop:
    global _poll_loop
    if _poll_loop is None:
        _poll_loop = build_poll_loop()
    return _poll_loop


def remaining_time_source(context: Any) -> Callable[[], int]:
    """Remaining time from the Lambda context, or from the configured budget."""
    if context is not None and hasattr(context, "get_remaining_time_in_millis"):
        return context.get_remaining_time_in_millis

    deadline = time.monotonic() + _time_budget_ms / 1000
    return lambda: int((deadline - time.monotonic()) * 1000)


def handler(event: Dict[str, Any], context: Any) -> str:
    """
    Lambda handler entry point.

    Args:
        event: SQS event (Records may be empty for scheduled invocations)
        context: Lambda context object

    Returns:
        str: Summary of batches, processed, failed and deleted counts

    Raises:
        Exception: Configuration errors and dead-letter write failures, so
        the Lambda runtime retries the invocation
    """
    try:
        poll_loop = get_poll_loop()

        records = (event or {}).get("Records", [])
        logger.info(f"[process-tenders] Processing {len(records)} delivered messages")
        items = [RawQueueItem.from_event_record(record) for record in records]

        summary = poll_loop.run(remaining_time_source(context), items)
        result = summary.to_message()
        logger.info(f"[process-tenders] Function execution completed. {result}")
        return result

    except Exception as e:
        logger.error(f"[process-tenders] Unexpected error: {str(e)}", exc_info=True)
        raise
