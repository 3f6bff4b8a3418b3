"""
Per-message processing: processing tags, source-specific checks and the
optional AI summary.
"""

import logging
from typing import Callable, Dict, Optional, Type

from models import EskomTenderMessage, ETenderMessage, TenderMessage, TransnetTenderMessage

logger = logging.getLogger()


class MessageProcessor:
    """Processes classified tender messages."""

    def __init__(self, enrichment_client=None, enrichment_enabled: bool = True):
        """
        Initialize processor.

        Args:
            enrichment_client: EnrichmentClient used for AI summaries
            enrichment_enabled: Set False to skip summaries entirely
        """
        self.enrichment_client = enrichment_client
        self.enrichment_enabled = enrichment_enabled and enrichment_client is not None
        self._handlers: Dict[Type[TenderMessage], Callable[[TenderMessage], None]] = {
            ETenderMessage: self._process_etender,
            EskomTenderMessage: self._process_eskom,
            TransnetTenderMessage: self._process_transnet,
        }

    def process(self, message: TenderMessage) -> TenderMessage:
        """
        Tag the message, run its source-specific step and attach a summary.

        Raises:
            TypeError: No processing path registered for the message type
        """
        handler: Optional[Callable[[TenderMessage], None]] = self._handlers.get(type(message))
        if handler is None:
            raise TypeError(f"No processing path for message type: {type(message).__name__}")

        source_type = message.get_source_type()
        logger.info(f"[processor] Processing {source_type} message: {message.title}")

        message.tags = [*message.tags, "Processed", f"ProcessedBy{source_type}Handler"]
        handler(message)

        if self.enrichment_enabled:
            message.ai_summary = self.enrichment_client.enrich(message)

        logger.info(f"[processor] Processed {source_type} message: {message.title}")
        return message

    def _process_etender(self, message: ETenderMessage) -> None:
        logger.info(f"[processor] eTender id={message.id}, status={message.status or 'n/a'}")

    def _process_eskom(self, message: EskomTenderMessage) -> None:
        logger.info(
            f"[processor] Eskom tender {message.tender_number or 'n/a'}, "
            f"source={message.source or 'n/a'}"
        )

    def _process_transnet(self, message: TransnetTenderMessage) -> None:
        logger.info(
            f"[processor] Transnet tender {message.tender_number or 'n/a'}, "
            f"institution={message.institution or 'n/a'}"
        )
