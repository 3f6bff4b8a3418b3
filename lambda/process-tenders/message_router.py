"""
Message routing for raw queue messages.

Maps a classification key (the SQS MessageGroupId set by the scraper that
produced the message) to exactly one tender message type and deserializes the
body into it. The alias table is closed: anything not listed is rejected,
never coerced into a generic type.
"""

import json
import logging
from typing import Dict, Optional, Type

from pydantic import ValidationError

from exceptions import ClassificationError
from models import EskomTenderMessage, ETenderMessage, TenderMessage, TransnetTenderMessage

logger = logging.getLogger()

# Lower-cased classification key -> message type
MESSAGE_TYPES: Dict[str, Type[TenderMessage]] = {
    "etenderscrape": ETenderMessage,
    "etenderlambda": ETenderMessage,
    "eskomtenderscrape": EskomTenderMessage,
    "eskomlambda": EskomTenderMessage,
    "transnettenderscrape": TransnetTenderMessage,
    "transnetlambda": TransnetTenderMessage,
}


class MessageRouter:
    """Classifies raw message bodies into tender message types."""

    def __init__(self, message_types: Optional[Dict[str, Type[TenderMessage]]] = None):
        types = message_types if message_types is not None else MESSAGE_TYPES
        self.message_types = {key.lower(): message_type for key, message_type in types.items()}

    def resolve_type(self, classification_key: Optional[str]) -> Type[TenderMessage]:
        """
        Look up the message type bound to a classification key.

        Raises:
            ClassificationError: If the key is missing or not a known alias
        """
        if not classification_key:
            raise ClassificationError("Missing classification key", classification_key)

        message_type = self.message_types.get(classification_key.strip().lower())
        if message_type is None:
            raise ClassificationError(
                f"Unsupported classification key: {classification_key}", classification_key
            )
        return message_type

    def classify(self, raw_body: str, classification_key: Optional[str]) -> TenderMessage:
        """
        Deserialize a raw body into the tender type bound to its classification key.

        Args:
            raw_body: JSON message body
            classification_key: MessageGroupId of the source message

        Returns:
            TenderMessage: Concrete tender message

        Raises:
            ClassificationError: Unknown key or body that does not match the type
        """
        message_type = self.resolve_type(classification_key)

        try:
            message = message_type.from_json(raw_body or "")
        except json.JSONDecodeError as e:
            logger.warning(
                f"[router] Body is not valid JSON for key {classification_key}: {e}"
            )
            raise ClassificationError(
                f"Invalid {message_type.__name__} body: {e}", classification_key
            ) from e
        except ValidationError as e:
            logger.warning(
                f"[router] Body does not match {message_type.__name__} "
                f"for key {classification_key}: {e.error_count()} error(s)"
            )
            raise ClassificationError(
                f"Invalid {message_type.__name__} body: {e}", classification_key
            ) from e

        logger.info(
            f"[router] Classified {classification_key} as {message.get_source_type()} "
            f"tender {message.tender_number or '(no number)'}"
        )
        return message
