"""
Unit tests for the message router.

Tests cover:
- Alias matching for each tender source
- Case-insensitive classification keys
- Rejection of unknown, missing and malformed input
"""

import json

import pytest

from exceptions import ClassificationError
from message_router import MessageRouter
from models import EskomTenderMessage, ETenderMessage, TransnetTenderMessage
from sample_data import eskom_payload, etender_payload, to_body, transnet_payload


class TestMessageRouter:
    """Test MessageRouter.classify."""

    def setup_method(self):
        """Set up router with the default alias table."""
        self.router = MessageRouter()

    @pytest.mark.parametrize("key, expected_type", [
        ("eTenderScrape", ETenderMessage),
        ("eTenderLambda", ETenderMessage),
        ("EskomTenderScrape", EskomTenderMessage),
        ("EskomLambda", EskomTenderMessage),
        ("TransnetTenderScrape", TransnetTenderMessage),
        ("TransnetLambda", TransnetTenderMessage),
    ])
    def test_known_aliases(self, key, expected_type):
        """Test: every known alias maps to exactly one message type"""
        # Act
        message_type = self.router.resolve_type(key)

        # Assert
        assert message_type is expected_type

    def test_keys_are_case_insensitive(self):
        """Test: key casing does not affect classification"""
        # Act
        message = self.router.classify(to_body(eskom_payload()), "ESKOMLAMBDA")

        # Assert
        assert isinstance(message, EskomTenderMessage)
        assert message.tender_number == "4500123456"

    def test_numeric_tender_number_kept_exact(self):
        """Test: a fractional tenderNumber is not rounded through float"""
        # Arrange
        body = '{"title": "Cables", "tenderNumber": 123456789012345678901.50}'

        # Act
        message = self.router.classify(body, "EskomLambda")

        # Assert
        assert message.tender_number == "123456789012345678901.50"

    def test_classify_etender(self):
        """Test: eTender body is deserialized into ETenderMessage"""
        # Act
        message = self.router.classify(to_body(etender_payload()), "etenderscrape")

        # Assert
        assert isinstance(message, ETenderMessage)
        assert message.title == "Supply and delivery of office furniture"

    def test_classify_transnet(self):
        """Test: Transnet body is deserialized into TransnetTenderMessage"""
        # Act
        message = self.router.classify(to_body(transnet_payload()), "TransnetLambda")

        # Assert
        assert isinstance(message, TransnetTenderMessage)
        assert message.tender_type == "RFP"

    @pytest.mark.parametrize("key", ["Unknown", "SarsTenderScrape", "", None])
    def test_unknown_or_missing_key_is_rejected(self, key):
        """Test: unrecognized and null keys are classification errors"""
        with pytest.raises(ClassificationError) as exc_info:
            self.router.classify(to_body(etender_payload()), key)

        assert exc_info.value.classification_key == key

    @pytest.mark.parametrize("body", [
        "not json",
        "",
        "[1, 2, 3]",
        json.dumps({"supportingDocs": "none"}),
    ])
    def test_malformed_body_is_rejected(self, body):
        """Test: bodies that do not match the bound type are classification errors"""
        with pytest.raises(ClassificationError, match="Invalid ETenderMessage body"):
            self.router.classify(body, "eTenderScrape")

    def test_custom_alias_table(self):
        """Test: router uses an injected alias table with case-folded keys"""
        # Arrange
        router = MessageRouter({"TransnetPortal": TransnetTenderMessage})

        # Act & Assert
        assert router.resolve_type("transnetportal") is TransnetTenderMessage
        with pytest.raises(ClassificationError):
            router.resolve_type("eTenderScrape")
