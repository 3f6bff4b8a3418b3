"""
Unit tests for the process-tenders Lambda handler.
"""

import importlib.util
import json
import os
import sys
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from exceptions import ConfigurationError
from sample_data import converse_response, eskom_payload, etender_payload, event_record, to_body

# Import the process-tenders handler explicitly to avoid conflicts with other handler modules
_handler_path = os.path.join(os.path.dirname(__file__), '..', '..', 'process-tenders', 'handler.py')
_spec = importlib.util.spec_from_file_location("process_tenders_handler", _handler_path)
process_tenders_handler = importlib.util.module_from_spec(_spec)
sys.modules["process_tenders_handler"] = process_tenders_handler
_spec.loader.exec_module(process_tenders_handler)
handler = process_tenders_handler.handler


def _acknowledge_all(QueueUrl, Entries):
    return {"Successful": [{"Id": entry["Id"]} for entry in Entries], "Failed": []}


@pytest.fixture(autouse=True)
def reset_poll_loop():
    """Ensure the cached pipeline is rebuilt each test."""
    process_tenders_handler._poll_loop = None
    yield
    process_tenders_handler._poll_loop = None


@pytest.fixture
def sqs_client():
    client = MagicMock()
    client.receive_message.return_value = {"Messages": []}
    client.send_message_batch.side_effect = _acknowledge_all
    client.delete_message_batch.side_effect = _acknowledge_all
    return client


@pytest.fixture
def ssm_client():
    client = MagicMock()
    client.get_parameter.side_effect = lambda Name, WithDecryption=False: {
        "Parameter": {"Value": f"Prompt for {Name.rsplit('/', 1)[-1]}"}
    }
    return client


@pytest.fixture
def bedrock_client():
    client = MagicMock()
    client.converse.return_value = converse_response("Furniture tender closing 10 February.")
    return client


@pytest.fixture
def pipeline(queue_env, sqs_client, ssm_client, bedrock_client):
    process_tenders_handler._poll_loop = process_tenders_handler.build_poll_loop(
        sqs_client, ssm_client, bedrock_client
    )
    process_tenders_handler._poll_loop.wait_seconds = 0
    process_tenders_handler._poll_loop._sleep = lambda seconds: None
    return process_tenders_handler._poll_loop


@pytest.fixture
def context():
    context = MagicMock()
    context.get_remaining_time_in_millis.return_value = 600_000
    return context


def _sent_to(sqs_client, suffix):
    return [
        call.kwargs["Entries"]
        for call in sqs_client.send_message_batch.call_args_list
        if call.kwargs["QueueUrl"].endswith(suffix)
    ]


class TestHandler:
    """Test the Lambda entry point."""

    def test_delivered_records_processed(self, pipeline, sqs_client, bedrock_client, context):
        """Test: delivered records are written, summarised and deleted"""
        # Arrange
        event = {"Records": [
            event_record("m-1", to_body(etender_payload()), "eTenderScrape"),
            event_record("m-2", to_body(eskom_payload()), "EskomLambda", use_message_attribute=True),
        ]}

        # Act
        result = handler(event, context)

        # Assert
        assert result.startswith("Batches: 1, Processed: 2, Failed: 0, Deleted: 2, Duration: ")
        written = [json.loads(entry["MessageBody"]) for entry in _sent_to(sqs_client, "/write")[0]]
        assert [message["aiSummary"] for message in written] == ["Furniture tender closing 10 February."] * 2
        assert bedrock_client.converse.call_count == 2
        assert _sent_to(sqs_client, "/failed") == []
        deleted = sqs_client.delete_message_batch.call_args.kwargs["Entries"]
        assert {entry["ReceiptHandle"] for entry in deleted} == {"receipt-m-1", "receipt-m-2"}

    def test_scheduled_invocation_without_records(self, pipeline, sqs_client, context):
        """Test: an event without records polls the source queue"""
        # Act
        result = handler({}, context)

        # Assert
        assert result.startswith("Batches: 0, Processed: 0, Failed: 0, Deleted: 0")
        sqs_client.receive_message.assert_called_once()
        assert sqs_client.receive_message.call_args.kwargs["QueueUrl"].endswith("/source")

    def test_unknown_key_dead_lettered(self, pipeline, sqs_client, context):
        """Test: an unroutable record goes to the dead-letter queue and stays in the source"""
        # Arrange
        event = {"Records": [
            event_record("m-1", to_body(etender_payload()), "eTenderScrape"),
            event_record("m-2", to_body(etender_payload()), None),
        ]}

        # Act
        result = handler(event, context)

        # Assert
        assert "Processed: 1, Failed: 1, Deleted: 1" in result
        dead_letter = json.loads(_sent_to(sqs_client, "/failed")[0][0]["MessageBody"])
        assert dead_letter["classificationKey"] == "Unknown"
        assert dead_letter["errorCategory"] == "classification"

    def test_dead_letter_failure_raises(self, pipeline, sqs_client, context):
        """Test: a failed dead-letter write fails the invocation"""
        # Arrange
        def send(QueueUrl, Entries):
            if QueueUrl.endswith("/failed"):
                raise ClientError({"Error": {"Code": "AccessDenied"}}, "SendMessageBatch")
            return _acknowledge_all(QueueUrl, Entries)

        sqs_client.send_message_batch.side_effect = send
        event = {"Records": [event_record("m-1", "{}", "NoSuchSource")]}

        # Act & Assert
        with pytest.raises(Exception, match="Dead-letter send failed"):
            handler(event, context)
        sqs_client.delete_message_batch.assert_not_called()

    def test_missing_configuration_raises(self, monkeypatch, context):
        """Test: the handler fails when queues are not configured"""
        # Arrange
        for name in ("SOURCE_QUEUE_URL", "WRITE_QUEUE_URL", "FAILED_QUEUE_URL"):
            monkeypatch.delenv(name, raising=False)
        ssm_client = MagicMock()
        ssm_client.get_parameter.side_effect = ClientError(
            {"Error": {"Code": "ParameterNotFound"}}, "GetParameter"
        )

        # Act & Assert
        with pytest.raises(ConfigurationError):
            process_tenders_handler.build_poll_loop(MagicMock(), ssm_client, MagicMock())

    def test_enrichment_disabled(self, queue_env, monkeypatch, sqs_client, ssm_client, bedrock_client, context):
        """Test: ENRICHMENT_ENABLED=false skips Bedrock entirely"""
        # Arrange
        monkeypatch.setenv("ENRICHMENT_ENABLED", "false")
        process_tenders_handler._poll_loop = process_tenders_handler.build_poll_loop(
            sqs_client, ssm_client, bedrock_client
        )
        event = {"Records": [event_record("m-1", to_body(etender_payload()), "eTenderScrape")]}

        # Act
        handler(event, context)

        # Assert
        bedrock_client.converse.assert_not_called()
        written = json.loads(_sent_to(sqs_client, "/write")[0][0]["MessageBody"])
        assert written["aiSummary"] is None


class TestRemainingTimeSource:
    """Test remaining_time_source."""

    def test_uses_lambda_context(self, context):
        """Test: the Lambda context supplies remaining time"""
        remaining = process_tenders_handler.remaining_time_source(context)
        assert remaining() == 600_000

    def test_budget_without_context(self, monkeypatch):
        """Test: without a context the configured budget is counted down"""
        monkeypatch.setattr(process_tenders_handler, "_time_budget_ms", 60_000)
        remaining = process_tenders_handler.remaining_time_source(None)
        assert 0 < remaining() <= 60_000
