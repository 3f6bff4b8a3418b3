"""
Bedrock client for tender summaries.

Generates a summary for a tender via the Bedrock Converse API with:
- a concurrency cap shared by every caller of the client instance
- exponential backoff with jitter when Bedrock throttles
- a deterministic fallback summary when no summary can be generated

enrich() never raises.
"""

import json
import logging
import random
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from botocore.exceptions import ClientError

from models import TenderMessage

logger = logging.getLogger()

DEFAULT_MODEL_ID = "amazon.nova-pro-v1:0"
MAX_CONCURRENT_REQUESTS = 3
MAX_RETRY_ATTEMPTS = 5
BASE_DELAY_MS = 1000
MAX_DELAY_MS = 30000
JITTER_RANGE = (0.75, 1.25)

THROTTLING_ERROR_CODES = {"ThrottlingException", "TooManyRequestsException"}

FALLBACK_HEADER = "**AUTOMATED SUMMARY (Fallback)**"
FALLBACK_FOOTER = "*AI summary unavailable due to service limitations - manual review required*"


class CallStatus(str, Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass
class CallResult:
    """Outcome of a single Bedrock call."""

    status: CallStatus
    text: Optional[str] = None
    error: Optional[Exception] = None


class EnrichmentThrottledError(Exception):
    """Bedrock kept throttling for every allowed attempt."""


# ============================================================================
# Backoff
# ============================================================================


def calculate_backoff_delay(attempt: int, rng: Optional[random.Random] = None) -> int:
    """
    Calculate backoff delay in milliseconds for a 1-indexed attempt.

    Exponential backoff: 1s, 2s, 4s, 8s, 16s, each scaled by a jitter factor
    drawn from [0.75, 1.25] and capped at 30 seconds.
    """
    rng = rng or random
    exponential_delay = BASE_DELAY_MS * (2 ** (attempt - 1))
    jitter = rng.uniform(*JITTER_RANGE)
    return min(int(exponential_delay * jitter), MAX_DELAY_MS)


def is_throttling_error(error: Exception) -> bool:
    if isinstance(error, ClientError):
        error_code = error.response.get("Error", {}).get("Code", "")
        if error_code in THROTTLING_ERROR_CODES:
            return True
    return "too many requests" in str(error).lower()


# ============================================================================
# Payload and Fallback
# ============================================================================


def build_compact_payload(message: TenderMessage) -> str:
    """
    Project a tender onto its non-empty fields as compact JSON.

    Keeps request size (and tokens) down by leaving out everything empty.
    """
    compact: Dict[str, Any] = {}

    for key, value in (
        ("number", message.tender_number),
        ("title", message.title),
        ("description", message.description),
        ("reference", message.reference),
        ("audience", message.audience),
        ("office", message.office_location),
        ("address", message.address),
        ("province", message.province),
        ("email", message.email),
    ):
        if value:
            compact[key] = value

    compact["source"] = message.get_source_type()

    if message.supporting_docs:
        compact["docs"] = [{"name": doc.name, "url": doc.url} for doc in message.supporting_docs]

    compact.update(message.compact_fields())

    return json.dumps(compact, separators=(",", ":"), ensure_ascii=False)


def build_fallback_summary(message: TenderMessage) -> str:
    """Build a clearly labelled summary from fields already on the tender."""
    lines = [
        FALLBACK_HEADER,
        f"**Tender:** {message.title}",
        f"**Number:** {message.tender_number}",
        f"**Source:** {message.get_source_type()}",
    ]

    if message.description:
        lines.append(f"**Purpose:** {message.description}")

    lines.extend(message.fallback_lines())

    if message.email:
        lines.append(f"**Email:** {message.email}")

    location = f"{message.office_location} {message.province}".strip()
    if location:
        lines.append(f"**Location:** {location}")

    if message.supporting_docs:
        lines.append(f"**Documents:** {len(message.supporting_docs)} available")

    lines.append(FALLBACK_FOOTER)
    return "\n".join(lines)


def extract_text(response: Dict[str, Any]) -> str:
    """Return the first text block of a Converse response, or an empty string."""
    content_blocks = response.get("output", {}).get("message", {}).get("content", [])
    for block in content_blocks:
        if block.get("text"):
            return block["text"]
    return ""


# ============================================================================
# Enrichment Client
# ============================================================================


class EnrichmentClient:
    """
    Summary generation with a concurrency cap and throttling retries.

    One instance is shared by all enrichment calls in the container so the
    semaphore bounds concurrent Bedrock requests process-wide.
    """

    def __init__(
        self,
        bedrock_client,
        prompt_store,
        model_id: str = DEFAULT_MODEL_ID,
        max_concurrency: int = MAX_CONCURRENT_REQUESTS,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize enrichment client.

        Args:
            bedrock_client: boto3 bedrock-runtime client
            prompt_store: PromptStore providing instructional text per source
            model_id: Bedrock model or inference profile id
            max_concurrency: Maximum simultaneous Bedrock calls
            max_attempts: Maximum attempts when throttled
            sleep: Sleep function (seconds), injectable for tests
            rng: Random source for jitter
        """
        self.bedrock_client = bedrock_client
        self.prompt_store = prompt_store
        self.model_id = model_id
        self.max_attempts = max_attempts
        self._semaphore = threading.BoundedSemaphore(max_concurrency)
        self._sleep = sleep
        self._rng = rng or random.Random()

    def enrich(self, message: TenderMessage) -> str:
        """
        Generate a summary for a tender.

        Returns:
            str: Generated summary, or the fallback summary on any failure
        """
        tender_number = message.tender_number or "Unknown"
        source_type = message.get_source_type()
        start_time = time.monotonic()

        logger.info(f"[bedrock] Starting summary for {source_type} tender {tender_number}")

        with self._semaphore:
            try:
                prompt = self.prompt_store.get_prompt(source_type)
                payload = build_compact_payload(message)
                summary = self._invoke_with_retry(f"{prompt}\n\nTender: {payload}", tender_number)

                duration_ms = int((time.monotonic() - start_time) * 1000)
                logger.info(
                    f"[bedrock] Summary completed for tender {tender_number}: "
                    f"{len(summary)} chars in {duration_ms}ms"
                )
                return summary

            except Exception as e:
                duration_ms = int((time.monotonic() - start_time) * 1000)
                logger.error(
                    f"[bedrock] Summary failed for tender {tender_number} after {duration_ms}ms "
                    f"({type(e).__name__}: {e}), using fallback"
                )
                return build_fallback_summary(message)

    def _invoke_with_retry(self, text: str, tender_number: str) -> str:
        """
        Call Bedrock, retrying only while the result is RETRYABLE.

        Raises:
            EnrichmentThrottledError: Throttled on every attempt
            Exception: The error of a FATAL result
        """
        for attempt in range(1, self.max_attempts + 1):
            result = self._invoke_once(text)

            if result.status == CallStatus.SUCCESS:
                return result.text

            if result.status == CallStatus.FATAL:
                logger.error(
                    f"[bedrock] Non-retryable error for tender {tender_number} "
                    f"on attempt {attempt}: {result.error}"
                )
                raise result.error

            if attempt == self.max_attempts:
                break

            delay_ms = calculate_backoff_delay(attempt, self._rng)
            logger.warning(
                f"[bedrock] Throttled for tender {tender_number}, retrying in {delay_ms}ms "
                f"(attempt {attempt}/{self.max_attempts})"
            )
            self._sleep(delay_ms / 1000)

        raise EnrichmentThrottledError(
            f"Throttled on all {self.max_attempts} attempts for tender {tender_number}"
        )

    def _invoke_once(self, text: str) -> CallResult:
        try:
            response = self.bedrock_client.converse(
                modelId=self.model_id,
                messages=[{"role": "user", "content": [{"text": text}]}],
                inferenceConfig={"maxTokens": 800, "temperature": 0.3, "topP": 0.9},
            )
        except Exception as e:
            if is_throttling_error(e):
                return CallResult(status=CallStatus.RETRYABLE, error=e)
            return CallResult(status=CallStatus.FATAL, error=e)

        summary = extract_text(response)
        if not summary.strip():
            return CallResult(status=CallStatus.FATAL, error=ValueError("No text in Bedrock response"))

        usage = response.get("usage", {})
        logger.info(
            f"[bedrock] Response: {len(summary)} chars, "
            f"{usage.get('inputTokens', 0)} input tokens, "
            f"{usage.get('outputTokens', 0)} output tokens"
        )
        return CallResult(status=CallStatus.SUCCESS, text=summary)
