"""
Data models for the tender queue processor.

Tender messages are pydantic models serialized as camelCase JSON. Field names
on the wire are matched case-insensitively and independent of casing
convention (camelCase, snake_case, PascalCase all resolve to the same field).

The set of tender message types is closed: ETenderMessage, EskomTenderMessage
and TransnetTenderMessage. Each type implements the capabilities the pipeline
needs directly (source type, group key, compact projection, fallback lines)
so nothing downstream inspects types at runtime.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

DATE_FORMAT = "%Y-%m-%d %H:%M"
PROCESSED_BY = "process-tenders"
UNKNOWN_CLASSIFICATION_KEY = "Unknown"
CLASSIFICATION_ATTRIBUTE = "MessageGroupId"


def _fold_key(key: str) -> str:
    """Reduce a field name to a casing-independent form."""
    return key.replace("_", "").replace("-", "").lower()


def _format_date(value: Optional[datetime]) -> Optional[str]:
    return value.strftime(DATE_FORMAT) if value else None


class CamelModel(BaseModel):
    """Base model with camelCase aliases and case-insensitive field lookup."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _match_field_names(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        lookup = {}
        for name, field in cls.model_fields.items():
            lookup[_fold_key(name)] = field.alias or name

        normalized = {}
        for key, value in data.items():
            if isinstance(key, str):
                key = lookup.get(_fold_key(key), key)
            normalized[key] = value
        return normalized

    @classmethod
    def from_json(cls, raw: str):
        """
        Parse a JSON body, keeping non-integer numbers exact as Decimal.

        Raises:
            json.JSONDecodeError: Body is not JSON
            ValidationError: Body does not match the model
        """
        return cls.model_validate(json.loads(raw, parse_float=Decimal))

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class SupportingDocument(CamelModel):
    """Reference to a document published alongside a tender."""

    name: str = ""
    url: str = ""


# ============================================================================
# Tender Messages
# ============================================================================


class TenderMessage(CamelModel, ABC):
    """
    Fields shared by every tender source.

    tender_number accepts either a JSON string or number and is always held
    as text. ai_summary is filled in by enrichment.
    """

    title: str = ""
    description: str = ""
    tender_number: str = ""
    reference: str = ""
    audience: str = ""
    office_location: str = ""
    email: str = ""
    address: str = ""
    province: str = ""
    supporting_docs: List[SupportingDocument] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    ai_summary: Optional[str] = None

    @field_validator("tender_number", mode="before")
    @classmethod
    def _tender_number_as_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, bool):
            raise ValueError("tenderNumber must be text or a number")
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            value = Decimal(repr(value))
        if isinstance(value, Decimal):
            # Fixed-point text, never exponent notation
            return format(value, "f")
        return value

    @field_validator(
        "title", "description", "reference", "audience", "office_location",
        "email", "address", "province",
        mode="before",
    )
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("supporting_docs", "tags", mode="before")
    @classmethod
    def _null_as_empty_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @abstractmethod
    def get_source_type(self) -> str:
        """Human-readable source name, also used as the prompt key."""

    def get_group_key(self) -> str:
        """Group key used when this message is written to a FIFO queue."""
        return self.get_source_type()

    def compact_fields(self) -> Dict[str, Any]:
        """Source-specific, non-empty fields for the enrichment payload."""
        return {}

    def fallback_lines(self) -> List[str]:
        """Source-specific lines for the fallback summary."""
        return []


class ETenderMessage(TenderMessage):
    """Tender scraped from the national eTenders portal."""

    id: int = 0
    status: str = ""
    date_published: Optional[datetime] = None
    date_closing: Optional[datetime] = None
    url: str = ""

    @field_validator("date_published", "date_closing", mode="before")
    @classmethod
    def _blank_date_as_none(cls, value: Any) -> Any:
        return None if value == "" else value

    @field_validator("id", mode="before")
    @classmethod
    def _null_id_as_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("status", "url", mode="before")
    @classmethod
    def _null_text_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    def get_source_type(self) -> str:
        return "eTenders"

    def compact_fields(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        if self.id > 0:
            fields["id"] = self.id
        if self.status:
            fields["status"] = self.status
        if self.url:
            fields["url"] = self.url
        if self.date_published:
            fields["published"] = _format_date(self.date_published)
        if self.date_closing:
            fields["closing"] = _format_date(self.date_closing)
        return fields

    def fallback_lines(self) -> List[str]:
        lines = []
        if self.status:
            lines.append(f"**Status:** {self.status}")
        if self.date_closing:
            lines.append(f"**Closing:** {_format_date(self.date_closing)}")
        if self.url:
            lines.append(f"**URL:** {self.url}")
        return lines


class EskomTenderMessage(TenderMessage):
    """Tender scraped from the Eskom tender bulletin."""

    source: str = ""
    published_date: Optional[datetime] = None
    closing_date: Optional[datetime] = None

    @field_validator("published_date", "closing_date", mode="before")
    @classmethod
    def _blank_date_as_none(cls, value: Any) -> Any:
        return None if value == "" else value

    @field_validator("source", mode="before")
    @classmethod
    def _null_text_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    def get_source_type(self) -> str:
        return "Eskom"

    def compact_fields(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        if self.source:
            fields["sourceDetail"] = self.source
        if self.published_date:
            fields["published"] = _format_date(self.published_date)
        if self.closing_date:
            fields["closing"] = _format_date(self.closing_date)
        return fields

    def fallback_lines(self) -> List[str]:
        lines = []
        if self.source:
            lines.append(f"**Source Detail:** {self.source}")
        if self.closing_date:
            lines.append(f"**Closing:** {_format_date(self.closing_date)}")
        return lines


class TransnetTenderMessage(TenderMessage):
    """Tender scraped from the Transnet e-tender site."""

    institution: str = ""
    category: str = ""
    tender_type: str = ""
    location: str = ""
    contact_person: str = ""
    source: str = ""
    published_date: Optional[datetime] = None
    closing_date: Optional[datetime] = None

    @field_validator("published_date", "closing_date", mode="before")
    @classmethod
    def _blank_date_as_none(cls, value: Any) -> Any:
        return None if value == "" else value

    @field_validator(
        "institution", "category", "tender_type", "location", "contact_person", "source",
        mode="before",
    )
    @classmethod
    def _null_text_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    def get_source_type(self) -> str:
        return "Transnet"

    def compact_fields(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        for key, value in (
            ("institution", self.institution),
            ("category", self.category),
            ("type", self.tender_type),
            ("location", self.location),
            ("contact", self.contact_person),
            ("sourceDetail", self.source),
        ):
            if value:
                fields[key] = value
        if self.published_date:
            fields["published"] = _format_date(self.published_date)
        if self.closing_date:
            fields["closing"] = _format_date(self.closing_date)
        return fields

    def fallback_lines(self) -> List[str]:
        lines = []
        if self.institution:
            lines.append(f"**Institution:** {self.institution}")
        if self.category:
            lines.append(f"**Category:** {self.category}")
        if self.location:
            lines.append(f"**Location:** {self.location}")
        if self.contact_person:
            lines.append(f"**Contact:** {self.contact_person}")
        if self.closing_date:
            lines.append(f"**Closing:** {_format_date(self.closing_date)}")
        return lines


# ============================================================================
# Queue Items and Results
# ============================================================================


class RawQueueItem(BaseModel):
    """
    A message as received from the source queue.

    Built either from a Lambda SQS event record or from a ReceiveMessage
    response entry. Immutable once received.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str
    receipt_handle: str
    body: str
    classification_key: str = UNKNOWN_CLASSIFICATION_KEY
    attributes: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_event_record(cls, record: Dict[str, Any]) -> "RawQueueItem":
        """Build from a record of a Lambda SQS event (camelCase keys)."""
        attributes = record.get("attributes") or {}
        message_attributes = record.get("messageAttributes") or {}
        fallback = (message_attributes.get(CLASSIFICATION_ATTRIBUTE) or {}).get("stringValue")

        return cls(
            message_id=record["messageId"],
            receipt_handle=record["receiptHandle"],
            body=record.get("body") or "",
            classification_key=attributes.get(CLASSIFICATION_ATTRIBUTE) or fallback or UNKNOWN_CLASSIFICATION_KEY,
            attributes=attributes,
        )

    @classmethod
    def from_sqs_message(cls, message: Dict[str, Any]) -> "RawQueueItem":
        """Build from an entry of an SQS ReceiveMessage response (PascalCase keys)."""
        attributes = message.get("Attributes") or {}
        message_attributes = message.get("MessageAttributes") or {}
        fallback = (message_attributes.get(CLASSIFICATION_ATTRIBUTE) or {}).get("StringValue")

        return cls(
            message_id=message["MessageId"],
            receipt_handle=message["ReceiptHandle"],
            body=message.get("Body") or "",
            classification_key=attributes.get(CLASSIFICATION_ATTRIBUTE) or fallback or UNKNOWN_CLASSIFICATION_KEY,
            attributes=attributes,
        )


class FailureRecord(CamelModel):
    """Dead-letter queue entry for a message that could not complete the pipeline."""

    original_message: str
    classification_key: str
    error_message: str
    error_category: str
    error_type: str = ""
    processed_by: str = PROCESSED_BY
    processed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BatchOutcome(BaseModel):
    """Per-batch counts. processed counts messages acknowledged by the write queue."""

    processed: int = 0
    failed: int = 0
    deleted: int = 0


class InvocationSummary(BaseModel):
    """Aggregate result of one invocation."""

    batches: int = 0
    processed: int = 0
    failed: int = 0
    deleted: int = 0
    duration_ms: int = 0

    def add(self, outcome: BatchOutcome) -> None:
        self.batches += 1
        self.processed += outcome.processed
        self.failed += outcome.failed
        self.deleted += outcome.deleted

    def to_message(self) -> str:
        return (
            f"Batches: {self.batches}, Processed: {self.processed}, "
            f"Failed: {self.failed}, Deleted: {self.deleted}, "
            f"Duration: {self.duration_ms}ms"
        )
