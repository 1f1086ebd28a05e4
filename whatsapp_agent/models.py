from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class TextBody(BaseModel):
    """Text payload of a WhatsApp message."""
    body: str = Field(min_length=1)


class WebhookMessage(BaseModel):
    """Single inbound message as delivered by the WhatsApp Cloud API."""
    id: str
    from_: str = Field(alias="from")
    timestamp: str
    type: str
    text: Optional[TextBody] = None


class ChangeValue(BaseModel):
    messages: Optional[List[WebhookMessage]] = None


class Change(BaseModel):
    field: str
    value: ChangeValue


class Entry(BaseModel):
    id: Optional[str] = None
    changes: List[Change]


class WebhookPayload(BaseModel):
    """Top-level webhook delivery; one delivery may hold many messages."""
    object: str
    entry: List[Entry]


class GeneratedReply(BaseModel):
    """Strict schema for the structured output of the text-generation model."""
    reply: str = Field(min_length=1)
    intent: str = Field(min_length=1)
    fields_collected: Dict[str, str] = Field(default_factory=dict)
    fields_missing: List[str] = Field(default_factory=list)
    notes_for_human: str = ""


class SimulateRequest(BaseModel):
    from_: str = Field(alias="from", min_length=1)
    text: str = Field(min_length=1)


class SimulateResponse(BaseModel):
    """Response payload returned by the simulate API."""
    reply: str = Field(min_length=1)
    intent: str = Field(min_length=1)
    fields_collected: List[str]
    fields_missing: List[str]
    notes_for_human: str


class SendRequest(BaseModel):
    to: str = Field(min_length=6)
    text: str = Field(min_length=1)


@dataclass(frozen=True)
class InboundMessage:
    """One unit of orchestration work extracted from a webhook delivery."""
    message_id: str
    sender: str
    kind: str
    text: Optional[str]
    timestamp: str


def extract_inbound_messages(payload: WebhookPayload) -> List[InboundMessage]:
    """Flatten entries/changes into the ordered list of messages they carry."""
    messages: List[InboundMessage] = []
    for entry in payload.entry:
        for change in entry.changes:
            for message in change.value.messages or []:
                messages.append(
                    InboundMessage(
                        message_id=message.id,
                        sender=message.from_,
                        kind=message.type,
                        text=message.text.body if message.text else None,
                        timestamp=message.timestamp,
                    )
                )
    return messages
