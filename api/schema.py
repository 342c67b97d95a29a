import base64
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from lib.error_handler import PayloadMalformed

UNKNOWN_USER = "unknown"
DEFAULT_CONTENT_TYPE = "image/jpeg"

# Column order of a stored record
RECORD_COLUMNS = ("date", "distance", "time", "pace", "user_id")

# Strict structured-output contract handed to the model. Strict mode requires every
# property in "required", so an unreadable pace is expressed as null.
RUNNING_RECORD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "date": {
            "type": "string",
            "description": "Date and time of the run (YYYY-MM-DD HH:MM)",
        },
        "distance": {
            "type": "string",
            "description": "Distance run in km",
        },
        "time": {
            "type": "string",
            "description": "Elapsed time (HH:MM:SS)",
        },
        "pace": {
            "type": ["string", "null"],
            "description": "Average pace per km (MM:SS)",
        },
    },
    "required": ["date", "distance", "time", "pace"],
    "additionalProperties": False,
}

class RunningRecord(BaseModel):
    """A running activity read off a summary screenshot.

    Values stay display strings exactly as the model produced them.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    date: str
    distance: str
    time: str
    pace: Optional[str] = None
    user_id: str = Field(default=UNKNOWN_USER, alias="userId")

    @field_validator("date", "distance", "time", "pace", mode="before")
    @classmethod
    def _strip(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            value = value.strip()
        return value

    @field_validator("date", "distance", "time")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("pace")
    @classmethod
    def _blank_pace(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    def with_user(self, user_id: Optional[str]) -> "RunningRecord":
        return self.model_copy(update={"user_id": user_id or UNKNOWN_USER})

    def as_row(self) -> List[Optional[str]]:
        return [getattr(self, column) for column in RECORD_COLUMNS]

    @classmethod
    def from_row(cls, row: Union[Sequence[Any], Dict[str, Any]]) -> "RunningRecord":
        if isinstance(row, dict):
            values = {column: row.get(column) for column in RECORD_COLUMNS}
        else:
            values = dict(zip(RECORD_COLUMNS, row))
        if not values.get("user_id"):
            values["user_id"] = UNKNOWN_USER
        return cls(**values)

@dataclass(frozen=True)
class ImageContent:
    data: bytes
    content_type: str = DEFAULT_CONTENT_TYPE

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"

# LINE webhook body. Only the fields the pipeline reads are modelled.

class _Source(BaseModel):
    userId: Optional[str] = None

class _Message(BaseModel):
    type: str
    id: Optional[str] = None
    text: Optional[str] = None

class _Event(BaseModel):
    type: str
    replyToken: Optional[str] = None
    source: Optional[_Source] = None
    message: Optional[_Message] = None

class _WebhookBody(BaseModel):
    events: List[_Event]

@dataclass(frozen=True)
class InboundEvent:
    kind: str  # image | text | other
    event_type: str
    reply_token: Optional[str] = None
    sender_id: Optional[str] = None
    attachment_id: Optional[str] = None
    text: Optional[str] = None

    @property
    def label(self) -> str:
        if self.kind == "other":
            return f"{self.event_type} event"
        return f"{self.kind} message"

def _to_inbound_event(index: int, event: _Event) -> InboundEvent:
    sender_id = event.source.userId if event.source else None

    if event.type != "message":
        return InboundEvent(kind="other", event_type=event.type,
                            reply_token=event.replyToken, sender_id=sender_id)

    if event.message is None:
        raise PayloadMalformed(f"events[{index}]: message event without message")

    message = event.message
    if message.type == "image":
        if not message.id:
            raise PayloadMalformed(f"events[{index}]: image message without id")
        return InboundEvent(kind="image", event_type=event.type,
                            reply_token=event.replyToken, sender_id=sender_id,
                            attachment_id=message.id)

    if message.type == "text":
        if message.text is None:
            raise PayloadMalformed(f"events[{index}]: text message without text")
        return InboundEvent(kind="text", event_type=event.type,
                            reply_token=event.replyToken, sender_id=sender_id,
                            text=message.text)

    return InboundEvent(kind="other", event_type=f"{event.type}/{message.type}",
                        reply_token=event.replyToken, sender_id=sender_id)

def parse_webhook_body(raw_body: Union[str, bytes]) -> List[InboundEvent]:
    """Decode a webhook body into events, in payload order.

    Raises PayloadMalformed when the body or any event in it cannot be used.
    """
    try:
        data = json.loads(raw_body)
    except (TypeError, ValueError) as e:
        raise PayloadMalformed(f"Body is not JSON: {str(e)}")

    if not isinstance(data, dict):
        raise PayloadMalformed("Body is not a JSON object")

    try:
        body = _WebhookBody.model_validate(data)
    except ValidationError as e:
        raise PayloadMalformed(f"Invalid webhook body: {e.error_count()} error(s): {str(e)}")

    return [_to_inbound_event(i, event) for i, event in enumerate(body.events)]
