"""Inbound WebSocket message models.

Every message is a JSON object with a ``type`` field. Payloads are
validated per type; outbound messages are plain dicts built by the
connection.
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class _Inbound(BaseModel):
    model_config = ConfigDict(extra="ignore")


class HelloMessage(_Inbound):
    type: Literal["hello"]


class StartSessionMessage(_Inbound):
    type: Literal["startSession"]
    options: dict[str, Any] = Field(default_factory=dict)


class PromptMessage(_Inbound):
    type: Literal["prompt"]
    id: str | None = None
    text: str


class InterruptMessage(_Inbound):
    type: Literal["interrupt"]


class ResizeMessage(_Inbound):
    type: Literal["resize"]
    cols: int = Field(gt=0)
    rows: int = Field(gt=0)


class ResetMessage(_Inbound):
    type: Literal["reset"]


class StopMessage(_Inbound):
    type: Literal["stop"]


class ActionResponseMessage(_Inbound):
    type: Literal["actionResponse"]
    action_id: str = Field(alias="actionId")
    approve: bool = False


class ExpandRequestMessage(_Inbound):
    type: Literal["expandRequest"]
    request_id: str | None = Field(default=None, alias="requestId")
    expand_type: str = Field(default="", alias="expandType")


MESSAGE_TYPES: dict[str, type[_Inbound]] = {
    "hello": HelloMessage,
    "startSession": StartSessionMessage,
    "prompt": PromptMessage,
    "interrupt": InterruptMessage,
    "resize": ResizeMessage,
    "reset": ResetMessage,
    "stop": StopMessage,
    "actionResponse": ActionResponseMessage,
    "expandRequest": ExpandRequestMessage,
}


def decode_frame(raw: str | bytes) -> dict[str, Any]:
    """Parse one inbound frame into a JSON object.

    Raises:
        ProtocolError: If the frame is not a JSON object.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError("invalid_json", "invalid json") from e
    if not isinstance(data, dict):
        raise ProtocolError("invalid_json", "message must be a JSON object")
    return data


class ProtocolError(Exception):
    """Raised when an inbound message cannot be handled."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def to_payload(self) -> dict[str, str]:
        return {"type": "error", "error": self.code, "message": self.message}
