"""Pydantic models for Asterisk Manager Interface responses."""

from __future__ import annotations

from pydantic import BaseModel


class AMIResponse(BaseModel):
    """One `Response:` packet matched to the action that requested it."""

    success: bool
    action_id: str = ""
    message: str = ""
    error: str = ""
    fields: dict[str, str] = {}

    @classmethod
    def from_message(cls, message: dict[str, str]) -> AMIResponse:
        success = message.get("Response", "").lower() == "success"
        text = message.get("Message", "")
        return cls(
            success=success,
            action_id=message.get("ActionID", ""),
            message=text,
            error="" if success else (text or "Gateway returned an error response"),
            fields={
                k: v for k, v in message.items()
                if k not in ("Response", "ActionID", "Message")
            },
        )
