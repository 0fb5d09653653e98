"""Inbound message model handed over by the chat adapters."""

from pydantic import BaseModel, Field
from typing import Optional, Literal


Platform = Literal["slack", "telegram", "whatsapp"]


class InboundMessage(BaseModel):
    """Platform-neutral message as delivered by a chat adapter."""
    channel_id: str = Field(..., alias="channelId", description="Channel/chat id on the platform")
    platform: Platform = Field(..., description="'slack' | 'telegram' | 'whatsapp'")
    user_id: str = Field(..., alias="userId", description="Sender id on the platform")
    user_name: str = Field("", alias="userName", description="Sender display name")
    text: str = Field(..., description="Message text content")
    thread_id: Optional[str] = Field(None, alias="threadId", description="Thread to reply in, if any")

    model_config = {"populate_by_name": True}  # Allow both camelCase and snake_case


class InboundMessageResponse(BaseModel):
    """Response returned to the adapter for in-place rendering."""
    answer: str
