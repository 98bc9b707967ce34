"""Chat Schemas — post payload and message view."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ChatPost(BaseModel):
    # upper bound enforced by core with the configured chat_max_body_length
    body: str = Field(min_length=1)


class ChatMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    sender_id: str
    body: str
    sequence: int
    sent_at: datetime


class ChatHistoryResponse(BaseModel):
    session_id: UUID
    messages: list[ChatMessageResponse]
    next_after_sequence: int
