from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ConversationOut(BaseModel):
    id: UUID
    platform_chat_id: str
    kind: str
    display_name: str
    title: Optional[str] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    message_count: int = 0
    last_message_at: Optional[datetime] = None
    last_message_preview: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessageOut(BaseModel):
    id: int
    conversation_id: UUID
    platform_message_id: Optional[int] = None
    direction: str
    origin: str
    body: str
    sender: Optional[str] = None
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Page(BaseModel):
    total: int
    limit: int
    offset: int


class ConversationPage(Page):
    items: list[ConversationOut]


class MessagePage(Page):
    items: list[MessageOut]


class SendMessageRequest(BaseModel):
    chat_id: str
    text: str = Field(min_length=1, max_length=4096)
    parse_mode: Optional[str] = None
    disable_web_page_preview: Optional[bool] = None
    reply_markup: Optional[dict] = None


class SendMessageResponse(BaseModel):
    success: bool
    message_id: Optional[int] = None
    error: Optional[str] = None


class MarkReadResponse(BaseModel):
    conversation_id: UUID
    updated: int
