from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TemplateType = Literal["message", "command", "inline_keyboard"]
TemplateCategory = Literal["welcome", "support", "info", "marketing", "automation"]
ParseMode = Literal["HTML", "Markdown", "MarkdownV2"]


class TemplateIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    type: TemplateType = "message"
    command: Optional[str] = Field(default=None, pattern=r"^/[a-z_]+$")
    category: TemplateCategory
    language: str = "it"
    content: str = Field(min_length=1, max_length=4096)
    parse_mode: ParseMode = "HTML"
    disable_web_page_preview: bool = False
    inline_keyboard: Optional[list[list[dict]]] = None
    description: Optional[str] = None
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name is required")
        return value

    @model_validator(mode="after")
    def command_required_for_command_type(self) -> "TemplateIn":
        if self.type == "command" and not self.command:
            raise ValueError("command templates need a command")
        return self


class TemplateOut(TemplateIn):
    id: UUID
    variables: list[str] = []
    usage_count: int = 0
    last_used: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SendTemplateRequest(BaseModel):
    chat_id: str
    template_id: UUID
    variables: dict[str, str] = {}
