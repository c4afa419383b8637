import re
from datetime import time
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
# Only the update kinds parse_update turns into engine updates.
ALLOWED_UPDATE_KINDS = {"message", "callback_query"}
AI_MODELS = {"gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"}

_TOKEN_RE = re.compile(r"^\d+:[A-Za-z0-9_-]+$")
_USERNAME_RE = re.compile(r"^@[A-Za-z0-9_]{5,32}$")
_TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


class BusinessHours(BaseModel):
    enabled: bool = False
    start: str = "09:00"
    end: str = "18:00"
    days: list[str] = Field(default_factory=lambda: list(WEEKDAYS[:5]))
    timezone: str = "Europe/Rome"

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, value: str) -> str:
        value = value.strip()
        if not _TIME_RE.match(value):
            raise ValueError("time must use HH:MM format")
        hours, minutes = value.split(":")
        return f"{int(hours):02d}:{minutes}"

    @field_validator("days", mode="before")
    @classmethod
    def normalize_days(cls, value: object) -> list[str]:
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, list):
            raise ValueError("days must be a list or comma-separated string")
        days: list[str] = []
        for item in value:
            day = str(item).strip().lower()
            if not day:
                continue
            if day not in WEEKDAYS:
                raise ValueError(f"unknown weekday: {item}")
            if day not in days:
                days.append(day)
        return days

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {value}") from e
        return value

    @model_validator(mode="after")
    def start_not_after_end(self) -> "BusinessHours":
        # Windows crossing midnight are not supported.
        if self.start_time > self.end_time:
            raise ValueError("start must not be after end")
        return self

    @property
    def start_time(self) -> time:
        return time.fromisoformat(self.start)

    @property
    def end_time(self) -> time:
        return time.fromisoformat(self.end)

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class BotConfiguration(BaseModel):
    """Process-wide bot configuration, always replaced as a whole."""

    bot_token: str
    bot_username: str
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None
    allowed_updates: list[str] = Field(default_factory=lambda: ["message", "callback_query"])
    business_hours: BusinessHours = Field(default_factory=BusinessHours)
    out_of_hours_reply: bool = True
    out_of_hours_message: Optional[str] = None
    enable_auto_reply: bool = False
    enable_ai_responses: bool = False
    ai_model: str = "gpt-4o"
    ai_system_prompt: Optional[str] = None
    is_active: bool = False

    @field_validator("bot_token")
    @classmethod
    def validate_token(cls, value: str) -> str:
        value = value.strip()
        if not _TOKEN_RE.match(value):
            raise ValueError("invalid Telegram bot token")
        return value

    @field_validator("bot_username")
    @classmethod
    def validate_username(cls, value: str) -> str:
        value = value.strip()
        if not _USERNAME_RE.match(value):
            raise ValueError("bot username must start with @ and be 5-32 characters")
        return value

    @field_validator("webhook_url", "webhook_secret", "out_of_hours_message", "ai_system_prompt", mode="before")
    @classmethod
    def empty_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.startswith("https://"):
            raise ValueError("webhook URL must use https")
        return value

    @field_validator("allowed_updates")
    @classmethod
    def validate_allowed_updates(cls, value: list[str]) -> list[str]:
        unknown = [kind for kind in value if kind not in ALLOWED_UPDATE_KINDS]
        if unknown:
            raise ValueError(f"unsupported update kinds: {', '.join(unknown)}")
        return value

    @field_validator("ai_model")
    @classmethod
    def validate_ai_model(cls, value: str) -> str:
        if value not in AI_MODELS:
            raise ValueError(f"ai_model must be one of: {', '.join(sorted(AI_MODELS))}")
        return value

    def redacted(self) -> dict:
        """Serialized form safe to return from the admin surface."""
        data = self.model_dump()
        data["bot_token"] = f"{self.bot_token.split(':', 1)[0]}:***"
        if self.webhook_secret:
            data["webhook_secret"] = "***"
        return data
