from enum import Enum
from typing import Optional

from pydantic import BaseModel

from flowbot.schemas.telegram import BotIdentity
from flowbot.services.polling_supervisor import SupervisorStatus


class EngineMode(str, Enum):
    STOPPED = "stopped"
    POLLING = "polling"
    WEBHOOK = "webhook"


class ConnectionTestResult(BaseModel):
    success: bool
    bot: Optional[BotIdentity] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class EngineStatus(BaseModel):
    mode: EngineMode
    bot: Optional[BotIdentity] = None
    supervisor: Optional[SupervisorStatus] = None
    last_offset: Optional[int] = None
    last_error: Optional[str] = None
    retry_pending: bool = False
    conversations: Optional[int] = None
    templates: Optional[int] = None
