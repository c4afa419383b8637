"""Error taxonomy shared by the ingestion and reply engine."""

from typing import Optional


class FlowbotError(Exception):
    """Base class for engine errors."""


class AuthError(FlowbotError):
    """Credential or webhook secret rejected. Requires reconfiguration."""


class NetworkError(FlowbotError):
    """Transient transport or platform failure while fetching updates."""


class UpstreamError(FlowbotError):
    """The completion provider failed to produce a reply."""


class DeliveryError(FlowbotError):
    """The platform rejected an outbound call."""

    def __init__(self, message: str, error_code: Optional[int] = None, description: Optional[str] = None):
        self.error_code = error_code
        self.description = description
        super().__init__(message)
