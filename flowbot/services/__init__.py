from flowbot.services.business_hours import ReplyRoute, decide_route, is_business_hours
from flowbot.services.sequencer import UpdateSequencer
from flowbot.services.template_service import extract_variables, render

__all__ = [
    "ReplyRoute",
    "UpdateSequencer",
    "decide_route",
    "extract_variables",
    "is_business_hours",
    "render",
]
