from fastapi import Request

from flowbot.services.bot_engine import BotEngine


def get_engine(request: Request) -> BotEngine:
    return request.app.state.engine
