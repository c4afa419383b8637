import pytest
from pydantic import ValidationError

from flowbot.schemas.bot_config import BotConfiguration, BusinessHours


def _config(**overrides):
    data = {"bot_token": "123456:ABC-def_ghi", "bot_username": "@easyflowbot"}
    data.update(overrides)
    return BotConfiguration(**data)


class TestBotConfiguration:
    def test_defaults(self):
        config = _config()
        assert config.allowed_updates == ["message", "callback_query"]
        assert config.ai_model == "gpt-4o"
        assert config.is_active is False
        assert config.business_hours.days == ["monday", "tuesday", "wednesday", "thursday", "friday"]

    def test_invalid_token(self):
        with pytest.raises(ValidationError):
            _config(bot_token="not-a-token")

    def test_invalid_username(self):
        with pytest.raises(ValidationError):
            _config(bot_username="easyflowbot")

    def test_webhook_must_be_https(self):
        with pytest.raises(ValidationError):
            _config(webhook_url="http://example.com/hook")

    def test_empty_webhook_is_none(self):
        assert _config(webhook_url="  ").webhook_url is None

    def test_unknown_update_kind(self):
        with pytest.raises(ValidationError):
            _config(allowed_updates=["message", "poll_answer"])

    @pytest.mark.parametrize("kind", ["edited_message", "channel_post"])
    def test_unhandled_update_kinds_rejected(self, kind):
        with pytest.raises(ValidationError):
            _config(allowed_updates=["message", kind])

    def test_unknown_model(self):
        with pytest.raises(ValidationError):
            _config(ai_model="gpt-2")

    def test_redacted_hides_secrets(self):
        data = _config(webhook_secret="s3cret").redacted()
        assert data["bot_token"] == "123456:***"
        assert data["webhook_secret"] == "***"


class TestBusinessHours:
    def test_time_is_normalized(self):
        hours = BusinessHours(start="9:00", end="18:30")
        assert hours.start == "09:00"
        assert hours.end == "18:30"

    def test_bad_time(self):
        with pytest.raises(ValidationError):
            BusinessHours(start="25:00")

    def test_days_from_string(self):
        hours = BusinessHours(days="Monday, saturday,monday")
        assert hours.days == ["monday", "saturday"]

    def test_unknown_day(self):
        with pytest.raises(ValidationError):
            BusinessHours(days=["funday"])

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError):
            BusinessHours(timezone="Mars/Olympus")

    def test_window_crossing_midnight_rejected(self):
        with pytest.raises(ValidationError):
            BusinessHours(enabled=True, start="22:00", end="06:00")

    def test_single_minute_window_allowed(self):
        hours = BusinessHours(start="12:00", end="12:00")
        assert hours.start_time == hours.end_time
