import json
import logging

from flowbot.logging_config import JSONFormatter, get_logger


def _record(level=logging.INFO, context=None):
    record = logging.LogRecord("flowbot.test", level, __file__, 10, "Update stored", None, None)
    if context is not None:
        record.context = context
    return record


class TestJSONFormatter:
    def test_promotes_chat_and_update_ids(self):
        line = JSONFormatter().format(_record(context={"chat_id": 555, "update_id": 7, "kind": "text"}))

        entry = json.loads(line)
        assert entry["message"] == "Update stored"
        assert entry["chat_id"] == 555
        assert entry["update_id"] == 7
        assert entry["context"]["kind"] == "text"
        assert "source" not in entry

    def test_warning_carries_source(self):
        entry = json.loads(JSONFormatter().format(_record(level=logging.WARNING)))

        assert entry["level"] == "WARNING"
        assert entry["source"].endswith(":10")

    def test_non_json_context_values_are_stringified(self):
        from uuid import UUID

        value = UUID("12345678-1234-5678-1234-567812345678")
        entry = json.loads(JSONFormatter().format(_record(context={"conversation_id": value})))

        assert entry["context"]["conversation_id"] == str(value)


def test_logger_namespace():
    assert get_logger("bot_engine").name == "flowbot.bot_engine"
