from flowbot.models import MessageOrigin
from flowbot.schemas.template import TemplateIn
from flowbot.schemas.updates import ChatRef, CommandUpdate, Sender
from flowbot.services import template_service
from flowbot.services.command_router import UNKNOWN_COMMAND_TEXT, route_command

VARIABLES = {"first_name": "Mario", "bot_name": "@easyflowbot"}


def _command(command, args=""):
    return CommandUpdate(
        message_id=1,
        date=1702000000,
        chat=ChatRef(id=555, kind="direct"),
        sender=Sender(id=555, first_name="Mario"),
        text=f"{command} {args}".strip(),
        command=command,
        args=args,
    )


class TestBuiltinCommands:
    def test_start_has_welcome_and_keyboard(self):
        reply = route_command(None, _command("/start"), VARIABLES)

        assert reply.text.startswith("Hi Mario!")
        assert reply.origin == MessageOrigin.TEMPLATE
        keyboard = reply.options.reply_markup["inline_keyboard"]
        callbacks = [button["callback_data"] for row in keyboard for button in row]
        assert callbacks == ["cashflow", "analytics", "invoicing", "support"]

    def test_start_escapes_name_for_html(self):
        reply = route_command(None, _command("/start"), dict(VARIABLES, first_name="Tom <&> Jerry"))

        assert reply.text.startswith("Hi Tom &lt;&amp;&gt; Jerry!")
        assert reply.options.parse_mode == "HTML"

    def test_help(self):
        reply = route_command(None, _command("/help"), VARIABLES)
        assert "/info" in reply.text
        assert reply.options.parse_mode == "HTML"

    def test_info_uses_bot_name(self):
        reply = route_command(None, _command("/info"), VARIABLES)
        assert "@easyflowbot" in reply.text

    def test_unknown_command_gets_generic_reply(self):
        reply = route_command(None, _command("/refund", "now"), VARIABLES)
        assert reply.text == UNKNOWN_COMMAND_TEXT


class TestCommandTemplates:
    def test_active_template_overrides_builtin(self, db):
        template_service.create_template(
            db,
            TemplateIn(
                name="custom_start",
                type="command",
                command="/start",
                category="welcome",
                content="Benvenuto {{first_name}}!",
                parse_mode="Markdown",
            ),
        )
        db.commit()

        reply = route_command(db, _command("/start"), VARIABLES)

        assert reply.text == "Benvenuto Mario!"
        assert reply.options.parse_mode == "Markdown"
        assert reply.template is not None

    def test_template_can_define_new_command(self, db):
        template_service.create_template(
            db,
            TemplateIn(name="pricing", type="command", command="/pricing", category="info", content="Plans from 9€"),
        )
        db.commit()

        assert route_command(db, _command("/pricing"), VARIABLES).text == "Plans from 9€"

    def test_inactive_template_ignored(self, db):
        template_service.create_template(
            db,
            TemplateIn(
                name="custom_help",
                type="command",
                command="/help",
                category="support",
                content="old help",
                is_active=False,
            ),
        )
        db.commit()

        assert "Available commands" in route_command(db, _command("/help"), VARIABLES).text
