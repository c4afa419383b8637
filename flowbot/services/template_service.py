import html
import re
from datetime import datetime, timezone
from typing import Mapping, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from flowbot.models import Template
from flowbot.schemas.template import TemplateIn, TemplateOut

PLACEHOLDER_RE = re.compile(r"\{\{(.*?)\}\}")
MARKDOWN_V2_SPECIAL_RE = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")

AUTO_REPLY_TEMPLATE = "auto_reply"
OUT_OF_HOURS_TEMPLATE = "out_of_hours"


def render(template_body: str, variables: Mapping[str, str]) -> str:
    """Substitute {{key}} placeholders in one pass.

    Placeholders whose key is not in `variables` stay verbatim so later
    stages can fill them in. Callers needing strict checks use missing_variables().
    """

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key in variables:
            return str(variables[key])
        return match.group(0)

    return PLACEHOLDER_RE.sub(_replace, template_body)


def escape_value(value: str, parse_mode: Optional[str]) -> str:
    """Escape a substituted value so it cannot break the message markup."""
    if parse_mode == "HTML":
        return html.escape(value, quote=False)
    if parse_mode == "MarkdownV2":
        return MARKDOWN_V2_SPECIAL_RE.sub(r"\\\1", value)
    return value


def render_for_parse_mode(template_body: str, variables: Mapping[str, str], parse_mode: Optional[str]) -> str:
    """render() with every value escaped for `parse_mode`; the body's own markup is kept."""
    escaped = {key: escape_value(str(value), parse_mode) for key, value in variables.items()}
    return render(template_body, escaped)


def extract_variables(template_body: str) -> list[str]:
    """Placeholder names in order of first appearance."""
    names: list[str] = []
    for match in PLACEHOLDER_RE.finditer(template_body):
        name = match.group(1)
        if name and name not in names:
            names.append(name)
    return names


def missing_variables(template_body: str, variables: Mapping[str, str]) -> list[str]:
    return [name for name in extract_variables(template_body) if name not in variables]


def to_out(template: Template) -> TemplateOut:
    out = TemplateOut.model_validate(template)
    out.variables = extract_variables(template.content)
    return out


def list_templates(db: Session) -> list[Template]:
    return db.query(Template).order_by(Template.name).all()


def get_template(db: Session, template_id: UUID) -> Optional[Template]:
    return db.query(Template).filter(Template.id == template_id).first()


def get_active_by_name(db: Session, name: str) -> Optional[Template]:
    return db.query(Template).filter(Template.name == name, Template.is_active.is_(True)).first()


def get_command_template(db: Session, command: str) -> Optional[Template]:
    return (
        db.query(Template)
        .filter(Template.type == "command", Template.command == command, Template.is_active.is_(True))
        .first()
    )


def create_template(db: Session, data: TemplateIn) -> Template:
    now = datetime.now(timezone.utc)
    template = Template(**data.model_dump(), created_at=now, updated_at=now)
    db.add(template)
    db.flush()
    return template


def update_template(db: Session, template: Template, data: TemplateIn) -> Template:
    for field, value in data.model_dump().items():
        setattr(template, field, value)
    template.updated_at = datetime.now(timezone.utc)
    db.flush()
    return template


def delete_template(db: Session, template: Template) -> None:
    db.delete(template)
    db.flush()


def record_usage(db: Session, template: Template) -> None:
    template.usage_count = (template.usage_count or 0) + 1
    template.last_used = datetime.now(timezone.utc)
    db.flush()
