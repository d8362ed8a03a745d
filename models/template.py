import json
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List, Set

from engine.errors import TemplateParseError

# German display names used by the admin editor for template types
TYPE_ALIASES = {
    "Versandbenachrichtigung": "shipping_notification",
    "Bestellbestätigung": "order_confirmation",
    "Kundenstornierung": "customer_order_cancellation",
    "Admin-Stornierung": "admin_order_cancellation",
    "Adminstornierung": "admin_order_cancellation",
}


def normalize_type(template_type: Optional[str]) -> Optional[str]:
    if not template_type:
        return template_type
    return TYPE_ALIASES.get(template_type, template_type)


class EmailTemplate(BaseModel):
    id: Optional[int] = None
    key: str
    type: str
    name: Optional[str] = None
    subject: str = ""
    html_body: str = ""
    text_body: str = ""
    declared_variables: Set[str] = Field(default_factory=set)
    active: bool = False
    triggers: Dict[str, bool] = Field(default_factory=dict)

    def matches_type(self, template_type: str) -> bool:
        return normalize_type(self.type) == normalize_type(template_type)

    def is_triggered_by(self, template_type: str) -> bool:
        return bool(self.triggers.get(template_type) or self.triggers.get(normalize_type(template_type)))

    @classmethod
    def from_table_row(cls, row: Dict[str, Any]) -> "EmailTemplate":
        """Builds a template from a row of the email_templates table."""
        try:
            return cls(
                id=row.get("id"),
                key=row["key"],
                type=normalize_type(row.get("type") or row["key"]),
                name=row.get("name"),
                subject=row.get("subject") or "",
                html_body=row.get("html_content") or row.get("html_body") or "",
                text_body=row.get("text_content") or row.get("text_body") or "",
                declared_variables=set(row.get("variables") or []),
                active=bool(row.get("active", False)),
                triggers=row.get("triggers") or {},
            )
        except (KeyError, TypeError, ValueError) as e:
            raise TemplateParseError(f"Invalid template row {row.get('id')}: {e}")

    @classmethod
    def from_setting_row(cls, row: Dict[str, Any]) -> "EmailTemplate":
        """
        Builds a template from a legacy app_settings row whose setting_value
        holds the template as a JSON document.
        """
        raw = row.get("setting_value")
        try:
            data = json.loads(raw) if isinstance(raw, str) else raw
        except (TypeError, ValueError) as e:
            raise TemplateParseError(f"Template '{row.get('setting_key')}' is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise TemplateParseError(f"Template '{row.get('setting_key')}' is not a JSON object")

        key = data.get("template_key") or row.get("setting_key")
        if not key:
            raise TemplateParseError(f"Template row {row.get('id')} has no key")

        variables: List[str] = data.get("variables") or []
        triggers = data.get("triggers") if isinstance(data.get("triggers"), dict) else {}
        return cls(
            id=row.get("id"),
            key=key,
            type=normalize_type(data.get("type") or data.get("template_type") or key),
            name=data.get("template_name") or data.get("name") or row.get("setting_name"),
            subject=data.get("subject") or "",
            html_body=data.get("html_content") or data.get("html") or "",
            text_body=data.get("text_content") or data.get("text") or "",
            declared_variables=set(variables) if isinstance(variables, list) else set(),
            active=data.get("active") is True or data.get("is_active") is True,
            triggers={k: bool(v) for k, v in triggers.items()},
        )


class RenderedMessage(BaseModel):
    subject: str
    html: str
    text: str


class EmailSignature(BaseModel):
    enabled: bool = False
    html_signature: str = ""
    text_signature: str = ""
