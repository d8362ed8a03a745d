import asyncio
import logging
from typing import Any, Dict, List, Optional

from api_clients.base_client import BaseClient
from api_clients.settings_client import SettingsClient
from engine.errors import TemplateParseError, TemplateStoreError
from models.template import EmailTemplate, normalize_type

logger = logging.getLogger("storefront_notifications")


def pick_template(candidates: List[EmailTemplate], identifier: str) -> Optional[EmailTemplate]:
    """
    Resolves an identifier against a list of templates: exact key first,
    then type, then a template whose triggers flag the identifier. Within
    each tier an active template wins over an inactive one.
    """
    tiers = [
        [t for t in candidates if t.key == identifier],
        [t for t in candidates if t.matches_type(identifier)],
        [t for t in candidates if t.is_triggered_by(identifier)],
    ]
    for tier in tiers:
        active = [t for t in tier if t.active]
        if active:
            return active[0]
    for tier in tiers:
        if tier:
            return tier[0]
    return None


class TemplateClient(BaseClient):
    """
    Template store. Reads the email_templates table and the legacy
    app_settings representation (setting_type = email_template).
    """
    TABLE = "email_templates"

    def __init__(self, *args, settings_client: Optional[SettingsClient] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.settings_client = settings_client or SettingsClient(*args, **kwargs)

    def _table_templates(self, identifier: str = None, template_type: str = None) -> List[EmailTemplate]:
        params: Dict[str, Any] = {"select": "*"}
        if identifier:
            normalized = normalize_type(identifier)
            params["or"] = f"(key.eq.{identifier},type.eq.{identifier},type.eq.{normalized})"
        elif template_type:
            params["type"] = f"eq.{normalize_type(template_type)}"
        rows = self._get(self.TABLE, params=params)
        if rows is None:
            raise TemplateStoreError(f"Template table unavailable while looking up '{identifier or template_type}'")
        return self._parse_rows(rows, EmailTemplate.from_table_row)

    def _legacy_templates(self) -> List[EmailTemplate]:
        rows = self.settings_client.list_by_type("email_template")
        if rows is None:
            raise TemplateStoreError("app_settings unavailable while loading legacy templates")
        return self._parse_rows(rows, EmailTemplate.from_setting_row)

    @staticmethod
    def _parse_rows(rows, parser) -> List[EmailTemplate]:
        templates = []
        for row in rows:
            try:
                templates.append(parser(row))
            except TemplateParseError as e:
                logger.error(f"Skipping unparseable template: {e}")
        return templates

    def find(self, identifier: str) -> Optional[EmailTemplate]:
        table_failed = False
        try:
            template = pick_template(self._table_templates(identifier=identifier), identifier)
        except TemplateStoreError as e:
            logger.warning(f"{e}; falling back to app_settings")
            template, table_failed = None, True
        if template and template.active:
            return template

        try:
            legacy = pick_template(self._legacy_templates(), identifier)
        except TemplateStoreError:
            if table_failed or template is None:
                raise
            return template

        if legacy and (legacy.active or template is None):
            return legacy
        if template is None and legacy is None:
            logger.warning(f"No template found for '{identifier}'")
        return template

    def find_by_type(self, template_type: str) -> List[EmailTemplate]:
        try:
            templates = self._table_templates(template_type=template_type)
        except TemplateStoreError as e:
            logger.warning(f"{e}; listing app_settings templates only")
            templates = []
        templates += [t for t in self._legacy_templates() if t.matches_type(template_type)]
        return templates

    async def get_template(self, identifier: str) -> Optional[EmailTemplate]:
        return await asyncio.to_thread(self.find, identifier)

    async def list_by_type(self, template_type: str) -> List[EmailTemplate]:
        return await asyncio.to_thread(self.find_by_type, template_type)
