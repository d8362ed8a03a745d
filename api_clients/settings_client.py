import asyncio
import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from api_clients.base_client import BaseClient
from models.smtp_settings import PartialSMTPSettings
from models.template import EmailSignature
from utils.time_utils import utcnow

logger = logging.getLogger("storefront_notifications")


class SettingsClient(BaseClient):
    """Access to the flat app_settings table (setting_type, setting_key, setting_value)."""
    TABLE = "app_settings"

    def list_by_type(self, setting_type: str) -> Optional[List[Dict[str, Any]]]:
        return self._get(self.TABLE, params={
            "setting_type": f"eq.{setting_type}",
            "select": "*",
            "order": "created_at.desc",
        })

    def get(self, setting_type: str, setting_key: str) -> Optional[Dict[str, Any]]:
        rows = self._get(self.TABLE, params={
            "setting_type": f"eq.{setting_type}",
            "setting_key": f"eq.{setting_key}",
            "select": "*",
        })
        return rows[0] if rows else None

    def insert(self, setting_type: str, setting_key: str, value: Any, description: str = None) -> bool:
        resp = self._post(self.TABLE, json={
            "setting_type": setting_type,
            "setting_key": setting_key,
            "setting_value": value if isinstance(value, str) else json.dumps(value, default=str),
            "description": description,
        })
        return resp is not None

    # --- typed readers -----------------------------------------------------

    def smtp_config_json(self) -> Optional[PartialSMTPSettings]:
        """Reads the JSON-shaped SMTP configuration (setting_type = smtp_config)."""
        rows = self.list_by_type("smtp_config")
        if not rows:
            return None
        raw = rows[0].get("setting_value")
        try:
            data = json.loads(raw) if isinstance(raw, str) else raw
        except ValueError as e:
            logger.error(f"[SMTP] Invalid JSON in smtp_config: {e}")
            return None
        if not isinstance(data, dict):
            return None
        return PartialSMTPSettings.from_mapping(data, source="smtp_config")

    def smtp_config_kv(self) -> Optional[PartialSMTPSettings]:
        """Reads the key/value SMTP configuration (setting_type = smtp, one row per field)."""
        rows = self.list_by_type("smtp")
        if not rows:
            return None
        kv = {row.get("setting_key"): row.get("setting_value") for row in rows}
        return PartialSMTPSettings.from_mapping(kv, source="smtp")

    def email_signature(self) -> Optional[EmailSignature]:
        row = self.get("email_config", "global_email_signature")
        if not row:
            return None
        try:
            raw = row.get("setting_value")
            return EmailSignature(**(json.loads(raw) if isinstance(raw, str) else raw))
        except Exception as e:
            logger.error(f"Error loading global signature: {e}")
            return None

    # --- async facades ---------------------------------------------------

    async def load_signature(self) -> Optional[EmailSignature]:
        return await asyncio.to_thread(self.email_signature)

    async def log_email(self, template_type: str, recipient: str, subject: str,
                        success: bool, message_id: str = None, error: str = None,
                        template_id: int = None) -> bool:
        entry = {
            "type": template_type,
            "to": recipient,
            "subject": subject,
            "status": "sent" if success else "failed",
            "template_id": template_id,
            "message_id": message_id,
            "error": error,
            "sent_at": utcnow().isoformat(),
        }
        key = f"{template_type}_{uuid.uuid4().hex[:12]}"
        return await asyncio.to_thread(
            self.insert, "email_log", key, entry, f"E-Mail Log: {template_type} an {recipient}"
        )
