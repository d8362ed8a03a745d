import requests
from typing import Any, Dict, List, Optional
import logging

from utils.config import AppConfig, load_config

logger = logging.getLogger("storefront_notifications")


class BaseClient:
    """
    Thin client for the hosted database's REST interface (PostgREST dialect).
    Methods are synchronous; async callers go through asyncio.to_thread.
    """
    TIMEOUT = 10

    def __init__(self, config: Optional[AppConfig] = None, session: Optional[requests.Session] = None):
        config = config or load_config()
        self.base_url = f"{config.supabase_url.rstrip('/')}/rest/v1"
        self.session = session or requests.Session()
        if config.supabase_key:
            self.session.headers.update({
                "apikey": config.supabase_key,
                "Authorization": f"Bearer {config.supabase_key}",
            })

    def _get(self, table: str, params: Dict = None) -> Optional[List[Dict[str, Any]]]:
        """Returns the matching rows, [] when none match, None when the request failed."""
        try:
            resp = self.session.get(f"{self.base_url}/{table}", params=params, timeout=self.TIMEOUT)
            resp.raise_for_status()
            return resp.json()
        except Exception as e:
            logger.error(f"GET {table} failed: {e}")
            return None

    def _post(self, table: str, json: Any = None) -> Optional[List[Dict[str, Any]]]:
        try:
            resp = self.session.post(
                f"{self.base_url}/{table}",
                json=json,
                headers={"Prefer": "return=representation"},
                timeout=self.TIMEOUT,
            )
            resp.raise_for_status()
            return resp.json()
        except Exception as e:
            logger.error(f"POST {table} failed: {e}")
            if getattr(e, "response", None) is not None:
                logger.error(f"Response: {e.response.text}")
            return None

    def _patch(self, table: str, params: Dict, json: Dict = None) -> bool:
        try:
            resp = self.session.patch(f"{self.base_url}/{table}", params=params, json=json, timeout=self.TIMEOUT)
            resp.raise_for_status()
            return True
        except Exception as e:
            logger.error(f"PATCH {table} failed: {e}")
            return False
