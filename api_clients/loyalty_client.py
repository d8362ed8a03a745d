import asyncio
from datetime import datetime
from typing import Any, Dict, List

from api_clients.base_client import BaseClient


class LoyaltyClient(BaseClient):
    TABLE = "loyalty_transactions"

    def list_expiring(self, after: datetime, before: datetime) -> List[Dict[str, Any]]:
        """Earned, still positive transactions expiring inside (after, before), with their customer."""
        return self._get(self.TABLE, params={
            "select": "*,loyalty_members(customer_id,tier,points_balance,customers(first_name,last_name,email,customer_number))",
            "transaction_type": "eq.earned",
            "points": "gt.0",
            "and": f"(expires_at.gt.{after.isoformat()},expires_at.lt.{before.isoformat()})",
        }) or []

    async def fetch_expiring(self, after: datetime, before: datetime) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self.list_expiring, after, before)
