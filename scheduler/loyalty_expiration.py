import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from models.trigger_event import TriggerType
from utils.time_utils import days_until, utcnow

logger = logging.getLogger("storefront_notifications")


def _parse_expiry(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.error(f"Invalid expiry date on loyalty transaction: {value}")
            return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def group_expiring(transactions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Collapses expiring transactions into one entry per customer email:
    summed points and the earliest expiry.
    """
    grouped: Dict[str, Dict[str, Any]] = {}
    for row in transactions:
        member = row.get("loyalty_members") or {}
        customer = member.get("customers") or {}
        email = customer.get("email")
        expires_at = _parse_expiry(row.get("expires_at"))
        if not email or expires_at is None:
            continue

        entry = grouped.get(email)
        if entry is None:
            name = " ".join(p for p in (customer.get("first_name"), customer.get("last_name")) if p)
            entry = grouped[email] = {
                "customer": {
                    "name": name or email,
                    "email": email,
                    "customer_number": customer.get("customer_number") or "N/A",
                },
                "expiring_points": 0,
                "expires_at": expires_at,
                "current_points_balance": member.get("points_balance") or 0,
                "tier_name": member.get("tier") or "Bronze",
            }
        entry["expiring_points"] += int(row.get("points") or 0)
        entry["expires_at"] = min(entry["expires_at"], expires_at)
    return list(grouped.values())


class LoyaltyExpirationJob:
    def __init__(self, loyalty_client, dispatcher):
        self.loyalty_client = loyalty_client
        self.dispatcher = dispatcher

    async def run(self, days_ahead: int = 7, now: datetime = None) -> int:
        """Notifies every customer with points expiring in the next `days_ahead` days. Returns the number sent."""
        now = now or utcnow()
        transactions = await self.loyalty_client.fetch_expiring(now, now + timedelta(days=days_ahead))
        customers = group_expiring(transactions)
        logger.info(f"Loyalty expiration sweep: {len(customers)} customers with expiring points")

        sent = 0
        for entry in customers:
            expires_at = entry.pop("expires_at")
            payload = {
                **entry,
                "expiration_date": expires_at.date().isoformat(),
                "days_until_expiration": days_until(expires_at, now),
            }
            result = await self.dispatcher.trigger(TriggerType.LOYALTY_POINTS_EXPIRING, payload)
            if result.success:
                sent += 1
            else:
                logger.warning(f"Expiry notice for {entry['customer']['email']} not sent: {result.error}")
        return sent
