from enum import Enum
from typing import Optional, Dict, Any, List, Type, Union

from pydantic import BaseModel, ConfigDict, Field

from utils.formatting import format_euro
from utils.time_utils import to_german_date, utcnow

DHL_TRACKING_URL = "https://www.dhl.de/de/privatkunden/pakete-empfangen/verfolgen.html?lang=de&idc={tracking_number}"


class TriggerType(str, Enum):
    SHIPPING_NOTIFICATION = "shipping_notification"
    LOYALTY_POINTS_EARNED = "loyalty_points_earned"
    LOYALTY_POINTS_REDEEMED = "loyalty_points_redeemed"
    LOYALTY_TIER_UPGRADE = "loyalty_tier_upgrade"
    LOYALTY_POINTS_EXPIRING = "loyalty_points_expiring"
    LOW_STOCK_ALERT = "low_stock_alert"


# Template type each trigger resolves to
TEMPLATE_TYPES: Dict[TriggerType, str] = {
    TriggerType.SHIPPING_NOTIFICATION: "shipping_notification",
    TriggerType.LOYALTY_POINTS_EARNED: "loyalty_points_earned",
    TriggerType.LOYALTY_POINTS_REDEEMED: "loyalty_points_redeemed",
    TriggerType.LOYALTY_TIER_UPGRADE: "loyalty_tier_upgrade",
    TriggerType.LOYALTY_POINTS_EXPIRING: "loyalty_points_expiring",
    TriggerType.LOW_STOCK_ALERT: "low_stock",
}


class CustomerRef(BaseModel):
    name: str
    email: Optional[str] = None
    customer_number: str = "N/A"


class TriggerPayload(BaseModel):
    """
    Base for the per-trigger payload shapes. Unknown keys are kept and passed
    through to the template as additional variables.
    """
    model_config = ConfigDict(extra="allow")

    def recipient(self) -> Optional[str]:
        return None

    def _variables(self) -> Dict[str, Any]:
        return {}

    def template_variables(self) -> Dict[str, Any]:
        variables = dict(self.model_extra or {})
        variables.update({k: v for k, v in self._variables().items() if v is not None})
        return variables


class CustomerPayload(TriggerPayload):
    customer: CustomerRef

    def recipient(self) -> Optional[str]:
        return self.customer.email

    def _customer_variables(self) -> Dict[str, Any]:
        return {
            "customer_name": self.customer.name,
            "customer_email": self.customer.email,
            "customer_number": self.customer.customer_number,
        }


class ShippingNotificationPayload(CustomerPayload):
    order_number: str
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    tracking_url: Optional[str] = None
    shipping_date: Optional[str] = None
    estimated_delivery: Optional[str] = None

    def _variables(self) -> Dict[str, Any]:
        tracking_url = self.tracking_url
        if not tracking_url and self.tracking_number:
            tracking_url = DHL_TRACKING_URL.format(tracking_number=self.tracking_number)
        return {
            **self._customer_variables(),
            "order_number": self.order_number,
            "tracking_number": self.tracking_number,
            "carrier": self.carrier,
            "tracking_url": tracking_url,
            "shipping_date": to_german_date(self.shipping_date) if self.shipping_date else None,
            "estimated_delivery": self.estimated_delivery,
        }


class LoyaltyPointsEarnedPayload(CustomerPayload):
    points_earned: int
    current_points_balance: int
    tier_name: str = "Bronze"
    order_number: Optional[str] = None
    order_total: Optional[float] = None
    points_to_next_tier: Optional[int] = None
    next_tier_name: Optional[str] = None

    def _variables(self) -> Dict[str, Any]:
        return {
            **self._customer_variables(),
            "points_earned": self.points_earned,
            "current_points_balance": self.current_points_balance,
            "tier_name": self.tier_name,
            "order_number": self.order_number,
            "order_total": format_euro(self.order_total) if self.order_total is not None else None,
            "points_to_next_tier": self.points_to_next_tier,
            "next_tier_name": self.next_tier_name,
        }


class LoyaltyPointsRedeemedPayload(CustomerPayload):
    points_redeemed: int
    discount_amount: float
    remaining_points_balance: int
    tier_name: str = "Bronze"
    order_number: Optional[str] = None

    def _variables(self) -> Dict[str, Any]:
        return {
            **self._customer_variables(),
            "points_redeemed": self.points_redeemed,
            "discount_amount": format_euro(self.discount_amount),
            "remaining_points_balance": self.remaining_points_balance,
            "tier_name": self.tier_name,
            "order_number": self.order_number,
        }


class LoyaltyTierUpgradePayload(CustomerPayload):
    old_tier_name: str = "Bronze"
    new_tier_name: str
    new_tier_benefits: List[str] = Field(default_factory=lambda: ["Exklusive Vorteile und Rabatte"])
    current_points_balance: int = 0
    points_to_next_tier: Optional[int] = None
    next_tier_name: Optional[str] = None

    def _variables(self) -> Dict[str, Any]:
        return {
            **self._customer_variables(),
            "old_tier_name": self.old_tier_name,
            "new_tier_name": self.new_tier_name,
            "new_tier_benefits": self.new_tier_benefits,
            "current_points_balance": self.current_points_balance,
            "points_to_next_tier": self.points_to_next_tier,
            "next_tier_name": self.next_tier_name,
        }


class LoyaltyPointsExpiringPayload(CustomerPayload):
    expiring_points: int
    expiration_date: str
    current_points_balance: int = 0
    tier_name: str = "Bronze"
    days_until_expiration: int

    def _variables(self) -> Dict[str, Any]:
        return {
            **self._customer_variables(),
            "expiring_points": self.expiring_points,
            "expiration_date": to_german_date(self.expiration_date),
            "current_points_balance": self.current_points_balance,
            "tier_name": self.tier_name,
            "days_until_expiration": self.days_until_expiration,
        }


class LowStockAlertPayload(TriggerPayload):
    product_id: Union[str, int]
    product_name: str
    current_stock: int
    minimum_stock: int
    admin_email: Optional[str] = None
    alert_date: Optional[str] = None

    def recipient(self) -> Optional[str]:
        return self.admin_email

    def _variables(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "current_stock": self.current_stock,
            "minimum_stock": self.minimum_stock,
            "alert_date": self.alert_date or to_german_date(utcnow()),
        }


PAYLOAD_MODELS: Dict[TriggerType, Type[TriggerPayload]] = {
    TriggerType.SHIPPING_NOTIFICATION: ShippingNotificationPayload,
    TriggerType.LOYALTY_POINTS_EARNED: LoyaltyPointsEarnedPayload,
    TriggerType.LOYALTY_POINTS_REDEEMED: LoyaltyPointsRedeemedPayload,
    TriggerType.LOYALTY_TIER_UPGRADE: LoyaltyTierUpgradePayload,
    TriggerType.LOYALTY_POINTS_EXPIRING: LoyaltyPointsExpiringPayload,
    TriggerType.LOW_STOCK_ALERT: LowStockAlertPayload,
}


class TriggerEvent(BaseModel):
    event_type: Optional[TriggerType] = None
    payload: Optional[Dict[str, Any]] = None
    recipient: Optional[str] = None
    cc_admin: bool = False
