from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from pydantic import BaseModel, Field
from typing import Optional, List

CENT = Decimal("0.01")


class InvoiceItem(BaseModel):
    description: str
    quantity: Decimal = Decimal("1")
    unit: str = "SRM"
    unit_price: Decimal

    @property
    def total(self) -> Decimal:
        return (self.quantity * self.unit_price).quantize(CENT, rounding=ROUND_HALF_UP)


class InvoiceCustomer(BaseModel):
    name: str
    street: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    email: Optional[str] = None
    customer_number: Optional[str] = None


class Invoice(BaseModel):
    number: str
    issue_date: date = Field(default_factory=date.today)
    customer: InvoiceCustomer
    items: List[InvoiceItem]
    tax_rate: Decimal = Decimal("19")
    # Gross prices include VAT; net prices get it added
    prices_include_tax: bool = True
    notes: Optional[str] = None

    @property
    def items_total(self) -> Decimal:
        return sum((item.total for item in self.items), Decimal("0")).quantize(CENT)

    @property
    def net_total(self) -> Decimal:
        if self.prices_include_tax:
            return (self.items_total / (1 + self.tax_rate / 100)).quantize(CENT, rounding=ROUND_HALF_UP)
        return self.items_total

    @property
    def tax_amount(self) -> Decimal:
        return (self.gross_total - self.net_total).quantize(CENT)

    @property
    def gross_total(self) -> Decimal:
        if self.prices_include_tax:
            return self.items_total
        return (self.items_total * (1 + self.tax_rate / 100)).quantize(CENT, rounding=ROUND_HALF_UP)
