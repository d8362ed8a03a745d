from pydantic import BaseModel
from typing import Optional, Union

STOCK_STATUS_LOW = "Niedrig"
STOCK_STATUS_OK = "OK"


class Product(BaseModel):
    id: Union[str, int]
    name: str
    stock_quantity: int = 0
    min_stock_level: Optional[int] = None
    stock_status: Optional[str] = None

    @property
    def monitored(self) -> bool:
        return self.min_stock_level is not None

    @property
    def below_threshold(self) -> bool:
        return self.monitored and self.stock_quantity <= self.min_stock_level


class StockCheckSummary(BaseModel):
    checked: int = 0
    alerts: int = 0
