import asyncio
import logging
from typing import List, Optional, Union

from pydantic import ValidationError

from api_clients.base_client import BaseClient
from models.product import Product

logger = logging.getLogger("storefront_notifications")

PRODUCT_FIELDS = "id,name,stock_quantity,min_stock_level,stock_status"


class ProductClient(BaseClient):
    TABLE = "products"

    def get(self, product_id: Union[str, int]) -> Optional[Product]:
        rows = self._get(self.TABLE, params={"id": f"eq.{product_id}", "select": PRODUCT_FIELDS})
        if not rows:
            return None
        try:
            return Product(**rows[0])
        except ValidationError as e:
            logger.error(f"Invalid product row {product_id}: {e}")
            return None

    def list_monitored(self) -> List[Product]:
        rows = self._get(self.TABLE, params={"min_stock_level": "not.is.null", "select": PRODUCT_FIELDS}) or []
        products = []
        for row in rows:
            try:
                products.append(Product(**row))
            except ValidationError as e:
                logger.error(f"Skipping invalid product row {row.get('id')}: {e}")
        return products

    def update_stock_status(self, product_id: Union[str, int], status: str) -> bool:
        return self._patch(self.TABLE, params={"id": f"eq.{product_id}"}, json={"stock_status": status})

    async def fetch(self, product_id: Union[str, int]) -> Optional[Product]:
        return await asyncio.to_thread(self.get, product_id)

    async def fetch_monitored(self) -> List[Product]:
        return await asyncio.to_thread(self.list_monitored)

    async def set_stock_status(self, product_id: Union[str, int], status: str) -> bool:
        return await asyncio.to_thread(self.update_stock_status, product_id, status)
