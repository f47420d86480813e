from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Protocol

from . import models, schemas


class RecordStore(Protocol):
    """
    Record access contract consumed by the order workflow.

    Implementations own durability and atomicity. In particular
    decrement_inventory MUST be a single conditional update in the backing
    store; the workflow never reads stock and writes it back.

    Backend failures (timeouts, lost connections) are raised as
    errors.TransientStoreError. Order-number uniqueness violations are raised
    as errors.ConflictError.
    """

    # Retailers
    def get_retailer(self, retailer_id: str) -> Optional[models.Retailer]:
        ...

    def list_retailers(self) -> List[models.Retailer]:
        ...

    def create_retailer(self, retailer: schemas.RetailerCreate) -> models.Retailer:
        ...

    # Products
    def get_product(self, product_id: str) -> Optional[models.Product]:
        ...

    def list_products(self) -> List[models.Product]:
        ...

    def create_product(self, product: schemas.ProductCreate) -> models.Product:
        """Create a product together with its zero-stock inventory row."""
        ...

    # Orders
    def create_order(
        self,
        order_number: str,
        retailer_id: str,
        product_id: str,
        quantity: int,
        total_amount: Decimal,
        status: str,
        created_at: datetime,
    ) -> models.Order:
        ...

    def get_order(self, identifier: str) -> Optional[models.Order]:
        """Look up by internal id first, then by order number."""
        ...

    def list_orders(self) -> List[models.Order]:
        ...

    def update_order_status(self, identifier: str, status: str) -> Optional[models.Order]:
        ...

    # Inventory
    def decrement_inventory(self, product_id: str, amount: int) -> int:
        """Atomically subtract amount, floored at zero; return the new stock."""
        ...

    def get_inventory(self, product_id: str) -> Optional[models.Inventory]:
        ...

    def list_inventory(self) -> List[models.Inventory]:
        ...

    def set_inventory(self, product_id: str, quantity: int) -> models.Inventory:
        ...

    # Sales targets
    def get_sales_target(self, month: int, year: int) -> Optional[models.SalesTarget]:
        ...

    def upsert_sales_target(
        self, month: int, year: int, amount: Decimal, default_target: Decimal
    ) -> models.SalesTarget:
        """Atomically add amount to the period, creating it with default_target if absent."""
        ...
