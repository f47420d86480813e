"""
Pydantic schemas for request/response validation in the distribution service.

These schemas define the structure of data for API requests and responses,
and the plain data records exchanged with the order workflow.
"""
from datetime import datetime
from typing import Any, Optional, List
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field

from .validators import MAX_AMOUNT, MAX_QUANTITY


class RetailerCreate(BaseModel):
    """Schema for creating a new retailer."""
    name: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    contact_number: Optional[str] = None
    email: Optional[str] = None


class Retailer(RetailerCreate):
    """Schema for retailer responses."""
    id: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProductCreate(BaseModel):
    """Schema for creating a new product."""
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price_per_unit: Decimal = Field(..., ge=0, le=MAX_AMOUNT, decimal_places=2, description="Price per unit")
    units_per_case: int = Field(24, gt=0)
    reorder_threshold: int = Field(20, gt=0)


class Product(ProductCreate):
    """Schema for product responses."""
    id: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Inventory(BaseModel):
    """Schema for an inventory row."""
    id: str
    product_id: str
    current_stock: int
    last_updated: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class InventoryWithProduct(Inventory):
    """Inventory row joined with its product."""
    product: Product


class InventoryUpdate(BaseModel):
    """Schema for an administrative restock."""
    quantity: int = Field(..., ge=0, le=MAX_QUANTITY, description="New on-hand stock")


class OrderCreate(BaseModel):
    """
    Schema for creating a new order.

    quantity and total_amount are passed through untyped and checked by
    validators.validate_quantity and validators.parse_amount inside the
    workflow, so malformed values are answered with 400 rather than 422.
    """
    retailer_id: str
    product_id: str
    quantity: Any
    total_amount: Any = Field(None, description="Optional; verified against quantity x unit price")
    status: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    """Schema for changing an order's status."""
    status: str


class Order(BaseModel):
    """
    Schema for order responses.

    Attributes:
        id (str): Internal identifier
        order_number (str): Human-readable unique number
        retailer_id (str): Ordering retailer
        product_id (str): Ordered product
        quantity (int): Units ordered
        total_amount (Decimal): Order total
        status (str): Order status
        created_at (datetime): When the order was created
        updated_at (datetime): When the order was last changed
    """
    id: str
    order_number: str
    retailer_id: str
    product_id: str
    quantity: int
    total_amount: Decimal
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderWithDetails(Order):
    """Order joined with its retailer and product."""
    retailer: Retailer
    product: Product


class SalesTarget(BaseModel):
    """Schema for a monthly sales target."""
    id: str
    month: int
    year: int
    target_amount: Decimal
    current_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class NotificationOutcome(BaseModel):
    """Delivery result for one alert to one recipient."""
    kind: str
    recipient: str
    delivered: bool
    error: Optional[str] = None


class PartialNotificationFailure(BaseModel):
    """Non-fatal report that an alert could not reach some recipients."""
    kind: str
    failed_recipients: List[str]
    delivered_count: int


class OrderCreated(BaseModel):
    """
    Result of the order workflow.

    The order is always committed when this is returned; notification
    failures are reported here rather than raised.
    """
    order: OrderWithDetails
    notifications: List[NotificationOutcome] = Field(default_factory=list)
    notification_failures: List[PartialNotificationFailure] = Field(default_factory=list)


class DashboardMetrics(BaseModel):
    """Aggregates shown on the distributor dashboard."""
    total_orders: int
    items_in_stock: int
    active_retailers: int
    avg_order_value: int
    low_stock_items: List[InventoryWithProduct]


class AlertConfigUpdate(BaseModel):
    """Schema for replacing the alert configuration."""
    enabled: bool = False
    recipients: List[str] = Field(default_factory=lambda: ["+18685550199"])
    send_po_alerts: bool = True
    send_low_stock_alerts: bool = True
