"""
SQLAlchemy ORM models for the distribution service.

Defines the database schema for retailers, the product catalogue, per-product
inventory, retailer orders and monthly sales targets.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from .database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Retailer(Base):
    """
    Retailer model representing a store that places orders with the distributor.

    Attributes:
        id (str): Primary key, UUID string
        name (str): Display name
        location (str): Region or town
        contact_number (str): Optional phone number
        email (str): Optional email address
        created_at (datetime): Timestamp when the retailer was created
    """
    __tablename__ = "retailers"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    location = Column(Text, nullable=False)
    contact_number = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Product(Base):
    """
    Product model representing a catalogue item sold by the case.

    Attributes:
        id (str): Primary key, UUID string
        name (str): Product name
        description (str): Optional description
        price_per_unit (Decimal): Unit price with 2 fractional digits
        units_per_case (int): Units packed in one case
        reorder_threshold (int): Stock level at or below which the product is low-stock
        created_at (datetime): Timestamp when the product was created
    """
    __tablename__ = "products"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    price_per_unit = Column(Numeric(10, 2), nullable=False)
    units_per_case = Column(Integer, nullable=False, default=24)
    reorder_threshold = Column(Integer, nullable=False, default=20)
    created_at = Column(DateTime, default=datetime.utcnow)


class Inventory(Base):
    """
    On-hand stock for a single product (one row per product).

    Attributes:
        id (str): Primary key, UUID string
        product_id (str): Foreign key to the product, unique
        current_stock (int): Units on hand, never negative
        last_updated (datetime): Timestamp of the last stock change
    """
    __tablename__ = "inventory"

    id = Column(String, primary_key=True, default=_uuid)
    product_id = Column(String, ForeignKey("products.id"), unique=True, nullable=False, index=True)
    current_stock = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime, default=datetime.utcnow)

    product = relationship("Product", lazy="joined")


class Order(Base):
    """
    Order model representing one retailer purchase of one product.

    Attributes:
        id (str): Primary key, UUID string
        order_number (str): Human-readable unique number, e.g. "ORD-2025-0042"
        retailer_id (str): Foreign key to the ordering retailer
        product_id (str): Foreign key to the ordered product
        quantity (int): Units ordered
        total_amount (Decimal): quantity x unit price at order time
        status (str): One of "pending", "processing", "completed", "cancelled"
        created_at (datetime): Timestamp when the order was created
        updated_at (datetime): Timestamp of the last status change
    """
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=_uuid)
    order_number = Column(String, unique=True, nullable=False, index=True)
    retailer_id = Column(String, ForeignKey("retailers.id"), nullable=False, index=True)
    product_id = Column(String, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    retailer = relationship("Retailer", lazy="joined")
    product = relationship("Product", lazy="joined")


class SalesTarget(Base):
    """
    Revenue accumulation bucket for one calendar month.

    Attributes:
        id (str): Primary key, UUID string
        month (int): 1-12
        year (int): Four-digit year
        target_amount (Decimal): Revenue goal for the period
        current_amount (Decimal): Revenue accumulated from orders so far
    """
    __tablename__ = "sales_targets"
    __table_args__ = (UniqueConstraint("month", "year", name="uq_sales_targets_period"),)

    id = Column(String, primary_key=True, default=_uuid)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    target_amount = Column(Numeric(10, 2), nullable=False, default=25000)
    current_amount = Column(Numeric(10, 2), nullable=False, default=0)
