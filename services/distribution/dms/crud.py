"""
CRUD (Create, Read, Update, Delete) operations for the distribution service.

SqlAlchemyStore implements the interface.RecordStore protocol on top of a
SQLAlchemy session. Every mutating method commits its own transaction so
each workflow stage is durable on its own.
"""
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
import logging

from sqlalchemy import case, select, update
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import ConflictError, DistributionError, NotFoundError, TransientStoreError, ValidationError

# Set up logging
logger = logging.getLogger(__name__)


class SqlAlchemyStore:
    """Record Store backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _stage(self, stage: str):
        """Roll back; rejected values become ValidationError, backend failures TransientStoreError."""
        try:
            yield
        except DistributionError:
            raise
        except DataError as e:
            self.db.rollback()
            logger.error(f"Value rejected by the record store during {stage}: {e}")
            raise ValidationError(f"Value out of range for the record store during {stage}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Record store failure during {stage}: {e}")
            raise TransientStoreError(f"Record store unavailable during {stage}", stage=stage) from e

    # Retailers

    def get_retailer(self, retailer_id: str) -> Optional[models.Retailer]:
        with self._stage("read"):
            return self.db.query(models.Retailer).filter(models.Retailer.id == retailer_id).first()

    def list_retailers(self) -> List[models.Retailer]:
        with self._stage("read"):
            return self.db.query(models.Retailer).order_by(models.Retailer.created_at.desc()).all()

    def create_retailer(self, retailer: schemas.RetailerCreate) -> models.Retailer:
        with self._stage("insert_retailer"):
            db_retailer = models.Retailer(**retailer.model_dump())
            self.db.add(db_retailer)
            self.db.commit()
            self.db.refresh(db_retailer)
            return db_retailer

    # Products

    def get_product(self, product_id: str) -> Optional[models.Product]:
        with self._stage("read"):
            return self.db.query(models.Product).filter(models.Product.id == product_id).first()

    def list_products(self) -> List[models.Product]:
        with self._stage("read"):
            return self.db.query(models.Product).order_by(models.Product.created_at.desc()).all()

    def create_product(self, product: schemas.ProductCreate) -> models.Product:
        """
        Create a product and its inventory row (stock 0) in one transaction.

        Args:
            product: Product data to create

        Returns:
            Created Product object
        """
        with self._stage("insert_product"):
            db_product = models.Product(**product.model_dump())
            self.db.add(db_product)
            self.db.flush()
            self.db.add(models.Inventory(product_id=db_product.id, current_stock=0))
            self.db.commit()
            self.db.refresh(db_product)
            return db_product

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
        """
        Insert a new order row.

        Raises:
            ConflictError: if order_number is already taken
            TransientStoreError: if the store is unavailable
        """
        with self._stage("insert_order"):
            db_order = models.Order(
                order_number=order_number,
                retailer_id=retailer_id,
                product_id=product_id,
                quantity=quantity,
                total_amount=total_amount,
                status=status,
                created_at=created_at,
                updated_at=created_at,
            )
            self.db.add(db_order)
            try:
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                raise ConflictError(f"Order number {order_number} already exists") from e
            self.db.refresh(db_order)
            return db_order

    def get_order(self, identifier: str) -> Optional[models.Order]:
        """
        Retrieve a single order by internal ID or by order number.

        Args:
            identifier: Order ID or order number

        Returns:
            Order object or None if not found
        """
        with self._stage("read"):
            order = self.db.query(models.Order).filter(models.Order.id == identifier).first()
            if order is None:
                order = self.db.query(models.Order).filter(models.Order.order_number == identifier).first()
            return order

    def list_orders(self) -> List[models.Order]:
        with self._stage("read"):
            return self.db.query(models.Order).order_by(models.Order.created_at.desc()).all()

    def update_order_status(self, identifier: str, status: str) -> Optional[models.Order]:
        """
        Set an order's status and refresh its update timestamp.

        The new timestamp is always strictly later than the creation time.

        Returns:
            Updated Order object or None if not found
        """
        db_order = self.get_order(identifier)
        if db_order is None:
            return None
        with self._stage("update_order"):
            now = datetime.utcnow()
            if db_order.created_at is not None and now <= db_order.created_at:
                now = db_order.created_at + timedelta(microseconds=1)
            db_order.status = status
            db_order.updated_at = now
            self.db.commit()
            self.db.refresh(db_order)
            return db_order

    # Inventory

    def decrement_inventory(self, product_id: str, amount: int) -> int:
        """
        Subtract amount from a product's stock in a single UPDATE, floored at zero.

        The new value is read back inside the same transaction, while the
        row is still locked by the update.

        Returns:
            The new on-hand stock

        Raises:
            NotFoundError: if the product has no inventory row
        """
        with self._stage("decrement_inventory"):
            stock = models.Inventory.current_stock
            result = self.db.execute(
                update(models.Inventory)
                .where(models.Inventory.product_id == product_id)
                .values(
                    current_stock=case((stock > amount, stock - amount), else_=0),
                    last_updated=datetime.utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.rollback()
                raise NotFoundError("Inventory for product", product_id)
            new_stock = self.db.execute(
                select(models.Inventory.current_stock).where(models.Inventory.product_id == product_id)
            ).scalar_one()
            self.db.commit()
            return new_stock

    def get_inventory(self, product_id: str) -> Optional[models.Inventory]:
        with self._stage("read"):
            return (
                self.db.query(models.Inventory)
                .filter(models.Inventory.product_id == product_id)
                .populate_existing()
                .first()
            )

    def list_inventory(self) -> List[models.Inventory]:
        with self._stage("read"):
            return (
                self.db.query(models.Inventory)
                .join(models.Product, models.Inventory.product_id == models.Product.id)
                .order_by(models.Product.name)
                .populate_existing()
                .all()
            )

    def set_inventory(self, product_id: str, quantity: int) -> models.Inventory:
        """Overwrite a product's on-hand stock (administrative restock)."""
        with self._stage("set_inventory"):
            result = self.db.execute(
                update(models.Inventory)
                .where(models.Inventory.product_id == product_id)
                .values(current_stock=quantity, last_updated=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.rollback()
                raise NotFoundError("Inventory for product", product_id)
            self.db.commit()
        return self.get_inventory(product_id)

    # Sales targets

    def get_sales_target(self, month: int, year: int) -> Optional[models.SalesTarget]:
        with self._stage("read"):
            return (
                self.db.query(models.SalesTarget)
                .filter(models.SalesTarget.month == month, models.SalesTarget.year == year)
                .populate_existing()
                .first()
            )

    def upsert_sales_target(
        self, month: int, year: int, amount: Decimal, default_target: Decimal
    ) -> models.SalesTarget:
        """
        Add amount to a period's current amount, creating the period if absent.

        The increment is an arithmetic UPDATE; a concurrent first insert for
        the same period is resolved by the unique (month, year) constraint
        and retried as an update.
        """
        with self._stage("sales_target"):
            if not self._increment_sales_target(month, year, amount):
                self.db.add(models.SalesTarget(
                    month=month,
                    year=year,
                    target_amount=default_target,
                    current_amount=amount,
                ))
                try:
                    self.db.commit()
                    logger.info(f"Created sales target for {month}/{year} with target {default_target}")
                except IntegrityError:
                    self.db.rollback()
                    self._increment_sales_target(month, year, amount)
        return self.get_sales_target(month, year)

    def _increment_sales_target(self, month: int, year: int, amount: Decimal) -> bool:
        result = self.db.execute(
            update(models.SalesTarget)
            .where(models.SalesTarget.month == month, models.SalesTarget.year == year)
            .values(current_amount=models.SalesTarget.current_amount + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False
        self.db.commit()
        return True
