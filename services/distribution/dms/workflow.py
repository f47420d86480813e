"""
Order workflow engine.

create_order runs the whole order-placement sequence:

    validate -> insert order -> decrement inventory -> accumulate sales target
             -> evaluate alert policy -> fan out notifications

Validation and lookups finish before anything is written. Each later stage
commits on its own; a store failure in a later stage is raised with the
number of the already-committed order attached, and notification failures
are returned on the result instead of raised.
"""
import logging
import random
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from . import config, notifications, schemas, validators
from .alerts import AlertConfig, AlertConfigHolder, alert_config_holder, evaluate_order_alerts
from .errors import ConflictError, DistributionError, NotFoundError
from .interface import RecordStore
from .notifications import NotificationChannel

logger = logging.getLogger(__name__)


def format_order_number(year: int, sequence: int) -> str:
    """ORD-<year>-<4-digit sequence>"""
    return f"ORD-{year}-{sequence:04d}"


class OrderWorkflow:
    """
    Orchestrates order creation and status changes against a Record Store.

    Args:
        store: Record Store implementation
        channel: Notification channel used for alerts
        alert_config: Holder of the current alert configuration
        default_sales_target: Target for sales periods created on first order
        order_number_attempts: Retries allowed on order-number collision
        clock: Returns the current UTC time (naive)
        rng: Source of order-number suffixes
    """

    def __init__(
        self,
        store: RecordStore,
        channel: NotificationChannel,
        alert_config: AlertConfigHolder = alert_config_holder,
        default_sales_target: Decimal = config.DEFAULT_SALES_TARGET,
        order_number_attempts: int = config.ORDER_NUMBER_ATTEMPTS,
        clock: Callable[[], datetime] = datetime.utcnow,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.channel = channel
        self.alert_config = alert_config
        self.default_sales_target = default_sales_target
        self.order_number_attempts = max(1, order_number_attempts)
        self.clock = clock
        self.rng = rng or random.SystemRandom()

    async def create_order(
        self,
        retailer_id: str,
        product_id: str,
        quantity: int,
        total_amount=None,
        status: Optional[str] = None,
        alert_config: Optional[AlertConfig] = None,
    ) -> schemas.OrderCreated:
        """
        Create an order and apply its side effects.

        Args:
            retailer_id: Ordering retailer
            product_id: Ordered product
            quantity: Units ordered, positive
            total_amount: Optional caller total; verified against quantity x unit price
            status: Optional initial status, defaults to "pending"
            alert_config: Configuration snapshot; taken from the holder when omitted

        Returns:
            OrderCreated with the joined order view and per-recipient notification outcomes

        Raises:
            ValidationError: malformed input, nothing written
            NotFoundError: unknown retailer or product, nothing written; or the
                product has no inventory row, raised with .order_number set
            ConflictError: no unique order number could be allocated, nothing written
            TransientStoreError: store failure; .stage names the failing step and
                .order_number is set when the order row was already committed
        """
        cfg = alert_config if alert_config is not None else self.alert_config.get()

        quantity = validators.validate_quantity(quantity)
        status = validators.validate_status(status)
        claimed_total = validators.parse_amount(total_amount) if total_amount is not None else None

        retailer = self.store.get_retailer(retailer_id)
        if retailer is None:
            raise NotFoundError("Retailer", retailer_id)
        product = self.store.get_product(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        total = validators.validate_order_total(quantity, product.price_per_unit, claimed_total)

        created_at = self.clock()
        db_order = self._insert_order(retailer_id, product_id, quantity, total, status, created_at)
        order_number = db_order.order_number
        logger.info(
            f"Created order {order_number}: retailer '{retailer.name}', "
            f"product '{product.name}', quantity {quantity}, total {total}"
        )
        # Build the view now; later stages commit and expire the ORM instance
        view = schemas.OrderWithDetails.model_validate(db_order)

        try:
            new_stock = self.store.decrement_inventory(product_id, quantity)
        except DistributionError as e:
            e.order_number = order_number
            logger.error(f"Order {order_number} committed but inventory decrement failed")
            raise
        logger.info(f"Inventory for '{product.name}' decremented by {quantity}, now {new_stock}")

        try:
            target = self.store.upsert_sales_target(
                created_at.month, created_at.year, total, self.default_sales_target
            )
        except DistributionError as e:
            e.order_number = order_number
            logger.error(f"Order {order_number} committed but sales target update failed")
            raise
        logger.info(
            f"Sales target {created_at.month}/{created_at.year} now "
            f"{target.current_amount} of {target.target_amount}"
        )

        alerts = evaluate_order_alerts(cfg, view, new_stock)
        outcomes = await notifications.dispatch(self.channel, alerts, cfg.recipients)
        failures = notifications.summarize_failures(outcomes)
        for failure in failures:
            logger.warning(
                f"Order {order_number}: {failure.kind} alert not delivered to "
                f"{', '.join(failure.failed_recipients)}"
            )
        return schemas.OrderCreated(order=view, notifications=outcomes, notification_failures=failures)

    def _insert_order(self, retailer_id: str, product_id: str, quantity: int,
                      total: Decimal, status: str, created_at: datetime):
        for attempt in range(1, self.order_number_attempts + 1):
            order_number = format_order_number(created_at.year, self.rng.randint(0, 9999))
            try:
                return self.store.create_order(
                    order_number=order_number,
                    retailer_id=retailer_id,
                    product_id=product_id,
                    quantity=quantity,
                    total_amount=total,
                    status=status,
                    created_at=created_at,
                )
            except ConflictError:
                logger.warning(
                    f"Order number {order_number} already taken "
                    f"(attempt {attempt}/{self.order_number_attempts})"
                )
        raise ConflictError(
            f"Could not allocate a unique order number after {self.order_number_attempts} attempts"
        )

    def update_order_status(self, identifier: str, status: str) -> schemas.OrderWithDetails:
        """
        Change an order's status, looked up by internal ID or order number.

        No inventory, sales or alert side effects are re-run.

        Raises:
            ValidationError: unknown status
            NotFoundError: no order matches identifier
        """
        status = validators.validate_status(status)
        db_order = self.store.update_order_status(identifier, status)
        if db_order is None:
            raise NotFoundError("Order", identifier)
        logger.info(f"Order {db_order.order_number} status set to '{status}'")
        return schemas.OrderWithDetails.model_validate(db_order)

    def get_order(self, identifier: str) -> schemas.OrderWithDetails:
        db_order = self.store.get_order(identifier)
        if db_order is None:
            raise NotFoundError("Order", identifier)
        return schemas.OrderWithDetails.model_validate(db_order)

    def list_orders(self) -> List[schemas.OrderWithDetails]:
        return [schemas.OrderWithDetails.model_validate(o) for o in self.store.list_orders()]
