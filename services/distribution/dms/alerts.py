"""
Alert policy for the order workflow.

AlertConfig is an immutable snapshot; AlertConfigHolder owns the single
process-wide instance and replaces it wholesale under a lock, so an order in
flight always sees one consistent configuration. The decision functions are
pure and take the snapshot explicitly.
"""
import logging
import threading
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from . import config
from .errors import ValidationError

logger = logging.getLogger(__name__)


class AlertKind(str, Enum):
    PURCHASE_ORDER = "purchase_order"
    LOW_STOCK = "low_stock"


class AlertConfig(BaseModel):
    """
    Notification settings.

    Recipients are trimmed, blank entries are dropped, and duplicates are
    rejected. Order is preserved.
    """
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    recipients: Tuple[str, ...] = ("+18685550199",)
    send_po_alerts: bool = True
    send_low_stock_alerts: bool = True

    @field_validator("recipients")
    @classmethod
    def _unique_recipients(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        cleaned = [r.strip() for r in value if r.strip()]
        seen = set()
        for recipient in cleaned:
            if recipient in seen:
                raise ValueError(f"Duplicate recipient '{recipient}'")
            seen.add(recipient)
        return tuple(cleaned)


class Alert(BaseModel):
    """A triggered notification: what kind, and the message body."""
    kind: AlertKind
    message: str


def build_config(**fields) -> AlertConfig:
    """Construct an AlertConfig, reporting bad input as a domain ValidationError."""
    try:
        return AlertConfig(**fields)
    except PydanticValidationError as e:
        messages = "; ".join(err["msg"] for err in e.errors())
        raise ValidationError(f"Invalid alert configuration: {messages}") from e


def default_config() -> AlertConfig:
    """Initial configuration, taken from the environment."""
    return build_config(
        enabled=config.WHATSAPP_ENABLED,
        recipients=config.WHATSAPP_RECIPIENTS,
        send_po_alerts=config.WHATSAPP_PO_ALERTS,
        send_low_stock_alerts=config.WHATSAPP_LOW_STOCK_ALERTS,
    )


class AlertConfigHolder:
    """Lock-guarded owner of the current AlertConfig."""

    def __init__(self, initial: Optional[AlertConfig] = None):
        self._lock = threading.Lock()
        self._config = initial if initial is not None else default_config()

    def get(self) -> AlertConfig:
        with self._lock:
            return self._config

    def replace(self, new_config: AlertConfig) -> AlertConfig:
        with self._lock:
            self._config = new_config
        logger.info(
            f"Alert configuration replaced: enabled={new_config.enabled}, "
            f"recipients={len(new_config.recipients)}, po={new_config.send_po_alerts}, "
            f"low_stock={new_config.send_low_stock_alerts}"
        )
        return new_config


# Process-wide holder used by the API layer
alert_config_holder = AlertConfigHolder()


def should_send_po_alert(cfg: AlertConfig) -> bool:
    return cfg.enabled and cfg.send_po_alerts


def should_send_low_stock_alert(cfg: AlertConfig, current_stock: int, reorder_threshold: int) -> bool:
    return cfg.enabled and cfg.send_low_stock_alerts and current_stock <= reorder_threshold


def format_po_message(order_number: str, retailer_name: str, product_name: str,
                      quantity: int, total_amount: Decimal) -> str:
    return (
        "📋 NEW PURCHASE ORDER\n"
        "\n"
        f"Order #: {order_number}\n"
        f"Retailer: {retailer_name}\n"
        f"Product: {product_name}\n"
        f"Quantity: {quantity} cases\n"
        f"Total: ${total_amount} {config.CURRENCY}\n"
        "\n"
        "✅ Order received and processing.\n"
        "\n"
        f"{config.ALERT_SIGNATURE}"
    )


def format_low_stock_message(product_name: str, current_stock: int, reorder_threshold: int) -> str:
    return (
        "🚨 LOW STOCK ALERT 🚨\n"
        "\n"
        f"Product: {product_name}\n"
        f"Current Stock: {current_stock} cases\n"
        f"Reorder Level: {reorder_threshold} cases\n"
        "\n"
        "⚠️ Immediate reorder required!\n"
        "\n"
        "Please arrange stock replenishment ASAP.\n"
        "\n"
        f"{config.ALERT_SIGNATURE}"
    )


def evaluate_order_alerts(cfg: AlertConfig, order, current_stock: int) -> List[Alert]:
    """
    Decide which alerts a newly created order triggers.

    Args:
        cfg: Configuration snapshot taken when the order started
        order: Joined order view (schemas.OrderWithDetails)
        current_stock: Product stock after this order's decrement

    Returns:
        Zero, one or two alerts; the two checks are independent
    """
    alerts = []
    if should_send_po_alert(cfg):
        alerts.append(Alert(
            kind=AlertKind.PURCHASE_ORDER,
            message=format_po_message(
                order.order_number,
                order.retailer.name,
                order.product.name,
                order.quantity,
                order.total_amount,
            ),
        ))
    threshold = order.product.reorder_threshold
    if should_send_low_stock_alert(cfg, current_stock, threshold):
        alerts.append(Alert(
            kind=AlertKind.LOW_STOCK,
            message=format_low_stock_message(order.product.name, current_stock, threshold),
        ))
    logger.info(
        f"Alert decision for {order.order_number}: "
        f"{[a.kind.value for a in alerts] or 'none'} (stock {current_stock}, threshold {threshold})"
    )
    return alerts
