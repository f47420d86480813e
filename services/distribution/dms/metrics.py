"""
Dashboard metrics aggregation.

Metrics are computed on every call from one read of orders and one read of
inventory; nothing is stored. The two reads are issued back to back on the
same session, which is best-effort consistent: an order committed between
them can be counted without its inventory decrement.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from . import schemas
from .interface import RecordStore


def compute_dashboard_metrics(orders: Iterable, inventory: Iterable) -> schemas.DashboardMetrics:
    """
    Aggregate dashboard figures from a snapshot of orders and inventory.

    Args:
        orders: Order records (need retailer_id and total_amount)
        inventory: Inventory records joined with their product

    Returns:
        DashboardMetrics; avg_order_value is the mean order total rounded to
        the nearest integer, 0 when there are no orders
    """
    orders = list(orders)
    inventory = list(inventory)

    total_orders = len(orders)
    items_in_stock = sum(inv.current_stock for inv in inventory)
    active_retailers = len({order.retailer_id for order in orders})
    total_value = sum((Decimal(order.total_amount) for order in orders), Decimal(0))
    avg_order_value = int((total_value / total_orders).quantize(Decimal(1), rounding=ROUND_HALF_UP)) if total_orders else 0
    low_stock_items = [
        schemas.InventoryWithProduct.model_validate(inv)
        for inv in inventory
        if inv.current_stock <= inv.product.reorder_threshold
    ]
    return schemas.DashboardMetrics(
        total_orders=total_orders,
        items_in_stock=items_in_stock,
        active_retailers=active_retailers,
        avg_order_value=avg_order_value,
        low_stock_items=low_stock_items,
    )


def get_dashboard_metrics(store: RecordStore) -> schemas.DashboardMetrics:
    return compute_dashboard_metrics(store.list_orders(), store.list_inventory())
