"""
Distribution Service API

This module implements a FastAPI-based service for a distributor that sells
cased products to retailers. It exposes the order workflow (order creation
with inventory decrement, sales-target accumulation and WhatsApp alerts),
order status updates, dashboard metrics and alert configuration, plus the
catalogue and inventory records those operations work on.

Endpoints:
    GET /healthz: Health check endpoint for orchestration systems
    GET, POST /retailers: List or create retailers
    GET, POST /products: List or create products
    GET /orders: List orders joined with retailer and product
    GET /orders/{identifier}: Get an order by ID or order number
    POST /orders: Create an order
    PATCH /orders/{identifier}/status: Update an order's status
    GET /inventory: List inventory
    PATCH /inventory/{product_id}: Set a product's stock
    GET /sales-targets/{month}/{year}: Get a monthly sales target
    GET /dashboard/metrics: Dashboard aggregates
    GET, PUT /alerts/config: Read or replace the alert configuration

Attributes:
    app (FastAPI): The FastAPI application instance configured with the title "distribution-service"
"""
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Depends, Path, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import alerts, auth, config, metrics, models, schemas
from .alerts import AlertConfig, AlertConfigHolder
from .crud import SqlAlchemyStore
from .database import engine, get_db
from .errors import DistributionError, NotFoundError
from .notifications import NotificationChannel, WhatsAppChannel
from .workflow import OrderWorkflow

logging.basicConfig(level=config.LOG_LEVEL.upper())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables
    models.Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="distribution-service", lifespan=lifespan)

_channel: Optional[NotificationChannel] = None


@app.exception_handler(DistributionError)
async def distribution_error_handler(request: Request, exc: DistributionError):
    """Translate domain errors into JSON responses with the error's status code."""
    content = {"detail": exc.message}
    for attr in ("stage", "order_number"):
        value = getattr(exc, attr, None)
        if value is not None:
            content[attr] = value
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=content)


def get_store(db: Session = Depends(get_db)) -> SqlAlchemyStore:
    return SqlAlchemyStore(db)


def get_channel() -> NotificationChannel:
    """Process-wide notification channel, created on first use."""
    global _channel
    if _channel is None:
        _channel = WhatsAppChannel()
    return _channel


def get_alert_config_holder() -> AlertConfigHolder:
    return alerts.alert_config_holder


def get_workflow(
    store: SqlAlchemyStore = Depends(get_store),
    channel: NotificationChannel = Depends(get_channel),
    holder: AlertConfigHolder = Depends(get_alert_config_holder),
) -> OrderWorkflow:
    return OrderWorkflow(store, channel, alert_config=holder)


@app.get("/healthz", response_model=dict)
def health():
    """
    Health check endpoint for the distribution service.

    Returns:
        dict: {"status": "healthy"} when the service is operational.
    """
    return {"status": "healthy"}


# Retailers

@app.get("/retailers", response_model=List[schemas.Retailer])
def list_retailers(
    store: SqlAlchemyStore = Depends(get_store),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    return store.list_retailers()


@app.post("/retailers", response_model=schemas.Retailer, status_code=status.HTTP_201_CREATED)
def create_retailer(
    retailer: schemas.RetailerCreate,
    store: SqlAlchemyStore = Depends(get_store),
    current_user: auth.CurrentUser = Depends(auth.require_admin)
):
    return store.create_retailer(retailer)


# Products

@app.get("/products", response_model=List[schemas.Product])
def list_products(
    store: SqlAlchemyStore = Depends(get_store),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    return store.list_products()


@app.post("/products", response_model=schemas.Product, status_code=status.HTTP_201_CREATED)
def create_product(
    product: schemas.ProductCreate,
    store: SqlAlchemyStore = Depends(get_store),
    current_user: auth.CurrentUser = Depends(auth.require_admin)
):
    """Create a product; its inventory row starts at zero stock."""
    return store.create_product(product)


# Orders

@app.get("/orders", response_model=List[schemas.OrderWithDetails])
def list_orders(
    workflow: OrderWorkflow = Depends(get_workflow),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """List all orders, newest first."""
    return workflow.list_orders()


@app.get("/orders/{identifier}", response_model=schemas.OrderWithDetails)
def get_order(
    identifier: str,
    workflow: OrderWorkflow = Depends(get_workflow),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Get a single order by internal ID or order number.

    Raises:
        NotFoundError: 404 if order not found
    """
    return workflow.get_order(identifier)


@app.post("/orders", response_model=schemas.OrderCreated, status_code=status.HTTP_201_CREATED)
async def create_order(
    order: schemas.OrderCreate,
    workflow: OrderWorkflow = Depends(get_workflow),
    holder: AlertConfigHolder = Depends(get_alert_config_holder),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Create a new order.

    This endpoint:
    - Validates the retailer and product exist
    - Verifies (or derives) the total from quantity x unit price
    - Decrements inventory, floored at zero
    - Adds the total to this month's sales target
    - Sends purchase-order and low-stock alerts as configured

    Returns:
        The joined order plus per-recipient notification outcomes. Failed
        notifications are reported in notification_failures; they never fail
        the request.

    Raises:
        ValidationError: 400 on malformed input
        NotFoundError: 404 if the retailer or product does not exist
        ConflictError: 409 if no unique order number could be allocated
        TransientStoreError: 503 if the database is unavailable
    """
    return await workflow.create_order(
        retailer_id=order.retailer_id,
        product_id=order.product_id,
        quantity=order.quantity,
        total_amount=order.total_amount,
        status=order.status,
        alert_config=holder.get(),
    )


@app.patch("/orders/{identifier}/status", response_model=schemas.OrderWithDetails)
def update_order_status(
    identifier: str,
    update: schemas.OrderStatusUpdate,
    workflow: OrderWorkflow = Depends(get_workflow),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Update an order's status by internal ID or order number.

    Raises:
        ValidationError: 400 on unknown status
        NotFoundError: 404 if order not found
    """
    return workflow.update_order_status(identifier, update.status)


# Inventory

@app.get("/inventory", response_model=List[schemas.InventoryWithProduct])
def list_inventory(
    store: SqlAlchemyStore = Depends(get_store),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    return store.list_inventory()


@app.patch("/inventory/{product_id}", response_model=schemas.InventoryWithProduct)
def set_inventory(
    product_id: str,
    update: schemas.InventoryUpdate,
    store: SqlAlchemyStore = Depends(get_store),
    current_user: auth.CurrentUser = Depends(auth.require_admin)
):
    """Overwrite a product's on-hand stock (restock or stock count)."""
    return store.set_inventory(product_id, update.quantity)


# Sales targets

@app.get("/sales-targets/{month}/{year}", response_model=schemas.SalesTarget)
def get_sales_target(
    month: int = Path(..., ge=1, le=12),
    year: int = Path(..., ge=2000),
    store: SqlAlchemyStore = Depends(get_store),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    target = store.get_sales_target(month, year)
    if target is None:
        raise NotFoundError("Sales target", f"{month}/{year}")
    return target


# Dashboard

@app.get("/dashboard/metrics", response_model=schemas.DashboardMetrics)
def get_dashboard_metrics(
    store: SqlAlchemyStore = Depends(get_store),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    return metrics.get_dashboard_metrics(store)


# Alert configuration

@app.get("/alerts/config", response_model=AlertConfig)
def get_alert_config(
    holder: AlertConfigHolder = Depends(get_alert_config_holder),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    return holder.get()


@app.put("/alerts/config", response_model=AlertConfig)
def update_alert_config(
    update: schemas.AlertConfigUpdate,
    holder: AlertConfigHolder = Depends(get_alert_config_holder),
    current_user: auth.CurrentUser = Depends(auth.require_admin)
):
    """
    Replace the alert configuration wholesale.

    Recipients are trimmed and blank entries dropped; duplicates are rejected
    with 400.
    """
    return holder.replace(alerts.build_config(**update.model_dump()))
