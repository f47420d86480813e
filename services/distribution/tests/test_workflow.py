import asyncio
import re
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from dms import models
from dms.alerts import AlertConfig, AlertConfigHolder
from dms.crud import SqlAlchemyStore
from dms.errors import ConflictError, NotFoundError, TransientStoreError, ValidationError
from dms.workflow import OrderWorkflow, format_order_number

from conftest import RecordingChannel


class FixedRandom:
    """Yields the given suffixes in order, repeating the last one."""

    def __init__(self, *values):
        self.values = list(values)

    def randint(self, a, b):
        return self.values.pop(0) if len(self.values) > 1 else self.values[0]


def _create(workflow, catalog, quantity=5, **kwargs):
    return asyncio.run(workflow.create_order(catalog.retailer_id, catalog.product_id, quantity, **kwargs))


def test_order_number_format():
    assert format_order_number(2025, 7) == "ORD-2025-0007"
    assert format_order_number(2025, 1234) == "ORD-2025-1234"


def test_low_stock_scenario(workflow, store, catalog, channel, enabled_config):
    result = _create(workflow, catalog, quantity=5, alert_config=enabled_config)

    assert store.get_inventory(catalog.product_id).current_stock == 10
    kinds = sorted({o.kind for o in result.notifications})
    assert kinds == ["low_stock", "purchase_order"]
    assert len(channel.sent) == 4
    assert any("Current Stock: 10 cases" in message for _, message in channel.sent)
    assert result.notification_failures == []


def test_result_is_joined_view(workflow, catalog):
    result = _create(workflow, catalog, quantity=2)
    order = result.order
    assert re.fullmatch(r"ORD-\d{4}-\d{4}", order.order_number)
    assert order.status == "pending"
    assert order.retailer.name == "Supreme Grocers"
    assert order.product.name == "Rice Cakes - Original"
    assert order.total_amount == Decimal("28.00")
    assert order.created_at == order.updated_at


def test_disabled_config_sends_nothing(workflow, store, catalog, channel):
    result = _create(workflow, catalog, quantity=14, alert_config=AlertConfig(enabled=False))
    assert store.get_inventory(catalog.product_id).current_stock == 1
    assert result.notifications == []
    assert channel.sent == []


def test_config_snapshot_defaults_to_holder(store, catalog, channel, enabled_config):
    workflow = OrderWorkflow(store, channel, alert_config=AlertConfigHolder(enabled_config))
    _create(workflow, catalog, quantity=1)
    assert len(channel.sent) == 4


def test_stock_never_goes_negative(workflow, store, catalog):
    _create(workflow, catalog, quantity=40)
    assert store.get_inventory(catalog.product_id).current_stock == 0


def test_first_order_of_month_creates_sales_target(workflow, store, catalog):
    result = _create(workflow, catalog, quantity=5)
    created = result.order.created_at
    target = store.get_sales_target(created.month, created.year)
    assert target.target_amount == Decimal("25000.00")
    assert target.current_amount == Decimal("70.00")

    _create(workflow, catalog, quantity=1)
    target = store.get_sales_target(created.month, created.year)
    assert target.current_amount == Decimal("84.00")


def test_caller_total_is_verified(workflow, store, catalog):
    result = _create(workflow, catalog, quantity=5, total_amount="70.00")
    assert result.order.total_amount == Decimal("70.00")

    with pytest.raises(ValidationError, match="mismatch"):
        _create(workflow, catalog, quantity=5, total_amount="99.00")
    assert len(store.list_orders()) == 1
    assert store.get_inventory(catalog.product_id).current_stock == 10


@pytest.mark.parametrize("field", ["retailer", "product"])
def test_unknown_reference_leaves_state_unchanged(workflow, store, catalog, channel, enabled_config, field):
    retailer_id = "missing" if field == "retailer" else catalog.retailer_id
    product_id = "missing" if field == "product" else catalog.product_id

    with pytest.raises(NotFoundError) as excinfo:
        asyncio.run(workflow.create_order(retailer_id, product_id, 5, alert_config=enabled_config))

    assert excinfo.value.identifier == "missing"
    assert field.capitalize() in str(excinfo.value)
    assert store.list_orders() == []
    assert store.get_inventory(catalog.product_id).current_stock == 15
    assert store.list_inventory()[0].current_stock == 15
    assert channel.sent == []
    assert store.db.query(models.SalesTarget).count() == 0


@pytest.mark.parametrize("quantity", [0, -1, 2**63, 10**27])
def test_invalid_quantity_is_rejected(workflow, store, catalog, quantity):
    with pytest.raises(ValidationError):
        _create(workflow, catalog, quantity=quantity)
    assert store.list_orders() == []
    assert store.get_inventory(catalog.product_id).current_stock == 15


def test_total_too_large_to_store_is_rejected(workflow, store, catalog):
    with pytest.raises(ValidationError):
        _create(workflow, catalog, quantity=10_000_000)
    with pytest.raises(ValidationError):
        _create(workflow, catalog, quantity=1, total_amount="1e30")
    assert store.list_orders() == []
    assert store.db.query(models.SalesTarget).count() == 0


def test_invalid_status_is_rejected(workflow, catalog):
    with pytest.raises(ValidationError):
        _create(workflow, catalog, status="shipped")


def test_order_numbers_are_unique(workflow, store, catalog):
    numbers = {_create(workflow, catalog, quantity=1).order.order_number for _ in range(10)}
    assert len(numbers) == 10
    assert len({o.order_number for o in store.list_orders()}) == 10


def test_order_number_collision_is_retried(store, catalog, channel, holder):
    workflow = OrderWorkflow(store, channel, alert_config=holder, rng=FixedRandom(42, 42, 7))
    first = _create(workflow, catalog, quantity=1)
    second = _create(workflow, catalog, quantity=1)
    assert first.order.order_number.endswith("-0042")
    assert second.order.order_number.endswith("-0007")


def test_order_number_collision_exhausts_retries(store, catalog, channel, holder):
    workflow = OrderWorkflow(store, channel, alert_config=holder, rng=FixedRandom(42),
                             order_number_attempts=3)
    _create(workflow, catalog, quantity=1)
    with pytest.raises(ConflictError):
        _create(workflow, catalog, quantity=1)
    assert len(store.list_orders()) == 1
    assert store.get_inventory(catalog.product_id).current_stock == 14


def test_partial_notification_failure_does_not_fail_order(store, catalog, enabled_config):
    channel = RecordingChannel(failing={"+18685550002"})
    workflow = OrderWorkflow(store, channel, alert_config=AlertConfigHolder(enabled_config))
    result = _create(workflow, catalog, quantity=5)

    assert store.get_order(result.order.id) is not None
    assert len(result.notification_failures) == 2
    for failure in result.notification_failures:
        assert failure.failed_recipients == ["+18685550002"]
        assert failure.delivered_count == 1


def test_channel_errors_are_captured(store, catalog, enabled_config):
    channel = RecordingChannel(raising={"+18685550001", "+18685550002"})
    workflow = OrderWorkflow(store, channel, alert_config=AlertConfigHolder(enabled_config))
    result = _create(workflow, catalog, quantity=1)
    assert not any(o.delivered for o in result.notifications)
    assert store.get_inventory(catalog.product_id).current_stock == 14


def test_decrement_failure_is_reported_after_commit(store, catalog, channel, holder, monkeypatch):
    def unavailable(product_id, amount):
        raise TransientStoreError("Record store unavailable during decrement_inventory",
                                  stage="decrement_inventory")

    monkeypatch.setattr(store, "decrement_inventory", unavailable)
    workflow = OrderWorkflow(store, channel, alert_config=holder)
    with pytest.raises(TransientStoreError) as excinfo:
        _create(workflow, catalog, quantity=1)

    assert excinfo.value.stage == "decrement_inventory"
    assert store.get_order(excinfo.value.order_number) is not None
    assert channel.sent == []


def test_update_status_by_number_then_get_by_id(workflow, store, catalog):
    created = _create(workflow, catalog, quantity=5).order
    workflow.update_order_status(created.order_number, "completed")

    fetched = workflow.get_order(created.id)
    assert fetched.status == "completed"
    assert fetched.updated_at > fetched.created_at
    # no side effects re-run
    assert store.get_inventory(catalog.product_id).current_stock == 10


def test_update_status_unknown_order(workflow):
    with pytest.raises(NotFoundError):
        workflow.update_order_status("ORD-1999-0000", "completed")


def test_update_status_rejects_unknown_status(workflow, catalog):
    created = _create(workflow, catalog, quantity=1).order
    with pytest.raises(ValidationError):
        workflow.update_order_status(created.id, "lost")


def test_concurrent_orders_for_one_product(session_factory, catalog):
    def place(_):
        session = session_factory()
        try:
            workflow = OrderWorkflow(SqlAlchemyStore(session), RecordingChannel(),
                                     alert_config=AlertConfigHolder(AlertConfig()))
            return asyncio.run(workflow.create_order(catalog.retailer_id, catalog.product_id, 3))
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=5) as pool:
        results = list(pool.map(place, range(10)))

    session = session_factory()
    try:
        store = SqlAlchemyStore(session)
        assert store.get_inventory(catalog.product_id).current_stock == 0
        assert len(store.list_orders()) == 10
    finally:
        session.close()
    assert len({r.order.order_number for r in results}) == 10


def test_missing_inventory_row_is_reported_with_order_number(workflow, store, catalog, channel):
    store.db.query(models.Inventory).delete()
    store.db.commit()

    with pytest.raises(NotFoundError) as excinfo:
        _create(workflow, catalog, quantity=1)

    assert excinfo.value.order_number is not None
    assert store.get_order(excinfo.value.order_number) is not None
    assert channel.sent == []


def test_concurrent_decrements_each_apply_once(session_factory, catalog):
    session = session_factory()
    try:
        before = SqlAlchemyStore(session).get_inventory(catalog.product_id).last_updated
    finally:
        session.close()

    def place(_):
        session = session_factory()
        try:
            workflow = OrderWorkflow(SqlAlchemyStore(session), RecordingChannel(),
                                     alert_config=AlertConfigHolder(AlertConfig()))
            return asyncio.run(workflow.create_order(catalog.retailer_id, catalog.product_id, 2))
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=5) as pool:
        list(pool.map(place, range(5)))

    session = session_factory()
    try:
        inventory = SqlAlchemyStore(session).get_inventory(catalog.product_id)
        assert inventory.current_stock == 5
        assert inventory.last_updated > before
    finally:
        session.close()
