from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from autoservice.db import unit_of_work
from autoservice.errors import (
    ActivityLineNotFound,
    InsufficientStock,
    InvalidQuantity,
    OrderNotFound,
    ProductApplicationNotFound,
)
from autoservice.models import Order, OrderDetail, ProductApplication, Stock
from autoservice.stock import ApplicationKey, apply_product, update_product_application

from factories import add_line, build_world, make_staff, open_order


def _stock_count(db, world) -> int:
    return db.get(Stock, (world.filter_id, world.main_dealership_id), populate_existing=True).product_count


def _order_with_line(db, world) -> Order:
    order = open_order(db, world)
    add_line(db, order.id, world.oil_service_id, 2, 30, 1)
    db.commit()
    return order


def test_apply_product_decrements_stock(db, world) -> None:
    order = _order_with_line(db, world)

    application = apply_product(db, order.id, 2, world.oil_service_id, world.filter_id, world.mechanic_id, 3)
    db.commit()

    assert _stock_count(db, world) == 7
    assert application.application_count == 3
    assert application.product_cost == Decimal("37.50")


def test_insufficient_stock_leaves_count_unchanged(db, world) -> None:
    order = _order_with_line(db, world)

    with pytest.raises(InsufficientStock) as excinfo:
        apply_product(db, order.id, 2, world.oil_service_id, world.filter_id, world.mechanic_id, 11)
    db.rollback()

    assert excinfo.value.requested == 11
    assert excinfo.value.available == 10
    assert excinfo.value.dealership_id == world.main_dealership_id
    assert _stock_count(db, world) == 10
    assert db.query(ProductApplication).count() == 0


def test_stock_may_fall_below_min_capacity(db, world) -> None:
    order = _order_with_line(db, world)

    apply_product(db, order.id, 2, world.oil_service_id, world.filter_id, world.mechanic_id, 9)
    db.commit()

    stock = db.get(Stock, (world.filter_id, world.main_dealership_id))
    assert stock.product_count == 1
    assert stock.product_count < stock.min_capacity


def test_missing_stock_row_counts_as_empty(db, world) -> None:
    on_loan = make_staff(
        db,
        "V-2000002",
        world.analyst_role_id,
        world.main_dealership_id,
        helped_dealership_id=world.branch_dealership_id,
    )
    order = open_order(db, world, analyst_id=on_loan.id)
    add_line(db, order.id, world.oil_service_id, 2, 30, 1)
    db.commit()

    with pytest.raises(InsufficientStock) as excinfo:
        apply_product(db, order.id, 2, world.oil_service_id, world.filter_id, world.mechanic_id, 1)
    assert excinfo.value.available == 0
    assert excinfo.value.dealership_id == world.branch_dealership_id


def test_apply_product_preconditions(db, world) -> None:
    order = _order_with_line(db, world)

    with pytest.raises(InvalidQuantity):
        apply_product(db, order.id, 2, world.oil_service_id, world.filter_id, world.mechanic_id, 0)
    with pytest.raises(OrderNotFound):
        apply_product(db, 404, 2, world.oil_service_id, world.filter_id, world.mechanic_id, 1)
    with pytest.raises(ActivityLineNotFound):
        apply_product(db, order.id, 1, world.oil_service_id, world.filter_id, world.mechanic_id, 1)
    assert _stock_count(db, world) == 10


def test_update_application_moves_only_the_difference(db, world) -> None:
    order = _order_with_line(db, world)
    apply_product(db, order.id, 2, world.oil_service_id, world.filter_id, world.mechanic_id, 3)
    db.commit()
    key = ApplicationKey(order.id, 2, world.oil_service_id, world.filter_id, world.mechanic_id)

    update_product_application(db, key, 5)
    db.commit()
    assert _stock_count(db, world) == 5

    application = update_product_application(db, key, 1)
    db.commit()
    assert _stock_count(db, world) == 9
    assert application.product_cost == Decimal("12.50")


def test_update_application_respects_availability(db, world) -> None:
    order = _order_with_line(db, world)
    apply_product(db, order.id, 2, world.oil_service_id, world.filter_id, world.mechanic_id, 3)
    db.commit()
    key = ApplicationKey(order.id, 2, world.oil_service_id, world.filter_id, world.mechanic_id)

    with pytest.raises(InsufficientStock) as excinfo:
        update_product_application(db, key, 11)
    db.rollback()

    assert excinfo.value.requested == 8
    assert _stock_count(db, world) == 7


def test_update_unknown_application(db, world) -> None:
    key = ApplicationKey(1, 2, world.oil_service_id, world.filter_id, world.mechanic_id)
    with pytest.raises(ProductApplicationNotFound):
        update_product_application(db, key, 2)


def test_order_with_applications_cannot_be_deleted(db, world) -> None:
    order = _order_with_line(db, world)
    apply_product(db, order.id, 2, world.oil_service_id, world.filter_id, world.mechanic_id, 4)
    db.commit()

    db.delete(db.get(Order, order.id))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()

    assert db.get(Order, order.id) is not None
    assert db.query(ProductApplication).count() == 1
    assert _stock_count(db, world) == 6


def test_order_without_applications_deletes_with_its_lines(db, world) -> None:
    order = _order_with_line(db, world)

    db.delete(db.get(Order, order.id))
    db.commit()

    assert db.query(OrderDetail).count() == 0
    assert _stock_count(db, world) == 10


def test_stale_read_cannot_overdraw(file_session_factory) -> None:
    with file_session_factory() as setup:
        world = build_world(setup)
        order = _order_with_line(setup, world)
        order_id = order.id

    first = file_session_factory()
    second = file_session_factory()
    try:
        assert _stock_count(first, world) == 10
        assert _stock_count(second, world) == 10

        with unit_of_work(first):
            apply_product(first, order_id, 2, world.oil_service_id, world.filter_id, world.mechanic_id, 7)

        with pytest.raises(InsufficientStock) as excinfo:
            with unit_of_work(second):
                apply_product(second, order_id, 2, world.oil_service_id, world.filter_id, world.mechanic_id, 7)
        assert excinfo.value.available == 3
        assert _stock_count(second, world) == 3
    finally:
        first.close()
        second.close()


def test_concurrent_applications_never_overdraw(file_session_factory) -> None:
    with file_session_factory() as setup:
        world = build_world(setup)
        order_id = _order_with_line(setup, world).id
        employees = [
            make_staff(setup, f"E-40000{n:02d}", world.mechanic_role_id, world.main_dealership_id).id
            for n in range(6)
        ]
        setup.commit()

    def apply(employee_id: int) -> int:
        with file_session_factory() as db:
            try:
                with unit_of_work(db):
                    apply_product(db, order_id, 2, world.oil_service_id, world.filter_id, employee_id, 3)
            except InsufficientStock:
                return 0
            return 3

    with ThreadPoolExecutor(max_workers=6) as pool:
        taken = list(pool.map(apply, employees))

    with file_session_factory() as check:
        remaining = _stock_count(check, world)
        recorded = check.query(ProductApplication).count()
    assert sum(taken) == 9
    assert remaining == 10 - sum(taken)
    assert recorded == taken.count(3)


def test_stale_application_read_cannot_lose_stock(file_session_factory) -> None:
    with file_session_factory() as setup:
        world = build_world(setup)
        order_id = _order_with_line(setup, world).id
        apply_product(setup, order_id, 2, world.oil_service_id, world.filter_id, world.mechanic_id, 3)
        setup.commit()
    key = ApplicationKey(order_id, 2, world.oil_service_id, world.filter_id, world.mechanic_id)

    first = file_session_factory()
    second = file_session_factory()
    try:
        assert first.get(ProductApplication, key.identity).application_count == 3

        with unit_of_work(second):
            update_product_application(second, key, 5)

        with unit_of_work(first):
            application = update_product_application(first, key, 4)

        assert application.application_count == 4
        assert _stock_count(first, world) == 6
    finally:
        first.close()
        second.close()

    with file_session_factory() as check:
        assert check.get(ProductApplication, key.identity).application_count == 4
        assert _stock_count(check, world) == 6
