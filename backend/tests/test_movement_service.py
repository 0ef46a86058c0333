from datetime import datetime

import pytest

from stockledger.errors import (
    InsufficientStock,
    InvalidLocationPair,
    InvalidPaymentAmount,
    NotFound,
    SeriesExhaustedOrMisconfigured,
    UnknownSku,
    ValidationError,
)
from stockledger.extensions import db
from stockledger.models import DocumentSeries, Location, Movement
from stockledger.services import movement_service, return_service
from stockledger.services.stock_service import get_balance


def test_purchase_adds_stock_without_reference(warehouse, stock):
    movement = stock({"X-1": 10, "Y-1": 4})

    assert movement.type == "purchase"
    assert movement.reference is None
    assert movement.payment_status is None
    assert get_balance("X-1", warehouse.id) == 10
    assert get_balance("Y-1", warehouse.id) == 4


def test_purchase_line_captures_catalog_cost(warehouse, stock):
    movement = stock({"X-1": 1})
    assert movement.lines[0].unit_cost_cents == 500
    assert movement.lines[0].unit_price_cents is None
    assert movement.lines[0].line_total_cents is None


def test_b2c_sale_allocates_reference_and_defaults_to_paid(warehouse, stock, series):
    stock({"X-1": 10})

    sale = movement_service.record_movement(
        "b2c_sale", [{"sku": "X-1", "quantity": 2}], from_location_id=warehouse.id,
    )

    assert sale.channel == "B2C"
    assert sale.reference == "B2C-000001"
    assert sale.series_code == "B2C"
    assert sale.series_number == 1
    assert sale.lines[0].unit_price_cents == 1000
    assert sale.total_cents == 2000
    assert sale.payment_status == "paid"
    assert sale.paid_amount_cents == 2000
    assert get_balance("X-1", warehouse.id) == 8


def test_b2b_sale_defaults_to_pending(warehouse, stock, series):
    stock({"X-1": 10})

    sale = movement_service.record_movement(
        "b2b_sale", [{"sku": "X-1", "quantity": 1}], from_location_id=warehouse.id,
    )

    assert sale.reference == "B2B-000001"
    assert sale.lines[0].unit_price_cents == 800
    assert sale.payment_status == "pending"
    assert sale.paid_amount_cents == 0


def test_consecutive_sales_get_increasing_numbers(warehouse, stock, series):
    stock({"X-1": 10})
    refs = [
        movement_service.record_movement(
            "b2c_sale", [{"sku": "X-1", "quantity": 1}], from_location_id=warehouse.id,
        ).reference
        for _ in range(3)
    ]
    assert refs == ["B2C-000001", "B2C-000002", "B2C-000003"]


def test_explicit_reference_skips_series(warehouse, stock, series):
    stock({"X-1": 10})

    sale = movement_service.record_movement(
        "b2c_sale", [{"sku": "X-1", "quantity": 1}],
        from_location_id=warehouse.id, reference="  TICKET-77 ",
    )

    assert sale.reference == "TICKET-77"
    assert sale.series_code is None
    assert series["sale_b2c"].next_number == 1


def test_line_total_applies_discount_and_add_ons(warehouse, stock, series, accessory):
    stock({"X-1": 10})

    sale = movement_service.record_movement(
        "b2c_sale",
        [{
            "sku": "X-1",
            "quantity": 2,
            "discount_bps": 1000,
            "add_ons": [{"accessory_id": accessory.id, "quantity": 1}],
        }],
        from_location_id=warehouse.id,
    )

    line = sale.lines[0]
    # 1000 * 2 * 0.9 + 300
    assert line.line_total_cents == 2100
    assert line.add_ons[0].price_cents == 300
    assert line.add_ons[0].name == "Hard case"
    # add-ons never count as stock
    assert sale.units == 2
    assert get_balance("X-1", warehouse.id) == 8


def test_unknown_accessory_is_rejected(warehouse, stock, series):
    stock({"X-1": 10})
    with pytest.raises(ValidationError):
        movement_service.record_movement(
            "b2c_sale",
            [{"sku": "X-1", "quantity": 1, "add_ons": [{"accessory_id": 999}]}],
            from_location_id=warehouse.id,
        )


def test_insufficient_stock_reports_items_and_writes_nothing(warehouse, stock, series):
    stock({"X-1": 5})

    with pytest.raises(InsufficientStock) as exc:
        movement_service.record_movement(
            "b2c_sale", [{"sku": "X-1", "quantity": 6}], from_location_id=warehouse.id,
        )

    assert exc.value.category == "stock"
    assert exc.value.details["items"] == [
        {"sku": "X-1", "location_id": warehouse.id, "requested": 6, "available": 5}
    ]
    assert get_balance("X-1", warehouse.id) == 5
    assert series["sale_b2c"].next_number == 1


def test_duplicate_skus_are_aggregated_for_stock_check(warehouse, stock, series):
    stock({"X-1": 5})
    with pytest.raises(InsufficientStock):
        movement_service.record_movement(
            "b2c_sale",
            [{"sku": "X-1", "quantity": 3}, {"sku": "X-1", "quantity": 3}],
            from_location_id=warehouse.id,
        )


def test_negative_stock_override_on_sale(warehouse, stock, series):
    stock({"X-1": 1})

    movement_service.record_movement(
        "b2c_sale", [{"sku": "X-1", "quantity": 3}],
        from_location_id=warehouse.id, allow_negative_stock=True,
    )

    assert get_balance("X-1", warehouse.id) == -2


def test_negative_stock_override_on_adjustment(warehouse, products):
    movement_service.record_movement(
        "adjustment", [{"sku": "X-1", "quantity": 2}],
        from_location_id=warehouse.id, allow_negative_stock=True,
    )
    assert get_balance("X-1", warehouse.id) == -2


def test_adjustment_out_is_stock_checked(warehouse, products):
    with pytest.raises(InsufficientStock):
        movement_service.record_movement(
            "adjustment", [{"sku": "X-1", "quantity": 1}], from_location_id=warehouse.id,
        )


def test_transfer_rejects_negative_override(warehouse, second_warehouse, stock):
    stock({"X-1": 1})
    with pytest.raises(ValidationError):
        movement_service.record_movement(
            "transfer", [{"sku": "X-1", "quantity": 2}],
            from_location_id=warehouse.id, to_location_id=second_warehouse.id,
            allow_negative_stock=True,
        )


def test_transfer_between_warehouses_has_no_reference(warehouse, second_warehouse, stock):
    stock({"X-1": 4})

    movement = movement_service.record_movement(
        "transfer", [{"sku": "X-1", "quantity": 3}],
        from_location_id=warehouse.id, to_location_id=second_warehouse.id,
    )

    assert movement.reference is None
    assert get_balance("X-1", warehouse.id) == 1
    assert get_balance("X-1", second_warehouse.id) == 3


def test_transfer_to_retail_uses_deposit_series(db_session, warehouse, stock):
    retail = Location(type="retail", name="Optica Sol", is_active=True)
    db_session.add(retail)
    db_session.commit()
    stock({"X-1": 4})

    movement = movement_service.record_movement(
        "transfer", [{"sku": "X-1", "quantity": 1}],
        from_location_id=warehouse.id, to_location_id=retail.id,
    )

    assert movement.reference == "DEP-000001"


@pytest.mark.parametrize("kwargs", [
    {"movement_type": "purchase", "to_location_id": None},
    {"movement_type": "purchase", "from_location_id": "W", "to_location_id": "W"},
    {"movement_type": "b2c_sale", "from_location_id": None},
    {"movement_type": "b2c_sale", "from_location_id": "W", "to_location_id": "W2"},
    {"movement_type": "transfer", "from_location_id": "W", "to_location_id": "W"},
    {"movement_type": "transfer", "from_location_id": "W"},
    {"movement_type": "adjustment"},
    {"movement_type": "adjustment", "from_location_id": "W", "to_location_id": "W2"},
])
def test_invalid_location_pairs(warehouse, second_warehouse, stock, kwargs):
    stock({"X-1": 5})
    ids = {"W": warehouse.id, "W2": second_warehouse.id, None: None}
    args = {k: ids[v] for k, v in kwargs.items() if k != "movement_type"}

    with pytest.raises(InvalidLocationPair):
        movement_service.record_movement(kwargs["movement_type"], [{"sku": "X-1", "quantity": 1}], **args)


def test_inactive_location_is_rejected(db_session, warehouse, stock):
    stock({"X-1": 5})
    warehouse.is_active = False
    db_session.commit()

    with pytest.raises(InvalidLocationPair):
        movement_service.record_movement(
            "b2c_sale", [{"sku": "X-1", "quantity": 1}], from_location_id=warehouse.id,
        )


def test_purchase_into_retail_location_is_rejected(db_session, products):
    retail = Location(type="retail", name="Customer", is_active=True)
    db_session.add(retail)
    db_session.commit()

    with pytest.raises(InvalidLocationPair):
        movement_service.record_movement("purchase", [{"sku": "X-1", "quantity": 1}], to_location_id=retail.id)


def test_unknown_sku(warehouse, products):
    with pytest.raises(UnknownSku) as exc:
        movement_service.record_movement(
            "purchase", [{"sku": "X-1", "quantity": 1}, {"sku": "NOPE", "quantity": 1}],
            to_location_id=warehouse.id,
        )
    assert exc.value.details["skus"] == ["NOPE"]


@pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", None, True])
def test_quantity_must_be_positive_integer(warehouse, products, quantity):
    with pytest.raises(ValidationError):
        movement_service.record_movement(
            "purchase", [{"sku": "X-1", "quantity": quantity}], to_location_id=warehouse.id,
        )


def test_empty_lines_rejected(warehouse, products):
    with pytest.raises(ValidationError):
        movement_service.record_movement("purchase", [], to_location_id=warehouse.id)


def test_unknown_type_rejected(warehouse, products):
    with pytest.raises(ValidationError):
        movement_service.record_movement("waste", [{"sku": "X-1", "quantity": 1}], from_location_id=warehouse.id)


def test_channel_must_match_type(warehouse, stock, series):
    stock({"X-1": 5})
    with pytest.raises(ValidationError):
        movement_service.record_movement(
            "b2c_sale", [{"sku": "X-1", "quantity": 1}], from_location_id=warehouse.id, channel="B2B",
        )


def test_payment_status_only_on_sales(warehouse, products):
    with pytest.raises(ValidationError):
        movement_service.record_movement(
            "purchase", [{"sku": "X-1", "quantity": 1}], to_location_id=warehouse.id, payment_status="paid",
        )


def test_product_without_channel_price_needs_explicit_price(warehouse, stock, series):
    stock({"Z-1": 5})

    with pytest.raises(ValidationError):
        movement_service.record_movement("b2c_sale", [{"sku": "Z-1", "quantity": 1}], from_location_id=warehouse.id)

    sale = movement_service.record_movement(
        "b2c_sale", [{"sku": "Z-1", "quantity": 1, "unit_price_cents": 450}], from_location_id=warehouse.id,
    )
    assert sale.total_cents == 450


def test_inactive_product_cannot_be_sold(db_session, warehouse, stock, series, products):
    stock({"X-1": 5})
    products["X-1"].is_active = False
    db_session.commit()

    with pytest.raises(ValidationError):
        movement_service.record_movement("b2c_sale", [{"sku": "X-1", "quantity": 1}], from_location_id=warehouse.id)


def test_failed_payment_validation_does_not_consume_number(warehouse, stock, series):
    stock({"X-1": 5})

    with pytest.raises(InvalidPaymentAmount):
        movement_service.record_movement(
            "b2b_sale", [{"sku": "X-1", "quantity": 1}], from_location_id=warehouse.id,
            payment_status="partial", paid_amount_cents=800,
        )

    assert series["sale_b2b"].next_number == 1
    assert Movement.query.filter_by(type="b2b_sale").count() == 0


def test_year_scoped_series_wins_for_its_year(db_session, warehouse, stock, series):
    db_session.add(DocumentSeries(code="B2C25", name="B2C 2025", scope="sale_b2c", prefix="T",
                                  year=2025, next_number=40, padding=4, is_active=True))
    db_session.commit()
    stock({"X-1": 5})

    in_2025 = movement_service.record_movement(
        "b2c_sale", [{"sku": "X-1", "quantity": 1}], from_location_id=warehouse.id,
        occurred_at="2025-06-01T10:00:00Z",
    )
    in_2026 = movement_service.record_movement(
        "b2c_sale", [{"sku": "X-1", "quantity": 1}], from_location_id=warehouse.id,
        occurred_at="2026-06-01T10:00:00Z",
    )

    assert in_2025.reference == "T-2025-0040"
    assert in_2025.series_year == 2025
    assert in_2026.reference == "B2C-000001"


def test_missing_series_for_year_is_configuration_error(db_session, warehouse, stock, series):
    series["sale_b2c"].is_active = False
    db_session.add(DocumentSeries(code="B2C24", name="B2C 2024", scope="sale_b2c", prefix="B2C",
                                  year=2024, next_number=1, padding=6, is_active=True))
    db_session.commit()
    stock({"X-1": 5})

    with pytest.raises(SeriesExhaustedOrMisconfigured) as exc:
        movement_service.record_movement(
            "b2c_sale", [{"sku": "X-1", "quantity": 1}], from_location_id=warehouse.id,
            occurred_at=datetime(2025, 3, 1),
        )

    assert exc.value.category == "config"
    assert get_balance("X-1", warehouse.id) == 5
    assert DocumentSeries.query.filter_by(scope="sale_b2c", is_active=True).count() == 1
    assert DocumentSeries.query.filter_by(code="B2C24").one().next_number == 1


def test_return_type_requires_original_sale(warehouse, stock, series):
    with pytest.raises(ValidationError):
        movement_service.record_movement("b2c_return", [{"sku": "X-1", "quantity": 1}], to_location_id=warehouse.id)


def test_invalid_occurred_at(warehouse, products):
    with pytest.raises(ValidationError):
        movement_service.record_movement(
            "purchase", [{"sku": "X-1", "quantity": 1}], to_location_id=warehouse.id, occurred_at="yesterday",
        )


def test_update_movement_editable_fields_only(warehouse, stock):
    movement = stock({"X-1": 5})

    updated = movement_service.update_movement(movement.id, {"notes": "Invoice 42", "reference": "ALB-9"})
    assert updated.notes == "Invoice 42"
    assert updated.reference == "ALB-9"
    assert updated.version_id == 2

    with pytest.raises(ValidationError):
        movement_service.update_movement(movement.id, {"lines": []})
    with pytest.raises(ValidationError):
        movement_service.update_movement(movement.id, {"to_location_id": 99})


def test_update_missing_movement(db_session):
    with pytest.raises(NotFound):
        movement_service.update_movement(12345, {"notes": "x"})


def test_list_movements_defaults_to_sales_newest_first(warehouse, stock, series):
    stock({"X-1": 5})
    first = movement_service.record_movement(
        "b2c_sale", [{"sku": "X-1", "quantity": 1}], from_location_id=warehouse.id,
        occurred_at="2025-01-01T10:00:00Z",
    )
    second = movement_service.record_movement(
        "b2b_sale", [{"sku": "X-1", "quantity": 1}], from_location_id=warehouse.id,
        occurred_at="2025-02-01T10:00:00Z",
    )

    rows, total = movement_service.list_movements()
    assert total == 2
    assert [m.id for m in rows] == [second.id, first.id]

    rows, total = movement_service.list_movements(types=["purchase"])
    assert total == 1

    rows, total = movement_service.list_movements(date_from=datetime(2025, 1, 15))
    assert [m.id for m in rows] == [second.id]


def test_delete_movement_detaches_returns(warehouse, stock, series):
    stock({"X-1": 5})
    sale = movement_service.record_movement("b2c_sale", [{"sku": "X-1", "quantity": 2}], from_location_id=warehouse.id)
    ret = return_service.record_return(sale.id, [{"sku": "X-1", "quantity": 1}])
    sale_id, ret_id = sale.id, ret.id

    movement_service.delete_movement(sale_id)

    assert db.session.get(Movement, sale_id) is None
    assert db.session.get(Movement, ret_id).related_movement_id is None
