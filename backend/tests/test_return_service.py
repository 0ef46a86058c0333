import pytest

from stockledger.errors import InvalidLocationPair, NotFound, ReturnExceedsSold, ValidationError
from stockledger.services import movement_service, reporting_service, return_service
from stockledger.services.stock_service import get_balance


@pytest.fixture
def sale_of_ten(warehouse, stock, series):
    stock({"X-1": 20, "Y-1": 5})
    return movement_service.record_movement(
        "b2c_sale",
        [{"sku": "X-1", "quantity": 10, "unit_price_cents": 950}, {"sku": "Y-1", "quantity": 1}],
        from_location_id=warehouse.id,
    )


def test_return_up_to_sold_quantity(warehouse, sale_of_ten):
    ret = return_service.record_return(sale_of_ten.id, [{"sku": "X-1", "quantity": 10}])

    assert ret.type == "b2c_return"
    assert ret.channel == "B2C"
    assert ret.related_movement_id == sale_of_ten.id
    assert ret.to_location_id == warehouse.id
    assert ret.reference == "DEV-000001"
    assert get_balance("X-1", warehouse.id) == 20


def test_eleventh_unit_exceeds_sold(sale_of_ten):
    return_service.record_return(sale_of_ten.id, [{"sku": "X-1", "quantity": 10}])

    with pytest.raises(ReturnExceedsSold) as exc:
        return_service.record_return(sale_of_ten.id, [{"sku": "X-1", "quantity": 1}])

    assert exc.value.status_code == 422
    assert exc.value.details["remaining"] == 0


def test_cap_is_cumulative_over_partial_returns(sale_of_ten):
    return_service.record_return(sale_of_ten.id, [{"sku": "X-1", "quantity": 4}])
    return_service.record_return(sale_of_ten.id, [{"sku": "X-1", "quantity": 4}])

    with pytest.raises(ReturnExceedsSold) as exc:
        return_service.record_return(sale_of_ten.id, [{"sku": "X-1", "quantity": 3}])
    assert exc.value.details == {"sale_id": sale_of_ten.id, "sku": "X-1", "requested": 3, "remaining": 2}


def test_sku_not_on_sale_cannot_be_returned(sale_of_ten):
    with pytest.raises(ReturnExceedsSold):
        return_service.record_return(sale_of_ten.id, [{"sku": "Z-1", "quantity": 1}])


def test_return_copies_sale_price(sale_of_ten):
    ret = return_service.record_return(sale_of_ten.id, [{"sku": "X-1", "quantity": 2}])
    assert ret.lines[0].unit_price_cents == 950
    assert ret.total_cents == 1900


def test_return_of_discounted_sale_refunds_discounted_amount(warehouse, stock, series):
    stock({"X-1": 5})
    sale = movement_service.record_movement(
        "b2c_sale", [{"sku": "X-1", "quantity": 3, "discount_bps": 5000}], from_location_id=warehouse.id,
    )
    assert sale.total_cents == 1500

    ret = return_service.record_return(sale.id, [{"sku": "X-1", "quantity": 3}])

    assert ret.lines[0].unit_price_cents == 1000
    assert ret.lines[0].discount_bps == 5000
    assert ret.total_cents == 1500
    assert reporting_service.sales_by_sku() == [{"sku": "X-1", "name": "Aviator", "units": 0, "total_cents": 0}]

def test_return_into_other_warehouse(second_warehouse, sale_of_ten):
    ret = return_service.record_return(
        sale_of_ten.id, [{"sku": "Y-1", "quantity": 1}], warehouse_id=second_warehouse.id,
    )
    assert get_balance("Y-1", second_warehouse.id) == 1
    assert ret.to_location_id == second_warehouse.id


def test_return_to_retail_location_rejected(db_session, sale_of_ten):
    from stockledger.models import Location

    retail = Location(type="retail", name="Shop", is_active=True)
    db_session.add(retail)
    db_session.commit()

    with pytest.raises(InvalidLocationPair):
        return_service.record_return(sale_of_ten.id, [{"sku": "X-1", "quantity": 1}], warehouse_id=retail.id)


def test_return_against_non_sale(warehouse, stock):
    purchase = stock({"X-1": 1})
    with pytest.raises(ValidationError):
        return_service.record_return(purchase.id, [{"sku": "X-1", "quantity": 1}])


def test_return_against_missing_sale(db_session):
    with pytest.raises(NotFound):
        return_service.record_return(404, [{"sku": "X-1", "quantity": 1}])


def test_return_type_must_match_sale_channel(warehouse, sale_of_ten):
    with pytest.raises(ValidationError):
        movement_service.record_movement(
            "b2b_return", [{"sku": "X-1", "quantity": 1}],
            to_location_id=warehouse.id, related_movement_id=sale_of_ten.id,
        )


def test_record_movement_return_shares_cap(warehouse, sale_of_ten):
    movement_service.record_movement(
        "b2c_return", [{"sku": "Y-1", "quantity": 1}],
        to_location_id=warehouse.id, related_movement_id=sale_of_ten.id,
    )
    with pytest.raises(ReturnExceedsSold):
        return_service.record_return(sale_of_ten.id, [{"sku": "Y-1", "quantity": 1}])


def test_return_summary(sale_of_ten):
    return_service.record_return(sale_of_ten.id, [{"sku": "X-1", "quantity": 3}])

    summary = return_service.get_return_summary(sale_of_ten.id)
    items = {i["sku"]: i for i in summary["items"]}

    assert items["X-1"] == {"sku": "X-1", "sold": 10, "returned": 3, "remaining": 7}
    assert items["Y-1"]["remaining"] == 1
    assert len(return_service.get_sale_returns(sale_of_ten.id)) == 1
