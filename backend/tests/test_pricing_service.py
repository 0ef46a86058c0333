import pytest

from stockledger.errors import NotFound, UnknownSku, ValidationError
from stockledger.services import pricing_service
from stockledger.services.pricing_service import apply_bps


def _rule(**fields):
    base = {"name": "rule", "target": "public", "scope": "all", "type": "percent", "value": 1000, "priority": 100}
    base.update(fields)
    return pricing_service.create_rule(base)


def test_apply_bps_rounds_half_up_and_floors_at_zero():
    assert apply_bps(1000, 2000) == 800
    assert apply_bps(999, 1500) == 849  # 849.15
    assert apply_bps(5, 5000) == 3      # 2.5 -> 3
    assert apply_bps(1000, 10000) == 0


def test_quote_without_rules_returns_base(products):
    quote = pricing_service.quote("X-1", "B2C")
    assert quote == {
        "sku": "X-1",
        "channel": "B2C",
        "base_cents": 1000,
        "price_cents": 1000,
        "applied_rule": None,
    }


def test_quote_uses_channel_base_price(products):
    assert pricing_service.quote("X-1", "B2B")["base_cents"] == 800


def test_category_rule_beats_all_rule_at_same_priority(products, category):
    _rule(name="all 10%", scope="all", value=1000)
    category_rule = _rule(name="category 20%", scope="category", category_id=category.id, value=2000)

    quote = pricing_service.quote("X-1", "B2C")

    assert quote["price_cents"] == 800
    assert quote["applied_rule"]["id"] == category_rule.id


def test_lower_priority_number_wins(products, category):
    all_rule = _rule(name="all 10%", scope="all", value=1000, priority=10)
    _rule(name="category 20%", scope="category", category_id=category.id, value=2000, priority=50)

    quote = pricing_service.quote("X-1", "B2C")
    assert quote["price_cents"] == 900
    assert quote["applied_rule"]["id"] == all_rule.id


def test_ties_are_broken_by_id(products):
    first = _rule(name="first", value=1000)
    _rule(name="second", value=3000)
    assert pricing_service.quote("Y-1", "B2C")["applied_rule"]["id"] == first.id


def test_supplier_rule_matches_only_supplier_products(products, supplier):
    _rule(name="supplier fixed", scope="supplier", supplier_id=supplier.id, type="fixed", value=555)

    assert pricing_service.quote("X-1", "B2C")["price_cents"] == 555
    assert pricing_service.quote("Y-1", "B2C")["price_cents"] == 2000


def test_rule_target_follows_channel(products):
    _rule(name="b2b only", target="b2b", value=5000)

    assert pricing_service.quote("X-1", "B2C")["price_cents"] == 1000
    assert pricing_service.quote("X-1", "B2B")["price_cents"] == 400


def test_inactive_rules_are_ignored(products):
    rule = _rule(value=5000)
    pricing_service.update_rule(rule.id, {"is_active": False})
    assert pricing_service.quote("X-1", "B2C")["applied_rule"] is None


def test_product_without_base_price_quotes_null(products):
    _rule(value=1000)
    quote = pricing_service.quote("Z-1", "B2C")
    assert quote["base_cents"] is None
    assert quote["price_cents"] is None
    assert quote["applied_rule"] is None


def test_unknown_sku_and_channel(products):
    with pytest.raises(UnknownSku):
        pricing_service.quote("NOPE", "B2C")
    with pytest.raises(ValidationError):
        pricing_service.quote("X-1", "RETAIL")


def test_scope_requires_reference(products):
    with pytest.raises(ValidationError):
        _rule(scope="category")
    with pytest.raises(ValidationError):
        _rule(scope="supplier", supplier_id=999)


def test_quote_reflects_rule_changes_immediately(products):
    rule = _rule(value=1000)
    assert pricing_service.quote("X-1", "B2C")["price_cents"] == 900

    pricing_service.update_rule(rule.id, {"value": 2500})
    assert pricing_service.quote("X-1", "B2C")["price_cents"] == 750

    pricing_service.delete_rule(rule.id)
    assert pricing_service.quote("X-1", "B2C")["price_cents"] == 1000


def test_list_rules_orders_active_first(products):
    inactive = _rule(name="old", priority=1, is_active=False)
    active = _rule(name="current", priority=200)
    assert [r.id for r in pricing_service.list_rules()] == [active.id, inactive.id]


def test_missing_rule(db_session):
    with pytest.raises(NotFound):
        pricing_service.delete_rule(42)


def test_sale_line_price_comes_from_resolver(warehouse, stock, series, category):
    from stockledger.services import movement_service

    _rule(name="category 20%", scope="category", category_id=category.id, value=2000)
    stock({"X-1": 2})

    sale = movement_service.record_movement("b2c_sale", [{"sku": "X-1", "quantity": 1}], from_location_id=warehouse.id)
    assert sale.lines[0].unit_price_cents == 800
