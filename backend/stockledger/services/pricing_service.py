# Overview: Sale price resolution through prioritized price rules.

"""
Pricing Resolver

Rules are re-read on every quote (no caching across writes). Resolution is
deterministic and read-only:

1. Candidate rules: active, target matching the channel
   (B2C -> "public", B2B -> "b2b"), scope matching the product
   ("all" always, "category"/"supplier" by membership).
2. Winner: lowest priority number, then most specific scope
   (supplier/category before all), then lowest id.
3. percent: base * (10000 - bps) / 10000, half-up, floored at 0.
   fixed:   value is the final unit price.

A product without a base price for the channel quotes as null/null.
"""

from __future__ import annotations

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Category, PriceRule, Product, Supplier
from .catalog_service import get_product


CHANNEL_B2B = "B2B"
CHANNEL_B2C = "B2C"
CHANNELS = (CHANNEL_B2B, CHANNEL_B2C)

TARGET_BY_CHANNEL = {CHANNEL_B2C: "public", CHANNEL_B2B: "b2b"}

_SPECIFICITY = {"supplier": 0, "category": 0, "all": 1}


def apply_bps(amount_cents: int, bps: int) -> int:
    """amount * (1 - bps/10000), rounded half-up, never below 0."""
    return max(0, (amount_cents * (10_000 - bps) + 5_000) // 10_000)


def _rule_matches(rule: PriceRule, product: Product, category_ids: set[int]) -> bool:
    if rule.scope == "all":
        return True
    if rule.scope == "category":
        return rule.category_id is not None and rule.category_id in category_ids
    if rule.scope == "supplier":
        return rule.supplier_id is not None and rule.supplier_id == product.supplier_id
    return False


def _rule_sort_key(rule: PriceRule):
    return (rule.priority, _SPECIFICITY.get(rule.scope, 1), rule.id)


def resolve_rule(product: Product, channel: str) -> PriceRule | None:
    target = TARGET_BY_CHANNEL[channel]
    rules = (
        db.session.query(PriceRule)
        .filter(PriceRule.is_active.is_(True), PriceRule.target == target)
        .all()
    )
    category_ids = set(product.category_ids)
    matching = [r for r in rules if _rule_matches(r, product, category_ids)]
    if not matching:
        return None
    return min(matching, key=_rule_sort_key)


def price_for(product: Product, channel: str) -> tuple[int | None, int | None, PriceRule | None]:
    """(base_cents, price_cents, applied_rule) for an already loaded product."""
    if channel not in CHANNELS:
        raise ValidationError(f"channel must be one of {', '.join(CHANNELS)}", details={"channel": channel})

    base = product.base_price_cents(channel)
    if base is None:
        return None, None, None

    rule = resolve_rule(product, channel)
    if rule is None:
        return base, base, None
    if rule.type == "percent":
        return base, apply_bps(base, rule.value), rule
    return base, rule.value, rule


def quote(sku: str, channel: str) -> dict:
    product = get_product(sku)
    base, price, rule = price_for(product, channel)
    return {
        "sku": product.sku,
        "channel": channel,
        "base_cents": base,
        "price_cents": price,
        "applied_rule": rule.to_dict() if rule else None,
    }


# =============================================================================
# Rule administration
# =============================================================================

def list_rules() -> list[PriceRule]:
    return (
        db.session.query(PriceRule)
        .order_by(PriceRule.is_active.desc(), PriceRule.priority.asc(), PriceRule.id.asc())
        .all()
    )


def get_rule(rule_id: int) -> PriceRule:
    rule = db.session.get(PriceRule, rule_id)
    if rule is None:
        raise NotFound(f"Price rule {rule_id} not found", details={"rule_id": rule_id})
    return rule


def _check_scope_refs(rule: PriceRule) -> None:
    if rule.scope == "category":
        if rule.category_id is None:
            raise ValidationError("category scope requires category_id")
        if db.session.get(Category, rule.category_id) is None:
            raise ValidationError("Category not found", details={"category_id": rule.category_id})
    elif rule.scope == "supplier":
        if rule.supplier_id is None:
            raise ValidationError("supplier scope requires supplier_id")
        if db.session.get(Supplier, rule.supplier_id) is None:
            raise ValidationError("Supplier not found", details={"supplier_id": rule.supplier_id})
    if rule.type == "percent" and not 0 <= rule.value <= 10_000:
        raise ValidationError("percent value is expressed in basis points (0..10000)")
    if rule.value < 0:
        raise ValidationError("value must be >= 0")


def create_rule(fields: dict) -> PriceRule:
    rule = PriceRule(
        name=fields["name"],
        target=fields["target"],
        scope=fields.get("scope") or "all",
        category_id=fields.get("category_id"),
        supplier_id=fields.get("supplier_id"),
        type=fields["type"],
        value=fields["value"],
        priority=fields["priority"] if fields.get("priority") is not None else 100,
        is_active=fields.get("is_active", True),
    )
    _check_scope_refs(rule)
    db.session.add(rule)
    db.session.commit()
    return rule


def update_rule(rule_id: int, patch: dict) -> PriceRule:
    rule = get_rule(rule_id)
    for key, value in patch.items():
        setattr(rule, key, value)
    try:
        _check_scope_refs(rule)
    except ValidationError:
        db.session.rollback()
        raise
    db.session.commit()
    return rule


def delete_rule(rule_id: int) -> None:
    rule = get_rule(rule_id)
    db.session.delete(rule)
    db.session.commit()
