"""
Catalog reference (read-only).

The catalog component owns products; the ledger only resolves skus for
validation, base prices and cost capture.
"""

from __future__ import annotations

from typing import Iterable

from ..errors import UnknownSku, ValidationError
from ..extensions import db
from ..models import Accessory, Product


def get_product(sku: str) -> Product:
    product = db.session.query(Product).filter_by(sku=sku).first()
    if product is None:
        raise UnknownSku(f"Unknown sku {sku}", details={"skus": [sku]})
    return product


def get_products(skus: Iterable[str]) -> dict[str, Product]:
    """
    Resolve every sku in one query.

    Raises UnknownSku listing all missing skus.
    """
    unique = sorted(set(skus))
    if not unique:
        return {}
    products = db.session.query(Product).filter(Product.sku.in_(unique)).all()
    by_sku = {p.sku: p for p in products}
    missing = [sku for sku in unique if sku not in by_sku]
    if missing:
        raise UnknownSku(f"Unknown sku(s): {', '.join(missing)}", details={"skus": missing})
    return by_sku


def get_accessories(ids: Iterable[int]) -> dict[int, Accessory]:
    unique = sorted(set(ids))
    if not unique:
        return {}
    rows = db.session.query(Accessory).filter(Accessory.id.in_(unique)).all()
    by_id = {a.id: a for a in rows}
    missing = [i for i in unique if i not in by_id]
    if missing:
        raise ValidationError("Some accessories do not exist", details={"accessory_ids": missing})
    return by_id
