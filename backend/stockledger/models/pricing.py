from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class PriceRule(db.Model):
    """
    Prioritized sale price rule.

    target: public (B2C tariff) or b2b
    scope:  all, category (category_id), supplier (supplier_id)
    type:   percent -> value in basis points off the base price
            fixed   -> value is the final unit price in cents

    Lower priority numbers win.
    """
    __tablename__ = "price_rules"
    __table_args__ = (
        db.Index("ix_price_rules_target_active", "target", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    target = db.Column(db.String(8), nullable=False)
    scope = db.Column(db.String(16), nullable=False, default="all")
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True)
    type = db.Column(db.String(8), nullable=False)
    value = db.Column(db.Integer, nullable=False)
    priority = db.Column(db.Integer, nullable=False, default=100)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "target": self.target,
            "scope": self.scope,
            "category_id": self.category_id,
            "supplier_id": self.supplier_id,
            "type": self.type,
            "value": self.value,
            "priority": self.priority,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
