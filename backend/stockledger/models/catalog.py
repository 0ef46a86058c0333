from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


product_categories = db.Table(
    "product_categories",
    db.Column("product_sku", db.String(64), db.ForeignKey("products.sku", ondelete="CASCADE"), primary_key=True),
    db.Column("category_id", db.Integer, db.ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Product(db.Model):
    """
    Catalog reference data.

    Owned by the catalog component; the ledger only reads it to validate skus,
    fall back to base prices and capture unit cost at movement time.

    Prices are stored per channel:
    - price_b2c_cents: recommended retail price (public tariff)
    - price_b2b_cents: wholesale tariff
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_supplier_active", "supplier_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)

    price_b2c_cents = db.Column(db.Integer, nullable=True)
    price_b2b_cents = db.Column(db.Integer, nullable=True)
    cost_cents = db.Column(db.Integer, nullable=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))
    categories = db.relationship("Category", secondary=product_categories, lazy="selectin")

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def base_price_cents(self, channel: str) -> int | None:
        return self.price_b2b_cents if channel == "B2B" else self.price_b2c_cents

    @property
    def category_ids(self) -> list[int]:
        return [c.id for c in self.categories]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "price_b2c_cents": self.price_b2c_cents,
            "price_b2b_cents": self.price_b2b_cents,
            "cost_cents": self.cost_cents,
            "supplier_id": self.supplier_id,
            "category_ids": self.category_ids,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Accessory(db.Model):
    """Add-on sold together with a product line (engraving, case, strap...)."""
    __tablename__ = "accessories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=True)
    cost_cents = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "is_active": self.is_active,
        }
