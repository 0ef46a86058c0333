from __future__ import annotations

from ..extensions import db


class Customer(db.Model):
    """
    Customer reference (owned by CRM).

    The ledger only needs the name, to resolve the retail location that holds
    a customer's deposit stock, and the id to tag sale and deposit movements.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(8), nullable=False, default="b2c")  # b2b, b2c
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "is_active": self.is_active,
        }
