from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Movement(db.Model):
    """
    Ledger entry: one recorded change of stock location/ownership.

    Append-only. After creation only reference, notes, occurred_at and the
    payment fields may change; lines are never mutated. Corrections are made
    with compensating movements (returns, adjustments).

    Endpoints by type:
    - purchase:           to only
    - b2b_sale/b2c_sale:  from only
    - b2b/b2c_return:     to only (related_movement_id -> original sale)
    - transfer:           from and to (deposit when `to` is a retail location)
    - adjustment:         exactly one of from/to
    """
    __tablename__ = "movements"
    __table_args__ = (
        db.UniqueConstraint("series_code", "series_year", "series_number", name="uq_movements_series_number"),
        db.Index("ix_movements_type_occurred", "type", "occurred_at"),
        db.Index("ix_movements_from_occurred", "from_location_id", "occurred_at"),
        db.Index("ix_movements_to_occurred", "to_location_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(16), nullable=False)
    channel = db.Column(db.String(8), nullable=True, index=True)  # B2B, B2C (sale and return types only)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)

    # Human-readable document number (e.g. "B2C-2024-000123") or user supplied
    reference = db.Column(db.String(64), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    # Provenance of an allocated reference
    series_code = db.Column(db.String(32), nullable=True)
    series_year = db.Column(db.Integer, nullable=True)
    series_number = db.Column(db.Integer, nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    related_movement_id = db.Column(db.Integer, db.ForeignKey("movements.id"), nullable=True, index=True)

    # Sale types only
    payment_status = db.Column(db.String(16), nullable=True)  # pending, partial, paid
    paid_amount_cents = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    from_location = db.relationship("Location", foreign_keys=[from_location_id])
    to_location = db.relationship("Location", foreign_keys=[to_location_id])
    customer = db.relationship("Customer")
    related_movement = db.relationship("Movement", remote_side=[id])
    lines = db.relationship(
        "MovementLine",
        backref="movement",
        lazy="selectin",
        order_by="MovementLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Movement id={self.id} type={self.type} reference={self.reference!r}>"

    @property
    def units(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def total_cents(self) -> int:
        return sum(line.line_total_cents or 0 for line in self.lines)

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "type": self.type,
            "channel": self.channel,
            "occurred_at": to_utc_z(self.occurred_at),
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "reference": self.reference,
            "notes": self.notes,
            "series_code": self.series_code,
            "series_year": self.series_year,
            "series_number": self.series_number,
            "customer_id": self.customer_id,
            "related_movement_id": self.related_movement_id,
            "payment_status": self.payment_status,
            "paid_amount_cents": self.paid_amount_cents,
            "units": self.units,
            "total_cents": self.total_cents,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class MovementLine(db.Model):
    """
    One sku on a movement.

    line_total_cents is computed once at creation:
        round(unit_price * quantity * (1 - discount_bps / 10000)) + add-on totals
    and stays null for lines that carry no price (transfers, adjustments).
    """
    __tablename__ = "movement_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_movement_lines_quantity_positive"),
        db.Index("ix_movement_lines_sku_movement", "sku", "movement_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    movement_id = db.Column(db.Integer, db.ForeignKey("movements.id"), nullable=False, index=True)
    sku = db.Column(db.String(64), db.ForeignKey("products.sku"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=True)
    unit_cost_cents = db.Column(db.Integer, nullable=True)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=True)

    add_ons = db.relationship(
        "MovementLineAddOn",
        backref="line",
        lazy="selectin",
        order_by="MovementLineAddOn.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "movement_id": self.movement_id,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "discount_bps": self.discount_bps,
            "line_total_cents": self.line_total_cents,
            "add_ons": [a.to_dict() for a in self.add_ons],
        }


class MovementLineAddOn(db.Model):
    """Accessory sold with a line. Adds to the money total, never to stock."""
    __tablename__ = "movement_line_add_ons"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_movement_line_add_ons_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    line_id = db.Column(db.Integer, db.ForeignKey("movement_lines.id"), nullable=False, index=True)
    accessory_id = db.Column(db.Integer, db.ForeignKey("accessories.id"), nullable=False)
    name = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=True)

    @property
    def total_cents(self) -> int:
        return self.price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "accessory_id": self.accessory_id,
            "name": self.name,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
        }
