from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

LOCATION_WAREHOUSE = "warehouse"
LOCATION_RETAIL = "retail"


class Location(db.Model):
    """
    A place that can hold stock.

    - warehouse: own storage
    - retail: a customer holding consignment (deposit) stock

    Locations are soft-deleted (is_active=False) so historical movements keep
    resolving; hard deletion only happens through the administrative purge.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.Index("ix_locations_type_active", "type", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(120), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Location id={self.id} type={self.type} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "city": self.city,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
