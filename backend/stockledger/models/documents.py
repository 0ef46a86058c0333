from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class DocumentSeries(db.Model):
    """
    Sequential document numbering per scope.

    WHY: Human-readable references (B2C-2024-000123) must be strictly
    increasing and never reused within a series, even under concurrent
    allocation. next_number is only ever advanced inside the transaction that
    creates the movement the number is issued for.

    year=NULL means the series never resets; a year-scoped series only serves
    movements dated in that year.
    """
    __tablename__ = "document_series"
    __table_args__ = (
        db.Index("ix_document_series_scope_active", "scope", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    scope = db.Column(db.String(16), nullable=False)  # sale_b2c, sale_b2b, return, deposit, web
    prefix = db.Column(db.String(32), nullable=True)
    year = db.Column(db.Integer, nullable=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    padding = db.Column(db.Integer, nullable=False, default=6)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<DocumentSeries code={self.code!r} scope={self.scope} next={self.next_number}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "scope": self.scope,
            "prefix": self.prefix,
            "year": self.year,
            "next_number": self.next_number,
            "padding": self.padding,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
