from __future__ import annotations

from ..extensions import db
from boutique.time_utils import to_utc_z


class ShiftSession(db.Model):
    """
    A cashier's live work window.

    LIFECYCLE: created by start_shift, deleted by end_shift (which snapshots
    the window into a ShiftRecord). One live session per cashier.
    """
    __tablename__ = "shift_sessions"
    __table_args__ = (
        db.UniqueConstraint("cashier_name", name="uq_shift_sessions_cashier"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cashier_name = db.Column(db.String(128), nullable=False)
    started_at = db.Column(db.DateTime(timezone=True), nullable=False)
    shift = db.Column(db.String(8), nullable=False)  # Morning, Night
    business_date = db.Column(db.Date, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cashier_name": self.cashier_name,
            "started_at": to_utc_z(self.started_at),
            "shift": self.shift,
            "business_date": self.business_date.isoformat(),
        }


class ShiftRecord(db.Model):
    """
    End-of-shift settlement snapshot.

    IMMUTABLE: point-in-time read of the transactions inside the window.
    """
    __tablename__ = "shift_records"
    __table_args__ = (
        db.Index("ix_shift_records_business_date", "business_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cashier_name = db.Column(db.String(128), nullable=False, index=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=False)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=False)
    shift = db.Column(db.String(8), nullable=False)
    business_date = db.Column(db.Date, nullable=False)

    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    cash_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    card_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    transaction_count = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cashier_name": self.cashier_name,
            "started_at": to_utc_z(self.started_at),
            "ended_at": to_utc_z(self.ended_at),
            "shift": self.shift,
            "business_date": self.business_date.isoformat(),
            "total_sales_cents": self.total_sales_cents,
            "cash_sales_cents": self.cash_sales_cents,
            "card_sales_cents": self.card_sales_cents,
            "transaction_count": self.transaction_count,
        }
