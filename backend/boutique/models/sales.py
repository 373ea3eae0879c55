from __future__ import annotations

from ..extensions import db
from boutique.time_utils import to_utc_z


def _pct(value):
    return float(value) if value is not None else None


class Transaction(db.Model):
    """
    Immutable commercial record: POS sale, channel dispatch, or return.

    TOTALS: total_cents is derived from the lines and the order discount:
        total = round_half_up(sum(effective_unit_price * qty) * (100 - order_discount) / 100)

    COMMIT ORDER: every line references the StockMovement it caused
    (transaction_lines.movement_id is NOT NULL), so a Transaction cannot exist
    without its movements having been written first in the same DB transaction.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_transactions_document_number"),
        db.UniqueConstraint("original_transaction_id", name="uq_transactions_original"),
        db.Index("ix_transactions_type_occurred", "type", "occurred_at"),
        db.Index("ix_transactions_business_date_shift", "business_date", "shift"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(32), nullable=False)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)  # Sale, Shopify, PreOrder, PR, FnF, Return

    subtotal_cents = db.Column(db.Integer, nullable=False)
    order_discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(8), nullable=False)  # Cash, Card, N/A
    amount_paid_cents = db.Column(db.Integer, nullable=False)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    is_partial = db.Column(db.Boolean, nullable=False, default=False)
    cash_received_cents = db.Column(db.Integer, nullable=True)
    change_cents = db.Column(db.Integer, nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    shift = db.Column(db.String(8), nullable=False)               # Morning, Night
    business_date = db.Column(db.Date, nullable=False, index=True)
    cashier_name = db.Column(db.String(128), nullable=False, index=True)

    external_order_id = db.Column(db.String(64), nullable=True, index=True)
    recipient_name = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    original_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)

    lines = db.relationship(
        "TransactionLine",
        back_populates="transaction",
        order_by="TransactionLine.line_number",
        lazy=True,
    )
    customer = db.relationship("Customer", backref=db.backref("transactions", lazy=True))
    original_transaction = db.relationship("Transaction", remote_side=[id], uselist=False)

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "document_number": self.document_number,
            "occurred_at": to_utc_z(self.occurred_at),
            "type": self.type,
            "subtotal_cents": self.subtotal_cents,
            "order_discount_percent": _pct(self.order_discount_percent),
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "amount_paid_cents": self.amount_paid_cents,
            "balance_cents": self.balance_cents,
            "is_partial": self.is_partial,
            "cash_received_cents": self.cash_received_cents,
            "change_cents": self.change_cents,
            "customer_id": self.customer_id,
            "shift": self.shift,
            "business_date": self.business_date.isoformat() if self.business_date else None,
            "cashier_name": self.cashier_name,
            "external_order_id": self.external_order_id,
            "recipient_name": self.recipient_name,
            "notes": self.notes,
            "original_transaction_id": self.original_transaction_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class TransactionLine(db.Model):
    """
    Snapshot of one article variant at the time of the transaction.

    Never re-derived from the current catalog.
    """
    __tablename__ = "transaction_lines"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "line_number", name="uq_transaction_lines_number"),
        db.UniqueConstraint("movement_id", name="uq_transaction_lines_movement"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=False)

    article_id = db.Column(db.String(64), nullable=False, index=True)
    article_name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)
    size_label = db.Column(db.String(32), nullable=False)
    size_internal = db.Column(db.String(32), nullable=False)

    # Negative for return lines
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    effective_unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    transaction = db.relationship("Transaction", back_populates="lines")
    movement = db.relationship("StockMovement")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "line_number": self.line_number,
            "movement_id": self.movement_id,
            "article_id": self.article_id,
            "article_name": self.article_name,
            "category": self.category,
            "size_label": self.size_label,
            "size_internal": self.size_internal,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_discount_percent": _pct(self.line_discount_percent),
            "effective_unit_price_cents": self.effective_unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class Cart(db.Model):
    """
    Open POS cart.

    LIFECYCLE:
    - OPEN: lines can be edited; quantities count as holds against store stock
    - CHECKED_OUT: converted into a Sale transaction
    - ABANDONED: discarded, holds released, nothing written to the ledger
    """
    __tablename__ = "carts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    cashier_name = db.Column(db.String(128), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)

    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    lines = db.relationship(
        "CartLine",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartLine.id",
        lazy=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cashier_name": self.cashier_name,
            "customer_id": self.customer_id,
            "status": self.status,
            "transaction_id": self.transaction_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class CartLine(db.Model):
    __tablename__ = "cart_lines"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "article_id", "size_internal", name="uq_cart_lines_variant"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False, index=True)

    article_id = db.Column(db.String(64), nullable=False)
    size_internal = db.Column(db.String(32), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    # Overrides the article markdown when set
    discount_percent = db.Column(db.Numeric(5, 2), nullable=True)

    cart = db.relationship("Cart", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart_id": self.cart_id,
            "article_id": self.article_id,
            "size_internal": self.size_internal,
            "quantity": self.quantity,
            "discount_percent": _pct(self.discount_percent),
        }
