# Overview: TransactionRecorder; immutable commercial records and their queries.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from ..extensions import db
from ..models import (
    Transaction,
    TransactionLine,
    StockMovement,
    TransactionType,
    PaymentMethod,
    MovementKind,
    Shift,
)
from ..models.enums import coerce_enum
from boutique.time_utils import utcnow
from .document_service import (
    next_document_number,
    SALE_SEQUENCE,
    DISPATCH_SEQUENCE,
    RETURN_SEQUENCE,
)
from .pricing import apply_percent_off, line_total, order_totals, to_percent, PricingError
"""
Transaction Invariants (authoritative)

- A Transaction is written only after the StockMovements of all its lines
  have been flushed in the same DB transaction. Every line carries the id of
  the movement it caused (NOT NULL), so the reverse order cannot be stored.
- Unless the caller pins it, occurred_at is never earlier than the
  movements of its lines.
- Lines are snapshots; nothing is re-derived from the catalog later.
- total = round_half_up(sum(effective_unit * qty) * (100 - order_discount) / 100)
- PR lines are priced at 0 whatever the catalog says.
- Dispatch channels carry payment method N/A with paid == total.
- Sales accept partial payment: balance = max(0, total - paid).
- This module never touches stock.
"""

DISPATCH_TYPES = {
    TransactionType.SHOPIFY,
    TransactionType.PREORDER,
    TransactionType.PR,
    TransactionType.FNF,
}

# Movement kind each transaction type must be backed by
_EXPECTED_KIND = {
    TransactionType.SALE: MovementKind.SALE,
    TransactionType.RETURN: MovementKind.RETURN,
    TransactionType.SHOPIFY: MovementKind.OUTWARD,
    TransactionType.PREORDER: MovementKind.OUTWARD,
    TransactionType.PR: MovementKind.OUTWARD,
    TransactionType.FNF: MovementKind.OUTWARD,
}

_SEQUENCES = {
    TransactionType.SALE: SALE_SEQUENCE,
    TransactionType.RETURN: RETURN_SEQUENCE,
}


class TransactionError(Exception):
    """Raised for malformed commercial records."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class CommitOrderError(TransactionError):
    """Raised when a line is not backed by an already-recorded movement."""
    pass


@dataclass
class LineItemDraft:
    """One line as captured at commit time, plus the movement it caused."""
    movement: StockMovement
    article_id: str
    article_name: str
    size_label: str
    size_internal: str
    quantity: int
    unit_price_cents: int
    line_discount_percent: Decimal | int | float | str | None = None
    category: str | None = None


@dataclass
class PaymentInfo:
    method: PaymentMethod | str = PaymentMethod.NONE
    # None means paid in full
    amount_paid_cents: int | None = None
    cash_received_cents: int | None = None
    order_discount_percent: Decimal | int | float | str | None = None


@dataclass
class ChannelDetails:
    cashier_name: str
    shift: Shift | str
    business_date: date
    occurred_at: datetime | None = None
    customer_id: int | None = None
    external_order_id: str | None = None
    recipient_name: str | None = None
    notes: str | None = None
    original_transaction_id: int | None = None
    # Preallocated number (e.g. shared with the movements' reference)
    document_number: str | None = None


def _check_movement(tx_type: TransactionType, item: LineItemDraft, session) -> None:
    movement = item.movement
    if not isinstance(movement, StockMovement) or movement.id is None or movement not in session:
        raise CommitOrderError(
            "Line has no recorded stock movement",
            details={"article_id": item.article_id, "size_internal": item.size_internal},
        )
    if (movement.article_id, movement.size_internal) != (item.article_id, item.size_internal):
        raise CommitOrderError(
            "Line does not match its stock movement",
            details={
                "line": f"{item.article_id}-{item.size_internal}",
                "movement": f"{movement.article_id}-{movement.size_internal}",
            },
        )
    expected = _EXPECTED_KIND[tx_type]
    if movement.kind != expected.value:
        raise CommitOrderError(
            f"{tx_type.value} lines must be backed by {expected.value} movements",
            details={"movement_id": movement.id, "kind": movement.kind},
        )
    if tx_type in DISPATCH_TYPES and movement.channel != tx_type.value:
        raise CommitOrderError(
            "Movement channel does not match transaction type",
            details={"movement_id": movement.id, "channel": movement.channel},
        )


def _settle_payment(tx_type: TransactionType, total: int, payment: PaymentInfo) -> dict:
    if tx_type in DISPATCH_TYPES:
        return {
            "payment_method": PaymentMethod.NONE.value,
            "amount_paid_cents": total,
            "balance_cents": 0,
            "is_partial": False,
            "cash_received_cents": None,
            "change_cents": None,
        }

    try:
        method = coerce_enum(PaymentMethod, payment.method)
    except ValueError as e:
        raise TransactionError(str(e))

    if tx_type == TransactionType.RETURN:
        # Refund: what was actually paid, defaulting to the full (negative) total
        refunded = total if payment.amount_paid_cents is None else payment.amount_paid_cents
        return {
            "payment_method": method.value,
            "amount_paid_cents": refunded,
            "balance_cents": 0,
            "is_partial": False,
            "cash_received_cents": None,
            "change_cents": None,
        }

    if method == PaymentMethod.NONE:
        raise TransactionError("Sales must be paid by Cash or Card")

    paid = total if payment.amount_paid_cents is None else payment.amount_paid_cents
    if isinstance(paid, bool) or not isinstance(paid, int):
        raise TransactionError("amount_paid_cents must be an integer")
    if paid < 0:
        raise TransactionError("amount_paid_cents cannot be negative")
    if paid > total:
        raise TransactionError(
            "amount_paid_cents exceeds total",
            details={"total_cents": total, "amount_paid_cents": paid},
        )

    cash_received = None
    change = None
    if method == PaymentMethod.CASH and payment.cash_received_cents is not None:
        cash_received = payment.cash_received_cents
        if isinstance(cash_received, bool) or not isinstance(cash_received, int):
            raise TransactionError("cash_received_cents must be an integer")
        if cash_received < paid:
            raise TransactionError(
                "Cash received is less than the amount paid",
                details={"amount_paid_cents": paid, "cash_received_cents": cash_received},
            )
        change = cash_received - paid

    return {
        "payment_method": method.value,
        "amount_paid_cents": paid,
        "balance_cents": max(0, total - paid),
        "is_partial": paid < total,
        "cash_received_cents": cash_received,
        "change_cents": change,
    }


def commit_timestamp(line_items: list[LineItemDraft]) -> datetime:
    """Now, but never earlier than the movements the lines point at."""
    return max([utcnow()] + [item.movement.occurred_at for item in line_items])


class TransactionRecorder:
    """Creates Transactions and answers queries over them. Flushes, never commits."""

    def __init__(self, session=None):
        self.session = session or db.session

    def commit(
        self,
        type,
        line_items: list[LineItemDraft],
        payment: PaymentInfo,
        details: ChannelDetails,
    ) -> Transaction:
        try:
            tx_type = coerce_enum(TransactionType, type)
            shift = coerce_enum(Shift, details.shift)
        except ValueError as e:
            raise TransactionError(str(e))

        if not line_items:
            raise TransactionError("Transaction requires at least one line")
        if not details.cashier_name:
            raise TransactionError("cashier_name is required")
        if details.business_date is None:
            raise TransactionError("business_date is required")

        for item in line_items:
            _check_movement(tx_type, item, self.session)

        try:
            order_discount = to_percent(payment.order_discount_percent)
            priced = []
            for item in line_items:
                if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity == 0:
                    raise TransactionError("Line quantity must be a non-zero integer")
                if (item.quantity < 0) != (tx_type == TransactionType.RETURN):
                    raise TransactionError("Only return lines carry negative quantities")
                unit = 0 if tx_type == TransactionType.PR else int(item.unit_price_cents)
                if unit < 0:
                    raise TransactionError("unit price cannot be negative")
                discount = to_percent(item.line_discount_percent)
                effective = apply_percent_off(unit, discount)
                priced.append((item, unit, discount, effective))
        except PricingError as e:
            raise TransactionError(str(e))

        subtotal, total = order_totals(
            [(effective, item.quantity) for item, _, _, effective in priced],
            order_discount,
        )
        settlement = _settle_payment(tx_type, total, payment)

        document_number = details.document_number
        if document_number is None:
            document_type, prefix = _SEQUENCES.get(tx_type, DISPATCH_SEQUENCE)
            document_number = next_document_number(document_type=document_type, prefix=prefix)

        tx = Transaction(
            document_number=document_number,
            occurred_at=details.occurred_at or commit_timestamp(line_items),
            type=tx_type.value,
            subtotal_cents=subtotal,
            order_discount_percent=order_discount,
            total_cents=total,
            customer_id=details.customer_id,
            shift=shift.value,
            business_date=details.business_date,
            cashier_name=details.cashier_name,
            external_order_id=details.external_order_id,
            recipient_name=details.recipient_name,
            notes=details.notes or None,
            original_transaction_id=details.original_transaction_id,
            **settlement,
        )
        self.session.add(tx)
        self.session.flush()

        for number, (item, unit, discount, effective) in enumerate(priced, start=1):
            self.session.add(TransactionLine(
                transaction_id=tx.id,
                line_number=number,
                movement_id=item.movement.id,
                article_id=item.article_id,
                article_name=item.article_name,
                category=item.category,
                size_label=item.size_label,
                size_internal=item.size_internal,
                quantity=item.quantity,
                unit_price_cents=unit,
                line_discount_percent=discount,
                effective_unit_price_cents=effective,
                line_total_cents=line_total(effective, item.quantity),
            ))
        self.session.flush()
        self.session.refresh(tx)
        return tx

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_transaction(self, transaction_id: int) -> Transaction | None:
        return self.session.get(Transaction, transaction_id)

    def get_by_document_number(self, document_number: str) -> Transaction | None:
        return self.session.query(Transaction).filter_by(document_number=document_number).first()

    def list_transactions(
        self,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        type=None,
        customer_id: int | None = None,
        business_date: date | None = None,
        shift=None,
        since: datetime | None = None,
        cashier_name: str | None = None,
        limit: int | None = None,
    ) -> list[Transaction]:
        """
        Newest first. start/end and since are inclusive bounds on occurred_at;
        since is the shift-window form (everything from a session start).
        """
        q = self.session.query(Transaction)
        if start:
            q = q.filter(Transaction.occurred_at >= start)
        if since:
            q = q.filter(Transaction.occurred_at >= since)
        if end:
            q = q.filter(Transaction.occurred_at <= end)
        if type:
            q = q.filter(Transaction.type == coerce_enum(TransactionType, type).value)
        if customer_id is not None:
            q = q.filter(Transaction.customer_id == customer_id)
        if business_date:
            q = q.filter(Transaction.business_date == business_date)
        if shift:
            q = q.filter(Transaction.shift == coerce_enum(Shift, shift).value)
        if cashier_name:
            q = q.filter(Transaction.cashier_name == cashier_name)
        q = q.order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
        if limit:
            q = q.limit(limit)
        return q.all()

    def transactions_for_customer(self, customer_id: int) -> list[Transaction]:
        return self.list_transactions(customer_id=customer_id)

    def transactions_for_business_date(self, business_date: date) -> list[Transaction]:
        return self.list_transactions(business_date=business_date)

    def transactions_since(self, since: datetime, until: datetime | None = None) -> list[Transaction]:
        return self.list_transactions(since=since, end=until)
