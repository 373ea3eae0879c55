# Overview: POS carts, Sale checkout with partial payments, and returns.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import (
    Cart,
    CartLine,
    Customer,
    Transaction,
    Channel,
    MovementKind,
    TransactionType,
)
from .audit_service import append_audit_event
from .catalog_service import resolve_code
from .concurrency import run_in_transaction
from .distribution_service import InsufficientStockError, CodeNotRecognizedError
from .document_service import next_document_number, SALE_SEQUENCE, RETURN_SEQUENCE
from .ledger_service import StockLedger, VariantNotFoundError
from .movement_service import MovementRecorder
from .pricing import to_percent, PricingError
from .shift_service import get_open_session, tag_for
from .transaction_service import (
    TransactionRecorder,
    LineItemDraft,
    PaymentInfo,
    ChannelDetails,
    commit_timestamp,
)
"""
POS Invariants (authoritative)

Carts:
- OPEN carts hold store stock: available_to_sell subtracts their quantities.
- A line quantity is validated against available_to_sell excluding the cart
  itself, so editing a line never counts its own hold twice.
- Abandoning a cart writes nothing to the ledger.

Checkout:
- Requires the cashier's live shift session.
- One DB transaction: per line lock + recheck + store decrement + Sale
  movement, then one Sale Transaction, then the cart is closed.
- Paying less than the total is a partial payment, not an error.

Returns:
- Only Sale transactions, at most once each.
- Store stock goes back up with Return movements; the Return transaction
  mirrors the sale with negative quantities.
"""

OPEN = "OPEN"
CHECKED_OUT = "CHECKED_OUT"
ABANDONED = "ABANDONED"


class PosError(Exception):
    """Raised for POS rule violations."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


def _positive_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise PosError("quantity must be an integer")
    if quantity < 1:
        raise PosError("quantity must be at least 1")
    return quantity


def get_cart(cart_id: int) -> Cart | None:
    return db.session.get(Cart, cart_id)


def _open_cart_or_raise(cart_id: int) -> Cart:
    cart = get_cart(cart_id)
    if cart is None:
        raise PosError(f"Cart {cart_id} not found")
    if cart.status != OPEN:
        raise PosError(f"Cart {cart_id} is {cart.status}", details={"status": cart.status})
    return cart


def _check_available(ledger: StockLedger, cart: Cart, article_id: str, size_internal: str, quantity: int) -> None:
    available = ledger.available_to_sell(article_id, size_internal, exclude_cart_id=cart.id)
    if quantity > available:
        raise InsufficientStockError(
            f"Only {available} of {article_id}-{size_internal} available in store",
            details={
                "article_id": article_id,
                "size_internal": size_internal,
                "requested_quantity": quantity,
                "available": available,
            },
        )


def open_cart(cashier_name: str, customer_id: int | None = None) -> Cart:
    if not cashier_name or not cashier_name.strip():
        raise PosError("cashier_name is required")

    def _op() -> Cart:
        if customer_id is not None and db.session.get(Customer, customer_id) is None:
            raise PosError(f"Customer {customer_id} not found")
        cart = Cart(cashier_name=cashier_name.strip(), customer_id=customer_id, status=OPEN)
        db.session.add(cart)
        db.session.flush()
        return cart

    return run_in_transaction(_op)


def add_item(
    cart_id: int,
    *,
    code: str | None = None,
    article_id: str | None = None,
    size_internal: str | None = None,
    quantity: int = 1,
    discount_percent=None,
) -> CartLine:
    """Add a variant (by scan code or identity); repeat adds increase the line."""
    quantity = _positive_quantity(quantity)
    try:
        discount = to_percent(discount_percent) if discount_percent is not None else None
    except PricingError as e:
        raise PosError(str(e))

    def _op() -> CartLine:
        cart = _open_cart_or_raise(cart_id)
        ledger = StockLedger()
        if code:
            variant = resolve_code(code)
            if variant is None:
                raise CodeNotRecognizedError("Article ID not recognized", details={"code": code.strip()})
        elif article_id and size_internal:
            variant = ledger.get_variant(article_id, size_internal)
        else:
            raise PosError("code or article_id and size_internal are required")

        line = next(
            (cl for cl in cart.lines if (cl.article_id, cl.size_internal) == (variant.article_id, variant.size_internal)),
            None,
        )
        new_qty = (line.quantity if line else 0) + quantity
        _check_available(ledger, cart, variant.article_id, variant.size_internal, new_qty)

        if line is None:
            line = CartLine(
                cart_id=cart.id,
                article_id=variant.article_id,
                size_internal=variant.size_internal,
                quantity=new_qty,
                discount_percent=discount,
            )
            cart.lines.append(line)
        else:
            line.quantity = new_qty
            if discount is not None:
                line.discount_percent = discount
        db.session.flush()
        return line

    return run_in_transaction(_op)


def _get_line(cart: Cart, line_id: int) -> CartLine:
    line = next((cl for cl in cart.lines if cl.id == line_id), None)
    if line is None:
        raise PosError(f"Line {line_id} is not in cart {cart.id}")
    return line


def set_line_quantity(cart_id: int, line_id: int, quantity: int) -> CartLine:
    quantity = _positive_quantity(quantity)

    def _op() -> CartLine:
        cart = _open_cart_or_raise(cart_id)
        line = _get_line(cart, line_id)
        _check_available(StockLedger(), cart, line.article_id, line.size_internal, quantity)
        line.quantity = quantity
        db.session.flush()
        return line

    return run_in_transaction(_op)


def remove_line(cart_id: int, line_id: int) -> Cart:
    def _op() -> Cart:
        cart = _open_cart_or_raise(cart_id)
        cart.lines.remove(_get_line(cart, line_id))
        db.session.flush()
        return cart

    return run_in_transaction(_op)


def abandon_cart(cart_id: int) -> Cart:
    """Release the cart's holds; nothing reaches the ledger."""
    def _op() -> Cart:
        cart = _open_cart_or_raise(cart_id)
        cart.status = ABANDONED
        db.session.flush()
        return cart

    return run_in_transaction(_op)


def checkout(
    cart_id: int,
    *,
    payment_method,
    amount_paid_cents: int | None = None,
    order_discount_percent=None,
    cash_received_cents: int | None = None,
    now: datetime | None = None,
) -> Transaction:
    """Turn an open cart into a Sale transaction."""
    def _op() -> Transaction:
        cart = _open_cart_or_raise(cart_id)
        if not cart.lines:
            raise PosError("Cart is empty")
        if get_open_session(cart.cashier_name) is None:
            raise PosError(f"{cart.cashier_name} has no open shift")

        document_number = next_document_number(document_type=SALE_SEQUENCE[0], prefix=SALE_SEQUENCE[1])

        ledger = StockLedger()
        recorder = MovementRecorder()
        drafts = []
        for line in cart.lines:
            variant = ledger.get_variant(line.article_id, line.size_internal, lock=True)
            _check_available(ledger, cart, line.article_id, line.size_internal, line.quantity)

            change = ledger.adjust_store(line.article_id, line.size_internal, -line.quantity)
            movement = recorder.record_change(
                MovementKind.SALE,
                change,
                cart.cashier_name,
                f"POS sale {document_number}",
                channel=Channel.SALE,
                reference=document_number,
            )
            article = variant.article
            discount = line.discount_percent if line.discount_percent is not None else article.discount_percent
            drafts.append(LineItemDraft(
                movement=movement,
                article_id=variant.article_id,
                article_name=article.name,
                category=article.category,
                size_label=variant.size_label,
                size_internal=variant.size_internal,
                quantity=line.quantity,
                unit_price_cents=variant.unit_price_cents,
                line_discount_percent=discount,
            ))

        occurred_at = now or commit_timestamp(drafts)
        tag = tag_for(occurred_at)
        tx = TransactionRecorder().commit(
            TransactionType.SALE,
            drafts,
            PaymentInfo(
                method=payment_method,
                amount_paid_cents=amount_paid_cents,
                cash_received_cents=cash_received_cents,
                order_discount_percent=order_discount_percent,
            ),
            ChannelDetails(
                cashier_name=cart.cashier_name,
                shift=tag.shift,
                business_date=tag.business_date,
                occurred_at=occurred_at,
                customer_id=cart.customer_id,
                document_number=document_number,
            ),
        )

        cart.status = CHECKED_OUT
        cart.transaction_id = tx.id
        db.session.flush()

        details = f"{tx.document_number} total {tx.total_cents} ({tx.payment_method})"
        if tx.is_partial:
            details += f", balance {tx.balance_cents}"
        append_audit_event(
            actor=cart.cashier_name,
            action="Sale",
            details=details,
            entity_type="transaction",
            entity_id=tx.id,
            occurred_at=occurred_at,
        )
        return tx

    tx = run_in_transaction(_op)
    if tx.is_partial:
        current_app.logger.info("Partial payment on %s: balance %d", tx.document_number, tx.balance_cents)
    return tx


def process_return(transaction_id: int, *, actor: str, now: datetime | None = None) -> Transaction:
    """Return every line of a Sale back to store stock."""
    if not actor or not actor.strip():
        raise PosError("actor is required")

    def _op() -> Transaction:
        recorder = TransactionRecorder()
        original = recorder.get_transaction(transaction_id)
        if original is None:
            raise PosError(f"Transaction {transaction_id} not found")
        if original.type != TransactionType.SALE.value:
            raise PosError("Only Sale transactions can be returned", details={"type": original.type})
        already = db.session.query(Transaction).filter_by(original_transaction_id=original.id).first()
        if already is not None:
            raise PosError(
                f"{original.document_number} was already returned as {already.document_number}",
                details={"return_transaction_id": already.id},
            )

        document_number = next_document_number(document_type=RETURN_SEQUENCE[0], prefix=RETURN_SEQUENCE[1])

        ledger = StockLedger()
        movements = MovementRecorder()
        drafts = []
        for line in original.lines:
            try:
                change = ledger.adjust_store(line.article_id, line.size_internal, line.quantity)
            except VariantNotFoundError:
                raise PosError(
                    f"{line.article_id}-{line.size_internal} no longer exists; cannot restock",
                    details={"article_id": line.article_id, "size_internal": line.size_internal},
                )
            movement = movements.record_change(
                MovementKind.RETURN,
                change,
                actor.strip(),
                f"Return {document_number} of {original.document_number}",
                channel=Channel.SALE,
                reference=document_number,
            )
            drafts.append(LineItemDraft(
                movement=movement,
                article_id=line.article_id,
                article_name=line.article_name,
                category=line.category,
                size_label=line.size_label,
                size_internal=line.size_internal,
                quantity=-line.quantity,
                unit_price_cents=line.unit_price_cents,
                line_discount_percent=line.line_discount_percent,
            ))

        occurred_at = now or commit_timestamp(drafts)
        tag = tag_for(occurred_at)
        tx = recorder.commit(
            TransactionType.RETURN,
            drafts,
            PaymentInfo(
                method=original.payment_method,
                amount_paid_cents=-original.amount_paid_cents,
                order_discount_percent=original.order_discount_percent,
            ),
            ChannelDetails(
                cashier_name=actor.strip(),
                shift=tag.shift,
                business_date=tag.business_date,
                occurred_at=occurred_at,
                customer_id=original.customer_id,
                original_transaction_id=original.id,
                document_number=document_number,
            ),
        )
        append_audit_event(
            actor=actor.strip(),
            action="Return",
            details=f"{tx.document_number} for {original.document_number}, refund {-tx.amount_paid_cents}",
            entity_type="transaction",
            entity_id=tx.id,
            occurred_at=occurred_at,
        )
        return tx

    return run_in_transaction(_op)
