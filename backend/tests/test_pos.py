"""
POS checkout tests.

Verifies:
- Scenario: selling 3 of a variant with store 10 leaves 7 and one Sale movement
- Open carts hold stock against each other
- Checkout needs a live shift; partial payments are allowed
- Returns restock the store once per sale
"""

from datetime import date, datetime, timedelta

import pytest

from boutique.extensions import db
from boutique.models import StockMovement, Cart
from boutique.services import catalog_service
from boutique.services import pos_service
from boutique.services.distribution_service import InsufficientStockError, CodeNotRecognizedError
from boutique.services.ledger_service import StockLedger
from boutique.services.pos_service import PosError
from boutique.services.transaction_service import TransactionError
from boutique.time_utils import utcnow


MORNING = datetime(2026, 3, 2, 10, 0, 0)


def _cart_with(quantity, *, code="SKU-1-M", cashier="Sara"):
    cart = pos_service.open_cart(cashier)
    pos_service.add_item(cart.id, code=code, quantity=quantity)
    return cart


class TestCheckout:

    def test_store_sale(self, dress, open_shift):
        cart = _cart_with(3)
        tx = pos_service.checkout(cart.id, payment_method="Cash", now=MORNING + timedelta(hours=1))

        assert StockLedger().balances("SKU-1", "M") == (7, 40)

        movement = db.session.query(StockMovement).filter_by(kind="Sale").one()
        assert movement.quantity_delta == -3
        assert (movement.post_store_qty, movement.post_warehouse_qty) == (7, 40)
        assert movement.channel == "Sale"
        assert movement.reference == tx.document_number == "S-0001"

        assert tx.type == "Sale"
        assert tx.total_cents == 19500
        assert tx.amount_paid_cents == 19500
        assert tx.shift == "Morning"
        assert tx.business_date == date(2026, 3, 2)
        assert tx.lines[0].movement_id == movement.id
        assert db.session.get(Cart, cart.id).status == pos_service.CHECKED_OUT

    def test_partial_payment(self, dress, open_shift):
        cart = _cart_with(3)
        tx = pos_service.checkout(cart.id, payment_method="Card", amount_paid_cents=10000, now=MORNING)

        assert tx.is_partial is True
        assert tx.balance_cents == 9500

    def test_article_markdown_applies(self, dress, open_shift):
        catalog_service.update_article("SKU-1", {"discount_percent": 10}, actor="Admin")
        cart = _cart_with(1)
        tx = pos_service.checkout(cart.id, payment_method="Cash", now=MORNING)

        assert tx.lines[0].effective_unit_price_cents == 5850
        assert tx.total_cents == 5850

    def test_sale_is_not_older_than_its_movements(self, dress, open_shift):
        # Movement clock runs ahead of the wall clock
        latest = db.session.query(StockMovement).order_by(StockMovement.id.desc()).first()
        latest.occurred_at = utcnow() + timedelta(minutes=5)
        db.session.commit()

        cart = _cart_with(2)
        tx = pos_service.checkout(cart.id, payment_method="Card")

        movement = db.session.query(StockMovement).filter_by(kind="Sale").one()
        assert tx.occurred_at >= movement.occurred_at
        assert tx.lines[0].movement_id == movement.id

    def test_requires_open_shift(self, dress):
        cart = _cart_with(1)
        with pytest.raises(PosError):
            pos_service.checkout(cart.id, payment_method="Cash")
        assert StockLedger().balances("SKU-1", "M") == (10, 40)

    def test_empty_cart(self, dress, open_shift):
        cart = pos_service.open_cart("Sara")
        with pytest.raises(PosError):
            pos_service.checkout(cart.id, payment_method="Cash")

    def test_bad_payment_rolls_back(self, dress, open_shift):
        cart = _cart_with(2)
        with pytest.raises(TransactionError):
            pos_service.checkout(cart.id, payment_method="Card", amount_paid_cents=999999)

        assert StockLedger().balances("SKU-1", "M") == (10, 40)
        assert db.session.query(StockMovement).filter_by(kind="Sale").count() == 0
        assert db.session.get(Cart, cart.id).status == pos_service.OPEN

    def test_checked_out_cart_is_closed(self, dress, open_shift):
        cart = _cart_with(1)
        pos_service.checkout(cart.id, payment_method="Cash", now=MORNING)
        with pytest.raises(PosError):
            pos_service.add_item(cart.id, code="SKU-1-M")


class TestCarts:

    def test_holds_between_carts(self, dress):
        first = _cart_with(8)
        second = pos_service.open_cart("Nadia")
        with pytest.raises(InsufficientStockError):
            pos_service.add_item(second.id, code="SKU-1-M", quantity=3)

        pos_service.abandon_cart(first.id)
        line = pos_service.add_item(second.id, code="SKU-1-M", quantity=3)
        assert line.quantity == 3
        assert StockLedger().balances("SKU-1", "M") == (10, 40)

    def test_repeat_add_increments_line(self, dress):
        cart = _cart_with(2)
        pos_service.add_item(cart.id, article_id="SKU-1", size_internal="M", quantity=1)

        lines = db.session.get(Cart, cart.id).lines
        assert [(cl.size_internal, cl.quantity) for cl in lines] == [("M", 3)]

    def test_edit_line_does_not_count_itself(self, dress):
        cart = _cart_with(6)
        line = db.session.get(Cart, cart.id).lines[0]
        updated = pos_service.set_line_quantity(cart.id, line.id, 10)
        assert updated.quantity == 10
        with pytest.raises(InsufficientStockError):
            pos_service.set_line_quantity(cart.id, line.id, 11)

    def test_remove_line(self, dress):
        cart = _cart_with(2)
        line_id = db.session.get(Cart, cart.id).lines[0].id
        pos_service.remove_line(cart.id, line_id)
        assert db.session.get(Cart, cart.id).lines == []

    def test_unknown_code(self, dress):
        cart = pos_service.open_cart("Sara")
        with pytest.raises(CodeNotRecognizedError):
            pos_service.add_item(cart.id, code="SKU-404")


class TestReturns:

    def test_return_restocks_store(self, dress, open_shift):
        cart = _cart_with(3)
        sale = pos_service.checkout(cart.id, payment_method="Cash", amount_paid_cents=15000, now=MORNING)
        refund = pos_service.process_return(sale.id, actor="Sara", now=MORNING + timedelta(hours=2))

        assert StockLedger().balances("SKU-1", "M") == (10, 40)
        assert refund.type == "Return"
        assert refund.document_number == "R-0001"
        assert refund.original_transaction_id == sale.id
        assert refund.lines[0].quantity == -3
        assert refund.total_cents == -19500
        assert refund.amount_paid_cents == -15000

        movement = db.session.query(StockMovement).filter_by(kind="Return").one()
        assert movement.store_delta == 3
        assert movement.reference == "R-0001"

    def test_only_once(self, dress, open_shift):
        cart = _cart_with(1)
        sale = pos_service.checkout(cart.id, payment_method="Cash", now=MORNING)
        pos_service.process_return(sale.id, actor="Sara")
        with pytest.raises(PosError):
            pos_service.process_return(sale.id, actor="Sara")

    def test_only_sales(self, dress, open_shift):
        cart = _cart_with(1)
        sale = pos_service.checkout(cart.id, payment_method="Cash", now=MORNING)
        refund = pos_service.process_return(sale.id, actor="Sara")
        with pytest.raises(PosError):
            pos_service.process_return(refund.id, actor="Sara")
