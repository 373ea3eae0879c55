"""
TransactionRecorder tests.

Verifies:
- A line cannot be committed without its flushed StockMovement
- PR lines are priced at zero
- Totals follow line and order discounts with half-up rounding
- Sales accept partial payment; overpayment is rejected
"""

from datetime import date

import pytest

from boutique.extensions import db
from boutique.models import StockMovement, MovementKind, Channel, TransactionType, Shift
from boutique.services.ledger_service import StockLedger
from boutique.services.movement_service import MovementRecorder
from boutique.services.transaction_service import (
    TransactionRecorder,
    LineItemDraft,
    PaymentInfo,
    ChannelDetails,
    TransactionError,
    CommitOrderError,
)


BUSINESS_DATE = date(2026, 3, 2)


def _details(**kwargs):
    return ChannelDetails(cashier_name="Sara", shift=Shift.MORNING, business_date=BUSINESS_DATE, **kwargs)


def _sold(quantity, *, size="M"):
    change = StockLedger().adjust_store("SKU-1", size, -quantity)
    return MovementRecorder().record_change(MovementKind.SALE, change, "Sara", channel=Channel.SALE)


def _shipped(quantity, channel, *, size="M"):
    change = StockLedger().adjust_warehouse("SKU-1", size, -quantity)
    return MovementRecorder().record_change(MovementKind.OUTWARD, change, "Omar", channel=channel)


def _draft(movement, quantity, unit=6500, discount=None):
    return LineItemDraft(
        movement=movement,
        article_id=movement.article_id,
        article_name=movement.article_name,
        size_label=movement.size_internal,
        size_internal=movement.size_internal,
        quantity=quantity,
        unit_price_cents=unit,
        line_discount_percent=discount,
    )


class TestCommitOrder:

    def test_unrecorded_movement_rejected(self, dress):
        orphan = StockMovement(article_id="SKU-1", article_name="Linen Wrap Dress", size_internal="M")
        with pytest.raises(CommitOrderError):
            TransactionRecorder().commit(TransactionType.SALE, [_draft(orphan, 1)], PaymentInfo(method="Cash"), _details())

    def test_wrong_movement_kind_rejected(self, dress):
        movement = _shipped(1, Channel.SHOPIFY)
        with pytest.raises(CommitOrderError):
            TransactionRecorder().commit(TransactionType.SALE, [_draft(movement, 1)], PaymentInfo(method="Cash"), _details())

    def test_channel_must_match_type(self, dress):
        movement = _shipped(1, Channel.FNF)
        with pytest.raises(CommitOrderError):
            TransactionRecorder().commit(TransactionType.SHOPIFY, [_draft(movement, 1)], PaymentInfo(), _details())

    def test_lines_reference_movements(self, dress):
        movement = _sold(2)
        tx = TransactionRecorder().commit(TransactionType.SALE, [_draft(movement, 2)], PaymentInfo(method="Card"), _details())
        db.session.commit()

        assert tx.lines[0].movement_id == movement.id
        assert tx.document_number == "S-0001"


class TestPricing:

    def test_pr_lines_are_free(self, dress):
        movement = _shipped(2, Channel.PR)
        tx = TransactionRecorder().commit(
            TransactionType.PR,
            [_draft(movement, 2, unit=6500)],
            PaymentInfo(),
            _details(recipient_name="Mona", external_order_id="PR-7"),
        )
        db.session.commit()

        assert tx.lines[0].unit_price_cents == 0
        assert tx.total_cents == 0
        assert tx.payment_method == "N/A"
        assert tx.document_number == "MV-0001"

    def test_line_and_order_discounts(self, dress):
        first = _sold(1)
        second = _sold(1, size="1")
        tx = TransactionRecorder().commit(
            TransactionType.SALE,
            [_draft(first, 1, unit=999, discount="12.5"), _draft(second, 1, unit=6500)],
            PaymentInfo(method="Cash", order_discount_percent=10),
            _details(),
        )
        db.session.commit()

        # 999 * 0.875 = 874.125 -> 874
        assert tx.lines[0].effective_unit_price_cents == 874
        assert tx.subtotal_cents == 874 + 6500
        # 7374 * 0.9 = 6636.6 -> 6637
        assert tx.total_cents == 6637

    def test_dispatch_paid_in_full(self, dress):
        movement = _shipped(5, Channel.SHOPIFY)
        tx = TransactionRecorder().commit(
            TransactionType.SHOPIFY,
            [_draft(movement, 5)],
            PaymentInfo(method="Cash", amount_paid_cents=1),
            _details(external_order_id="SHOP-100", recipient_name="Layla"),
        )
        db.session.commit()

        assert tx.payment_method == "N/A"
        assert tx.amount_paid_cents == tx.total_cents == 32500
        assert tx.balance_cents == 0


class TestPayment:

    def test_partial_payment(self, dress):
        movement = _sold(2)
        tx = TransactionRecorder().commit(
            TransactionType.SALE,
            [_draft(movement, 2)],
            PaymentInfo(method="Cash", amount_paid_cents=5000),
            _details(),
        )
        db.session.commit()

        assert tx.total_cents == 13000
        assert tx.is_partial is True
        assert tx.balance_cents == 8000

    def test_cash_change(self, dress):
        movement = _sold(1)
        tx = TransactionRecorder().commit(
            TransactionType.SALE,
            [_draft(movement, 1)],
            PaymentInfo(method="Cash", cash_received_cents=7000),
            _details(),
        )
        db.session.commit()

        assert tx.amount_paid_cents == 6500
        assert tx.change_cents == 500

    def test_overpayment_rejected(self, dress):
        movement = _sold(1)
        with pytest.raises(TransactionError):
            TransactionRecorder().commit(
                TransactionType.SALE, [_draft(movement, 1)],
                PaymentInfo(method="Card", amount_paid_cents=6501), _details(),
            )

    @pytest.mark.parametrize("method", ["N/A", "Cheque"])
    def test_sale_needs_cash_or_card(self, dress, method):
        movement = _sold(1)
        with pytest.raises(TransactionError):
            TransactionRecorder().commit(TransactionType.SALE, [_draft(movement, 1)], PaymentInfo(method=method), _details())

    def test_negative_quantity_only_on_returns(self, dress):
        movement = _sold(1)
        with pytest.raises(TransactionError):
            TransactionRecorder().commit(TransactionType.SALE, [_draft(movement, -1)], PaymentInfo(method="Cash"), _details())


class TestQueries:

    def test_filters(self, dress):
        sale = TransactionRecorder().commit(
            TransactionType.SALE, [_draft(_sold(1), 1)], PaymentInfo(method="Cash"), _details(),
        )
        TransactionRecorder().commit(
            TransactionType.FNF, [_draft(_shipped(1, Channel.FNF), 1)], PaymentInfo(),
            _details(recipient_name="Aunt Rana", external_order_id="FNF-1"),
        )
        db.session.commit()
        recorder = TransactionRecorder()

        assert len(recorder.list_transactions()) == 2
        assert [t.type for t in recorder.list_transactions(type="FnF")] == ["FnF"]
        assert len(recorder.transactions_for_business_date(BUSINESS_DATE)) == 2
        assert recorder.get_by_document_number("S-0001").id == sale.id
