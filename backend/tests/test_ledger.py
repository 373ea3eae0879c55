"""
StockLedger tests.

Verifies:
- Balances never go negative (floor at zero, applied delta reported)
- Transfer symmetry in "supplied" credit mode
- Transfer asymmetry in "requested" credit mode (warehouse 5, transfer 10)
- Open carts reduce available_to_sell
"""

import logging

import pytest

from boutique.extensions import db
from boutique.services import pos_service
from boutique.services.ledger_service import (
    StockLedger,
    LedgerError,
    VariantNotFoundError,
    CREDIT_SUPPLIED,
)


# =============================================================================
# NON-NEGATIVITY
# =============================================================================


class TestNonNegativity:

    def test_store_decrement_floors_at_zero(self, dress):
        change = StockLedger().adjust_store("SKU-1", "M", -15)
        db.session.commit()

        assert change.store_qty == 0
        assert change.store_delta == -10
        assert change.requested == -15
        assert change.shortfall == 5
        assert StockLedger().balances("SKU-1", "M") == (0, 40)

    def test_warehouse_decrement_floors_at_zero(self, dress):
        change = StockLedger().adjust_warehouse("SKU-1", "1", -9)
        db.session.commit()

        assert change.warehouse_qty == 0
        assert change.warehouse_delta == -5
        assert StockLedger().balances("SKU-1", "1") == (2, 0)

    def test_increment_reports_full_delta(self, dress):
        change = StockLedger().adjust_warehouse("SKU-1", "M", 7)
        db.session.commit()

        assert change.warehouse_delta == 7
        assert change.shortfall == 0
        assert change.warehouse_qty == 47

    def test_non_integer_delta_rejected(self, dress):
        with pytest.raises(LedgerError):
            StockLedger().adjust_store("SKU-1", "M", 1.5)
        with pytest.raises(LedgerError):
            StockLedger().adjust_store("SKU-1", "M", True)

    def test_unknown_variant(self, dress):
        with pytest.raises(VariantNotFoundError) as exc:
            StockLedger().adjust_store("SKU-1", "XXL", 1)
        assert exc.value.size_internal == "XXL"


# =============================================================================
# TRANSFERS
# =============================================================================


class TestTransfer:

    def test_supplied_mode_is_symmetric(self, dress):
        change = StockLedger().transfer("SKU-1", "1", 10, credit_mode=CREDIT_SUPPLIED)
        db.session.commit()

        assert change.warehouse_delta == -5
        assert change.store_delta == 5
        assert StockLedger().balances("SKU-1", "1") == (7, 0)

    def test_requested_mode_credits_requested_quantity(self, dress, caplog):
        with caplog.at_level(logging.WARNING):
            change = StockLedger().transfer("SKU-1", "1", 10)
        db.session.commit()

        assert change.warehouse_delta == -5
        assert change.store_delta == 10
        assert change.requested == 10
        assert StockLedger().balances("SKU-1", "1") == (12, 0)
        assert "Transfer shortfall" in caplog.text

    def test_mode_comes_from_config(self, app, dress):
        app.config["TRANSFER_CREDIT_MODE"] = CREDIT_SUPPLIED
        change = StockLedger().transfer("SKU-1", "1", 10)
        db.session.commit()

        assert change.store_delta == 5

    def test_full_supply_is_symmetric_in_any_mode(self, dress):
        change = StockLedger().transfer("SKU-1", "M", 10)
        db.session.commit()

        assert (change.store_delta, change.warehouse_delta) == (10, -10)
        assert StockLedger().balances("SKU-1", "M") == (20, 30)

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_quantity_must_be_positive(self, dress, quantity):
        with pytest.raises(LedgerError):
            StockLedger().transfer("SKU-1", "M", quantity)

    def test_unknown_credit_mode(self, dress):
        with pytest.raises(LedgerError):
            StockLedger().transfer("SKU-1", "M", 1, credit_mode="generous")


# =============================================================================
# AVAILABLE TO SELL
# =============================================================================


class TestAvailability:

    def test_open_carts_hold_store_stock(self, dress):
        cart = pos_service.open_cart("Sara")
        pos_service.add_item(cart.id, article_id="SKU-1", size_internal="M", quantity=4)
        ledger = StockLedger()

        assert ledger.held_quantity("SKU-1", "M") == 4
        assert ledger.available_to_sell("SKU-1", "M") == 6
        assert ledger.available_to_sell("SKU-1", "M", exclude_cart_id=cart.id) == 10
        # Holds are not ledger writes
        assert ledger.balances("SKU-1", "M") == (10, 40)

    def test_abandoned_cart_releases_hold(self, dress):
        cart = pos_service.open_cart("Sara")
        pos_service.add_item(cart.id, article_id="SKU-1", size_internal="M", quantity=4)
        pos_service.abandon_cart(cart.id)

        assert StockLedger().available_to_sell("SKU-1", "M") == 10

    def test_available_never_negative(self, dress):
        cart = pos_service.open_cart("Sara")
        pos_service.add_item(cart.id, article_id="SKU-1", size_internal="M", quantity=8)
        StockLedger().adjust_store("SKU-1", "M", -6)
        db.session.commit()

        assert StockLedger().available_to_sell("SKU-1", "M") == 0
