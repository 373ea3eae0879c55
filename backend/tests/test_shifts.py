"""
Shift tests.

Verifies:
- Morning is 09:00-20:59 on the store clock, Night covers the rest
- After-midnight hours belong to the previous business date
- End-of-shift settlement totals the session window
"""

from datetime import date, datetime, timedelta

import pytest

from boutique.extensions import db
from boutique.models import Shift, ShiftSession, AuditEvent
from boutique.services import pos_service
from boutique.services import shift_service
from boutique.services.shift_service import ShiftError, classify_moment, tag_for


MORNING = datetime(2026, 3, 2, 10, 0, 0)


class TestClassification:

    @pytest.mark.parametrize("hour,minute,shift,business_date", [
        (8, 59, Shift.NIGHT, date(2026, 3, 1)),
        (9, 0, Shift.MORNING, date(2026, 3, 2)),
        (20, 59, Shift.MORNING, date(2026, 3, 2)),
        (21, 0, Shift.NIGHT, date(2026, 3, 2)),
        (23, 59, Shift.NIGHT, date(2026, 3, 2)),
        (0, 30, Shift.NIGHT, date(2026, 3, 1)),
    ])
    def test_boundaries(self, hour, minute, shift, business_date):
        tag = classify_moment(datetime(2026, 3, 2, hour, minute))
        assert tag.shift == shift
        assert tag.business_date == business_date

    def test_uses_store_clock(self, app):
        app.config["STORE_TIMEZONE"] = "Asia/Dubai"
        try:
            # 05:30 UTC is 09:30 in Dubai
            tag = tag_for(datetime(2026, 3, 2, 5, 30))
        finally:
            app.config["STORE_TIMEZONE"] = "UTC"
        assert tag.shift == Shift.MORNING
        assert tag.business_date == date(2026, 3, 2)


class TestSessions:

    def test_start_tags_session(self, db_session):
        session = shift_service.start_shift("Sara", now=datetime(2026, 3, 2, 22, 15))

        assert session.shift == "Night"
        assert session.business_date == date(2026, 3, 2)
        assert db.session.query(AuditEvent).filter_by(action="Start Shift").count() == 1

    def test_one_live_session_per_cashier(self, open_shift):
        with pytest.raises(ShiftError):
            shift_service.start_shift("Sara", now=MORNING)
        shift_service.start_shift("Nadia", now=MORNING)
        assert len(shift_service.list_open_sessions()) == 2

    def test_end_without_session(self, db_session):
        with pytest.raises(ShiftError):
            shift_service.end_shift("Sara")

    def test_end_shift_settles_window(self, dress, open_shift):
        cash_cart = pos_service.open_cart("Sara")
        pos_service.add_item(cash_cart.id, code="SKU-1-M", quantity=3)
        pos_service.checkout(cash_cart.id, payment_method="Cash", now=MORNING + timedelta(hours=1))

        card_cart = pos_service.open_cart("Sara")
        pos_service.add_item(card_cart.id, code="SKU-1-M", quantity=1)
        pos_service.checkout(card_cart.id, payment_method="Card", amount_paid_cents=5000,
                             now=MORNING + timedelta(hours=2))

        preview = shift_service.preview_shift("Sara", now=MORNING + timedelta(hours=3))
        assert preview["transaction_count"] == 2

        record = shift_service.end_shift("Sara", now=MORNING + timedelta(hours=3))

        assert record.total_sales_cents == 19500 + 6500
        assert record.cash_sales_cents == 19500
        assert record.card_sales_cents == 5000
        assert record.transaction_count == 2
        assert record.shift == "Morning"
        assert db.session.query(ShiftSession).count() == 0
        assert [r.id for r in shift_service.list_shift_records(cashier_name="Sara")] == [record.id]

    def test_transactions_outside_window_ignored(self, dress, open_shift):
        cart = pos_service.open_cart("Sara")
        pos_service.add_item(cart.id, code="SKU-1-M", quantity=1)
        pos_service.checkout(cart.id, payment_method="Cash", now=MORNING - timedelta(minutes=5))

        record = shift_service.end_shift("Sara", now=MORNING + timedelta(hours=1))
        assert record.transaction_count == 0
        assert record.total_sales_cents == 0
