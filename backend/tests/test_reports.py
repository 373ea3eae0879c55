"""
Reporting tests: stock valuation, sales split by location, channel queries.
"""

from datetime import datetime

import pytest

from boutique.services import pos_service
from boutique.services import reporting_service
from boutique.services.distribution_service import dispatch
from boutique.services.reporting_service import ReportError


MORNING = datetime(2026, 3, 2, 10, 0, 0)


@pytest.fixture
def trading_day(dress, open_shift):
    cart = pos_service.open_cart("Sara")
    pos_service.add_item(cart.id, code="SKU-1-M", quantity=3)
    pos_service.checkout(cart.id, payment_method="Cash", amount_paid_cents=10000, now=MORNING)
    dispatch("Shopify", [{"article_id": "SKU-1", "size_internal": "M", "quantity": 5}],
             actor="Omar", recipient_name="Layla", order_reference="SHOP-100")
    dispatch("PR", [{"code": "SKU-1-1", "quantity": 2}],
             actor="Omar", recipient_name="Mona", order_reference="PR-7")


def test_stock_report(dress):
    report = reporting_service.stock_report()

    assert report["totals"] == {
        "store_qty": 12,
        "warehouse_qty": 45,
        "total_qty": 57,
        "value_cents": 57 * 6500,
    }
    assert report["by_category"]["Summer Edit"]["warehouse_qty"] == 45
    assert [r["size_label"] for r in report["rows"]] == ["S", "M", "L"]


def test_sales_summary(trading_day):
    summary = reporting_service.sales_summary()

    assert summary["store_revenue_cents"] == 19500
    assert summary["warehouse_revenue_cents"] == 32500
    assert summary["revenue_cents"] == 52000
    assert summary["outstanding_balance_cents"] == 9500
    assert summary["by_type"]["PR"] == {"count": 1, "total_cents": 0}


def test_channel_movements(trading_day):
    report = reporting_service.channel_movements("Shopify")

    assert report["count"] == 1
    assert report["warehouse_units"] == -5
    assert report["store_units"] == 0
    assert report["movements"][0]["reference"] == "SHOP-100"


def test_unknown_channel(db_session):
    with pytest.raises(ReportError):
        reporting_service.channel_movements("Carrier Pigeon")


def test_bad_range(db_session):
    with pytest.raises(ReportError):
        reporting_service.sales_summary(start="2026-03-05T00:00:00Z", end="2026-03-01T00:00:00Z")
