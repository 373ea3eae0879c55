# Overview: Read-only stock, sales and channel reports over the ledger.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_

from boutique.extensions import db
from boutique.models import (
    Article,
    Variant,
    Transaction,
    Channel,
)
from boutique.models.enums import coerce_enum
from boutique.time_utils import parse_iso_datetime, to_utc_z
from .movement_service import MovementRecorder
from .transaction_service import DISPATCH_TYPES


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def _parse_range(start, end) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if isinstance(start, str) else start
        end_dt = parse_iso_datetime(end) if isinstance(end, str) else end
    except ValueError:
        raise ReportError("start/end must be ISO-8601 datetimes")
    if start_dt and end_dt and start_dt > end_dt:
        raise ReportError("start must be before end")
    return start_dt, end_dt


def stock_report(*, category: str | None = None, search: str | None = None) -> dict:
    """Per-variant balances and stock value at unit price."""
    q = db.session.query(Variant, Article).join(Article, Article.id == Variant.article_id)
    if category:
        q = q.filter(Article.category == category)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Article.id.ilike(like), Article.name.ilike(like)))

    rows = []
    by_category: dict[str, dict] = {}
    totals = {"store_qty": 0, "warehouse_qty": 0, "total_qty": 0, "value_cents": 0}

    for variant, article in q.order_by(Article.id, Variant.position).all():
        unit = variant.price_cents if variant.price_cents is not None else article.price_cents
        total_qty = variant.store_qty + variant.warehouse_qty
        value = total_qty * unit
        rows.append({
            "article_id": article.id,
            "article_name": article.name,
            "category": article.category,
            "size_label": variant.size_label,
            "size_internal": variant.size_internal,
            "store_qty": variant.store_qty,
            "warehouse_qty": variant.warehouse_qty,
            "total_qty": total_qty,
            "unit_price_cents": unit,
            "value_cents": value,
        })
        totals["store_qty"] += variant.store_qty
        totals["warehouse_qty"] += variant.warehouse_qty
        totals["total_qty"] += total_qty
        totals["value_cents"] += value

        bucket = by_category.setdefault(
            article.category or "Uncategorized",
            {"store_qty": 0, "warehouse_qty": 0, "value_cents": 0},
        )
        bucket["store_qty"] += variant.store_qty
        bucket["warehouse_qty"] += variant.warehouse_qty
        bucket["value_cents"] += value

    return {"rows": rows, "totals": totals, "by_category": by_category}


def sales_summary(*, start=None, end=None) -> dict:
    """
    Revenue split between the store (Sale, Return) and warehouse channels,
    counts per transaction type and daily rows by business date.
    """
    start_dt, end_dt = _parse_range(start, end)

    q = db.session.query(
        Transaction.type,
        func.count(Transaction.id),
        func.coalesce(func.sum(Transaction.total_cents), 0),
        func.coalesce(func.sum(Transaction.amount_paid_cents), 0),
        func.coalesce(func.sum(Transaction.balance_cents), 0),
    )
    if start_dt:
        q = q.filter(Transaction.occurred_at >= start_dt)
    if end_dt:
        q = q.filter(Transaction.occurred_at <= end_dt)

    dispatch_values = {t.value for t in DISPATCH_TYPES}
    by_type = {}
    revenue = store_revenue = warehouse_revenue = collected = outstanding = 0
    for tx_type, count, total, paid, balance in q.group_by(Transaction.type).all():
        by_type[tx_type] = {"count": int(count), "total_cents": int(total)}
        revenue += int(total)
        collected += int(paid)
        outstanding += int(balance)
        if tx_type in dispatch_values:
            warehouse_revenue += int(total)
        else:
            store_revenue += int(total)

    daily_q = db.session.query(
        Transaction.business_date,
        func.count(Transaction.id),
        func.coalesce(func.sum(Transaction.total_cents), 0),
    )
    if start_dt:
        daily_q = daily_q.filter(Transaction.occurred_at >= start_dt)
    if end_dt:
        daily_q = daily_q.filter(Transaction.occurred_at <= end_dt)
    daily = [
        {"business_date": bdate.isoformat(), "count": int(count), "total_cents": int(total)}
        for bdate, count, total in daily_q.group_by(Transaction.business_date).order_by(Transaction.business_date).all()
    ]

    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "revenue_cents": revenue,
        "store_revenue_cents": store_revenue,
        "warehouse_revenue_cents": warehouse_revenue,
        "collected_cents": collected,
        "outstanding_balance_cents": outstanding,
        "by_type": by_type,
        "daily": daily,
    }


def channel_movements(channel, *, start=None, end=None, limit: int | None = 500) -> dict:
    """Movements tagged with one channel, with unit totals per location."""
    try:
        channel = coerce_enum(Channel, channel)
    except ValueError as e:
        raise ReportError(str(e))
    start_dt, end_dt = _parse_range(start, end)

    movements = MovementRecorder().list_movements(channel=channel, start=start_dt, end=end_dt, limit=limit)
    return {
        "channel": channel.value,
        "count": len(movements),
        "store_units": sum(m.store_delta for m in movements),
        "warehouse_units": sum(m.warehouse_delta for m in movements),
        "movements": [m.to_dict() for m in movements],
    }

