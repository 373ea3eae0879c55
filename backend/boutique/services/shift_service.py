# Overview: Shift classification, live cashier sessions and end-of-shift settlement.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import func, case

from ..extensions import db
from ..models import ShiftSession, ShiftRecord, Transaction, Shift, PaymentMethod
from boutique.time_utils import utcnow, to_store_local
from .audit_service import append_audit_event
from .concurrency import run_in_transaction
"""
Shift Rules (authoritative)

Classification (store wall clock):
- 09:00 <= t < 21:00 -> Morning, business date = calendar date of t
- 21:00 <= t < 24:00 -> Night,   business date = calendar date of t
- 00:00 <= t < 09:00 -> Night,   business date = calendar date of t - 1 day

Sessions:
- One live ShiftSession per cashier.
- end_shift snapshots every Transaction with start <= occurred_at <= end
  into a ShiftRecord and deletes the live session.
- Settlement is a point-in-time read; it never touches stock or transactions.
"""

MORNING_START_HOUR = 9
NIGHT_START_HOUR = 21


class ShiftError(Exception):
    """Raised for shift lifecycle violations."""
    pass


@dataclass(frozen=True)
class ShiftTag:
    shift: Shift
    business_date: date


def classify_moment(ts: datetime) -> ShiftTag:
    """Shift slot and business date for a store wall-clock moment."""
    hour = ts.hour
    if MORNING_START_HOUR <= hour < NIGHT_START_HOUR:
        return ShiftTag(Shift.MORNING, ts.date())
    if hour >= NIGHT_START_HOUR:
        return ShiftTag(Shift.NIGHT, ts.date())
    return ShiftTag(Shift.NIGHT, ts.date() - timedelta(days=1))


def tag_for(utc_dt: datetime | None = None) -> ShiftTag:
    """classify_moment for a UTC-naive instant (defaults to now)."""
    return classify_moment(to_store_local(utc_dt or utcnow()))


@dataclass(frozen=True)
class ShiftTotals:
    total_sales_cents: int
    cash_sales_cents: int
    card_sales_cents: int
    transaction_count: int

    def to_dict(self) -> dict:
        return {
            "total_sales_cents": self.total_sales_cents,
            "cash_sales_cents": self.cash_sales_cents,
            "card_sales_cents": self.card_sales_cents,
            "transaction_count": self.transaction_count,
        }


def _window_totals(start: datetime, end: datetime) -> ShiftTotals:
    cash = case((Transaction.payment_method == PaymentMethod.CASH.value, Transaction.amount_paid_cents), else_=0)
    card = case((Transaction.payment_method == PaymentMethod.CARD.value, Transaction.amount_paid_cents), else_=0)
    total, cash_total, card_total, count = db.session.query(
        func.coalesce(func.sum(Transaction.total_cents), 0),
        func.coalesce(func.sum(cash), 0),
        func.coalesce(func.sum(card), 0),
        func.count(Transaction.id),
    ).filter(
        Transaction.occurred_at >= start,
        Transaction.occurred_at <= end,
    ).one()
    return ShiftTotals(int(total), int(cash_total), int(card_total), int(count))


def get_open_session(cashier_name: str) -> ShiftSession | None:
    return db.session.query(ShiftSession).filter_by(cashier_name=cashier_name).first()


def list_open_sessions() -> list[ShiftSession]:
    return db.session.query(ShiftSession).order_by(ShiftSession.started_at).all()


def start_shift(cashier_name: str, now: datetime | None = None) -> ShiftSession:
    """Open a live session for the cashier; tagged by the store clock."""
    if not cashier_name or not cashier_name.strip():
        raise ShiftError("cashier_name is required")
    cashier_name = cashier_name.strip()

    def _op() -> ShiftSession:
        if get_open_session(cashier_name) is not None:
            raise ShiftError(f"{cashier_name} already has an open shift")
        started_at = now or utcnow()
        tag = tag_for(started_at)
        session = ShiftSession(
            cashier_name=cashier_name,
            started_at=started_at,
            shift=tag.shift.value,
            business_date=tag.business_date,
        )
        db.session.add(session)
        db.session.flush()
        append_audit_event(
            actor=cashier_name,
            action="Start Shift",
            details=f"{tag.shift.value} shift, business date {tag.business_date.isoformat()}",
            entity_type="shift_session",
            entity_id=session.id,
            occurred_at=started_at,
        )
        return session

    return run_in_transaction(_op)


def preview_shift(cashier_name: str, now: datetime | None = None) -> dict:
    """Settlement numbers for the live session without closing it."""
    session = get_open_session(cashier_name)
    if session is None:
        raise ShiftError(f"{cashier_name} has no open shift")
    end = now or utcnow()
    data = session.to_dict()
    data.update(_window_totals(session.started_at, end).to_dict())
    return data


def end_shift(cashier_name: str, now: datetime | None = None) -> ShiftRecord:
    """Snapshot the session window into a ShiftRecord and close the session."""
    def _op() -> ShiftRecord:
        session = get_open_session(cashier_name)
        if session is None:
            raise ShiftError(f"{cashier_name} has no open shift")
        ended_at = now or utcnow()
        if ended_at < session.started_at:
            raise ShiftError("Shift cannot end before it started")

        totals = _window_totals(session.started_at, ended_at)
        record = ShiftRecord(
            cashier_name=session.cashier_name,
            started_at=session.started_at,
            ended_at=ended_at,
            shift=session.shift,
            business_date=session.business_date,
            total_sales_cents=totals.total_sales_cents,
            cash_sales_cents=totals.cash_sales_cents,
            card_sales_cents=totals.card_sales_cents,
            transaction_count=totals.transaction_count,
        )
        db.session.add(record)
        db.session.delete(session)
        db.session.flush()
        append_audit_event(
            actor=cashier_name,
            action="End Shift",
            details=f"{totals.transaction_count} transactions, total {totals.total_sales_cents}",
            entity_type="shift_record",
            entity_id=record.id,
            occurred_at=ended_at,
        )
        return record

    return run_in_transaction(_op)


def list_shift_records(
    *,
    cashier_name: str | None = None,
    business_date: date | None = None,
    shift=None,
    limit: int = 100,
) -> list[ShiftRecord]:
    q = db.session.query(ShiftRecord)
    if cashier_name:
        q = q.filter(ShiftRecord.cashier_name == cashier_name)
    if business_date:
        q = q.filter(ShiftRecord.business_date == business_date)
    if shift:
        q = q.filter(ShiftRecord.shift == (shift.value if isinstance(shift, Shift) else shift))
    return q.order_by(ShiftRecord.ended_at.desc(), ShiftRecord.id.desc()).limit(limit).all()
