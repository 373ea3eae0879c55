# Overview: MovementRecorder; append-only stock movement log, queries and replay.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, or_

from ..extensions import db
from ..models import StockMovement, Variant, MovementKind, Location, Channel
from ..models.enums import coerce_enum
from boutique.time_utils import utcnow
"""
Movement Log Invariants (authoritative)

- One StockMovement per ledger mutation, recorded after the mutation and in
  the same DB transaction.
- Rows are immutable; nothing in this module updates or deletes them.
- post_store_qty / post_warehouse_qty are the variant balances immediately
  after the write.
- occurred_at is monotonic: never earlier than the latest recorded movement.
  Combined with the (occurred_at, id) sort this keeps per-variant order equal
  to the serialized mutation order.
- Replay: summing store_delta / warehouse_delta from (0, 0) in that order
  reproduces the live balances.
"""

# Kinds whose location is fixed
_FIXED_LOCATIONS = {
    MovementKind.SALE: Location.STORE,
    MovementKind.RETURN: Location.STORE,
    MovementKind.OUTWARD: Location.WAREHOUSE,
    MovementKind.TRANSFER: Location.BOTH,
}


class MovementValidationError(ValueError):
    """Raised when a movement is missing identity fields or is malformed."""
    pass


@dataclass(frozen=True)
class ReplayDiscrepancy:
    article_id: str
    size_internal: str
    replay_store: int
    replay_warehouse: int
    live_store: int | None
    live_warehouse: int | None

    def to_dict(self) -> dict:
        return {
            "article_id": self.article_id,
            "size_internal": self.size_internal,
            "replay_store": self.replay_store,
            "replay_warehouse": self.replay_warehouse,
            "live_store": self.live_store,
            "live_warehouse": self.live_warehouse,
        }


def _required(value, name: str) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MovementValidationError(f"{name} is required")
    return value.strip() if isinstance(value, str) else value


def _int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise MovementValidationError(f"{name} must be an integer")
    return value


def _split_delta(kind: MovementKind, location: Location, delta: int) -> tuple[int, int]:
    """Per-location deltas when the caller only knows the primary one."""
    if location == Location.STORE:
        return delta, 0
    if location == Location.WAREHOUSE:
        return 0, delta
    raise MovementValidationError(
        f"{kind.value} movements must supply store_delta and warehouse_delta"
    )


class MovementRecorder:
    """Appends StockMovement rows. Flushes, never commits."""

    def __init__(self, session=None):
        self.session = session or db.session

    def _next_timestamp(self) -> datetime:
        now = utcnow()
        last = self.session.query(func.max(StockMovement.occurred_at)).scalar()
        if last is not None and last > now:
            return last
        return now

    def record(
        self,
        kind,
        article_id: str,
        article_name: str,
        size_internal: str,
        delta: int,
        post_store: int,
        post_warehouse: int,
        actor: str,
        note: str | None = None,
        *,
        location=None,
        channel=None,
        store_delta: int | None = None,
        warehouse_delta: int | None = None,
        requested_quantity: int | None = None,
        reference: str | None = None,
    ) -> StockMovement:
        """
        Append one movement and return it (id assigned).

        delta is the signed quantity applied at the primary location; for
        transfers that is the warehouse side.
        """
        try:
            kind = coerce_enum(MovementKind, kind)
            channel = coerce_enum(Channel, channel) if channel else None
            location = coerce_enum(Location, location) if location else None
        except ValueError as e:
            raise MovementValidationError(str(e))

        article_id = _required(article_id, "article_id")
        article_name = _required(article_name, "article_name")
        size_internal = _required(size_internal, "size_internal")
        actor = _required(actor, "actor")
        delta = _int(delta, "delta")
        post_store = _int(post_store, "post_store")
        post_warehouse = _int(post_warehouse, "post_warehouse")
        if post_store < 0 or post_warehouse < 0:
            raise MovementValidationError("post balances cannot be negative")

        fixed = _FIXED_LOCATIONS.get(kind)
        if fixed is not None:
            if location is not None and location != fixed:
                raise MovementValidationError(f"{kind.value} movements are recorded at {fixed.value}")
            location = fixed
        elif location is None:
            raise MovementValidationError(f"location is required for {kind.value} movements")
        elif location == Location.BOTH:
            raise MovementValidationError("location Both is reserved for transfers")

        if store_delta is None and warehouse_delta is None:
            store_delta, warehouse_delta = _split_delta(kind, location, delta)
        else:
            store_delta = _int(store_delta or 0, "store_delta")
            warehouse_delta = _int(warehouse_delta or 0, "warehouse_delta")

        movement = StockMovement(
            occurred_at=self._next_timestamp(),
            article_id=article_id,
            article_name=article_name,
            size_internal=size_internal,
            kind=kind.value,
            location=location.value,
            channel=channel.value if channel else None,
            quantity_delta=delta,
            store_delta=store_delta,
            warehouse_delta=warehouse_delta,
            requested_quantity=requested_quantity,
            post_store_qty=post_store,
            post_warehouse_qty=post_warehouse,
            actor=actor,
            note=note or None,
            reference=reference,
        )
        self.session.add(movement)
        self.session.flush()
        return movement

    def record_change(self, kind, change, actor: str, note: str | None = None, **kwargs) -> StockMovement:
        """
        Record a movement straight from a LedgerChange.

        The primary delta is the store side unless the change only touched
        the warehouse (or the kind is Outward/Transfer).
        """
        kind = coerce_enum(MovementKind, kind)
        if kind in (MovementKind.OUTWARD, MovementKind.TRANSFER):
            delta = change.warehouse_delta
        elif kind in (MovementKind.SALE, MovementKind.RETURN):
            delta = change.store_delta
        else:
            delta = change.store_delta if change.store_delta else change.warehouse_delta
        return self.record(
            kind,
            change.article_id,
            change.article_name,
            change.size_internal,
            delta,
            change.store_qty,
            change.warehouse_qty,
            actor,
            note,
            store_delta=change.store_delta,
            warehouse_delta=change.warehouse_delta,
            requested_quantity=change.requested,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_movements(
        self,
        *,
        search: str | None = None,
        kind=None,
        channel=None,
        article_id: str | None = None,
        size_internal: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = 500,
    ) -> list[StockMovement]:
        """Reverse-chronological movement ledger with optional filters (end inclusive)."""
        q = self.session.query(StockMovement)
        if kind:
            q = q.filter(StockMovement.kind == coerce_enum(MovementKind, kind).value)
        if channel:
            q = q.filter(StockMovement.channel == coerce_enum(Channel, channel).value)
        if article_id:
            q = q.filter(StockMovement.article_id == article_id)
        if size_internal:
            q = q.filter(StockMovement.size_internal == size_internal)
        if start:
            q = q.filter(StockMovement.occurred_at >= start)
        if end:
            q = q.filter(StockMovement.occurred_at <= end)
        if search:
            like = f"%{search.strip()}%"
            q = q.filter(or_(
                StockMovement.article_id.ilike(like),
                StockMovement.article_name.ilike(like),
                StockMovement.note.ilike(like),
                StockMovement.reference.ilike(like),
            ))
        q = q.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        if limit:
            q = q.limit(limit)
        return q.all()

    def variant_history(self, article_id: str, size_internal: str) -> list[StockMovement]:
        """Per-variant audit trail, newest first."""
        return self.list_movements(article_id=article_id, size_internal=size_internal, limit=None)

    def replay_variant(self, article_id: str, size_internal: str) -> tuple[int, int]:
        """Balances obtained by summing every recorded delta from (0, 0)."""
        store, warehouse = self.session.query(
            func.coalesce(func.sum(StockMovement.store_delta), 0),
            func.coalesce(func.sum(StockMovement.warehouse_delta), 0),
        ).filter(
            StockMovement.article_id == article_id,
            StockMovement.size_internal == size_internal,
        ).one()
        return int(store), int(warehouse)

    def verify_variant(self, article_id: str, size_internal: str) -> ReplayDiscrepancy | None:
        """None when replay matches the live balances."""
        replay_store, replay_warehouse = self.replay_variant(article_id, size_internal)
        variant = self.session.query(Variant).filter_by(
            article_id=article_id, size_internal=size_internal
        ).first()
        if variant is None:
            # Deleted article: history is kept, there is nothing live to compare
            return None
        if (replay_store, replay_warehouse) == (variant.store_qty, variant.warehouse_qty):
            return None
        return ReplayDiscrepancy(
            article_id=article_id,
            size_internal=size_internal,
            replay_store=replay_store,
            replay_warehouse=replay_warehouse,
            live_store=variant.store_qty,
            live_warehouse=variant.warehouse_qty,
        )

    def verify_all(self) -> list[ReplayDiscrepancy]:
        """Check every live variant against its movement log."""
        out = []
        for article_id, size_internal in (
            self.session.query(Variant.article_id, Variant.size_internal)
            .order_by(Variant.article_id, Variant.position)
            .all()
        ):
            discrepancy = self.verify_variant(article_id, size_internal)
            if discrepancy is not None:
                out.append(discrepancy)
        return out
