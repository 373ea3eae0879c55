from __future__ import annotations

from ..extensions import db
from boutique.time_utils import to_utc_z


class StockMovement(db.Model):
    """
    Append-only audit record of one variant quantity change.

    IMMUTABLE: rows are never updated or deleted.

    REPLAY: post_store_qty / post_warehouse_qty equal the variant balances
    immediately after the write. Summing store_delta / warehouse_delta in
    (occurred_at, id) order from zero reproduces the live balances.

    article_id is deliberately NOT a foreign key: history outlives the
    article it describes.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_variant_occurred", "article_id", "size_internal", "occurred_at"),
        db.Index("ix_movements_channel_occurred", "channel", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # Denormalized identity (survives article rename / delete)
    article_id = db.Column(db.String(64), nullable=False, index=True)
    article_name = db.Column(db.String(255), nullable=False)
    size_internal = db.Column(db.String(32), nullable=False)

    kind = db.Column(db.String(16), nullable=False, index=True)      # Sale, Inward, Outward, Transfer, Adjustment, Return
    location = db.Column(db.String(16), nullable=False)              # Store, Warehouse, Both
    channel = db.Column(db.String(16), nullable=True, index=True)    # Sale, Shopify, PreOrder, PR, FnF, Transfer

    # Signed delta applied at the primary location (warehouse side for transfers)
    quantity_delta = db.Column(db.Integer, nullable=False)
    store_delta = db.Column(db.Integer, nullable=False, default=0)
    warehouse_delta = db.Column(db.Integer, nullable=False, default=0)
    requested_quantity = db.Column(db.Integer, nullable=True)

    post_store_qty = db.Column(db.Integer, nullable=False)
    post_warehouse_qty = db.Column(db.Integer, nullable=False)

    actor = db.Column(db.String(128), nullable=False)
    note = db.Column(db.Text, nullable=True)
    reference = db.Column(db.String(64), nullable=True, index=True)  # document number / order reference

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "occurred_at": to_utc_z(self.occurred_at),
            "article_id": self.article_id,
            "article_name": self.article_name,
            "size_internal": self.size_internal,
            "kind": self.kind,
            "location": self.location,
            "channel": self.channel,
            "quantity_delta": self.quantity_delta,
            "store_delta": self.store_delta,
            "warehouse_delta": self.warehouse_delta,
            "requested_quantity": self.requested_quantity,
            "post_store_qty": self.post_store_qty,
            "post_warehouse_qty": self.post_warehouse_qty,
            "actor": self.actor,
            "note": self.note,
            "reference": self.reference,
        }


class AuditEvent(db.Model):
    """
    Operator audit log (logins aside): shifts, sales, dispatches, catalog edits.

    Append-only. Written inside the same DB transaction as the event it records.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_action_occurred", "action", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    actor = db.Column(db.String(128), nullable=False)
    action = db.Column(db.String(64), nullable=False, index=True)   # e.g. "Sale", "Inventory Out", "Start Shift"
    details = db.Column(db.Text, nullable=True)

    entity_type = db.Column(db.String(64), nullable=True)
    entity_id = db.Column(db.String(64), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "occurred_at": to_utc_z(self.occurred_at),
            "actor": self.actor,
            "action": self.action,
            "details": self.details,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-type document sequences.

    WHY: Prevent race conditions when generating document numbers
    (sales, dispatches, returns, transfer references).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
