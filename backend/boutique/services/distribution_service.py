# Overview: Channel dispatch state machine (Shopify, PreOrder, PR, FnF, Transfer).

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Channel, TransactionType, MovementKind, PaymentMethod
from ..models.enums import coerce_enum
from .audit_service import append_audit_event
from .catalog_service import resolve_code
from .concurrency import run_in_transaction
from .document_service import next_document_number, TRANSFER_SEQUENCE
from .ledger_service import StockLedger, VariantNotFoundError
from .movement_service import MovementRecorder
from .pricing import to_percent, PricingError
from .shift_service import tag_for
from .transaction_service import (
    TransactionRecorder,
    LineItemDraft,
    PaymentInfo,
    ChannelDetails,
    commit_timestamp,
)
"""
Dispatch Workflow Invariants (authoritative)

States: SCANNING -> REVIEWING -> DETAILS_CAPTURE -> CONFIRMED
- Forward moves are guarded; backward moves go to any earlier state.
- CONFIRMED is terminal.

Queue:
- Items resolve from a scanned code (explicit barcode or canonical
  "{article_id}-{size_internal}") and are checked against WAREHOUSE stock only.
- Repeat scans increment one line; the quantity never exceeds warehouse stock.
- A rejected change leaves every queued line as it was.

No writes before confirm:
- The workflow only reads until confirm(); abandoning it at any earlier
  state leaves the ledger, movement log and transactions untouched.

confirm():
- One DB transaction: per item lock + revalidate + ledger write + movement,
  then one Transaction for the whole run (none for Transfer), then an audit event.
- Any failure rolls everything back and the workflow stays in DETAILS_CAPTURE.
"""


class WorkflowState(str, enum.Enum):
    SCANNING = "Scanning"
    REVIEWING = "Reviewing"
    DETAILS_CAPTURE = "DetailsCapture"
    CONFIRMED = "Confirmed"


# Column sizes of Transaction.recipient_name and StockMovement.reference
RECIPIENT_MAX_LENGTH = 128
REFERENCE_MAX_LENGTH = 64

_STATE_ORDER = [
    WorkflowState.SCANNING,
    WorkflowState.REVIEWING,
    WorkflowState.DETAILS_CAPTURE,
    WorkflowState.CONFIRMED,
]


class DistributionError(Exception):
    """Base class for dispatch failures surfaced to the operator."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class DispatchValidationError(DistributionError):
    """Missing mandatory field, empty queue or illegal transition."""
    pass


class InsufficientStockError(DistributionError):
    """Requested quantity exceeds warehouse stock."""
    pass


class CodeNotRecognizedError(DistributionError):
    """Scanned code matches no variant."""
    pass


@dataclass(frozen=True)
class ChannelPolicy:
    channel: Channel
    transaction_type: TransactionType | None
    movement_kind: MovementKind
    # None when no recipient is required
    recipient_label: str | None
    reference_required: bool
    zero_price: bool
    audit_action: str


CHANNEL_POLICIES: dict[Channel, ChannelPolicy] = {
    Channel.SHOPIFY: ChannelPolicy(
        Channel.SHOPIFY, TransactionType.SHOPIFY, MovementKind.OUTWARD,
        "Customer Name", True, False, "Inventory Out",
    ),
    Channel.PREORDER: ChannelPolicy(
        Channel.PREORDER, TransactionType.PREORDER, MovementKind.OUTWARD,
        "Customer Name", True, False, "Inventory Out",
    ),
    Channel.PR: ChannelPolicy(
        Channel.PR, TransactionType.PR, MovementKind.OUTWARD,
        "Recipient", True, True, "Inventory Out",
    ),
    Channel.FNF: ChannelPolicy(
        Channel.FNF, TransactionType.FNF, MovementKind.OUTWARD,
        "Beneficiary", True, False, "Inventory Out",
    ),
    Channel.TRANSFER: ChannelPolicy(
        Channel.TRANSFER, None, MovementKind.TRANSFER,
        None, False, False, "Stock Transfer",
    ),
}


@dataclass
class QueuedItem:
    article_id: str
    article_name: str
    category: str | None
    size_label: str
    size_internal: str
    quantity: int
    unit_price_cents: int

    @property
    def key(self) -> tuple[str, str]:
        return self.article_id, self.size_internal

    def to_dict(self) -> dict:
        return {
            "article_id": self.article_id,
            "article_name": self.article_name,
            "size_label": self.size_label,
            "size_internal": self.size_internal,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
        }


@dataclass(frozen=True)
class DispatchResult:
    channel: Channel
    reference: str
    movement_ids: list[int]
    transaction_id: int | None = None
    document_number: str | None = None
    total_cents: int = 0
    item_count: int = 0

    def to_dict(self) -> dict:
        return {
            "channel": self.channel.value,
            "reference": self.reference,
            "movement_ids": list(self.movement_ids),
            "transaction_id": self.transaction_id,
            "document_number": self.document_number,
            "total_cents": self.total_cents,
            "item_count": self.item_count,
        }


def _coerce_channel(channel) -> Channel:
    try:
        channel = coerce_enum(Channel, channel)
    except ValueError as e:
        raise DispatchValidationError(str(e))
    if channel not in CHANNEL_POLICIES:
        raise DispatchValidationError(f"{channel.value} is not a dispatch channel; use POS checkout")
    return channel


def _positive_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise DispatchValidationError("quantity must be an integer")
    if quantity < 1:
        raise DispatchValidationError("quantity must be at least 1")
    return quantity


class DistributionWorkflow:
    """
    One dispatch run for one channel.

    Holds its queue in memory; the only database writes happen in confirm().
    """

    def __init__(self, channel, *, ledger: StockLedger | None = None):
        self.channel = _coerce_channel(channel)
        self.policy = CHANNEL_POLICIES[self.channel]
        self.ledger = ledger or StockLedger()
        self.state = WorkflowState.SCANNING
        self._items: dict[tuple[str, str], QueuedItem] = {}

        self.recipient_name: str | None = None
        self.order_reference: str | None = None
        self.discount_percent: Decimal = Decimal("0")
        self.notes: str | None = None

        self.result: DispatchResult | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def items(self) -> list[QueuedItem]:
        return list(self._items.values())

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self._items.values())

    def to_dict(self) -> dict:
        return {
            "channel": self.channel.value,
            "state": self.state.value,
            "items": [item.to_dict() for item in self._items.values()],
            "recipient_label": self.policy.recipient_label,
            "recipient_name": self.recipient_name,
            "order_reference": self.order_reference,
            "discount_percent": float(self.discount_percent),
            "notes": self.notes,
            "result": self.result.to_dict() if self.result else None,
        }

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _require_state(self, *states: WorkflowState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise DispatchValidationError(
                f"Not allowed in state {self.state.value} (expected {allowed})",
                details={"state": self.state.value},
            )

    def _warehouse_capacity(self, article_id: str, size_internal: str) -> int:
        try:
            variant = self.ledger.get_variant(article_id, size_internal)
        except VariantNotFoundError:
            raise CodeNotRecognizedError(
                f"Article {article_id}-{size_internal} no longer exists",
                details={"article_id": article_id, "size_internal": size_internal},
            )
        return variant.warehouse_qty

    def _check_capacity(self, article_id: str, size_internal: str, quantity: int) -> None:
        capacity = self._warehouse_capacity(article_id, size_internal)
        if quantity > capacity:
            raise InsufficientStockError(
                f"Exceeds warehouse capacity for {article_id}-{size_internal} (limit {capacity})",
                details={
                    "article_id": article_id,
                    "size_internal": size_internal,
                    "requested_quantity": quantity,
                    "warehouse_qty": capacity,
                },
            )

    def _get_item(self, article_id: str, size_internal: str) -> QueuedItem:
        item = self._items.get((article_id, size_internal))
        if item is None:
            raise DispatchValidationError(
                f"{article_id}-{size_internal} is not queued",
                details={"article_id": article_id, "size_internal": size_internal},
            )
        return item

    # ------------------------------------------------------------------
    # Queue editing
    # ------------------------------------------------------------------

    def _queue_variant(self, variant, increment: int) -> QueuedItem:
        key = (variant.article_id, variant.size_internal)
        if variant.warehouse_qty <= 0:
            raise InsufficientStockError(
                f"Article {variant.canonical_code} is out of stock",
                details={"article_id": variant.article_id, "size_internal": variant.size_internal, "warehouse_qty": 0},
            )

        existing = self._items.get(key)
        new_qty = (existing.quantity if existing else 0) + increment
        self._check_capacity(variant.article_id, variant.size_internal, new_qty)

        if existing is not None:
            existing.quantity = new_qty
            return existing

        item = QueuedItem(
            article_id=variant.article_id,
            article_name=variant.article.name,
            category=variant.article.category,
            size_label=variant.size_label,
            size_internal=variant.size_internal,
            quantity=new_qty,
            unit_price_cents=0 if self.policy.zero_price else variant.unit_price_cents,
        )
        self._items[key] = item
        return item

    def scan(self, code: str) -> QueuedItem:
        """Resolve a scanned code and queue one unit of it."""
        self._require_state(WorkflowState.SCANNING)
        variant = resolve_code(code)
        if variant is None:
            raise CodeNotRecognizedError(
                "Article ID not recognized",
                details={"code": (code or "").strip()},
            )
        return self._queue_variant(variant, 1)

    def add(self, article_id: str, size_internal: str, quantity: int = 1) -> QueuedItem:
        """Queue a variant by identity (manual entry instead of a scan)."""
        self._require_state(WorkflowState.SCANNING)
        quantity = _positive_quantity(quantity)
        try:
            variant = self.ledger.get_variant(article_id, size_internal)
        except VariantNotFoundError:
            raise CodeNotRecognizedError(
                "Article ID not recognized",
                details={"code": f"{article_id}-{size_internal}"},
            )
        return self._queue_variant(variant, quantity)

    def set_quantity(self, article_id: str, size_internal: str, quantity: int) -> QueuedItem:
        self._require_state(WorkflowState.SCANNING, WorkflowState.REVIEWING)
        item = self._get_item(article_id, size_internal)
        quantity = _positive_quantity(quantity)
        self._check_capacity(article_id, size_internal, quantity)
        item.quantity = quantity
        return item

    def adjust_quantity(self, article_id: str, size_internal: str, delta: int) -> QueuedItem:
        item = self._get_item(article_id, size_internal)
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise DispatchValidationError("delta must be an integer")
        return self.set_quantity(article_id, size_internal, item.quantity + delta)

    def remove_item(self, article_id: str, size_internal: str) -> None:
        self._require_state(WorkflowState.SCANNING, WorkflowState.REVIEWING)
        self._get_item(article_id, size_internal)
        del self._items[(article_id, size_internal)]

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def advance(self) -> WorkflowState:
        if self.state == WorkflowState.DETAILS_CAPTURE:
            raise DispatchValidationError("Use confirm() to finish the dispatch")
        self._require_state(WorkflowState.SCANNING, WorkflowState.REVIEWING)
        if not self._items:
            raise DispatchValidationError("Add items to continue")
        self.state = _STATE_ORDER[_STATE_ORDER.index(self.state) + 1]
        return self.state

    def go_back(self, target: WorkflowState | str | None = None) -> WorkflowState:
        """Return to an earlier state (the previous one by default)."""
        if self.state == WorkflowState.CONFIRMED:
            raise DispatchValidationError("A confirmed dispatch cannot be reopened")
        current = _STATE_ORDER.index(self.state)
        if target is None:
            if current == 0:
                raise DispatchValidationError("Already at the first step")
            self.state = _STATE_ORDER[current - 1]
            return self.state
        try:
            target = coerce_enum(WorkflowState, target)
        except ValueError as e:
            raise DispatchValidationError(str(e))
        if _STATE_ORDER.index(target) >= current:
            raise DispatchValidationError(f"Cannot move back to {target.value} from {self.state.value}")
        self.state = target
        return self.state

    def capture_details(
        self,
        *,
        recipient_name: str | None = None,
        order_reference: str | None = None,
        discount_percent=None,
        notes: str | None = None,
    ) -> None:
        self._require_state(WorkflowState.DETAILS_CAPTURE)
        try:
            discount = to_percent(discount_percent)
        except PricingError as e:
            raise DispatchValidationError(str(e))
        recipient_name = (recipient_name or "").strip() or None
        order_reference = (order_reference or "").strip() or None
        if recipient_name and len(recipient_name) > RECIPIENT_MAX_LENGTH:
            raise DispatchValidationError(
                f"{self.policy.recipient_label or 'Recipient'} exceeds max length {RECIPIENT_MAX_LENGTH}",
                details={"field": "recipient_name"},
            )
        if order_reference and len(order_reference) > REFERENCE_MAX_LENGTH:
            raise DispatchValidationError(
                f"Order reference exceeds max length {REFERENCE_MAX_LENGTH}",
                details={"field": "order_reference"},
            )
        self.recipient_name = recipient_name
        self.order_reference = order_reference
        self.discount_percent = discount
        self.notes = (notes or "").strip() or None

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def _validate_details(self, actor: str) -> None:
        if not actor or not str(actor).strip():
            raise DispatchValidationError("actor is required")
        if not self._items:
            raise DispatchValidationError("Add items to continue")
        label = self.policy.recipient_label
        if label and not self.recipient_name:
            raise DispatchValidationError(f"{label} is mandatory", details={"field": "recipient_name"})
        if self.policy.reference_required and not self.order_reference:
            raise DispatchValidationError("Order reference is mandatory", details={"field": "order_reference"})

    def _movement_note(self, reference: str) -> str:
        if self.channel == Channel.TRANSFER:
            return f"Transfer to store {reference}"
        note = f"{self.channel.value} dispatch {reference}"
        if self.recipient_name:
            note += f" to {self.recipient_name}"
        return note

    def confirm(self, actor: str) -> DispatchResult:
        """Write the whole dispatch in one DB transaction."""
        self._require_state(WorkflowState.DETAILS_CAPTURE)
        self._validate_details(actor)
        actor = str(actor).strip()
        policy = self.policy

        def _op() -> DispatchResult:
            ledger = StockLedger()
            recorder = MovementRecorder()
            reference = self.order_reference
            if reference is None:
                reference = next_document_number(
                    document_type=TRANSFER_SEQUENCE[0],
                    prefix=TRANSFER_SEQUENCE[1],
                )
            note = self._movement_note(reference)

            drafts = []
            movement_ids = []
            for item in self._items.values():
                variant = ledger.get_variant(item.article_id, item.size_internal, lock=True)
                if item.quantity > variant.warehouse_qty:
                    raise InsufficientStockError(
                        f"Exceeds warehouse capacity for {variant.canonical_code} (limit {variant.warehouse_qty})",
                        details={
                            "article_id": item.article_id,
                            "size_internal": item.size_internal,
                            "requested_quantity": item.quantity,
                            "warehouse_qty": variant.warehouse_qty,
                        },
                    )
                unit_price = 0 if policy.zero_price else variant.unit_price_cents

                if policy.movement_kind == MovementKind.TRANSFER:
                    change = ledger.transfer(item.article_id, item.size_internal, item.quantity)
                else:
                    change = ledger.adjust_warehouse(item.article_id, item.size_internal, -item.quantity)
                movement = recorder.record_change(
                    policy.movement_kind,
                    change,
                    actor,
                    note,
                    channel=self.channel,
                    reference=reference,
                )
                movement_ids.append(movement.id)
                drafts.append(LineItemDraft(
                    movement=movement,
                    article_id=item.article_id,
                    article_name=item.article_name,
                    category=item.category,
                    size_label=item.size_label,
                    size_internal=item.size_internal,
                    quantity=item.quantity,
                    unit_price_cents=unit_price,
                ))

            tx = None
            if policy.transaction_type is not None:
                now = commit_timestamp(drafts)
                tag = tag_for(now)
                tx = TransactionRecorder().commit(
                    policy.transaction_type,
                    drafts,
                    PaymentInfo(method=PaymentMethod.NONE, order_discount_percent=self.discount_percent),
                    ChannelDetails(
                        cashier_name=actor,
                        shift=tag.shift,
                        business_date=tag.business_date,
                        occurred_at=now,
                        external_order_id=reference,
                        recipient_name=self.recipient_name,
                        notes=self.notes,
                    ),
                )

            units = sum(d.quantity for d in drafts)
            details = f"{self.channel.value} {reference}: {units} units"
            if self.recipient_name:
                details += f" to {self.recipient_name}"
            append_audit_event(
                actor=actor,
                action=policy.audit_action,
                details=details,
                entity_type="transaction" if tx is not None else "dispatch",
                entity_id=tx.id if tx is not None else reference,
            )
            return DispatchResult(
                channel=self.channel,
                reference=reference,
                movement_ids=movement_ids,
                transaction_id=tx.id if tx is not None else None,
                document_number=tx.document_number if tx is not None else None,
                total_cents=tx.total_cents if tx is not None else 0,
                item_count=units,
            )

        try:
            result = run_in_transaction(_op)
        except DistributionError:
            raise
        except Exception:
            current_app.logger.exception("Dispatch confirm failed for %s", self.channel.value)
            raise

        self.state = WorkflowState.CONFIRMED
        self.result = result
        current_app.logger.info(
            "Dispatched %s %s (%d units, %d movements)",
            self.channel.value, result.reference, result.item_count, len(result.movement_ids),
        )
        return result


def dispatch(
    channel,
    items: list[dict],
    *,
    actor: str,
    recipient_name: str | None = None,
    order_reference: str | None = None,
    discount_percent=None,
    notes: str | None = None,
) -> DispatchResult:
    """
    Drive a whole workflow run from one request.

    items: [{"code": "..."} or {"article_id": ..., "size_internal": ...},
            plus optional "quantity" (default 1)]
    """
    workflow = DistributionWorkflow(channel)
    if not items:
        raise DispatchValidationError("Add items to continue")
    for raw in items:
        if not isinstance(raw, dict):
            raise DispatchValidationError("Each item must be an object")
        quantity = _positive_quantity(raw.get("quantity", 1))
        code = raw.get("code")
        if code:
            item = workflow.scan(code)
            if quantity > 1:
                workflow.adjust_quantity(item.article_id, item.size_internal, quantity - 1)
        else:
            if not raw.get("article_id") or not raw.get("size_internal"):
                raise DispatchValidationError("Each item needs a code or article_id and size_internal")
            workflow.add(raw["article_id"], raw["size_internal"], quantity)

    workflow.advance()
    workflow.advance()
    workflow.capture_details(
        recipient_name=recipient_name,
        order_reference=order_reference,
        discount_percent=discount_percent,
        notes=notes,
    )
    return workflow.confirm(actor)
