# Overview: StockLedger, the only writer of per-variant store/warehouse balances.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Variant, Article, Cart, CartLine
from .concurrency import begin_write, lock_for_update
"""
Stock Ledger Invariants (authoritative)

Balance model:
- Each Variant holds (store_qty, warehouse_qty); both are integers >= 0.
- StockLedger is the only code path that assigns those two columns.
- A delta that would take a balance below zero floors it at 0. This is a
  deliberate floor, not an error; the applied delta is reported back so the
  movement log records what really happened.

Transfers (warehouse -> store):
- Warehouse decreases by min(quantity, warehouse_qty).
- Store increases by the requested quantity ("requested" credit mode, legacy
  behavior, default) or by the supplied amount ("supplied" credit mode).
  A shortfall in "requested" mode is logged as a warning because it creates
  store stock the warehouse never supplied.

Transactions:
- Mutations take the write lock and the variant row lock, then flush.
- The ledger never commits; the calling operation owns the boundary so that
  balances, movements and the commercial record land together.
"""

CREDIT_REQUESTED = "requested"
CREDIT_SUPPLIED = "supplied"


class LedgerError(Exception):
    """Raised for malformed ledger requests."""
    pass


class VariantNotFoundError(LedgerError):
    """Raised when (article_id, size_internal) matches no variant."""
    def __init__(self, article_id: str, size_internal: str):
        super().__init__(f"Variant {article_id}-{size_internal} not found")
        self.article_id = article_id
        self.size_internal = size_internal


@dataclass(frozen=True)
class LedgerChange:
    """Outcome of one ledger mutation, post-balances included."""
    article_id: str
    article_name: str
    size_internal: str
    store_delta: int
    warehouse_delta: int
    requested: int
    store_qty: int
    warehouse_qty: int
    # units requested from the source location that it could not supply
    shortfall: int = 0


def _require_int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise LedgerError(f"{name} must be an integer")
    return value


class StockLedger:
    """
    Authoritative (store, warehouse) balance store.

    Holds no state of its own beyond the injected session; every balance lives
    on the Variant row.
    """

    def __init__(self, session=None):
        self.session = session or db.session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_variant(self, article_id: str, size_internal: str, *, lock: bool = False) -> Variant:
        query = self.session.query(Variant).filter_by(
            article_id=article_id,
            size_internal=size_internal,
        )
        if lock:
            query = lock_for_update(query)
        variant = query.first()
        if variant is None:
            raise VariantNotFoundError(article_id, size_internal)
        return variant

    def balances(self, article_id: str, size_internal: str) -> tuple[int, int]:
        variant = self.get_variant(article_id, size_internal)
        return variant.store_qty, variant.warehouse_qty

    def held_quantity(self, article_id: str, size_internal: str, *, exclude_cart_id: int | None = None) -> int:
        """Units sitting in OPEN carts for this variant."""
        q = self.session.query(func.coalesce(func.sum(CartLine.quantity), 0)).join(
            Cart, Cart.id == CartLine.cart_id
        ).filter(
            Cart.status == "OPEN",
            CartLine.article_id == article_id,
            CartLine.size_internal == size_internal,
        )
        if exclude_cart_id is not None:
            q = q.filter(Cart.id != exclude_cart_id)
        return int(q.scalar() or 0)

    def available_to_sell(self, article_id: str, size_internal: str, *, exclude_cart_id: int | None = None) -> int:
        """
        Store quantity not already promised to an open cart.

        Never negative: a cart can outlive the stock it was built against.
        """
        variant = self.get_variant(article_id, size_internal)
        held = self.held_quantity(article_id, size_internal, exclude_cart_id=exclude_cart_id)
        return max(0, variant.store_qty - held)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _locked_variant(self, article_id: str, size_internal: str) -> Variant:
        begin_write(self.session)
        return self.get_variant(article_id, size_internal, lock=True)

    def _change(
        self,
        variant: Variant,
        *,
        store_delta: int,
        warehouse_delta: int,
        requested: int,
        shortfall: int = 0,
    ) -> LedgerChange:
        self.session.flush()
        article = variant.article or self.session.get(Article, variant.article_id)
        return LedgerChange(
            article_id=variant.article_id,
            article_name=article.name if article else variant.article_id,
            size_internal=variant.size_internal,
            store_delta=store_delta,
            warehouse_delta=warehouse_delta,
            requested=requested,
            store_qty=variant.store_qty,
            warehouse_qty=variant.warehouse_qty,
            shortfall=shortfall,
        )

    def adjust_store(self, article_id: str, size_internal: str, delta: int) -> LedgerChange:
        """Add delta to store stock, flooring the result at 0."""
        _require_int(delta, "delta")
        variant = self._locked_variant(article_id, size_internal)
        before = variant.store_qty
        variant.store_qty = max(0, before + delta)
        return self._change(
            variant,
            store_delta=variant.store_qty - before,
            warehouse_delta=0,
            requested=delta,
            shortfall=abs(delta) - abs(variant.store_qty - before),
        )

    def adjust_warehouse(self, article_id: str, size_internal: str, delta: int) -> LedgerChange:
        """Add delta to warehouse stock, flooring the result at 0."""
        _require_int(delta, "delta")
        variant = self._locked_variant(article_id, size_internal)
        before = variant.warehouse_qty
        variant.warehouse_qty = max(0, before + delta)
        return self._change(
            variant,
            store_delta=0,
            warehouse_delta=variant.warehouse_qty - before,
            requested=delta,
            shortfall=abs(delta) - abs(variant.warehouse_qty - before),
        )

    def transfer(
        self,
        article_id: str,
        size_internal: str,
        quantity: int,
        *,
        credit_mode: str | None = None,
    ) -> LedgerChange:
        """
        Move stock from warehouse to store in one write.

        warehouse_delta is always -min(quantity, warehouse_qty). store_delta
        depends on credit_mode (defaults to TRANSFER_CREDIT_MODE).
        """
        _require_int(quantity, "quantity")
        if quantity <= 0:
            raise LedgerError("transfer quantity must be positive")

        mode = credit_mode or current_app.config.get("TRANSFER_CREDIT_MODE", CREDIT_REQUESTED)
        if mode not in (CREDIT_REQUESTED, CREDIT_SUPPLIED):
            raise LedgerError(f"unknown transfer credit mode {mode!r}")

        variant = self._locked_variant(article_id, size_internal)
        supplied = min(quantity, variant.warehouse_qty)
        credited = quantity if mode == CREDIT_REQUESTED else supplied

        if supplied < quantity:
            current_app.logger.warning(
                "Transfer shortfall for %s-%s: requested %d, warehouse supplied %d, store credited %d (%s mode)",
                article_id, size_internal, quantity, supplied, credited, mode,
            )

        variant.warehouse_qty = variant.warehouse_qty - supplied
        variant.store_qty = variant.store_qty + credited
        return self._change(
            variant,
            store_delta=credited,
            warehouse_delta=-supplied,
            requested=quantity,
            shortfall=quantity - supplied,
        )
