# Overview: Article/variant maintenance, barcode directory and scan-code resolution.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import Article, Variant, MovementKind, Location, OperatorRole
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    ConflictError,
    validate_payload,
    enforce_price_rules,
    coerce_int,
    optional_int,
    require_text,
    optional_text,
)
from .audit_service import append_audit_event
from .concurrency import run_in_transaction
from .ledger_service import StockLedger
from .movement_service import MovementRecorder
from .pricing import to_percent, PricingError
"""
Catalog Rules

- Article.id is the human SKU; immutable once created.
- An article is published with at least one variant.
- Stock never changes silently here: initial quantities go through the
  StockLedger and are logged as Inward (one movement per location), edits to
  quantities are logged as Adjustment movements for the delta.
- Deleting an article removes its variants and balances; movements stay.
"""

STOCK_FILTERS = ("All", "Available", "Low", "Empty")

ARTICLE_POLICY = ModelValidationPolicy(
    writable_fields={
        "id", "name", "category", "brand", "price_cents", "discount_percent",
        "description", "material_type", "color",
    },
    required_on_create={"id", "name", "price_cents"},
)


class CatalogError(Exception):
    """Raised for catalog rule violations."""
    pass


class CatalogPermissionError(CatalogError):
    """Raised when an operator role may not perform a catalog change."""
    pass


def _normalize_code(code: str | None) -> str:
    return (code or "").strip().lower()


def resolve_code(code: str) -> Variant | None:
    """
    Scanner contract: explicit barcode first, then canonical
    "{article_id}-{size_internal}". Trimmed and case-insensitive.
    """
    needle = _normalize_code(code)
    if not needle:
        return None
    variant = db.session.query(Variant).filter(func.lower(Variant.barcode) == needle).first()
    if variant is not None:
        return variant
    canonical = func.lower(Variant.article_id + "-" + Variant.size_internal)
    return db.session.query(Variant).filter(canonical == needle).first()


def _ensure_barcode_free(barcode: str, *, exclude_variant_id: int | None = None) -> None:
    owner = resolve_code(barcode)
    if owner is not None and owner.id != exclude_variant_id:
        raise ConflictError(f"Barcode {barcode} already identifies {owner.canonical_code}")


def _ensure_canonical_free(variant: Variant) -> None:
    """A new variant's canonical code must not already scan as another variant."""
    owner = resolve_code(variant.canonical_code)
    if owner is not None:
        raise ConflictError(
            f"Code {variant.canonical_code} already identifies {owner.canonical_code}"
            + (f" (barcode {owner.barcode})" if owner.barcode else "")
        )


def get_article(article_id: str) -> Article | None:
    return db.session.get(Article, article_id)


def _require_article(article_id: str) -> Article:
    article = get_article(article_id)
    if article is None:
        raise CatalogError(f"Article {article_id} not found")
    return article


def _clean_article_patch(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Article, payload=payload, policy=ARTICLE_POLICY, partial=partial)
    enforce_price_rules(patch)
    if "discount_percent" in patch:
        try:
            patch["discount_percent"] = (
                to_percent(patch["discount_percent"]) if patch["discount_percent"] is not None else None
            )
        except PricingError as e:
            raise ValidationError(str(e))
    return patch


def _stock_in(ledger: StockLedger, recorder: MovementRecorder, variant: Variant, store_qty: int, warehouse_qty: int, actor: str, note: str) -> None:
    """Initial stocking: one Inward movement per location with a non-zero quantity."""
    if store_qty:
        change = ledger.adjust_store(variant.article_id, variant.size_internal, store_qty)
        recorder.record_change(MovementKind.INWARD, change, actor, note, location=Location.STORE)
    if warehouse_qty:
        change = ledger.adjust_warehouse(variant.article_id, variant.size_internal, warehouse_qty)
        recorder.record_change(MovementKind.INWARD, change, actor, note, location=Location.WAREHOUSE)


def _build_variant(article: Article, data: dict, position: int) -> tuple[Variant, int, int]:
    if not isinstance(data, dict):
        raise ValidationError("Each variant must be an object")
    size_label = require_text(data.get("size_label"), "size_label")
    size_internal = optional_text(data.get("size_internal")) or size_label
    price_cents = optional_int(data.get("price_cents"), "price_cents", minimum=0)
    enforce_price_rules({"price_cents": price_cents})
    store_qty = coerce_int(data.get("store_qty", 0), "store_qty", minimum=0)
    warehouse_qty = coerce_int(data.get("warehouse_qty", 0), "warehouse_qty", minimum=0)
    barcode = optional_text(data.get("barcode"))

    variant = Variant(
        article_id=article.id,
        size_label=size_label,
        size_internal=size_internal,
        position=position,
        store_qty=0,
        warehouse_qty=0,
        price_cents=price_cents,
        barcode=barcode,
    )
    return variant, store_qty, warehouse_qty


def create_article(payload: dict, *, actor: str) -> Article:
    """
    Create an article with its variants.

    payload: article fields plus "variants": [{size_label, size_internal,
    store_qty, warehouse_qty, price_cents, barcode}, ...]
    """
    payload = dict(payload or {})
    variant_payloads = payload.pop("variants", None)
    if not variant_payloads:
        raise ValidationError("An article needs at least one variant")
    patch = _clean_article_patch(payload, partial=False)

    def _op() -> Article:
        if get_article(patch["id"]) is not None:
            raise ConflictError(f"Article {patch['id']} already exists")

        article = Article(**patch)
        db.session.add(article)
        db.session.flush()

        ledger = StockLedger()
        recorder = MovementRecorder()
        seen = set()
        pending = []
        for position, data in enumerate(variant_payloads):
            variant, store_qty, warehouse_qty = _build_variant(article, data, position)
            if variant.size_internal in seen:
                raise ValidationError(f"Duplicate size {variant.size_internal}")
            seen.add(variant.size_internal)
            _ensure_canonical_free(variant)
            if variant.barcode:
                _ensure_barcode_free(variant.barcode)
            db.session.add(variant)
            db.session.flush()
            pending.append((variant, store_qty, warehouse_qty))

        for variant, store_qty, warehouse_qty in pending:
            _stock_in(ledger, recorder, variant, store_qty, warehouse_qty, actor, "Initial stock")

        append_audit_event(
            actor=actor,
            action="Create Article",
            details=f"{article.id} {article.name} ({len(pending)} sizes)",
            entity_type="article",
            entity_id=article.id,
        )
        return article

    return run_in_transaction(_op)


def update_article(article_id: str, payload: dict, *, actor: str) -> Article:
    """Metadata only; id and stock are not editable here."""
    payload = dict(payload or {})
    if "id" in payload and payload["id"] != article_id:
        raise ValidationError("Article id cannot be changed")
    payload.pop("id", None)
    payload.pop("variants", None)
    patch = _clean_article_patch(payload, partial=True)

    def _op() -> Article:
        article = _require_article(article_id)
        for key, value in patch.items():
            setattr(article, key, value)
        db.session.flush()
        append_audit_event(
            actor=actor,
            action="Update Article",
            details=", ".join(sorted(patch)) or "no changes",
            entity_type="article",
            entity_id=article.id,
        )
        return article

    return run_in_transaction(_op)


def add_variant(article_id: str, data: dict, *, actor: str) -> Variant:
    def _op() -> Variant:
        article = _require_article(article_id)
        position = max((v.position for v in article.variants), default=-1) + 1
        variant, store_qty, warehouse_qty = _build_variant(article, data, position)
        if any(v.size_internal == variant.size_internal for v in article.variants):
            raise ConflictError(f"Size {variant.size_internal} already exists on {article_id}")
        _ensure_canonical_free(variant)
        if variant.barcode:
            _ensure_barcode_free(variant.barcode)
        db.session.add(variant)
        db.session.flush()
        _stock_in(StockLedger(), MovementRecorder(), variant, store_qty, warehouse_qty, actor, "Initial stock")
        append_audit_event(
            actor=actor,
            action="Add Variant",
            details=variant.canonical_code,
            entity_type="variant",
            entity_id=variant.canonical_code,
        )
        return variant

    return run_in_transaction(_op)


def set_variant_stock(
    article_id: str,
    size_internal: str,
    *,
    store_qty=None,
    warehouse_qty=None,
    actor: str,
    role=None,
    note: str | None = None,
) -> Variant:
    """
    Set absolute quantities from a stock edit; logs an Adjustment per changed location.

    Warehouse operators may only change warehouse quantities.
    """
    target_store = optional_int(store_qty, "store_qty", minimum=0)
    target_warehouse = optional_int(warehouse_qty, "warehouse_qty", minimum=0)
    if target_store is None and target_warehouse is None:
        raise ValidationError("store_qty or warehouse_qty is required")

    def _op() -> Variant:
        ledger = StockLedger()
        recorder = MovementRecorder()
        variant = ledger.get_variant(article_id, size_internal, lock=True)
        if role == OperatorRole.WAREHOUSE and target_store is not None and target_store != variant.store_qty:
            raise CatalogPermissionError("Warehouse operators cannot change store quantities")

        reason = note or "Stock edit"
        if target_store is not None and target_store != variant.store_qty:
            change = ledger.adjust_store(article_id, size_internal, target_store - variant.store_qty)
            recorder.record_change(MovementKind.ADJUSTMENT, change, actor, reason, location=Location.STORE)
        if target_warehouse is not None and target_warehouse != variant.warehouse_qty:
            change = ledger.adjust_warehouse(article_id, size_internal, target_warehouse - variant.warehouse_qty)
            recorder.record_change(MovementKind.ADJUSTMENT, change, actor, reason, location=Location.WAREHOUSE)
        return variant

    return run_in_transaction(_op)


def set_variant_barcode(article_id: str, size_internal: str, barcode: str | None, *, actor: str) -> Variant:
    """Assign (or clear with None) an explicit barcode."""
    barcode = optional_text(barcode)

    def _op() -> Variant:
        variant = StockLedger().get_variant(article_id, size_internal)
        if barcode:
            if len(barcode) > 128:
                raise ValidationError("barcode exceeds max length 128")
            _ensure_barcode_free(barcode, exclude_variant_id=variant.id)
        variant.barcode = barcode
        db.session.flush()
        append_audit_event(
            actor=actor,
            action="Set Barcode",
            details=f"{variant.canonical_code} -> {barcode or 'canonical'}",
            entity_type="variant",
            entity_id=variant.canonical_code,
        )
        return variant

    return run_in_transaction(_op)


def delete_article(article_id: str, *, actor: str) -> None:
    def _op() -> None:
        article = _require_article(article_id)
        name = article.name
        db.session.delete(article)
        db.session.flush()
        append_audit_event(
            actor=actor,
            action="Delete Article",
            details=f"{article_id} {name}",
            entity_type="article",
            entity_id=article_id,
        )

    run_in_transaction(_op)


def barcode_directory(search: str | None = None) -> list[dict]:
    """Every variant with the code a scanner should read for it."""
    q = db.session.query(Variant).join(Article, Article.id == Variant.article_id)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Article.id.ilike(like), Article.name.ilike(like), Variant.barcode.ilike(like)))
    rows = []
    for variant in q.order_by(Article.id, Variant.position).all():
        rows.append({
            "article_id": variant.article_id,
            "article_name": variant.article.name,
            "size_label": variant.size_label,
            "size_internal": variant.size_internal,
            "barcode": variant.barcode,
            "effective_barcode": variant.effective_barcode,
        })
    return rows


def list_articles(
    *,
    search: str | None = None,
    category: str | None = None,
    stock_filter: str = "All",
    threshold: int | None = None,
) -> list[Article]:
    """
    Catalog listing. stock_filter works on combined (store + warehouse) stock:
    Available > 0, Low in (0, threshold], Empty == 0.
    """
    if stock_filter not in STOCK_FILTERS:
        raise ValidationError(f"stock_filter must be one of: {', '.join(STOCK_FILTERS)}")
    if threshold is None:
        threshold = int(current_app.config.get("LOW_STOCK_THRESHOLD", 30))

    combined = (
        db.session.query(
            Variant.article_id.label("article_id"),
            func.sum(Variant.store_qty + Variant.warehouse_qty).label("qty"),
        )
        .group_by(Variant.article_id)
        .subquery()
    )
    total = func.coalesce(combined.c.qty, 0)

    q = db.session.query(Article).outerjoin(combined, combined.c.article_id == Article.id)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Article.id.ilike(like), Article.name.ilike(like)))
    if category:
        q = q.filter(Article.category == category)
    if stock_filter == "Available":
        q = q.filter(total > 0)
    elif stock_filter == "Low":
        q = q.filter(total > 0, total <= threshold)
    elif stock_filter == "Empty":
        q = q.filter(total == 0)
    return q.order_by(Article.id).all()

