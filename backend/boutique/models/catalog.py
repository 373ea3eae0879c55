from __future__ import annotations

from ..extensions import db
from boutique.time_utils import to_utc_z


class Article(db.Model):
    """
    Sellable product style (one SKU family).

    SKU DESIGN DECISION:
    Article.id is the human-assigned style code and is the primary key.
    It is never renamed; movement history references it by value and keeps
    doing so after the article is deleted.
    """
    __tablename__ = "articles"
    __table_args__ = (
        db.Index("ix_articles_category_name", "category", "name"),
    )

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True, index=True)  # collection
    brand = db.Column(db.String(128), nullable=True)

    price_cents = db.Column(db.Integer, nullable=False)
    # Article-level markdown applied to POS lines (percent, optional)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=True)

    description = db.Column(db.Text, nullable=True)
    material_type = db.Column(db.String(128), nullable=True)
    color = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    variants = db.relationship(
        "Variant",
        back_populates="article",
        cascade="all, delete-orphan",
        order_by="Variant.position",
        lazy=True,
    )

    def to_dict(self, include_variants: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "brand": self.brand,
            "price_cents": self.price_cents,
            "discount_percent": float(self.discount_percent) if self.discount_percent is not None else None,
            "description": self.description,
            "material_type": self.material_type,
            "color": self.color,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_variants:
            data["variants"] = [v.to_dict() for v in self.variants]
            data["store_qty"] = sum(v.store_qty for v in self.variants)
            data["warehouse_qty"] = sum(v.warehouse_qty for v in self.variants)
        return data


class Variant(db.Model):
    """
    One size of an Article; the true unit of stock.

    IDENTITY: (article_id, size_internal). Every lookup (scan, movement log,
    cart line) uses this pair.

    BALANCES: store_qty and warehouse_qty are written only by StockLedger and
    are never negative.
    """
    __tablename__ = "variants"
    __table_args__ = (
        db.UniqueConstraint("article_id", "size_internal", name="uq_variants_article_size"),
        db.UniqueConstraint("barcode", name="uq_variants_barcode"),
        db.CheckConstraint("store_qty >= 0", name="ck_variants_store_qty_non_negative"),
        db.CheckConstraint("warehouse_qty >= 0", name="ck_variants_warehouse_qty_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    article_id = db.Column(db.String(64), db.ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True)

    size_label = db.Column(db.String(32), nullable=False)      # display, e.g. "M"
    size_internal = db.Column(db.String(32), nullable=False)   # canonical, e.g. "2"
    position = db.Column(db.Integer, nullable=False, default=0)

    store_qty = db.Column(db.Integer, nullable=False, default=0)
    warehouse_qty = db.Column(db.Integer, nullable=False, default=0)

    price_cents = db.Column(db.Integer, nullable=True)  # per-variant override
    barcode = db.Column(db.String(128), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    article = db.relationship("Article", back_populates="variants")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def canonical_code(self) -> str:
        return f"{self.article_id}-{self.size_internal}"

    @property
    def effective_barcode(self) -> str:
        return self.barcode or self.canonical_code

    @property
    def unit_price_cents(self) -> int:
        return self.price_cents if self.price_cents is not None else self.article.price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "article_id": self.article_id,
            "size_label": self.size_label,
            "size_internal": self.size_internal,
            "store_qty": self.store_qty,
            "warehouse_qty": self.warehouse_qty,
            "price_cents": self.price_cents,
            "unit_price_cents": self.unit_price_cents,
            "barcode": self.barcode,
            "effective_barcode": self.effective_barcode,
            "version_id": self.version_id,
        }
