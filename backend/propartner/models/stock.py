from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Article(db.Model):
    """
    Catalog article (product or service).

    MULTI-TENANT: Articles are scoped to organizations via org_id.
    reference is unique within an organization.

    STOCK:
    - track_stock=False articles (services) never receive stock movements
    - current_stock is a denormalized cache: it always equals the
      quantity_after of the article's most recent StockMovement
    - Only stock_service writes current_stock
    """
    __tablename__ = "articles"
    __table_args__ = (
        db.UniqueConstraint("org_id", "reference", name="uq_articles_org_reference"),
        db.Index("ix_articles_org_name", "org_id", "name"),
        db.CheckConstraint("current_stock >= 0", name="ck_articles_current_stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    reference = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(16), nullable=True)

    # Authoritative storage in cents (pre-tax)
    price_cents = db.Column(db.Integer, nullable=True)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=2000)  # 2000 = 20.00%

    track_stock = db.Column(db.Boolean, nullable=False, default=True)
    current_stock = db.Column(db.Integer, nullable=False, default=0)
    stock_minimum = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("articles", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Article id={self.id} reference={self.reference!r} stock={self.current_stock}>"

    @property
    def is_low_stock(self) -> bool:
        return (
            self.track_stock
            and self.stock_minimum is not None
            and self.current_stock <= self.stock_minimum
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "reference": self.reference,
            "name": self.name,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "track_stock": self.track_stock,
            "current_stock": self.current_stock,
            "stock_minimum": self.stock_minimum,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    One signed quantity change for one article.

    quantity_before / quantity_after are snapshots taken when the row is
    written. quantity_delta is authoritative for the direction of the change;
    movement_type is a label only.

    Rows are never edited. A reversal writes a compensating ADJUSTMENT and
    removes the original in the same transaction.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_article_occurred", "article_id", "occurred_at"),
        db.CheckConstraint("quantity_after >= 0", name="ck_stock_movements_after_non_negative"),
        db.CheckConstraint(
            "quantity_after = quantity_before + quantity_delta",
            name="ck_stock_movements_snapshot",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    article_id = db.Column(db.Integer, db.ForeignKey("articles.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)

    quantity_delta = db.Column(db.Integer, nullable=False)
    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    article = db.relationship("Article", backref=db.backref("stock_movements", lazy=True))

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} article_id={self.article_id} "
            f"{self.movement_type} {self.quantity_delta:+d}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "article_id": self.article_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "reason": self.reason,
            "reference": self.reference,
            "notes": self.notes,
            "created_by": self.created_by,
            "occurred_at": to_utc_z(self.occurred_at),
        }
