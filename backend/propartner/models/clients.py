from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class LoyaltyLevel(db.Model):
    """
    Loyalty tier reached once a client's balance meets points_threshold.

    A client holds the highest active level whose threshold they meet.
    """
    __tablename__ = "loyalty_levels"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_loyalty_levels_org_name"),
        db.CheckConstraint("points_threshold >= 0", name="ck_loyalty_levels_threshold"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(64), nullable=False)
    points_threshold = db.Column(db.Integer, nullable=False)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)  # 500 = 5.00%
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "points_threshold": self.points_threshold,
            "discount_bps": self.discount_bps,
            "is_active": self.is_active,
        }


class Client(db.Model):
    """
    Client master data.

    MULTI-TENANT: Clients are scoped to organizations via org_id.

    points_balance is a denormalized cache of the loyalty movement log.
    It is only ever changed by loyalty_service, in the same DB transaction
    as the movement that explains the change.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.UniqueConstraint("org_id", "email", name="uq_clients_org_email"),
        db.Index("ix_clients_org_active", "org_id", "is_active"),
        db.CheckConstraint("points_balance >= 0", name="ck_clients_points_balance"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Loyalty aggregates
    points_balance = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points_earned = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points_redeemed = db.Column(db.Integer, nullable=False, default=0)
    loyalty_level_id = db.Column(db.Integer, db.ForeignKey("loyalty_levels.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    organization = db.relationship("Organization", backref=db.backref("clients", lazy=True))
    loyalty_level = db.relationship("LoyaltyLevel")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.display_name!r} org_id={self.org_id}>"

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "is_active": self.is_active,
            "points_balance": self.points_balance,
            "lifetime_points_earned": self.lifetime_points_earned,
            "lifetime_points_redeemed": self.lifetime_points_redeemed,
            "loyalty_level_id": self.loyalty_level_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class LoyaltyMovement(db.Model):
    """
    Append-only ledger of loyalty point events.

    MOVEMENT TYPES:
    - GAIN: Points earned (carries expires_at)
    - REDEMPTION: Points spent
    - EXPIRATION: Points removed by the expiration sweep
    - ADJUSTMENT: Manual correction (either sign)

    points is signed: positive for GAIN, negative for REDEMPTION/EXPIRATION.

    expirable_remaining (GAIN only) is the part of the grant not yet consumed
    by redemptions, negative adjustments or a previous expiration sweep.
    It is the only column ever updated after insert.
    """
    __tablename__ = "loyalty_movements"
    __table_args__ = (
        db.Index("ix_loyalty_movements_client_occurred", "client_id", "occurred_at"),
        db.Index("ix_loyalty_movements_org_type_expires", "org_id", "movement_type", "expires_at"),
        db.CheckConstraint("expirable_remaining IS NULL OR expirable_remaining >= 0", name="ck_loyalty_movements_remaining"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    points = db.Column(db.Integer, nullable=False)

    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expirable_remaining = db.Column(db.Integer, nullable=True)

    description = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(128), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    client = db.relationship("Client", backref=db.backref("loyalty_movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "client_id": self.client_id,
            "movement_type": self.movement_type,
            "points": self.points,
            "expires_at": to_utc_z(self.expires_at),
            "expirable_remaining": self.expirable_remaining,
            "description": self.description,
            "reference": self.reference,
            "occurred_at": to_utc_z(self.occurred_at),
        }
