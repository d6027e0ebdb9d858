from __future__ import annotations

from ..extensions import db
from tillkeeper.time_utils import to_utc_z


class Organization(db.Model):
    """
    Tenant. Every location, product, operator and customer belongs to one.
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Location(db.Model):
    """
    A shop or kiosk with its own till and its own stock.

    default_operating_mode is what a new session gets when the operator
    does not choose one explicitly.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_locations_org_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)

    default_operating_mode = db.Column(db.String(16), nullable=True)  # STANDARD, INVENTORY_COUNT
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("locations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "default_operating_mode": self.default_operating_mode,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Operator(db.Model):
    """
    Person working a till. Authentication happens upstream; this row only
    carries what the till needs: tenant, home location and role.

    ROLES:
    - admin: may work any location, may override counts
    - manager: may override counts at their own location
    - operator: own location only
    """
    __tablename__ = "operators"
    __table_args__ = (
        db.UniqueConstraint("org_id", "username", name="uq_operators_org_username"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    username = db.Column(db.String(64), nullable=False)
    full_name = db.Column(db.String(128), nullable=True)
    role = db.Column(db.String(16), nullable=False, default="operator")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("operators", lazy=True))
    location = db.relationship("Location", backref=db.backref("operators", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "location_id": self.location_id,
            "username": self.username,
            "full_name": self.full_name,
            "role": self.role,
            "is_active": self.is_active,
        }
