from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class Branch(db.Model):
    """
    Branch office. Forms are attributed to the branch of their warehouse.
    """
    __tablename__ = "branches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    address = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }


class Warehouse(db.Model):
    __tablename__ = "warehouses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    branch = db.relationship("Branch", backref=db.backref("warehouses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class BranchUser(db.Model):
    """
    User assignment to a branch.

    WHY: A user may act in several branches but writes forms only in the one
    flagged is_default. The authorization gate checks this flag.
    """
    __tablename__ = "branch_user"
    __table_args__ = (
        db.UniqueConstraint("user_id", "branch_id", name="uq_branch_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    user = db.relationship("User", backref=db.backref("branch_assignments", lazy=True))
    branch = db.relationship("Branch", backref=db.backref("user_assignments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "branch_id": self.branch_id,
            "is_default": self.is_default,
        }


class UserWarehouse(db.Model):
    """User assignment to a warehouse (same default semantics as BranchUser)."""
    __tablename__ = "user_warehouse"
    __table_args__ = (
        db.UniqueConstraint("user_id", "warehouse_id", name="uq_user_warehouse"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    user = db.relationship("User", backref=db.backref("warehouse_assignments", lazy=True))
    warehouse = db.relationship("Warehouse", backref=db.backref("user_assignments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "warehouse_id": self.warehouse_id,
            "is_default": self.is_default,
        }
