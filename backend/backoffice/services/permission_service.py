# Overview: Authorization gate for the form workflow; permission, default branch and default warehouse checks.

"""
Permission Checking for the Form Workflow

WHY: Every lifecycle transition is gated on named permissions held by the
actor (and, for requests, by the approver), and on the actor writing from
their default branch and default warehouse.

DESIGN PRINCIPLES:
- Fail closed: no role record, unknown permission name, or missing grant
  all deny
- One bypass predicate: is_super_admin(); callers never compare role names
- The bypass covers permission checks only. Identity checks (maker,
  approver) and default branch/warehouse checks are never bypassed
- Log denials only: grants are not logged
"""

from flask import current_app

from ..extensions import db
from ..errors import Forbidden
from ..models import User, UserRole, Role, RolePermission, Permission, BranchUser, UserWarehouse, Warehouse
from ..permissions import PERMISSION_DEFINITIONS, DEFAULT_ROLE_PERMISSIONS


def get_user_role_name(user_id: int) -> str | None:
    """Name of the user's single role, or None if unassigned."""
    user_role = db.session.query(UserRole).filter_by(user_id=user_id).first()
    if not user_role:
        return None
    role = db.session.get(Role, user_role.role_id)
    return role.name if role else None


def is_super_admin(user_id: int) -> bool:
    return get_user_role_name(user_id) == current_app.config.get("SUPER_ADMIN_ROLE", "super admin")


def get_user_permissions(user_id: int) -> set[str]:
    """
    Get all permission names granted to the user's role.

    Returns an empty set when the user has no role.
    """
    user_role = db.session.query(UserRole).filter_by(user_id=user_id).first()
    if not user_role:
        return set()

    rows = (
        db.session.query(Permission.name)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .filter(RolePermission.role_id == user_role.role_id)
        .all()
    )
    return {name for (name,) in rows}


def user_has_permission(user_id: int, permission_name: str) -> bool:
    """
    Check if user has a specific permission.

    WHY: Core predicate used by check_permission and the route decorator.
    """
    if is_super_admin(user_id):
        return True
    return permission_name in get_user_permissions(user_id)


def check_permission(user_id: int, permission_name: str, message: str = "Forbidden") -> None:
    """Raise Forbidden unless the user holds permission_name (or is super admin)."""
    if not user_has_permission(user_id, permission_name):
        current_app.logger.warning(
            "Permission denied: user_id=%s permission=%r", user_id, permission_name
        )
        raise Forbidden(message)


def require_default_branch(user: User, branch_id: int) -> None:
    """
    The user must be assigned to branch_id with is_default=True.

    Not bypassed for super admins.
    """
    assignment = db.session.query(BranchUser).filter_by(
        user_id=user.id,
        branch_id=branch_id,
        is_default=True,
    ).first()
    if not assignment:
        raise Forbidden("Forbidden - Invalid default branch")


def require_default_warehouse(user: User, warehouse_id: int) -> None:
    """The user must be assigned to warehouse_id with is_default=True."""
    assignment = db.session.query(UserWarehouse).filter_by(
        user_id=user.id,
        warehouse_id=warehouse_id,
        is_default=True,
    ).first()
    if not assignment:
        raise Forbidden("Forbidden - Invalid default warehouse")


def require_default_location(user: User, warehouse: Warehouse) -> None:
    """Default branch (the warehouse's branch) first, then default warehouse."""
    require_default_branch(user, warehouse.branch_id)
    require_default_warehouse(user, warehouse.id)


def initialize_permissions() -> int:
    """
    Create Permission rows for every name in PERMISSION_DEFINITIONS.

    Idempotent: Safe to run multiple times.
    """
    created_count = 0

    for name, category in PERMISSION_DEFINITIONS:
        existing = db.session.query(Permission).filter_by(name=name).first()
        if not existing:
            db.session.add(Permission(name=name, category=category))
            created_count += 1

    db.session.commit()
    return created_count


def assign_default_role_permissions() -> int:
    """
    Create the default roles (and the super admin role) and link them to
    their default permissions. Idempotent.
    """
    created_count = 0
    super_admin_name = current_app.config.get("SUPER_ADMIN_ROLE", "super admin")

    for role_name in [super_admin_name, *DEFAULT_ROLE_PERMISSIONS.keys()]:
        if not db.session.query(Role).filter_by(name=role_name).first():
            db.session.add(Role(name=role_name))
    db.session.flush()

    for role_name, permission_names in DEFAULT_ROLE_PERMISSIONS.items():
        role = db.session.query(Role).filter_by(name=role_name).first()

        for permission_name in permission_names:
            permission = db.session.query(Permission).filter_by(name=permission_name).first()
            if not permission:
                continue

            existing = db.session.query(RolePermission).filter_by(
                role_id=role.id,
                permission_id=permission.id,
            ).first()
            if not existing:
                db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
                created_count += 1

    db.session.commit()
    return created_count


def assign_role(user_id: int, role_name: str) -> UserRole:
    """Assign (or replace) the user's role."""
    role = db.session.query(Role).filter_by(name=role_name).first()
    if not role:
        raise ValueError(f"Role '{role_name}' not found")

    user_role = db.session.query(UserRole).filter_by(user_id=user_id).first()
    if user_role:
        user_role.role_id = role.id
    else:
        user_role = UserRole(user_id=user_id, role_id=role.id)
        db.session.add(user_role)

    db.session.commit()
    return user_role


def grant_permission_to_role(role_name: str, permission_name: str) -> RolePermission:
    """Grant a permission to a role. Creates the permission row if missing."""
    role = db.session.query(Role).filter_by(name=role_name).first()
    if not role:
        raise ValueError(f"Role '{role_name}' not found")

    permission = db.session.query(Permission).filter_by(name=permission_name).first()
    if not permission:
        permission = Permission(name=permission_name)
        db.session.add(permission)
        db.session.flush()

    existing = db.session.query(RolePermission).filter_by(
        role_id=role.id,
        permission_id=permission.id,
    ).first()
    if existing:
        return existing

    role_permission = RolePermission(role_id=role.id, permission_id=permission.id)
    db.session.add(role_permission)
    db.session.commit()
    return role_permission


def revoke_permission_from_role(role_name: str, permission_name: str) -> bool:
    """Revoke a permission from a role. Returns False if it was not granted."""
    role = db.session.query(Role).filter_by(name=role_name).first()
    if not role:
        raise ValueError(f"Role '{role_name}' not found")

    permission = db.session.query(Permission).filter_by(name=permission_name).first()
    if not permission:
        return False

    role_permission = db.session.query(RolePermission).filter_by(
        role_id=role.id,
        permission_id=permission.id,
    ).first()
    if role_permission:
        db.session.delete(role_permission)
        db.session.commit()
        return True

    return False
