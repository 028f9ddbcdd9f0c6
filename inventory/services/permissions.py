"""Static permission catalog, role policy table and permission checks."""

import logging
from dataclasses import dataclass
from fnmatch import fnmatchcase

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory.core.security import TokenPayload
from inventory.models import Permission, RolePermission, UserRole

logger = logging.getLogger(__name__)

RESOURCES = ("item", "category", "tag", "folder", "user")
ACTIONS = ("create", "read", "update", "delete")

# Plural used in descriptions, e.g. "Create new categories".
_RESOURCE_PLURALS = {
    "item": "items",
    "category": "categories",
    "tag": "tags",
    "folder": "folders",
    "user": "users",
}

_ACTION_DESCRIPTIONS = {
    "create": "Create new {}",
    "read": "View {}",
    "update": "Update existing {}",
    "delete": "Delete {}",
}


def permission_name(resource: str, action: str) -> str:
    return f"{resource}.{action}"


PERMISSION_CATALOG: tuple[tuple[str, str], ...] = tuple(
    (
        permission_name(resource, action),
        _ACTION_DESCRIPTIONS[action].format(_RESOURCE_PLURALS[resource]),
    )
    for resource in RESOURCES
    for action in ACTIONS
)

PERMISSION_NAMES = frozenset(name for name, _ in PERMISSION_CATALOG)

# (role, granted patterns, excluded patterns); patterns are fnmatch globs over
# permission names. This table is the whole authorization policy.
ROLE_POLICY: tuple[tuple[UserRole, tuple[str, ...], tuple[str, ...]], ...] = (
    (UserRole.ADMIN, ("*",), ()),
    (UserRole.MANAGER, ("*",), ("user.*",)),
    (UserRole.USER, ("*.read", "item.*", "category.*", "tag.*", "folder.*"), ()),
    (UserRole.VIEWER, ("*.read",), ()),
)


def policy_for(role: UserRole) -> frozenset[str]:
    """Permission names granted to role; unknown roles get nothing."""
    for policy_role, granted, excluded in ROLE_POLICY:
        if policy_role == role:
            return frozenset(
                name
                for name in PERMISSION_NAMES
                if any(fnmatchcase(name, p) for p in granted)
                and not any(fnmatchcase(name, p) for p in excluded)
            )
    return frozenset()


@dataclass(frozen=True)
class CatalogSyncResult:
    permissions_inserted: int
    grants_inserted: int
    grants_deleted: int


def sync_permission_catalog(db: Session) -> CatalogSyncResult:
    """
    Make the permissions and role_permissions tables match the catalog and policy.

    Missing permissions are inserted by name. Role grants are diffed against the
    policy: extra rows are deleted and missing rows inserted, so the persisted
    policy always equals policy_for(role) for every role. Idempotent.
    """
    try:
        existing = {p.name: p for p in db.scalars(select(Permission))}
        permissions_inserted = 0
        for name, description in PERMISSION_CATALOG:
            if name not in existing:
                permission = Permission(name=name, description=description)
                db.add(permission)
                existing[name] = permission
                permissions_inserted += 1
        db.flush()

        id_by_name = {name: p.id for name, p in existing.items()}
        desired = {
            (role, id_by_name[name])
            for role in UserRole
            for name in policy_for(role)
        }
        persisted = {
            (row.role, row.permission_id): row.id
            for row in db.execute(
                select(RolePermission.id, RolePermission.role, RolePermission.permission_id)
            )
        }

        stale_ids = [row_id for key, row_id in persisted.items() if key not in desired]
        if stale_ids:
            db.execute(
                delete(RolePermission)
                .where(RolePermission.id.in_(stale_ids))
                .execution_options(synchronize_session=False)
            )
        missing = sorted(desired - persisted.keys(), key=lambda k: (k[0].value, k[1]))
        for role, permission_id in missing:
            db.add(RolePermission(role=role, permission_id=permission_id))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    result = CatalogSyncResult(
        permissions_inserted=permissions_inserted,
        grants_inserted=len(missing),
        grants_deleted=len(stale_ids),
    )
    logger.info(
        "Permission catalog synced: permissions_inserted=%s, grants_inserted=%s, grants_deleted=%s",
        result.permissions_inserted,
        result.grants_inserted,
        result.grants_deleted,
    )
    return result


def role_has_permission(db: Session, role: UserRole, name: str) -> bool:
    """True if a role_permissions row grants name to role."""
    row = db.execute(
        select(RolePermission.id)
        .join(Permission, Permission.id == RolePermission.permission_id)
        .where(RolePermission.role == role, Permission.name == name)
        .limit(1)
    ).first()
    return row is not None


def check_permission(db: Session, principal: TokenPayload | None, name: str) -> bool:
    """Decide whether principal may perform name. Anything unresolvable is denied."""
    if principal is None:
        return False
    try:
        role = UserRole(principal.role)
    except (TypeError, ValueError):
        return False
    allowed = role_has_permission(db, role, name)
    if not allowed:
        logger.info(
            "Permission denied: user_id=%s role=%s permission=%s",
            principal.user_id,
            role.value,
            name,
        )
    return allowed
