"""ORM models for the static permission catalog and role policy."""

from sqlalchemy import Column, Enum, ForeignKey, Integer, String, Text, UniqueConstraint

from inventory.models.base import Base
from inventory.models.user import UserRole


class Permission(Base):
    """Named capability of the form resource.action, e.g. item.create."""

    __tablename__ = "permissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)


class RolePermission(Base):
    """One row per (role, permission) pair; rebuilt from the policy table at startup."""

    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role", "permission_id", name="uq_role_permissions_role_permission"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    role = Column(
        Enum(UserRole, native_enum=False, length=20, name="user_role"),
        nullable=False,
        index=True,
    )
    permission_id = Column(
        Integer,
        ForeignKey("permissions.id", ondelete="CASCADE"),
        nullable=False,
    )
