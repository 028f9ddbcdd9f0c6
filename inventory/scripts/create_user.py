"""
Create a user (e.g. an additional admin). Run from project root:
  python -m inventory.scripts.create_user USERNAME EMAIL PASSWORD [role]
Example:
  python -m inventory.scripts.create_user alice alice@example.com your-secure-password MANAGER
"""
import argparse
import sys

from sqlalchemy import or_, select

from inventory.core.config import get_settings
from inventory.core.database import build_engine, build_session_factory
from inventory.core.security import PasswordHasher
from inventory.models import User, UserRole


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create an inventory user account.")
    parser.add_argument("username", help="Username (1-50 chars)")
    parser.add_argument("email", help="Email address (unique)")
    parser.add_argument("password", help="Password (8-128 chars)")
    parser.add_argument(
        "role",
        nargs="?",
        default=UserRole.USER.value,
        type=str.upper,
        choices=[r.value for r in UserRole],
    )
    args = parser.parse_args(argv)

    username = args.username.strip()
    email = args.email.strip()
    if not username or len(username) > 50:
        print("Invalid username length.", file=sys.stderr)
        return 1
    if "@" not in email or len(email) > 100:
        print("Invalid email address.", file=sys.stderr)
        return 1
    if len(args.password) < 8 or len(args.password) > 128:
        print("Password must be 8-128 characters.", file=sys.stderr)
        return 1

    settings = get_settings()
    engine = build_engine(settings)
    db = build_session_factory(engine)()
    try:
        existing = db.scalars(
            select(User.id).where(or_(User.username == username, User.email == email))
        ).first()
        if existing is not None:
            print(f"User '{username}' or email '{email}' already exists.", file=sys.stderr)
            return 1
        user = User(
            username=username,
            email=email,
            password_hash=PasswordHasher(settings.BCRYPT_ROUNDS).hash(args.password),
            role=UserRole(args.role),
            is_active=True,
        )
        db.add(user)
        db.commit()
        print(f"Created user '{username}' with role '{args.role}'.")
        return 0
    finally:
        db.close()
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
