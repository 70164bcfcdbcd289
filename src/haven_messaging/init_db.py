"""Create the messaging tables and optionally seed the admin account."""
from __future__ import annotations

import argparse

from sqlalchemy import select

from haven_messaging.db.session import SessionLocal, create_tables
from haven_messaging.models import User


def ensure_admin(name: str, email: str) -> User:
    """Return the admin with ``email``, creating it if missing."""
    with SessionLocal() as db:
        admin = db.execute(select(User).where(User.email == email)).scalars().first()
        if admin is None:
            admin = User(name=name, email=email, is_admin=True)
            db.add(admin)
        else:
            admin.is_admin = True
        db.commit()
        db.refresh(admin)
        return admin


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--admin-email", help="Seed an admin account with this email")
    parser.add_argument("--admin-name", default="Admin", help="Display name of the seeded admin")
    args = parser.parse_args(argv)

    create_tables()
    print("Database initialized.")
    if args.admin_email:
        admin = ensure_admin(args.admin_name, args.admin_email)
        print(f"Admin account ready: {admin.id}")


if __name__ == "__main__":
    main()
