# Grant the admin role out of band (signup only offers landlord/tenant).
#
#   python -m app.make_admin ops@example.com
#   python -m app.make_admin ops@example.com --password 'ChangeMeStrong!' --full-name "Ops"
import argparse
import logging
import sys
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from . import models, policies
from .db import SessionLocal
from .repository import SqlRepository
from .routes.auth import hash_password

logger = logging.getLogger("vinhousing.admin")


def ensure_admin(
    db: Session, email: str, password: Optional[str] = None, full_name: Optional[str] = None
) -> models.User:
    """
    Promote an existing account to admin, or create one when a password is given.

    The account is (re)activated either way. Raises LookupError for an unknown email without a password.
    """
    repo = SqlRepository(db)
    email = email.strip().lower()
    with repo.transaction():
        user = repo.get_user_by_email(email)
        if user is None:
            if not password:
                raise LookupError(f"No user {email}; pass --password to create one")
            user = repo.add_user(
                email=email, password_hash=hash_password(password), full_name=full_name, role=policies.ADMIN
            )
        elif password:
            user.password_hash = hash_password(password)
        repo.apply_changes(user, {"role": policies.ADMIN, "status": "active"})

    logger.info("user.promoted_admin", extra={"user_id": user.id})
    return user


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Ensure a VinHousing admin account exists.")
    parser.add_argument("email")
    parser.add_argument("--password", help="set (or reset) the account password")
    parser.add_argument("--full-name", dest="full_name")
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        user = ensure_admin(db, args.email, password=args.password, full_name=args.full_name)
        print(f"Admin ensured: {user.email} (id={user.id})")
    except LookupError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
