"""Seed the default admin and customer accounts plus a demo support conversation.

Usage (from repository root):
    python backend/scripts/seed_demo.py

Usage (from backend directory):
    python scripts/seed_demo.py
    # or
    python -m scripts.seed_demo
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from sqlalchemy import select

# Make `app` imports work whether the script is run from repo root or backend/.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from app.db.base import Base
from app.db.session import get_engine, get_session_factory
from app.models.user import User
from app.services.identity import Identity, issue_token
from app.services.messages import append_message, delete_conversation


DEFAULT_ADMIN_EMAIL = "admin"
DEFAULT_USER_EMAIL = "user"

DEMO_EXCHANGE = [
    ("user", "Hi, is the linen shirt restocking in size M?", None),
    ("admin", "Hello! The next batch lands on Friday, we can hold one for you.", None),
    ("user", "", "https://cdn.example.com/uploads/size-chart.png"),
    ("user", "That would be great, thanks.", None),
]


def ensure_user(db, email: str, role: str) -> User:
    """Return the account with ``email``, creating it when missing."""

    user = db.scalar(select(User).where(User.email == email))
    if user is None:
        user = User(email=email, role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
    return user


def parse_args() -> argparse.Namespace:
    """Parse script CLI arguments."""

    parser = argparse.ArgumentParser(description="Seed demo accounts and a support conversation.")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create tables from ORM metadata instead of relying on Alembic migrations.",
    )
    parser.add_argument(
        "--no-reset",
        action="store_true",
        help="Do not delete the demo customer's existing conversation before seeding.",
    )
    return parser.parse_args()


def main() -> None:
    """Seed demo data and print a short summary."""

    args = parse_args()
    if args.create_tables:
        Base.metadata.create_all(get_engine())

    with get_session_factory()() as db:
        admin = ensure_user(db, DEFAULT_ADMIN_EMAIL, "admin")
        customer = ensure_user(db, DEFAULT_USER_EMAIL, "user")
        if not args.no_reset:
            delete_conversation(db, customer.id)
        created = [
            append_message(db, customer.id, sender, body=body, attachment_ref=attachment)
            for sender, body, attachment in DEMO_EXCHANGE
        ]
        admin_id, customer_id = admin.id, customer.id

    print("Seed complete")
    print(f"admin_id={admin_id} customer_id={customer_id}")
    print(f"messages_created={len(created)}")
    print()
    print("Tokens:")
    print(f"  admin    {issue_token(Identity(participant_id=admin_id, role='admin'))}")
    print(f"  customer {issue_token(Identity(participant_id=customer_id, role='user'))}")
    print()
    print("Inspect:")
    print("  GET /conversations")
    print(f"  GET /conversations/{customer_id}")
    print("  GET /conversations/mine/messages")


if __name__ == "__main__":
    main()
