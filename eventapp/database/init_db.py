"""
Database setup and admin provisioning.

Creates the indexes the services rely on and provisions admin accounts.
Admin flags and password hashes are never written by the HTTP API; this
script is the only place they are set.

Usage:
    python -m eventapp.database.init_db
    python -m eventapp.database.init_db --admin-email admin@example.com --admin-name "Admin"
"""

import argparse
import getpass
import sys
import uuid
from datetime import datetime, timezone
from typing import Optional

from argon2 import PasswordHasher
from pymongo import ASCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from eventapp.database.db_connection import get_db, close_client, EVENTS_COLLECTION, USERS_COLLECTION

ph = PasswordHasher()


def ensure_indexes(db: Database) -> None:
    """
    Create the indexes used by the services.

    - events.title is unique, so two concurrent creators with the same
      title cannot both insert.
    - users.email is unique (Google logins upsert by email).
    - users.sub is looked up on every profile request.
    """
    db[EVENTS_COLLECTION].create_index([("title", ASCENDING)], unique=True, name="title_unique")
    db[USERS_COLLECTION].create_index([("email", ASCENDING)], unique=True, name="email_unique")
    db[USERS_COLLECTION].create_index([("sub", ASCENDING)], name="sub")


def provision_admin(db: Database, email: str, password: str, name: Optional[str] = None) -> str:
    """
    Create or promote an admin account with a password.

    An existing user (e.g. one that already signed in with Google) keeps
    its sub; a new account gets a generated one.

    Args:
        db (Database): Target database.
        email (str): Admin email, stored lowercased.
        password (str): Plain password, stored as an argon2 hash.
        name (str, optional): Display name.

    Returns:
        str: The admin's sub.
    """
    email = email.strip().lower()
    if not email or not password:
        raise ValueError("email and password are required")

    users = db[USERS_COLLECTION]
    existing = users.find_one({"email": email}, projection={"sub": 1})
    sub = existing.get("sub") if existing and existing.get("sub") else f"admin-{uuid.uuid4().hex}"

    fields = {
        "email": email,
        "sub": sub,
        "isAdmin": True,
        "passwordHash": ph.hash(password),
    }
    if name:
        fields["name"] = name

    users.update_one(
        {"email": email},
        {"$set": fields, "$setOnInsert": {"createdAt": datetime.now(timezone.utc)}},
        upsert=True,
    )
    return sub


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create indexes and provision admin accounts.")
    parser.add_argument("--admin-email", help="Create or promote this account to admin.")
    parser.add_argument("--admin-name", help="Display name for the admin account.")
    args = parser.parse_args(argv)

    print("--- Initializing database ---")
    try:
        db = get_db()
        ensure_indexes(db)
        print("Indexes ready.")

        if args.admin_email:
            password = getpass.getpass(f"Password for {args.admin_email}: ")
            sub = provision_admin(db, args.admin_email, password, args.admin_name)
            print(f"Admin provisioned: {args.admin_email} (sub={sub})")
    except (PyMongoError, RuntimeError, ValueError) as e:
        print(f"Database setup FAILED: {e}")
        return 1
    finally:
        close_client()

    return 0


if __name__ == "__main__":
    sys.exit(main())
