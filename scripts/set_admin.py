"""
Grant (or revoke) the admin role for an existing user profile.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from gogo import accounts
from gogo import db as collections
from gogo.dependencies import get_db_client
from gogo.errors import NotFound
from gogo.types import UserRole

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Set the admin role on a user")
    parser.add_argument("user_id", help="User id (auth subject) to promote")
    parser.add_argument(
        "--revoke",
        action="store_true",
        help="Demote the user back to customer",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    db = get_db_client()
    try:
        user = accounts.get_user(db, args.user_id)
    except NotFound:
        logger.error("No profile for user %s", args.user_id)
        return 1

    role = UserRole.CUSTOMER if args.revoke else UserRole.ADMIN
    if user.role == role:
        logger.info("User %s already has role %s", user.user_id, role)
        return 0
    db.update(collections.USERS, user.user_id, {"role": role})
    logger.info("User %s: %s -> %s", user.user_id, user.role, role)
    return 0


if __name__ == "__main__":
    sys.exit(main())
