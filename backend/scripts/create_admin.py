"""
Create (or report) an ADMIN account.

Admin accounts cannot be registered through the API; use this script once per deployment:
    python backend/scripts/create_admin.py admin@example.org "Ada" "Lovelace" [password]

If no password is given a temporary one is generated and printed.
"""

import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.core.errors import Conflict, ValidationError  # noqa: E402
from app.core.security import generate_temporary_password  # noqa: E402
from app.lib.record_store import RecordStore  # noqa: E402
from app.models.paper import Role  # noqa: E402
from app.services.user_service import create_user  # noqa: E402


def create_admin(
    store: RecordStore,
    *,
    email: str,
    first_name: str,
    last_name: str,
    password: Optional[str] = None,
) -> tuple[dict, str]:
    password = password or generate_temporary_password()
    with store.transaction():
        user = create_user(
            store,
            email=email,
            password=password,
            role=Role.ADMIN,
            first_name=first_name,
            last_name=last_name,
        )
    return user, password


def main(argv: List[str]) -> int:
    load_dotenv()
    if len(argv) < 4:
        print(__doc__)
        return 1

    from app.lib.api_client import get_record_store

    email, first_name, last_name = argv[1], argv[2], argv[3]
    password = argv[4] if len(argv) > 4 else None
    try:
        user, password = create_admin(
            get_record_store(), email=email, first_name=first_name, last_name=last_name, password=password
        )
    except Conflict:
        print(f"⚠️ A user with email {email} already exists.")
        return 1
    except ValidationError as e:
        print(f"⚠️ Invalid admin account: {e.detail}")
        return 1

    print(f"✅ Created admin {user['email']} ({user['id']})")
    if len(argv) <= 4:
        print(f"   Temporary password: {password}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
