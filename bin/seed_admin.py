# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Bootstrap script – creates the first admin user.

Run once after the initial migration:
    python bin/seed_admin.py

The script reads FIRST_ADMIN_EMAIL and FIRST_ADMIN_PASSWORD from etc/app.conf
file.  After the row is inserted those env vars are no longer used by the
application.

The admin account is created ACTIVE (no approval step); change the password
after the first login.
"""

import sys
import os

# ---------------------------------------------------------------------------
# Path setup so backend modules are importable
# ---------------------------------------------------------------------------
# bin/seed_admin.py  →  ../  →  project root
_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_BACKEND_DIR  = os.path.join(_PROJECT_ROOT, "backend")
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from auth.service import normalize_email, validate_password_policy   # noqa: E402
from core.config import get_settings                                  # noqa: E402
from core.security import PasswordHasher                              # noqa: E402
from database import build_engine, build_session_factory              # noqa: E402
from models.user import User                                          # noqa: E402


def seed():
    settings = get_settings()
    if not settings.first_admin_email or not settings.first_admin_password:
        print("[seed_admin] FIRST_ADMIN_EMAIL or FIRST_ADMIN_PASSWORD not set in etc/app.conf – nothing to do.")
        return

    err = validate_password_policy(settings.first_admin_password)
    if err:
        print(f"[seed_admin] FIRST_ADMIN_PASSWORD rejected: {err}")
        return

    email = normalize_email(settings.first_admin_email)
    engine = build_engine(settings.database_url)
    db = build_session_factory(engine)()
    try:
        existing = db.query(User).filter(User.email == email).first()
        if existing:
            print(f"[seed_admin] Admin '{email}' already exists – skipping.")
            return

        admin = User(
            email=email,
            password_hash=PasswordHasher(settings.password_hash_rounds).hash(settings.first_admin_password),
            first_name="Admin",
            last_name="",
            role="ADMIN",
            status="ACTIVE",
            is_active=True,
        )
        db.add(admin)
        db.commit()
        print(f"[seed_admin] Admin '{email}' created successfully.")
    finally:
        db.close()
        engine.dispose()


if __name__ == "__main__":
    seed()
