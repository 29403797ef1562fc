# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Alembic environment – wires the migration engine to the same database the
application uses.

The database URL comes from the application's Settings (environment or
etc/app.conf), so there is a single source of truth for the connection
string.
"""

import sys
import os

# ---------------------------------------------------------------------------
# Path setup – make sure ``backend/`` is importable so that
# ``from core.config import get_settings`` and model imports work.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from alembic import context

from core.config import get_settings
from database import Base, build_engine

# Every model module must be imported so Base.metadata sees its table;
# autogenerate silently skips the ones that are not.
import models.user           # noqa: F401, E402
import models.refresh_token  # noqa: F401, E402
import models.partner        # noqa: F401, E402
import models.contract       # noqa: F401, E402
import models.reminder       # noqa: F401, E402
import models.document       # noqa: F401, E402
import models.audit_log      # noqa: F401, E402


def _database_url() -> str:
    # ``alembic -x database_url=sqlite:///scratch.db upgrade head`` targets
    # another database without touching etc/app.conf.
    return context.get_x_argument(as_dictionary=True).get("database_url") or get_settings().database_url


def _configure(**kwargs) -> None:
    url = kwargs.pop("url", None) or _database_url()
    context.configure(
        target_metadata=Base.metadata,
        compare_type=True,
        # SQLite cannot ALTER columns in place; batch mode recreates the table
        render_as_batch=url.startswith("sqlite"),
        url=None if "connection" in kwargs else url,
        **kwargs,
    )


def run_migrations_online():
    connectable = build_engine(_database_url())
    try:
        with connectable.connect() as conn:
            _configure(connection=conn, url=str(connectable.url))
            with context.begin_transaction():
                context.run_migrations()
    finally:
        connectable.dispose()


def run_migrations_offline():
    _configure(literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
