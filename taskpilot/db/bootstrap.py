from __future__ import annotations

from sqlalchemy.engine import make_url
from sqlmodel import Session

from taskpilot.core.config import get_settings
from taskpilot.core.logging import get_logger
from taskpilot.db.engine import create_engine_from_url, ensure_database_parent_dir
from taskpilot.db.migrations import upgrade_to_head
from taskpilot.db.seed import seed_initial_data

logger = get_logger("taskpilot.db.bootstrap")


def initialize_database(database_url: str | None = None, *, seed: bool = True) -> None:
    """Bring the schema to the latest revision and, unless disabled, load the seed data."""
    target_url = database_url or get_settings().database_url
    safe_url = make_url(target_url).render_as_string(hide_password=True)
    ensure_database_parent_dir(target_url)
    upgrade_to_head(target_url)
    logger.info("db.migrated", database_url=safe_url)

    if not seed:
        return

    engine = create_engine_from_url(target_url)
    try:
        with Session(engine) as session:
            seed_initial_data(session)
    finally:
        engine.dispose()
    logger.info("db.seeded", database_url=safe_url)
