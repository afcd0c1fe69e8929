from __future__ import annotations

import logging
from pathlib import Path
from typing import Set

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

from .db import get_engine
from .settings import env_flag

logger = logging.getLogger("content_backend.pipeline")

ALEMBIC_ROOT = Path(__file__).resolve().parents[1]


def script_heads() -> Set[str]:
    config = Config(str(ALEMBIC_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(ALEMBIC_ROOT / "alembic"))
    return set(ScriptDirectory.from_config(config).get_heads())


def database_heads() -> Set[str]:
    with get_engine().connect() as connection:
        return set(MigrationContext.configure(connection).get_current_heads())


def verify_db_is_at_head() -> None:
    expected, current = script_heads(), database_heads()
    if current != expected:
        raise RuntimeError(
            f"Database schema is at {sorted(current) or 'no revision'}, expected {sorted(expected)}. "
            "Run `alembic upgrade head` from content_backend/ before starting the API."
        )
    logger.info("pipeline.schema.at_head revisions=%s", ",".join(sorted(current)))


def should_verify_db_head_on_startup() -> bool:
    return env_flag("REQUIRE_DB_AT_HEAD", True)
