"""Programmatic access to the Alembic migrations shipped at the project root."""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory

from gator.storage.common import sqlite_url

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]


def alembic_config(db_path: Path | None = None) -> Config:
    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    if db_path is not None:
        config.set_main_option("sqlalchemy.url", sqlite_url(db_path))
    return config


def head_revision() -> str | None:
    """Newest revision id in ``alembic/versions``."""

    return ScriptDirectory.from_config(alembic_config()).get_current_head()


def upgrade_head(db_path: Path) -> None:
    """Bring the SQLite database at ``db_path`` up to the newest revision."""

    logger.debug("Upgrading %s to %s", db_path, head_revision())
    command.upgrade(alembic_config(db_path), "head")
