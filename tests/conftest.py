"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from gator.repository import EntryStore


@pytest.fixture()
def store(tmp_path: Path) -> Iterator[EntryStore]:
    """Migrated SQLite entry store in a temporary directory."""
    entry_store = EntryStore(tmp_path / "gator.db")
    entry_store.init_schema()
    yield entry_store
    entry_store.close()


@pytest.fixture()
def session_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the session file and DB at tmp_path so CLI tests never touch $HOME."""
    session_path = tmp_path / "gatorconfig.json"
    monkeypatch.setenv("GATOR_SESSION_PATH", str(session_path))
    monkeypatch.setenv("GATOR_DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.delenv("GATOR_POLL_INTERVAL", raising=False)
    monkeypatch.setenv("COLUMNS", "200")
    return session_path


class StepClock:
    """Deterministic clock that advances one minute per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 10, 17, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(minutes=1)
        return value


def rss_xml(*items: tuple[str, str, str | None], title: str = "Example Feed") -> str:
    """Build an RSS 2.0 payload from (title, link, pubDate) tuples."""
    rendered = []
    for item_title, link, pub_date in items:
        pub_date_xml = f"<pubDate>{pub_date}</pubDate>" if pub_date is not None else ""
        rendered.append(
            f"<item><title>{item_title}</title><link>{link}</link>"
            f"<description>About {item_title}</description>{pub_date_xml}</item>",
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<rss version="2.0"><channel><title>{title}</title>'
        "<link>https://example.com/</link><description>Example</description>"
        f"{''.join(rendered)}</channel></rss>"
    )
