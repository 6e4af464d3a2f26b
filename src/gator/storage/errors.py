"""Typed errors raised by the entry store."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class StoreError(Exception):
    """Base storage error."""

    message: str
    code: str = "store_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class DuplicateRecordError(StoreError):
    """A unique constraint rejected the write."""

    table: str | None = None
    column: str | None = None


@dataclass(slots=True)
class DuplicateURLError(DuplicateRecordError):
    """A feed or post with the same URL is already stored."""
