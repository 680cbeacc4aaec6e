"""Shared helpers for SQLite repositories."""
from __future__ import annotations

import functools

import aiosqlite

from observer.errors import StoreError


def store_errors(func):
    """Re-raise driver failures from a repository coroutine as StoreError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except aiosqlite.Error as exc:
            raise StoreError(f"{func.__name__}: {exc}") from exc

    return wrapper
