"""
Helpers for reading SQLAlchemy errors in a dialect-agnostic way.
"""

from __future__ import annotations

from typing import Optional


def constraint_name_from_error(exc: Exception) -> Optional[str]:
    """
    Best-effort extraction of the violated constraint from an IntegrityError.

    PostgreSQL exposes ``diag.constraint_name``; SQLite only reports the
    columns, so the message text is returned for the caller to match against.
    """
    orig = getattr(exc, "orig", None)
    diag = getattr(orig, "diag", None)
    name = getattr(diag, "constraint_name", None)
    if name:
        return str(name)
    if orig is not None:
        return str(orig)
    return str(exc) if exc else None
