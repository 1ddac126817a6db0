"""ReelWatch distribution entry points.

The backend lives in the ``app`` package; this package re-exports the
pieces most callers need.
"""

from __future__ import annotations

from app.client import BrowserClient, LocalStore, SessionContext
from app.main import app, create_app

__all__ = ["app", "create_app", "BrowserClient", "LocalStore", "SessionContext"]
