"""Database layer - engine, base classes, types."""

from approval_kernel.db.base import UUID, Base, UTCDateTime, UUIDString
from approval_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "session_scope",
    "Base",
    "UUIDString",
    "UTCDateTime",
    "UUID",
]
