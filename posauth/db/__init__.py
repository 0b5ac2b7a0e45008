"""
Database module for the credential store.
"""
from posauth.db.database import (
    Base,
    create_engine,
    create_session_maker,
    init_db,
    drop_db,
)

__all__ = [
    "Base",
    "create_engine",
    "create_session_maker",
    "init_db",
    "drop_db",
]
