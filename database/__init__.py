"""
Transport Tracker Database Package
"""

from .db import (
    init_database,
    get_connection,
    create_user,
    get_user,
    get_user_by_username,
    list_users,
    SqliteSessionStore,
)

__all__ = [
    'init_database',
    'get_connection',
    'create_user',
    'get_user',
    'get_user_by_username',
    'list_users',
    'SqliteSessionStore',
]
