from .base import (
    DEFAULT_BACKGROUND,
    MEMBER_ROLES,
    BoardStore,
    CardStore,
    ListStore,
    Stores,
    UserStore,
    WriteResult,
)

__all__ = [
    'DEFAULT_BACKGROUND',
    'MEMBER_ROLES',
    'BoardStore',
    'CardStore',
    'ListStore',
    'Stores',
    'UserStore',
    'WriteResult',
]
