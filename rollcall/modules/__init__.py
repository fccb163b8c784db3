"""
Rollcall Handler Modules

Entity modules served under /api/<module>/<method>.
"""

from rollcall.security.tokens import TokenService
from rollcall.storage.base import DocumentStore

from .base import ROLES, HandlerModule, public_view
from .classroom import ClassroomModule
from .school import SchoolModule
from .student import StudentModule
from .token import TokenModule
from .user import UserModule


def create_handler_modules(store: DocumentStore, tokens: TokenService) -> list[HandlerModule]:
    """Instantiate every built-in handler module."""
    return [
        UserModule(store, tokens),
        TokenModule(store, tokens),
        SchoolModule(store),
        ClassroomModule(store),
        StudentModule(store),
    ]


__all__ = [
    "create_handler_modules",
    "HandlerModule",
    "ROLES",
    "public_view",
    "UserModule",
    "TokenModule",
    "SchoolModule",
    "ClassroomModule",
    "StudentModule",
]
