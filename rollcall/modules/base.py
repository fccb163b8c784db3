"""
Handler Module Base Class.

A handler module groups related handlers (user, school, ...) and declares
which of them are reachable over HTTP:

    class SchoolModule(HandlerModule):
        name = "school"
        http_exposed = ("post=createSchool", "get=getSchoolById")

        @handler("createSchool", params=("name", "shortCode", "__token"))
        async def create_school(self, args):
            ...

The route table builder reads `methods` (route name -> bound handler) and
the `@handler` manifests; nothing else about the module is special.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from rollcall.pipeline.introspection import get_manifest
from rollcall.pipeline.results import Failure, ValidationFailure
from rollcall.pipeline.routing import HandlerFn
from rollcall.storage.base import Document, DocumentStore

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

ROLE_SUPERADMIN = "superadmin"
ROLE_SCHOOL_ADMIN = "school_admin"
ROLE_TEACHER = "teacher"
ROLE_STUDENT = "student"
ROLES = (ROLE_SUPERADMIN, ROLE_SCHOOL_ADMIN, ROLE_TEACHER, ROLE_STUDENT)

# Never leave the store
PRIVATE_FIELDS = frozenset({"_id", "password", "isDeleted"})

NOT_DELETED: dict[str, Any] = {"isDeleted": False}


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


def rounded_ratio(numerator: int, denominator: int) -> int:
    """numerator / denominator rounded half up; 0 when the denominator is 0."""
    if denominator <= 0:
        return 0
    return (2 * numerator + denominator) // (2 * denominator)


def validation_errors(exc: ValidationError) -> list[dict[str, str]]:
    """Pydantic errors as [{field, message}]."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "body"
        errors.append({"field": field, "message": error.get("msg", "Invalid value")})
    return errors


def public_view(document: Document | None) -> dict[str, Any] | None:
    """Client-facing copy of a stored document: "_id" becomes "id"."""
    if document is None:
        return None
    view = {k: v for k, v in document.items() if k not in PRIVATE_FIELDS}
    view["id"] = document.get("_id")
    return view


class HandlerModule:
    """
    Base class for handler modules.

    Subclasses set:
    - name: URL segment (/api/<name>/...)
    - http_exposed: Exposure declarations, "verb=routeName" or "routeName"
    """

    name: str = ""
    http_exposed: tuple[str, ...] = ()

    def __init__(self, store: DocumentStore):
        self.store = store
        self._methods: Mapping[str, HandlerFn] | None = None

    @property
    def methods(self) -> Mapping[str, HandlerFn]:
        """Route name -> bound handler, for every @handler method."""
        if self._methods is None:
            found: dict[str, HandlerFn] = {}
            for klass in reversed(type(self).__mro__):
                for attr, value in vars(klass).items():
                    manifest = get_manifest(value) if callable(value) else None
                    if manifest is not None:
                        found[manifest.route_name] = getattr(self, attr)
            self._methods = MappingProxyType(found)
        return self._methods

    async def setup(self) -> None:
        """Create indexes etc. Called once at startup."""
        return None

    # ==================== Result helpers ====================

    @staticmethod
    def validate(model: type[ModelT], args: Mapping[str, Any]) -> ModelT | ValidationFailure:
        """Parse handler args into a pydantic model, or a ValidationFailure."""
        try:
            return model.model_validate(
                {k: v for k, v in args.items() if not k.startswith("__")}
            )
        except ValidationError as e:
            return ValidationFailure(validation_errors(e))

    @staticmethod
    def unauthorized(message: str = "Authentication required") -> Failure:
        return Failure(message, code=401)

    @staticmethod
    def forbidden(message: str = "You do not have permission to perform this action") -> Failure:
        return Failure(message, code=403)

    @staticmethod
    def not_found(entity: str) -> Failure:
        return Failure(f"{entity} not found", code=404)

    @staticmethod
    def conflict(message: str) -> Failure:
        return Failure(message, code=409)

    # ==================== Role gates ====================

    @staticmethod
    def is_superadmin(token: Mapping[str, Any]) -> bool:
        return token.get("role") == ROLE_SUPERADMIN

    @staticmethod
    def can_manage_school(token: Mapping[str, Any], school_id: str | None) -> bool:
        """Superadmin, or the admin of that school."""
        role = token.get("role")
        if role == ROLE_SUPERADMIN:
            return True
        return role == ROLE_SCHOOL_ADMIN and bool(school_id) and token.get("schoolId") == school_id

    @staticmethod
    def can_view_school(token: Mapping[str, Any], school_id: str | None) -> bool:
        """Superadmin, or any user attached to that school."""
        if token.get("role") == ROLE_SUPERADMIN:
            return True
        return bool(school_id) and token.get("schoolId") == school_id

    # ==================== Pagination ====================

    async def paginate(
        self,
        collection: str,
        query: dict[str, Any],
        *,
        page: int,
        limit: int,
        sort: str = "-createdAt",
    ) -> dict[str, Any]:
        total = await self.store.count(collection, query)
        documents = await self.store.find(
            collection, query, skip=(page - 1) * limit, limit=limit, sort=sort
        )
        return {
            "items": [public_view(d) for d in documents],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit if total else 0,
            },
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"
