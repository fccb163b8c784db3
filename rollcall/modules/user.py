"""
User Module - registration, login and profile management.

Routes:
    POST /api/user/registerUser
    POST /api/user/loginUser
    GET  /api/user/getUserById
    POST /api/user/updateUserProfile
    POST /api/user/changePassword
    POST /api/user/logoutUser

Self-registration creates students and teachers. The first user of an
empty system may register as superadmin; school admins are promoted by a
superadmin through updateUserProfile.
"""

from __future__ import annotations

import logging
from typing import Any

from rollcall.pipeline.introspection import handler
from rollcall.pipeline.results import Failure, Success, ValidationFailure
from rollcall.security.passwords import hash_password_async, verify_password_async
from rollcall.security.tokens import TokenService, new_session_id
from rollcall.storage.base import DocumentStore, DuplicateKeyError

from .base import (
    NOT_DELETED,
    ROLE_SCHOOL_ADMIN,
    ROLE_SUPERADMIN,
    HandlerModule,
    public_view,
    utc_now,
)
from .schemas import (
    ChangePasswordInput,
    IdInput,
    LoginUserInput,
    RegisterUserInput,
    UpdateUserProfileInput,
)

logger = logging.getLogger(__name__)

USERS = "users"
SCHOOLS = "schools"

INVALID_CREDENTIALS = "Invalid username or password"
SUPERADMIN_TAKEN = "Only the first registered user may be a superadmin"

# Set on the bootstrap superadmin only; unique, so a second one cannot be stored
BOOTSTRAP_MARKER = "bootstrapSuperadmin"


class UserModule(HandlerModule):
    name = "user"
    http_exposed = (
        "registerUser",
        "loginUser",
        "get=getUserById",
        "post=updateUserProfile",
        "post=changePassword",
        "post=logoutUser",
    )

    def __init__(self, store: DocumentStore, tokens: TokenService):
        super().__init__(store)
        self.tokens = tokens

    async def setup(self) -> None:
        await self.store.ensure_unique(USERS, "username")
        await self.store.ensure_unique(USERS, "email")
        await self.store.ensure_unique(USERS, BOOTSTRAP_MARKER)

    def _issue_tokens(self, user: dict[str, Any]) -> dict[str, str]:
        """Long and short token of one login session."""
        session_id = new_session_id()
        return {
            "longToken": self.tokens.issue_long_token(
                user_id=user["_id"],
                email=user["email"],
                role=user["role"],
                school_id=user.get("schoolId"),
                session_id=session_id,
            ),
            "shortToken": self.tokens.issue_short_token(user_id=user["_id"], session_id=session_id),
        }

    # ==================== Registration & login ====================

    @handler(
        "registerUser",
        params=("username", "email", "password", "firstName", "lastName", "role", "schoolId", "__device"),
        summary="Create an account and return tokens",
    )
    async def register_user(self, args: dict[str, Any]):
        data = self.validate(RegisterUserInput, args)
        if isinstance(data, ValidationFailure):
            return data

        if data.role == ROLE_SUPERADMIN:
            if await self.store.count(USERS, {}) > 0:
                return self.forbidden(SUPERADMIN_TAKEN)
        elif data.role == ROLE_SCHOOL_ADMIN:
            return self.forbidden("School admins are assigned by a superadmin")

        if data.schoolId:
            school = await self.store.find_one(SCHOOLS, {"_id": data.schoolId, **NOT_DELETED})
            if school is None:
                return self.not_found("School")

        now = utc_now()
        document = {
            "username": data.username,
            "email": data.email,
            "password": await hash_password_async(data.password),
            "firstName": data.firstName,
            "lastName": data.lastName,
            "role": data.role,
            "schoolId": data.schoolId,
            "status": "active",
            "createdAt": now,
            "updatedAt": now,
            "lastLogin": None,
            "registeredFrom": args.get("__device"),
            "isDeleted": False,
        }
        if data.role == ROLE_SUPERADMIN:
            document[BOOTSTRAP_MARKER] = True
        try:
            user = await self.store.insert_one(USERS, document)
        except DuplicateKeyError as e:
            if e.field == BOOTSTRAP_MARKER:
                return self.forbidden(SUPERADMIN_TAKEN)
            return self.conflict(f"{e.field} already exists")

        logger.info(f"[user] Registered user {user['_id']} ({data.role})")
        return Success({"user": public_view(user), **self._issue_tokens(user)}, code=201)

    @handler("loginUser", params=("username", "password", "__device"), summary="Exchange credentials for tokens")
    async def login_user(self, args: dict[str, Any]):
        data = self.validate(LoginUserInput, args)
        if isinstance(data, ValidationFailure):
            return data

        lookup = {"email": data.username} if "@" in data.username else {"username": data.username}
        user = await self.store.find_one(USERS, {**lookup, **NOT_DELETED})
        if user is None or not await verify_password_async(data.password, user["password"]):
            return self.unauthorized(INVALID_CREDENTIALS)

        if user.get("status") != "active":
            return self.forbidden("Account is not active")

        device = args.get("__device") or {}
        user = await self.store.update_one(
            USERS,
            {"_id": user["_id"]},
            {"lastLogin": utc_now(), "lastLoginIp": device.get("ip")},
        )
        logger.info(f"[user] Login for user {user['_id']}")
        return Success({"user": public_view(user), **self._issue_tokens(user)})

    # ==================== Profile ====================

    def _can_see_user(self, token: dict[str, Any], user: dict[str, Any]) -> bool:
        if token.get("userId") == user["_id"] or self.is_superadmin(token):
            return True
        return token.get("role") == ROLE_SCHOOL_ADMIN and self.can_manage_school(
            token, user.get("schoolId")
        )

    @handler("getUserById", params=("id", "__token"))
    async def get_user_by_id(self, args: dict[str, Any]):
        data = self.validate(IdInput, args)
        if isinstance(data, ValidationFailure):
            return data

        user = await self.store.find_one(USERS, {"_id": data.id, **NOT_DELETED})
        if user is None:
            return self.not_found("User")
        if not self._can_see_user(args["__token"], user):
            return self.forbidden("You can only view your own profile")
        return Success({"user": public_view(user)})

    @handler(
        "updateUserProfile",
        params=("id", "firstName", "lastName", "email", "role", "schoolId", "__token"),
    )
    async def update_user_profile(self, args: dict[str, Any]):
        data = self.validate(UpdateUserProfileInput, args)
        if isinstance(data, ValidationFailure):
            return data

        token = args["__token"]
        is_owner = token.get("userId") == data.id
        if not (is_owner or self.is_superadmin(token)):
            return self.forbidden("You can only update your own profile")

        changes = data.model_dump(exclude={"id"}, exclude_none=True)
        if ("role" in changes or "schoolId" in changes) and not self.is_superadmin(token):
            return self.forbidden("Only a superadmin can change roles or school assignment")
        if not changes:
            return ValidationFailure("No fields to update")
        if "email" in changes:
            changes["email"] = changes["email"].lower()
        if "schoolId" in changes:
            school = await self.store.find_one(SCHOOLS, {"_id": changes["schoolId"], **NOT_DELETED})
            if school is None:
                return self.not_found("School")
        changes["updatedAt"] = utc_now()

        try:
            user = await self.store.update_one(USERS, {"_id": data.id, **NOT_DELETED}, changes)
        except DuplicateKeyError as e:
            return self.conflict(f"{e.field} already exists")
        if user is None:
            return self.not_found("User")
        return Success({"user": public_view(user)})

    @handler("changePassword", params=("id", "currentPassword", "newPassword", "__token"))
    async def change_password(self, args: dict[str, Any]):
        data = self.validate(ChangePasswordInput, args)
        if isinstance(data, ValidationFailure):
            return data

        if args["__token"].get("userId") != data.id:
            return self.forbidden("You can only change your own password")
        if data.currentPassword == data.newPassword:
            return ValidationFailure(
                {"field": "newPassword", "message": "New password must differ from the current one"}
            )

        user = await self.store.find_one(USERS, {"_id": data.id, **NOT_DELETED})
        if user is None:
            return self.not_found("User")
        if not await verify_password_async(data.currentPassword, user["password"]):
            return Failure("Current password is incorrect", code=401)

        await self.store.update_one(
            USERS,
            {"_id": data.id},
            {"password": await hash_password_async(data.newPassword), "updatedAt": utc_now()},
        )
        return Success({"message": "Password changed successfully"})

    @handler("logoutUser", params=("__token",))
    async def logout_user(self, args: dict[str, Any]):
        self.tokens.revoke(args["__token"])
        return Success({"message": "You have been logged out successfully"})
