"""
School Module - school CRUD.

Writes are superadmin only. Reads are open to the superadmin and to users
attached to the school. Deletes are soft: the document is flagged and
disappears from every query.
"""

from __future__ import annotations

import logging
from typing import Any

from rollcall.pipeline.introspection import handler
from rollcall.pipeline.results import Success, ValidationFailure
from rollcall.storage.base import DuplicateKeyError

from .base import NOT_DELETED, ROLE_TEACHER, HandlerModule, public_view, rounded_ratio, utc_now
from .schemas import CreateSchoolInput, IdInput, ListSchoolsInput, UpdateSchoolInput

logger = logging.getLogger(__name__)

SCHOOLS = "schools"
CLASSROOMS = "classrooms"
STUDENTS = "students"
USERS = "users"
ENROLLED_STATUSES = ("active", "suspended")

SUPERADMIN_ONLY = "Only a superadmin can manage schools"


class SchoolModule(HandlerModule):
    name = "school"
    http_exposed = (
        "post=createSchool",
        "post=updateSchool",
        "get=getSchoolById",
        "get=listSchools",
        "post=deleteSchool",
        "get=getSchoolStats",
    )

    async def setup(self) -> None:
        await self.store.ensure_unique(SCHOOLS, "shortCode")

    @handler(
        "createSchool",
        params=(
            "name", "shortCode", "description", "email", "phone", "website", "address",
            "city", "state", "country", "zipCode", "principalName", "principalEmail", "__token",
        ),
    )
    async def create_school(self, args: dict[str, Any]):
        token = args["__token"]
        if not self.is_superadmin(token):
            return self.forbidden(SUPERADMIN_ONLY)

        data = self.validate(CreateSchoolInput, args)
        if isinstance(data, ValidationFailure):
            return data

        now = utc_now()
        document = {
            **data.model_dump(),
            "status": "active",
            "createdBy": token.get("userId"),
            "createdAt": now,
            "updatedAt": now,
            "isDeleted": False,
        }
        try:
            school = await self.store.insert_one(SCHOOLS, document)
        except DuplicateKeyError:
            return self.conflict(f"School code {data.shortCode} already exists")

        logger.info(f"[school] Created school {school['_id']} ({data.shortCode})")
        return Success({"school": public_view(school)}, code=201)

    @handler(
        "updateSchool",
        params=(
            "id", "name", "description", "email", "phone", "website", "address", "city",
            "state", "country", "zipCode", "principalName", "principalEmail", "status", "__token",
        ),
    )
    async def update_school(self, args: dict[str, Any]):
        if not self.is_superadmin(args["__token"]):
            return self.forbidden(SUPERADMIN_ONLY)

        data = self.validate(UpdateSchoolInput, args)
        if isinstance(data, ValidationFailure):
            return data

        changes = data.model_dump(exclude={"id"}, exclude_none=True)
        if not changes:
            return ValidationFailure("No fields to update")
        changes["updatedAt"] = utc_now()

        school = await self.store.update_one(SCHOOLS, {"_id": data.id, **NOT_DELETED}, changes)
        if school is None:
            return self.not_found("School")
        return Success({"school": public_view(school)})

    @handler("getSchoolById", params=("id", "__token"))
    async def get_school_by_id(self, args: dict[str, Any]):
        data = self.validate(IdInput, args)
        if isinstance(data, ValidationFailure):
            return data

        if not self.can_view_school(args["__token"], data.id):
            return self.forbidden("You can only view your own school")

        school = await self.store.find_one(SCHOOLS, {"_id": data.id, **NOT_DELETED})
        if school is None:
            return self.not_found("School")
        return Success({"school": public_view(school)})

    @handler("listSchools", params=("page", "limit", "status", "__token"))
    async def list_schools(self, args: dict[str, Any]):
        if not self.is_superadmin(args["__token"]):
            return self.forbidden(SUPERADMIN_ONLY)

        data = self.validate(ListSchoolsInput, args)
        if isinstance(data, ValidationFailure):
            return data

        query: dict[str, Any] = {**NOT_DELETED}
        if data.status:
            query["status"] = data.status

        page = await self.paginate(SCHOOLS, query, page=data.page, limit=data.limit)
        return Success({"schools": page["items"], "pagination": page["pagination"]})

    @handler("deleteSchool", params=("id", "__token"))
    async def delete_school(self, args: dict[str, Any]):
        token = args["__token"]
        if not self.is_superadmin(token):
            return self.forbidden(SUPERADMIN_ONLY)

        data = self.validate(IdInput, args)
        if isinstance(data, ValidationFailure):
            return data

        active_students = 0
        for status in ENROLLED_STATUSES:
            active_students += await self.store.count(
                STUDENTS, {"schoolId": data.id, "status": status, **NOT_DELETED}
            )
        if active_students:
            return self.conflict(
                f"School has {active_students} active students; withdraw or transfer them first"
            )

        now = utc_now()
        school = await self.store.update_one(
            SCHOOLS,
            {"_id": data.id, **NOT_DELETED},
            {"isDeleted": True, "deletedAt": now, "deletedBy": token.get("userId"), "updatedAt": now},
        )
        if school is None:
            return self.not_found("School")

        logger.info(f"[school] Soft-deleted school {data.id}")
        return Success({"message": "School deleted successfully", "id": data.id})

    @handler("getSchoolStats", params=("id", "__token"))
    async def get_school_stats(self, args: dict[str, Any]):
        data = self.validate(IdInput, args)
        if isinstance(data, ValidationFailure):
            return data

        if not self.can_view_school(args["__token"], data.id):
            return self.forbidden("You can only view your own school")

        school = await self.store.find_one(SCHOOLS, {"_id": data.id, **NOT_DELETED})
        if school is None:
            return self.not_found("School")

        in_school = {"schoolId": data.id, **NOT_DELETED}
        total_classrooms = await self.store.count(CLASSROOMS, in_school)
        total_students = await self.store.count(STUDENTS, in_school)
        total_teachers = await self.store.count(USERS, {**in_school, "role": ROLE_TEACHER})
        return Success(
            {
                "statistics": {
                    "schoolId": data.id,
                    "schoolName": school["name"],
                    "totalClassrooms": total_classrooms,
                    "totalStudents": total_students,
                    "totalTeachers": total_teachers,
                    "averageStudentsPerClass": rounded_ratio(total_students, total_classrooms),
                    "status": school["status"],
                }
            }
        )
