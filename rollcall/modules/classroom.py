"""
Classroom Module - classroom CRUD within a school.

Writes: superadmin or the school's admin. Reads: anyone attached to the
school. enrolledCount is maintained by the student module.
"""

from __future__ import annotations

import logging
from typing import Any

from rollcall.pipeline.introspection import handler
from rollcall.pipeline.results import Success, ValidationFailure

from .base import NOT_DELETED, HandlerModule, public_view, rounded_ratio, utc_now
from .schemas import (
    ClassroomEnrollmentInput,
    CreateClassroomInput,
    IdInput,
    ListClassroomsInput,
    UpdateClassroomInput,
)

logger = logging.getLogger(__name__)

SCHOOLS = "schools"
CLASSROOMS = "classrooms"
STUDENTS = "students"

CLASSROOM_FIELDS = (
    "name", "section", "gradeLevel", "teacherId", "academicYear", "roomNumber", "capacity",
)


class ClassroomModule(HandlerModule):
    name = "classroom"
    http_exposed = (
        "post=createClassroom",
        "post=updateClassroom",
        "get=getClassroomById",
        "get=listClassrooms",
        "post=deleteClassroom",
        "get=getClassroomEnrollment",
        "get=checkClassroomAvailability",
    )

    async def _find(self, classroom_id: str) -> dict[str, Any] | None:
        return await self.store.find_one(CLASSROOMS, {"_id": classroom_id, **NOT_DELETED})

    @handler("createClassroom", params=("schoolId", *CLASSROOM_FIELDS, "__token"))
    async def create_classroom(self, args: dict[str, Any]):
        data = self.validate(CreateClassroomInput, args)
        if isinstance(data, ValidationFailure):
            return data

        token = args["__token"]
        if not self.can_manage_school(token, data.schoolId):
            return self.forbidden("Cannot create classrooms in other schools")

        school = await self.store.find_one(SCHOOLS, {"_id": data.schoolId, **NOT_DELETED})
        if school is None:
            return self.not_found("School")

        duplicate = await self.store.find_one(
            CLASSROOMS, {"schoolId": data.schoolId, "name": data.name, **NOT_DELETED}
        )
        if duplicate is not None:
            return self.conflict(f"Classroom {data.name} already exists in this school")

        now = utc_now()
        classroom = await self.store.insert_one(
            CLASSROOMS,
            {
                **data.model_dump(),
                "enrolledCount": 0,
                "status": "active",
                "createdBy": token.get("userId"),
                "createdAt": now,
                "updatedAt": now,
                "isDeleted": False,
            },
        )
        logger.info(f"[classroom] Created classroom {classroom['_id']} in school {data.schoolId}")
        return Success({"classroom": public_view(classroom)}, code=201)

    @handler("updateClassroom", params=("id", *CLASSROOM_FIELDS, "status", "__token"))
    async def update_classroom(self, args: dict[str, Any]):
        data = self.validate(UpdateClassroomInput, args)
        if isinstance(data, ValidationFailure):
            return data

        classroom = await self._find(data.id)
        if classroom is None:
            return self.not_found("Classroom")
        if not self.can_manage_school(args["__token"], classroom["schoolId"]):
            return self.forbidden("Cannot update classrooms in other schools")

        changes = data.model_dump(exclude={"id"}, exclude_none=True)
        if not changes:
            return ValidationFailure("No fields to update")
        if "capacity" in changes and changes["capacity"] < classroom.get("enrolledCount", 0):
            return ValidationFailure(
                {
                    "field": "capacity",
                    "message": f"Capacity cannot be below current enrollment ({classroom['enrolledCount']})",
                }
            )
        changes["updatedAt"] = utc_now()

        updated = await self.store.update_one(CLASSROOMS, {"_id": data.id}, changes)
        return Success({"classroom": public_view(updated)})

    @handler("getClassroomById", params=("id", "__token"))
    async def get_classroom_by_id(self, args: dict[str, Any]):
        data = self.validate(IdInput, args)
        if isinstance(data, ValidationFailure):
            return data

        classroom = await self._find(data.id)
        if classroom is None:
            return self.not_found("Classroom")
        if not self.can_view_school(args["__token"], classroom["schoolId"]):
            return self.forbidden("You can only view classrooms of your school")
        return Success({"classroom": public_view(classroom)})

    @handler("listClassrooms", params=("page", "limit", "schoolId", "gradeLevel", "__token"))
    async def list_classrooms(self, args: dict[str, Any]):
        data = self.validate(ListClassroomsInput, args)
        if isinstance(data, ValidationFailure):
            return data

        token = args["__token"]
        school_id = data.schoolId
        if not self.is_superadmin(token):
            # Non-superadmins are pinned to their own school
            school_id = school_id or token.get("schoolId")
            if not self.can_view_school(token, school_id):
                return self.forbidden("You can only list classrooms of your school")

        query: dict[str, Any] = {**NOT_DELETED}
        if school_id:
            query["schoolId"] = school_id
        if data.gradeLevel:
            query["gradeLevel"] = data.gradeLevel

        page = await self.paginate(CLASSROOMS, query, page=data.page, limit=data.limit)
        return Success({"classrooms": page["items"], "pagination": page["pagination"]})

    @handler("deleteClassroom", params=("id", "__token"))
    async def delete_classroom(self, args: dict[str, Any]):
        data = self.validate(IdInput, args)
        if isinstance(data, ValidationFailure):
            return data

        token = args["__token"]
        classroom = await self._find(data.id)
        if classroom is None:
            return self.not_found("Classroom")
        if not self.can_manage_school(token, classroom["schoolId"]):
            return self.forbidden("Cannot delete classrooms in other schools")

        enrolled = classroom.get("enrolledCount", 0)
        if enrolled:
            return self.conflict(f"Classroom has {enrolled} enrolled students")

        now = utc_now()
        await self.store.update_one(
            CLASSROOMS,
            {"_id": data.id},
            {"isDeleted": True, "deletedAt": now, "deletedBy": token.get("userId"), "updatedAt": now},
        )
        logger.info(f"[classroom] Soft-deleted classroom {data.id}")
        return Success({"message": "Classroom deleted successfully", "id": data.id})

    # ==================== Enrollment ====================

    @handler("getClassroomEnrollment", params=("id", "page", "limit", "__token"))
    async def get_classroom_enrollment(self, args: dict[str, Any]):
        data = self.validate(ClassroomEnrollmentInput, args)
        if isinstance(data, ValidationFailure):
            return data

        classroom = await self._find(data.id)
        if classroom is None:
            return self.not_found("Classroom")
        if not self.can_view_school(args["__token"], classroom["schoolId"]):
            return self.forbidden("You can only view classrooms of your school")

        # Withdrawn students no longer carry a classroomId
        page = await self.paginate(
            STUDENTS,
            {"classroomId": data.id, **NOT_DELETED},
            page=data.page,
            limit=data.limit,
            sort="lastName",
        )
        enrolled = classroom.get("enrolledCount", 0)
        return Success(
            {
                "classroomId": data.id,
                "classroomName": classroom["name"],
                "enrolledStudents": page["items"],
                "totalEnrolled": page["pagination"]["total"],
                "capacity": classroom["capacity"],
                "availableSeats": classroom["capacity"] - enrolled,
                "pagination": page["pagination"],
            }
        )

    @handler("checkClassroomAvailability", params=("id", "__token"))
    async def check_classroom_availability(self, args: dict[str, Any]):
        data = self.validate(IdInput, args)
        if isinstance(data, ValidationFailure):
            return data

        classroom = await self._find(data.id)
        if classroom is None:
            return self.not_found("Classroom")
        if not self.can_view_school(args["__token"], classroom["schoolId"]):
            return self.forbidden("You can only view classrooms of your school")

        capacity = classroom["capacity"]
        enrolled = classroom.get("enrolledCount", 0)
        return Success(
            {
                "classroomId": data.id,
                "capacity": capacity,
                "enrolledCount": enrolled,
                "availableSeats": capacity - enrolled,
                "hasAvailability": enrolled < capacity,
                "enrollmentPercentage": rounded_ratio(enrolled * 100, capacity),
            }
        )
