"""
Student Module - student records, enrollment and transfers.

RBAC: superadmin, or the admin of the student's school. Enrollment keeps
the classroom's enrolledCount in step and refuses full classrooms.
Every enrollment change is appended to the student's enrollmentHistory.
Suspended students keep their seat; withdrawn students give it up.
"""

from __future__ import annotations

import logging
from typing import Any

from rollcall.pipeline.introspection import handler
from rollcall.pipeline.results import Failure, Success, ValidationFailure

from .base import NOT_DELETED, HandlerModule, public_view, utc_now
from .schemas import (
    CreateStudentInput,
    EnrollmentNumberInput,
    IdInput,
    ListStudentsInput,
    SuspendStudentInput,
    TransferStudentInput,
    UpdateStudentInput,
    WithdrawStudentInput,
)

logger = logging.getLogger(__name__)

SCHOOLS = "schools"
CLASSROOMS = "classrooms"
STUDENTS = "students"

STUDENT_FIELDS = (
    "email", "phone", "dateOfBirth", "address", "parentName", "parentEmail", "parentPhone",
)


class StudentModule(HandlerModule):
    name = "student"
    http_exposed = (
        "post=createStudent",
        "post=updateStudent",
        "get=getStudentById",
        "get=listStudents",
        "post=transferStudent",
        "post=withdrawStudent",
        "get=getStudentHistory",
        "post=suspendStudent",
        "get=getStudentByEnrollmentNumber",
    )

    async def _find(self, student_id: str) -> dict[str, Any] | None:
        return await self.store.find_one(STUDENTS, {"_id": student_id, **NOT_DELETED})

    async def _claim_seat(self, classroom_id: str, school_id: str) -> dict[str, Any] | Failure:
        """
        Take one seat in a classroom of the school, or return a Failure.

        The capacity check and the enrolledCount increment are a single
        store operation, so concurrent enrollments cannot overfill a room.
        """
        classroom = await self.store.find_one(CLASSROOMS, {"_id": classroom_id, **NOT_DELETED})
        if classroom is None:
            return self.not_found("Classroom")
        if classroom["schoolId"] != school_id:
            return Failure("Classroom does not belong to the student's school", code=400)

        claimed = await self.store.increment(
            CLASSROOMS,
            {"_id": classroom_id, **NOT_DELETED},
            "enrolledCount",
            1,
            ceiling_field="capacity",
        )
        if claimed is None:
            return Failure(
                f"Classroom is at full capacity ({classroom['capacity']}/{classroom['capacity']})",
                code=409,
            )
        return claimed

    async def _release_seat(self, classroom_id: str | None) -> None:
        if classroom_id:
            await self.store.increment(CLASSROOMS, {"_id": classroom_id}, "enrolledCount", -1, floor=0)

    @staticmethod
    def _history_entry(kind: str, classroom_id: str | None, token: dict[str, Any], **extra: Any):
        return {
            "type": kind,
            "classroomId": classroom_id,
            "at": utc_now(),
            "by": token.get("userId"),
            **extra,
        }

    # ==================== Handlers ====================

    @handler(
        "createStudent",
        params=("schoolId", "firstName", "lastName", "admissionNumber", "classroomId", *STUDENT_FIELDS, "__token"),
    )
    async def create_student(self, args: dict[str, Any]):
        data = self.validate(CreateStudentInput, args)
        if isinstance(data, ValidationFailure):
            return data

        token = args["__token"]
        if not self.can_manage_school(token, data.schoolId):
            return self.forbidden("Cannot enroll students in other schools")

        school = await self.store.find_one(SCHOOLS, {"_id": data.schoolId, **NOT_DELETED})
        if school is None:
            return self.not_found("School")

        existing = await self.store.find_one(
            STUDENTS,
            {"schoolId": data.schoolId, "admissionNumber": data.admissionNumber, **NOT_DELETED},
        )
        if existing is not None:
            return self.conflict("Admission number already exists in this school")

        if data.classroomId:
            seat = await self._claim_seat(data.classroomId, data.schoolId)
            if isinstance(seat, Failure):
                return seat

        now = utc_now()
        student = await self.store.insert_one(
            STUDENTS,
            {
                **data.model_dump(),
                "status": "active",
                "enrollmentHistory": [self._history_entry("enrollment", data.classroomId, token)],
                "createdBy": token.get("userId"),
                "createdAt": now,
                "updatedAt": now,
                "isDeleted": False,
            },
        )
        logger.info(f"[student] Enrolled student {student['_id']} in school {data.schoolId}")
        return Success({"student": public_view(student)}, code=201)

    @handler("updateStudent", params=("id", "firstName", "lastName", *STUDENT_FIELDS, "__token"))
    async def update_student(self, args: dict[str, Any]):
        data = self.validate(UpdateStudentInput, args)
        if isinstance(data, ValidationFailure):
            return data

        student = await self._find(data.id)
        if student is None:
            return self.not_found("Student")
        if not self.can_manage_school(args["__token"], student["schoolId"]):
            return self.forbidden("Cannot update students in other schools")

        changes = data.model_dump(exclude={"id"}, exclude_none=True)
        if not changes:
            return ValidationFailure("No fields to update")
        changes["updatedAt"] = utc_now()

        updated = await self.store.update_one(STUDENTS, {"_id": data.id}, changes)
        return Success({"student": public_view(updated)})

    @handler("getStudentById", params=("id", "__token"))
    async def get_student_by_id(self, args: dict[str, Any]):
        data = self.validate(IdInput, args)
        if isinstance(data, ValidationFailure):
            return data

        student = await self._find(data.id)
        if student is None:
            return self.not_found("Student")
        if not self.can_view_school(args["__token"], student["schoolId"]):
            return self.forbidden("You can only view students of your school")
        return Success({"student": public_view(student)})

    @handler("listStudents", params=("page", "limit", "schoolId", "classroomId", "status", "__token"))
    async def list_students(self, args: dict[str, Any]):
        data = self.validate(ListStudentsInput, args)
        if isinstance(data, ValidationFailure):
            return data

        token = args["__token"]
        school_id = data.schoolId
        if not self.is_superadmin(token):
            school_id = school_id or token.get("schoolId")
            if not self.can_view_school(token, school_id):
                return self.forbidden("You can only list students of your school")

        query: dict[str, Any] = {**NOT_DELETED}
        if school_id:
            query["schoolId"] = school_id
        if data.classroomId:
            query["classroomId"] = data.classroomId
        if data.status:
            query["status"] = data.status

        page = await self.paginate(STUDENTS, query, page=data.page, limit=data.limit)
        return Success({"students": page["items"], "pagination": page["pagination"]})

    @handler("transferStudent", params=("id", "classroomId", "reason", "__token"))
    async def transfer_student(self, args: dict[str, Any]):
        data = self.validate(TransferStudentInput, args)
        if isinstance(data, ValidationFailure):
            return data

        token = args["__token"]
        student = await self._find(data.id)
        if student is None:
            return self.not_found("Student")
        if not self.can_manage_school(token, student["schoolId"]):
            return self.forbidden("Cannot transfer students in other schools")
        if student.get("status") != "active":
            return Failure("Only active students can be transferred", code=400)
        if student.get("classroomId") == data.classroomId:
            return Failure("Student is already in this classroom", code=400)

        seat = await self._claim_seat(data.classroomId, student["schoolId"])
        if isinstance(seat, Failure):
            return seat

        previous = student.get("classroomId")
        history = list(student.get("enrollmentHistory") or [])
        history.append(
            self._history_entry("transfer", data.classroomId, token, fromClassroomId=previous, reason=data.reason)
        )
        updated = await self.store.update_one(
            STUDENTS,
            {"_id": data.id},
            {"classroomId": data.classroomId, "enrollmentHistory": history, "updatedAt": utc_now()},
        )
        await self._release_seat(previous)

        logger.info(f"[student] Transferred student {data.id}: {previous} -> {data.classroomId}")
        return Success({"student": public_view(updated)})

    @handler("withdrawStudent", params=("id", "reason", "__token"))
    async def withdraw_student(self, args: dict[str, Any]):
        data = self.validate(WithdrawStudentInput, args)
        if isinstance(data, ValidationFailure):
            return data

        token = args["__token"]
        student = await self._find(data.id)
        if student is None:
            return self.not_found("Student")
        if not self.can_manage_school(token, student["schoolId"]):
            return self.forbidden("Cannot withdraw students in other schools")
        if student.get("status") == "withdrawn":
            return self.conflict("Student is already withdrawn")

        classroom_id = student.get("classroomId")
        history = list(student.get("enrollmentHistory") or [])
        history.append(self._history_entry("withdrawal", classroom_id, token, reason=data.reason))
        now = utc_now()
        updated = await self.store.update_one(
            STUDENTS,
            {"_id": data.id},
            {
                "status": "withdrawn",
                "withdrawnAt": now,
                "classroomId": None,
                "enrollmentHistory": history,
                "updatedAt": now,
            },
        )
        await self._release_seat(classroom_id)

        logger.info(f"[student] Withdrew student {data.id}")
        return Success({"student": public_view(updated)})

    @handler("getStudentHistory", params=("id", "__token"))
    async def get_student_history(self, args: dict[str, Any]):
        data = self.validate(IdInput, args)
        if isinstance(data, ValidationFailure):
            return data

        student = await self._find(data.id)
        if student is None:
            return self.not_found("Student")
        if not self.can_view_school(args["__token"], student["schoolId"]):
            return self.forbidden("You can only view students of your school")

        # Newest first
        history = list(reversed(student.get("enrollmentHistory") or []))
        return Success({"studentId": data.id, "enrollmentHistory": history})

    @handler("suspendStudent", params=("id", "reason", "__token"))
    async def suspend_student(self, args: dict[str, Any]):
        data = self.validate(SuspendStudentInput, args)
        if isinstance(data, ValidationFailure):
            return data

        token = args["__token"]
        student = await self._find(data.id)
        if student is None:
            return self.not_found("Student")
        if not self.can_manage_school(token, student["schoolId"]):
            return self.forbidden("Cannot suspend students from other schools")
        if student.get("status") == "suspended":
            return self.conflict("Student is already suspended")
        if student.get("status") != "active":
            return Failure("Only active students can be suspended", code=400)

        history = list(student.get("enrollmentHistory") or [])
        history.append(
            self._history_entry("suspension", student.get("classroomId"), token, reason=data.reason)
        )
        now = utc_now()
        updated = await self.store.update_one(
            STUDENTS,
            {"_id": data.id},
            {
                "status": "suspended",
                "suspendedAt": now,
                "suspensionReason": data.reason,
                "enrollmentHistory": history,
                "updatedAt": now,
            },
        )

        logger.info(f"[student] Suspended student {data.id}")
        return Success({"student": public_view(updated)})

    @handler("getStudentByEnrollmentNumber", params=("schoolId", "enrollmentNumber", "__token"))
    async def get_student_by_enrollment_number(self, args: dict[str, Any]):
        data = self.validate(EnrollmentNumberInput, args)
        if isinstance(data, ValidationFailure):
            return data

        if not self.can_view_school(args["__token"], data.schoolId):
            return self.forbidden("Cannot access students from other schools")

        student = await self.store.find_one(
            STUDENTS,
            {"schoolId": data.schoolId, "admissionNumber": data.enrollmentNumber, **NOT_DELETED},
        )
        if student is None:
            return self.not_found("Student")
        return Success({"student": public_view(student)})
