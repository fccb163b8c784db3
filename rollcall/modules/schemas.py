"""
Input models for the entity modules.

Field names match the request parameter names (camelCase). Query string
values arrive as strings; pydantic coerces them to the declared types.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"

Role = Literal["superadmin", "school_admin", "teacher", "student"]


class InputModel(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class IdInput(InputModel):
    id: str = Field(..., min_length=1)


class PaginationInput(InputModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


# =============================================================================
# Users
# =============================================================================


class RegisterUserInput(InputModel):
    username: str = Field(..., min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=8, max_length=128)
    firstName: str = Field(..., min_length=1, max_length=50)
    lastName: str = Field(..., min_length=1, max_length=50)
    role: Role = "student"
    schoolId: str | None = None

    @field_validator("username", "email")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.lower()


class LoginUserInput(InputModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator("username")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.lower()


class UpdateUserProfileInput(IdInput):
    firstName: str | None = Field(default=None, min_length=1, max_length=50)
    lastName: str | None = Field(default=None, min_length=1, max_length=50)
    email: str | None = Field(default=None, pattern=EMAIL_PATTERN)
    # Superadmin only
    role: Role | None = None
    schoolId: str | None = None


class ChangePasswordInput(IdInput):
    currentPassword: str = Field(..., min_length=1)
    newPassword: str = Field(..., min_length=8, max_length=128)


# =============================================================================
# Schools
# =============================================================================


class SchoolFields(InputModel):
    description: str | None = Field(default=None, max_length=1000)
    email: str | None = Field(default=None, pattern=EMAIL_PATTERN)
    phone: str | None = Field(default=None, max_length=30)
    website: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    zipCode: str | None = None
    principalName: str | None = None
    principalEmail: str | None = Field(default=None, pattern=EMAIL_PATTERN)


class CreateSchoolInput(SchoolFields):
    name: str = Field(..., min_length=2, max_length=100)
    shortCode: str = Field(..., min_length=2, max_length=10, pattern=r"^[A-Za-z0-9]+$")

    @field_validator("shortCode")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()


class UpdateSchoolInput(SchoolFields, IdInput):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    status: Literal["active", "inactive", "closed"] | None = None


class ListSchoolsInput(PaginationInput):
    status: Literal["active", "inactive", "closed"] | None = None


# =============================================================================
# Classrooms
# =============================================================================


class ClassroomFields(InputModel):
    section: str | None = None
    gradeLevel: str | None = None
    teacherId: str | None = None
    academicYear: str | None = None
    roomNumber: str | None = None


class CreateClassroomInput(ClassroomFields):
    schoolId: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    capacity: int = Field(..., ge=1, le=500)


class UpdateClassroomInput(ClassroomFields, IdInput):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    capacity: int | None = Field(default=None, ge=1, le=500)
    status: Literal["active", "inactive"] | None = None


class ListClassroomsInput(PaginationInput):
    schoolId: str | None = None
    gradeLevel: str | None = None


class ClassroomEnrollmentInput(PaginationInput, IdInput):
    limit: int = Field(default=50, ge=1, le=100)


# =============================================================================
# Students
# =============================================================================


class StudentFields(InputModel):
    email: str | None = Field(default=None, pattern=EMAIL_PATTERN)
    phone: str | None = Field(default=None, max_length=30)
    dateOfBirth: str | None = None
    address: str | None = None
    parentName: str | None = None
    parentEmail: str | None = Field(default=None, pattern=EMAIL_PATTERN)
    parentPhone: str | None = Field(default=None, max_length=30)


class CreateStudentInput(StudentFields):
    schoolId: str = Field(..., min_length=1)
    firstName: str = Field(..., min_length=1, max_length=50)
    lastName: str = Field(..., min_length=1, max_length=50)
    admissionNumber: str = Field(..., min_length=1, max_length=30)
    classroomId: str | None = None


class UpdateStudentInput(StudentFields, IdInput):
    firstName: str | None = Field(default=None, min_length=1, max_length=50)
    lastName: str | None = Field(default=None, min_length=1, max_length=50)


class ListStudentsInput(PaginationInput):
    schoolId: str | None = None
    classroomId: str | None = None
    status: Literal["active", "suspended", "withdrawn"] | None = None


class TransferStudentInput(IdInput):
    classroomId: str = Field(..., min_length=1)
    reason: str | None = Field(default=None, max_length=500)


class WithdrawStudentInput(IdInput):
    reason: str | None = Field(default=None, max_length=500)


class SuspendStudentInput(IdInput):
    reason: str | None = Field(default=None, max_length=500)


class EnrollmentNumberInput(InputModel):
    schoolId: str = Field(..., min_length=1)
    # Same value as the admissionNumber given at enrollment
    enrollmentNumber: str = Field(..., min_length=1, max_length=30)
