"""Plain-dict representations of records for the JSON views."""
from __future__ import annotations

from typing import Any, Optional

from records.models import AuditLog, Course, Grade, Invitation, Student, Subject, SubjectReservation
from records.services.accounts import role_of


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def course_to_dict(course: Optional[Course]) -> Optional[dict[str, Any]]:
    if course is None:
        return None
    data = {
        "id": course.pk,
        "code": course.code,
        "name": course.name,
        "description": course.description,
        "createdAt": _iso(course.created_at),
        "updatedAt": _iso(course.updated_at),
    }
    if hasattr(course, "student_count"):
        data["_count"] = {"students": course.student_count, "subjects": course.subject_count}
    return data


def subject_to_dict(subject: Subject, with_course: bool = False) -> dict[str, Any]:
    data = {
        "id": subject.pk,
        "courseId": subject.course_id,
        "code": subject.code,
        "title": subject.title,
        "units": subject.units,
        "createdAt": _iso(subject.created_at),
        "updatedAt": _iso(subject.updated_at),
    }
    if with_course:
        data["course"] = course_to_dict(subject.course)
    if hasattr(subject, "reservation_count"):
        data["_count"] = {"reservations": subject.reservation_count, "grades": subject.grade_count}
    return data


def student_to_dict(student: Student) -> dict[str, Any]:
    return {
        "id": student.pk,
        "studentNo": student.student_no,
        "firstName": student.first_name,
        "lastName": student.last_name,
        "email": student.email,
        "birthDate": _iso(student.birth_date),
        "courseId": student.course_id,
        "course": course_to_dict(student.course),
        "createdAt": _iso(student.created_at),
        "updatedAt": _iso(student.updated_at),
    }


def reservation_to_dict(reservation: SubjectReservation) -> dict[str, Any]:
    return {
        "id": reservation.pk,
        "studentId": reservation.student_id,
        "subjectId": reservation.subject_id,
        "subject": subject_to_dict(reservation.subject),
        "status": reservation.status,
        "isActive": reservation.is_active,
        "reservedAt": _iso(reservation.reserved_at),
    }


def grade_to_dict(grade: Grade) -> dict[str, Any]:
    return {
        "id": grade.pk,
        "studentId": grade.student_id,
        "subjectId": grade.subject_id,
        "courseId": grade.course_id,
        "subject": {"id": grade.subject.pk, "code": grade.subject.code, "title": grade.subject.title},
        "prelim": grade.prelim,
        "midterm": grade.midterm,
        "finals": grade.finals,
        "finalGrade": grade.final_grade,
        "remarks": grade.remarks,
        "isActive": grade.is_active,
        "encodedByUserId": grade.encoded_by_id,
        "createdAt": _iso(grade.created_at),
        "updatedAt": _iso(grade.updated_at),
    }


def user_to_dict(user) -> dict[str, Any]:
    account = getattr(user, "account", None)
    data = {
        "id": user.pk,
        "email": user.email or user.username,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "role": role_of(user),
        "isActive": user.is_active,
        "mustChangePassword": bool(account and account.must_change_password),
        "createdAt": _iso(user.date_joined),
    }
    if hasattr(user, "grade_count"):
        data["_count"] = {"grades": user.grade_count}
    return data


def invitation_to_dict(invitation: Invitation) -> dict[str, Any]:
    return {
        "id": invitation.pk,
        "email": invitation.email,
        "role": invitation.role,
        "expiresAt": _iso(invitation.expires_at),
        "createdAt": _iso(invitation.created_at),
    }


def audit_log_to_dict(log: AuditLog) -> dict[str, Any]:
    user = log.user
    return {
        "id": log.pk,
        "userId": log.user_id,
        "user": {"email": user.email or user.username, "role": role_of(user)} if user else None,
        "action": log.action,
        "entity": log.entity,
        "entityId": log.entity_id,
        "details": log.details,
        "createdAt": _iso(log.created_at),
    }
