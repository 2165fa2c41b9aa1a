"""
Courses and the course delete resolver.

A standard delete refuses to remove a course that still has students or
subjects. A force delete removes the course's subjects together with their
grades and reservations, unenrolls its students and then deletes the course,
all inside one transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from django.db import IntegrityError, transaction
from django.db.models import Count, Q

from records.exceptions import ConflictError, NotFoundError, PrerequisiteBlockedError
from records.models import Course, Grade, Student, Subject, SubjectReservation
from records.services import audit

logger = logging.getLogger(__name__)


@dataclass
class BulkDeleteResult:
    deleted_count: int = 0
    skipped_count: int = 0
    skipped_codes: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "deletedCount": self.deleted_count,
            "skippedCount": self.skipped_count,
            "skippedCodes": self.skipped_codes,
        }


def _force_label(force: bool) -> str:
    return "Yes" if force else "No"


def get_course(course_id) -> Course:
    try:
        return Course.objects.annotate(
            student_count=Count("students", distinct=True),
            subject_count=Count("subjects", distinct=True),
        ).get(pk=course_id)
    except (Course.DoesNotExist, ValueError):
        raise NotFoundError("Course not found")


def course_code_exists(code: str, exclude_id=None) -> bool:
    courses = Course.objects.filter(code__iexact=(code or "").strip())
    if exclude_id is not None:
        courses = courses.exclude(pk=exclude_id)
    return courses.exists()


def create_course(*, code: str, name: str, description: str = "", actor=None) -> Course:
    code = code.strip()
    if course_code_exists(code):
        raise ConflictError("Course code already exists")
    try:
        with transaction.atomic():
            course = Course.objects.create(code=code, name=name.strip(), description=description or "")
    except IntegrityError:
        raise ConflictError("Course code already exists")
    audit.record(actor, "CREATE_COURSE", "Course", course.pk, {"code": course.code, "name": course.name})
    return course


def update_course(course_id, changes: dict[str, Any], actor=None) -> Course:
    try:
        course = Course.objects.get(pk=course_id)
    except (Course.DoesNotExist, ValueError):
        raise NotFoundError("Course not found")

    diff: dict[str, Any] = {}
    for name in ("code", "name", "description"):
        if name not in changes or changes[name] is None:
            continue
        value = changes[name].strip() if isinstance(changes[name], str) else changes[name]
        if name == "code" and course_code_exists(value, exclude_id=course.pk):
            raise ConflictError("Course code already exists")
        if getattr(course, name) != value:
            diff[name] = {"from": getattr(course, name), "to": value}
            setattr(course, name, value)

    try:
        with transaction.atomic():
            course.save()
    except IntegrityError:
        raise ConflictError("Course code already exists")
    audit.record(actor, "UPDATE_COURSE", "Course", course.pk, {"code": course.code, "changes": diff})
    return course


def blocked_codes(course_ids: Iterable) -> set[str]:
    return set(
        Course.objects.filter(pk__in=list(course_ids))
        .filter(Q(students__isnull=False) | Q(subjects__isnull=False))
        .values_list("code", flat=True)
        .distinct()
    )


def _cascade(course_ids: list) -> dict[str, int]:
    """Remove everything hanging off ``course_ids``; caller holds the transaction."""

    subject_ids = list(Subject.objects.filter(course_id__in=course_ids).values_list("pk", flat=True))
    grades, _ = Grade.objects.filter(Q(subject_id__in=subject_ids) | Q(course_id__in=course_ids)).delete()
    reservations, _ = SubjectReservation.objects.filter(subject_id__in=subject_ids).delete()
    subjects, _ = Subject.objects.filter(pk__in=subject_ids).delete()
    unenrolled = Student.objects.filter(course_id__in=course_ids).update(course=None)
    return {
        "grades": grades,
        "reservations": reservations,
        "subjects": subjects,
        "unenrolledStudents": unenrolled,
    }


def delete_course(course_id, force: bool = False, actor=None) -> None:
    try:
        course = Course.objects.get(pk=course_id)
    except (Course.DoesNotExist, ValueError):
        raise NotFoundError("Course not found")

    removed: Optional[dict[str, int]] = None
    with transaction.atomic():
        if force:
            removed = _cascade([course.pk])
        elif blocked_codes([course.pk]):
            raise PrerequisiteBlockedError(
                f"Cannot delete course {course.code} because it has students or subjects.",
                blocking_code=course.code,
            )
        course.delete()

    if force:
        logger.warning("Force deleted course %s: %s", course.code, removed)
    details: dict[str, Any] = {"code": course.code, "name": course.name, "force": _force_label(force)}
    if removed is not None:
        details["removed"] = removed
    audit.record(actor, "DELETE_COURSE", "Course", course_id, details)


def delete_courses(ids: Iterable, force: bool = False, actor=None) -> BulkDeleteResult:
    requested = list(dict.fromkeys(ids))
    result = BulkDeleteResult()
    if not requested:
        return result

    with transaction.atomic():
        codes = dict(Course.objects.filter(pk__in=requested).values_list("pk", "code"))
        missing = [pk for pk in requested if pk not in codes]
        if missing:
            raise NotFoundError("Course not found", details={"ids": missing})

        if force:
            _cascade(requested)
            deletable = requested
        else:
            blocked = blocked_codes(requested)
            deletable = [pk for pk in requested if codes[pk] not in blocked]
            result.skipped_codes = [codes[pk] for pk in requested if codes[pk] in blocked]
            result.skipped_count = len(result.skipped_codes)

        Course.objects.filter(pk__in=deletable).delete()
        result.deleted_count = len(deletable)

    audit.record(
        actor,
        "BULK_DELETE_COURSES",
        "Course",
        "bulk",
        {
            "deleted": [codes[pk] for pk in deletable],
            "skipped": result.skipped_codes,
            "force": _force_label(force),
        },
    )
    return result
