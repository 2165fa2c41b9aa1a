"""Subjects and the subject delete resolver."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from django.db import IntegrityError, transaction
from django.db.models import Count, Q

from records.exceptions import ConflictError, NotFoundError, PrerequisiteBlockedError, ValidationMismatchError
from records.models import Course, Grade, Subject, SubjectReservation
from records.services import audit
from records.services.courses import BulkDeleteResult

logger = logging.getLogger(__name__)

TITLE_TAKEN = "Subject title already exists in this course"
CODE_TAKEN = "Subject code already exists in this course"


def _get_course(course_id) -> Course:
    try:
        return Course.objects.get(pk=course_id)
    except (Course.DoesNotExist, ValueError):
        raise NotFoundError("Course not found")


def get_subject(subject_id) -> Subject:
    try:
        return (
            Subject.objects.select_related("course")
            .annotate(
                reservation_count=Count("reservations", distinct=True),
                grade_count=Count("grades", distinct=True),
            )
            .get(pk=subject_id)
        )
    except (Subject.DoesNotExist, ValueError):
        raise NotFoundError("Subject not found")


def subjects_for_course(course_id):
    _get_course(course_id)
    return Subject.objects.filter(course_id=course_id).order_by("code")


def check_subject_availability(course_id, code: str = "", title: str = "", exclude_id=None) -> dict[str, bool]:
    subjects = Subject.objects.filter(course_id=course_id)
    if exclude_id is not None:
        subjects = subjects.exclude(pk=exclude_id)
    code = (code or "").strip()
    title = (title or "").strip()
    return {
        "codeAvailable": not code or not subjects.filter(code__iexact=code).exists(),
        "titleAvailable": not title or not subjects.filter(title__iexact=title).exists(),
    }


def _check_available(course_id, code: Optional[str], title: Optional[str], exclude_id=None) -> None:
    availability = check_subject_availability(course_id, code or "", title or "", exclude_id)
    if not availability["codeAvailable"]:
        raise ConflictError(CODE_TAKEN)
    if not availability["titleAvailable"]:
        raise ConflictError(TITLE_TAKEN)


def create_subject(*, course_id, code: str, title: str, units: int, actor=None) -> Subject:
    course = _get_course(course_id)
    code = code.strip().upper()
    title = title.strip()
    _check_available(course.pk, code, title)
    try:
        with transaction.atomic():
            subject = Subject.objects.create(course=course, code=code, title=title, units=units)
    except IntegrityError:
        raise ConflictError(TITLE_TAKEN)
    audit.record(
        actor,
        "CREATE_SUBJECT",
        "Subject",
        subject.pk,
        {"code": subject.code, "title": subject.title, "course": course.code},
    )
    return subject


def update_subject(subject_id, changes: dict[str, Any], actor=None) -> Subject:
    try:
        subject = Subject.objects.select_related("course").get(pk=subject_id)
    except (Subject.DoesNotExist, ValueError):
        raise NotFoundError("Subject not found")

    values = {key: value for key, value in changes.items() if value is not None}
    if "code" in values:
        values["code"] = values["code"].strip().upper()
    if "title" in values:
        values["title"] = values["title"].strip()
    course_id = values.get("course_id", subject.course_id)
    if course_id != subject.course_id:
        _get_course(course_id)
        # Grades are keyed by the course they were encoded under.
        if blocked_codes([subject.pk]):
            raise ValidationMismatchError(
                f"Cannot move subject {subject.code} to another course because it has reservations or grades."
            )
    _check_available(
        course_id,
        values.get("code", subject.code),
        values.get("title", subject.title),
        exclude_id=subject.pk,
    )

    diff: dict[str, Any] = {}
    for name in ("code", "title", "units", "course_id"):
        if name in values and getattr(subject, name) != values[name]:
            diff[name] = {"from": getattr(subject, name), "to": values[name]}
            setattr(subject, name, values[name])
    try:
        with transaction.atomic():
            subject.save()
    except IntegrityError:
        raise ConflictError(TITLE_TAKEN)
    audit.record(actor, "UPDATE_SUBJECT", "Subject", subject.pk, {"code": subject.code, "changes": diff})
    return subject


def blocked_codes(subject_ids: Iterable) -> dict[Any, str]:
    return dict(
        Subject.objects.filter(pk__in=list(subject_ids))
        .filter(Q(reservations__isnull=False) | Q(grades__isnull=False))
        .values_list("pk", "code")
        .distinct()
    )


def _cascade(subject_ids: list) -> dict[str, int]:
    grades, _ = Grade.objects.filter(subject_id__in=subject_ids).delete()
    reservations, _ = SubjectReservation.objects.filter(subject_id__in=subject_ids).delete()
    return {"grades": grades, "reservations": reservations}


def delete_subject(subject_id, force: bool = False, actor=None) -> None:
    try:
        subject = Subject.objects.select_related("course").get(pk=subject_id)
    except (Subject.DoesNotExist, ValueError):
        raise NotFoundError("Subject not found")

    removed = None
    with transaction.atomic():
        if force:
            removed = _cascade([subject.pk])
        elif blocked_codes([subject.pk]):
            raise PrerequisiteBlockedError(
                f"Cannot delete subject {subject.code} because students are currently enrolled.",
                blocking_code=subject.code,
            )
        subject.delete()

    if force:
        logger.warning("Force deleted subject %s: %s", subject.code, removed)
    details: dict[str, Any] = {
        "code": subject.code,
        "title": subject.title,
        "course": subject.course.code,
        "force": "Yes" if force else "No",
    }
    if removed is not None:
        details["removed"] = removed
    audit.record(actor, "DELETE_SUBJECT", "Subject", subject_id, details)


def delete_subjects(ids: Iterable, force: bool = False, actor=None) -> BulkDeleteResult:
    requested = list(dict.fromkeys(ids))
    result = BulkDeleteResult()
    if not requested:
        return result

    with transaction.atomic():
        codes = dict(Subject.objects.filter(pk__in=requested).values_list("pk", "code"))
        missing = [pk for pk in requested if pk not in codes]
        if missing:
            raise NotFoundError("Subject not found", details={"ids": missing})

        if force:
            _cascade(requested)
            deletable = requested
        else:
            blocked = blocked_codes(requested)
            deletable = [pk for pk in requested if pk not in blocked]
            result.skipped_codes = [codes[pk] for pk in requested if pk in blocked]
            result.skipped_count = len(result.skipped_codes)

        Subject.objects.filter(pk__in=deletable).delete()
        result.deleted_count = len(deletable)

    audit.record(
        actor,
        "BULK_DELETE_SUBJECTS",
        "Subject",
        "bulk",
        {
            "deleted": [codes[pk] for pk in deletable],
            "skipped": result.skipped_codes,
            "force": "Yes" if force else "No",
        },
    )
    return result
