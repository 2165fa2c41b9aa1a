"""Grade encoding. Final grades and remarks are always recomputed here."""
from __future__ import annotations

import logging
from typing import Any, Optional

from django.db import IntegrityError, transaction

from records.exceptions import ConflictError, NotFoundError, ValidationMismatchError
from records.models import Grade, Student, Subject
from records.services import audit
from records.services.accounts import resolve_encoder
from records.services.grading import evaluate

logger = logging.getLogger(__name__)

SCORE_FIELDS = ("prelim", "midterm", "finals")
COURSE_MISMATCH = "Cannot encode grade: Course mismatch with student's current enrollment."


def _check_scores(values: dict[str, Any]) -> None:
    for field in SCORE_FIELDS:
        value = values.get(field)
        if value is not None and not 0 <= value <= 100:
            raise ValidationMismatchError(f"{field} must be between 0 and 100")


def _resolve_remarks(remarks: Optional[str], computed: str) -> str:
    if not remarks:
        return computed
    if remarks not in dict(Grade.REMARKS_CHOICES):
        raise ValidationMismatchError(f"Unknown remarks value: {remarks}")
    return remarks


def _enrolled_student(student_id, course_id) -> Student:
    try:
        student = Student.objects.get(pk=student_id)
    except (Student.DoesNotExist, ValueError):
        raise NotFoundError("Student not found")
    if student.course_id is None or str(student.course_id) != str(course_id):
        raise ValidationMismatchError(COURSE_MISMATCH)
    return student


def _course_subject(subject_id, course_id) -> Subject:
    try:
        subject = Subject.objects.get(pk=subject_id)
    except (Subject.DoesNotExist, ValueError):
        raise NotFoundError("Subject not found")
    if str(subject.course_id) != str(course_id):
        raise ValidationMismatchError("Subject does not belong to the course")
    return subject


def _change_details(grade: Grade) -> dict[str, Any]:
    return {
        "student": grade.student.full_name,
        "studentNo": grade.student.student_no,
        "course": grade.course.code,
        "subject": grade.subject.code,
    }


def get_grade(grade_id) -> Grade:
    try:
        return Grade.objects.select_related("student", "subject", "course", "encoded_by").get(pk=grade_id)
    except (Grade.DoesNotExist, ValueError):
        raise NotFoundError("Grade not found")


def grades_for_student(student_id):
    return (
        Grade.objects.filter(student_id=student_id, is_active=True)
        .select_related("subject", "course")
        .order_by("subject__code")
    )


def grades_for_subject(subject_id):
    return (
        Grade.objects.filter(subject_id=subject_id)
        .select_related("student", "course")
        .order_by("student__last_name")
    )


def create_grade(
    *,
    student_id,
    subject_id,
    course_id,
    prelim: Optional[float] = None,
    midterm: Optional[float] = None,
    finals: Optional[float] = None,
    remarks: Optional[str] = None,
    encoder=None,
    actor=None,
) -> Grade:
    student = _enrolled_student(student_id, course_id)
    subject = _course_subject(subject_id, course_id)
    scores = {"prelim": prelim, "midterm": midterm, "finals": finals}
    _check_scores(scores)
    if Grade.objects.filter(student=student, subject=subject, course_id=subject.course_id).exists():
        raise ConflictError("Grade already exists for this student and subject")

    final_grade, computed = evaluate(prelim, midterm, finals)
    encoder = resolve_encoder(encoder)
    try:
        with transaction.atomic():
            grade = Grade.objects.create(
                student=student,
                subject=subject,
                course_id=subject.course_id,
                final_grade=final_grade,
                remarks=_resolve_remarks(remarks, computed),
                encoded_by=encoder,
                **scores,
            )
    except IntegrityError:
        raise ConflictError("Grade already exists for this student and subject")

    audit.record(
        actor or encoder,
        "CREATE_GRADE",
        "Grade",
        grade.pk,
        {**scores, "finalGrade": final_grade, "remarks": grade.remarks},
    )
    return grade


def update_grade(grade_id, changes: dict[str, Any], actor=None) -> Grade:
    changes = {key: value for key, value in changes.items() if key in SCORE_FIELDS + ("remarks",)}
    _check_scores(changes)

    with transaction.atomic():
        try:
            grade = Grade.objects.select_for_update().select_related("student", "subject", "course").get(pk=grade_id)
        except (Grade.DoesNotExist, ValueError):
            raise NotFoundError("Grade not found")

        before = {field: getattr(grade, field) for field in SCORE_FIELDS + ("remarks",)}
        for field in SCORE_FIELDS:
            if field in changes:
                setattr(grade, field, changes[field])
        grade.final_grade, computed = evaluate(grade.prelim, grade.midterm, grade.finals)
        grade.remarks = _resolve_remarks(changes.get("remarks"), computed)
        grade.save()

    details = _change_details(grade)
    for field, old in before.items():
        new = getattr(grade, field)
        if field in changes or old != new:
            details[field] = {"from": old, "to": new}
    audit.record(actor, "UPDATE_GRADE", "Grade", grade.pk, details)
    return grade


def upsert_grade(
    *,
    student_id,
    subject_id,
    course_id,
    prelim: Optional[float] = None,
    midterm: Optional[float] = None,
    finals: Optional[float] = None,
    remarks: Optional[str] = None,
    encoder=None,
    actor=None,
) -> Grade:
    student = _enrolled_student(student_id, course_id)
    subject = _course_subject(subject_id, course_id)
    scores = {"prelim": prelim, "midterm": midterm, "finals": finals}
    _check_scores(scores)

    final_grade, computed = evaluate(prelim, midterm, finals)
    resolved_remarks = _resolve_remarks(remarks, computed)
    encoder = resolve_encoder(encoder)
    with transaction.atomic():
        grade, created = Grade.objects.select_for_update().get_or_create(
            student=student,
            subject=subject,
            course_id=subject.course_id,
            defaults={**scores, "final_grade": final_grade, "remarks": resolved_remarks, "encoded_by": encoder},
        )
        if not created:
            for field, value in scores.items():
                setattr(grade, field, value)
            grade.final_grade = final_grade
            grade.remarks = resolved_remarks
            grade.save()

    audit.record(
        actor or encoder,
        "UPSERT_GRADE",
        "Grade",
        grade.pk,
        {**scores, "finalGrade": final_grade, "remarks": resolved_remarks, "created": created},
    )
    return grade


def delete_grade(grade_id, actor=None) -> None:
    grade = get_grade(grade_id)
    details = _change_details(grade)
    grade.delete()
    audit.record(actor, "DELETE_GRADE", "Grade", grade_id, details)


def bulk_update_grades(updates: list[dict[str, Any]], actor=None) -> dict[str, Any]:
    """Apply several grade edits in one transaction; unknown ids are skipped."""

    if not updates:
        return {"count": 0, "updated": []}
    for update in updates:
        _check_scores(update)

    ids = [update["id"] for update in updates]
    updated: list[Grade] = []
    audit_rows: list[dict[str, Any]] = []
    with transaction.atomic():
        existing = {
            grade.pk: grade
            for grade in Grade.objects.select_for_update()
            .filter(pk__in=ids)
            .select_related("student", "subject", "course")
        }
        for update in updates:
            grade = existing.get(update["id"])
            if grade is None:
                logger.info("Skipping bulk update for missing grade %s", update["id"])
                continue
            row = _change_details(grade)
            for field in SCORE_FIELDS:
                if field in update:
                    row[field] = {"from": getattr(grade, field), "to": update[field]}
                    setattr(grade, field, update[field])
            grade.final_grade, computed = evaluate(grade.prelim, grade.midterm, grade.finals)
            grade.remarks = _resolve_remarks(update.get("remarks"), computed)
            grade.save()
            updated.append(grade)
            audit_rows.append(row)

    if audit_rows:
        audit.record(actor, "BULK_UPDATE_GRADES", "Grade", "bulk", {"grades": audit_rows})
    return {"count": len(updated), "updated": updated}
