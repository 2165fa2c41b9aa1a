"""Student records, course transfers and bulk import."""
from __future__ import annotations

import csv
import datetime
import logging
import re
from typing import IO, Any, Iterable, Optional

from django.db import IntegrityError, transaction
from django.utils.dateparse import parse_date

from records.exceptions import ConflictError, NotFoundError, RecordsError, ValidationMismatchError
from records.models import STUDENT_NO_PATTERN, Course, Student
from records.services import audit, ledger

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("student_no", "first_name", "last_name", "email", "birth_date")

CSV_COLUMNS = {
    "studentno": "studentNo",
    "firstname": "firstName",
    "lastname": "lastName",
    "email": "email",
    "birthdate": "birthDate",
    "course": "course",
}


def get_student(student_id) -> Student:
    try:
        return Student.objects.select_related("course").get(pk=student_id)
    except (Student.DoesNotExist, ValueError):
        raise NotFoundError("Student not found")


def _get_course(course_id) -> Course:
    try:
        return Course.objects.get(pk=course_id)
    except (Course.DoesNotExist, ValueError):
        raise NotFoundError("Course not found")


def _normalize_email(email: Optional[str]) -> Optional[str]:
    email = (email or "").strip().lower()
    return email or None


def _check_unique(student_no: Optional[str], email: Optional[str], exclude_pk=None) -> None:
    others = Student.objects.exclude(pk=exclude_pk) if exclude_pk else Student.objects.all()
    if student_no is not None:
        if not re.match(STUDENT_NO_PATTERN, student_no):
            raise ValidationMismatchError("Student number must look like YYYY-NNNN.")
        if others.filter(student_no=student_no).exists():
            raise ConflictError("Student number already exists")
    if email and others.filter(email__iexact=email).exists():
        raise ConflictError("Email address already exists")


def _save(student: Student) -> None:
    try:
        with transaction.atomic():
            student.save()
    except IntegrityError:
        raise ConflictError("Student number or email address already exists")


def _create_student(
    *,
    first_name: str,
    last_name: str,
    birth_date: datetime.date,
    course_id=None,
    student_no: Optional[str] = None,
    email: Optional[str] = None,
) -> Student:
    course = _get_course(course_id) if course_id is not None else None
    email = _normalize_email(email)
    student_no = (student_no or "").strip() or Student.generate_student_no()
    _check_unique(student_no, email)

    student = Student(
        student_no=student_no,
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        email=email,
        birth_date=birth_date,
        course=course,
    )
    _save(student)
    return student


def create_student(*, actor=None, **fields) -> Student:
    student = _create_student(**fields)
    audit.record(
        actor,
        "CREATE_STUDENT",
        "Student",
        student.pk,
        {
            "studentNo": student.student_no,
            "name": student.full_name,
            "course": student.course.code if student.course else None,
        },
    )
    return student


def _apply_course_transfer(student: Student, new_course: Optional[Course]) -> dict[str, Any]:
    """Hold the old course's records, then restore any held records of the new one."""

    old_course = student.course
    held = ledger.hold_records_for_course(student, old_course)
    restored = ledger.reactivate_records_for_course(student, new_course)
    student.course = new_course
    logger.info(
        "Student %s transferred from %s to %s (held=%s, restored=%s)",
        student.student_no,
        old_course.code if old_course else None,
        new_course.code if new_course else None,
        held,
        restored,
    )
    return {
        "from": old_course.code if old_course else None,
        "to": new_course.code if new_course else None,
        "held": held,
        "restored": restored,
    }


def update_student(student_id, changes: dict[str, Any], actor=None) -> Student:
    """Apply a partial profile update; a course change runs as an atomic transfer."""

    changes = dict(changes)
    with transaction.atomic():
        try:
            student = Student.objects.select_for_update().select_related("course").get(pk=student_id)
        except (Student.DoesNotExist, ValueError):
            raise NotFoundError("Student not found")

        if "student_no" in changes:
            changes["student_no"] = (changes["student_no"] or "").strip()
        if "email" in changes:
            changes["email"] = _normalize_email(changes["email"])
        new_no = changes.get("student_no") or None
        new_email = changes.get("email")
        _check_unique(
            new_no if new_no != student.student_no else None,
            new_email if new_email != student.email else None,
            exclude_pk=student.pk,
        )

        diff: dict[str, Any] = {}
        for field in PROFILE_FIELDS:
            if field not in changes:
                continue
            value = changes[field]
            if field != "email" and value in (None, ""):
                continue
            if getattr(student, field) != value:
                diff[field] = {"from": str(getattr(student, field)), "to": str(value)}
                setattr(student, field, value)

        if "course_id" in changes:
            new_course_id = changes["course_id"]
            new_course = _get_course(new_course_id) if new_course_id is not None else None
            if (new_course.pk if new_course else None) != student.course_id:
                diff["course"] = _apply_course_transfer(student, new_course)

        _save(student)

    audit.record(
        actor,
        "UPDATE_STUDENT",
        "Student",
        student.pk,
        {"studentNo": student.student_no, "name": student.full_name, "changes": diff},
    )
    return student


def get_student_profile(student_id) -> dict[str, Any]:
    student = get_student(student_id)
    return {
        "student": student,
        "reservations": list(ledger.active_reservations(student)),
        "grades": list(ledger.active_grades(student)),
    }


def delete_student(student_id, actor=None) -> None:
    with transaction.atomic():
        student = get_student(student_id)
        details = {"studentNo": student.student_no, "name": student.full_name}
        student.delete()
    audit.record(actor, "DELETE_STUDENT", "Student", student_id, details)


def delete_students(ids: Iterable, actor=None) -> int:
    ids = list(dict.fromkeys(ids))
    with transaction.atomic():
        students = Student.objects.filter(pk__in=ids)
        numbers = list(students.values_list("student_no", flat=True))
        _, per_model = students.delete()
    count = per_model.get(Student._meta.label, 0)
    audit.record(actor, "BULK_DELETE_STUDENTS", "Student", "bulk", {"count": count, "studentNos": numbers})
    return count


def import_students(rows: list[dict[str, Any]], actor=None) -> dict[str, Any]:
    """Create students row by row; ``row`` in errors is the CSV line (header is line 1)."""

    results: dict[str, Any] = {"success": 0, "failed": 0, "errors": []}
    course_lookup: dict[str, Any] = {}
    for course in Course.objects.all():
        course_lookup[course.code.lower()] = course.pk
        course_lookup[course.name.lower()] = course.pk

    for index, row in enumerate(rows):
        line = index + 2
        student_no = (row.get("studentNo") or "").strip()
        course_key = (row.get("course") or "").strip().lower()
        course_id = course_lookup.get(course_key)
        if course_id is None:
            results["failed"] += 1
            results["errors"].append(
                {
                    "row": line,
                    "studentNo": student_no,
                    "error": f'Course not found: "{row.get("course")}". Use course code or full name.',
                }
            )
            continue

        if not (row.get("firstName") or "").strip() or not (row.get("lastName") or "").strip():
            results["failed"] += 1
            results["errors"].append(
                {"row": line, "studentNo": student_no, "error": "First name and last name are required"}
            )
            continue

        birth_date = row.get("birthDate")
        if isinstance(birth_date, str):
            try:
                birth_date = parse_date(birth_date.strip())
            except ValueError:
                birth_date = None
        if not isinstance(birth_date, datetime.date):
            results["failed"] += 1
            results["errors"].append({"row": line, "studentNo": student_no, "error": "Invalid birth date"})
            continue

        try:
            _create_student(
                student_no=student_no or None,
                first_name=row.get("firstName") or "",
                last_name=row.get("lastName") or "",
                email=row.get("email"),
                birth_date=birth_date,
                course_id=course_id,
            )
        except RecordsError as exc:
            results["failed"] += 1
            results["errors"].append({"row": line, "studentNo": student_no, "error": exc.message})
            continue
        results["success"] += 1

    audit.record(
        actor,
        "IMPORT_STUDENTS",
        "Student",
        "bulk",
        {"success": results["success"], "failed": results["failed"]},
    )
    return results


def read_student_csv(stream: IO[str]) -> list[dict[str, str]]:
    """Read import rows from CSV text; headers match loosely ("Student No", "student_no")."""

    reader = csv.DictReader(stream)
    rows = []
    for raw in reader:
        row = {}
        for header, value in raw.items():
            if header is None:
                continue
            key = CSV_COLUMNS.get(re.sub(r"[^a-z]", "", header.lower()))
            if key:
                row[key] = (value or "").strip()
        rows.append(row)
    return rows
