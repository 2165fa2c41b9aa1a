"""
Subject reservations and their paired grade rows.

Every reservation created here gets a Pending grade for the same
(student, subject, course) triple, and removing a reservation removes that
grade in the same transaction.
"""
from __future__ import annotations

import logging
from typing import Iterable

from django.db import IntegrityError, transaction

from records.exceptions import ConflictError, NotFoundError, ValidationMismatchError
from records.models import Grade, Student, Subject, SubjectReservation
from records.services import audit
from records.services.accounts import resolve_encoder

logger = logging.getLogger(__name__)


def _get_enrolled_student(student_id) -> Student:
    try:
        student = Student.objects.select_related("course").get(pk=student_id)
    except (Student.DoesNotExist, ValueError):
        raise NotFoundError("Student not found")
    if student.course_id is None:
        raise ValidationMismatchError("Student not enrolled in a course")
    return student


def _ensure_pending_grade(student: Student, subject: Subject, encoder) -> Grade:
    grade, created = Grade.objects.get_or_create(
        student=student,
        subject=subject,
        course_id=subject.course_id,
        defaults={"remarks": Grade.REMARKS_PENDING, "encoded_by": encoder},
    )
    if created:
        logger.debug("Created pending grade %s for %s/%s", grade.pk, student.student_no, subject.code)
    return grade


def _remove_paired_grade(reservation: SubjectReservation) -> int:
    deleted, _ = Grade.objects.filter(
        student_id=reservation.student_id,
        subject_id=reservation.subject_id,
        course_id=reservation.subject.course_id,
    ).delete()
    return deleted


def create_reservation(student_id, subject_id, actor=None, encoder=None) -> SubjectReservation:
    student = _get_enrolled_student(student_id)
    try:
        subject = Subject.objects.get(pk=subject_id)
    except (Subject.DoesNotExist, ValueError):
        raise NotFoundError("Subject not found")
    if subject.course_id != student.course_id:
        raise ValidationMismatchError("Cannot reserve subject from a different course")
    if SubjectReservation.objects.filter(student=student, subject=subject).exists():
        raise ConflictError("Subject already reserved")

    encoder = resolve_encoder(encoder)
    try:
        with transaction.atomic():
            reservation = SubjectReservation.objects.create(
                student=student,
                subject=subject,
                status=SubjectReservation.STATUS_RESERVED,
            )
            _ensure_pending_grade(student, subject, encoder)
    except IntegrityError:
        raise ConflictError("Subject already reserved")

    audit.record(
        actor,
        "CREATE_RESERVATION",
        "SubjectReservation",
        reservation.pk,
        {"student": student.full_name, "studentNo": student.student_no, "subject": subject.code},
    )
    return reservation


def bulk_create_reservations(student_id, subject_ids: Iterable, actor=None, encoder=None) -> list[SubjectReservation]:
    """Reserve every requested subject of the student's course that is not reserved yet."""

    student = _get_enrolled_student(student_id)
    requested = list(dict.fromkeys(subject_ids))
    reserved_ids = SubjectReservation.objects.filter(student=student).values_list("subject_id", flat=True)
    subjects = list(
        Subject.objects.filter(pk__in=requested, course_id=student.course_id)
        .exclude(pk__in=reserved_ids)
        .order_by("code")
    )
    if not subjects:
        return []

    encoder = resolve_encoder(encoder)
    created: list[SubjectReservation] = []
    with transaction.atomic():
        for subject in subjects:
            created.append(
                SubjectReservation.objects.create(
                    student=student,
                    subject=subject,
                    status=SubjectReservation.STATUS_RESERVED,
                )
            )
            _ensure_pending_grade(student, subject, encoder)

    audit.record(
        actor,
        "BULK_CREATE_RESERVATIONS",
        "SubjectReservation",
        "bulk",
        {
            "student": student.full_name,
            "studentNo": student.student_no,
            "subjects": [subject.code for subject in subjects],
        },
    )
    return created


def cancel_reservation(reservation_id, actor=None) -> SubjectReservation:
    try:
        reservation = SubjectReservation.objects.select_related("student", "subject").get(pk=reservation_id)
    except (SubjectReservation.DoesNotExist, ValueError):
        raise NotFoundError("Reservation not found")
    reservation.status = SubjectReservation.STATUS_CANCELLED
    reservation.save(update_fields=["status"])
    audit.record(
        actor,
        "CANCEL_RESERVATION",
        "SubjectReservation",
        reservation.pk,
        {
            "student": reservation.student.full_name,
            "studentNo": reservation.student.student_no,
            "subject": reservation.subject.code,
        },
    )
    return reservation


def delete_reservation(reservation_id, actor=None) -> None:
    with transaction.atomic():
        try:
            reservation = SubjectReservation.objects.select_related("student", "subject").get(pk=reservation_id)
        except (SubjectReservation.DoesNotExist, ValueError):
            raise NotFoundError("Reservation not found")
        _remove_paired_grade(reservation)
        details = {
            "student": reservation.student.full_name,
            "studentNo": reservation.student.student_no,
            "subject": reservation.subject.code,
        }
        reservation.delete()
    audit.record(actor, "DELETE_RESERVATION", "SubjectReservation", reservation_id, details)


def bulk_delete_reservations(ids: Iterable, actor=None) -> int:
    with transaction.atomic():
        reservations = list(
            SubjectReservation.objects.filter(pk__in=list(ids)).select_related("student", "subject")
        )
        for reservation in reservations:
            _remove_paired_grade(reservation)
        SubjectReservation.objects.filter(pk__in=[r.pk for r in reservations]).delete()

    if reservations:
        audit.record(
            actor,
            "BULK_DELETE_RESERVATIONS",
            "SubjectReservation",
            "bulk",
            {
                "reservations": [
                    {"studentNo": r.student.student_no, "subject": r.subject.code} for r in reservations
                ]
            },
        )
    return len(reservations)


def reservations_for_student(student_id, include_held: bool = False):
    if not Student.objects.filter(pk=student_id).exists():
        raise NotFoundError("Student not found")
    reservations = SubjectReservation.objects.filter(student_id=student_id).select_related("subject")
    if not include_held:
        reservations = reservations.filter(is_active=True)
    return reservations


def available_subjects(student_id):
    try:
        student = Student.objects.get(pk=student_id)
    except (Student.DoesNotExist, ValueError):
        raise NotFoundError("Student not found")
    if student.course_id is None:
        return Subject.objects.none()
    reserved_ids = SubjectReservation.objects.filter(student=student).values_list("subject_id", flat=True)
    return Subject.objects.filter(course_id=student.course_id).exclude(pk__in=reserved_ids).order_by("code")
