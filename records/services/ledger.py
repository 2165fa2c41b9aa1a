"""
Active/held partition of a student's reservations and grades.

A record is active when its subject belongs to the student's current course and
held when it belongs to a course the student has since left. Nothing is deleted
when a student changes course; the ``is_active`` flags move instead.
"""
from __future__ import annotations

from records.models import Grade, SubjectReservation


def _course_reservations(student, course):
    return SubjectReservation.objects.filter(student=student, subject__course=course)


def _course_grades(student, course):
    return Grade.objects.filter(student=student, subject__course=course)


def hold_records_for_course(student, course) -> dict[str, int]:
    """Mark the student's reservations and grades for ``course`` as held."""
    if course is None:
        return {"reservations": 0, "grades": 0}
    reservations = _course_reservations(student, course).filter(is_active=True).update(is_active=False)
    grades = _course_grades(student, course).filter(is_active=True).update(is_active=False)
    return {"reservations": reservations, "grades": grades}


def reactivate_records_for_course(student, course) -> dict[str, int]:
    """Restore the student's previously held reservations and grades for ``course``."""
    if course is None:
        return {"reservations": 0, "grades": 0}
    reservations = _course_reservations(student, course).filter(is_active=False).update(is_active=True)
    grades = _course_grades(student, course).filter(is_active=False).update(is_active=True)
    return {"reservations": reservations, "grades": grades}


def active_reservations(student):
    return SubjectReservation.objects.filter(student=student, is_active=True).select_related("subject")


def active_grades(student):
    return Grade.objects.filter(student=student, is_active=True).select_related("subject", "course")
