"""Headline counts for the admin dashboard."""
from __future__ import annotations

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Count

from records.models import Course, Student, Subject, SubjectReservation


def stats() -> dict[str, int]:
    users = get_user_model().objects.exclude(username=settings.SIS_SYSTEM_ACTOR)
    return {
        "students": Student.objects.count(),
        "courses": Course.objects.count(),
        "subjects": Subject.objects.count(),
        "users": users.count(),
        "reservations": SubjectReservation.objects.filter(is_active=True).count(),
    }


def students_per_course() -> list[dict]:
    courses = Course.objects.annotate(student_count=Count("students")).order_by("code")
    return [
        {"id": course.pk, "code": course.code, "name": course.name, "students": course.student_count}
        for course in courses
    ]
