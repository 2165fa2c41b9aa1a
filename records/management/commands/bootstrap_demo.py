"""Create a small demo dataset for walkthroughs."""
from __future__ import annotations

import datetime

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from records.models import AccountProfile, Course, Student, Subject, SubjectReservation
from records.services import reservations
from records.services.grades import update_grade

User = get_user_model()


class Command(BaseCommand):
    help = "Seed an admin, an encoder, two courses with subjects, students and reservations"

    def handle(self, *args, **options):
        self.stdout.write(self.style.WARNING("Creating demo data..."))

        def ensure_account(username: str, role: str, password: str, must_change: bool, **extra) -> User:
            user, created = User.objects.get_or_create(username=username, defaults={"email": username, **extra})
            if created:
                user.set_password(password)
                user.save(update_fields=["password"])
            AccountProfile.objects.update_or_create(
                user=user,
                defaults={"role": role, "must_change_password": must_change and created},
            )
            return user

        admin_user = ensure_account(
            "admin@example.com",
            AccountProfile.ROLE_ADMIN,
            "admin123",
            must_change=False,
            is_staff=True,
            is_superuser=True,
        )
        encoder = ensure_account(
            "encoder@example.com",
            AccountProfile.ROLE_ENCODER,
            settings.DEFAULT_INITIAL_PASSWORD,
            must_change=True,
            first_name="Erin",
            last_name="Encoder",
        )

        course_data = [
            ("BSIT", "Bachelor of Science in Information Technology"),
            ("BSCS", "Bachelor of Science in Computer Science"),
        ]
        subject_data = {
            "BSIT": [("IT101", "Introduction to Computing", 3), ("IT102", "Computer Programming 1", 3), ("IT103", "Discrete Mathematics", 3)],
            "BSCS": [("CS101", "Fundamentals of Programming", 3), ("CS102", "Data Structures and Algorithms", 3)],
        }
        courses = {}
        for code, name in course_data:
            course, _ = Course.objects.get_or_create(code=code, defaults={"name": name})
            courses[code] = course
            for subject_code, title, units in subject_data[code]:
                Subject.objects.get_or_create(course=course, code=subject_code, defaults={"title": title, "units": units})

        student_data = [
            ("2025-0001", "Juan", "Dela Cruz", "BSIT"),
            ("2025-0002", "Maria", "Santos", "BSIT"),
            ("2025-0003", "Jose", "Rizal", "BSCS"),
            ("2025-0004", "Andres", "Bonifacio", "BSCS"),
        ]
        created_reservations = 0
        for number, first_name, last_name, course_code in student_data:
            student, _ = Student.objects.get_or_create(
                student_no=number,
                defaults={
                    "first_name": first_name,
                    "last_name": last_name,
                    "email": f"{first_name.lower()}.{last_name.lower().replace(' ', '')}@example.com",
                    "birth_date": datetime.date(2004, 1, 15),
                    "course": courses[course_code],
                },
            )
            if student.course_id is None:
                continue
            reserved = SubjectReservation.objects.filter(student=student).values_list("subject_id", flat=True)
            pending = Subject.objects.filter(course_id=student.course_id).exclude(pk__in=reserved)
            created = reservations.bulk_create_reservations(
                student.pk, [s.pk for s in pending], actor=admin_user, encoder=encoder
            )
            created_reservations += len(created)

        first = Student.objects.filter(student_no="2025-0001").first()
        if first is not None:
            grade = first.grades.filter(subject__code="IT101", prelim__isnull=True).first()
            if grade is not None:
                update_grade(grade.pk, {"prelim": 80, "midterm": 85, "finals": 90}, actor=encoder)

        self.stdout.write(
            self.style.SUCCESS(
                f"Demo data ready: {Course.objects.count()} courses, {Student.objects.count()} students, "
                f"{created_reservations} new reservations. Admin login admin@example.com / admin123."
            )
        )
