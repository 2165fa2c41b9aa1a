"""Django models for the student records, enrollment and grading domain."""
from __future__ import annotations

import datetime

from django.contrib.auth import get_user_model
from django.core.validators import MaxValueValidator, MinValueValidator, RegexValidator
from django.db import models
from django.db.models.functions import Lower

User = get_user_model()

STUDENT_NO_PATTERN = r"^\d{4}-\d{4}$"

score_validators = [MinValueValidator(0), MaxValueValidator(100)]


class AccountProfile(models.Model):
    ROLE_ADMIN = "admin"
    ROLE_ENCODER = "encoder"
    ROLE_CHOICES = [
        (ROLE_ADMIN, "Administrator"),
        (ROLE_ENCODER, "Encoder"),
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="account", verbose_name="user")
    role = models.CharField("role", max_length=16, choices=ROLE_CHOICES, default=ROLE_ENCODER)
    must_change_password = models.BooleanField("must change password on next login", default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "account"
        verbose_name_plural = "accounts"

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.user.username} ({self.role})"

    @property
    def is_admin(self) -> bool:
        return self.role == self.ROLE_ADMIN


class Invitation(models.Model):
    email = models.EmailField("email", unique=True)
    token = models.CharField("token", max_length=64, unique=True)
    role = models.CharField("role", max_length=16, choices=AccountProfile.ROLE_CHOICES, default=AccountProfile.ROLE_ENCODER)
    expires_at = models.DateTimeField("expires at")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "invitation"
        verbose_name_plural = "invitations"
        ordering = ["-created_at"]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.email} ({self.role})"

    def is_expired(self, now: datetime.datetime) -> bool:
        return self.expires_at <= now


class Course(models.Model):
    code = models.CharField("course code", max_length=20, unique=True)
    name = models.CharField("course name", max_length=255)
    description = models.TextField("description", blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "course"
        verbose_name_plural = "courses"
        ordering = ["code"]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.code} - {self.name}"


class Subject(models.Model):
    course = models.ForeignKey(Course, on_delete=models.PROTECT, related_name="subjects", verbose_name="course")
    code = models.CharField("subject code", max_length=20)
    title = models.CharField("title", max_length=255)
    units = models.PositiveSmallIntegerField("units", validators=[MinValueValidator(1)])
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "subject"
        verbose_name_plural = "subjects"
        ordering = ["course__code", "code"]
        constraints = [
            models.UniqueConstraint(Lower("title"), "course", name="subject_title_unique_per_course"),
        ]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.code} - {self.title}"


class Student(models.Model):
    student_no = models.CharField(
        "student number",
        max_length=9,
        unique=True,
        validators=[RegexValidator(STUDENT_NO_PATTERN, "Student number must look like YYYY-NNNN.")],
    )
    first_name = models.CharField("first name", max_length=100)
    last_name = models.CharField("last name", max_length=100)
    email = models.EmailField("email", unique=True, null=True, blank=True)
    birth_date = models.DateField("birth date")
    course = models.ForeignKey(
        Course,
        on_delete=models.PROTECT,
        related_name="students",
        verbose_name="course",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "student"
        verbose_name_plural = "students"
        ordering = ["-created_at"]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.student_no} {self.last_name}, {self.first_name}"

    @property
    def full_name(self) -> str:
        return f"{self.last_name}, {self.first_name}"

    @classmethod
    def generate_student_no(cls, year: int | None = None) -> str:
        """Generate the next student number in the format <year>-<4 digit sequence>."""

        year_prefix = f"{year or datetime.date.today().year}-"
        last_number = (
            cls.objects.filter(student_no__startswith=year_prefix)
            .order_by("-student_no")
            .values_list("student_no", flat=True)
            .first()
        )
        if last_number and last_number[-4:].isdigit():
            sequence = int(last_number[-4:]) + 1
        else:
            sequence = 1
        return f"{year_prefix}{sequence:04d}"


class SubjectReservation(models.Model):
    STATUS_RESERVED = "reserved"
    STATUS_CANCELLED = "cancelled"
    STATUS_CHOICES = [
        (STATUS_RESERVED, "Reserved"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="reservations", verbose_name="student")
    subject = models.ForeignKey(Subject, on_delete=models.PROTECT, related_name="reservations", verbose_name="subject")
    status = models.CharField("status", max_length=16, choices=STATUS_CHOICES, default=STATUS_RESERVED)
    is_active = models.BooleanField("counts toward current course", default=True)
    reserved_at = models.DateTimeField("reserved at", auto_now_add=True)

    class Meta:
        verbose_name = "subject reservation"
        verbose_name_plural = "subject reservations"
        ordering = ["-reserved_at"]
        constraints = [
            models.UniqueConstraint(fields=["student", "subject"], name="reservation_unique_student_subject"),
        ]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.student} -> {self.subject} ({self.status})"


class Grade(models.Model):
    REMARKS_PENDING = "Pending"
    REMARKS_PASSED = "Passed"
    REMARKS_FAILED = "Failed"
    REMARKS_INCOMPLETE = "INC"
    REMARKS_CHOICES = [
        (REMARKS_PENDING, "Pending"),
        (REMARKS_PASSED, "Passed"),
        (REMARKS_FAILED, "Failed"),
        (REMARKS_INCOMPLETE, "Incomplete"),
    ]

    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="grades", verbose_name="student")
    subject = models.ForeignKey(Subject, on_delete=models.PROTECT, related_name="grades", verbose_name="subject")
    course = models.ForeignKey(Course, on_delete=models.PROTECT, related_name="grades", verbose_name="course")
    prelim = models.FloatField("prelim", null=True, blank=True, validators=score_validators)
    midterm = models.FloatField("midterm", null=True, blank=True, validators=score_validators)
    finals = models.FloatField("finals", null=True, blank=True, validators=score_validators)
    final_grade = models.FloatField("final grade", null=True, blank=True)
    remarks = models.CharField("remarks", max_length=16, choices=REMARKS_CHOICES, default=REMARKS_PENDING)
    is_active = models.BooleanField("counts toward current course", default=True)
    encoded_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name="encoded_grades", verbose_name="encoded by")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "grade"
        verbose_name_plural = "grades"
        ordering = ["student__last_name", "subject__code"]
        constraints = [
            models.UniqueConstraint(fields=["student", "subject", "course"], name="grade_unique_student_subject_course"),
        ]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.student} / {self.subject}: {self.final_grade} ({self.remarks})"


class AuditLog(models.Model):
    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
        verbose_name="actor",
    )
    action = models.CharField("action", max_length=64)
    entity = models.CharField("entity type", max_length=64)
    entity_id = models.CharField("entity id", max_length=64)
    details = models.JSONField("details", null=True, blank=True)
    created_at = models.DateTimeField("time", auto_now_add=True)

    class Meta:
        verbose_name = "audit log"
        verbose_name_plural = "audit logs"
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["entity_id"], name="auditlog_entity_id_idx")]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.action} {self.entity}#{self.entity_id}"
