"""Shared fixtures: accounts, a two-course catalogue and signed-in clients."""
from __future__ import annotations

import datetime

import pytest
from django.test import Client

from records.models import AccountProfile, Course, Student, Subject
from records.services.accounts import create_account

PASSWORD = "Str0ng-Passphrase!"


@pytest.fixture
def admin_user(db):
    return create_account("admin@sis.test", PASSWORD, AccountProfile.ROLE_ADMIN, first_name="Ada")


@pytest.fixture
def encoder_user(db):
    return create_account("encoder@sis.test", PASSWORD, AccountProfile.ROLE_ENCODER, first_name="Eli")


@pytest.fixture
def course_a(db):
    return Course.objects.create(code="BSIT", name="Bachelor of Science in Information Technology")


@pytest.fixture
def course_b(db):
    return Course.objects.create(code="BSCS", name="Bachelor of Science in Computer Science")


@pytest.fixture
def subjects_a(course_a):
    return [
        Subject.objects.create(course=course_a, code="IT101", title="Introduction to Computing", units=2),
        Subject.objects.create(course=course_a, code="IT102", title="Computer Programming 1", units=3),
        Subject.objects.create(course=course_a, code="IT103", title="Discrete Mathematics", units=3),
    ]


@pytest.fixture
def subjects_b(course_b):
    return [
        Subject.objects.create(course=course_b, code="CS101", title="Fundamentals of Programming", units=3),
        Subject.objects.create(course=course_b, code="CS102", title="Data Structures", units=3),
    ]


@pytest.fixture
def make_student(db):
    counter = iter(range(1, 10000))

    def _make(course=None, **fields):
        number = next(counter)
        defaults = {
            "student_no": f"2025-{number:04d}",
            "first_name": f"Student{number}",
            "last_name": "Tester",
            "email": f"student{number}@sis.test",
            "birth_date": datetime.date(2004, 5, 17),
            "course": course,
        }
        defaults.update(fields)
        return Student.objects.create(**defaults)

    return _make


@pytest.fixture
def student(make_student, course_a):
    return make_student(course_a, first_name="Juan", last_name="Dela Cruz")


@pytest.fixture
def admin_client(admin_user):
    client = Client()
    client.force_login(admin_user)
    return client


@pytest.fixture
def encoder_client(encoder_user):
    client = Client()
    client.force_login(encoder_user)
    return client
