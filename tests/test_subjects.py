import json

import pytest

from records.exceptions import ValidationMismatchError
from records.models import Grade, Subject
from records.services import grades, reservations, students, subjects


@pytest.mark.django_db
def test_subject_in_use_cannot_move_course(student, subjects_a, course_b):
    reservation = reservations.create_reservation(student.pk, subjects_a[0].pk)

    with pytest.raises(ValidationMismatchError):
        subjects.update_subject(subjects_a[0].pk, {"course_id": course_b.pk, "title": "Renamed"})

    subject = Subject.objects.get(pk=subjects_a[0].pk)
    assert subject.course_id == student.course_id
    assert subject.title == "Introduction to Computing"

    reservations.delete_reservation(reservation.pk)
    assert not Grade.objects.filter(subject=subject).exists()


@pytest.mark.django_db
def test_subject_in_use_keeps_one_active_grade_after_transfer(student, subjects_a, course_b):
    reservations.create_reservation(student.pk, subjects_a[0].pk)
    with pytest.raises(ValidationMismatchError):
        subjects.update_subject(subjects_a[0].pk, {"course_id": course_b.pk})

    students.update_student(student.pk, {"course_id": course_b.pk})
    students.update_student(student.pk, {"course_id": subjects_a[0].course_id})
    grades.upsert_grade(
        student_id=student.pk, subject_id=subjects_a[0].pk, course_id=subjects_a[0].course_id, prelim=80
    )

    assert Grade.objects.filter(student=student, subject=subjects_a[0], is_active=True).count() == 1


@pytest.mark.django_db
def test_unused_subject_can_move_course(subjects_a, course_b):
    moved = subjects.update_subject(subjects_a[1].pk, {"course_id": course_b.pk})

    assert moved.course_id == course_b.pk
    assert Subject.objects.get(pk=subjects_a[1].pk).course_id == course_b.pk


@pytest.mark.django_db
def test_subject_move_rejected_over_api(admin_client, student, subjects_a, course_b):
    reservations.create_reservation(student.pk, subjects_a[0].pk)

    response = admin_client.patch(
        f"/api/subjects/{subjects_a[0].pk}",
        data=json.dumps({"courseId": course_b.pk}),
        content_type="application/json",
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_FAILED"
    assert Subject.objects.get(pk=subjects_a[0].pk).course_id == student.course_id
