import pytest
from django.conf import settings

from records.exceptions import ConflictError, NotFoundError, ValidationMismatchError
from records.models import AuditLog, Grade, SubjectReservation
from records.services import reservations


@pytest.mark.django_db
def test_reservation_creates_pending_grade(student, subjects_a, course_a):
    reservation = reservations.create_reservation(student.pk, subjects_a[0].pk)

    assert reservation.status == SubjectReservation.STATUS_RESERVED
    grade = Grade.objects.get(student=student, subject=subjects_a[0], course=course_a)
    assert grade.remarks == "Pending"
    assert (grade.prelim, grade.midterm, grade.finals, grade.final_grade) == (None, None, None, None)
    assert grade.encoded_by.username == settings.SIS_SYSTEM_ACTOR


@pytest.mark.django_db
def test_reservation_uses_given_encoder(student, subjects_a, encoder_user):
    reservations.create_reservation(student.pk, subjects_a[0].pk, encoder=encoder_user)

    assert Grade.objects.get(student=student).encoded_by == encoder_user


@pytest.mark.django_db
def test_reservation_keeps_existing_grade(student, subjects_a, course_a, encoder_user):
    existing = Grade.objects.create(
        student=student, subject=subjects_a[0], course=course_a, prelim=90, encoded_by=encoder_user
    )

    reservations.create_reservation(student.pk, subjects_a[0].pk)

    assert list(Grade.objects.filter(student=student).values_list("pk", flat=True)) == [existing.pk]


@pytest.mark.django_db
def test_reservation_errors(student, make_student, subjects_a, subjects_b):
    with pytest.raises(NotFoundError, match="Student not found"):
        reservations.create_reservation(999999, subjects_a[0].pk)

    unenrolled = make_student(None)
    with pytest.raises(ValidationMismatchError, match="Student not enrolled in a course"):
        reservations.create_reservation(unenrolled.pk, subjects_a[0].pk)

    with pytest.raises(NotFoundError, match="Subject not found"):
        reservations.create_reservation(student.pk, 999999)

    with pytest.raises(ValidationMismatchError, match="Cannot reserve subject from a different course"):
        reservations.create_reservation(student.pk, subjects_b[0].pk)

    reservations.create_reservation(student.pk, subjects_a[0].pk)
    with pytest.raises(ConflictError, match="Subject already reserved"):
        reservations.create_reservation(student.pk, subjects_a[0].pk)

    assert SubjectReservation.objects.count() == 1
    assert Grade.objects.count() == 1


@pytest.mark.django_db
def test_bulk_reservation_skips_foreign_and_reserved(student, subjects_a, subjects_b):
    reservations.create_reservation(student.pk, subjects_a[0].pk)

    created = reservations.bulk_create_reservations(
        student.pk, [subjects_a[0].pk, subjects_a[1].pk, subjects_a[2].pk, subjects_b[0].pk]
    )

    assert sorted(r.subject.code for r in created) == ["IT102", "IT103"]
    assert Grade.objects.filter(student=student, remarks="Pending").count() == 3
    assert reservations.bulk_create_reservations(student.pk, [subjects_b[0].pk]) == []


@pytest.mark.django_db
def test_delete_reservation_removes_paired_grade(student, subjects_a):
    kept = reservations.create_reservation(student.pk, subjects_a[0].pk)
    dropped = reservations.create_reservation(student.pk, subjects_a[1].pk)

    reservations.delete_reservation(dropped.pk)

    assert list(SubjectReservation.objects.values_list("pk", flat=True)) == [kept.pk]
    assert list(Grade.objects.values_list("subject__code", flat=True)) == ["IT101"]
    assert AuditLog.objects.filter(action="DELETE_RESERVATION", entity_id=str(dropped.pk)).exists()


@pytest.mark.django_db
def test_held_reservation_delete_removes_held_grade(student, subjects_a, course_b):
    from records.services import students

    reservation = reservations.create_reservation(student.pk, subjects_a[0].pk)
    students.update_student(student.pk, {"course_id": course_b.pk})

    reservations.delete_reservation(reservation.pk)

    assert not Grade.objects.filter(student=student).exists()


@pytest.mark.django_db
def test_bulk_delete_reservations(student, subjects_a):
    created = reservations.bulk_create_reservations(student.pk, [s.pk for s in subjects_a])

    count = reservations.bulk_delete_reservations([r.pk for r in created[:2]] + [999999])

    assert count == 2
    assert SubjectReservation.objects.count() == 1
    assert Grade.objects.count() == 1


@pytest.mark.django_db
def test_cancel_keeps_grade(student, subjects_a):
    reservation = reservations.create_reservation(student.pk, subjects_a[0].pk)

    cancelled = reservations.cancel_reservation(reservation.pk)

    assert cancelled.status == SubjectReservation.STATUS_CANCELLED
    assert Grade.objects.filter(student=student).count() == 1
    with pytest.raises(NotFoundError, match="Reservation not found"):
        reservations.cancel_reservation(999999)


@pytest.mark.django_db
def test_available_subjects_and_held_listing(student, subjects_a, course_b, subjects_b):
    from records.services import students

    reservations.create_reservation(student.pk, subjects_a[0].pk)
    available = reservations.available_subjects(student.pk)
    assert [s.code for s in available] == ["IT102", "IT103"]

    students.update_student(student.pk, {"course_id": course_b.pk})
    assert [s.code for s in reservations.available_subjects(student.pk)] == ["CS101", "CS102"]
    assert list(reservations.reservations_for_student(student.pk)) == []
    assert reservations.reservations_for_student(student.pk, include_held=True).count() == 1
