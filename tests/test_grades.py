import pytest

from records.exceptions import ConflictError, NotFoundError, ValidationMismatchError
from records.models import AuditLog, Grade
from records.services import grades, reservations


@pytest.mark.django_db
def test_create_grade_computes_final_and_remarks(student, subjects_a, course_a, encoder_user):
    grade = grades.create_grade(
        student_id=student.pk,
        subject_id=subjects_a[0].pk,
        course_id=course_a.pk,
        prelim=1.5,
        midterm=2.0,
        finals=3.0,
        encoder=encoder_user,
    )

    assert grade.final_grade == pytest.approx(2.25)
    assert grade.remarks == "Passed"
    assert grade.encoded_by == encoder_user
    assert AuditLog.objects.filter(action="CREATE_GRADE", user=encoder_user).exists()


@pytest.mark.django_db
def test_create_grade_rejects_course_mismatch(student, subjects_b, course_b):
    with pytest.raises(ValidationMismatchError) as excinfo:
        grades.create_grade(student_id=student.pk, subject_id=subjects_b[0].pk, course_id=course_b.pk)

    assert excinfo.value.message == "Cannot encode grade: Course mismatch with student's current enrollment."
    assert not Grade.objects.exists()


@pytest.mark.django_db
def test_create_grade_rejects_duplicates(student, subjects_a, course_a):
    reservations.create_reservation(student.pk, subjects_a[0].pk)

    with pytest.raises(ConflictError, match="Grade already exists for this student and subject"):
        grades.create_grade(student_id=student.pk, subject_id=subjects_a[0].pk, course_id=course_a.pk)


@pytest.mark.django_db
def test_create_grade_rejects_out_of_range_scores(student, subjects_a, course_a):
    with pytest.raises(ValidationMismatchError, match="prelim must be between 0 and 100"):
        grades.create_grade(student_id=student.pk, subject_id=subjects_a[0].pk, course_id=course_a.pk, prelim=101)


@pytest.mark.django_db
def test_update_grade_recomputes_from_merged_scores(student, subjects_a, encoder_user):
    reservations.create_reservation(student.pk, subjects_a[0].pk)
    grade = Grade.objects.get(student=student)

    grade = grades.update_grade(grade.pk, {"prelim": 80}, actor=encoder_user)
    assert grade.final_grade is None
    assert grade.remarks == "INC"

    grade = grades.update_grade(grade.pk, {"midterm": 85, "finals": 90}, actor=encoder_user)
    assert grade.final_grade == pytest.approx(85.5)
    assert grade.remarks == "Failed"

    log = AuditLog.objects.filter(action="UPDATE_GRADE").first()
    assert log.details["midterm"] == {"from": None, "to": 85}
    assert log.details["studentNo"] == student.student_no
    assert log.details["subject"] == "IT101"


@pytest.mark.django_db
def test_explicit_remarks_win(student, subjects_a):
    reservations.create_reservation(student.pk, subjects_a[0].pk)
    grade = Grade.objects.get(student=student)

    grade = grades.update_grade(grade.pk, {"prelim": 1, "midterm": 1, "finals": 1, "remarks": "Failed"})

    assert grade.final_grade == pytest.approx(1.0)
    assert grade.remarks == "Failed"


@pytest.mark.django_db
def test_update_missing_grade():
    with pytest.raises(NotFoundError, match="Grade not found"):
        grades.update_grade(999999, {"prelim": 50})


@pytest.mark.django_db
def test_upsert_creates_then_updates(student, subjects_a, course_a, encoder_user, admin_user):
    first = grades.upsert_grade(
        student_id=student.pk, subject_id=subjects_a[0].pk, course_id=course_a.pk, prelim=2, encoder=encoder_user
    )
    second = grades.upsert_grade(
        student_id=student.pk,
        subject_id=subjects_a[0].pk,
        course_id=course_a.pk,
        prelim=2,
        midterm=2,
        finals=2,
        encoder=admin_user,
    )

    assert first.pk == second.pk
    assert second.final_grade == pytest.approx(2.0)
    assert second.remarks == "Passed"
    assert second.encoded_by == encoder_user
    assert Grade.objects.count() == 1


@pytest.mark.django_db
def test_bulk_update_skips_unknown_ids(student, subjects_a, admin_user):
    reservations.bulk_create_reservations(student.pk, [s.pk for s in subjects_a])
    ids = list(Grade.objects.order_by("subject__code").values_list("pk", flat=True))

    result = grades.bulk_update_grades(
        [
            {"id": ids[0], "prelim": 1, "midterm": 2, "finals": 3},
            {"id": ids[1], "prelim": 40},
            {"id": 999999, "prelim": 10},
        ],
        actor=admin_user,
    )

    assert result["count"] == 2
    refreshed = {g.pk: g for g in Grade.objects.all()}
    assert refreshed[ids[0]].final_grade == pytest.approx(2.1)
    assert refreshed[ids[0]].remarks == "Passed"
    assert refreshed[ids[1]].remarks == "INC"
    assert refreshed[ids[2]].remarks == "Pending"
    log = AuditLog.objects.get(action="BULK_UPDATE_GRADES")
    assert len(log.details["grades"]) == 2


@pytest.mark.django_db
def test_grade_listings(student, subjects_a, course_b):
    from records.services import students

    reservations.create_reservation(student.pk, subjects_a[0].pk)
    assert grades.grades_for_student(student.pk).count() == 1
    assert grades.grades_for_subject(subjects_a[0].pk).count() == 1

    students.update_student(student.pk, {"course_id": course_b.pk})
    assert grades.grades_for_student(student.pk).count() == 0
    assert grades.grades_for_subject(subjects_a[0].pk).count() == 1


@pytest.mark.django_db
def test_delete_grade(student, subjects_a):
    reservations.create_reservation(student.pk, subjects_a[0].pk)
    grade = Grade.objects.get()

    grades.delete_grade(grade.pk)

    assert not Grade.objects.exists()
    assert AuditLog.objects.filter(action="DELETE_GRADE", entity_id=str(grade.pk)).exists()
