import pytest

from records.exceptions import NotFoundError, PrerequisiteBlockedError
from records.models import AuditLog, Course, Grade, Student, Subject, SubjectReservation
from records.services import courses, reservations, subjects


@pytest.fixture
def busy_course(course_a, subjects_a, make_student):
    enrolled = [make_student(course_a), make_student(course_a)]
    for learner in enrolled:
        reservations.bulk_create_reservations(learner.pk, [s.pk for s in subjects_a])
    return course_a


@pytest.mark.django_db
def test_standard_course_delete_is_blocked(busy_course):
    with pytest.raises(PrerequisiteBlockedError) as excinfo:
        courses.delete_course(busy_course.pk)

    assert excinfo.value.code == "PREREQUISITE_FAILED"
    assert excinfo.value.blocking_code == "BSIT"
    assert str(excinfo.value) == "Cannot delete course BSIT because it has students or subjects."
    assert Course.objects.filter(pk=busy_course.pk).exists()
    assert Grade.objects.count() == 6


@pytest.mark.django_db
def test_standard_course_delete_of_empty_course(course_b):
    courses.delete_course(course_b.pk)

    assert not Course.objects.filter(pk=course_b.pk).exists()
    log = AuditLog.objects.get(action="DELETE_COURSE")
    assert log.details["force"] == "No"


@pytest.mark.django_db
def test_force_course_delete_cascades(busy_course, course_b, subjects_b, make_student):
    other = make_student(course_b)
    reservations.create_reservation(other.pk, subjects_b[0].pk)
    pointing = list(Student.objects.filter(course=busy_course).values_list("pk", flat=True))

    courses.delete_course(busy_course.pk, force=True)

    assert not Course.objects.filter(pk=busy_course.pk).exists()
    assert not Subject.objects.filter(course_id=busy_course.pk).exists()
    assert not Grade.objects.filter(subject__code__startswith="IT").exists()
    assert not SubjectReservation.objects.filter(subject__code__startswith="IT").exists()
    assert Student.objects.filter(pk__in=pointing, course__isnull=True).count() == len(pointing)
    assert Grade.objects.filter(student=other).count() == 1
    log = AuditLog.objects.get(action="DELETE_COURSE")
    assert log.details["force"] == "Yes"
    assert log.details["removed"]["subjects"] == 3


@pytest.mark.django_db
def test_force_course_delete_removes_held_grades_of_transferred_students(busy_course, course_b):
    from records.services import students

    mover = Student.objects.filter(course=busy_course).first()
    students.update_student(mover.pk, {"course_id": course_b.pk})

    courses.delete_course(busy_course.pk, force=True)

    mover.refresh_from_db()
    assert mover.course_id == course_b.pk
    assert not Grade.objects.filter(student=mover).exists()


@pytest.mark.django_db
def test_bulk_course_delete_partitions_ids(busy_course, course_b, db):
    empty = Course.objects.create(code="BSED", name="Bachelor of Secondary Education")
    Subject.objects.create(course=course_b, code="CS101", title="Fundamentals", units=3)
    requested = [busy_course.pk, course_b.pk, empty.pk, empty.pk]

    result = courses.delete_courses(requested)

    assert result.deleted_count + result.skipped_count == len(set(requested))
    assert result.skipped_count == len(result.skipped_codes)
    assert sorted(result.skipped_codes) == ["BSCS", "BSIT"]
    assert result.as_dict() == {"deletedCount": 1, "skippedCount": 2, "skippedCodes": result.skipped_codes}
    assert set(Course.objects.values_list("code", flat=True)) == {"BSIT", "BSCS"}


@pytest.mark.django_db
def test_bulk_course_force_delete_skips_nothing(busy_course, course_b, subjects_b):
    result = courses.delete_courses([busy_course.pk, course_b.pk], force=True)

    assert (result.deleted_count, result.skipped_count, result.skipped_codes) == (2, 0, [])
    assert not Course.objects.exists()
    assert not Subject.objects.exists()
    assert not Grade.objects.exists()
    assert AuditLog.objects.get(action="BULK_DELETE_COURSES").details["force"] == "Yes"


@pytest.mark.django_db
def test_bulk_delete_with_unknown_id_deletes_nothing(course_a, course_b):
    with pytest.raises(NotFoundError):
        courses.delete_courses([course_a.pk, 999999])

    assert Course.objects.count() == 2


@pytest.mark.django_db
def test_standard_subject_delete_is_blocked(student, subjects_a):
    reservations.create_reservation(student.pk, subjects_a[0].pk)

    with pytest.raises(PrerequisiteBlockedError) as excinfo:
        subjects.delete_subject(subjects_a[0].pk)

    assert excinfo.value.blocking_code == "IT101"
    assert "Cannot delete subject IT101 because students are currently enrolled." == excinfo.value.message

    subjects.delete_subject(subjects_a[1].pk)
    assert not Subject.objects.filter(pk=subjects_a[1].pk).exists()


@pytest.mark.django_db
def test_force_subject_delete_cascades(student, subjects_a):
    reservations.create_reservation(student.pk, subjects_a[0].pk)
    reservations.create_reservation(student.pk, subjects_a[1].pk)

    subjects.delete_subject(subjects_a[0].pk, force=True)

    assert not Subject.objects.filter(pk=subjects_a[0].pk).exists()
    assert list(Grade.objects.values_list("subject__code", flat=True)) == ["IT102"]
    assert list(SubjectReservation.objects.values_list("subject__code", flat=True)) == ["IT102"]
    assert AuditLog.objects.get(action="DELETE_SUBJECT").details["force"] == "Yes"


@pytest.mark.django_db
def test_bulk_subject_delete_partitions_ids(student, subjects_a):
    reservations.create_reservation(student.pk, subjects_a[2].pk)

    result = subjects.delete_subjects([s.pk for s in subjects_a])

    assert result.as_dict() == {"deletedCount": 2, "skippedCount": 1, "skippedCodes": ["IT103"]}
    assert list(Subject.objects.values_list("code", flat=True)) == ["IT103"]
