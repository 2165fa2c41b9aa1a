import datetime
import io

import pytest
from django.core.management import call_command

from records.exceptions import ConflictError, NotFoundError, ValidationMismatchError
from records.models import AuditLog, Grade, Student
from records.services import reservations, students


@pytest.mark.django_db
def test_create_student_generates_number(course_a, admin_user):
    year = datetime.date.today().year
    first = students.create_student(
        first_name="Maria", last_name="Santos", birth_date=datetime.date(2005, 2, 1), course_id=course_a.pk, actor=admin_user
    )
    second = students.create_student(first_name="Jose", last_name="Rizal", birth_date=datetime.date(2005, 6, 19))

    assert first.student_no == f"{year}-0001"
    assert second.student_no == f"{year}-0002"
    assert second.course is None
    assert AuditLog.objects.filter(action="CREATE_STUDENT", user=admin_user).count() == 1


@pytest.mark.django_db
def test_create_student_uniqueness(student):
    with pytest.raises(ConflictError, match="Student number already exists"):
        students.create_student(
            student_no=student.student_no, first_name="A", last_name="B", birth_date=datetime.date(2004, 1, 1)
        )
    with pytest.raises(ConflictError, match="Email address already exists"):
        students.create_student(
            first_name="A", last_name="B", email=student.email.upper(), birth_date=datetime.date(2004, 1, 1)
        )
    with pytest.raises(ValidationMismatchError):
        students.create_student(
            student_no="25-1", first_name="A", last_name="B", birth_date=datetime.date(2004, 1, 1)
        )
    with pytest.raises(NotFoundError, match="Course not found"):
        students.create_student(first_name="A", last_name="B", birth_date=datetime.date(2004, 1, 1), course_id=999999)


@pytest.mark.django_db
def test_update_student_rejects_taken_email(student, make_student):
    other = make_student(None)

    with pytest.raises(ConflictError, match="Email address already exists"):
        students.update_student(other.pk, {"email": student.email})

    updated = students.update_student(other.pk, {"email": ""})
    assert updated.email is None


@pytest.mark.django_db
def test_profile_lists_active_records(student, subjects_a):
    reservations.create_reservation(student.pk, subjects_a[0].pk)

    profile = students.get_student_profile(student.pk)

    assert profile["student"] == student
    assert [r.subject.code for r in profile["reservations"]] == ["IT101"]
    assert [g.subject.code for g in profile["grades"]] == ["IT101"]


@pytest.mark.django_db
def test_delete_students_cascades(student, make_student, subjects_a):
    reservations.create_reservation(student.pk, subjects_a[0].pk)
    other = make_student(None)

    assert students.delete_students([student.pk, other.pk, student.pk]) == 2
    assert not Student.objects.exists()
    assert not Grade.objects.exists()


@pytest.mark.django_db
def test_import_students_reports_row_errors(course_a, student):
    rows = [
        {"studentNo": "2024-0100", "firstName": "Ana", "lastName": "Reyes", "birthDate": "2004-03-02", "course": "bsit"},
        {"studentNo": "2024-0101", "firstName": "Ben", "lastName": "Cruz", "birthDate": "2004-03-02",
         "course": "Bachelor of Science in Information Technology"},
        {"studentNo": "2024-0102", "firstName": "Cy", "lastName": "Lim", "birthDate": "2004-03-02", "course": "BSNURSE"},
        {"studentNo": student.student_no, "firstName": "Dee", "lastName": "Go", "birthDate": "2004-03-02", "course": "BSIT"},
        {"studentNo": "2024-0104", "firstName": "Eve", "lastName": "Uy", "birthDate": "not a date", "course": "BSIT"},
    ]

    result = students.import_students(rows)

    assert result["success"] == 2
    assert result["failed"] == 3
    assert [error["row"] for error in result["errors"]] == [4, 5, 6]
    assert result["errors"][0]["error"].startswith('Course not found: "BSNURSE"')
    assert result["errors"][1]["error"] == "Student number already exists"
    assert result["errors"][2]["error"] == "Invalid birth date"


def test_read_student_csv_normalizes_headers():
    text = "Student No,First Name,last_name,Email,BirthDate,Course,Extra\n2024-0001, Ana ,Reyes,,2004-01-02,BSIT,x\n"

    rows = students.read_student_csv(io.StringIO(text))

    assert rows == [
        {"studentNo": "2024-0001", "firstName": "Ana", "lastName": "Reyes", "email": "", "birthDate": "2004-01-02",
         "course": "BSIT"}
    ]


@pytest.mark.django_db
def test_import_students_command(tmp_path, course_a):
    csv_file = tmp_path / "students.csv"
    csv_file.write_text(
        "studentNo,firstName,lastName,email,birthDate,course\n"
        "2024-0200,Ana,Reyes,ana@sis.test,2004-01-02,BSIT\n"
        "2024-0201,Ben,,ben@sis.test,2004-01-02,BSIT\n",
        encoding="utf-8",
    )
    out = io.StringIO()

    call_command("import_students", str(csv_file), stdout=out)

    assert Student.objects.filter(student_no="2024-0200", course=course_a).exists()
    assert "Row 3 (2024-0201): First name and last name are required" in out.getvalue()
    assert "Imported 1 student(s); 1 row(s) failed." in out.getvalue()
