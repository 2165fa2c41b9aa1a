"""JSON API views for the records app."""
from __future__ import annotations

import io
import json
import logging
import re

from django.contrib.auth import authenticate, get_user_model, login, logout, update_session_auth_hash
from django.http import JsonResponse
from django.middleware.csrf import get_token
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import ensure_csrf_cookie

from records.exceptions import PermissionDeniedError, RecordsError, ValidationMismatchError
from records.forms import (
    AcceptInvitationForm,
    BulkDeleteForm,
    BulkGradeUpdateForm,
    BulkReservationForm,
    CourseForm,
    CourseUpdateForm,
    GradeForm,
    GradeUpdateForm,
    InviteEncoderForm,
    LoginForm,
    PasswordChangeForm,
    ReservationForm,
    StudentForm,
    StudentImportForm,
    StudentUpdateForm,
    SubjectForm,
    SubjectUpdateForm,
    UserStatusForm,
)
from records.models import AccountProfile
from records.serializers import (
    audit_log_to_dict,
    course_to_dict,
    grade_to_dict,
    invitation_to_dict,
    reservation_to_dict,
    student_to_dict,
    subject_to_dict,
    user_to_dict,
)
from records.services import (
    accounts,
    audit,
    courses,
    dashboard,
    grades,
    reservations,
    students,
    subjects,
)

logger = logging.getLogger(__name__)

User = get_user_model()

ADMIN_ONLY = (AccountProfile.ROLE_ADMIN,)
STAFF = (AccountProfile.ROLE_ADMIN, AccountProfile.ROLE_ENCODER)


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _flag(value) -> bool:
    return str(value).lower() in {"1", "true", "yes"}


class ApiView(View):
    """
    Base view for the JSON API.

    ``roles`` maps an HTTP method to the account roles allowed to call it; a
    method missing from the map is open to any signed-in account. Service
    errors become JSON error bodies with their status code, anything else is
    logged and answered with ``failure_message``.
    """

    public = False
    roles: dict[str, tuple] = {}
    failure_message = "Request failed"

    def dispatch(self, request, *args, **kwargs):
        if not self.public:
            if not request.user.is_authenticated:
                return JsonResponse({"error": "Authentication required", "code": "UNAUTHORIZED"}, status=401)
            allowed = self.roles.get(request.method.upper())
            if allowed and accounts.role_of(request.user) not in allowed:
                return JsonResponse(PermissionDeniedError("Insufficient permissions").as_dict(), status=403)
        try:
            return super().dispatch(request, *args, **kwargs)
        except RecordsError as exc:
            return JsonResponse(exc.as_dict(), status=exc.status_code)
        except Exception:
            logger.exception("%s %s failed", request.method, request.path)
            return JsonResponse({"error": self.failure_message, "code": "INTERNAL"}, status=500)

    def payload(self) -> dict:
        if not self.request.body:
            return {}
        try:
            data = json.loads(self.request.body)
        except (TypeError, ValueError):
            raise ValidationMismatchError("Request body must be valid JSON")
        if not isinstance(data, dict):
            raise ValidationMismatchError("Request body must be a JSON object")
        return {_snake(key): value for key, value in data.items()}

    def validate(self, form_class, data=None, files=None):
        form = form_class(data=self.payload() if data is None else data, files=files)
        if not form.is_valid():
            errors = {field: [str(message) for message in messages] for field, messages in form.errors.items()}
            raise ValidationMismatchError("Invalid request data", details=errors)
        return form

    def ids_from_query(self, name: str):
        value = self.request.GET.get(name)
        if value in (None, ""):
            return None
        try:
            return int(value)
        except ValueError:
            raise ValidationMismatchError(f"{name} must be a number")


# ---- authentication ----


@method_decorator(ensure_csrf_cookie, name="dispatch")
class CsrfTokenView(ApiView):
    public = True

    def get(self, request):
        return JsonResponse({"csrfToken": get_token(request)})


class LoginView(ApiView):
    public = True
    failure_message = "Login failed"

    def post(self, request):
        form = self.validate(LoginForm)
        email = form.cleaned_data["email"].lower()
        username = User.objects.filter(email__iexact=email).values_list("username", flat=True).first() or email
        user = authenticate(request, username=username, password=form.cleaned_data["password"])
        if user is None:
            logger.info("Rejected login for %s", email)
            return JsonResponse({"error": "Invalid email or password", "code": "UNAUTHORIZED"}, status=401)
        login(request, user)
        audit.record(user, "LOGIN", "User", user.pk)
        return JsonResponse({"user": user_to_dict(user)})


class LogoutView(ApiView):
    def post(self, request):
        logout(request)
        return JsonResponse({"success": True})


class MeView(ApiView):
    def get(self, request):
        return JsonResponse({"user": user_to_dict(request.user)})


class PasswordChangeView(ApiView):
    failure_message = "Failed to change password"

    def post(self, request):
        form = self.validate(PasswordChangeForm)
        accounts.change_password(
            request.user,
            form.cleaned_data["current_password"],
            form.cleaned_data["new_password"],
        )
        update_session_auth_hash(request, request.user)
        return JsonResponse({"success": True})


class InvitationTokenView(ApiView):
    public = True
    failure_message = "Failed to process invitation"

    def get(self, request, token):
        invitation = accounts.verify_invitation(token)
        return JsonResponse({"email": invitation.email, "role": invitation.role})

    def post(self, request, token):
        form = self.validate(AcceptInvitationForm)
        user = accounts.accept_invitation(token, **form.cleaned_data)
        return JsonResponse({"user": user_to_dict(user)}, status=201)


# ---- students ----


class StudentCollectionView(ApiView):
    roles = {"POST": STAFF}
    failure_message = "Failed to create student"

    def post(self, request):
        form = self.validate(StudentForm)
        student = students.create_student(actor=request.user, **form.cleaned_data)
        return JsonResponse(student_to_dict(student), status=201)


class StudentImportView(ApiView):
    roles = {"POST": ADMIN_ONLY}
    failure_message = "Failed to import students"

    def post(self, request):
        if request.content_type == "multipart/form-data":
            form = self.validate(StudentImportForm, data=request.POST, files=request.FILES)
        else:
            form = self.validate(StudentImportForm)
        rows = form.cleaned_data.get("students") or []
        upload = form.cleaned_data.get("file")
        if upload:
            rows = students.read_student_csv(io.TextIOWrapper(upload.file, encoding="utf-8-sig"))
        result = students.import_students(rows, actor=request.user)
        return JsonResponse(result)


class StudentBulkDeleteView(ApiView):
    roles = {"POST": ADMIN_ONLY}
    failure_message = "Failed to delete students"

    def post(self, request):
        form = self.validate(BulkDeleteForm)
        count = students.delete_students(form.cleaned_data["ids"], actor=request.user)
        return JsonResponse({"count": count})


class StudentDetailView(ApiView):
    roles = {"PATCH": STAFF, "PUT": STAFF, "DELETE": ADMIN_ONLY}
    failure_message = "Failed to update student"

    def get(self, request, pk):
        profile = students.get_student_profile(pk)
        data = student_to_dict(profile["student"])
        data["reservations"] = [reservation_to_dict(r) for r in profile["reservations"]]
        data["grades"] = [grade_to_dict(g) for g in profile["grades"]]
        return JsonResponse(data)

    def patch(self, request, pk):
        form = self.validate(StudentUpdateForm)
        student = students.update_student(pk, form.changes(), actor=request.user)
        return JsonResponse(student_to_dict(student))

    put = patch

    def delete(self, request, pk):
        students.delete_student(pk, actor=request.user)
        return JsonResponse({"success": True})


# ---- courses ----


class CourseCollectionView(ApiView):
    roles = {"POST": ADMIN_ONLY}
    failure_message = "Failed to create course"

    def post(self, request):
        form = self.validate(CourseForm)
        course = courses.create_course(actor=request.user, **form.cleaned_data)
        return JsonResponse(course_to_dict(course), status=201)


class CourseCheckCodeView(ApiView):
    def get(self, request):
        code = request.GET.get("code", "")
        exists = courses.course_code_exists(code, exclude_id=self.ids_from_query("excludeId"))
        return JsonResponse({"exists": exists})


class CourseBulkDeleteView(ApiView):
    roles = {"POST": ADMIN_ONLY}
    failure_message = "Failed to delete courses"

    def post(self, request):
        form = self.validate(BulkDeleteForm)
        result = courses.delete_courses(
            form.cleaned_data["ids"], force=form.cleaned_data["force"], actor=request.user
        )
        return JsonResponse(result.as_dict())


class CourseDetailView(ApiView):
    roles = {"PATCH": ADMIN_ONLY, "PUT": ADMIN_ONLY, "DELETE": ADMIN_ONLY}
    failure_message = "Failed to update course"

    def get(self, request, pk):
        course = courses.get_course(pk)
        data = course_to_dict(course)
        data["subjects"] = [subject_to_dict(s) for s in course.subjects.order_by("code")]
        return JsonResponse(data)

    def patch(self, request, pk):
        form = self.validate(CourseUpdateForm)
        course = courses.update_course(pk, form.changes(), actor=request.user)
        return JsonResponse(course_to_dict(course))

    put = patch

    def delete(self, request, pk):
        courses.delete_course(pk, force=_flag(request.GET.get("force")), actor=request.user)
        return JsonResponse({"success": True})


# ---- subjects ----


class SubjectCollectionView(ApiView):
    roles = {"POST": ADMIN_ONLY}
    failure_message = "Failed to create subject"

    def post(self, request):
        form = self.validate(SubjectForm)
        subject = subjects.create_subject(actor=request.user, **form.cleaned_data)
        return JsonResponse(subject_to_dict(subject, with_course=True), status=201)


class SubjectAvailabilityView(ApiView):
    def get(self, request):
        course_id = self.ids_from_query("courseId")
        if course_id is None:
            raise ValidationMismatchError("courseId is required")
        availability = subjects.check_subject_availability(
            course_id,
            code=request.GET.get("code", ""),
            title=request.GET.get("title", ""),
            exclude_id=self.ids_from_query("excludeId"),
        )
        return JsonResponse(availability)


class SubjectsForCourseView(ApiView):
    def get(self, request, course_id):
        return JsonResponse([subject_to_dict(s) for s in subjects.subjects_for_course(course_id)], safe=False)


class SubjectBulkDeleteView(ApiView):
    roles = {"POST": ADMIN_ONLY}
    failure_message = "Failed to delete subjects"

    def post(self, request):
        form = self.validate(BulkDeleteForm)
        result = subjects.delete_subjects(
            form.cleaned_data["ids"], force=form.cleaned_data["force"], actor=request.user
        )
        return JsonResponse(result.as_dict())


class SubjectDetailView(ApiView):
    roles = {"PATCH": ADMIN_ONLY, "PUT": ADMIN_ONLY, "DELETE": ADMIN_ONLY}
    failure_message = "Failed to update subject"

    def get(self, request, pk):
        return JsonResponse(subject_to_dict(subjects.get_subject(pk), with_course=True))

    def patch(self, request, pk):
        form = self.validate(SubjectUpdateForm)
        subject = subjects.update_subject(pk, form.changes(), actor=request.user)
        return JsonResponse(subject_to_dict(subject, with_course=True))

    put = patch

    def delete(self, request, pk):
        subjects.delete_subject(pk, force=_flag(request.GET.get("force")), actor=request.user)
        return JsonResponse({"success": True})


# ---- grades ----


class GradeCollectionView(ApiView):
    roles = {"POST": STAFF}
    failure_message = "Failed to create grade"

    def post(self, request):
        form = self.validate(GradeForm)
        grade = grades.create_grade(encoder=request.user, **form.cleaned_data)
        return JsonResponse(grade_to_dict(grade), status=201)


class GradeUpsertView(ApiView):
    roles = {"POST": STAFF}
    failure_message = "Failed to save grade"

    def post(self, request):
        form = self.validate(GradeForm)
        grade = grades.upsert_grade(encoder=request.user, **form.cleaned_data)
        return JsonResponse(grade_to_dict(grade))


class GradeBulkUpdateView(ApiView):
    roles = {"POST": STAFF}
    failure_message = "Failed to update grades"

    def post(self, request):
        form = self.validate(BulkGradeUpdateForm)
        result = grades.bulk_update_grades(form.cleaned_data["updates"], actor=request.user)
        return JsonResponse({"count": result["count"], "updated": [grade_to_dict(g) for g in result["updated"]]})


class GradesForStudentView(ApiView):
    def get(self, request, student_id):
        students.get_student(student_id)
        return JsonResponse([grade_to_dict(g) for g in grades.grades_for_student(student_id)], safe=False)


class GradesForSubjectView(ApiView):
    def get(self, request, subject_id):
        subjects.get_subject(subject_id)
        return JsonResponse([grade_to_dict(g) for g in grades.grades_for_subject(subject_id)], safe=False)


class GradeDetailView(ApiView):
    roles = {"PATCH": STAFF, "PUT": STAFF, "DELETE": STAFF}
    failure_message = "Failed to update grade"

    def get(self, request, pk):
        return JsonResponse(grade_to_dict(grades.get_grade(pk)))

    def patch(self, request, pk):
        form = self.validate(GradeUpdateForm)
        grade = grades.update_grade(pk, form.changes(), actor=request.user)
        return JsonResponse(grade_to_dict(grade))

    put = patch

    def delete(self, request, pk):
        grades.delete_grade(pk, actor=request.user)
        return JsonResponse({"success": True})


# ---- reservations ----


class ReservationCollectionView(ApiView):
    roles = {"POST": STAFF}
    failure_message = "Failed to create reservation"

    def post(self, request):
        form = self.validate(ReservationForm)
        reservation = reservations.create_reservation(
            form.cleaned_data["student_id"], form.cleaned_data["subject_id"], actor=request.user
        )
        return JsonResponse(reservation_to_dict(reservation), status=201)


class ReservationBulkView(ApiView):
    roles = {"POST": STAFF}
    failure_message = "Failed to create reservations"

    def post(self, request):
        form = self.validate(BulkReservationForm)
        created = reservations.bulk_create_reservations(
            form.cleaned_data["student_id"], form.cleaned_data["subject_ids"], actor=request.user
        )
        return JsonResponse({"count": len(created), "reservations": [reservation_to_dict(r) for r in created]})


class ReservationBulkDeleteView(ApiView):
    roles = {"POST": STAFF}
    failure_message = "Failed to delete reservations"

    def post(self, request):
        form = self.validate(BulkDeleteForm)
        count = reservations.bulk_delete_reservations(form.cleaned_data["ids"], actor=request.user)
        return JsonResponse({"count": count})


class ReservationsForStudentView(ApiView):
    def get(self, request, student_id):
        found = reservations.reservations_for_student(
            student_id, include_held=_flag(request.GET.get("includeHeld"))
        )
        return JsonResponse([reservation_to_dict(r) for r in found], safe=False)


class AvailableSubjectsView(ApiView):
    def get(self, request, student_id):
        return JsonResponse([subject_to_dict(s) for s in reservations.available_subjects(student_id)], safe=False)


class ReservationDetailView(ApiView):
    roles = {"DELETE": STAFF}
    failure_message = "Failed to delete reservation"

    def delete(self, request, pk):
        reservations.delete_reservation(pk, actor=request.user)
        return JsonResponse({"success": True})


class ReservationCancelView(ApiView):
    roles = {"POST": STAFF}
    failure_message = "Failed to cancel reservation"

    def post(self, request, pk):
        reservation = reservations.cancel_reservation(pk, actor=request.user)
        return JsonResponse(reservation_to_dict(reservation))


# ---- users ----


class EncoderListView(ApiView):
    roles = {"GET": ADMIN_ONLY}

    def get(self, request):
        return JsonResponse([user_to_dict(u) for u in accounts.list_encoders()], safe=False)


class InvitationCollectionView(ApiView):
    roles = {"GET": ADMIN_ONLY, "POST": ADMIN_ONLY}
    failure_message = "Failed to send invitation"

    def get(self, request):
        return JsonResponse([invitation_to_dict(i) for i in accounts.list_invitations()], safe=False)

    def post(self, request):
        form = self.validate(InviteEncoderForm)
        invitation = accounts.invite_encoder(form.cleaned_data["email"], actor=request.user)
        return JsonResponse(invitation_to_dict(invitation), status=201)


class InvitationDetailView(ApiView):
    roles = {"DELETE": ADMIN_ONLY}
    failure_message = "Failed to revoke invitation"

    def delete(self, request, pk):
        accounts.revoke_invitation(pk, actor=request.user)
        return JsonResponse({"success": True})


class UserStatusView(ApiView):
    roles = {"PATCH": ADMIN_ONLY, "POST": ADMIN_ONLY}
    failure_message = "Failed to update user status"

    def patch(self, request, pk):
        if request.user.pk == pk:
            raise ValidationMismatchError("You cannot change the status of your own account")
        form = self.validate(UserStatusForm)
        user = accounts.set_user_active(pk, form.cleaned_data["is_active"], actor=request.user)
        return JsonResponse(user_to_dict(user))

    post = patch


class UserDetailView(ApiView):
    roles = {"DELETE": ADMIN_ONLY}
    failure_message = "Failed to delete user"

    def delete(self, request, pk):
        accounts.delete_encoder(pk, actor=request.user)
        return JsonResponse({"success": True})


# ---- audit trail and dashboard ----


class AuditLogView(ApiView):
    roles = {"GET": ADMIN_ONLY}

    def get(self, request):
        entity_id = request.GET.get("entityId")
        if entity_id:
            logs = audit.logs_for_entity(entity_id)
        else:
            logs = audit.recent_logs(self.ids_from_query("limit") or 50)
        return JsonResponse([audit_log_to_dict(log) for log in logs], safe=False)


class AuditBulkDeleteView(ApiView):
    roles = {"POST": ADMIN_ONLY}
    failure_message = "Failed to delete audit logs"

    def post(self, request):
        form = self.validate(BulkDeleteForm)
        return JsonResponse({"count": audit.delete_logs(form.cleaned_data["ids"])})


class AuditDetailView(ApiView):
    roles = {"DELETE": ADMIN_ONLY}
    failure_message = "Failed to delete audit log"

    def delete(self, request, pk):
        audit.delete_log(pk)
        return JsonResponse({"success": True})


class StatsView(ApiView):
    def get(self, request):
        return JsonResponse(dashboard.stats())


class StudentsPerCourseView(ApiView):
    def get(self, request):
        return JsonResponse(dashboard.students_per_course(), safe=False)
