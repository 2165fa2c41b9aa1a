from django.urls import path

from . import views

app_name = "records"

urlpatterns = [
    path("auth/csrf", views.CsrfTokenView.as_view(), name="auth-csrf"),
    path("auth/login", views.LoginView.as_view(), name="auth-login"),
    path("auth/logout", views.LogoutView.as_view(), name="auth-logout"),
    path("auth/me", views.MeView.as_view(), name="auth-me"),
    path("auth/password", views.PasswordChangeView.as_view(), name="auth-password"),
    path("auth/invitations/<str:token>", views.InvitationTokenView.as_view(), name="auth-invitation"),
    path("students/", views.StudentCollectionView.as_view(), name="students"),
    path("students/import", views.StudentImportView.as_view(), name="students-import"),
    path("students/bulk-delete", views.StudentBulkDeleteView.as_view(), name="students-bulk-delete"),
    path("students/<int:pk>", views.StudentDetailView.as_view(), name="student-detail"),
    path("courses/", views.CourseCollectionView.as_view(), name="courses"),
    path("courses/check-code", views.CourseCheckCodeView.as_view(), name="courses-check-code"),
    path("courses/bulk-delete", views.CourseBulkDeleteView.as_view(), name="courses-bulk-delete"),
    path("courses/<int:pk>", views.CourseDetailView.as_view(), name="course-detail"),
    path("subjects/", views.SubjectCollectionView.as_view(), name="subjects"),
    path("subjects/check-availability", views.SubjectAvailabilityView.as_view(), name="subjects-availability"),
    path("subjects/course/<int:course_id>", views.SubjectsForCourseView.as_view(), name="subjects-for-course"),
    path("subjects/bulk-delete", views.SubjectBulkDeleteView.as_view(), name="subjects-bulk-delete"),
    path("subjects/<int:pk>", views.SubjectDetailView.as_view(), name="subject-detail"),
    path("grades/", views.GradeCollectionView.as_view(), name="grades"),
    path("grades/upsert", views.GradeUpsertView.as_view(), name="grades-upsert"),
    path("grades/bulk-update", views.GradeBulkUpdateView.as_view(), name="grades-bulk-update"),
    path("grades/student/<int:student_id>", views.GradesForStudentView.as_view(), name="grades-for-student"),
    path("grades/subject/<int:subject_id>", views.GradesForSubjectView.as_view(), name="grades-for-subject"),
    path("grades/<int:pk>", views.GradeDetailView.as_view(), name="grade-detail"),
    path("reservations/", views.ReservationCollectionView.as_view(), name="reservations"),
    path("reservations/bulk", views.ReservationBulkView.as_view(), name="reservations-bulk"),
    path("reservations/bulk-delete", views.ReservationBulkDeleteView.as_view(), name="reservations-bulk-delete"),
    path(
        "reservations/student/<int:student_id>",
        views.ReservationsForStudentView.as_view(),
        name="reservations-for-student",
    ),
    path("reservations/available/<int:student_id>", views.AvailableSubjectsView.as_view(), name="available-subjects"),
    path("reservations/<int:pk>", views.ReservationDetailView.as_view(), name="reservation-detail"),
    path("reservations/<int:pk>/cancel", views.ReservationCancelView.as_view(), name="reservation-cancel"),
    path("users/encoders", views.EncoderListView.as_view(), name="encoders"),
    path("users/invitations", views.InvitationCollectionView.as_view(), name="invitations"),
    path("users/invitations/<int:pk>", views.InvitationDetailView.as_view(), name="invitation-detail"),
    path("users/<int:pk>/status", views.UserStatusView.as_view(), name="user-status"),
    path("users/<int:pk>", views.UserDetailView.as_view(), name="user-detail"),
    path("audit/", views.AuditLogView.as_view(), name="audit-logs"),
    path("audit/bulk-delete", views.AuditBulkDeleteView.as_view(), name="audit-bulk-delete"),
    path("audit/<int:pk>", views.AuditDetailView.as_view(), name="audit-detail"),
    path("stats/", views.StatsView.as_view(), name="stats"),
    path("stats/courses", views.StudentsPerCourseView.as_view(), name="stats-courses"),
]
