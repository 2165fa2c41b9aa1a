"""Admin configuration for the student records domain."""
from django.contrib import admin, messages
from django.contrib.admin.utils import unquote
from django.contrib.auth import get_user_model
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin
from django.http import HttpResponseRedirect
from django.urls import reverse

from .exceptions import RecordsError
from .models import AccountProfile, AuditLog, Course, Grade, Invitation, Student, Subject, SubjectReservation
from .services import courses, subjects
from .services.grading import evaluate

User = get_user_model()
admin.site.unregister(User)


class AccountProfileInline(admin.StackedInline):
    model = AccountProfile
    can_delete = False
    fields = ("role", "must_change_password")


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    inlines = [AccountProfileInline]
    list_display = ("username", "email", "first_name", "last_name", "get_role", "is_active")

    def get_inline_instances(self, request, obj=None):
        if obj is None:
            return []
        return super().get_inline_instances(request, obj)

    @admin.display(description="role")
    def get_role(self, obj):
        account = getattr(obj, "account", None)
        return account.role if account else "-"


class _ResolverDeleteMixin:
    """Route admin deletes through the standard/force delete resolvers."""

    delete_one = None
    delete_many = None
    blocked = None
    actions = ["delete_selected_standard", "delete_selected_force"]

    def get_actions(self, request):
        actions = super().get_actions(request)
        actions.pop("delete_selected", None)
        return actions

    def _back_to_change(self, pk):
        opts = self.model._meta
        return HttpResponseRedirect(reverse(f"admin:{opts.app_label}_{opts.model_name}_change", args=(pk,)))

    def delete_view(self, request, object_id, extra_context=None):
        if request.method == "POST":
            obj = self.get_object(request, unquote(object_id))
            if obj is not None and self.blocked([obj.pk]):
                self.message_user(
                    request,
                    f"{obj} was not deleted because it has dependents. Use the force delete action instead.",
                    level=messages.ERROR,
                )
                return self._back_to_change(obj.pk)
        return super().delete_view(request, object_id, extra_context)

    def delete_model(self, request, obj):
        try:
            self.delete_one(obj.pk, force=False, actor=request.user)
        except RecordsError as exc:
            request._records_delete_failed = True
            self.message_user(request, exc.message, level=messages.ERROR)

    def response_delete(self, request, obj_display, obj_id):
        if getattr(request, "_records_delete_failed", False):
            return self._back_to_change(obj_id)
        return super().response_delete(request, obj_display, obj_id)

    def _bulk_delete(self, request, queryset, force: bool):
        result = self.delete_many(list(queryset.values_list("pk", flat=True)), force=force, actor=request.user)
        if result.deleted_count:
            self.message_user(request, f"Deleted {result.deleted_count} record(s).", level=messages.SUCCESS)
        if result.skipped_count:
            self.message_user(
                request,
                f"Skipped {result.skipped_count} record(s) with dependents: {', '.join(result.skipped_codes)}",
                level=messages.WARNING,
            )

    @admin.action(description="Delete selected (skip records with dependents)")
    def delete_selected_standard(self, request, queryset):
        self._bulk_delete(request, queryset, force=False)

    @admin.action(description="Force delete selected (remove dependents too)")
    def delete_selected_force(self, request, queryset):
        self._bulk_delete(request, queryset, force=True)


class SubjectInline(admin.TabularInline):
    model = Subject
    extra = 0
    fields = ("code", "title", "units")
    can_delete = False


@admin.register(Course)
class CourseAdmin(_ResolverDeleteMixin, admin.ModelAdmin):
    list_display = ("code", "name", "created_at")
    search_fields = ("code", "name")
    inlines = [SubjectInline]
    delete_one = staticmethod(courses.delete_course)
    delete_many = staticmethod(courses.delete_courses)
    blocked = staticmethod(courses.blocked_codes)


@admin.register(Subject)
class SubjectAdmin(_ResolverDeleteMixin, admin.ModelAdmin):
    list_display = ("code", "title", "units", "course")
    list_filter = ("course",)
    search_fields = ("code", "title", "course__code")
    delete_one = staticmethod(subjects.delete_subject)
    delete_many = staticmethod(subjects.delete_subjects)
    blocked = staticmethod(subjects.blocked_codes)

    def get_readonly_fields(self, request, obj=None):
        if obj is not None and self.blocked([obj.pk]):
            return ("course",)
        return ()


class SubjectReservationInline(admin.TabularInline):
    model = SubjectReservation
    extra = 0
    fields = ("subject", "status", "is_active", "reserved_at")
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


class GradeInline(admin.TabularInline):
    model = Grade
    extra = 0
    fields = ("subject", "course", "prelim", "midterm", "finals", "final_grade", "remarks", "is_active")
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ("student_no", "last_name", "first_name", "email", "course")
    list_filter = ("course",)
    search_fields = ("student_no", "first_name", "last_name", "email")
    inlines = [SubjectReservationInline, GradeInline]


@admin.register(SubjectReservation)
class SubjectReservationAdmin(admin.ModelAdmin):
    list_display = ("student", "subject", "status", "is_active", "reserved_at")
    list_filter = ("status", "is_active", "subject__course")
    search_fields = ("student__student_no", "student__last_name", "subject__code")


@admin.register(Grade)
class GradeAdmin(admin.ModelAdmin):
    list_display = ("student", "subject", "course", "final_grade", "remarks", "is_active", "encoded_by")
    list_filter = ("remarks", "is_active", "course")
    search_fields = ("student__student_no", "student__last_name", "subject__code")
    readonly_fields = ("final_grade",)

    def save_model(self, request, obj, form, change):
        obj.final_grade, remarks = evaluate(obj.prelim, obj.midterm, obj.finals)
        if "remarks" not in form.changed_data:
            obj.remarks = remarks
        super().save_model(request, obj, form, change)


@admin.register(Invitation)
class InvitationAdmin(admin.ModelAdmin):
    list_display = ("email", "role", "expires_at", "created_at")
    search_fields = ("email",)


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "action", "entity", "entity_id", "user")
    list_filter = ("action", "entity")
    search_fields = ("entity_id", "user__username")
    readonly_fields = ("created_at", "action", "entity", "entity_id", "details", "user")
