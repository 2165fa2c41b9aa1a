"""Forms validating JSON payloads before they reach the services."""
from __future__ import annotations

from django import forms
from django.core.exceptions import ValidationError

from records.models import STUDENT_NO_PATTERN, Grade


class IdListField(forms.Field):
    """A JSON array of positive integer ids."""

    default_error_messages = {"invalid": "Provide a list of ids."}

    def to_python(self, value):
        if value in self.empty_values:
            return []
        if not isinstance(value, (list, tuple)):
            raise ValidationError(self.error_messages["invalid"], code="invalid")
        ids = []
        for item in value:
            try:
                number = int(item)
            except (TypeError, ValueError):
                raise ValidationError(self.error_messages["invalid"], code="invalid")
            if number < 1:
                raise ValidationError(self.error_messages["invalid"], code="invalid")
            ids.append(number)
        return ids


class JsonListField(forms.Field):
    """A JSON array of objects, passed through unchanged."""

    default_error_messages = {"invalid": "Provide a list of objects."}

    def to_python(self, value):
        if value in self.empty_values:
            return []
        if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
            raise ValidationError(self.error_messages["invalid"], code="invalid")
        return value


class PartialFormMixin:
    """Only the fields present in the payload count as changes."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for field in self.fields.values():
            field.required = False

    def changes(self) -> dict:
        return {name: self.cleaned_data[name] for name in self.fields if name in self.data}


class LoginForm(forms.Form):
    email = forms.EmailField()
    password = forms.CharField(strip=False)


class PasswordChangeForm(forms.Form):
    current_password = forms.CharField(strip=False)
    new_password = forms.CharField(strip=False, min_length=8)


class InviteEncoderForm(forms.Form):
    email = forms.EmailField()


class AcceptInvitationForm(forms.Form):
    password = forms.CharField(strip=False, min_length=8)
    first_name = forms.CharField(required=False, max_length=150)
    last_name = forms.CharField(required=False, max_length=150)


class UserStatusForm(forms.Form):
    is_active = forms.NullBooleanField()

    def clean_is_active(self):
        value = self.cleaned_data.get("is_active")
        if value is None:
            raise ValidationError("isActive must be true or false.")
        return value


class StudentForm(forms.Form):
    student_no = forms.RegexField(regex=STUDENT_NO_PATTERN, required=False, max_length=9)
    first_name = forms.CharField(max_length=100)
    last_name = forms.CharField(max_length=100)
    email = forms.EmailField(required=False)
    birth_date = forms.DateField()
    course_id = forms.IntegerField(required=False, min_value=1)


class StudentUpdateForm(PartialFormMixin, StudentForm):
    pass


class CourseForm(forms.Form):
    code = forms.CharField(max_length=20)
    name = forms.CharField(max_length=255)
    description = forms.CharField(required=False)


class CourseUpdateForm(PartialFormMixin, CourseForm):
    pass


class SubjectForm(forms.Form):
    course_id = forms.IntegerField(min_value=1)
    code = forms.CharField(max_length=20)
    title = forms.CharField(max_length=255)
    units = forms.IntegerField(min_value=1, max_value=32767)


class SubjectUpdateForm(PartialFormMixin, SubjectForm):
    pass


class BulkDeleteForm(forms.Form):
    ids = IdListField()
    force = forms.BooleanField(required=False)


class _ScoreFields(forms.Form):
    prelim = forms.FloatField(required=False, min_value=0, max_value=100)
    midterm = forms.FloatField(required=False, min_value=0, max_value=100)
    finals = forms.FloatField(required=False, min_value=0, max_value=100)
    remarks = forms.ChoiceField(required=False, choices=[("", "")] + Grade.REMARKS_CHOICES)


class GradeForm(_ScoreFields):
    student_id = forms.IntegerField(min_value=1)
    subject_id = forms.IntegerField(min_value=1)
    course_id = forms.IntegerField(min_value=1)

    def clean_remarks(self):
        return self.cleaned_data.get("remarks") or None


class GradeUpdateForm(PartialFormMixin, _ScoreFields):
    pass


class BulkGradeUpdateForm(forms.Form):
    updates = JsonListField()

    def clean_updates(self):
        updates = []
        for position, item in enumerate(self.cleaned_data["updates"]):
            form = GradeUpdateForm(data=item)
            try:
                grade_id = int(item.get("id"))
            except (TypeError, ValueError):
                raise ValidationError(f"Update #{position + 1} has no valid id.")
            if not form.is_valid():
                raise ValidationError(f"Update #{position + 1} is invalid: {form.errors.as_text()}")
            updates.append({"id": grade_id, **form.changes()})
        return updates


class ReservationForm(forms.Form):
    student_id = forms.IntegerField(min_value=1)
    subject_id = forms.IntegerField(min_value=1)


class BulkReservationForm(forms.Form):
    student_id = forms.IntegerField(min_value=1)
    subject_ids = IdListField()


class StudentImportForm(forms.Form):
    students = JsonListField(required=False)
    file = forms.FileField(required=False)

    def clean(self):
        cleaned = super().clean()
        if not cleaned.get("students") and not cleaned.get("file"):
            raise ValidationError("Provide student rows or a CSV file.")
        return cleaned
