"""Middleware to enforce a password change before the API can be used."""
from __future__ import annotations

from django.http import JsonResponse
from django.urls import Resolver404, resolve

from records.models import AccountProfile


class EnforcePasswordChangeMiddleware:
    """Answer API calls with 403 while the account still has to change its password."""

    api_prefix = "/api/"
    allowed_url_names = {
        "records:auth-csrf",
        "records:auth-login",
        "records:auth-logout",
        "records:auth-me",
        "records:auth-password",
    }

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if (
            request.user.is_authenticated
            and request.path_info.startswith(self.api_prefix)
            and AccountProfile.objects.filter(user=request.user, must_change_password=True).exists()
            and not self._is_allowed_path(request)
        ):
            return JsonResponse(
                {"error": "Password change required", "code": "PASSWORD_CHANGE_REQUIRED"},
                status=403,
            )

        return self.get_response(request)

    def _is_allowed_path(self, request) -> bool:
        try:
            resolver_match = resolve(request.path_info)
        except Resolver404:
            return False
        return resolver_match.view_name in self.allowed_url_names
