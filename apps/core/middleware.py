# apps/core/middleware.py

import logging

from django.conf import settings
from django.http import JsonResponse

from .exceptions import AccessDeniedError, InfrastructureError, KanbanError

logger = logging.getLogger(__name__)


class StoreSelectionMiddleware:
    """
    Hands the active backend's stores to the request (``request.stores``)

    The backend selector resolves once per process; every request after that
    just reads the result.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        from apps.board.backends import get_selector

        request.stores = get_selector().stores()
        return self.get_response(request)


class TokenAuthenticationMiddleware:
    """
    Reads the token from ``Authorization: Bearer`` or the token cookie

    Sets ``request.auth_user`` (``{'id', 'username'}``) for a valid token.
    A rejected token is kept in ``request.auth_error`` so protected views can
    answer 403 instead of 401.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        from .auth_service import auth_service

        request.auth_user = None
        request.auth_error = None

        token = self._extract_token(request)
        if token:
            try:
                request.auth_user = auth_service.verify_token(token)
            except AccessDeniedError as exc:
                request.auth_error = exc

        return self.get_response(request)

    def _extract_token(self, request):
        header = request.headers.get('Authorization', '')
        if header.startswith('Bearer '):
            return header[len('Bearer '):].strip()
        return request.COOKIES.get(settings.KANBAN_TOKEN_COOKIE)


class ApiErrorMiddleware:
    """
    Turns errors raised by API views into ``{"error": ...}`` JSON responses

    Known errors keep their status and message. Anything else is logged and
    answered with a generic 500 so internals never reach the client.
    """

    api_prefixes = ('/api/', '/health')

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if isinstance(exception, KanbanError):
            if exception.status_code >= 500:
                logger.error("%s %s failed: %s", request.method, request.path, exception.message)
            return JsonResponse({'error': exception.message}, status=exception.status_code)

        if not request.path.startswith(self.api_prefixes):
            return None  # let Django handle non-API errors

        logger.exception("Unexpected error on %s %s", request.method, request.path)
        error = InfrastructureError()
        return JsonResponse({'error': error.message}, status=error.status_code)
