# apps/core/views.py

import logging

from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods
from pymongo.errors import PyMongoError

from apps import __version__
from .auth_service import auth_service  # encapsulated authentication logic
from .exceptions import NotFoundError
from .permissions import token_required
from .utils import parse_json_body

logger = logging.getLogger(__name__)


def _set_token_cookie(response, token):
    response.set_cookie(
        settings.KANBAN_TOKEN_COOKIE,
        token,
        max_age=settings.KANBAN_TOKEN_MAX_AGE,
        httponly=True,
        secure=not settings.DEBUG,
        samesite='Lax',
    )
    return response


@csrf_exempt
@require_http_methods(["POST"])
def register_view(request):
    data = parse_json_body(request)
    user, token = auth_service.register(
        request.stores,
        data.get('username'),
        data.get('email'),
        data.get('password'),
    )
    response = JsonResponse({
        'message': 'User created successfully',
        'user': user,
        'token': token,
    }, status=201)
    return _set_token_cookie(response, token)


@csrf_exempt
@require_http_methods(["POST"])
def login_view(request):
    data = parse_json_body(request)
    user, token = auth_service.login(request.stores, data.get('username'), data.get('password'))
    response = JsonResponse({
        'message': 'Login successful',
        'user': user,
        'token': token,
    })
    return _set_token_cookie(response, token)


@csrf_exempt
@require_http_methods(["POST"])
def logout_view(request):
    response = JsonResponse({'message': 'Logged out successfully'})
    response.delete_cookie(settings.KANBAN_TOKEN_COOKIE, samesite='Lax')
    return response


@require_http_methods(["GET"])
@token_required
def me_view(request):
    user = request.stores.users.find_by_id(request.auth_user['id'])
    if user is None:
        raise NotFoundError('User not found')
    return JsonResponse({'user': user})


@csrf_exempt
@require_http_methods(["PUT"])
@token_required
def change_password_view(request):
    data = parse_json_body(request)
    auth_service.change_password(
        request.stores,
        request.auth_user['id'],
        data.get('current_password'),
        data.get('new_password'),
    )
    return JsonResponse({'message': 'Password changed successfully'})


def health_check(request):
    """
    Health check for monitoring
    """
    from apps.board.backends import BackendState, get_selector

    selector = get_selector()
    status = {
        'status': 'healthy',
        'backend': request.stores.backend,
        'state': selector.state.value,
        'timestamp': timezone.now().isoformat(),
        'version': __version__,
    }

    try:
        connection.ensure_connection()
        status['database'] = 'ok'
    except DatabaseError as e:
        status.update({'status': 'unhealthy', 'database': str(e)})
        return JsonResponse(status, status=500)

    if selector.state is BackendState.DOCUMENT_PREFERRED:
        try:
            selector.ping()
            status['document_store'] = 'ok'
        except PyMongoError as e:
            logger.error("Health check: document store unreachable (%s)", e)
            status.update({'status': 'unhealthy', 'document_store': str(e)})
            return JsonResponse(status, status=500)

    return JsonResponse(status)
