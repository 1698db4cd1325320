# apps/core/exceptions.py

"""
Error taxonomy shared by stores, services and views.

Each error carries the HTTP status it maps to, so the API middleware can turn
it into a JSON response without knowing where it was raised.
"""


class KanbanError(Exception):
    """Base class for every error the board raises on purpose"""

    status_code = 500
    default_message = 'Server error'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(KanbanError):
    """Missing or malformed input"""

    status_code = 400
    default_message = 'Invalid request'


class NotFoundError(KanbanError):
    """Entity or membership absent"""

    status_code = 404
    default_message = 'Not found'


class AccessDeniedError(KanbanError):
    """Authenticated but not allowed, or the presented token is invalid"""

    status_code = 403
    default_message = 'Access denied'


class AuthenticationError(AccessDeniedError):
    """No credentials were presented, or they did not match"""

    status_code = 401
    default_message = 'Access denied. No token provided.'


class ConflictError(KanbanError):
    """Duplicate unique key (username, email, membership)"""

    status_code = 400
    default_message = 'Resource already exists'


class InfrastructureError(KanbanError):
    """Backend unreachable or a transaction failed and was rolled back"""

    status_code = 500
    default_message = 'Server error'
