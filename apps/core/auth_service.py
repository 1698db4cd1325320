# apps/core/auth_service.py

"""
Authentication service - registration, login and signed tokens

Tokens are signed with Django's signing framework (SECRET_KEY) and carry the
user id and username. Passwords go through Django's hashers, configured to
use bcrypt (see apps.core.hashers).
"""

import logging
from typing import Dict, Tuple

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.core import signing
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email

from .exceptions import AccessDeniedError, AuthenticationError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class AuthenticationService:
    """
    Encapsulated authentication logic

    Every method takes the active ``stores`` bundle, so the service works
    the same against either backend.
    """

    def __init__(self):
        self._token_salt = 'apps.core.auth_service.token'

    @property
    def token_max_age(self):
        return getattr(settings, 'KANBAN_TOKEN_MAX_AGE', 7 * 24 * 60 * 60)

    def register(self, stores, username, email, password) -> Tuple[Dict, str]:
        """
        Create a user and issue its first token

        Returns:
            Tuple[user, token]
        """
        username, email = self._validate_registration(username, email, password)
        user = stores.users.create(username, email, make_password(password))
        logger.info("User registered: %s", user['username'])
        return user, self.issue_token(user)

    def login(self, stores, username, password) -> Tuple[Dict, str]:
        if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
            raise ValidationError('Username and password are required')

        user = stores.users.find_by_username(username.strip(), with_password=True)
        if user is None:
            # run the hasher anyway so unknown usernames take as long as wrong passwords
            make_password(password)
            logger.warning("Login failed for unknown user %r", username)
            raise AuthenticationError('Invalid credentials')

        if not check_password(password, user['password']):
            logger.warning("Login failed for %r: wrong password", username)
            raise AuthenticationError('Invalid credentials')

        user = self._public(user)
        return user, self.issue_token(user)

    def issue_token(self, user) -> str:
        return signing.dumps({'id': user['id'], 'username': user['username']}, salt=self._token_salt)

    def verify_token(self, token) -> Dict:
        """Decode a token into ``{'id', 'username'}`` or raise AccessDeniedError"""
        try:
            payload = signing.loads(token, salt=self._token_salt, max_age=self.token_max_age)
        except signing.SignatureExpired:
            logger.warning("Rejected expired token")
            raise AccessDeniedError('Invalid or expired token.')
        except signing.BadSignature:
            logger.warning("Rejected tampered token")
            raise AccessDeniedError('Invalid or expired token.')

        if not isinstance(payload, dict) or 'id' not in payload:
            raise AccessDeniedError('Invalid or expired token.')
        return {'id': payload['id'], 'username': payload.get('username')}

    def change_password(self, stores, user_id, current_password, new_password):
        if not isinstance(current_password, str) or not isinstance(new_password, str) \
                or not current_password or not new_password:
            raise ValidationError('Current and new password are required')

        user = stores.users.find_by_id(user_id)
        if user is None:
            raise NotFoundError('User not found')

        stored = stores.users.find_by_username(user['username'], with_password=True)
        if not check_password(current_password, stored['password']):
            raise AuthenticationError('Current password is incorrect')

        self._validate_password(new_password)
        stores.users.change_password(user_id, make_password(new_password))
        logger.info("Password changed for %s", user['username'])

    # Private methods

    def _validate_registration(self, username, email, password):
        if not all(isinstance(value, str) and value for value in (username, email, password)):
            raise ValidationError('Username, email and password are required')

        username = username.strip()
        email = email.strip().lower()
        if not username:
            raise ValidationError('Username, email and password are required')

        try:
            validate_email(email)
        except DjangoValidationError:
            raise ValidationError('Invalid email address')

        self._validate_password(password)
        return username, email

    def _validate_password(self, password):
        min_length = getattr(settings, 'KANBAN_PASSWORD_MIN_LENGTH', 8)
        if len(password) < min_length:
            raise ValidationError(f'Password must be at least {min_length} characters long')

    def _public(self, user):
        return {key: value for key, value in user.items() if key != 'password'}


# Module-level instance for the views
auth_service = AuthenticationService()
