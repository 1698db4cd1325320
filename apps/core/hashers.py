# apps/core/hashers.py

from django.conf import settings
from django.contrib.auth.hashers import BCryptSHA256PasswordHasher


class KanbanBCryptPasswordHasher(BCryptSHA256PasswordHasher):
    """BCrypt with the cost factor taken from ``KANBAN_BCRYPT_ROUNDS``"""

    @property
    def rounds(self):
        return getattr(settings, 'KANBAN_BCRYPT_ROUNDS', 10)
