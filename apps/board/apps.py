# apps/board/apps.py

from django.apps import AppConfig


class BoardConfig(AppConfig):
    """Board app: position reindexer, entity stores and the JSON API"""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.board'
    verbose_name = 'Board - Kanban'

    selector = None

    def ready(self):
        """
        Freezes the backend configuration for the lifetime of the process.
        The connection itself is attempted on the first request.
        """
        from django.conf import settings
        from .backends import BackendConfig, BackendSelector

        config = BackendConfig.from_settings(settings)
        self.selector = BackendSelector(config)

        import logging
        logger = logging.getLogger(__name__)
        logger.info(
            "Board app ready - document store %s",
            "configured" if config.document_configured else "not configured",
        )
