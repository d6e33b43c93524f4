# apps/core/apps.py

import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class CoreConfig(AppConfig):
    """Configuração da app Core"""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core - Controle de Acesso'

    def ready(self):
        """
        Método chamado quando a aplicação está pronta

        Avisa cedo se a configuração obrigatória estiver faltando. Não
        impede a subida: os logins é que falham com ``ConfigurationError``.
        """
        from .config import get_provider
        from .exceptions import ConfigurationError

        provider = get_provider()
        for getter in (provider.admin_password, provider.primary_admin_email):
            try:
                getter()
            except ConfigurationError as exc:
                logger.warning(f"Configuração incompleta: {exc}")
