# apps/core/config.py

"""
Provedor de configuração do núcleo

Toda configuração derivada do ambiente (segredo compartilhado, admin
principal, allow-list inicial) passa por aqui. Os serviços recebem o provedor
no construtor e nunca leem ``os.environ`` diretamente.
"""

import json
import logging

from django.conf import settings

from .exceptions import ConfigurationError
from .models import Role, normalize_email

logger = logging.getLogger(__name__)

DEFAULT_SESSION_MAX_AGE = 60 * 60 * 24 * 7  # 7 dias


class ConfigurationProvider:
    """Interface do provedor de configuração"""

    def admin_password(self) -> str:
        raise NotImplementedError

    def primary_admin_email(self) -> str:
        raise NotImplementedError

    def session_max_age(self) -> int:
        return DEFAULT_SESSION_MAX_AGE

    def bootstrap_allowed_users(self) -> list:
        return []

    def is_primary_admin(self, email) -> bool:
        return normalize_email(email) == self.primary_admin_email()


class StaticConfigurationProvider(ConfigurationProvider):
    """Configuração fixa, passada explicitamente (scripts e testes)"""

    def __init__(self, admin_password=None, primary_admin_email=None,
                 session_max_age=DEFAULT_SESSION_MAX_AGE, allowed_users=None):
        self._admin_password = admin_password
        self._primary_admin_email = primary_admin_email
        self._session_max_age = session_max_age
        self._allowed_users = allowed_users or []

    def admin_password(self):
        if not self._admin_password:
            raise ConfigurationError('Segredo administrativo não configurado')
        return self._admin_password

    def primary_admin_email(self):
        if not self._primary_admin_email:
            raise ConfigurationError('Email do admin principal não configurado')
        return normalize_email(self._primary_admin_email)

    def session_max_age(self):
        return self._session_max_age

    def bootstrap_allowed_users(self):
        return _parse_allowed_users(self._allowed_users)


class SettingsConfigurationProvider(ConfigurationProvider):
    """
    Lê a configuração das settings do Django

    As settings, por sua vez, vêm do ambiente via django-environ:
    ADMIN_PASSWORD, PRIMARY_ADMIN_EMAIL, ALLOWED_USERS e SESSION_TOKEN_MAX_AGE.
    """

    def admin_password(self):
        password = getattr(settings, 'ADMIN_PASSWORD', None)
        if not password:
            logger.error('ADMIN_PASSWORD não está definido - logins bloqueados')
            raise ConfigurationError('Server configuration error: ADMIN_PASSWORD not set')
        return password

    def primary_admin_email(self):
        email = normalize_email(getattr(settings, 'PRIMARY_ADMIN_EMAIL', ''))
        if not email:
            logger.error('PRIMARY_ADMIN_EMAIL não está definido')
            raise ConfigurationError('Server configuration error: PRIMARY_ADMIN_EMAIL not set')
        return email

    def session_max_age(self):
        return int(getattr(settings, 'SESSION_TOKEN_MAX_AGE', DEFAULT_SESSION_MAX_AGE))

    def bootstrap_allowed_users(self):
        raw = getattr(settings, 'ALLOWED_USERS', '[]') or '[]'
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError as exc:
                logger.error(f"ALLOWED_USERS inválido: {exc}")
                raise ConfigurationError('ALLOWED_USERS não é um JSON válido') from exc
        return _parse_allowed_users(raw)


def _parse_allowed_users(raw):
    """Valida a lista ``[{"email": ..., "role": ...}]`` e normaliza os emails"""
    if not isinstance(raw, list):
        raise ConfigurationError('ALLOWED_USERS deve ser uma lista')

    entries = []
    for item in raw:
        if not isinstance(item, dict) or not item.get('email'):
            raise ConfigurationError(f"Entrada inválida em ALLOWED_USERS: {item!r}")
        role = item.get('role', Role.MEMBER)
        if role not in Role.values:
            raise ConfigurationError(f"Papel inválido em ALLOWED_USERS: {role!r}")
        entries.append({'email': normalize_email(item['email']), 'role': role})
    return entries


def get_provider() -> ConfigurationProvider:
    return SettingsConfigurationProvider()
