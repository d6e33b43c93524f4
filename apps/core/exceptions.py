# apps/core/exceptions.py

"""
Erros do núcleo de controle de acesso

Cada erro carrega um ``code`` estável e o ``status_code`` HTTP que a camada
de rotas deve usar. O núcleo em si não conhece HTTP: a tradução acontece em
``ApiErrorMiddleware``.
"""

from django.core.exceptions import ImproperlyConfigured


class CoreError(Exception):
    """Base de todos os erros do núcleo"""

    code = 'error'
    status_code = 500
    default_message = 'Erro interno'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_dict(self):
        return {'error': self.code, 'message': self.message}


# === AUTENTICAÇÃO ===

class Unauthenticated(CoreError):
    code = 'unauthenticated'
    status_code = 401
    default_message = 'Sessão inválida ou ausente'


class AuthError(CoreError):
    """Falhas do login"""


class InvalidCredentials(AuthError):
    code = 'invalid_credentials'
    status_code = 401
    default_message = 'Senha inválida'


class NotAuthorized(AuthError):
    code = 'not_authorized'
    status_code = 403
    default_message = 'Email não autorizado a acessar esta aplicação'


class ConfigurationError(AuthError, ImproperlyConfigured):
    """
    Deploy quebrado (segredo compartilhado ausente, allow-list ilegível...)

    Nunca deve ser convertido em uma falha de login comum.
    """

    code = 'configuration_error'
    status_code = 500
    default_message = 'Erro de configuração do servidor'


class CsrfFailure(CoreError):
    """Mutação autenticada só pelo cookie sem token CSRF válido"""

    code = 'csrf_failed'
    status_code = 403
    default_message = 'CSRF verification failed'


# === AUTORIZAÇÃO ===

class AccessDenied(CoreError):
    code = 'access_denied'
    status_code = 403
    default_message = 'Você não tem permissão para esta ação'

    def __init__(self, reason, message=None):
        self.reason = reason
        super().__init__(message or f'{self.default_message} ({reason})')

    def as_dict(self):
        data = super().as_dict()
        data['reason'] = str(self.reason)
        return data


# === DADOS ===

class NotFound(CoreError):
    code = 'not_found'
    status_code = 404
    default_message = 'Registro não encontrado'


class ValidationError(CoreError):
    code = 'validation_error'
    status_code = 400
    default_message = 'Dados inválidos'


class DuplicateEntry(CoreError):
    code = 'duplicate_entry'
    status_code = 409
    default_message = 'Email já cadastrado na allow-list'


class Conflict(CoreError):
    code = 'conflict'
    status_code = 409
    default_message = 'Usuário já existe'


class StoreError(CoreError):
    """Falha do banco (conexão, constraint...) propagada sem retry"""

    code = 'store_error'
    status_code = 500
    default_message = 'Erro ao acessar o banco de dados'


class PartialCascadeFailure(StoreError):
    """
    Exclusão em cascata falhou no meio

    A transação já foi desfeita; a operação deve ser repetida inteira.
    """

    code = 'partial_cascade_failure'
    status_code = 503
    default_message = 'Exclusão em cascata falhou, tente novamente'
