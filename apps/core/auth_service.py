# apps/core/auth_service.py

"""
Serviço de Autenticação - transforma credenciais e tokens em identidades

Regras do login:
- a senha é um segredo compartilhado por todas as contas, não uma credencial
  individual; acertá-la nunca basta sozinha
- a allow-list é o verdadeiro portão: email fora dela nunca recebe sessão
- no primeiro login a identidade é materializada antes de a sessão existir

A sessão é um token assinado (``django.core.signing``) com email, papel,
instante de emissão e um id próprio (``jti``). Não existe tabela de sessões:
cada requisição valida a assinatura e confere a allow-list e a identidade ao
vivo. O logout coloca o ``jti`` numa lista de revogados no cache até o token
expirar de qualquer forma.
"""

import logging
import uuid
from typing import NamedTuple, Optional

from django.core import signing
from django.core.cache import cache
from django.utils import timezone
from django.utils.crypto import constant_time_compare

from .config import get_provider
from .exceptions import InvalidCredentials, NotAuthorized, Unauthenticated, ValidationError
from .lifecycle import LifecycleCoordinator
from .models import User, normalize_email
from .store import IdentityStore, store_errors

logger = logging.getLogger(__name__)

SESSION_SALT = 'apps.core.session'
SESSION_COOKIE_NAME = 'session'
REVOKED_KEY = 'core:session:revoked:{jti}'


class LoginResult(NamedTuple):
    identity: User
    session_token: str


class AuthenticationService:
    """
    Serviço encapsulado para login, resolução de sessão e logout

    Recebe o provedor de configuração no construtor; nunca lê o ambiente.
    """

    def __init__(self, provider=None, store=None, coordinator=None):
        self.provider = provider or get_provider()
        self.store = store or IdentityStore()
        self.coordinator = coordinator or LifecycleCoordinator(
            store=self.store, provider=self.provider
        )

    def login(self, email: str, password: str) -> LoginResult:
        """
        Realiza login

        Raises:
            ConfigurationError: segredo administrativo não configurado
            InvalidCredentials: senha incorreta
            NotAuthorized: senha correta, email fora da allow-list
        """
        if not email or not password:
            raise ValidationError('Email and password are required')

        # ConfigurationError sobe daqui sem ser convertido
        admin_password = self.provider.admin_password()
        email = normalize_email(email)

        if not constant_time_compare(password, admin_password):
            logger.warning(f"Login recusado para {email}: senha inválida")
            raise InvalidCredentials('Invalid password')

        entry = self.store.find_allow_list_entry(email)
        if entry is None:
            logger.warning(f"Login recusado para {email}: email fora da allow-list")
            raise NotAuthorized('Email not authorized to access this application')

        identity = self.coordinator.login_reconcile(email, entry.role)
        if not identity.is_active:
            logger.warning(f"Login recusado para {email}: identidade desativada")
            raise NotAuthorized('Account is disabled')

        token = self._issue_token(identity)

        logger.info(f"Login de {identity.email} ({identity.role})")
        return LoginResult(identity, token)

    def resolve(self, token: Optional[str]) -> User:
        """
        Resolve o token em uma identidade viva ou levanta ``Unauthenticated``

        Sempre falha fechado: token adulterado, expirado, revogado, email
        removido da allow-list, identidade excluída ou desativada.
        """
        payload = self._decode_token(token)
        if payload is None:
            raise Unauthenticated()

        email = payload.get('email')
        if self.store.find_allow_list_entry(email) is None:
            raise Unauthenticated('Email removido da allow-list')

        identity = self.store.find_identity(email)
        if identity is None or identity.pk != payload.get('uid'):
            raise Unauthenticated('Identidade não encontrada')

        if not identity.is_active:
            raise Unauthenticated('Identidade desativada')

        if self._is_revoked(payload):
            raise Unauthenticated('Sessão encerrada')

        return identity

    # Nome usado pela camada de rotas
    resolve_session = resolve

    @store_errors
    def logout(self, token: Optional[str]) -> None:
        """
        Encerra a sessão imediatamente

        Só este token deixa de valer; outras sessões da mesma identidade
        continuam. Token inválido é ignorado.
        """
        try:
            identity = self.resolve(token)
        except Unauthenticated:
            return

        payload = self._decode_token(token)
        cache.set(
            REVOKED_KEY.format(jti=payload['jti']), True,
            timeout=self.provider.session_max_age(),
        )
        logger.info(f"Logout de {identity.email}")

    # =================== MÉTODOS PRIVADOS (ENCAPSULADOS) ===================

    def _issue_token(self, identity: User) -> str:
        payload = {
            'uid': identity.pk,
            'email': identity.email,
            'role': identity.role,
            'iat': timezone.now().timestamp(),
            'jti': uuid.uuid4().hex,
        }
        return signing.dumps(payload, salt=SESSION_SALT, compress=True)

    def _decode_token(self, token) -> Optional[dict]:
        if not token:
            return None
        try:
            payload = signing.loads(
                token, salt=SESSION_SALT, max_age=self.provider.session_max_age()
            )
        except signing.SignatureExpired:
            logger.info('Token de sessão expirado')
            return None
        except signing.BadSignature:
            logger.warning('Token de sessão com assinatura inválida')
            return None

        if not isinstance(payload, dict) or not payload.get('email') or not payload.get('jti'):
            return None
        return payload

    def _is_revoked(self, payload: dict) -> bool:
        return bool(cache.get(REVOKED_KEY.format(jti=payload['jti'])))


def bearer_token(request) -> Optional[str]:
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header[len('Bearer '):].strip() or None
    return None


def token_from_request(request) -> Optional[str]:
    """Lê o token do header ``Authorization: Bearer`` ou do cookie de sessão"""
    return bearer_token(request) or request.COOKIES.get(SESSION_COOKIE_NAME)


def get_auth_service() -> AuthenticationService:
    return auth_service


# Instância global do serviço; a configuração é lida a cada chamada
auth_service = AuthenticationService()
