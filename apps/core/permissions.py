# apps/core/permissions.py

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Optional

from django.db import models
from django.middleware.csrf import CsrfViewMiddleware

from .exceptions import AccessDenied, CsrfFailure, Unauthenticated
from .models import AllowedUser, Project, Role, Task, User, normalize_email

logger = logging.getLogger(__name__)


class Action(models.TextChoices):
    READ = 'Read', 'Ler'
    CREATE = 'Create', 'Criar'
    UPDATE = 'Update', 'Alterar'
    DELETE = 'Delete', 'Excluir'
    CHANGE_ROLE = 'ChangeRole', 'Alterar papel'
    ASSIGN = 'Assign', 'Atribuir responsável'


class DenyReason(models.TextChoices):
    PROTECTED_ACCOUNT = 'ProtectedAccount', 'Conta protegida'
    CANNOT_MODIFY_SELF = 'CannotModifySelf', 'Não é possível alterar o próprio papel'
    CANNOT_DELETE_SELF = 'CannotDeleteSelf', 'Não é possível excluir a si mesmo'
    NOT_OWNER = 'NotOwner', 'Apenas o dono do projeto'
    NOT_PROJECT_OWNER = 'NotProjectOwner', 'Apenas o dono do projeto pode criar tarefas'
    NOT_AUTHORIZED_FOR_TASK = 'NotAuthorizedForTask', 'Sem permissão nesta tarefa'
    NO_MATCHING_RULE = 'NoMatchingRule', 'Nenhuma regra permite esta ação'


@dataclass(frozen=True)
class Decision:
    """Resultado de uma verificação: Allow ou Deny(reason)"""

    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def deny(cls, reason):
        return cls(False, reason)

    def __bool__(self):
        return self.allowed


ALLOW = Decision(True)


class AuthorizationEngine:
    """
    Motor de autorização do sistema

    Função de decisão pura: recebe identidade, ação e recurso e devolve
    Allow ou Deny(reason). Não acessa configuração nem request; o email do
    admin principal é injetado no construtor.

    Ordem das regras (a primeira que casar vence):
    1. Admin principal nunca tem o papel alterado nem é excluído
    2. Ninguém altera o próprio papel
    3. Ninguém exclui a si mesmo
    4. ADMIN pode todo o resto
    5-8. Regras de dono do projeto / criador / responsável da tarefa
    9. Nega por padrão
    """

    def __init__(self, primary_admin_email):
        self.primary_admin_email = normalize_email(primary_admin_email)

    def is_primary_admin(self, resource):
        return normalize_email(getattr(resource, 'email', '')) == self.primary_admin_email

    def authorize(self, identity, action, resource) -> Decision:
        if identity is None:
            return Decision.deny(DenyReason.NO_MATCHING_RULE)

        is_account = isinstance(resource, (User, AllowedUser))

        # Regras de proteção vêm antes do override de ADMIN
        if is_account and action in (Action.CHANGE_ROLE, Action.DELETE):
            if self.is_primary_admin(resource):
                return Decision.deny(DenyReason.PROTECTED_ACCOUNT)
            if _is_self(identity, resource):
                if action == Action.CHANGE_ROLE:
                    return Decision.deny(DenyReason.CANNOT_MODIFY_SELF)
                return Decision.deny(DenyReason.CANNOT_DELETE_SELF)

        if identity.role == Role.ADMIN:
            return ALLOW

        if isinstance(resource, Project):
            return self._authorize_project(identity, action, resource)

        if isinstance(resource, Task):
            return self._authorize_task(identity, action, resource)

        if isinstance(resource, User) and action in (Action.READ, Action.UPDATE):
            # Perfil próprio: ler e trocar o nome de exibição
            if _is_self(identity, resource):
                return ALLOW

        return Decision.deny(DenyReason.NO_MATCHING_RULE)

    def require(self, identity, action, resource):
        """Como ``authorize``, mas levanta ``AccessDenied`` ao negar"""
        decision = self.authorize(identity, action, resource)
        if not decision:
            logger.warning(
                f"Acesso negado: {getattr(identity, 'email', None)} -> "
                f"{action} {type(resource).__name__}#{getattr(resource, 'pk', None)} ({decision.reason})"
            )
            raise AccessDenied(decision.reason)
        return decision

    # =================== REGRAS DE POSSE ===================

    def _authorize_project(self, identity, action, project):
        if action == Action.CREATE:
            # Qualquer identidade autenticada cria projetos (e vira dona)
            return ALLOW

        if action in (Action.READ, Action.UPDATE, Action.DELETE):
            if project.owner_id == identity.pk:
                return ALLOW
            return Decision.deny(DenyReason.NOT_OWNER)

        return Decision.deny(DenyReason.NO_MATCHING_RULE)

    def _authorize_task(self, identity, action, task):
        project_owner_id = task.project.owner_id

        if action == Action.CREATE:
            if identity.pk == project_owner_id:
                return ALLOW
            return Decision.deny(DenyReason.NOT_PROJECT_OWNER)

        if action in (Action.READ, Action.UPDATE):
            if identity.pk in (task.created_by_id, task.assignee_id, project_owner_id):
                return ALLOW
            return Decision.deny(DenyReason.NOT_AUTHORIZED_FOR_TASK)

        if action == Action.DELETE:
            # Responsável pode editar, mas não excluir
            if identity.pk in (task.created_by_id, project_owner_id):
                return ALLOW
            return Decision.deny(DenyReason.NOT_AUTHORIZED_FOR_TASK)

        if action == Action.ASSIGN:
            if identity.pk == project_owner_id:
                return ALLOW
            return Decision.deny(DenyReason.NOT_AUTHORIZED_FOR_TASK)

        return Decision.deny(DenyReason.NO_MATCHING_RULE)


def _is_self(identity, resource):
    if isinstance(resource, AllowedUser):
        return normalize_email(resource.email) == normalize_email(identity.email)
    return resource.pk is not None and resource.pk == identity.pk


def get_engine(provider=None) -> AuthorizationEngine:
    from .config import get_provider

    provider = provider or get_provider()
    return AuthorizationEngine(provider.primary_admin_email())


# Decoradores para views

SAFE_METHODS = ('GET', 'HEAD', 'OPTIONS', 'TRACE')


def enforce_cookie_csrf(request):
    """
    Exige token CSRF quando a sessão vem do cookie

    Com ``Authorization: Bearer`` o navegador não envia credencial sozinho,
    então não há o que forjar. Com o cookie, mutações passam pela mesma
    verificação do ``CsrfViewMiddleware`` (header ``X-CSRFToken``).
    """
    from .auth_service import SESSION_COOKIE_NAME, bearer_token

    if request.method in SAFE_METHODS or bearer_token(request):
        return
    if SESSION_COOKIE_NAME not in request.COOKIES:
        return

    rejected = CsrfViewMiddleware(lambda r: None).process_view(request, None, (), {})
    if rejected is not None:
        logger.warning(f"CSRF recusado em {request.method} {request.path}")
        raise CsrfFailure()


def session_required(view_func):
    """
    Decorador que resolve o token da sessão e injeta ``request.identity``

    A identidade é passada explicitamente para o núcleo a partir daqui;
    nada abaixo da view volta a ler cookies.
    """

    @wraps(view_func)
    def wrapped_view(request, *args, **kwargs):
        from .auth_service import get_auth_service, token_from_request

        token = token_from_request(request)
        if not token:
            raise Unauthenticated('Authentication required')

        request.identity = get_auth_service().resolve(token)
        request.session_token = token
        enforce_cookie_csrf(request)
        return view_func(request, *args, **kwargs)

    return wrapped_view
