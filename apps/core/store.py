# apps/core/store.py

"""
Identity Store - registro durável da allow-list e das identidades

Concentra todo acesso ao banco relacionado a contas. Emails são sempre
normalizados para minúsculas na escrita e comparados sem distinção de caixa.
Erros de banco sobem como ``StoreError``; nada aqui tenta de novo.
"""

import logging
from functools import wraps
from typing import Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Q

from .exceptions import (
    Conflict, CoreError, DuplicateEntry, NotFound, PartialCascadeFailure,
    StoreError, ValidationError,
)
from .models import (
    AllowedUser, Project, Role, Task, User, default_display_name, normalize_email,
)

logger = logging.getLogger(__name__)


def store_errors(func):
    """Converte erros do banco em ``StoreError`` preservando os erros do núcleo"""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except CoreError:
            raise
        except DatabaseError as exc:
            logger.exception(f"Erro de banco em {func.__name__}")
            raise StoreError(str(exc)) from exc

    return wrapper


def clean_email(email) -> str:
    email = normalize_email(email)
    try:
        validate_email(email)
    except DjangoValidationError as exc:
        raise ValidationError(f"Email inválido: {email!r}") from exc
    return email


def clean_role(role) -> str:
    if role not in Role.values:
        raise ValidationError('Role must be either ADMIN or MEMBER')
    return role


class IdentityStore:

    # === ALLOW-LIST ===

    @store_errors
    def find_allow_list_entry(self, email) -> Optional[AllowedUser]:
        return AllowedUser.objects.filter(email=normalize_email(email)).first()

    @store_errors
    def list_allow_list_entries(self):
        return list(AllowedUser.objects.all())

    @store_errors
    def upsert_allow_list_entry(self, email, role, create_only=False) -> AllowedUser:
        """
        Cria a entrada ou atualiza o papel no lugar

        Com ``create_only=True`` um email existente gera ``DuplicateEntry``.
        """
        email = clean_email(email)
        role = clean_role(role)

        with transaction.atomic():
            entry = AllowedUser.objects.select_for_update().filter(email=email).first()
            if entry is not None:
                if create_only:
                    raise DuplicateEntry('User with this email already exists')
                if entry.role != role:
                    entry.role = role
                    entry.save(update_fields=['role', 'updated_at'])
                return entry

            try:
                with transaction.atomic():
                    return AllowedUser.objects.create(email=email, role=role)
            except IntegrityError as exc:
                # Outra requisição criou o mesmo email entre a leitura e a escrita
                raise DuplicateEntry('User with this email already exists') from exc

    @store_errors
    def delete_allow_list_entry(self, email) -> dict:
        """
        Remove a entrada e, na mesma transação, a identidade materializada
        com seus projetos e tarefas
        """
        email = normalize_email(email)

        with transaction.atomic():
            entry = AllowedUser.objects.select_for_update().filter(email=email).first()
            if entry is None:
                raise NotFound(f"Email {email} não está na allow-list")

            identity = User.objects.select_for_update().filter(email=email).first()
            if identity is not None:
                return self.purge_identity(identity)

            entry.delete()
            return {'tasks': 0, 'projects': 0, 'identities': 0, 'allowed_users': 1}

    # === IDENTIDADES ===

    @store_errors
    def find_identity(self, email) -> Optional[User]:
        return User.objects.filter(email=normalize_email(email)).first()

    @store_errors
    def get_identity(self, identity_id, lock=False) -> User:
        queryset = User.objects.select_for_update() if lock else User.objects.all()
        try:
            return queryset.get(pk=identity_id)
        except (User.DoesNotExist, ValueError, TypeError):
            raise NotFound('User not found')

    @store_errors
    def list_identities(self):
        return list(User.objects.order_by('email'))

    @store_errors
    def create_identity(self, email, role, display_name=None) -> User:
        email = clean_email(email)
        role = clean_role(role)

        if User.objects.filter(email=email).exists():
            raise Conflict(f"Usuário {email} já existe")

        identity = User(
            email=email,
            role=role,
            display_name=display_name or default_display_name(email),
        )
        # Não há senha por conta: o segredo é compartilhado
        identity.set_unusable_password()

        try:
            with transaction.atomic():
                identity.save()
        except IntegrityError as exc:
            raise Conflict(f"Usuário {email} já existe") from exc

        logger.info(f"Identidade criada: {email} ({role})")
        return identity

    @store_errors
    def update_role(self, identity_id, role) -> User:
        role = clean_role(role)

        with transaction.atomic():
            identity = self.get_identity(identity_id, lock=True)
            if identity.role != role:
                identity.role = role
                identity.save(update_fields=['role', 'updated_at'])
        return identity

    # === CASCATA ===

    def purge_identity(self, identity) -> dict:
        """
        Exclui a identidade e tudo que ela possui, filhos primeiro

        Ordem: tarefas (criadas por ela ou em projetos dela) -> projetos ->
        identidade -> entrada da allow-list. Tudo numa transação: se algo
        falhar no meio, nada é apagado e ``PartialCascadeFailure`` sobe.
        """
        try:
            with transaction.atomic():
                _, tasks = Task.objects.filter(
                    Q(created_by=identity) | Q(project__owner=identity)
                ).delete()
                _, projects = Project.objects.filter(owner=identity).delete()
                _, identities = User.objects.filter(pk=identity.pk).delete()
                allowed, _ = AllowedUser.objects.filter(email=identity.email).delete()
        except DatabaseError as exc:
            logger.exception(f"Cascata interrompida ao excluir {identity.email}")
            raise PartialCascadeFailure() from exc

        counts = {
            'tasks': tasks.get(Task._meta.label, 0),
            'projects': projects.get(Project._meta.label, 0),
            'identities': identities.get(User._meta.label, 0),
            'allowed_users': allowed,
        }
        logger.info(f"Identidade {identity.email} excluída em cascata: {counts}")
        return counts
