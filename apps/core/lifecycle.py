# apps/core/lifecycle.py

"""
Coordenador do ciclo de vida de identidades e recursos

Toda mutação passa por aqui: consulta o motor de autorização e só então
altera o banco. Cada operação roda em uma transação e trava a linha alvo
com ``select_for_update`` para que duas mutações sobre o mesmo alvo nunca
se intercalem (ex.: alteração de papel concorrendo com exclusão).

A identidade do ator é sempre recebida como parâmetro explícito.
"""

import logging
from typing import Dict, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction
from django.db.models import Q

from .config import get_provider
from .exceptions import (
    AccessDenied, Conflict, NotFound, PartialCascadeFailure, ValidationError,
)
from .models import AllowedUser, Project, Role, Task, User, normalize_email
from .permissions import Action, AuthorizationEngine, DenyReason
from .store import IdentityStore, clean_email, clean_role, store_errors

logger = logging.getLogger(__name__)

PROJECT_FIELDS = ('name', 'description', 'status', 'start_date', 'due_date')
TASK_FIELDS = ('title', 'description', 'status', 'due_date')


class LifecycleCoordinator:

    def __init__(self, store=None, engine=None, provider=None):
        self.provider = provider or get_provider()
        self.store = store or IdentityStore()
        self._engine = engine

    @property
    def engine(self) -> AuthorizationEngine:
        if self._engine is None:
            self._engine = AuthorizationEngine(self.provider.primary_admin_email())
        return self._engine

    # =================== IDENTIDADES ===================

    @store_errors
    def login_reconcile(self, email, allow_list_role) -> User:
        """
        Garante que a identidade existe e tem o papel da allow-list

        A allow-list é a fonte da verdade para o papel no momento do login.
        O admin principal é sempre ADMIN. Chamar duas vezes seguidas não
        altera nada na segunda.
        """
        email = normalize_email(email)
        role = clean_role(allow_list_role)
        if self.provider.is_primary_admin(email):
            role = Role.ADMIN

        with transaction.atomic():
            identity = User.objects.select_for_update().filter(email=email).first()
            if identity is None:
                try:
                    with transaction.atomic():
                        return self.store.create_identity(email, role)
                except Conflict:
                    # Primeiro login concorrente já materializou a identidade
                    identity = User.objects.select_for_update().get(email=email)

            if identity.role != role:
                logger.info(f"Papel de {email} reconciliado: {identity.role} -> {role}")
                identity.role = role
                identity.save(update_fields=['role', 'updated_at'])

        return identity

    @store_errors
    def change_role(self, actor, target_id, new_role) -> User:
        """
        Altera o papel de uma identidade

        Não mexe na allow-list: os dois podem divergir até o próximo login.
        """
        new_role = clean_role(new_role)

        with transaction.atomic():
            target = self.store.get_identity(target_id, lock=True)
            self.engine.require(actor, Action.CHANGE_ROLE, target)
            target = self.store.update_role(target.pk, new_role)

        logger.info(f"{actor.email} alterou o papel de {target.email} para {new_role}")
        return target

    @store_errors
    def delete_identity(self, actor, target_id) -> Dict[str, int]:
        with transaction.atomic():
            target = self.store.get_identity(target_id, lock=True)
            self.engine.require(actor, Action.DELETE, target)
            counts = self.store.purge_identity(target)

        logger.info(f"{actor.email} excluiu a identidade {target.email}")
        return counts

    @store_errors
    def get_identity(self, actor, target_id) -> User:
        target = self.store.get_identity(target_id)
        self.engine.require(actor, Action.READ, target)
        return target

    @store_errors
    def list_identities(self, actor):
        self._require_admin(actor)
        return self.store.list_identities()

    @store_errors
    def update_profile(self, actor, changes) -> User:
        """
        Altera o perfil da própria identidade (hoje, só o nome de exibição)

        Papel e email não passam por aqui.
        """
        display_name = changes.get('display_name')
        if isinstance(display_name, str):
            display_name = display_name.strip()
        if not display_name or not isinstance(display_name, str):
            raise ValidationError('Name is required')

        with transaction.atomic():
            identity = self.store.get_identity(actor.pk, lock=True)
            self.engine.require(actor, Action.UPDATE, identity)
            identity.display_name = display_name
            self._validate(identity)
            identity.save(update_fields=['display_name', 'updated_at'])
        return identity

    # =================== ALLOW-LIST ===================

    @store_errors
    def list_allowed_users(self, actor):
        self._require_admin(actor)
        return self.store.list_allow_list_entries()

    @store_errors
    def add_allowed_user(self, actor, email, role) -> AllowedUser:
        """
        Adiciona um email à allow-list e já materializa a identidade

        ``DuplicateEntry`` se o email já estiver cadastrado.
        """
        self._require_admin(actor)
        email = clean_email(email)
        role = clean_role(role)
        self._protect_primary_admin_role(email, role)

        with transaction.atomic():
            entry = self.store.upsert_allow_list_entry(email, role, create_only=True)
            self.login_reconcile(email, role)

        logger.info(f"{actor.email} adicionou {email} à allow-list como {role}")
        return entry

    @store_errors
    def update_allowed_user(self, actor, email, role) -> AllowedUser:
        """Altera o papel concedido pela allow-list (vale a partir do próximo login)"""
        self._require_admin(actor)
        role = clean_role(role)

        with transaction.atomic():
            entry = self._get_allow_list_entry(email, lock=True)
            self.engine.require(actor, Action.CHANGE_ROLE, entry)
            entry = self.store.upsert_allow_list_entry(entry.email, role)

        logger.info(f"{actor.email} alterou {entry.email} na allow-list para {role}")
        return entry

    @store_errors
    def delete_allow_list_entry(self, actor, email) -> Dict[str, int]:
        """
        Remove o email da allow-list

        Se já houver identidade materializada, ela é excluída em cascata na
        mesma transação (projetos, tarefas).
        """
        self._require_admin(actor)

        with transaction.atomic():
            entry = self._get_allow_list_entry(email, lock=True)
            self.engine.require(actor, Action.DELETE, entry)

            identity = self.store.find_identity(entry.email)
            if identity is not None:
                self.engine.require(actor, Action.DELETE, identity)

            counts = self.store.delete_allow_list_entry(entry.email)

        logger.info(f"{actor.email} removeu {entry.email} da allow-list: {counts}")
        return counts

    # =================== PROJETOS ===================

    @store_errors
    def create_project(self, actor, data) -> Project:
        project = Project(owner=actor)
        self._apply(project, data, PROJECT_FIELDS)
        self.engine.require(actor, Action.CREATE, project)

        with transaction.atomic():
            self._lock_live_identity(actor)
            self._validate(project)
            project.save()

        logger.info(f"{actor.email} criou o projeto #{project.pk}")
        return project

    @store_errors
    def get_project(self, actor, project_id) -> Project:
        project = self._get_project(project_id)
        self.engine.require(actor, Action.READ, project)
        return project

    @store_errors
    def update_project(self, actor, project_id, changes) -> Project:
        with transaction.atomic():
            project = self._get_project(project_id, lock=True)
            self.engine.require(actor, Action.UPDATE, project)
            self._apply(project, changes, PROJECT_FIELDS)
            self._validate(project)
            project.save()
        return project

    @store_errors
    def delete_project(self, actor, project_id) -> Dict[str, int]:
        with transaction.atomic():
            project = self._get_project(project_id, lock=True)
            self.engine.require(actor, Action.DELETE, project)

            try:
                with transaction.atomic():
                    tasks, _ = Task.objects.filter(project=project).delete()
                    Project.objects.filter(pk=project.pk).delete()
            except DatabaseError as exc:
                logger.exception(f"Cascata interrompida ao excluir o projeto #{project.pk}")
                raise PartialCascadeFailure() from exc

        logger.info(f"{actor.email} excluiu o projeto #{project_id} ({tasks} tarefas)")
        return {'projects': 1, 'tasks': tasks}

    @store_errors
    def list_projects(self, actor):
        """Projetos visíveis ao ator: todos para ADMIN, os próprios para MEMBER"""
        queryset = Project.objects.all()
        if actor.role != Role.ADMIN:
            queryset = queryset.filter(owner=actor)
        return list(queryset)

    # =================== TAREFAS ===================

    @store_errors
    def create_task(self, actor, project_id, data) -> Task:
        with transaction.atomic():
            project = self._get_project(project_id, lock=True)
            task = Task(project=project, created_by=actor)
            self.engine.require(actor, Action.CREATE, task)
            self._lock_live_identity(actor)

            self._apply(task, data, TASK_FIELDS)
            if data.get('assignee_id') is not None:
                self._assign(actor, task, data['assignee_id'])

            self._validate(task)
            task.save()

        logger.info(f"{actor.email} criou a tarefa #{task.pk} no projeto #{project.pk}")
        return task

    @store_errors
    def get_task(self, actor, task_id) -> Task:
        task = self._get_task(task_id)
        self.engine.require(actor, Action.READ, task)
        return task

    @store_errors
    def update_task(self, actor, task_id, changes) -> Task:
        """
        Altera uma tarefa

        Trocar o responsável (``assignee_id``) exige a permissão de atribuição,
        não apenas a de edição.
        """
        with transaction.atomic():
            task = self._get_task(task_id, lock=True)
            self.engine.require(actor, Action.UPDATE, task)

            if 'assignee_id' in changes:
                self._assign(actor, task, changes['assignee_id'])

            self._apply(task, changes, TASK_FIELDS)
            self._validate(task)
            task.save()
        return task

    @store_errors
    def list_tasks(self, actor, project_id=None):
        """
        Tarefas visíveis ao ator, opcionalmente de um projeto só

        ADMIN vê todas; os demais veem as que criaram, as atribuídas a eles e
        as dos projetos de que são donos.
        """
        queryset = Task.objects.select_related('project')
        if project_id is not None:
            queryset = queryset.filter(project=self._get_project(project_id))

        if actor.role != Role.ADMIN:
            queryset = queryset.filter(
                Q(created_by=actor) | Q(assignee=actor) | Q(project__owner=actor)
            )
        return list(queryset)

    def assign_task(self, actor, task_id, assignee_id: Optional[int]) -> Task:
        """Define (ou remove, com ``None``) o responsável pela tarefa"""
        return self.update_task(actor, task_id, {'assignee_id': assignee_id})

    @store_errors
    def delete_task(self, actor, task_id) -> Task:
        with transaction.atomic():
            task = self._get_task(task_id, lock=True)
            self.engine.require(actor, Action.DELETE, task)
            task.delete()

        logger.info(f"{actor.email} excluiu a tarefa #{task_id}")
        return task

    # =================== MÉTODOS PRIVADOS ===================

    def _require_admin(self, actor):
        if actor is None or actor.role != Role.ADMIN:
            raise AccessDenied(DenyReason.NO_MATCHING_RULE, 'Admin access required')

    def _protect_primary_admin_role(self, email, role):
        if role != Role.ADMIN and self.provider.is_primary_admin(email):
            raise AccessDenied(DenyReason.PROTECTED_ACCOUNT)

    def _get_allow_list_entry(self, email, lock=False) -> AllowedUser:
        queryset = AllowedUser.objects.select_for_update() if lock else AllowedUser.objects.all()
        entry = queryset.filter(email=normalize_email(email)).first()
        if entry is None:
            raise NotFound(f"Email {normalize_email(email)} não está na allow-list")
        return entry

    def _get_project(self, project_id, lock=False) -> Project:
        queryset = Project.objects.select_for_update() if lock else Project.objects.all()
        try:
            return queryset.get(pk=project_id)
        except (Project.DoesNotExist, ValueError, TypeError):
            raise NotFound('Project not found')

    def _get_task(self, task_id, lock=False) -> Task:
        queryset = Task.objects.select_related('project')
        if lock:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(pk=task_id)
        except (Task.DoesNotExist, ValueError, TypeError):
            raise NotFound('Task not found')

    def _lock_live_identity(self, identity):
        if not User.objects.select_for_update().filter(pk=identity.pk).exists():
            raise NotFound('User not found')

    def _assign(self, actor, task, assignee_id):
        self.engine.require(actor, Action.ASSIGN, task)
        if assignee_id is None:
            task.assignee = None
            return
        task.assignee = self.store.get_identity(assignee_id)

    def _apply(self, instance, data, fields):
        for field in fields:
            if field in data:
                setattr(instance, field, data[field])

    def _validate(self, instance):
        try:
            instance.full_clean()
        except DjangoValidationError as exc:
            raise ValidationError(_format_errors(exc)) from exc


def _format_errors(exc):
    if hasattr(exc, 'message_dict'):
        return '; '.join(
            f"{field}: {' '.join(messages)}" for field, messages in exc.message_dict.items()
        )
    return ' '.join(exc.messages)


def get_coordinator(provider=None) -> LifecycleCoordinator:
    return LifecycleCoordinator(provider=provider)
