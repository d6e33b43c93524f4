# apps/core/models.py

from django.contrib.auth.base_user import BaseUserManager
from django.contrib.auth.models import AbstractUser
from django.db import models


def normalize_email(email):
    """Emails são comparados sem distinção de caixa em todo o sistema"""
    return (email or '').strip().lower()


class Role(models.TextChoices):
    ADMIN = 'ADMIN', 'Administrador'
    MEMBER = 'MEMBER', 'Membro'


def default_display_name(email):
    """Parte local do email, cortada no tamanho do campo"""
    return normalize_email(email).split('@')[0][:150]


class AllowedUser(models.Model):
    """
    Entrada da allow-list

    Permissão para existir no sistema. Um email que não está aqui nunca
    obtém sessão, mesmo com a senha correta.
    """

    email = models.EmailField(unique=True)
    role = models.CharField(max_length=10, choices=Role.choices, default=Role.MEMBER)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'allowed_user'
        ordering = ['email']

    def save(self, *args, **kwargs):
        self.email = normalize_email(self.email)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.email} ({self.role})"


class UserManager(BaseUserManager):
    """Manager com o email como login (não existe username)"""

    use_in_migrations = True

    def _create_user(self, email, password, **extra_fields):
        email = normalize_email(email)
        if not email:
            raise ValueError('O email é obrigatório')
        user = self.model(email=email, **extra_fields)
        # Sem senha vira senha inutilizável: o login da API usa o segredo compartilhado
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', False)
        extra_fields.setdefault('is_superuser', False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', Role.ADMIN)
        if extra_fields['is_staff'] is not True or extra_fields['is_superuser'] is not True:
            raise ValueError('Superusuário precisa de is_staff=True e is_superuser=True')
        return self._create_user(email, password, **extra_fields)


class User(AbstractUser):
    """
    Identidade materializada

    Criada no primeiro login (papel copiado da allow-list) ou por um admin.
    O email é o campo de login; não há username.
    """

    username = None
    email = models.EmailField(unique=True)
    display_name = models.CharField(max_length=150, blank=True)
    role = models.CharField(max_length=10, choices=Role.choices, default=Role.MEMBER)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        db_table = 'app_user'
        indexes = [
            models.Index(fields=['role'], name='app_user_role_idx'),
        ]

    def save(self, *args, **kwargs):
        self.email = normalize_email(self.email)
        if not self.display_name:
            self.display_name = default_display_name(self.email)
        super().save(*args, **kwargs)

    @property
    def is_admin(self):
        return self.role == Role.ADMIN

    def __str__(self):
        return f"{self.display_name} <{self.email}>"


class Project(models.Model):
    """Projeto - sempre com exatamente um dono"""

    class Status(models.TextChoices):
        PLANNING = 'PLANNING', 'Planejamento'
        ACTIVE = 'ACTIVE', 'Ativo'
        ON_HOLD = 'ON_HOLD', 'Em espera'
        COMPLETED = 'COMPLETED', 'Concluído'
        CANCELLED = 'CANCELLED', 'Cancelado'

    name = models.CharField(max_length=200)
    description = models.TextField(blank=True, null=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    start_date = models.DateField(null=True, blank=True)
    due_date = models.DateField(null=True, blank=True)

    # PROTECT: a exclusão do dono passa pelo coordenador, que apaga os filhos antes
    owner = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='owned_projects'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'project'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['owner'], name='project_owner_idx'),
        ]

    def __str__(self):
        return self.name


class Task(models.Model):
    """Tarefa dentro de um projeto"""

    class Status(models.TextChoices):
        TODO = 'TODO', 'A fazer'
        IN_PROGRESS = 'IN_PROGRESS', 'Em progresso'
        COMPLETED = 'COMPLETED', 'Concluída'
        ON_HOLD = 'ON_HOLD', 'Em espera'

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, null=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.TODO)
    due_date = models.DateField(null=True, blank=True)

    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name='tasks'
    )
    created_by = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='created_tasks'
    )
    assignee = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_tasks'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'task'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['project', 'status'], name='task_project_status_idx'),
            models.Index(fields=['created_by'], name='task_created_by_idx'),
        ]

    def __str__(self):
        return f"{self.title} ({self.project.name})"
