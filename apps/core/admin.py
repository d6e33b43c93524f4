# apps/core/admin.py

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.db.models import Count
from django.utils.html import format_html

from .models import AllowedUser, Project, Role, Task, User

ROLE_COLORS = {
    Role.ADMIN: '#EF4444',  # vermelho
    Role.MEMBER: '#3B82F6',  # azul
}


def role_badge(obj):
    """Exibe o papel com badge colorido"""
    cor = ROLE_COLORS.get(obj.role, '#6B7280')
    return format_html(
        '<span style="background-color: {}; color: white; '
        'padding: 3px 8px; border-radius: 4px; font-size: 11px;">{}</span>',
        cor, obj.get_role_display()
    )


role_badge.short_description = 'Papel'


@admin.register(AllowedUser)
class AllowedUserAdmin(admin.ModelAdmin):
    """
    Allow-list no admin

    Somente leitura: incluir, trocar o papel ou remover um email mexe na
    identidade e em tudo que ela possui, e isso só acontece pelo coordenador
    (API ou comandos).
    """

    list_display = ['email', role_badge, 'created_at']
    list_filter = ['role']
    search_fields = ['email']
    readonly_fields = ['email', 'role', 'created_at', 'updated_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Admin customizado para o modelo User

    Email, papel e status ativo são somente leitura: a identidade só nasce,
    muda de papel ou some pelo coordenador. Aqui dá para ajustar o nome e o
    acesso ao próprio admin.
    """

    list_display = ['email', 'display_name', role_badge, 'projects_count', 'created_at']
    list_filter = ['role', 'is_staff', 'is_active']
    search_fields = ['email', 'display_name']
    ordering = ['email']
    readonly_fields = ['email', 'role', 'is_active', 'last_login', 'created_at', 'updated_at']

    fieldsets = (
        (None, {'fields': ('email', 'display_name')}),
        ('Controle de acesso', {'fields': ('role', 'is_active')}),
        ('Acesso ao admin', {'fields': ('is_staff', 'is_superuser', 'groups')}),
        ('Datas', {'fields': ('last_login', 'created_at', 'updated_at')}),
    )

    def get_queryset(self, request):
        return super().get_queryset(request).annotate(projects_total=Count('owned_projects'))

    def projects_count(self, obj):
        return obj.projects_total

    projects_count.short_description = 'Projetos'
    projects_count.admin_order_field = 'projects_total'

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class TaskInline(admin.TabularInline):
    model = Task
    fk_name = 'project'
    extra = 0
    fields = ['title', 'status', 'created_by', 'assignee', 'due_date']
    readonly_fields = ['created_by']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ['name', 'owner', 'status', 'tasks_count', 'due_date', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['name', 'description', 'owner__email']
    readonly_fields = ['created_at', 'updated_at']
    raw_id_fields = ['owner']
    inlines = [TaskInline]

    def get_queryset(self, request):
        return super().get_queryset(request).annotate(tasks_total=Count('tasks'))

    def tasks_count(self, obj):
        return obj.tasks_total

    tasks_count.short_description = 'Tarefas'
    tasks_count.admin_order_field = 'tasks_total'


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    list_display = ['title', 'project', 'status', 'created_by', 'assignee', 'due_date']
    list_filter = ['status', 'created_at']
    search_fields = ['title', 'description', 'project__name']
    readonly_fields = ['created_at', 'updated_at']
    raw_id_fields = ['project', 'created_by', 'assignee']
    list_select_related = ['project', 'created_by', 'assignee']


# Customização do Admin Site
admin.site.site_header = 'Administração - Projetos e Tarefas'
admin.site.site_title = 'Projetos e Tarefas'
admin.site.index_title = 'Painel Administrativo'
