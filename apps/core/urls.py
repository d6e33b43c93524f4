# apps/core/urls.py

from django.urls import path
from . import views

app_name = 'core'

urlpatterns = [
    # === AUTENTICAÇÃO ===
    path('api/auth/login/', views.login_view, name='login'),
    path('api/auth/logout/', views.logout_view, name='logout'),
    path('api/auth/me/', views.me_view, name='me'),

    # === ADMINISTRAÇÃO ===
    # Allow-list (o email vai no corpo)
    path('api/admin/allowed-users/', views.allowed_users_view, name='allowed_users'),
    path('api/admin/users/', views.users_view, name='users'),
    path('api/admin/users/<int:user_id>/', views.user_detail_view, name='user_detail'),

    # === PROJETOS ===
    path('api/projects/', views.projects_view, name='projects'),
    path('api/projects/<int:project_id>/', views.project_detail_view, name='project_detail'),

    # === TAREFAS ===
    path('api/tasks/', views.tasks_view, name='tasks'),
    path('api/tasks/<int:task_id>/', views.task_detail_view, name='task_detail'),

    # === MONITORAMENTO ===
    path('health/', views.health_check, name='health'),
]
