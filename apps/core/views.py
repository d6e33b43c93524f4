# apps/core/views.py

"""
Rotas JSON do núcleo

As views só traduzem HTTP <-> chamadas do núcleo. Autenticação, regras de
acesso e cascatas ficam nos serviços; erros do núcleo sobem até o
``ApiErrorMiddleware``, que monta a resposta.
"""

import logging

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError
from django.http import JsonResponse
from django.middleware.csrf import get_token
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from .auth_service import SESSION_COOKIE_NAME, auth_service, token_from_request
from .config import get_provider
from .exceptions import ConfigurationError, ValidationError
from .lifecycle import get_coordinator
from .models import AllowedUser, Role
from .permissions import enforce_cookie_csrf, session_required
from .utils import (
    parse_json_body, serialize_allowed_user, serialize_project, serialize_task,
    serialize_user,
)

logger = logging.getLogger(__name__)


# === AUTENTICAÇÃO ===

@csrf_exempt
@require_http_methods(["POST"])
def login_view(request):
    """
    Login com email + segredo compartilhado

    O token volta no corpo (para clientes com ``Authorization: Bearer``) e
    também num cookie HttpOnly. Quem usa o cookie precisa mandar o
    ``csrf_token`` no header ``X-CSRFToken`` nas requisições que alteram dados.
    """
    data = parse_json_body(request)
    result = auth_service.login(data.get('email'), data.get('password'))

    response = JsonResponse({
        'success': True,
        'user': serialize_user(result.identity),
        'token': result.session_token,
        'csrf_token': get_token(request),
    })
    response.set_cookie(
        SESSION_COOKIE_NAME,
        result.session_token,
        max_age=auth_service.provider.session_max_age(),
        httponly=True,
        samesite='Lax',
        secure=settings.SESSION_COOKIE_SECURE,
    )
    return response


@csrf_exempt
@require_http_methods(["POST"])
def logout_view(request):
    enforce_cookie_csrf(request)
    auth_service.logout(token_from_request(request))

    response = JsonResponse({'success': True})
    response.delete_cookie(SESSION_COOKIE_NAME, samesite='Lax')
    return response


@csrf_exempt
@require_http_methods(["GET", "PATCH"])
@session_required
def me_view(request):
    """GET devolve a identidade da sessão; PATCH troca o nome de exibição"""
    if request.method == 'GET':
        return JsonResponse({'user': serialize_user(request.identity)})

    data = parse_json_body(request)
    user = get_coordinator().update_profile(request.identity, {'display_name': data.get('name')})
    return JsonResponse({'user': serialize_user(user)})


# === ADMINISTRAÇÃO ===

@csrf_exempt
@require_http_methods(["GET", "POST", "PATCH", "DELETE"])
@session_required
def allowed_users_view(request):
    """
    Gerencia a allow-list

    GET lista, POST adiciona, PATCH troca o papel e DELETE remove (com a
    identidade e tudo que ela possui). O email vem no corpo JSON; no DELETE
    também é aceito como ``?email=``.
    """
    coordinator = get_coordinator()
    actor = request.identity

    if request.method == 'GET':
        entries = coordinator.list_allowed_users(actor)
        return JsonResponse({'allowed_users': [serialize_allowed_user(e) for e in entries]})

    data = parse_json_body(request)

    if request.method == 'POST':
        entry = coordinator.add_allowed_user(
            actor, data.get('email'), data.get('role', Role.MEMBER)
        )
        return JsonResponse({'allowed_user': serialize_allowed_user(entry)}, status=201)

    if request.method == 'PATCH':
        entry = coordinator.update_allowed_user(actor, _required(data, 'email'), data.get('role'))
        return JsonResponse({'allowed_user': serialize_allowed_user(entry)})

    email = data.get('email') or request.GET.get('email')
    if not email:
        raise ValidationError('Email is required')
    deleted = coordinator.delete_allow_list_entry(actor, email)
    return JsonResponse({'success': True, 'deleted': deleted})


@require_http_methods(["GET"])
@session_required
def users_view(request):
    users = get_coordinator().list_identities(request.identity)
    return JsonResponse({'users': [serialize_user(u) for u in users]})


@csrf_exempt
@require_http_methods(["GET", "PATCH", "DELETE"])
@session_required
def user_detail_view(request, user_id):
    coordinator = get_coordinator()
    actor = request.identity

    if request.method == 'GET':
        user = coordinator.get_identity(actor, user_id)
        return JsonResponse({'user': serialize_user(user)})

    if request.method == 'PATCH':
        data = parse_json_body(request)
        user = coordinator.change_role(actor, user_id, data.get('role'))
        return JsonResponse({'user': serialize_user(user)})

    deleted = coordinator.delete_identity(actor, user_id)
    return JsonResponse({'success': True, 'deleted': deleted})


# === PROJETOS ===

@csrf_exempt
@require_http_methods(["GET", "POST"])
@session_required
def projects_view(request):
    coordinator = get_coordinator()

    if request.method == 'GET':
        projects = coordinator.list_projects(request.identity)
        return JsonResponse({'projects': [serialize_project(p) for p in projects]})

    project = coordinator.create_project(request.identity, parse_json_body(request))
    return JsonResponse({'project': serialize_project(project)}, status=201)


@csrf_exempt
@require_http_methods(["GET", "PATCH", "DELETE"])
@session_required
def project_detail_view(request, project_id):
    coordinator = get_coordinator()
    actor = request.identity

    if request.method == 'GET':
        project = coordinator.get_project(actor, project_id)
        return JsonResponse({'project': serialize_project(project)})

    if request.method == 'PATCH':
        project = coordinator.update_project(actor, project_id, parse_json_body(request))
        return JsonResponse({'project': serialize_project(project)})

    deleted = coordinator.delete_project(actor, project_id)
    return JsonResponse({'success': True, 'deleted': deleted})


# === TAREFAS ===

@csrf_exempt
@require_http_methods(["GET", "POST"])
@session_required
def tasks_view(request):
    """
    GET lista as tarefas visíveis (``?project_id=`` filtra por projeto), POST cria
    """
    coordinator = get_coordinator()

    if request.method == 'GET':
        tasks = coordinator.list_tasks(request.identity, request.GET.get('project_id'))
        return JsonResponse({'tasks': [serialize_task(t) for t in tasks]})

    data = parse_json_body(request)
    task = coordinator.create_task(request.identity, _required(data, 'project_id'), data)
    return JsonResponse({'task': serialize_task(task)}, status=201)


@csrf_exempt
@require_http_methods(["GET", "PATCH", "DELETE"])
@session_required
def task_detail_view(request, task_id):
    coordinator = get_coordinator()
    actor = request.identity

    if request.method == 'GET':
        task = coordinator.get_task(actor, task_id)
        return JsonResponse({'task': serialize_task(task)})

    if request.method == 'PATCH':
        task = coordinator.update_task(actor, task_id, parse_json_body(request))
        return JsonResponse({'task': serialize_task(task)})

    coordinator.delete_task(actor, task_id)
    return JsonResponse({'success': True})


# === MONITORAMENTO ===

@require_http_methods(["GET"])
def health_check(request):
    """
    Health check para monitoramento

    Informa se a configuração está completa, nunca os valores.
    """
    provider = get_provider()
    status = {
        'status': 'healthy',
        'timestamp': timezone.now().isoformat(),
        'config': {
            'admin_password': _is_configured(provider.admin_password),
            'primary_admin_email': _is_configured(provider.primary_admin_email),
        },
    }

    try:
        status['allowed_users'] = AllowedUser.objects.count()
        status['database'] = 'ok'

        cache.set('health_check', 'ok', 60)
        cache.get('health_check')
        status['cache'] = 'ok'
    except DatabaseError as e:
        logger.error(f"Health check falhou: {e}")
        status.update({'status': 'unhealthy', 'database': 'error'})
        return JsonResponse(status, status=503)

    if not all(status['config'].values()):
        status['status'] = 'misconfigured'
    return JsonResponse(status)


# =================== MÉTODOS PRIVADOS ===================

def _required(data, field):
    value = data.get(field)
    if value in (None, ''):
        raise ValidationError(f"{field} is required")
    return value


def _is_configured(getter) -> bool:
    try:
        getter()
    except ConfigurationError:
        return False
    return True
