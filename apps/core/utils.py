# apps/core/utils.py

import json
from typing import Dict, Optional

from .exceptions import ValidationError


def parse_json_body(request) -> Dict:
    """
    Lê o corpo JSON da requisição

    Corpo vazio vira ``{}``; qualquer coisa que não seja um objeto JSON é
    rejeitada com ``ValidationError``.
    """
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (ValueError, UnicodeDecodeError):
        raise ValidationError('Invalid JSON body')
    if not isinstance(data, dict):
        raise ValidationError('JSON body must be an object')
    return data


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


# === SERIALIZAÇÃO ===

def serialize_user(user) -> Dict:
    return {
        'id': user.pk,
        'email': user.email,
        'name': user.display_name,
        'role': user.role,
        'created_at': _iso(user.created_at),
        'updated_at': _iso(user.updated_at),
    }


def serialize_allowed_user(entry) -> Dict:
    return {
        'id': entry.pk,
        'email': entry.email,
        'role': entry.role,
        'created_at': _iso(entry.created_at),
    }


def serialize_project(project) -> Dict:
    return {
        'id': project.pk,
        'name': project.name,
        'description': project.description,
        'status': project.status,
        'start_date': _iso(project.start_date),
        'due_date': _iso(project.due_date),
        'owner_id': project.owner_id,
        'created_at': _iso(project.created_at),
        'updated_at': _iso(project.updated_at),
    }


def serialize_task(task) -> Dict:
    """Tarefa com os três vínculos explícitos: projeto, criador e responsável"""
    return {
        'id': task.pk,
        'title': task.title,
        'description': task.description,
        'status': task.status,
        'due_date': _iso(task.due_date),
        'project_id': task.project_id,
        'created_by_id': task.created_by_id,
        'assignee_id': task.assignee_id,
        'created_at': _iso(task.created_at),
        'updated_at': _iso(task.updated_at),
    }
