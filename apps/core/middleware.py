# apps/core/middleware.py

import logging

from django.http import JsonResponse

from .exceptions import ConfigurationError, CoreError, StoreError

logger = logging.getLogger(__name__)


class ApiErrorMiddleware:
    """
    Middleware que traduz os erros do núcleo em respostas JSON

    As views não tratam ``CoreError``: deixam subir até aqui, onde cada erro
    vira ``{"error": code, "message": ...}`` com o status HTTP do próprio erro.
    Exceções que não são do núcleo seguem o tratamento padrão do Django.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if not isinstance(exception, CoreError):
            return None  # Deixar o Django lidar com isso

        if isinstance(exception, ConfigurationError):
            # Erro de operação, não de credencial: precisa aparecer no log
            logger.error(f"Erro de configuração em {request.path}: {exception.message}")
        elif isinstance(exception, StoreError):
            logger.error(
                f"Erro de armazenamento em {request.method} {request.path}: {exception.message}",
                exc_info=exception,
            )

        return JsonResponse(exception.as_dict(), status=exception.status_code)
