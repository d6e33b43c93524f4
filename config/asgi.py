# config/asgi.py

import os
from django.core.asgi import get_asgi_application

# Configurar settings padrão
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

# Obter aplicação ASGI (apenas HTTP)
application = get_asgi_application()
