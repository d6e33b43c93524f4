# config/settings/test.py

from .base import *

# === TESTES ===

DEBUG = False

SECRET_KEY = 'test-secret-key-not-for-production'

ALLOWED_HOSTS = ['testserver', 'localhost']

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'tracker-test-cache',
    }
}

STORAGES['staticfiles'] = {
    'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
}

# Hash rápido: os testes criam identidades o tempo todo
PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

# Controle de acesso com valores fixos
ADMIN_PASSWORD = 's3cret'
PRIMARY_ADMIN_EMAIL = 'alice@x.com'
ALLOWED_USERS = '[]'
SESSION_TOKEN_MAX_AGE = 60 * 60
SESSION_COOKIE_SECURE = False

# Sem arquivo de log em testes
LOGGING['handlers'].pop('file')
LOGGING['root']['handlers'] = ['console']
LOGGING['loggers']['django']['handlers'] = ['console']
LOGGING['loggers']['apps']['handlers'] = ['console']
LOGGING['handlers']['console']['level'] = 'WARNING'
