"""
Pytest configuration and fixtures for the access-control core.

Settings come from ``config.settings.test`` (see pyproject.toml):
shared secret ``s3cret`` and primary admin ``alice@x.com``.
"""
import json

import pytest

from apps.core.auth_service import AuthenticationService
from apps.core.config import StaticConfigurationProvider
from apps.core.lifecycle import LifecycleCoordinator
from apps.core.models import AllowedUser, Project, Role, Task
from apps.core.permissions import AuthorizationEngine
from apps.core.store import IdentityStore

SECRET = 's3cret'
PRIMARY_ADMIN = 'alice@x.com'


@pytest.fixture
def provider():
    """Fixed configuration, same values as the test settings."""
    return StaticConfigurationProvider(
        admin_password=SECRET,
        primary_admin_email=PRIMARY_ADMIN,
        session_max_age=3600,
    )


@pytest.fixture
def store():
    return IdentityStore()


@pytest.fixture
def engine():
    return AuthorizationEngine(PRIMARY_ADMIN)


@pytest.fixture
def coordinator(store, engine, provider):
    return LifecycleCoordinator(store=store, engine=engine, provider=provider)


@pytest.fixture
def auth(provider, store, coordinator):
    return AuthenticationService(provider=provider, store=store, coordinator=coordinator)


@pytest.fixture
def make_user(db, store):
    """Allow-list an email and materialize its identity."""
    def _make(email, role=Role.MEMBER):
        AllowedUser.objects.create(email=email, role=role)
        return store.create_identity(email, role)
    return _make


@pytest.fixture
def alice(make_user):
    """The primary admin."""
    return make_user(PRIMARY_ADMIN, Role.ADMIN)


@pytest.fixture
def eve(make_user):
    """A non-primary admin."""
    return make_user('eve@x.com', Role.ADMIN)


@pytest.fixture
def bob(make_user):
    return make_user('bob@x.com')


@pytest.fixture
def carol(make_user):
    return make_user('carol@x.com')


@pytest.fixture
def dave(make_user):
    return make_user('dave@x.com')


@pytest.fixture
def carol_project(carol):
    return Project.objects.create(name='Carol Project', owner=carol)


@pytest.fixture
def bob_task(bob, carol_project):
    """Task created by bob inside carol's project."""
    return Task.objects.create(title='T1', project=carol_project, created_by=bob)


@pytest.fixture
def client():
    """Django test client."""
    from django.test import Client
    return Client()


@pytest.fixture
def login(client):
    """Log in through the API and keep the session cookie on the client."""
    def _login(email, password=SECRET):
        return client.post(
            '/api/auth/login/',
            data=json.dumps({'email': email, 'password': password}),
            content_type='application/json'
        )
    return _login
