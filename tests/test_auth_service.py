"""
Tests for login, session resolution and logout.
"""
from unittest.mock import patch

import pytest
from django.core import signing
from django.db import DatabaseError

from apps.core.auth_service import SESSION_SALT, AuthenticationService
from apps.core.config import StaticConfigurationProvider
from apps.core.exceptions import (
    ConfigurationError, InvalidCredentials, NotAuthorized, StoreError, Unauthenticated,
    ValidationError,
)
from apps.core.models import AllowedUser, Role, User


@pytest.mark.django_db
class TestLogin:

    def test_first_login_materializes_admin_identity(self, auth):
        """Allow-listed primary admin gets an ADMIN identity on first login."""
        AllowedUser.objects.create(email='alice@x.com', role=Role.ADMIN)

        result = auth.login('alice@x.com', 's3cret')

        assert result.identity.email == 'alice@x.com'
        assert result.identity.role == Role.ADMIN
        assert User.objects.filter(email='alice@x.com').count() == 1
        assert result.session_token

    def test_email_outside_allow_list_is_not_authorized(self, auth):
        AllowedUser.objects.create(email='alice@x.com', role=Role.ADMIN)

        with pytest.raises(NotAuthorized):
            auth.login('bob@x.com', 's3cret')

        assert not User.objects.filter(email='bob@x.com').exists()

    def test_wrong_secret_is_invalid_credentials(self, auth, bob):
        with pytest.raises(InvalidCredentials):
            auth.login('bob@x.com', 'wrong')

    def test_login_is_case_insensitive(self, auth, bob):
        result = auth.login('  BOB@X.com ', 's3cret')
        assert result.identity.pk == bob.pk

    def test_missing_fields_fail_validation(self, auth):
        with pytest.raises(ValidationError):
            auth.login('', 's3cret')

    def test_missing_secret_is_configuration_error(self, store, coordinator):
        """A missing secret never looks like a normal bad password."""
        service = AuthenticationService(
            provider=StaticConfigurationProvider(primary_admin_email='alice@x.com'),
            store=store,
            coordinator=coordinator,
        )

        with pytest.raises(ConfigurationError):
            service.login('alice@x.com', 'anything')

    def test_primary_admin_is_forced_to_admin(self, auth):
        AllowedUser.objects.create(email='alice@x.com', role=Role.MEMBER)

        result = auth.login('alice@x.com', 's3cret')

        assert result.identity.role == Role.ADMIN

    def test_inactive_identity_cannot_log_in(self, auth, bob):
        User.objects.filter(pk=bob.pk).update(is_active=False)

        with pytest.raises(NotAuthorized):
            auth.login('bob@x.com', 's3cret')

    def test_login_reconciles_role_from_allow_list(self, auth, bob):
        AllowedUser.objects.filter(email='bob@x.com').update(role=Role.ADMIN)

        result = auth.login('bob@x.com', 's3cret')

        assert result.identity.role == Role.ADMIN
        bob.refresh_from_db()
        assert bob.role == Role.ADMIN


@pytest.mark.django_db
class TestResolve:

    def test_resolves_live_identity(self, auth, bob):
        token = auth.login('bob@x.com', 's3cret').session_token

        identity = auth.resolve(token)

        assert identity.pk == bob.pk

    def test_resolve_returns_current_role(self, auth, bob):
        token = auth.login('bob@x.com', 's3cret').session_token
        User.objects.filter(pk=bob.pk).update(role=Role.ADMIN)

        assert auth.resolve_session(token).role == Role.ADMIN

    @pytest.mark.parametrize('token', [None, '', 'garbage', 'a:b:c'])
    def test_malformed_tokens_are_rejected(self, auth, token):
        with pytest.raises(Unauthenticated):
            auth.resolve(token)

    def test_tampered_token_is_rejected(self, auth, bob):
        token = auth.login('bob@x.com', 's3cret').session_token
        tampered = token[:-2] + ('AA' if not token.endswith('AA') else 'BB')

        with pytest.raises(Unauthenticated):
            auth.resolve(tampered)

    def test_token_signed_with_other_salt_is_rejected(self, auth, bob):
        forged = signing.dumps(
            {'uid': bob.pk, 'email': bob.email, 'role': Role.ADMIN, 'iat': 0},
            salt='other',
        )

        with pytest.raises(Unauthenticated):
            auth.resolve(forged)

    def test_expired_token_is_rejected(self, store, coordinator, bob):
        service = AuthenticationService(
            provider=StaticConfigurationProvider(
                admin_password='s3cret', primary_admin_email='alice@x.com', session_max_age=-1
            ),
            store=store,
            coordinator=coordinator,
        )
        token = service.login('bob@x.com', 's3cret').session_token

        with pytest.raises(Unauthenticated):
            service.resolve(token)

    def test_removed_from_allow_list_fails_closed(self, auth, bob):
        token = auth.login('bob@x.com', 's3cret').session_token
        AllowedUser.objects.filter(email='bob@x.com').delete()

        with pytest.raises(Unauthenticated):
            auth.resolve(token)

    def test_recreated_identity_does_not_inherit_old_token(self, auth, store, bob):
        token = auth.login('bob@x.com', 's3cret').session_token
        User.objects.filter(pk=bob.pk).delete()
        store.create_identity('bob@x.com', Role.MEMBER)

        with pytest.raises(Unauthenticated):
            auth.resolve(token)

    def test_deactivated_identity_is_rejected(self, auth, bob):
        token = auth.login('bob@x.com', 's3cret').session_token
        User.objects.filter(pk=bob.pk).update(is_active=False)

        with pytest.raises(Unauthenticated):
            auth.resolve(token)

    def test_payload_is_signed_with_session_salt(self, auth, bob):
        token = auth.login('bob@x.com', 's3cret').session_token

        payload = signing.loads(token, salt=SESSION_SALT)

        assert payload['uid'] == bob.pk
        assert payload['email'] == 'bob@x.com'
        assert payload['role'] == Role.MEMBER


@pytest.mark.django_db
class TestLogout:

    def test_logout_revokes_token(self, auth, bob):
        token = auth.login('bob@x.com', 's3cret').session_token

        auth.logout(token)

        with pytest.raises(Unauthenticated):
            auth.resolve(token)

    def test_new_login_after_logout_works(self, auth, bob):
        auth.logout(auth.login('bob@x.com', 's3cret').session_token)

        token = auth.login('bob@x.com', 's3cret').session_token

        assert auth.resolve(token).pk == bob.pk

    def test_logout_with_invalid_token_is_noop(self, auth):
        auth.logout('garbage')
        auth.logout(None)

    def test_logout_revokes_only_that_token(self, auth, bob):
        first = auth.login('bob@x.com', 's3cret').session_token
        second = auth.login('bob@x.com', 's3cret').session_token

        auth.logout(first)

        with pytest.raises(Unauthenticated):
            auth.resolve(first)
        assert auth.resolve(second).pk == bob.pk

    def test_tokens_carry_distinct_ids(self, auth, bob):
        first = auth.login('bob@x.com', 's3cret').session_token
        second = auth.login('bob@x.com', 's3cret').session_token

        assert signing.loads(first, salt=SESSION_SALT)['jti'] != signing.loads(second, salt=SESSION_SALT)['jti']

    def test_logout_store_failure_is_store_error(self, auth, bob):
        token = auth.login('bob@x.com', 's3cret').session_token

        with patch.object(auth.store, 'find_identity', side_effect=DatabaseError('down')):
            with pytest.raises(StoreError):
                auth.logout(token)
