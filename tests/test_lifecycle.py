"""
Tests for the lifecycle coordinator: reconciliation, role changes,
cascading deletes, allow-list administration and project/task mutations.
"""
from unittest.mock import patch

import pytest
from django.db import DatabaseError

from apps.core.exceptions import (
    AccessDenied, DuplicateEntry, NotFound, PartialCascadeFailure, ValidationError,
)
from apps.core.models import AllowedUser, Project, Role, Task, User
from apps.core.permissions import DenyReason


@pytest.mark.django_db
class TestLoginReconcile:

    def test_reconcile_is_idempotent(self, coordinator):
        first = coordinator.login_reconcile('bob@x.com', Role.MEMBER)
        second = coordinator.login_reconcile('bob@x.com', Role.MEMBER)

        assert first.pk == second.pk
        assert second.updated_at == first.updated_at
        assert User.objects.filter(email='bob@x.com').count() == 1

    def test_reconcile_aligns_role(self, coordinator, bob):
        identity = coordinator.login_reconcile('bob@x.com', Role.ADMIN)
        assert identity.role == Role.ADMIN

    def test_primary_admin_always_reconciles_to_admin(self, coordinator):
        identity = coordinator.login_reconcile('ALICE@x.com', Role.MEMBER)
        assert identity.role == Role.ADMIN


@pytest.mark.django_db
class TestChangeRole:

    def test_admin_promotes_member(self, coordinator, eve, bob):
        updated = coordinator.change_role(eve, bob.pk, Role.ADMIN)

        assert updated.role == Role.ADMIN
        # A allow-list não muda junto
        assert AllowedUser.objects.get(email='bob@x.com').role == Role.MEMBER

    def test_primary_admin_cannot_be_demoted(self, coordinator, alice, eve):
        with pytest.raises(AccessDenied) as exc_info:
            coordinator.change_role(eve, alice.pk, Role.MEMBER)

        assert exc_info.value.reason == DenyReason.PROTECTED_ACCOUNT
        alice.refresh_from_db()
        assert alice.role == Role.ADMIN

    def test_admin_cannot_change_own_role(self, coordinator, eve):
        with pytest.raises(AccessDenied) as exc_info:
            coordinator.change_role(eve, eve.pk, Role.MEMBER)

        assert exc_info.value.reason == DenyReason.CANNOT_MODIFY_SELF

    def test_member_cannot_change_roles(self, coordinator, bob, carol):
        with pytest.raises(AccessDenied):
            coordinator.change_role(bob, carol.pk, Role.ADMIN)

    def test_missing_target_is_not_found(self, coordinator, eve):
        with pytest.raises(NotFound):
            coordinator.change_role(eve, 9999, Role.ADMIN)

    def test_invalid_role_is_rejected(self, coordinator, eve, bob):
        with pytest.raises(ValidationError):
            coordinator.change_role(eve, bob.pk, 'ROOT')

    def test_change_role_after_delete_is_not_found(self, coordinator, eve, bob):
        """The loser of a role-change/delete race sees the target gone."""
        bob_pk = bob.pk
        coordinator.delete_identity(eve, bob_pk)

        with pytest.raises(NotFound):
            coordinator.change_role(eve, bob_pk, Role.ADMIN)


@pytest.mark.django_db
class TestDeleteIdentity:

    def test_cascade_is_complete(self, coordinator, eve, bob, carol):
        project = Project.objects.create(name='Bob P', owner=bob)
        Task.objects.create(title='a', project=project, created_by=bob)
        Task.objects.create(title='b', project=project, created_by=carol)

        counts = coordinator.delete_identity(eve, bob.pk)

        assert counts['tasks'] == 2
        assert counts['projects'] == 1
        assert not Project.objects.filter(owner_id=bob.pk).exists()
        assert not Task.objects.filter(project_id=project.pk).exists()
        assert not Task.objects.filter(created_by_id=bob.pk).exists()
        assert not AllowedUser.objects.filter(email='bob@x.com').exists()

    def test_admin_cannot_delete_self(self, coordinator, eve):
        with pytest.raises(AccessDenied) as exc_info:
            coordinator.delete_identity(eve, eve.pk)

        assert exc_info.value.reason == DenyReason.CANNOT_DELETE_SELF

    def test_primary_admin_cannot_be_deleted(self, coordinator, alice, eve):
        with pytest.raises(AccessDenied) as exc_info:
            coordinator.delete_identity(eve, alice.pk)

        assert exc_info.value.reason == DenyReason.PROTECTED_ACCOUNT
        assert User.objects.filter(pk=alice.pk).exists()


@pytest.mark.django_db
class TestAllowListAdministration:

    def test_add_materializes_identity(self, coordinator, eve):
        entry = coordinator.add_allowed_user(eve, 'New@x.com', Role.MEMBER)

        assert entry.email == 'new@x.com'
        assert User.objects.get(email='new@x.com').role == Role.MEMBER

    def test_add_email_longer_than_150_characters(self, coordinator, eve):
        email = 'a' * 60 + '@' + 'b' * 60 + '.' + 'c' * 60 + '.com'

        coordinator.add_allowed_user(eve, email, Role.MEMBER)

        identity = User.objects.get(email=email)
        identity.full_clean()
        assert identity.get_username() == email

    def test_add_duplicate_is_rejected(self, coordinator, eve, bob):
        with pytest.raises(DuplicateEntry):
            coordinator.add_allowed_user(eve, 'bob@x.com', Role.ADMIN)

    def test_member_cannot_add(self, coordinator, bob):
        with pytest.raises(AccessDenied):
            coordinator.add_allowed_user(bob, 'new@x.com', Role.MEMBER)

        assert not AllowedUser.objects.filter(email='new@x.com').exists()

    def test_update_changes_allow_list_role(self, coordinator, eve, bob):
        entry = coordinator.update_allowed_user(eve, 'bob@x.com', Role.ADMIN)
        assert entry.role == Role.ADMIN

    def test_primary_admin_entry_cannot_be_demoted(self, coordinator, alice, eve):
        with pytest.raises(AccessDenied) as exc_info:
            coordinator.update_allowed_user(eve, 'alice@x.com', Role.MEMBER)

        assert exc_info.value.reason == DenyReason.PROTECTED_ACCOUNT

    def test_update_missing_entry_is_not_found(self, coordinator, eve):
        with pytest.raises(NotFound):
            coordinator.update_allowed_user(eve, 'ghost@x.com', Role.ADMIN)

    def test_primary_admin_cannot_delete_own_entry(self, coordinator, alice):
        with pytest.raises(AccessDenied) as exc_info:
            coordinator.delete_allow_list_entry(alice, 'alice@x.com')

        assert exc_info.value.reason == DenyReason.PROTECTED_ACCOUNT
        assert AllowedUser.objects.filter(email='alice@x.com').exists()

    def test_admin_removes_member_and_everything_owned(self, coordinator, eve, bob):
        """Two projects with five tasks go away with bob."""
        first = Project.objects.create(name='P1', owner=bob)
        second = Project.objects.create(name='P2', owner=bob)
        for i in range(3):
            Task.objects.create(title=f'p1-{i}', project=first, created_by=bob)
        for i in range(2):
            Task.objects.create(title=f'p2-{i}', project=second, created_by=bob)

        counts = coordinator.delete_allow_list_entry(eve, 'bob@x.com')

        assert counts == {'tasks': 5, 'projects': 2, 'identities': 1, 'allowed_users': 1}
        assert Task.objects.count() == 0
        assert Project.objects.count() == 0
        assert not User.objects.filter(email='bob@x.com').exists()
        assert not AllowedUser.objects.filter(email='bob@x.com').exists()

    def test_member_cannot_remove_entries(self, coordinator, bob, carol):
        with pytest.raises(AccessDenied):
            coordinator.delete_allow_list_entry(bob, 'carol@x.com')

    def test_remove_missing_entry_is_not_found(self, coordinator, eve):
        with pytest.raises(NotFound):
            coordinator.delete_allow_list_entry(eve, 'ghost@x.com')

    def test_list_requires_admin(self, coordinator, eve, bob):
        assert {e.email for e in coordinator.list_allowed_users(eve)} == {'eve@x.com', 'bob@x.com'}

        with pytest.raises(AccessDenied):
            coordinator.list_allowed_users(bob)


@pytest.mark.django_db
class TestProjects:

    def test_member_creates_and_owns_project(self, coordinator, bob):
        project = coordinator.create_project(bob, {'name': 'Mine', 'due_date': '2025-01-31'})

        assert project.owner == bob
        assert project.status == Project.Status.ACTIVE
        assert str(project.due_date) == '2025-01-31'

    def test_project_requires_name(self, coordinator, bob):
        with pytest.raises(ValidationError):
            coordinator.create_project(bob, {'description': 'no name'})

    def test_non_owner_member_cannot_update(self, coordinator, alice, bob):
        project = coordinator.create_project(alice, {'name': 'P1'})

        with pytest.raises(AccessDenied) as exc_info:
            coordinator.update_project(bob, project.pk, {'name': 'hijacked'})

        assert exc_info.value.reason == DenyReason.NOT_OWNER

    def test_admin_updates_any_project(self, coordinator, alice, bob):
        project = coordinator.create_project(bob, {'name': 'P1'})

        updated = coordinator.update_project(alice, project.pk, {'status': 'ON_HOLD'})

        assert updated.status == Project.Status.ON_HOLD

    def test_invalid_status_is_rejected(self, coordinator, bob):
        project = coordinator.create_project(bob, {'name': 'P1'})

        with pytest.raises(ValidationError):
            coordinator.update_project(bob, project.pk, {'status': 'DONE'})

    def test_missing_project_is_not_found(self, coordinator, bob):
        with pytest.raises(NotFound):
            coordinator.get_project(bob, 9999)

    def test_delete_project_removes_tasks(self, coordinator, carol, carol_project, bob_task):
        counts = coordinator.delete_project(carol, carol_project.pk)

        assert counts == {'projects': 1, 'tasks': 1}
        assert not Task.objects.filter(pk=bob_task.pk).exists()

    def test_delete_project_failure_keeps_tasks(self, coordinator, carol, carol_project, bob_task):
        with patch.object(Project.objects, 'filter', side_effect=DatabaseError('boom')):
            with pytest.raises(PartialCascadeFailure):
                coordinator.delete_project(carol, carol_project.pk)

        assert Task.objects.filter(pk=bob_task.pk).exists()

    def test_list_projects_scoped_to_owner(self, coordinator, alice, bob, carol_project):
        mine = coordinator.create_project(bob, {'name': 'Mine'})

        assert coordinator.list_projects(bob) == [mine]
        assert set(coordinator.list_projects(alice)) == {mine, carol_project}

    def test_deleted_actor_cannot_create(self, coordinator, eve, bob):
        coordinator.delete_identity(eve, bob.pk)

        with pytest.raises(NotFound):
            coordinator.create_project(bob, {'name': 'orphan'})


@pytest.mark.django_db
class TestTasks:

    def test_member_cannot_create_task_in_foreign_project(self, coordinator, bob, carol_project):
        with pytest.raises(AccessDenied) as exc_info:
            coordinator.create_task(bob, carol_project.pk, {'title': 'T1'})

        assert exc_info.value.reason == DenyReason.NOT_PROJECT_OWNER

    def test_owner_creates_task_with_assignee(self, coordinator, carol, dave, carol_project):
        task = coordinator.create_task(
            carol, carol_project.pk, {'title': 'T2', 'assignee_id': dave.pk}
        )

        assert task.created_by == carol
        assert task.assignee == dave
        assert task.status == Task.Status.TODO

    def test_assignee_updates_but_cannot_delete(self, coordinator, carol, dave, bob_task):
        """bob created T1 in carol's project; carol hands it to dave."""
        coordinator.assign_task(carol, bob_task.pk, dave.pk)

        updated = coordinator.update_task(dave, bob_task.pk, {'status': 'IN_PROGRESS'})
        assert updated.status == Task.Status.IN_PROGRESS

        with pytest.raises(AccessDenied) as exc_info:
            coordinator.delete_task(dave, bob_task.pk)

        assert exc_info.value.reason == DenyReason.NOT_AUTHORIZED_FOR_TASK
        assert Task.objects.filter(pk=bob_task.pk).exists()

    def test_creator_cannot_reassign(self, coordinator, bob, dave, bob_task):
        with pytest.raises(AccessDenied):
            coordinator.update_task(bob, bob_task.pk, {'assignee_id': dave.pk})

    def test_unassign(self, coordinator, carol, dave, bob_task):
        coordinator.assign_task(carol, bob_task.pk, dave.pk)

        task = coordinator.assign_task(carol, bob_task.pk, None)

        assert task.assignee is None

    def test_assign_unknown_identity_is_not_found(self, coordinator, carol, bob_task):
        with pytest.raises(NotFound):
            coordinator.assign_task(carol, bob_task.pk, 9999)

    def test_creator_deletes_own_task(self, coordinator, bob, bob_task):
        coordinator.delete_task(bob, bob_task.pk)
        assert not Task.objects.filter(pk=bob_task.pk).exists()

    def test_unrelated_member_cannot_read(self, coordinator, dave, bob_task):
        with pytest.raises(AccessDenied):
            coordinator.get_task(dave, bob_task.pk)

    def test_missing_task_is_not_found(self, coordinator, carol):
        with pytest.raises(NotFound):
            coordinator.update_task(carol, 9999, {'status': 'COMPLETED'})

    def test_admin_lists_every_task(self, coordinator, alice, bob_task):
        other = Project.objects.create(name='Other', owner=alice)
        task = Task.objects.create(title='T9', project=other, created_by=alice)

        assert set(coordinator.list_tasks(alice)) == {bob_task, task}

    def test_member_lists_created_assigned_and_owned(self, coordinator, alice, bob, carol, dave,
                                                     carol_project, bob_task):
        assigned = Task.objects.create(
            title='T2', project=carol_project, created_by=carol, assignee=dave
        )
        hidden = Task.objects.create(
            title='T3', project=Project.objects.create(name='A', owner=alice), created_by=alice
        )

        assert coordinator.list_tasks(bob) == [bob_task]
        assert coordinator.list_tasks(dave) == [assigned]
        assert set(coordinator.list_tasks(carol)) == {bob_task, assigned}
        assert hidden not in coordinator.list_tasks(carol)

    def test_list_tasks_filters_by_project(self, coordinator, alice, carol, carol_project, bob_task):
        other = Project.objects.create(name='Other', owner=carol)
        Task.objects.create(title='T9', project=other, created_by=carol)

        assert coordinator.list_tasks(carol, carol_project.pk) == [bob_task]
        assert coordinator.list_tasks(alice, carol_project.pk) == [bob_task]

    def test_list_tasks_of_missing_project_is_not_found(self, coordinator, carol):
        with pytest.raises(NotFound):
            coordinator.list_tasks(carol, 9999)


@pytest.mark.django_db
class TestProfile:

    def test_member_renames_self(self, coordinator, bob):
        updated = coordinator.update_profile(bob, {'display_name': '  Bob B.  '})

        assert updated.display_name == 'Bob B.'
        bob.refresh_from_db()
        assert bob.display_name == 'Bob B.'

    def test_role_and_email_are_untouched(self, coordinator, bob):
        coordinator.update_profile(bob, {'display_name': 'Bob', 'role': Role.ADMIN})

        bob.refresh_from_db()
        assert bob.role == Role.MEMBER
        assert bob.email == 'bob@x.com'

    @pytest.mark.parametrize('name', [None, '', '   ', 42])
    def test_blank_name_is_rejected(self, coordinator, bob, name):
        with pytest.raises(ValidationError):
            coordinator.update_profile(bob, {'display_name': name})

    def test_too_long_name_is_rejected(self, coordinator, bob):
        with pytest.raises(ValidationError):
            coordinator.update_profile(bob, {'display_name': 'x' * 151})

    def test_deleted_identity_cannot_rename(self, coordinator, eve, bob):
        coordinator.delete_identity(eve, bob.pk)

        with pytest.raises(NotFound):
            coordinator.update_profile(bob, {'display_name': 'Ghost'})
