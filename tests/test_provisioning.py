"""Tests for user, organization and repository provisioning."""

import asyncio

import pytest

from bitbucket2gitea.api.exceptions import APIError, ConflictError
from bitbucket2gitea.migration.exceptions import TargetCreateError, TargetLookupError
from bitbucket2gitea.migration.permissions import AggregatedPermissionTable
from bitbucket2gitea.migration.provisioning import (
    OrganizationProvisioner,
    RepositoryProvisioner,
    UserProvisioner,
    normalize_url,
)
from bitbucket2gitea.models.source import ScopeType
from bitbucket2gitea.models.target import (
    TargetOrganization,
    TargetRepository,
    TargetUser,
    Visibility,
)

CLONE_ADDR = 'https://bitbucket.example.com/scm/eng/svc.git'


class TestUserProvisioner:
    """Test idempotent user provisioning."""

    @pytest.mark.asyncio
    async def test_creates_missing_user(self, fake_target):
        provisioner = UserProvisioner(fake_target, password_factory=lambda: 's3cret')

        user = await provisioner.create_or_get_user(
            7, 'alice', 'Alice', 'Alice Liddell', 'alice@example.com'
        )

        assert user.login_name == 'alice'
        assert user.source_id == 7
        assert fake_target.users['alice'].full_name == 'Alice Liddell'
        assert provisioner.created == ['alice']

    @pytest.mark.asyncio
    async def test_existing_user_is_returned_unchanged(self, fake_target):
        fake_target.users['alice'] = TargetUser(
            id=42, login_name='alice', username='alice', full_name='Edited Name'
        )
        provisioner = UserProvisioner(fake_target)

        user = await provisioner.create_or_get_user(
            7, 'alice', 'Alice', 'Alice Liddell', 'alice@example.com'
        )

        assert user.id == 42
        assert user.full_name == 'Edited Name'
        assert 'create_user' not in fake_target.calls
        assert provisioner.created == []

    @pytest.mark.asyncio
    async def test_repeated_calls_create_once(self, fake_target):
        provisioner = UserProvisioner(fake_target)

        first = await provisioner.create_or_get_user(0, 'bob', 'Bob', 'Bob', 'b@x.io')
        second = await provisioner.create_or_get_user(0, 'bob', 'BOB', 'Bob', 'b@x.io')

        assert first.id == second.id
        assert fake_target.calls.count('create_user') == 1

    @pytest.mark.asyncio
    async def test_concurrent_calls_for_same_login_create_once(self, fake_target):
        provisioner = UserProvisioner(fake_target)

        users = await asyncio.gather(
            *[
                provisioner.create_or_get_user(0, 'carol', 'carol', 'Carol', 'c@x.io')
                for _ in range(5)
            ]
        )

        assert len({u.id for u in users}) == 1
        assert fake_target.calls.count('create_user') == 1

    @pytest.mark.asyncio
    async def test_rejects_non_canonical_login(self, fake_target):
        provisioner = UserProvisioner(fake_target)

        with pytest.raises(ValueError):
            await provisioner.create_or_get_user(0, 'Alice', 'Alice', 'A', 'a@x.io')

    @pytest.mark.asyncio
    async def test_missing_email_gets_placeholder(self, fake_target):
        provisioner = UserProvisioner(fake_target)

        user = await provisioner.create_or_get_user(0, 'dave', 'dave', 'Dave', '')

        assert user.email == 'dave@noreply.localhost'

    @pytest.mark.asyncio
    async def test_lookup_failure(self, fake_target):
        fake_target.failures['get_user'] = APIError('boom', status_code=500)
        provisioner = UserProvisioner(fake_target)

        with pytest.raises(TargetLookupError):
            await provisioner.create_or_get_user(0, 'alice', 'alice', 'A', 'a@x.io')

    @pytest.mark.asyncio
    async def test_create_failure(self, fake_target):
        fake_target.failures['create_user'] = ConflictError(
            'login name is taken', status_code=422
        )
        provisioner = UserProvisioner(fake_target)

        with pytest.raises(TargetCreateError):
            await provisioner.create_or_get_user(0, 'alice', 'alice', 'A', 'a@x.io')

    @pytest.mark.asyncio
    async def test_dry_run_does_not_create(self, fake_target):
        provisioner = UserProvisioner(fake_target, dry_run=True)

        user = await provisioner.create_or_get_user(0, 'alice', 'alice', 'A', 'a@x.io')

        assert user.id is None
        assert fake_target.users == {}
        assert provisioner.created == ['alice']


class TestOrganizationProvisioner:
    """Test organization provisioning and team permissions."""

    @pytest.mark.asyncio
    async def test_creates_public_org(self, fake_target):
        provisioner = OrganizationProvisioner(fake_target)

        org = await provisioner.create_or_get_org('ENG', 'Engineering', True)

        assert org.visibility == Visibility.PUBLIC
        assert fake_target.orgs['ENG'].description == 'Engineering'

    @pytest.mark.asyncio
    async def test_creates_private_org(self, fake_target):
        provisioner = OrganizationProvisioner(fake_target)

        org = await provisioner.create_or_get_org('OPS', '', False)

        assert org.visibility == Visibility.PRIVATE

    @pytest.mark.asyncio
    async def test_existing_org_is_not_reconciled(self, fake_target):
        fake_target.orgs['ENG'] = TargetOrganization(
            id=3, name='ENG', description='Edited', visibility=Visibility.PRIVATE
        )
        provisioner = OrganizationProvisioner(fake_target)

        org = await provisioner.create_or_get_org('ENG', 'Engineering', True)

        assert org.id == 3
        assert org.visibility == Visibility.PRIVATE
        assert org.description == 'Edited'
        assert 'create_org' not in fake_target.calls

    @pytest.mark.asyncio
    async def test_lookup_failure(self, fake_target):
        fake_target.failures['get_org'] = APIError('forbidden', status_code=403)
        provisioner = OrganizationProvisioner(fake_target)

        with pytest.raises(TargetLookupError):
            await provisioner.create_or_get_org('ENG', '', True)

    @pytest.mark.asyncio
    async def test_apply_permissions_uses_one_team_per_mode(self, fake_target):
        provisioner = OrganizationProvisioner(fake_target)
        await provisioner.create_or_get_org('ENG', '', True)
        table = AggregatedPermissionTable(
            ScopeType.PROJECT,
            {
                'PROJECT_WRITE': ['alice'],
                'PROJECT_ADMIN': ['bob', 'carol'],
                'PROJECT_CREATE': ['dave'],
            },
        )

        applied = await provisioner.apply_permissions('ENG', table)

        assert applied == 3
        assert set(fake_target.teams['ENG']) == {'bitbucket-write', 'bitbucket-admin'}
        assert fake_target.team_usernames('ENG', 'bitbucket-write') == {'alice'}
        assert fake_target.team_usernames('ENG', 'bitbucket-admin') == {'bob', 'carol'}

    @pytest.mark.asyncio
    async def test_apply_permissions_reuses_existing_team(self, fake_target):
        provisioner = OrganizationProvisioner(fake_target)
        await provisioner.create_or_get_org('ENG', '', True)
        team = await fake_target.create_team('ENG', 'bitbucket-read', 'read')
        table = AggregatedPermissionTable(ScopeType.PROJECT, {'PROJECT_READ': ['erin']})

        await provisioner.apply_permissions('ENG', table)

        assert fake_target.calls.count('create_team') == 1
        assert fake_target.team_members[team.id] == {'erin'}


class TestRepositoryProvisioner:
    """Test repository import and collaborator permissions."""

    @pytest.mark.asyncio
    async def test_migrates_repository(self, fake_target):
        provisioner = RepositoryProvisioner(fake_target)

        repo = await provisioner.migrate_repo(
            'ENG', 'svc', CLONE_ADDR, False, 'Service', 'bot', 'token'
        )

        assert repo.owner == 'ENG'
        assert repo.private is False
        option = fake_target.migrations[0]
        assert option.clone_addr == CLONE_ADDR
        assert option.auth_username == 'bot'
        assert option.auth_password.get_secret_value() == 'token'
        assert 'token' not in repr(option)

    @pytest.mark.asyncio
    async def test_already_imported_repository_is_returned(self, fake_target):
        fake_target.repos[('ENG', 'svc')] = TargetRepository(
            id=9,
            name='svc',
            owner='ENG',
            clone_addr='https://BITBUCKET.example.com/scm/eng/svc.git/',
        )
        provisioner = RepositoryProvisioner(fake_target)

        repo = await provisioner.migrate_repo(
            'ENG', 'svc', 'https://bot@bitbucket.example.com/scm/eng/svc.git',
            False, '', 'bot', 'token',
        )

        assert repo.id == 9
        assert 'migrate_repo' not in fake_target.calls

    @pytest.mark.asyncio
    async def test_unrelated_repository_is_a_collision(self, fake_target):
        fake_target.repos[('ENG', 'svc')] = TargetRepository(
            id=9, name='svc', owner='ENG', clone_addr=''
        )
        provisioner = RepositoryProvisioner(fake_target)

        with pytest.raises(TargetCreateError):
            await provisioner.migrate_repo(
                'ENG', 'svc', CLONE_ADDR, False, '', 'bot', 'token'
            )

    @pytest.mark.asyncio
    async def test_rejected_import(self, fake_target):
        fake_target.failures['migrate_repo'] = APIError('clone failed', status_code=500)
        provisioner = RepositoryProvisioner(fake_target)

        with pytest.raises(TargetCreateError):
            await provisioner.migrate_repo(
                'ENG', 'svc', CLONE_ADDR, False, '', 'bot', 'token'
            )

    @pytest.mark.asyncio
    async def test_apply_permissions_adds_collaborators(self, fake_target):
        provisioner = RepositoryProvisioner(fake_target)
        table = AggregatedPermissionTable(
            ScopeType.REPOSITORY, {'REPO_READ': ['bob'], 'REPO_ADMIN': ['carol']}
        )

        applied = await provisioner.apply_permissions('ENG', 'svc', table)

        assert applied == 2
        assert fake_target.collaborators[('ENG', 'svc')] == {
            'bob': 'read',
            'carol': 'admin',
        }


def test_normalize_url():
    assert normalize_url('https://user:pw@Host.example.com:8443/scm/a.git/') == (
        'https://host.example.com:8443/scm/a.git'
    )
