"""Shared fixtures: in-memory Bitbucket and Gitea doubles."""

import asyncio
from typing import Dict, List, Optional, Set, Tuple

import pytest

from bitbucket2gitea.api.exceptions import APIError, ConflictError
from bitbucket2gitea.api.interfaces import SourceDirectoryReader, TargetClient
from bitbucket2gitea.models.source import (
    CloneLink,
    PermissionGrant,
    ScopeType,
    SourceProject,
    SourceRepository,
    SourceUser,
    SubjectType,
)
from bitbucket2gitea.models.target import (
    MigrateRepoOption,
    OrgCreate,
    Team,
    TargetOrganization,
    TargetRepository,
    TargetUser,
    UserCreate,
)


def make_user(name: str) -> SourceUser:
    return SourceUser(
        name=name,
        display_name=name.title(),
        email_address=f'{name.lower()}@example.com',
    )


def user_grant(scope: ScopeType, name: str, permission: str) -> PermissionGrant:
    return PermissionGrant(
        scope=scope,
        subject_type=SubjectType.USER,
        permission=permission,
        subject=name,
        user=make_user(name),
    )


def group_grant(scope: ScopeType, name: str, permission: str) -> PermissionGrant:
    return PermissionGrant(
        scope=scope,
        subject_type=SubjectType.GROUP,
        permission=permission,
        subject=name,
    )


class FakeSource(SourceDirectoryReader):
    """Bitbucket double serving a fixed snapshot."""

    def __init__(
        self,
        project: SourceProject,
        repository: SourceRepository,
        project_users: List[PermissionGrant] = (),
        project_groups: List[PermissionGrant] = (),
        repo_users: List[PermissionGrant] = (),
        repo_groups: List[PermissionGrant] = (),
        groups: Optional[Dict[str, List[SourceUser]]] = None,
    ):
        self.project = project
        self.repository = repository
        self.project_users = list(project_users)
        self.project_groups = list(project_groups)
        self.repo_users = list(repo_users)
        self.repo_groups = list(repo_groups)
        self.groups = groups or {}
        self.calls: List[str] = []
        self.failures: Dict[str, Exception] = {}
        self.delays: Dict[str, float] = {}

    async def _call(self, name: str, value):
        self.calls.append(name)
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        if name in self.failures:
            raise self.failures[name]
        return value

    async def get_project(self, key):
        if key != self.project.key:
            self.calls.append('get_project')
            raise APIError('Resource not found', status_code=404)
        return await self._call('get_project', self.project)

    async def get_repo(self, key, slug):
        return await self._call('get_repo', self.repository)

    async def get_users_permission_from_project(self, key):
        return await self._call('get_users_permission_from_project', self.project_users)

    async def get_groups_permission_from_project(self, key):
        return await self._call(
            'get_groups_permission_from_project', self.project_groups
        )

    async def get_users_permission_from_repo(self, key, slug):
        return await self._call('get_users_permission_from_repo', self.repo_users)

    async def get_groups_permission_from_repo(self, key, slug):
        return await self._call('get_groups_permission_from_repo', self.repo_groups)

    async def get_users_from_group(self, group_name):
        self.calls.append(f'get_users_from_group:{group_name}')
        if group_name in self.failures:
            raise self.failures[group_name]
        if group_name not in self.groups:
            raise APIError('Resource not found', status_code=404)
        return list(self.groups[group_name])


class FakeTarget(TargetClient):
    """Gitea double keeping state in memory across runs."""

    def __init__(self):
        self.users: Dict[str, TargetUser] = {}
        self.orgs: Dict[str, TargetOrganization] = {}
        self.repos: Dict[Tuple[str, str], TargetRepository] = {}
        self.teams: Dict[str, Dict[str, Team]] = {}
        self.team_members: Dict[int, Set[str]] = {}
        self.collaborators: Dict[Tuple[str, str], Dict[str, str]] = {}
        self.migrations: List[MigrateRepoOption] = []
        self.calls: List[str] = []
        self.failures: Dict[str, Exception] = {}
        self._next_id = 1

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]

    async def get_user(self, login_name):
        self._record('get_user')
        return self.users.get(login_name.lower())

    async def create_user(self, user: UserCreate):
        self._record('create_user')
        if user.login_name in self.users:
            raise ConflictError('user already exists', status_code=422)
        created = TargetUser(
            id=self._id(),
            source_id=user.source_id,
            login_name=user.login_name,
            username=user.username,
            full_name=user.full_name,
            email=user.email,
        )
        self.users[user.login_name] = created
        return created

    async def get_org(self, name):
        self._record('get_org')
        return self.orgs.get(name)

    async def create_org(self, org: OrgCreate):
        self._record('create_org')
        if org.username in self.orgs:
            raise ConflictError('organization already exists', status_code=422)
        created = TargetOrganization(
            id=self._id(),
            name=org.username,
            description=org.description,
            visibility=org.visibility,
        )
        self.orgs[org.username] = created
        self.teams[org.username] = {}
        return created

    async def get_repo(self, owner, name):
        self._record('get_repo')
        return self.repos.get((owner, name))

    async def migrate_repo(self, option: MigrateRepoOption):
        self._record('migrate_repo')
        key = (option.repo_owner, option.repo_name)
        if key in self.repos:
            raise ConflictError('repository already exists', status_code=409)
        self.migrations.append(option)
        created = TargetRepository(
            id=self._id(),
            name=option.repo_name,
            owner=option.repo_owner,
            clone_addr=option.clone_addr,
            private=option.private,
            description=option.description,
        )
        self.repos[key] = created
        return created

    async def list_org_teams(self, org):
        self._record('list_org_teams')
        return list(self.teams.get(org, {}).values())

    async def create_team(self, org, name, permission):
        self._record('create_team')
        team = Team(id=self._id(), name=name, permission=permission)
        self.teams.setdefault(org, {})[name] = team
        return team

    async def add_team_member(self, team_id, username):
        self._record('add_team_member')
        self.team_members.setdefault(team_id, set()).add(username)

    async def add_collaborator(self, owner, repo, username, permission):
        self._record('add_collaborator')
        self.collaborators.setdefault((owner, repo), {})[username] = permission

    def team_usernames(self, org: str, team_name: str) -> Set[str]:
        team = self.teams[org][team_name]
        return self.team_members.get(team.id, set())


@pytest.fixture
def eng_source() -> FakeSource:
    """Project ENG with alice (WRITE), eng-team (ADMIN) and repo svc with bob (READ)."""
    project = SourceProject(
        key='ENG', name='ENG', description='Engineering', public=True
    )
    repository = SourceRepository(
        slug='svc',
        name='svc',
        description='Service',
        public=True,
        project_key='ENG',
        clone_links=[
            CloneLink(name='ssh', href='ssh://git@bitbucket.example.com:7999/eng/svc.git'),
            CloneLink(name='http', href='https://bitbucket.example.com/scm/eng/svc.git'),
        ],
    )
    return FakeSource(
        project=project,
        repository=repository,
        project_users=[user_grant(ScopeType.PROJECT, 'alice', 'WRITE')],
        project_groups=[group_grant(ScopeType.PROJECT, 'eng-team', 'ADMIN')],
        repo_users=[user_grant(ScopeType.REPOSITORY, 'bob', 'READ')],
        groups={'eng-team': [make_user('bob'), make_user('carol')]},
    )


@pytest.fixture
def fake_target() -> FakeTarget:
    return FakeTarget()
