"""Migration orchestrator sequencing one project/repository snapshot migration."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Type

from loguru import logger
from pydantic import BaseModel, Field

from ..api.exceptions import APIError
from ..api.interfaces import SourceDirectoryReader, TargetClient
from ..models.source import (
    PermissionGrant,
    ScopeType,
    SourceProject,
    SourceRepository,
    SourceUser,
)
from ..models.target import TargetOrganization, TargetRepository, TargetUser
from .exceptions import (
    MigrationError,
    MigrationTimeoutError,
    SourceFetchError,
    TargetCreateError,
    ValidationError,
)
from .permissions import AggregatedPermissionTable, PermissionPolicy, aggregate
from .provisioning import (
    OrganizationProvisioner,
    RepositoryProvisioner,
    UserProvisioner,
)


class MigrationState(str, Enum):
    """Orchestrator states, in execution order."""

    VALIDATING = 'validating'
    FETCHING_PROJECT = 'fetching_project'
    FETCHING_PROJECT_PERMISSIONS = 'fetching_project_permissions'
    FETCHING_REPO = 'fetching_repo'
    FETCHING_REPO_PERMISSIONS = 'fetching_repo_permissions'
    PROVISIONING_USERS = 'provisioning_users'
    PROVISIONING_ORG = 'provisioning_org'
    PROVISIONING_REPO = 'provisioning_repo'
    DONE = 'done'
    FAILED = 'failed'


class MigrationOptions(BaseModel):
    """What to migrate and where to put it."""

    project_key: str = Field(..., description='Source project key')
    repo_slug: str = Field(..., description='Source repository slug')
    target_owner: str = Field(
        default='', description='Target organization, defaults to the project name'
    )
    target_repo: str = Field(
        default='', description='Target repository, defaults to the repository name'
    )
    source_id: int = Field(
        default=0, description='Provenance tag applied to every created user'
    )

    class Config:
        """Pydantic configuration."""

        frozen = True


class MigrationSummary(BaseModel):
    """Outcome of a migration run."""

    options: MigrationOptions = Field(..., description='Run options')
    state: MigrationState = Field(..., description='Current or terminal state')
    failed_state: Optional[MigrationState] = Field(
        default=None, description='State that was active when the run failed'
    )
    error: Optional[MigrationError] = Field(
        default=None, description='Error that aborted the run'
    )
    dry_run: bool = Field(default=False, description='No target writes were made')

    target_owner: str = Field(default='', description='Resolved target owner')
    target_repo: str = Field(default='', description='Resolved target repository')

    project: Optional[SourceProject] = Field(default=None, description='Source project')
    repository: Optional[SourceRepository] = Field(
        default=None, description='Source repository'
    )
    clone_addr: Optional[str] = Field(default=None, description='Selected clone URL')

    project_permissions: Dict[str, List[str]] = Field(
        default_factory=dict, description='Aggregated project permissions'
    )
    repository_permissions: Dict[str, List[str]] = Field(
        default_factory=dict, description='Aggregated repository permissions'
    )

    users: List[TargetUser] = Field(
        default_factory=list, description='Provisioned or existing target users'
    )
    created_users: List[str] = Field(
        default_factory=list, description='Login names created by this run'
    )
    organization: Optional[TargetOrganization] = Field(
        default=None, description='Target organization'
    )
    target_repository: Optional[TargetRepository] = Field(
        default=None, description='Target repository'
    )

    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = Field(default=None)

    class Config:
        """Pydantic configuration."""

        arbitrary_types_allowed = True

    @property
    def success(self) -> bool:
        return self.state == MigrationState.DONE


class MigrationOrchestrator:
    """Runs the migration steps strictly in order, aborting on the first failure.

    Nothing is rolled back: a failed run is recovered by running again, which
    relies on every provisioning step being idempotent.
    """

    def __init__(
        self,
        source: SourceDirectoryReader,
        target: TargetClient,
        options: MigrationOptions,
        clone_protocol: str = 'http',
        permission_policy: PermissionPolicy = PermissionPolicy.ALL,
        clone_username: Optional[str] = None,
        clone_password: Optional[str] = None,
        dry_run: bool = False,
    ):
        """Initialize migration orchestrator.

        Args:
            source: Source directory reader
            target: Target client
            options: Run options
            clone_protocol: Name of the clone link protocol to import from
            permission_policy: Precedence policy applied before granting
            clone_username: Username the target uses to clone the source
            clone_password: Password or token the target uses to clone the source
            dry_run: Read and aggregate only, log intended target changes
        """
        self.source = source
        self.target = target
        self.options = options
        self.clone_protocol = clone_protocol
        self.permission_policy = PermissionPolicy(permission_policy)
        self.clone_username = clone_username
        self.clone_password = clone_password
        self.dry_run = dry_run
        self.logger = logger.bind(component='MigrationOrchestrator')

        self.users = UserProvisioner(target, dry_run=dry_run)
        self.orgs = OrganizationProvisioner(target, dry_run=dry_run)
        self.repos = RepositoryProvisioner(target, dry_run=dry_run)

        self.state = MigrationState.VALIDATING
        self.summary = MigrationSummary(
            options=options, state=self.state, dry_run=dry_run
        )
        self.project_table: Optional[AggregatedPermissionTable] = None
        self.repository_table: Optional[AggregatedPermissionTable] = None

        # Users referenced by any grant, in the order they were encountered
        self._referenced: Dict[str, SourceUser] = {}
        self._group_members: Dict[str, List[SourceUser]] = {}

    def _enter(self, state: MigrationState) -> None:
        self.state = state
        self.summary.state = state
        self.logger.debug(f'State: {state.value}')

    @asynccontextmanager
    async def _step(self, state: MigrationState, error_cls: Type[MigrationError]):
        """Run one step, translating API and payload errors into ``error_cls``."""
        self._enter(state)
        try:
            yield
        except MigrationError as e:
            if e.state is None:
                e.state = state.value
            raise
        except (APIError, KeyError, ValueError) as e:
            raise error_cls(f'{state.value} failed: {e}', state=state.value) from e

    def _fail(self, error: MigrationError) -> None:
        failed_state = self.state
        if error.state:
            failed_state = MigrationState(error.state)
        self.summary.failed_state = failed_state
        self.summary.error = error
        self.summary.state = MigrationState.FAILED
        self.summary.completed_at = datetime.now()
        self.state = MigrationState.FAILED
        self.logger.error(f'Migration failed during {failed_state.value}: {error}')

    async def run(self) -> MigrationSummary:
        """Execute the migration.

        Step failures do not raise; they end the run in the FAILED state
        with the error recorded on the returned summary.

        Returns:
            Migration summary
        """
        try:
            await self._execute()
        except MigrationError as e:
            self._fail(e)
        return self.summary

    async def run_with_deadline(self, timeout: float) -> MigrationSummary:
        """Execute the migration, cancelling it once ``timeout`` seconds pass.

        The in-flight request is aborted and no cleanup is attempted.

        Args:
            timeout: Deadline for the whole run in seconds

        Returns:
            Migration summary
        """
        try:
            return await asyncio.wait_for(self.run(), timeout)
        except asyncio.TimeoutError:
            self._fail(
                MigrationTimeoutError(
                    f'Migration exceeded its deadline of {timeout}s',
                    state=self.state.value,
                )
            )
            return self.summary

    def _validate(self) -> None:
        if not self.options.project_key.strip() or not self.options.repo_slug.strip():
            raise ValidationError(
                'project-key or repo-slug is empty',
                state=MigrationState.VALIDATING.value,
            )

    def _remember(self, user: SourceUser) -> None:
        self._referenced.setdefault(user.login_name, user)

    async def _expand_group(self, group_name: str) -> List[SourceUser]:
        """Resolve a group's members once per run."""
        if group_name not in self._group_members:
            members = await self.source.get_users_from_group(group_name)
            self._group_members[group_name] = list(members)
        members = self._group_members[group_name]
        for member in members:
            self._remember(member)
        return members

    async def _aggregate(
        self,
        scope: ScopeType,
        user_grants: List[PermissionGrant],
        group_grants: List[PermissionGrant],
    ) -> AggregatedPermissionTable:
        for grant in user_grants:
            if grant.user is not None:
                self._remember(grant.user)
            else:
                self._remember(SourceUser(name=grant.subject))

        table = await aggregate(scope, user_grants, group_grants, self._expand_group)
        self.logger.info(
            f'Aggregated {scope.value} permissions: '
            f'{len(table.users())} users across {len(table.levels())} levels'
        )
        return table

    async def _execute(self) -> None:
        options = self.options
        summary = self.summary
        key, slug = options.project_key, options.repo_slug

        self._enter(MigrationState.VALIDATING)
        self._validate()

        async with self._step(MigrationState.FETCHING_PROJECT, SourceFetchError):
            project = await self.source.get_project(key)
        summary.project = project
        self.logger.info(f'Found project {project.key} ({project.name})')

        async with self._step(
            MigrationState.FETCHING_PROJECT_PERMISSIONS, SourceFetchError
        ):
            user_grants = await self.source.get_users_permission_from_project(key)
            group_grants = await self.source.get_groups_permission_from_project(key)
            self.project_table = await self._aggregate(
                ScopeType.PROJECT, user_grants, group_grants
            )
        summary.project_permissions = self.project_table.to_dict()

        async with self._step(MigrationState.FETCHING_REPO, SourceFetchError):
            repo = await self.source.get_repo(key, slug)
            clone_addr = repo.clone_url(self.clone_protocol)
            if clone_addr is None:
                available = ', '.join(link.name for link in repo.clone_links) or 'none'
                raise SourceFetchError(
                    f'Repository {repo.slug} has no {self.clone_protocol} clone '
                    f'link (available: {available})'
                )
        summary.repository = repo
        summary.clone_addr = clone_addr
        self.logger.info(f'Found repository {repo.slug} ({repo.name})')

        async with self._step(MigrationState.FETCHING_REPO_PERMISSIONS, SourceFetchError):
            user_grants = await self.source.get_users_permission_from_repo(key, slug)
            group_grants = await self.source.get_groups_permission_from_repo(key, slug)
            self.repository_table = await self._aggregate(
                ScopeType.REPOSITORY, user_grants, group_grants
            )
        summary.repository_permissions = self.repository_table.to_dict()

        summary.target_owner = options.target_owner or project.name
        summary.target_repo = options.target_repo or repo.name

        async with self._step(MigrationState.PROVISIONING_USERS, TargetCreateError):
            for user in self._referenced.values():
                target_user = await self.users.create_or_get_user(
                    source_id=options.source_id,
                    login_name=user.login_name,
                    username=user.name,
                    full_name=user.display_name,
                    email=user.email_address,
                )
                summary.users.append(target_user)
        summary.created_users = list(self.users.created)

        async with self._step(MigrationState.PROVISIONING_ORG, TargetCreateError):
            summary.organization = await self.orgs.create_or_get_org(
                summary.target_owner, project.description, project.public
            )
            await self.orgs.apply_permissions(
                summary.target_owner,
                self.project_table.resolve(self.permission_policy),
            )

        async with self._step(MigrationState.PROVISIONING_REPO, TargetCreateError):
            summary.target_repository = await self.repos.migrate_repo(
                owner=summary.target_owner,
                name=summary.target_repo,
                clone_addr=clone_addr,
                private=not repo.public,
                description=repo.description,
                auth_username=self.clone_username,
                auth_password=self.clone_password,
            )
            await self.repos.apply_permissions(
                summary.target_owner,
                summary.target_repo,
                self.repository_table.resolve(self.permission_policy),
            )

        self._enter(MigrationState.DONE)
        summary.completed_at = datetime.now()
        self.logger.info(
            f'Migrated {key}/{slug} to {summary.target_owner}/{summary.target_repo}'
        )
