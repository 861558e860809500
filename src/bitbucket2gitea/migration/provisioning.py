"""Idempotent provisioning of users, organizations and repositories on Gitea."""

import asyncio
import secrets
from collections import defaultdict
from typing import Awaitable, Dict, List, Optional, TypeVar
from urllib.parse import urlsplit

from loguru import logger

from ..api.exceptions import APIError
from ..api.interfaces import TargetClient
from ..models.target import (
    MigrateRepoOption,
    OrgCreate,
    Team,
    TargetOrganization,
    TargetRepository,
    TargetUser,
    UserCreate,
    Visibility,
)
from .exceptions import TargetCreateError, TargetLookupError
from .permissions import AggregatedPermissionTable, access_mode

T = TypeVar('T')

TEAM_PREFIX = 'bitbucket'
NOREPLY_DOMAIN = 'noreply.localhost'


def generate_password() -> str:
    """Generate an initial password for a new account."""
    return secrets.token_urlsafe(24)


def normalize_url(url: str) -> str:
    """Normalize a clone URL for origin comparison.

    Credentials, letter case of scheme and host, and a trailing slash are
    ignored.
    """
    parts = urlsplit(url.strip())
    host = (parts.hostname or '').lower()
    if parts.port:
        host = f'{host}:{parts.port}'
    return f'{parts.scheme.lower()}://{host}{parts.path.rstrip("/")}'


class Provisioner:
    """Base class for target provisioners."""

    def __init__(self, target: TargetClient, dry_run: bool = False):
        """Initialize provisioner.

        Args:
            target: Target system client
            dry_run: Log intended changes without writing to the target
        """
        self.target = target
        self.dry_run = dry_run
        self.logger = logger.bind(component=self.__class__.__name__)

    async def _lookup(self, what: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except APIError as e:
            raise TargetLookupError(f'Cannot look up {what}: {e}') from e

    async def _create(self, what: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except APIError as e:
            raise TargetCreateError(f'Cannot create {what}: {e}') from e


class UserProvisioner(Provisioner):
    """Ensures accounts exist on the target, keyed on canonical login name."""

    def __init__(
        self,
        target: TargetClient,
        dry_run: bool = False,
        password_factory=generate_password,
    ):
        super().__init__(target, dry_run=dry_run)
        self.password_factory = password_factory
        self.users: Dict[str, TargetUser] = {}
        self.created: List[str] = []
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def create_or_get_user(
        self,
        source_id: int,
        login_name: str,
        username: str,
        full_name: str,
        email: str,
    ) -> TargetUser:
        """Return the account for ``login_name``, creating it if absent.

        An existing account is returned unchanged. Calls for the same login
        name are serialized so concurrent callers observe a single account.

        Args:
            source_id: Provenance tag recorded on a new account
            login_name: Canonical (lower-case) login name
            username: Username for a new account
            full_name: Full name for a new account
            email: Email for a new account

        Returns:
            Existing or newly created user

        Raises:
            TargetLookupError: If the existence check fails
            TargetCreateError: If the target rejects the creation
        """
        if login_name != login_name.lower():
            raise ValueError(f'Login name must be canonical: {login_name}')

        async with self._locks[login_name]:
            if login_name in self.users:
                return self.users[login_name]

            existing = await self._lookup(
                f'user {login_name}', self.target.get_user(login_name)
            )
            if existing is not None:
                self.logger.info(f'User {login_name} already exists')
                self.users[login_name] = existing
                return existing

            if not email:
                email = f'{login_name}@{NOREPLY_DOMAIN}'
                self.logger.warning(
                    f'User {login_name} has no email, using {email}'
                )

            if self.dry_run:
                self.logger.info(f'Dry run: Would create user {login_name}')
                user = TargetUser(
                    source_id=source_id,
                    login_name=login_name,
                    username=username,
                    full_name=full_name,
                    email=email,
                )
            else:
                user = await self._create(
                    f'user {login_name}',
                    self.target.create_user(
                        UserCreate(
                            source_id=source_id,
                            login_name=login_name,
                            username=username,
                            full_name=full_name,
                            email=email,
                            password=self.password_factory(),
                        )
                    ),
                )
                self.logger.info(f'Created user {login_name}')

            self.users[login_name] = user
            self.created.append(login_name)
            return user


class OrganizationProvisioner(Provisioner):
    """Ensures the target organization exists and carries project permissions."""

    async def create_or_get_org(
        self, name: str, description: str, public: bool
    ) -> TargetOrganization:
        """Return organization ``name``, creating it if absent.

        Visibility and description are only applied on creation; an
        existing organization is returned verbatim.

        Raises:
            TargetLookupError: If the existence check fails
            TargetCreateError: If the target rejects the creation
        """
        existing = await self._lookup(
            f'organization {name}', self.target.get_org(name)
        )
        if existing is not None:
            self.logger.info(f'Organization {name} already exists')
            return existing

        option = OrgCreate(
            username=name,
            description=description,
            visibility=Visibility.from_public(public),
        )

        if self.dry_run:
            self.logger.info(
                f'Dry run: Would create organization {name} '
                f'({option.visibility.value})'
            )
            return TargetOrganization(
                name=name, description=description, visibility=option.visibility
            )

        org = await self._create(f'organization {name}', self.target.create_org(option))
        self.logger.info(f'Created organization {name} ({option.visibility.value})')
        return org

    async def apply_permissions(
        self, org: str, table: AggregatedPermissionTable
    ) -> int:
        """Grant project-level permissions through one team per access mode.

        Args:
            org: Organization name
            table: Aggregated project permission table

        Returns:
            Number of (level, username) grants applied
        """
        if self.dry_run:
            for level, username in table.pairs():
                self.logger.info(f'Dry run: Would grant {level} on {org} to {username}')
            return 0

        teams: Optional[Dict[str, Team]] = None
        applied = 0

        for level, username in table.pairs():
            mode = access_mode(level)
            if mode is None:
                self.logger.warning(
                    f'Skipping {username}: no access mode for level {level}'
                )
                continue

            if teams is None:
                existing = await self._lookup(
                    f'teams of {org}', self.target.list_org_teams(org)
                )
                teams = {team.name: team for team in existing}

            team_name = f'{TEAM_PREFIX}-{mode}'
            team = teams.get(team_name)
            if team is None:
                team = await self._create(
                    f'team {team_name} in {org}',
                    self.target.create_team(org, team_name, mode),
                )
                teams[team_name] = team
                self.logger.info(f'Created team {team_name} in {org}')

            await self._create(
                f'membership of {username} in {org}/{team_name}',
                self.target.add_team_member(team.id, username),
            )
            self.logger.debug(f'Added {username} to {org}/{team_name}')
            applied += 1

        return applied


class RepositoryProvisioner(Provisioner):
    """Imports the repository into the target organization."""

    async def migrate_repo(
        self,
        owner: str,
        name: str,
        clone_addr: str,
        private: bool,
        description: str,
        auth_username: Optional[str],
        auth_password: Optional[str],
    ) -> TargetRepository:
        """Trigger a remote import of ``clone_addr`` as ``owner/name``.

        A repository already imported from the same origin is returned
        as-is. Any other repository holding the name is a collision.

        Raises:
            TargetLookupError: If the existence check fails
            TargetCreateError: On name collision or when the import is rejected
        """
        existing = await self._lookup(
            f'repository {owner}/{name}', self.target.get_repo(owner, name)
        )
        if existing is not None:
            if existing.clone_addr and normalize_url(
                existing.clone_addr
            ) == normalize_url(clone_addr):
                self.logger.info(f'Repository {owner}/{name} was already imported')
                return existing
            raise TargetCreateError(
                f'Repository {owner}/{name} already exists and was not '
                f'imported from {normalize_url(clone_addr)}'
            )

        if self.dry_run:
            self.logger.info(f'Dry run: Would import {owner}/{name}')
            return TargetRepository(
                name=name,
                owner=owner,
                clone_addr=clone_addr,
                private=private,
                description=description,
            )

        option = MigrateRepoOption(
            clone_addr=clone_addr,
            repo_owner=owner,
            repo_name=name,
            private=private,
            description=description,
            auth_username=auth_username,
            auth_password=auth_password,
        )
        repo = await self._create(
            f'repository {owner}/{name}', self.target.migrate_repo(option)
        )
        self.logger.info(f'Imported repository {owner}/{name}')
        return repo

    async def apply_permissions(
        self, owner: str, name: str, table: AggregatedPermissionTable
    ) -> int:
        """Grant repository-level permissions as collaborators.

        Returns:
            Number of (level, username) grants applied
        """
        applied = 0
        for level, username in table.pairs():
            mode = access_mode(level)
            if mode is None:
                self.logger.warning(
                    f'Skipping {username}: no access mode for level {level}'
                )
                continue

            if self.dry_run:
                self.logger.info(
                    f'Dry run: Would add {username} to {owner}/{name} as {mode}'
                )
                continue

            await self._create(
                f'collaborator {username} on {owner}/{name}',
                self.target.add_collaborator(owner, name, username, mode),
            )
            self.logger.debug(f'Added {username} to {owner}/{name} as {mode}')
            applied += 1

        return applied
