"""Collaborator interfaces the migration core depends on."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models.source import (
    PermissionGrant,
    SourceProject,
    SourceRepository,
    SourceUser,
)
from ..models.target import (
    MigrateRepoOption,
    OrgCreate,
    Team,
    TargetOrganization,
    TargetRepository,
    TargetUser,
    UserCreate,
)


class SourceDirectoryReader(ABC):
    """Read-only view of the source system's projects, repositories and grants."""

    @abstractmethod
    async def get_project(self, key: str) -> SourceProject:
        pass

    @abstractmethod
    async def get_repo(self, key: str, slug: str) -> SourceRepository:
        pass

    @abstractmethod
    async def get_users_permission_from_project(
        self, key: str
    ) -> List[PermissionGrant]:
        pass

    @abstractmethod
    async def get_groups_permission_from_project(
        self, key: str
    ) -> List[PermissionGrant]:
        pass

    @abstractmethod
    async def get_users_permission_from_repo(
        self, key: str, slug: str
    ) -> List[PermissionGrant]:
        pass

    @abstractmethod
    async def get_groups_permission_from_repo(
        self, key: str, slug: str
    ) -> List[PermissionGrant]:
        pass

    @abstractmethod
    async def get_users_from_group(self, group_name: str) -> List[SourceUser]:
        pass


class TargetClient(ABC):
    """Operations the migration core performs against the target system.

    Lookups return None when the entity does not exist and raise for any
    other failure.
    """

    @abstractmethod
    async def get_user(self, login_name: str) -> Optional[TargetUser]:
        pass

    @abstractmethod
    async def create_user(self, user: UserCreate) -> TargetUser:
        pass

    @abstractmethod
    async def get_org(self, name: str) -> Optional[TargetOrganization]:
        pass

    @abstractmethod
    async def create_org(self, org: OrgCreate) -> TargetOrganization:
        pass

    @abstractmethod
    async def get_repo(self, owner: str, name: str) -> Optional[TargetRepository]:
        pass

    @abstractmethod
    async def migrate_repo(self, option: MigrateRepoOption) -> TargetRepository:
        pass

    @abstractmethod
    async def list_org_teams(self, org: str) -> List[Team]:
        pass

    @abstractmethod
    async def create_team(self, org: str, name: str, permission: str) -> Team:
        pass

    @abstractmethod
    async def add_team_member(self, team_id: int, username: str) -> None:
        pass

    @abstractmethod
    async def add_collaborator(
        self, owner: str, repo: str, username: str, permission: str
    ) -> None:
        pass
