"""Gitea REST API client."""

from typing import Any, Dict, List, Optional

from ..models.target import (
    MigrateRepoOption,
    OrgCreate,
    Team,
    TargetOrganization,
    TargetRepository,
    TargetUser,
    UserCreate,
)
from .client import APIClient
from .exceptions import NotFoundError
from .interfaces import TargetClient

TEAM_UNITS = [
    'repo.code',
    'repo.issues',
    'repo.pulls',
    'repo.releases',
    'repo.wiki',
    'repo.projects',
    'repo.packages',
    'repo.actions',
]


class GiteaClient(APIClient, TargetClient):
    """Gitea client for users, organizations, teams and repository imports."""

    api_path = '/api/v1'

    def _auth_headers(self) -> Dict[str, str]:
        return {'Authorization': f'token {self.config.token}'}

    async def get_paginated(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        """Get all pages of a paginated endpoint.

        Args:
            endpoint: API endpoint
            params: Query parameters
            limit: Items per page

        Returns:
            List of all items from all pages
        """
        all_items: List[Dict[str, Any]] = []
        query = dict(params or {})
        query['limit'] = limit
        page = 1

        while True:
            query['page'] = page
            response = await self.get(endpoint, params=query)
            items = response.data or []
            all_items.extend(items)

            total = response.headers.get('X-Total-Count')
            if total is not None and len(all_items) >= int(total):
                break
            if len(items) < limit:
                break
            page += 1

        return all_items

    async def _get_optional(self, endpoint: str) -> Optional[Dict[str, Any]]:
        """GET an entity, returning None when it does not exist."""
        try:
            response = await self.get(endpoint)
        except NotFoundError:
            return None
        return response.data

    async def get_user(self, login_name: str) -> Optional[TargetUser]:
        data = await self._get_optional(self._path('users', login_name))
        return TargetUser.from_api(data) if data else None

    async def create_user(self, user: UserCreate) -> TargetUser:
        response = await self.post('/admin/users', data=user.to_payload())
        return TargetUser.from_api(response.data)

    async def get_org(self, name: str) -> Optional[TargetOrganization]:
        data = await self._get_optional(self._path('orgs', name))
        return TargetOrganization.from_api(data) if data else None

    async def create_org(self, org: OrgCreate) -> TargetOrganization:
        response = await self.post(
            '/orgs',
            data={
                'username': org.username,
                'description': org.description,
                'visibility': org.visibility.value,
            },
        )
        return TargetOrganization.from_api(response.data)

    async def get_repo(self, owner: str, name: str) -> Optional[TargetRepository]:
        data = await self._get_optional(self._path('repos', owner, name))
        return TargetRepository.from_api(data) if data else None

    async def migrate_repo(self, option: MigrateRepoOption) -> TargetRepository:
        response = await self.post('/repos/migrate', data=option.to_payload())
        repo = TargetRepository.from_api(response.data)
        if not repo.clone_addr:
            repo.clone_addr = option.clone_addr
        return repo

    async def list_org_teams(self, org: str) -> List[Team]:
        items = await self.get_paginated(self._path('orgs', org, 'teams'))
        return [Team.from_api(item) for item in items]

    async def create_team(self, org: str, name: str, permission: str) -> Team:
        response = await self.post(
            self._path('orgs', org, 'teams'),
            data={
                'name': name,
                'permission': permission,
                'includes_all_repositories': True,
                'units': TEAM_UNITS,
            },
        )
        return Team.from_api(response.data)

    async def add_team_member(self, team_id: int, username: str) -> None:
        await self.put(self._path('teams', team_id, 'members', username))

    async def add_collaborator(
        self, owner: str, repo: str, username: str, permission: str
    ) -> None:
        await self.put(
            self._path('repos', owner, repo, 'collaborators', username),
            data={'permission': permission},
        )

    async def test_connection(self) -> bool:
        """Test connection to the Gitea server.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            response = await self.get('/version')
            return response.success
        except Exception as e:
            self.logger.error(f'Connection test failed: {e}')
            return False
