"""Bitbucket Server REST API client."""

from typing import Any, Dict, List, Optional

import aiohttp

from ..models.source import (
    PermissionGrant,
    ScopeType,
    SourceProject,
    SourceRepository,
    SourceUser,
)
from .client import APIClient
from .interfaces import SourceDirectoryReader


class BitbucketClient(APIClient, SourceDirectoryReader):
    """Bitbucket Server client reading projects, repositories and permissions."""

    api_path = '/rest/api/1.0'

    def _basic_auth(self) -> Optional[aiohttp.BasicAuth]:
        if self.config.username:
            return aiohttp.BasicAuth(self.config.username, self.config.token)
        return None

    def _auth_headers(self) -> Dict[str, str]:
        # HTTP access tokens are sent as bearer tokens when no username is set
        if not self.config.username:
            return {'Authorization': f'Bearer {self.config.token}'}
        return {}

    async def get_paged(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Get all pages of a paged endpoint.

        Bitbucket pages carry ``values``, ``isLastPage`` and
        ``nextPageStart``.

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
        start = 0

        while True:
            query['start'] = start
            response = await self.get(endpoint, params=query)
            page = response.data or {}

            all_items.extend(page.get('values') or [])

            if page.get('isLastPage', True) or page.get('nextPageStart') is None:
                break
            start = page['nextPageStart']

        self.logger.debug(f'Retrieved {len(all_items)} items from {endpoint}')
        return all_items

    async def get_project(self, key: str) -> SourceProject:
        response = await self.get(self._path('projects', key))
        return SourceProject.from_api(response.data)

    async def get_repo(self, key: str, slug: str) -> SourceRepository:
        response = await self.get(self._path('projects', key, 'repos', slug))
        return SourceRepository.from_api(response.data)

    async def get_users_permission_from_project(
        self, key: str
    ) -> List[PermissionGrant]:
        values = await self.get_paged(
            self._path('projects', key, 'permissions', 'users')
        )
        return [PermissionGrant.for_user(ScopeType.PROJECT, v) for v in values]

    async def get_groups_permission_from_project(
        self, key: str
    ) -> List[PermissionGrant]:
        values = await self.get_paged(
            self._path('projects', key, 'permissions', 'groups')
        )
        return [PermissionGrant.for_group(ScopeType.PROJECT, v) for v in values]

    async def get_users_permission_from_repo(
        self, key: str, slug: str
    ) -> List[PermissionGrant]:
        values = await self.get_paged(
            self._path('projects', key, 'repos', slug, 'permissions', 'users')
        )
        return [PermissionGrant.for_user(ScopeType.REPOSITORY, v) for v in values]

    async def get_groups_permission_from_repo(
        self, key: str, slug: str
    ) -> List[PermissionGrant]:
        values = await self.get_paged(
            self._path('projects', key, 'repos', slug, 'permissions', 'groups')
        )
        return [PermissionGrant.for_group(ScopeType.REPOSITORY, v) for v in values]

    async def get_users_from_group(self, group_name: str) -> List[SourceUser]:
        values = await self.get_paged(
            '/admin/groups/more-members', params={'context': group_name}
        )
        return [SourceUser.from_api(v) for v in values]

    async def test_connection(self) -> bool:
        """Test connection to the Bitbucket server.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            response = await self.get('/application-properties')
            return response.success
        except Exception as e:
            self.logger.error(f'Connection test failed: {e}')
            return False
