"""Bitbucket Server entity models."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator


class ScopeType(str, Enum):
    """Scope a permission grant applies to."""

    PROJECT = 'project'
    REPOSITORY = 'repository'


class SubjectType(str, Enum):
    """Kind of subject a permission is granted to."""

    USER = 'user'
    GROUP = 'group'


class SourceUser(BaseModel):
    """Bitbucket user model."""

    name: str = Field(..., description='Username (slug-like account name)')
    display_name: str = Field(default='', description='Display name')
    email_address: str = Field(default='', description='Email address')

    @property
    def login_name(self) -> str:
        """Canonical login used as the identity key on the target."""
        return self.name.lower()

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'SourceUser':
        return cls(
            name=data['name'],
            display_name=data.get('displayName') or data['name'],
            email_address=data.get('emailAddress') or '',
        )


class SourceGroup(BaseModel):
    """Bitbucket group model.

    Membership is not stored here; it is resolved on demand through the
    source reader.
    """

    name: str = Field(..., description='Group name')


class SourceProject(BaseModel):
    """Bitbucket project model."""

    key: str = Field(..., description='Project key')
    name: str = Field(..., description='Project name')
    description: str = Field(default='', description='Project description')
    public: bool = Field(default=False, description='Project is public')

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'SourceProject':
        return cls(
            key=data['key'],
            name=data['name'],
            description=data.get('description') or '',
            public=bool(data.get('public', False)),
        )


class CloneLink(BaseModel):
    """Clone link advertised by Bitbucket for a repository."""

    name: str = Field(..., description='Protocol name (http, ssh)')
    href: str = Field(..., description='Clone URL')

    @property
    def scheme(self) -> str:
        return self.href.split('://', 1)[0].lower() if '://' in self.href else ''


class SourceRepository(BaseModel):
    """Bitbucket repository model."""

    slug: str = Field(..., description='Repository slug')
    name: str = Field(..., description='Repository name')
    description: str = Field(default='', description='Repository description')
    public: bool = Field(default=False, description='Repository is public')
    project_key: Optional[str] = Field(default=None, description='Parent project key')
    clone_links: List[CloneLink] = Field(
        default_factory=list, description='Clone links in advertised order'
    )

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'SourceRepository':
        links = (data.get('links') or {}).get('clone') or []
        return cls(
            slug=data['slug'],
            name=data['name'],
            description=data.get('description') or '',
            public=bool(data.get('public', False)),
            project_key=(data.get('project') or {}).get('key'),
            clone_links=[CloneLink(name=l['name'], href=l['href']) for l in links],
        )

    def clone_url(self, protocol: str) -> Optional[str]:
        """Select the clone URL for a protocol.

        The link name is matched first (Bitbucket names its links ``http``
        and ``ssh``), then the URL scheme, so ``https`` finds an ``http``
        link served over TLS.

        Args:
            protocol: Protocol name, case-insensitive

        Returns:
            Clone URL or None if no link matches
        """
        wanted = protocol.lower()
        for link in self.clone_links:
            if link.name.lower() == wanted:
                return link.href
        for link in self.clone_links:
            if link.scheme == wanted:
                return link.href
        return None


class PermissionGrant(BaseModel):
    """A permission granted to a user or a group at project or repository scope."""

    scope: ScopeType = Field(..., description='Scope of the grant')
    subject_type: SubjectType = Field(..., description='User or group grant')
    permission: str = Field(..., description='Source permission level')
    subject: str = Field(..., description='Username or group name')
    user: Optional[SourceUser] = Field(
        default=None, description='User profile for direct grants'
    )

    @validator('permission')
    def validate_permission(cls, v):
        """Permission levels are upper-case Bitbucket identifiers."""
        if not v:
            raise ValueError('Permission level must not be empty')
        return v.upper()

    @classmethod
    def for_user(cls, scope: ScopeType, data: Dict[str, Any]) -> 'PermissionGrant':
        user = SourceUser.from_api(data['user'])
        return cls(
            scope=scope,
            subject_type=SubjectType.USER,
            permission=data['permission'],
            subject=user.name,
            user=user,
        )

    @classmethod
    def for_group(cls, scope: ScopeType, data: Dict[str, Any]) -> 'PermissionGrant':
        return cls(
            scope=scope,
            subject_type=SubjectType.GROUP,
            permission=data['permission'],
            subject=data['group']['name'],
        )
