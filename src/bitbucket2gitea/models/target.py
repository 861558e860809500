"""Gitea entity models."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, SecretStr, validator


class Visibility(str, Enum):
    """Gitea organization visibility."""

    PUBLIC = 'public'
    LIMITED = 'limited'
    PRIVATE = 'private'

    @classmethod
    def from_public(cls, public: bool) -> 'Visibility':
        return cls.PUBLIC if public else cls.PRIVATE


class TargetUser(BaseModel):
    """Gitea user model."""

    id: Optional[int] = Field(default=None, description='User ID')
    source_id: int = Field(default=0, description='Authentication source ID')
    login_name: str = Field(..., description='Canonical login name')
    username: str = Field(..., description='Username')
    full_name: str = Field(default='', description='Full name')
    email: str = Field(default='', description='Email address')

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'TargetUser':
        username = data.get('login') or data.get('username') or ''
        return cls(
            id=data.get('id'),
            source_id=data.get('source_id') or 0,
            login_name=(data.get('login_name') or username).lower(),
            username=username,
            full_name=data.get('full_name') or '',
            email=data.get('email') or '',
        )


class UserCreate(BaseModel):
    """Model for creating a new Gitea user through the admin API."""

    source_id: int = Field(default=0, description='Authentication source ID')
    login_name: str = Field(..., description='Canonical login name')
    username: str = Field(..., description='Username')
    full_name: str = Field(default='', description='Full name')
    email: str = Field(..., description='Email address')
    password: SecretStr = Field(..., description='Initial password')
    must_change_password: bool = Field(
        default=True, description='Force password change on first login'
    )
    send_notify: bool = Field(default=False, description='Send notification email')

    @validator('login_name')
    def validate_login_name(cls, v):
        """Login names must already be canonical."""
        if v != v.lower():
            raise ValueError(f'Login name must be lower-case: {v}')
        return v

    def to_payload(self) -> Dict[str, Any]:
        payload = self.dict()
        payload['password'] = self.password.get_secret_value()
        return payload


class TargetOrganization(BaseModel):
    """Gitea organization model."""

    id: Optional[int] = Field(default=None, description='Organization ID')
    name: str = Field(..., description='Organization name')
    description: str = Field(default='', description='Organization description')
    visibility: Visibility = Field(
        default=Visibility.PUBLIC, description='Organization visibility'
    )

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'TargetOrganization':
        return cls(
            id=data.get('id'),
            name=data.get('name') or data.get('username') or '',
            description=data.get('description') or '',
            visibility=data.get('visibility') or Visibility.PUBLIC,
        )


class OrgCreate(BaseModel):
    """Model for creating a Gitea organization."""

    username: str = Field(..., description='Organization name')
    description: str = Field(default='', description='Organization description')
    visibility: Visibility = Field(..., description='Organization visibility')


class TargetRepository(BaseModel):
    """Gitea repository model."""

    id: Optional[int] = Field(default=None, description='Repository ID')
    name: str = Field(..., description='Repository name')
    owner: str = Field(..., description='Owning user or organization')
    clone_addr: str = Field(default='', description='Address the repository was imported from')
    private: bool = Field(default=False, description='Repository is private')
    description: str = Field(default='', description='Repository description')

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'TargetRepository':
        owner = data.get('owner') or {}
        return cls(
            id=data.get('id'),
            name=data['name'],
            owner=owner.get('login') or owner.get('username') or '',
            clone_addr=data.get('original_url') or '',
            private=bool(data.get('private', False)),
            description=data.get('description') or '',
        )


class MigrateRepoOption(BaseModel):
    """Model for a Gitea repository import request."""

    clone_addr: str = Field(..., description='Remote address to clone from')
    repo_owner: str = Field(..., description='Target owner')
    repo_name: str = Field(..., description='Target repository name')
    service: str = Field(default='git', description='Import service type')
    private: bool = Field(default=False, description='Repository is private')
    description: str = Field(default='', description='Repository description')
    mirror: bool = Field(default=False, description='Create a pull mirror')
    auth_username: Optional[str] = Field(default=None, description='Clone username')
    auth_password: Optional[SecretStr] = Field(
        default=None, description='Clone password or token'
    )

    def to_payload(self) -> Dict[str, Any]:
        payload = self.dict(exclude_none=True)
        if self.auth_password is not None:
            payload['auth_password'] = self.auth_password.get_secret_value()
        return payload


class Team(BaseModel):
    """Gitea organization team model."""

    id: int = Field(..., description='Team ID')
    name: str = Field(..., description='Team name')
    permission: str = Field(default='read', description='Team access mode')

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Team':
        return cls(
            id=data['id'],
            name=data['name'],
            permission=data.get('permission') or 'read',
        )
