"""Data models for Bitbucket and Gitea entities."""

from .source import (
    CloneLink,
    PermissionGrant,
    ScopeType,
    SourceGroup,
    SourceProject,
    SourceRepository,
    SourceUser,
    SubjectType,
)
from .target import (
    MigrateRepoOption,
    OrgCreate,
    Team,
    TargetOrganization,
    TargetRepository,
    TargetUser,
    UserCreate,
    Visibility,
)

__all__ = [
    'CloneLink',
    'PermissionGrant',
    'ScopeType',
    'SourceGroup',
    'SourceProject',
    'SourceRepository',
    'SourceUser',
    'SubjectType',
    'MigrateRepoOption',
    'OrgCreate',
    'Team',
    'TargetOrganization',
    'TargetRepository',
    'TargetUser',
    'UserCreate',
    'Visibility',
]
