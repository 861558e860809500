"""Migration core: permission aggregation, provisioning and orchestration."""

from .exceptions import (
    MigrationError,
    ValidationError,
    SourceFetchError,
    GroupExpansionError,
    TargetLookupError,
    TargetCreateError,
    MigrationTimeoutError,
)
from .permissions import AggregatedPermissionTable, PermissionPolicy, aggregate
from .provisioning import (
    UserProvisioner,
    OrganizationProvisioner,
    RepositoryProvisioner,
)
from .orchestrator import (
    MigrationState,
    MigrationOptions,
    MigrationSummary,
    MigrationOrchestrator,
)
from .engine import MigrationEngine

__all__ = [
    'MigrationError',
    'ValidationError',
    'SourceFetchError',
    'GroupExpansionError',
    'TargetLookupError',
    'TargetCreateError',
    'MigrationTimeoutError',
    'AggregatedPermissionTable',
    'PermissionPolicy',
    'aggregate',
    'UserProvisioner',
    'OrganizationProvisioner',
    'RepositoryProvisioner',
    'MigrationState',
    'MigrationOptions',
    'MigrationSummary',
    'MigrationOrchestrator',
    'MigrationEngine',
]
