"""Permission aggregation across direct and group grants."""

from enum import Enum
from typing import (
    Awaitable,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

from loguru import logger

from ..models.source import PermissionGrant, ScopeType, SourceUser, SubjectType
from .exceptions import GroupExpansionError, MigrationError

Member = Union[SourceUser, str]
GroupResolver = Callable[[str], Awaitable[Iterable[Member]]]

# Bitbucket levels end with their tier: PROJECT_READ, REPO_WRITE, ...
TIER_RANK = {'READ': 1, 'WRITE': 2, 'ADMIN': 3}


class PermissionPolicy(str, Enum):
    """How to treat a user holding several levels at the same scope."""

    ALL = 'all'
    HIGHEST = 'highest'


def permission_tier(level: str) -> Optional[str]:
    """Get the READ/WRITE/ADMIN tier of a source permission level.

    Args:
        level: Source permission level, e.g. ``PROJECT_WRITE``

    Returns:
        Tier name or None for levels without a known tier
    """
    tier = level.upper().rsplit('_', 1)[-1]
    return tier if tier in TIER_RANK else None


def access_mode(level: str) -> Optional[str]:
    """Map a source permission level onto a Gitea access mode."""
    tier = permission_tier(level)
    return tier.lower() if tier else None


class AggregatedPermissionTable:
    """Permission level to canonical usernames, for one scope."""

    def __init__(
        self, scope: ScopeType, levels: Optional[Dict[str, Iterable[str]]] = None
    ):
        self.scope = scope
        self._levels: Dict[str, Set[str]] = {}
        for level, usernames in (levels or {}).items():
            for username in usernames:
                self.add(level, username)

    def add(self, level: str, username: str) -> None:
        self._levels.setdefault(level, set()).add(username.lower())

    def __getitem__(self, level: str) -> Set[str]:
        return set(self._levels.get(level, set()))

    def __contains__(self, level: str) -> bool:
        return level in self._levels

    def __len__(self) -> int:
        return sum(len(users) for users in self._levels.values())

    def __eq__(self, other) -> bool:
        if not isinstance(other, AggregatedPermissionTable):
            return NotImplemented
        return self.scope == other.scope and self._levels == other._levels

    def __repr__(self) -> str:
        return f'AggregatedPermissionTable({self.scope.value}, {self.to_dict()})'

    def levels(self) -> List[str]:
        return sorted(self._levels)

    def users(self) -> Set[str]:
        result: Set[str] = set()
        for usernames in self._levels.values():
            result |= usernames
        return result

    def pairs(self) -> Iterator[Tuple[str, str]]:
        """Yield (level, username) pairs in a stable order."""
        for level in self.levels():
            for username in sorted(self._levels[level]):
                yield level, username

    def to_dict(self) -> Dict[str, List[str]]:
        return {level: sorted(self._levels[level]) for level in self.levels()}

    def resolve(self, policy: PermissionPolicy) -> 'AggregatedPermissionTable':
        """Apply a precedence policy, returning a new table.

        ``ALL`` keeps every level a user holds. ``HIGHEST`` keeps only the
        level with the highest tier per user; levels without a known tier
        are kept unchanged.
        """
        if PermissionPolicy(policy) == PermissionPolicy.ALL:
            return AggregatedPermissionTable(self.scope, self._levels)

        best: Dict[str, Tuple[int, str]] = {}
        resolved = AggregatedPermissionTable(self.scope)
        for level, username in self.pairs():
            tier = permission_tier(level)
            if tier is None:
                resolved.add(level, username)
                continue
            rank = TIER_RANK[tier]
            if username not in best or rank > best[username][0]:
                best[username] = (rank, level)

        for username, (_, level) in best.items():
            resolved.add(level, username)
        return resolved


def _member_name(member: Member) -> str:
    return member.name if isinstance(member, SourceUser) else str(member)


async def aggregate(
    scope: ScopeType,
    direct_grants: Sequence[PermissionGrant],
    group_grants: Sequence[PermissionGrant],
    resolver: GroupResolver,
) -> AggregatedPermissionTable:
    """Merge direct and group-expanded grants into a permission table.

    A username appears under level L iff it holds a direct grant at L, or
    belongs to a group granted L. Conflicting levels are all kept.

    Args:
        scope: Scope all grants belong to
        direct_grants: User grants at this scope
        group_grants: Group grants at this scope
        resolver: Coroutine function expanding a group name to its members

    Returns:
        Aggregated permission table

    Raises:
        GroupExpansionError: If any group's membership cannot be resolved
    """
    table = AggregatedPermissionTable(scope)

    for grant in direct_grants:
        if grant.scope != scope or grant.subject_type != SubjectType.USER:
            raise ValueError(f'Not a {scope.value} user grant: {grant}')
        logger.debug(
            f'{scope.value} permission: {grant.subject} -> {grant.permission}'
        )
        table.add(grant.permission, grant.subject)

    for grant in group_grants:
        if grant.scope != scope or grant.subject_type != SubjectType.GROUP:
            raise ValueError(f'Not a {scope.value} group grant: {grant}')

        try:
            members = list(await resolver(grant.subject))
        except MigrationError:
            raise
        except Exception as e:
            raise GroupExpansionError(
                f'Cannot resolve members of group {grant.subject}: {e}',
                group=grant.subject,
            ) from e

        logger.debug(
            f'{scope.value} group permission: {grant.subject} -> '
            f'{grant.permission} ({len(members)} members)'
        )
        for member in members:
            table.add(grant.permission, _member_name(member))

    return table
