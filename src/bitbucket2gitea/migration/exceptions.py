"""Migration error taxonomy.

Every error is terminal for a run. ``state`` records the orchestrator state
that was active when the error was raised, when known.
"""

from typing import Optional


class MigrationError(Exception):
    """Base exception for migration failures."""

    def __init__(self, message: str, state: Optional[str] = None):
        super().__init__(message)
        self.state = state


class ValidationError(MigrationError):
    """Required identifiers are missing; raised before any network access."""

    pass


class SourceFetchError(MigrationError):
    """Reading from the source system failed."""

    pass


class GroupExpansionError(MigrationError):
    """A group's membership could not be resolved."""

    def __init__(self, message: str, group: str, state: Optional[str] = None):
        super().__init__(message, state=state)
        self.group = group


class TargetLookupError(MigrationError):
    """An existence check on the target failed for a reason other than not-found."""

    pass


class TargetCreateError(MigrationError):
    """The target rejected a creation, e.g. a name collision."""

    pass


class MigrationTimeoutError(MigrationError):
    """The run exceeded its deadline and was cancelled."""

    pass
