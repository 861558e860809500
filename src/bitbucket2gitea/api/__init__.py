"""Remote API clients for Bitbucket Server and Gitea."""

from .bitbucket import BitbucketClient
from .client import APIClient, APIResponse
from .gitea import GiteaClient
from .interfaces import SourceDirectoryReader, TargetClient

__all__ = [
    'APIClient',
    'APIResponse',
    'BitbucketClient',
    'GiteaClient',
    'SourceDirectoryReader',
    'TargetClient',
]
