"""Bitbucket Server to Gitea migration tool

Migrates a single Bitbucket Server repository, its project and the users
holding permissions on them to a Gitea organization.
"""

__version__ = '0.1.0'

from .cli.main import main

__all__ = ['main']
