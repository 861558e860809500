"""Migration engine - main entry point for migration operations."""

from loguru import logger

from ..config.config import Config
from ..api.bitbucket import BitbucketClient
from ..api.gitea import GiteaClient
from .orchestrator import MigrationOptions, MigrationOrchestrator, MigrationSummary
from .permissions import PermissionPolicy


class MigrationEngine:
    """Builds the Bitbucket and Gitea clients and runs the orchestrator."""

    def __init__(self, config: Config):
        """Initialize migration engine.

        Args:
            config: Migration configuration
        """
        self.config = config
        self.logger = logger.bind(component='MigrationEngine')

        self.source_client = BitbucketClient(config.source)
        self.target_client = GiteaClient(config.target)

    def create_orchestrator(
        self, options: MigrationOptions, dry_run: bool = False
    ) -> MigrationOrchestrator:
        """Create an orchestrator for one run.

        Args:
            options: Run options
            dry_run: Force a dry run regardless of configuration

        Returns:
            Migration orchestrator
        """
        return MigrationOrchestrator(
            source=self.source_client,
            target=self.target_client,
            options=options,
            clone_protocol=self.config.migration.clone_protocol,
            permission_policy=PermissionPolicy(self.config.migration.permission_policy),
            clone_username=self.config.source.username,
            clone_password=self.config.source.token,
            dry_run=dry_run or self.config.migration.dry_run,
        )

    async def migrate(
        self, options: MigrationOptions, dry_run: bool = False
    ) -> MigrationSummary:
        """Run one migration under the configured deadline.

        Args:
            options: Run options
            dry_run: Force a dry run regardless of configuration

        Returns:
            Migration summary
        """
        orchestrator = self.create_orchestrator(options, dry_run=dry_run)
        self.logger.info(
            f'Starting migration of {options.project_key}/{options.repo_slug}'
        )

        try:
            return await orchestrator.run_with_deadline(self.config.migration.timeout)
        finally:
            await self.close()

    async def test_connectivity(self) -> None:
        """Test connectivity to both servers.

        Raises:
            ConnectionError: If connectivity test fails
        """
        self.logger.info('Testing connectivity to Bitbucket and Gitea')

        try:
            if not await self.source_client.test_connection():
                raise ConnectionError('Cannot connect to source Bitbucket server')

            if not await self.target_client.test_connection():
                raise ConnectionError('Cannot connect to target Gitea server')
        finally:
            await self.close()

        self.logger.info('Connectivity tests passed')

    async def close(self) -> None:
        await self.source_client.close()
        await self.target_client.close()
