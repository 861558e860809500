"""Configuration management for bitbucket2gitea."""

from typing import Optional, Dict, Any
from pathlib import Path
import os

from pydantic import BaseModel, Field, validator
import yaml
from dotenv import load_dotenv

PERMISSION_POLICIES = ['all', 'highest']


class InstanceConfig(BaseModel):
    """Connection settings shared by the source and target servers."""

    url: str = Field(..., description='Server URL')
    token: str = Field(..., description='Access token')
    timeout: int = Field(default=30, description='Request timeout in seconds')
    skip_verify: bool = Field(
        default=False, description='Skip TLS certificate verification'
    )
    rate_limit_per_second: float = Field(
        default=10.0, description='API requests per second limit'
    )
    max_retries: int = Field(
        default=0, description='Retries for transient request failures'
    )

    @validator('url')
    def validate_url(cls, v):
        """Validate server URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @validator('token')
    def validate_token(cls, v):
        """Require a non-empty token."""
        if not v:
            raise ValueError('Token must not be empty')
        return v

    @validator('rate_limit_per_second')
    def validate_rate_limit(cls, v):
        """Validate rate limit is positive."""
        if v <= 0:
            raise ValueError('Rate limit must be positive')
        return v

    @validator('max_retries')
    def validate_max_retries(cls, v):
        if v < 0:
            raise ValueError('Max retries must not be negative')
        return v


class BitbucketInstanceConfig(InstanceConfig):
    """Configuration for the source Bitbucket Server."""

    username: Optional[str] = Field(
        default=None,
        description='Username for basic auth; also used by Gitea to clone',
    )


class GiteaInstanceConfig(InstanceConfig):
    """Configuration for the target Gitea server."""

    pass


class MigrationConfig(BaseModel):
    """Migration-specific configuration."""

    timeout: float = Field(
        default=10.0, description='Deadline for a whole migration run in seconds'
    )
    clone_protocol: str = Field(
        default='http', description='Clone link protocol Gitea imports from'
    )
    permission_policy: str = Field(
        default='all',
        description='all: keep every level a user holds; highest: keep the highest',
    )
    source_id: int = Field(
        default=0, description='Provenance tag applied to every created user'
    )
    dry_run: bool = Field(default=False, description='Perform dry run without changes')

    @validator('timeout')
    def validate_timeout(cls, v):
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError('Migration timeout must be positive')
        return v

    @validator('clone_protocol')
    def validate_clone_protocol(cls, v):
        if not v:
            raise ValueError('Clone protocol must not be empty')
        return v.lower()

    @validator('permission_policy')
    def validate_permission_policy(cls, v):
        if v.lower() not in PERMISSION_POLICIES:
            raise ValueError(f'Permission policy must be one of: {PERMISSION_POLICIES}')
        return v.lower()


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: Optional[str] = Field(default=None, description='Log format')

    @validator('level')
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


class Config(BaseModel):
    """Main configuration class for bitbucket2gitea."""

    source: BitbucketInstanceConfig = Field(..., description='Source Bitbucket server')
    target: GiteaInstanceConfig = Field(..., description='Target Gitea server')
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    class Config:
        """Pydantic configuration."""

        extra = 'forbid'

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if not isinstance(config_data, dict):
            raise ValueError(f'Configuration file is not a mapping: {config_path}')

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        # Load .env file if it exists
        load_dotenv()

        config_data = {
            'source': {
                'url': os.getenv('BITBUCKET_URL'),
                'username': os.getenv('BITBUCKET_USERNAME'),
                'token': os.getenv('BITBUCKET_TOKEN'),
                'skip_verify': _env_bool('BITBUCKET_SKIP_VERIFY'),
            },
            'target': {
                'url': os.getenv('GITEA_URL'),
                'token': os.getenv('GITEA_TOKEN'),
                'skip_verify': _env_bool('GITEA_SKIP_VERIFY'),
            },
            'migration': {
                'timeout': float(os.getenv('MIGRATION_TIMEOUT', 10)),
                'clone_protocol': os.getenv('MIGRATION_CLONE_PROTOCOL', 'http'),
                'permission_policy': os.getenv('MIGRATION_PERMISSION_POLICY', 'all'),
                'source_id': int(os.getenv('GITEA_SOURCE_ID', 0)),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('LOG_FILE'),
            },
        }

        # Remove None values
        config_data = cls._remove_none_values(config_data)

        return cls(**config_data)

    @staticmethod
    def _remove_none_values(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively remove None values from dictionary."""
        if isinstance(data, dict):
            return {
                k: Config._remove_none_values(v)
                for k, v in data.items()
                if v is not None
            }
        return data

    def to_file(self, config_path: str) -> None:
        """Save configuration to YAML file."""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                self.dict(), f, default_flow_style=False, indent=2, sort_keys=False
            )

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        template_config = {
            'source': {
                'url': 'https://bitbucket.example.com',
                'username': 'migration-bot',
                'token': 'your-bitbucket-http-access-token',
                'timeout': 30,
                'skip_verify': False,
            },
            'target': {
                'url': 'https://gitea.example.com',
                'token': 'your-gitea-admin-token',
                'timeout': 30,
                'skip_verify': False,
            },
            'migration': {
                'timeout': 10,
                'clone_protocol': 'http',
                'permission_policy': 'all',
                'source_id': 0,
                'dry_run': False,
            },
            'logging': {
                'level': 'INFO',
                'file': 'migration.log',
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )
