"""Configuration management for svn2git-migrate."""

import os
import shlex
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, validator


def _validate_http_url(v: str) -> str:
    if not v.startswith(('http://', 'https://')):
        raise ValueError('URL must start with http:// or https://')
    return v.rstrip('/')


class SvnConfig(BaseModel):
    """Source Subversion server."""

    url: str = Field(..., description='Subversion root URL')
    username: Optional[str] = Field(
        default=None, description='User passed to git svn clone'
    )

    @validator('url')
    def validate_url(cls, v):
        """Validate Subversion URL format."""
        if not v.startswith(('http://', 'https://', 'svn://', 'svn+ssh://', 'file://')):
            raise ValueError('URL must use http, https, svn, svn+ssh or file scheme')
        return v.rstrip('/')


class GitLabInstanceConfig(BaseModel):
    """Configuration for the destination GitLab instance."""

    url: str = Field(..., description='GitLab instance URL')
    token: Optional[str] = Field(default=None, description='Personal access token')
    oauth_token: Optional[str] = Field(default=None, description='OAuth access token')
    api_version: str = Field(default='v4', description='GitLab API version')
    timeout: int = Field(default=30, description='Request timeout in seconds')

    @validator('url')
    def validate_url(cls, v):
        """Validate GitLab URL format."""
        return _validate_http_url(v)

    @validator('oauth_token', always=True)
    def validate_auth_complete(cls, v, values):
        """Ensure at least one authentication method is provided."""
        token = values.get('token')
        if not token and not v:
            raise ValueError('Either token or oauth_token must be provided')
        return v

    @validator('timeout')
    def validate_timeout(cls, v):
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError('Timeout must be positive')
        return v


class GitConfig(BaseModel):
    """Git operations configuration."""

    temp_dir: Optional[str] = Field(
        default=None,
        description='Root of the per-job scratch directories. If not specified, uses <store path>/scratch.',
    )
    cleanup_temp: bool = Field(
        default=False,
        description='Whether to remove the scratch directory once a job has finished',
    )
    timeout: Optional[int] = Field(
        default=None,
        description='Seconds before an external command is killed (default: no timeout)',
    )
    clean_pattern: str = Field(
        default='*.zip', description='Files deleted from every commit by BFG'
    )
    bfg_command: List[str] = Field(
        default_factory=lambda: ['bfg'],
        description='Command starting BFG Repo-Cleaner, e.g. ["java", "-jar", "bfg.jar"]',
    )
    remote_aliases: List[str] = Field(
        default_factory=lambda: ['origin', 'gitlab'],
        description='Remote names registered for the destination URL',
    )
    source_branch: str = Field(default='trunk', description='Source mainline')
    default_branch: str = Field(
        default='master', description='Destination branch receiving the mainline'
    )

    @validator('temp_dir')
    def validate_temp_dir(cls, v):
        """Validate temp directory path."""
        if v is not None and not Path(v).is_absolute():
            raise ValueError('temp_dir must be an absolute path')
        return v

    @validator('timeout')
    def validate_timeout(cls, v):
        """Validate timeout is positive."""
        if v is not None and v <= 0:
            raise ValueError('Git timeout must be positive')
        return v

    @validator('bfg_command', 'remote_aliases')
    def validate_not_empty(cls, v):
        """Validate command and alias lists are not empty."""
        if not v:
            raise ValueError('List must not be empty')
        return v

    @validator('clean_pattern')
    def validate_pattern(cls, v):
        """Validate the clean pattern is set."""
        if not v.strip():
            raise ValueError('clean_pattern must not be blank')
        return v


class MigrationConfig(BaseModel):
    """Migration-specific configuration."""

    max_workers: int = Field(default=4, description='Maximum concurrent jobs')
    stale_after: int = Field(
        default=86400,
        description='Seconds after which a RUNNING job without progress is reconciled',
    )

    @validator('max_workers', 'stale_after')
    def validate_positive(cls, v):
        """Validate value is positive."""
        if v <= 0:
            raise ValueError('Value must be positive')
        return v


class StoreConfig(BaseModel):
    """Job store configuration."""

    path: str = Field(
        default='.svn2git-migrate', description='Directory holding job documents'
    )


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


class Config(BaseModel):
    """Main configuration class for svn2git-migrate."""

    svn: SvnConfig = Field(..., description='Source Subversion server')
    gitlab: GitLabInstanceConfig = Field(..., description='Destination GitLab instance')
    git: GitConfig = Field(
        default_factory=GitConfig, description='Git operations settings'
    )
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
    )
    store: StoreConfig = Field(
        default_factory=StoreConfig, description='Job store settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    class Config:
        """Pydantic configuration."""

        extra = 'forbid'  # Don't allow extra fields

    @property
    def scratch_root(self) -> Path:
        """Absolute directory under which each job gets its own folder.

        Job IDs restart at 1 in every store, so the default root is kept inside
        the store directory rather than the shared system temp directory.
        """
        if self.git.temp_dir:
            return Path(self.git.temp_dir)
        return Path(self.store.path).resolve() / 'scratch'

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        # Load .env file if it exists
        load_dotenv()

        bfg_command = os.getenv('BFG_COMMAND')
        remote_aliases = os.getenv('GIT_REMOTE_ALIASES')
        git_timeout = os.getenv('GIT_TIMEOUT')

        config_data = {
            'svn': {
                'url': os.getenv('SVN_URL'),
                'username': os.getenv('SVN_USERNAME'),
            },
            'gitlab': {
                'url': os.getenv('GITLAB_URL'),
                'token': os.getenv('GITLAB_TOKEN'),
                'oauth_token': os.getenv('GITLAB_OAUTH_TOKEN'),
            },
            'git': {
                'temp_dir': os.getenv('GIT_TEMP_DIR'),
                'cleanup_temp': os.getenv('GIT_CLEANUP_TEMP', 'false').lower() == 'true',
                'timeout': int(git_timeout) if git_timeout else None,
                'clean_pattern': os.getenv('CLEAN_PATTERN'),
                'bfg_command': shlex.split(bfg_command) if bfg_command else None,
                'remote_aliases': remote_aliases.split(',') if remote_aliases else None,
                'source_branch': os.getenv('GIT_SOURCE_BRANCH'),
                'default_branch': os.getenv('GIT_DEFAULT_BRANCH'),
            },
            'migration': {
                'max_workers': int(os.getenv('MIGRATION_MAX_WORKERS', 4)),
                'stale_after': int(os.getenv('MIGRATION_STALE_AFTER', 86400)),
            },
            'store': {
                'path': os.getenv('STORE_PATH'),
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
            'svn': {
                'url': 'https://svn.example.com/svn',
                'username': 'svn-reader',
            },
            'gitlab': {
                'url': 'https://gitlab.example.com',
                'token': 'your-personal-access-token',
                'api_version': 'v4',
                'timeout': 30,
            },
            'git': {
                'cleanup_temp': False,
                'clean_pattern': '*.zip',
                'bfg_command': ['java', '-jar', '/opt/bfg/bfg.jar'],
                'remote_aliases': ['origin', 'gitlab'],
                'source_branch': 'trunk',
                'default_branch': 'master',
            },
            'migration': {
                'max_workers': 4,
                'stale_after': 86400,
            },
            'store': {
                'path': '.svn2git-migrate',
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
