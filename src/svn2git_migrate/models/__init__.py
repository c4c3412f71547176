"""Data models for migration jobs and GitLab entities."""

from .migration import Migration, MigrationHistory, MigrationStatus, Step
from .group import Group
from .project import Project, ProjectCreate

__all__ = [
    'Migration',
    'MigrationHistory',
    'MigrationStatus',
    'Step',
    'Group',
    'Project',
    'ProjectCreate',
]
