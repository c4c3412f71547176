"""Migration job and step history models."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, validator

from ..errors import InvalidTransitionError


class MigrationStatus(str, Enum):
    """Status of a migration job or of one of its steps."""

    PENDING = 'PENDING'
    RUNNING = 'RUNNING'
    DONE = 'DONE'
    FAILED = 'FAILED'


TERMINAL_STATUSES = (MigrationStatus.DONE, MigrationStatus.FAILED)

_ALLOWED_TRANSITIONS = {
    MigrationStatus.PENDING: (MigrationStatus.RUNNING,),
    MigrationStatus.RUNNING: TERMINAL_STATUSES,
    MigrationStatus.DONE: (),
    MigrationStatus.FAILED: (),
}


def check_transition(current: MigrationStatus, new: MigrationStatus) -> None:
    """Raise InvalidTransitionError unless current -> new is a forward transition."""
    if new not in _ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f'Cannot move from {current.value} to {new.value}'
        )


class Step(str, Enum):
    """Migration steps, declared in execution order."""

    PROJECT_CREATION = 'PROJECT_CREATION'
    SOURCE_CHECKOUT = 'SOURCE_CHECKOUT'
    HISTORY_CLEAN = 'HISTORY_CLEAN'
    DESTINATION_PUSH = 'DESTINATION_PUSH'

    @classmethod
    def ordered(cls) -> List['Step']:
        """Steps in the order a job runs them."""
        return list(cls)


class Migration(BaseModel):
    """One request to move a Subversion project into GitLab."""

    id: Optional[int] = Field(default=None, description='Migration ID')
    svn_group: str = Field(..., description='Source group path, e.g. legacy/app')
    svn_project: str = Field(..., description='Source project name')
    gitlab_group: str = Field(..., description='Destination group path')
    user: str = Field(..., description='Destination user used for the push')
    token: Optional[str] = Field(
        default=None, description='Destination password or access token', repr=False
    )
    status: MigrationStatus = Field(
        default=MigrationStatus.PENDING, description='Job status'
    )
    destination_project_id: Optional[int] = Field(
        default=None, description='Project ID created on the destination'
    )
    created_at: datetime = Field(
        default_factory=datetime.now, description='Submission timestamp'
    )

    @validator('svn_group', 'svn_project', 'gitlab_group', 'user')
    def validate_not_blank(cls, v):
        """Reject empty names, they would produce broken paths and URLs."""
        if not v or not v.strip():
            raise ValueError('Value must not be blank')
        return v.strip().strip('/')

    @validator('svn_group', 'svn_project', 'gitlab_group')
    def validate_path_segments(cls, v):
        """Reject paths that could leave the job's scratch directory."""
        if '\\' in v:
            raise ValueError('Path must use / as separator')
        for segment in v.split('/'):
            if segment in ('', '.', '..'):
                raise ValueError(f'Invalid path segment in {v!r}')
        return v

    def transition(self, status: MigrationStatus) -> None:
        """Move the job forward to the given status."""
        check_transition(self.status, status)
        self.status = status

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat() if v else None}


class MigrationHistory(BaseModel):
    """Audit record of one step attempt."""

    id: Optional[int] = Field(default=None, description='History record ID')
    migration_id: int = Field(..., description='Owning migration ID')
    step: Step = Field(..., description='Step kind')
    status: MigrationStatus = Field(
        default=MigrationStatus.RUNNING, description='Step status'
    )
    date: datetime = Field(default_factory=datetime.now, description='Step start')
    data: Optional[str] = Field(default=None, description='Diagnostic data')

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, status: MigrationStatus) -> None:
        """Close the record, terminal records never change again."""
        check_transition(self.status, status)
        self.status = status

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat() if v else None}
