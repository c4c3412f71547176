"""Project entity models."""

import re
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, validator


class Project(BaseModel):
    """GitLab project model."""

    id: int = Field(..., description='Project ID')
    name: str = Field(..., description='Project name')
    path: str = Field(..., description='Project path')
    path_with_namespace: Optional[str] = Field(
        default=None, description='Project path including its group'
    )
    namespace: Optional[Dict[str, Any]] = Field(
        default=None, description='Project namespace'
    )
    web_url: Optional[str] = Field(default=None, description='Web URL')
    http_url_to_repo: Optional[str] = Field(default=None, description='HTTP clone URL')
    default_branch: Optional[str] = Field(
        default=None, description='Default branch name'
    )

    class Config:
        """Pydantic configuration."""

        extra = 'ignore'


class ProjectCreate(BaseModel):
    """Model for creating a new project."""

    name: str = Field(..., description='Project name')
    path: Optional[str] = Field(
        default=None, description='Project path (defaults to name)'
    )
    namespace_id: int = Field(..., description='Namespace (group) ID')
    visibility: str = Field(default='private', description='Project visibility')
    initialize_with_readme: bool = Field(
        default=False, description='Initialize with README'
    )

    @validator('visibility')
    def validate_visibility(cls, v):
        """Validate project visibility."""
        valid_visibility = ['private', 'internal', 'public']
        if v not in valid_visibility:
            raise ValueError(f'Visibility must be one of: {valid_visibility}')
        return v

    @validator('path', always=True)
    def default_path(cls, v, values):
        """Derive the path from the name when not given."""
        if v is None:
            v = values.get('name')
        if v is not None and not re.match(r'^[a-zA-Z0-9._-]+$', v):
            raise ValueError(
                'Path can only contain alphanumeric characters, dots, dashes, and underscores'
            )
        return v
